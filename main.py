#!/usr/bin/env python3
"""
Graphpress - Logseq graph publishing

Command line entry point: connect repositories, run syncs and inspect the
published content of a workspace.
"""

import argparse
import asyncio
import logging
import sys
from contextlib import asynccontextmanager

from bs4 import BeautifulSoup

from graphpress.config import config
from graphpress.content import ContentQueries
from graphpress.database import DatabaseManager
from graphpress.errors import GraphpressError
from graphpress.ingestion import IngestionEngine
from graphpress.models import TreeNode
from graphpress.storage import HttpBlobStore
from graphpress.sync import SyncOrchestrator


def setup_logging():
    """Configure logging for the application."""
    level = getattr(logging, config.get("logging.level", "INFO").upper())
    format_str = config.get("logging.format", "%(asctime)s - %(name)s - %(levelname)s - %(message)s")
    log_file = config.log_filename

    logging.basicConfig(
        level=level,
        format=format_str,
        handlers=[
            logging.StreamHandler(sys.stdout),
            logging.FileHandler(log_file)
        ]
    )


@asynccontextmanager
async def blob_store_from_config():
    """Blob store from config, or None when no storage endpoint is set."""
    if not config.get("storage.blob_base_url"):
        yield None
        return
    async with HttpBlobStore() as store:
        yield store


def print_tree(tree: TreeNode):
    """Print a page tree as an indented outline."""
    print(f"{tree.node.title or tree.node.page_name}")
    stack = [(child, 1) for child in reversed(tree.children)]

    while stack:
        entry, level = stack.pop()
        text = BeautifulSoup(entry.node.html or "", "html.parser").get_text(" ", strip=True)
        marker = " (cycle)" if entry.cyclic else ""
        print(f"{'  ' * level}- {text}{marker}")
        stack.extend((child, level + 1) for child in reversed(entry.children))


async def run_connect(db: DatabaseManager, args) -> int:
    async with blob_store_from_config() as blob_store:
        orchestrator = SyncOrchestrator(db, IngestionEngine(db, blob_store=blob_store))

        repository = await orchestrator.connect_repository(args.workspace, args.repo_url, args.branch, args.token)
        print(f"Connected {repository.repo_url} ({repository.branch}) to workspace {repository.workspace_id}")

        results = await orchestrator.wait_for_syncs()

    for result in results:
        print(f"Initial sync: {'success' if result.success else 'failed'}")
        if result.error:
            print(f"  {result.error}")
    return 0 if all(result.success for result in results) else 1


async def run_sync(db: DatabaseManager, args) -> int:
    async with blob_store_from_config() as blob_store:
        orchestrator = SyncOrchestrator(db, IngestionEngine(db, blob_store=blob_store))

        task = await orchestrator.trigger_sync(args.workspace, reason="manual")
        if task is None:
            print(f"A sync is already running for workspace {args.workspace}")
            return 1

        result = await task

    if result.success:
        print(f"Deployed {result.branch} at {result.commit_sha} (deployment {result.deployment_id})")
        return 0

    print(f"Sync failed: {result.error}")
    return 1


async def run_ingest_local(db: DatabaseManager, args) -> int:
    async with blob_store_from_config() as blob_store:
        engine = IngestionEngine(db, blob_store=blob_store)
        result = await engine.ingest(args.workspace, args.path)

    print(f"Ingested {result.page_count} pages and {result.block_count} blocks")
    if result.skipped_pages:
        print(f"Skipped {len(result.skipped_pages)} pages: {', '.join(result.skipped_pages)}")
    return 0


def run_status(db: DatabaseManager, args) -> int:
    repository = db.get_repository(args.workspace)
    if repository is None:
        print(f"No repository connected for workspace {args.workspace}")
        return 1

    print(f"Repository: {repository.repo_url}")
    print(f"Branch:     {repository.branch}")
    print(f"Status:     {repository.sync_status}")
    print(f"Last sync:  {repository.last_sync or 'never'}")
    if repository.error_log:
        print(f"Error:      {repository.error_log}")
    return 0


def run_deployments(db: DatabaseManager, args) -> int:
    deployments = db.list_deployments(args.workspace, limit=args.limit)
    if not deployments:
        print(f"No deployments for workspace {args.workspace}")
        return 0

    for deployment in deployments:
        print(f"#{deployment.id} {deployment.status:<8} {deployment.commit_sha[:8]} "
              f"{deployment.branch or '-'} {deployment.deployed_at}")
        if deployment.error_log:
            print(f"    {deployment.error_log}")
        if args.verbose:
            for line in deployment.build_log:
                print(f"    | {line}")
    return 0


async def run_tree(db: DatabaseManager, args) -> int:
    queries = ContentQueries(db)
    page = await queries.get_page_by_path(args.workspace, args.page.split("/"))
    if page is None:
        print(f"Page not found: {args.page}")
        return 1

    result = await queries.get_page_tree_with_html(page.id, args.workspace)
    print_tree(result.tree)
    if result.cycles:
        print(f"\n{len(result.cycles)} repeated references were cut")
    return 0


def parse_arguments(argv=None):
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        description="Graphpress - Logseq graph publishing",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py connect docs https://github.com/acme/notes.git --token $TOKEN
  python main.py sync docs                        # Clone, render and publish
  python main.py status docs                      # Show sync status
  python main.py deployments docs -v              # Deployment history with build logs
  python main.py tree docs guides/setup           # Print a page outline
  python main.py ingest-local docs ~/notes        # Publish a local checkout
        """
    )

    parser.add_argument(
        "--db",
        type=str,
        help="Path to the DuckDB database (default from config.yaml)"
    )

    parser.add_argument(
        "--version",
        action="version",
        version="Graphpress 0.1.0"
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    connect = subparsers.add_parser("connect", help="Connect a repository to a workspace")
    connect.add_argument("workspace")
    connect.add_argument("repo_url")
    connect.add_argument("--branch", default="main", help="Branch to publish (default: main)")
    connect.add_argument("--token", help="Access token; an initial sync runs when given")

    sync = subparsers.add_parser("sync", help="Run a sync and wait for it")
    sync.add_argument("workspace")

    status = subparsers.add_parser("status", help="Show repository sync status")
    status.add_argument("workspace")

    deployments = subparsers.add_parser("deployments", help="List deployments")
    deployments.add_argument("workspace")
    deployments.add_argument("--limit", type=int, default=10)
    deployments.add_argument("-v", "--verbose", action="store_true", help="Include build logs")

    tree = subparsers.add_parser("tree", help="Print the block tree of a page")
    tree.add_argument("workspace")
    tree.add_argument("page", help="Page name, e.g. guides/setup")

    ingest = subparsers.add_parser("ingest-local", help="Ingest a local graph without git")
    ingest.add_argument("workspace")
    ingest.add_argument("path")

    return parser.parse_args(argv)


def main(argv=None):
    """Main entry point."""
    args = parse_arguments(argv)
    setup_logging()

    logging.info("Graphpress - Logseq graph publishing")

    try:
        with DatabaseManager(args.db or config.database_filename) as db:
            db.initialize_database()

            if args.command == "connect":
                code = asyncio.run(run_connect(db, args))
            elif args.command == "sync":
                code = asyncio.run(run_sync(db, args))
            elif args.command == "ingest-local":
                code = asyncio.run(run_ingest_local(db, args))
            elif args.command == "tree":
                code = asyncio.run(run_tree(db, args))
            elif args.command == "status":
                code = run_status(db, args)
            else:
                code = run_deployments(db, args)

    except KeyboardInterrupt:
        logging.info("Interrupted by user")
        print("\nInterrupted.")
        sys.exit(130)

    except GraphpressError as e:
        logging.error(f"{args.command} failed: {e}")
        print(f"\n{args.command} failed: {e}")
        sys.exit(1)

    sys.exit(code)


if __name__ == "__main__":
    main()
