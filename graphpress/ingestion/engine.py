"""
Graph assembler for Graphpress.

Turns a checked-out Logseq graph into the persisted node set of a workspace:
parse the markdown, render it with the external renderer, merge both views
page by page and replace the workspace's nodes in the store.
"""

import asyncio
import logging
import shutil
from pathlib import Path
from typing import Dict, List, Optional, Set

from ..database import DatabaseManager
from ..errors import IngestionError, MatchError, RenderError
from ..importers import LogseqMarkdownImporter, flatten_blocks
from ..models import IngestionResult, Node, NodeMetadata, ParsedPage, RenderedPage
from ..rendering import (
    AssetRewriter,
    LogseqExporter,
    RenderedPageIndex,
    parse_rendered_output,
    process_references,
    render_block_markdown,
)
from ..storage import BlobStore, BlockHtmlCache
from .identifiers import block_node_id, page_node_id, slug_for, stable_uuid


def split_tags(value: Optional[str]) -> List[str]:
    """Split a ``tags::`` value ("a, [[b c]], #d") into tag names."""
    if not value:
        return []
    tags = []
    for part in value.split(","):
        tag = part.strip().strip("#").strip("[]").strip()
        if tag and tag not in tags:
            tags.append(tag)
    return tags


def compute_depths(nodes: List[Node]) -> Dict[str, int]:
    """
    Compute the depth of every block from its parent chain.

    Blocks directly under a page get depth 0. Chains that loop or point at a
    missing node are cut and logged; their blocks get depth 0.
    """
    by_id = {node.id: node for node in nodes}
    depths: Dict[str, int] = {}

    for node in nodes:
        if node.is_page or node.id in depths:
            continue

        chain: List[str] = []
        on_chain: Set[str] = set()
        current = node
        base = -1

        while True:
            if current.id in depths:
                base = depths[current.id]
                break
            if current.id in on_chain:
                logging.warning(f"Parent cycle at node {current.id}; depths reset")
                break
            chain.append(current.id)
            on_chain.add(current.id)

            parent = by_id.get(current.parent_id)
            if parent is None:
                logging.warning(f"Node {current.id} has unknown parent {current.parent_id}")
                break
            if parent.is_page:
                break
            current = parent

        for offset, node_id in enumerate(reversed(chain)):
            depths[node_id] = base + 1 + offset

    return depths


class IngestionEngine:
    """
    Builds and persists the node graph of one workspace.
    """

    def __init__(self, store: DatabaseManager, exporter: Optional[LogseqExporter] = None,
                 blob_store: Optional[BlobStore] = None, cache: Optional[BlockHtmlCache] = None):
        """
        Initialize the ingestion engine.

        Args:
            store: Content store the nodes are written to
            exporter: External renderer adapter
            blob_store: Destination for referenced assets; assets stay local when None
            cache: Block HTML cache to warm after a successful run
        """
        self.store = store
        self.exporter = exporter or LogseqExporter()
        self.blob_store = blob_store
        self.cache = cache

    async def ingest(self, workspace_id: str, repo_path: str,
                     build_log: Optional[List[str]] = None,
                     workspace_slug: Optional[str] = None) -> IngestionResult:
        """
        Ingest the graph checked out at ``repo_path``.

        Args:
            workspace_id: Workspace whose nodes are replaced
            repo_path: Root of the checkout
            build_log: List the progress log is appended to, so callers keep
                the partial log when ingestion fails
            workspace_slug: Prefix of generated page links (defaults to the workspace id)

        Raises:
            RenderError: The renderer failed; nothing was written
            IngestionError: Any other failure, with the partial build log
        """
        log = build_log if build_log is not None else []
        workspace_slug = workspace_slug or workspace_id

        def note(message: str, level: int = logging.INFO):
            logging.log(level, message)
            log.append(message)

        output_dir: Optional[Path] = None
        try:
            importer = LogseqMarkdownImporter(repo_path)
            pages = await asyncio.to_thread(importer.get_all_pages)
            note(f"Parsed {len(pages)} markdown pages")

            output_dir = await self.exporter.export(repo_path)
            rendered = await asyncio.to_thread(parse_rendered_output, str(output_dir))
            index = RenderedPageIndex(rendered)
            note(f"Renderer produced {len(index)} documents")

            rewriter = AssetRewriter(self.blob_store, workspace_id, repo_path)
            nodes, skipped = await self._build_nodes(
                workspace_id, workspace_slug, pages, index, rewriter, note
            )

            await asyncio.to_thread(self.store.replace_workspace_nodes, workspace_id, nodes)

            depths = compute_depths(nodes)
            for node in nodes:
                node.depth = depths.get(node.id, 0)
            await asyncio.to_thread(self.store.update_node_depths, workspace_id, depths)

            blocks = [node for node in nodes if not node.is_page]
            if self.cache is not None:
                await self.cache.clear_workspace(workspace_id)
                await self.cache.set_many(workspace_id, [(node.id, node.html or "") for node in blocks])

            page_count = len(nodes) - len(blocks)
            note(f"Stored {page_count} pages and {len(blocks)} blocks")

            return IngestionResult(
                page_count=page_count,
                block_count=len(blocks),
                skipped_pages=skipped,
                build_log=list(log),
            )

        except RenderError as e:
            note(f"Renderer failed: {e}", logging.ERROR)
            if e.diagnostics:
                log.append(e.diagnostics)
            raise
        except Exception as e:
            note(f"Ingestion failed: {e}", logging.ERROR)
            raise IngestionError(f"Ingestion failed: {e}", log) from e
        finally:
            if output_dir is not None:
                shutil.rmtree(output_dir, ignore_errors=True)

    async def _build_nodes(self, workspace_id: str, workspace_slug: str, pages: List[ParsedPage],
                           index: RenderedPageIndex, rewriter: AssetRewriter, note):
        nodes: List[Node] = []
        skipped: List[str] = []
        seen_ids: Set[str] = set()
        page_order = 0

        for page in pages:
            try:
                rendered = index.match(page.page_name)
            except MatchError as e:
                note(f"Skipping page: {e}", logging.WARNING)
                skipped.append(page.page_name)
                continue

            page_id = page_node_id(workspace_id, page.page_name)
            if page_id in seen_ids:
                note(f"Skipping duplicate page '{page.page_name}'", logging.WARNING)
                skipped.append(page.page_name)
                continue
            seen_ids.add(page_id)

            nodes.append(self._page_node(workspace_id, page, rendered, page_id, page_order))
            page_order += 1
            if not page.blocks:
                continue

            flat = flatten_blocks(page.blocks)
            block_ids: List[str] = []

            for entry in flat:
                block = entry.block
                parent_id = block_ids[entry.parent_index] if entry.parent_index is not None else page_id
                block_id = block_node_id(parent_id, entry.order, block.content, block.uuid)

                attempt = 0
                while block_id in seen_ids:
                    attempt += 1
                    block_id = stable_uuid(f"{parent_id}::{entry.order}::{block_id}::{attempt}")
                if attempt:
                    note(f"Duplicate block id {block.uuid or 'hash'} on '{page.page_name}', "
                         f"stored as {block_id}", logging.WARNING)
                seen_ids.add(block_id)
                block_ids.append(block_id)

                html = render_block_markdown(block.content)
                html = await rewriter.rewrite(html)
                html = process_references(html, workspace_slug, page.page_name)

                nodes.append(Node(
                    id=block_id,
                    workspace_id=workspace_id,
                    parent_id=parent_id,
                    order=entry.order,
                    page_name=page.page_name,
                    slug=slug_for(page.page_name),
                    html=html,
                    metadata=NodeMetadata(
                        tags=split_tags(block.properties.get("tags")),
                        properties=dict(block.properties),
                    ),
                ))

        return nodes, skipped

    @staticmethod
    def _page_node(workspace_id: str, page: ParsedPage, rendered: RenderedPage,
                   page_id: str, order: int) -> Node:
        properties = {**page.properties, **rendered.properties}
        if page.is_journal:
            properties["journal"] = True

        tags = list(rendered.tags)
        for tag in split_tags(page.properties.get("tags")):
            if tag not in tags:
                tags.append(tag)

        return Node(
            id=page_id,
            workspace_id=workspace_id,
            parent_id=None,
            order=order,
            page_name=page.page_name,
            slug=slug_for(page.page_name),
            title=rendered.title or page.page_name,
            html=None,
            metadata=NodeMetadata(tags=tags, properties=properties),
        )
