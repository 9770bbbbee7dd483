"""
Database manager for Graphpress.

This module handles all content-store operations using DuckDB: the node
graph of each workspace, connected repositories and deployment history.
"""

import duckdb
import json
import logging
import threading
from typing import Dict, Iterable, List, Optional
from datetime import datetime

from ..errors import RepositoryAlreadyConnected, RepositoryNotFound
from ..models import Deployment, GitRepository, Node, NodeMetadata, NodeRecord, SyncStatus


NODE_COLUMNS = 'id, workspace_id, parent_id, "order", page_name, slug, title, html, metadata, depth'
REPOSITORY_COLUMNS = (
    "workspace_id, repo_url, branch, deploy_key, sync_status, last_sync, error_log, created_at, updated_at"
)
DEPLOYMENT_COLUMNS = "id, workspace_id, commit_sha, branch, status, deployed_at, error_log, build_log"

_UNSET = object()


def _placeholders(count: int) -> str:
    return ", ".join("?" for _ in range(count))


class DatabaseManager:
    """
    Manages the DuckDB content store.

    A single connection is shared; calls are serialized with a lock so the
    manager can be driven from worker threads.
    """

    def __init__(self, db_path: str = "graphpress.db"):
        """
        Initialize the database manager.

        Args:
            db_path: Path to the DuckDB database file (":memory:" for tests)
        """
        self.db_path = db_path
        self.connection = None
        self._lock = threading.RLock()

    def connect(self):
        """Establish connection to the database."""
        self.connection = duckdb.connect(self.db_path)

    def disconnect(self):
        """Close the database connection."""
        if self.connection:
            self.connection.close()
            self.connection = None

    def __enter__(self):
        """Context manager entry."""
        self.connect()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Context manager exit."""
        self.disconnect()

    def _conn(self):
        if not self.connection:
            raise RuntimeError("Database connection not established")
        return self.connection

    def initialize_database(self):
        """
        Create all necessary tables if they don't exist.
        """
        conn = self._conn()

        with self._lock:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS nodes (
                    id VARCHAR NOT NULL,
                    workspace_id VARCHAR NOT NULL,
                    parent_id VARCHAR,
                    "order" INTEGER NOT NULL DEFAULT 0,
                    page_name VARCHAR NOT NULL,
                    slug VARCHAR NOT NULL,
                    title VARCHAR NOT NULL DEFAULT '',
                    html VARCHAR,
                    metadata VARCHAR,
                    depth INTEGER NOT NULL DEFAULT 0,
                    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                    PRIMARY KEY (workspace_id, id)
                )
            """)

            conn.execute("""
                CREATE TABLE IF NOT EXISTS git_repositories (
                    workspace_id VARCHAR PRIMARY KEY,
                    repo_url VARCHAR NOT NULL,
                    branch VARCHAR NOT NULL,
                    deploy_key VARCHAR,
                    sync_status VARCHAR NOT NULL DEFAULT 'idle',
                    last_sync TIMESTAMP,
                    error_log VARCHAR,
                    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                    updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                )
            """)

            conn.execute("CREATE SEQUENCE IF NOT EXISTS deployment_id_seq;")
            conn.execute("""
                CREATE TABLE IF NOT EXISTS deployments (
                    id BIGINT PRIMARY KEY DEFAULT nextval('deployment_id_seq'),
                    workspace_id VARCHAR NOT NULL,
                    commit_sha VARCHAR NOT NULL,
                    branch VARCHAR,
                    status VARCHAR NOT NULL,
                    deployed_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                    error_log VARCHAR,
                    build_log VARCHAR
                )
            """)

    # Nodes

    @staticmethod
    def _row_to_node(row) -> Node:
        metadata = json.loads(row[8]) if row[8] else {}
        return Node(
            id=row[0],
            workspace_id=row[1],
            parent_id=row[2],
            order=row[3],
            page_name=row[4],
            slug=row[5],
            title=row[6],
            html=row[7],
            metadata=NodeMetadata(**metadata),
            depth=row[9],
        )

    def replace_workspace_nodes(self, workspace_id: str, nodes: List[Node]) -> int:
        """
        Delete every node of the workspace and insert the new set.

        Both steps run in one transaction, so a failed insert leaves the
        previous graph in place.

        Returns:
            Number of nodes inserted
        """
        conn = self._conn()
        rows = [
            [
                node.id, workspace_id, node.parent_id, node.order, node.page_name,
                node.slug, node.title, node.html, node.metadata.model_dump_json(), node.depth,
            ]
            for node in nodes
        ]

        with self._lock:
            conn.execute("BEGIN TRANSACTION")
            try:
                conn.execute("DELETE FROM nodes WHERE workspace_id = ?", [workspace_id])
                if rows:
                    conn.executemany(
                        f"INSERT INTO nodes ({NODE_COLUMNS}) VALUES ({_placeholders(10)})",
                        rows,
                    )
                conn.execute("COMMIT")
            except duckdb.Error:
                conn.execute("ROLLBACK")
                raise

        logging.info(f"Replaced node set of workspace {workspace_id} with {len(rows)} nodes")
        return len(rows)

    def update_node_depths(self, workspace_id: str, depths: Dict[str, int]) -> None:
        """Persist computed block depths."""
        if not depths:
            return
        conn = self._conn()
        with self._lock:
            conn.executemany(
                "UPDATE nodes SET depth = ? WHERE workspace_id = ? AND id = ?",
                [[depth, workspace_id, node_id] for node_id, depth in depths.items()],
            )

    def get_node(self, workspace_id: str, node_id: str) -> Optional[Node]:
        conn = self._conn()
        with self._lock:
            row = conn.execute(
                f"SELECT {NODE_COLUMNS} FROM nodes WHERE workspace_id = ? AND id = ?",
                [workspace_id, node_id],
            ).fetchone()
        return self._row_to_node(row) if row else None

    def get_page_by_name(self, workspace_id: str, page_name: str) -> Optional[Node]:
        """Find a page node (not a block) by its page name."""
        conn = self._conn()
        with self._lock:
            row = conn.execute(
                f"""
                SELECT {NODE_COLUMNS} FROM nodes
                WHERE workspace_id = ? AND page_name = ? AND parent_id IS NULL
                LIMIT 1
                """,
                [workspace_id, page_name],
            ).fetchone()
        return self._row_to_node(row) if row else None

    def list_pages(self, workspace_id: str) -> List[Node]:
        """List the page nodes of a workspace ordered by name."""
        conn = self._conn()
        with self._lock:
            rows = conn.execute(
                f"""
                SELECT {NODE_COLUMNS} FROM nodes
                WHERE workspace_id = ? AND parent_id IS NULL
                ORDER BY page_name
                """,
                [workspace_id],
            ).fetchall()
        return [self._row_to_node(row) for row in rows]

    def list_nodes(self, workspace_id: str) -> List[Node]:
        conn = self._conn()
        with self._lock:
            rows = conn.execute(
                f'SELECT {NODE_COLUMNS} FROM nodes WHERE workspace_id = ? ORDER BY page_name, depth, "order"',
                [workspace_id],
            ).fetchall()
        return [self._row_to_node(row) for row in rows]

    def fetch_with_children(self, workspace_id: str, node_ids: List[str]) -> Dict[str, NodeRecord]:
        """
        Fetch nodes and the ids of their children in one round trip.

        Args:
            workspace_id: Workspace to read from
            node_ids: Ids to fetch; unknown ids are left out of the result

        Returns:
            Mapping of node id to NodeRecord, child ids in sibling order
        """
        if not node_ids:
            return {}

        conn = self._conn()
        marks = _placeholders(len(node_ids))

        with self._lock:
            rows = conn.execute(
                f"SELECT {NODE_COLUMNS} FROM nodes WHERE workspace_id = ? AND id IN ({marks})",
                [workspace_id, *node_ids],
            ).fetchall()
            child_rows = conn.execute(
                f"""
                SELECT parent_id, id FROM nodes
                WHERE workspace_id = ? AND parent_id IN ({marks})
                ORDER BY parent_id, "order"
                """,
                [workspace_id, *node_ids],
            ).fetchall()

        records = {row[0]: NodeRecord(node=self._row_to_node(row)) for row in rows}
        for parent_id, child_id in child_rows:
            if parent_id in records:
                records[parent_id].child_ids.append(child_id)
        return records

    # Repositories

    @staticmethod
    def _row_to_repository(row) -> GitRepository:
        return GitRepository(
            workspace_id=row[0],
            repo_url=row[1],
            branch=row[2],
            deploy_key=row[3],
            sync_status=row[4],
            last_sync=row[5],
            error_log=row[6],
            created_at=row[7],
            updated_at=row[8],
        )

    def create_repository(self, repository: GitRepository) -> GitRepository:
        """
        Connect a repository to a workspace.

        Raises:
            RepositoryAlreadyConnected: If the workspace already has one
        """
        conn = self._conn()
        now = datetime.now()

        with self._lock:
            try:
                conn.execute(
                    f"INSERT INTO git_repositories ({REPOSITORY_COLUMNS}) VALUES ({_placeholders(9)})",
                    [
                        repository.workspace_id, repository.repo_url, repository.branch,
                        repository.deploy_key, repository.sync_status, repository.last_sync,
                        repository.error_log, now, now,
                    ],
                )
            except duckdb.IntegrityError:
                raise RepositoryAlreadyConnected(
                    f"Repository already connected for workspace {repository.workspace_id}"
                )

        return self.get_repository(repository.workspace_id)

    def get_repository(self, workspace_id: str) -> Optional[GitRepository]:
        conn = self._conn()
        with self._lock:
            row = conn.execute(
                f"SELECT {REPOSITORY_COLUMNS} FROM git_repositories WHERE workspace_id = ?",
                [workspace_id],
            ).fetchone()
        return self._row_to_repository(row) if row else None

    def get_repository_by_url(self, repo_url: str) -> Optional[GitRepository]:
        """Find the repository whose URL matches, ignoring a trailing .git or slash."""
        conn = self._conn()
        candidates = {repo_url, repo_url.rstrip("/")}
        base = repo_url.rstrip("/")
        candidates.add(base[:-4] if base.endswith(".git") else base + ".git")
        candidates = list(candidates)

        with self._lock:
            row = conn.execute(
                f"""
                SELECT {REPOSITORY_COLUMNS} FROM git_repositories
                WHERE repo_url IN ({_placeholders(len(candidates))})
                ORDER BY created_at
                LIMIT 1
                """,
                candidates,
            ).fetchone()
        return self._row_to_repository(row) if row else None

    def update_repository(self, workspace_id: str, sync_status: Optional[str] = None,
                          last_sync: Optional[datetime] = None, error_log=_UNSET,
                          branch: Optional[str] = None) -> GitRepository:
        """
        Update the given fields of a repository.

        ``error_log=None`` clears the log; leaving it out keeps the current value.

        Raises:
            RepositoryNotFound: If the workspace has no repository
        """
        conn = self._conn()
        assignments = ["updated_at = ?"]
        params: list = [datetime.now()]

        if sync_status:
            assignments.append("sync_status = ?")
            params.append(sync_status)
        if last_sync:
            assignments.append("last_sync = ?")
            params.append(last_sync)
        if error_log is not _UNSET:
            assignments.append("error_log = ?")
            params.append(error_log)
        if branch:
            assignments.append("branch = ?")
            params.append(branch)

        with self._lock:
            if self.get_repository(workspace_id) is None:
                raise RepositoryNotFound(f"No repository connected for workspace {workspace_id}")
            conn.execute(
                f"UPDATE git_repositories SET {', '.join(assignments)} WHERE workspace_id = ?",
                [*params, workspace_id],
            )
            return self.get_repository(workspace_id)

    def try_begin_sync(self, workspace_id: str) -> bool:
        """
        Move a repository to ``syncing`` unless a sync is already running.

        Check and update happen under the store lock, so two triggers for the
        same workspace cannot both succeed.

        Returns:
            True if this caller now owns the sync
        """
        with self._lock:
            repository = self.get_repository(workspace_id)
            if repository is None:
                raise RepositoryNotFound(f"No repository connected for workspace {workspace_id}")
            if repository.sync_status == SyncStatus.SYNCING:
                return False
            self.update_repository(workspace_id, sync_status=SyncStatus.SYNCING, error_log=None)
            return True

    # Deployments

    @staticmethod
    def _row_to_deployment(row) -> Deployment:
        return Deployment(
            id=row[0],
            workspace_id=row[1],
            commit_sha=row[2],
            branch=row[3],
            status=row[4],
            deployed_at=row[5],
            error_log=row[6],
            build_log=json.loads(row[7]) if row[7] else [],
        )

    def create_deployment(self, workspace_id: str, commit_sha: str, status: str,
                          branch: Optional[str] = None) -> Deployment:
        conn = self._conn()
        with self._lock:
            row = conn.execute(
                """
                INSERT INTO deployments (workspace_id, commit_sha, branch, status, deployed_at, build_log)
                VALUES (?, ?, ?, ?, ?, ?)
                RETURNING id
                """,
                [workspace_id, commit_sha, branch, status, datetime.now(), json.dumps([])],
            ).fetchone()
            return self.get_deployment(row[0])

    def update_deployment(self, deployment_id: int, status: Optional[str] = None,
                          error_log: Optional[str] = None,
                          build_log: Optional[Iterable[str]] = None) -> Deployment:
        conn = self._conn()
        assignments = []
        params: list = []

        if status:
            assignments.append("status = ?")
            params.append(status)
        if error_log is not None:
            assignments.append("error_log = ?")
            params.append(error_log)
        if build_log is not None:
            assignments.append("build_log = ?")
            params.append(json.dumps(list(build_log)))

        with self._lock:
            if assignments:
                conn.execute(
                    f"UPDATE deployments SET {', '.join(assignments)} WHERE id = ?",
                    [*params, deployment_id],
                )
            return self.get_deployment(deployment_id)

    def get_deployment(self, deployment_id: int) -> Optional[Deployment]:
        conn = self._conn()
        with self._lock:
            row = conn.execute(
                f"SELECT {DEPLOYMENT_COLUMNS} FROM deployments WHERE id = ?",
                [deployment_id],
            ).fetchone()
        return self._row_to_deployment(row) if row else None

    def list_deployments(self, workspace_id: str, limit: Optional[int] = None) -> List[Deployment]:
        """
        List deployments of a workspace, newest first.

        Args:
            workspace_id: Workspace to list
            limit: Limit number of results
        """
        conn = self._conn()
        query = f"SELECT {DEPLOYMENT_COLUMNS} FROM deployments WHERE workspace_id = ? ORDER BY id DESC"
        params: list = [workspace_id]
        if limit:
            query += f" LIMIT {int(limit)}"

        with self._lock:
            rows = conn.execute(query, params).fetchall()
        return [self._row_to_deployment(row) for row in rows]
