"""
Tests for the DuckDB content store.
"""

import os
import tempfile
import unittest
from datetime import datetime
from pathlib import Path

from graphpress.database import DatabaseManager
from graphpress.errors import RepositoryAlreadyConnected, RepositoryNotFound
from graphpress.models import DeploymentStatus, GitRepository, Node, NodeMetadata, SyncStatus


def _page(node_id, name, order=0):
    return Node(id=node_id, workspace_id="ws", page_name=name, slug=name, title=name.title(), order=order)


def _block(node_id, parent_id, order, page_name="home", html="<p>x</p>"):
    return Node(id=node_id, workspace_id="ws", parent_id=parent_id, order=order,
                page_name=page_name, slug=page_name, html=html)


class TestDatabaseManager(unittest.TestCase):
    """Test database management functionality."""

    def setUp(self):
        """Set up test database."""
        self.temp_dir = tempfile.mkdtemp()
        self.db_path = Path(self.temp_dir) / "test.db"

    def tearDown(self):
        """Clean up test database."""
        for path in Path(self.temp_dir).iterdir():
            path.unlink()
        os.rmdir(self.temp_dir)

    def test_database_initialization(self):
        """Test database creation and table initialization."""
        with DatabaseManager(str(self.db_path)) as db:
            db.initialize_database()
            db.initialize_database()

            self.assertTrue(self.db_path.exists())
            self.assertIsNotNone(db.connection)

    def test_requires_connection(self):
        db = DatabaseManager(str(self.db_path))

        with self.assertRaises(RuntimeError):
            db.list_pages("ws")

    def test_nodes_survive_reconnect(self):
        with DatabaseManager(str(self.db_path)) as db:
            db.initialize_database()
            db.replace_workspace_nodes("ws", [_page("p1", "home")])

        with DatabaseManager(str(self.db_path)) as db:
            self.assertEqual(db.get_node("ws", "p1").page_name, "home")


class TestNodeStorage(unittest.TestCase):
    """Test node replacement and lookups."""

    def setUp(self):
        self.db = DatabaseManager(":memory:")
        self.db.connect()
        self.db.initialize_database()

    def tearDown(self):
        self.db.disconnect()

    def test_replace_and_read_back(self):
        page = _page("p1", "home")
        page.metadata = NodeMetadata(tags=["a"], properties={"created": "2024-01-01", "journal": True})
        count = self.db.replace_workspace_nodes("ws", [page, _block("b1", "p1", 0)])

        self.assertEqual(count, 2)
        stored = self.db.get_node("ws", "p1")
        self.assertTrue(stored.is_page)
        self.assertEqual(stored.metadata.tags, ["a"])
        self.assertEqual(stored.metadata.properties["journal"], True)
        self.assertIsNone(stored.html)
        self.assertEqual(self.db.get_node("ws", "b1").html, "<p>x</p>")

    def test_replace_drops_previous_nodes(self):
        self.db.replace_workspace_nodes("ws", [_page("p1", "old"), _block("b1", "p1", 0)])
        self.db.replace_workspace_nodes("ws", [_page("p2", "new")])

        self.assertIsNone(self.db.get_node("ws", "p1"))
        self.assertIsNone(self.db.get_node("ws", "b1"))
        self.assertEqual([page.page_name for page in self.db.list_pages("ws")], ["new"])

    def test_replace_with_same_ids(self):
        nodes = [_page("p1", "home"), _block("b1", "p1", 0), _block("b2", "p1", 1)]
        self.db.replace_workspace_nodes("ws", nodes)

        count = self.db.replace_workspace_nodes("ws", nodes)

        self.assertEqual(count, 3)
        self.assertEqual(len(self.db.list_nodes("ws")), 3)

    def test_workspaces_are_isolated(self):
        self.db.replace_workspace_nodes("ws", [_page("p1", "home")])
        other = Node(id="p1", workspace_id="other", page_name="home", slug="home")
        self.db.replace_workspace_nodes("other", [other])
        self.db.replace_workspace_nodes("ws", [])

        self.assertIsNone(self.db.get_node("ws", "p1"))
        self.assertIsNotNone(self.db.get_node("other", "p1"))

    def test_failed_replace_keeps_previous_nodes(self):
        self.db.replace_workspace_nodes("ws", [_page("p1", "home")])

        with self.assertRaises(Exception):
            # Duplicate primary key inside one batch
            self.db.replace_workspace_nodes("ws", [_page("p2", "a"), _page("p2", "b")])

        self.assertIsNotNone(self.db.get_node("ws", "p1"))

    def test_page_lookup_ignores_blocks(self):
        self.db.replace_workspace_nodes("ws", [
            _page("p1", "guides/setup"),
            _block("b1", "p1", 0, page_name="guides/setup"),
        ])

        page = self.db.get_page_by_name("ws", "guides/setup")
        self.assertEqual(page.id, "p1")
        self.assertIsNone(self.db.get_page_by_name("ws", "missing"))

    def test_update_node_depths(self):
        self.db.replace_workspace_nodes("ws", [
            _page("p1", "home"), _block("b1", "p1", 0), _block("b2", "b1", 0),
        ])
        self.db.update_node_depths("ws", {"b1": 0, "b2": 1})

        self.assertEqual(self.db.get_node("ws", "b2").depth, 1)

    def test_fetch_with_children(self):
        self.db.replace_workspace_nodes("ws", [
            _page("p1", "home"),
            _block("b2", "p1", 1),
            _block("b1", "p1", 0),
            _block("c1", "b1", 0),
        ])

        records = self.db.fetch_with_children("ws", ["p1", "b1", "missing"])

        self.assertEqual(set(records), {"p1", "b1"})
        self.assertEqual(records["p1"].child_ids, ["b1", "b2"])
        self.assertEqual(records["b1"].child_ids, ["c1"])
        self.assertEqual(self.db.fetch_with_children("ws", []), {})


class TestRepositoryStorage(unittest.TestCase):
    """Test repository and deployment records."""

    def setUp(self):
        self.db = DatabaseManager(":memory:")
        self.db.connect()
        self.db.initialize_database()
        self.repository = self.db.create_repository(GitRepository(
            workspace_id="ws",
            repo_url="https://github.com/acme/notes.git",
            branch="main",
            deploy_key="secret",
        ))

    def tearDown(self):
        self.db.disconnect()

    def test_create_repository(self):
        self.assertEqual(self.repository.sync_status, SyncStatus.IDLE)
        self.assertIsNotNone(self.repository.created_at)

    def test_one_repository_per_workspace(self):
        with self.assertRaises(RepositoryAlreadyConnected):
            self.db.create_repository(GitRepository(workspace_id="ws", repo_url="https://x/y.git"))

    def test_lookup_by_url(self):
        self.assertEqual(self.db.get_repository_by_url("https://github.com/acme/notes.git").workspace_id, "ws")
        self.assertEqual(self.db.get_repository_by_url("https://github.com/acme/notes").workspace_id, "ws")
        self.assertIsNone(self.db.get_repository_by_url("https://github.com/acme/other.git"))

    def test_update_repository(self):
        now = datetime.now()
        self.db.update_repository("ws", sync_status=SyncStatus.ERROR, error_log="boom")
        updated = self.db.update_repository("ws", sync_status=SyncStatus.SUCCESS, last_sync=now,
                                            branch="trunk", error_log=None)

        self.assertEqual(updated.sync_status, SyncStatus.SUCCESS)
        self.assertEqual(updated.branch, "trunk")
        self.assertIsNone(updated.error_log)
        self.assertIsNotNone(updated.last_sync)

    def test_update_keeps_error_log_when_not_given(self):
        self.db.update_repository("ws", error_log="boom")
        updated = self.db.update_repository("ws", sync_status=SyncStatus.ERROR)

        self.assertEqual(updated.error_log, "boom")

    def test_update_unknown_repository(self):
        with self.assertRaises(RepositoryNotFound):
            self.db.update_repository("nope", sync_status=SyncStatus.ERROR)

    def test_try_begin_sync(self):
        self.db.update_repository("ws", sync_status=SyncStatus.ERROR, error_log="old failure")

        self.assertTrue(self.db.try_begin_sync("ws"))
        repository = self.db.get_repository("ws")
        self.assertEqual(repository.sync_status, SyncStatus.SYNCING)
        self.assertIsNone(repository.error_log)

        self.assertFalse(self.db.try_begin_sync("ws"))

    def test_deployments(self):
        first = self.db.create_deployment("ws", "a" * 40, DeploymentStatus.BUILDING, "main")
        second = self.db.create_deployment("ws", "b" * 40, DeploymentStatus.BUILDING, "main")
        self.db.update_deployment(first.id, status=DeploymentStatus.FAILED, error_log="bad",
                                  build_log=["step 1", "step 2"])

        stored = self.db.get_deployment(first.id)
        self.assertEqual(stored.status, DeploymentStatus.FAILED)
        self.assertEqual(stored.build_log, ["step 1", "step 2"])
        self.assertEqual(stored.error_log, "bad")

        history = self.db.list_deployments("ws")
        self.assertEqual([deployment.id for deployment in history], [second.id, first.id])
        self.assertEqual(len(self.db.list_deployments("ws", limit=1)), 1)
        self.assertEqual(self.db.list_deployments("other"), [])
