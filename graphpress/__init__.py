"""
Graphpress: publishes a Logseq graph kept in git as a browsable website.

Clones the repository, renders every page, stores pages and blocks as one
node graph per workspace and rebuilds page trees on demand.
"""

__version__ = "0.1.0"
__author__ = "Graphpress Project"

# Import main components
from .database import DatabaseManager
from .models import Node, TreeNode, GitRepository, Deployment
from .importers import BaseImporter, LogseqMarkdownImporter
from .ingestion import IngestionEngine
from .content import ContentQueries, build_tree
from .sync import SyncOrchestrator
from .versioning import GitClient

__all__ = [
    "DatabaseManager",
    "Node",
    "TreeNode",
    "GitRepository",
    "Deployment",
    "BaseImporter",
    "LogseqMarkdownImporter",
    "IngestionEngine",
    "ContentQueries",
    "build_tree",
    "SyncOrchestrator",
    "GitClient"
]
