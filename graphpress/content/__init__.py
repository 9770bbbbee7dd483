"""Page views: tree traversal and content queries."""

from .traversal import InMemoryGraph, TraversalResult, build_tree, store_children_of
from .queries import ContentQueries

__all__ = ["InMemoryGraph", "TraversalResult", "build_tree", "store_children_of", "ContentQueries"]
