"""Graph assembly: from a checked-out graph to persisted nodes."""

from .engine import IngestionEngine, compute_depths, split_tags
from .identifiers import block_node_id, page_node_id, slug_for

__all__ = ["IngestionEngine", "compute_depths", "split_tags", "block_node_id", "page_node_id", "slug_for"]
