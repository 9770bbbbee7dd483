"""Data models for Graphpress."""

from .outline import ParsedBlock, ParsedPage, FlatBlock, RenderedPage
from .content import Node, NodeMetadata, NodeRecord, TreeNode
from .sync import GitRepository, Deployment, SyncResult, SyncStatus, DeploymentStatus, IngestionResult

__all__ = [
    "ParsedBlock",
    "ParsedPage",
    "FlatBlock",
    "RenderedPage",
    "Node",
    "NodeMetadata",
    "NodeRecord",
    "TreeNode",
    "GitRepository",
    "Deployment",
    "SyncResult",
    "SyncStatus",
    "DeploymentStatus",
    "IngestionResult"
]
