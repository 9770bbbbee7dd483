"""
Content graph models for Graphpress.

Pages and blocks share one node representation. A node without a parent is
a page; every other node is a block whose parent is a page or a block.
"""

from typing import Any, Dict, List, Optional
from pydantic import BaseModel, Field


class NodeMetadata(BaseModel):
    """Tags and free-form properties attached to a node."""

    tags: List[str] = Field(default_factory=list)
    properties: Dict[str, Any] = Field(default_factory=dict)


class Node(BaseModel):
    """
    A persisted page or block.
    """

    id: str = Field(..., description="Workspace-scoped unique identifier")
    workspace_id: str
    parent_id: Optional[str] = Field(
        None,
        description="Parent node id; None marks a page node"
    )
    order: int = Field(0, description="Position among siblings")
    page_name: str
    slug: str
    title: str = Field("", description="Page title; empty for blocks")
    html: Optional[str] = Field(None, description="Rendered block HTML; None for pages")
    metadata: NodeMetadata = Field(default_factory=NodeMetadata)
    depth: int = Field(0, description="0 for blocks directly under a page")

    @property
    def is_page(self) -> bool:
        return self.parent_id is None


class NodeRecord(BaseModel):
    """A node together with the ids of the children it declares."""

    node: Node
    child_ids: List[str] = Field(default_factory=list)


class TreeNode(BaseModel):
    """
    A node with its nested children, ready for rendering.
    """

    node: Node
    children: List['TreeNode'] = Field(default_factory=list)
    cyclic: bool = Field(
        False,
        description="True when this entry is a repeated reference cut short to break a cycle"
    )

    def count(self) -> int:
        """Count the nodes in this subtree."""
        total = 0
        stack = [self]
        while stack:
            current = stack.pop()
            total += 1
            stack.extend(current.children)
        return total


TreeNode.model_rebuild()
