"""
Breadth-first tree builder for page views.

Nodes are fetched one level at a time through a batched ``children_of``
lookup, so a page costs one round trip per level instead of one per block.
The parent graph is never trusted to be acyclic.
"""

import asyncio
import logging
from typing import Awaitable, Callable, Dict, Iterable, List, Optional, Set, Tuple

from pydantic import BaseModel, Field

from ..config import config
from ..database import DatabaseManager
from ..errors import CycleError
from ..models import Node, NodeRecord, TreeNode


ChildrenOf = Callable[[List[str]], Awaitable[Dict[str, NodeRecord]]]


class TraversalResult(BaseModel):
    """A materialized tree plus what was cut to build it."""

    tree: Optional[TreeNode] = None
    cycles: List[Tuple[str, str]] = Field(
        default_factory=list,
        description="(node, repeated child) pairs that were not descended into"
    )
    truncated: bool = Field(False, description="True when the depth ceiling stopped traversal")
    batches: int = Field(0, description="Number of children_of calls made")


async def build_tree(root_id: str, children_of: ChildrenOf, max_depth: Optional[int] = None) -> TraversalResult:
    """
    Materialize the tree below ``root_id``.

    Args:
        root_id: Id of the page (or block) to start from
        children_of: Batched lookup returning ``{id: NodeRecord}`` for the given ids
        max_depth: Ceiling on the number of levels below the root

    Returns:
        TraversalResult whose tree is None when the root does not exist
    """
    if max_depth is None:
        max_depth = config.max_traversal_depth

    records: Dict[str, NodeRecord] = {}
    visited: Set[str] = set()
    discovered_by: Dict[str, str] = {}
    levels: Dict[str, int] = {root_id: 0}
    repeats: List[Tuple[str, str]] = []
    result = TraversalResult()

    frontier = [root_id]
    level = 0

    while frontier:
        frontier = [node_id for node_id in frontier if node_id not in visited]
        if not frontier:
            break

        if level > max_depth:
            logging.warning(f"Traversal of {root_id} stopped at depth ceiling {max_depth}")
            result.truncated = True
            break

        visited.update(frontier)
        fetched = await children_of(frontier)
        result.batches += 1
        records.update(fetched)

        next_frontier: List[str] = []
        for node_id in frontier:
            record = fetched.get(node_id)
            if record is None:
                continue
            for child_id in record.child_ids:
                if child_id in visited or child_id in discovered_by:
                    error = CycleError(node_id, child_id)
                    logging.warning(f"{error} (under {root_id})")
                    repeats.append((node_id, child_id))
                    continue
                discovered_by[child_id] = node_id
                levels[child_id] = level + 1
                next_frontier.append(child_id)

        frontier = next_frontier
        level += 1

    result.cycles = repeats
    result.tree = _assemble(root_id, records, discovered_by, levels, repeats)
    return result


def _assemble(root_id: str, records: Dict[str, NodeRecord], discovered_by: Dict[str, str],
              levels: Dict[str, int], repeats: List[Tuple[str, str]]) -> Optional[TreeNode]:
    """
    Nest the collected nodes.

    A node hangs under its declared parent when that parent was collected on
    a shallower level; otherwise under the node whose child reference reached
    it first. Every parent is therefore closer to the root than its child, so
    the result is a tree. Repeated references become childless leaves marked
    ``cyclic``.
    """
    if root_id not in records:
        return None

    entries = {node_id: TreeNode(node=record.node) for node_id, record in records.items()}
    children: Dict[str, List[TreeNode]] = {}

    for node_id, entry in entries.items():
        if node_id == root_id:
            continue
        declared = entry.node.parent_id
        if declared in entries and levels[declared] < levels[node_id]:
            parent_id = declared
        else:
            parent_id = discovered_by.get(node_id)
            if parent_id not in entries:
                continue
            if declared not in (None, parent_id):
                logging.warning(f"Node {node_id} declares parent {declared} but was reached from {parent_id}")
        children.setdefault(parent_id, []).append(entry)

    for parent_id, child_id in repeats:
        record = records.get(child_id)
        if parent_id in entries and record is not None:
            children.setdefault(parent_id, []).append(TreeNode(node=record.node, cyclic=True))

    for parent_id, siblings in children.items():
        siblings.sort(key=lambda entry: entry.node.order)
        entries[parent_id].children = siblings

    return entries[root_id]


class InMemoryGraph:
    """
    ``children_of`` over nodes held in memory.

    Child references come from each node's parent id unless an explicit
    adjacency map is given, which lets tests wire arbitrary (even cyclic)
    structures.
    """

    def __init__(self, nodes: Iterable[Node], children: Optional[Dict[str, List[str]]] = None):
        self.nodes: Dict[str, Node] = {node.id: node for node in nodes}
        self.calls = 0

        if children is None:
            children = {}
            for node in sorted(self.nodes.values(), key=lambda node: node.order):
                if node.parent_id is not None:
                    children.setdefault(node.parent_id, []).append(node.id)
        self.children = children

    async def children_of(self, node_ids: List[str]) -> Dict[str, NodeRecord]:
        self.calls += 1
        return {
            node_id: NodeRecord(node=self.nodes[node_id], child_ids=list(self.children.get(node_id, [])))
            for node_id in node_ids
            if node_id in self.nodes
        }


def store_children_of(store: DatabaseManager, workspace_id: str) -> ChildrenOf:
    """Batched ``children_of`` backed by the content store."""

    async def children_of(node_ids: List[str]) -> Dict[str, NodeRecord]:
        return await asyncio.to_thread(store.fetch_with_children, workspace_id, node_ids)

    return children_of
