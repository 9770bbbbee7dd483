"""
Read side of the content store, as used by page views.
"""

import asyncio
import logging
from typing import List, Optional
from urllib.parse import unquote

from ..database import DatabaseManager
from ..models import Node, TreeNode
from ..storage import BlockHtmlCache
from .traversal import TraversalResult, build_tree, store_children_of


class ContentQueries:
    """
    Page lookups and page trees for one content store.
    """

    def __init__(self, store: DatabaseManager, cache: Optional[BlockHtmlCache] = None,
                 max_depth: Optional[int] = None):
        self.store = store
        self.cache = cache
        self.max_depth = max_depth

    async def get_page_by_path(self, workspace_id: str, segments: List[str]) -> Optional[Node]:
        """Resolve URL path segments ("guides", "setup") to the page "guides/setup"."""
        page_name = "/".join(unquote(segment) for segment in segments if segment)
        page = await asyncio.to_thread(self.store.get_page_by_name, workspace_id, page_name)
        if page is None:
            logging.info(f"No page named '{page_name}' in workspace {workspace_id}")
        return page

    async def list_pages(self, workspace_id: str) -> List[Node]:
        return await asyncio.to_thread(self.store.list_pages, workspace_id)

    async def get_page_tree(self, page_id: str, workspace_id: str) -> TraversalResult:
        return await build_tree(page_id, store_children_of(self.store, workspace_id), self.max_depth)

    async def get_page_tree_with_html(self, page_id: str, workspace_id: str) -> TraversalResult:
        """
        Build the page tree and attach block HTML.

        HTML is read from the block cache in one batch; blocks the cache does
        not know keep the HTML stored with the node.
        """
        result = await self.get_page_tree(page_id, workspace_id)
        if result.tree is None or self.cache is None:
            return result

        entries: List[TreeNode] = []
        stack = [result.tree]
        while stack:
            entry = stack.pop()
            if not entry.node.is_page:
                entries.append(entry)
            stack.extend(entry.children)

        cached = await self.cache.get_many(workspace_id, [entry.node.id for entry in entries])
        hits = 0
        for entry in entries:
            html = cached.get(entry.node.id)
            if html is not None:
                entry.node = entry.node.model_copy(update={"html": html})
                hits += 1

        logging.info(f"Block HTML cache hits for page {page_id}: {hits}/{len(entries)}")
        return result
