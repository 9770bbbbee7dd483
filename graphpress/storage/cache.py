"""
Fast cache for rendered block HTML.

Keys follow ``workspace:{workspace_id}:block:{uuid without hyphens}``.
"""

from typing import Dict, Iterable, List, Optional, Protocol, Tuple


def block_key(workspace_id: str, block_id: str) -> str:
    return f"workspace:{workspace_id}:block:{block_id.replace('-', '')}"


class BlockHtmlCache(Protocol):
    """Batched get/set of block HTML keyed by (workspace, block)."""

    async def get_many(self, workspace_id: str, block_ids: List[str]) -> Dict[str, Optional[str]]:
        ...

    async def set_many(self, workspace_id: str, items: Iterable[Tuple[str, str]]) -> None:
        ...

    async def clear_workspace(self, workspace_id: str) -> None:
        ...


class InMemoryBlockHtmlCache:
    """Process-local cache used in tests and single-process deployments."""

    def __init__(self):
        self._values: Dict[str, str] = {}

    async def get_many(self, workspace_id: str, block_ids: List[str]) -> Dict[str, Optional[str]]:
        return {block_id: self._values.get(block_key(workspace_id, block_id)) for block_id in block_ids}

    async def set_many(self, workspace_id: str, items: Iterable[Tuple[str, str]]) -> None:
        for block_id, html in items:
            self._values[block_key(workspace_id, block_id)] = html

    async def clear_workspace(self, workspace_id: str) -> None:
        prefix = f"workspace:{workspace_id}:"
        for key in [key for key in self._values if key.startswith(prefix)]:
            del self._values[key]
