"""
Deterministic identifiers for pages and blocks.
"""

import hashlib
import re
from typing import Optional


def _uuid_format(digest: str) -> str:
    """Shape the first 32 hex digits of a digest as 8-4-4-4-12."""
    return f"{digest[:8]}-{digest[8:12]}-{digest[12:16]}-{digest[16:20]}-{digest[20:32]}"


def stable_uuid(seed: str) -> str:
    return _uuid_format(hashlib.sha256(seed.encode("utf-8")).hexdigest())


def normalize_content(content: str) -> str:
    return re.sub(r"\s+", " ", content).strip()


def page_node_id(workspace_id: str, page_name: str) -> str:
    """Id of a page node. Same workspace and page name always give the same id."""
    return stable_uuid(f"{workspace_id}::{page_name}")


def block_node_id(parent_id: str, order: int, content: str, explicit_id: Optional[str] = None) -> str:
    """
    Id of a block node.

    An explicit ``id::`` property wins. Otherwise the id is derived from the
    parent id, the sibling position and the whitespace-normalized content,
    so an unchanged snapshot re-ingests to the same ids.
    """
    if explicit_id:
        return explicit_id
    return stable_uuid(f"{parent_id}::{order}::{normalize_content(content)}")


def slug_for(page_name: str) -> str:
    """Slug of a page: the last segment of a namespaced name."""
    return page_name.rstrip("/").split("/")[-1] or page_name
