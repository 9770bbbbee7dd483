"""
Outline data models for Graphpress.

This module defines the structures produced by the markdown parser and by
the external renderer before they are merged into persisted nodes.
"""

from typing import Dict, List, Optional
from pydantic import BaseModel, Field


class ParsedBlock(BaseModel):
    """
    One outline block parsed from a markdown file.
    """

    uuid: Optional[str] = Field(
        None,
        description="Explicit block identifier from an `id::` property, if any"
    )

    content: str = Field(
        "",
        description="The markdown content of the block, continuation lines included"
    )

    indent: int = Field(
        0,
        description="Indentation level (0 = top-level)"
    )

    order: int = Field(
        0,
        description="Position among siblings"
    )

    properties: Dict[str, str] = Field(
        default_factory=dict,
        description="Block properties (`key:: value` lines)"
    )

    children: List['ParsedBlock'] = Field(
        default_factory=list,
        description="Nested child blocks in source order"
    )


ParsedBlock.model_rebuild()


class ParsedPage(BaseModel):
    """
    A parsed markdown page: page-level properties plus a block forest.
    """

    page_name: str = Field(..., description="The page name derived from the file name")
    properties: Dict[str, str] = Field(default_factory=dict)
    blocks: List[ParsedBlock] = Field(default_factory=list)
    is_journal: bool = Field(False, description="Whether the file lives in journals/")


class FlatBlock(BaseModel):
    """
    A block emitted by flattening, tagged with its position in the tree.
    """

    block: ParsedBlock
    parent_index: Optional[int] = Field(
        None,
        description="Index in the flattened list of the parent block (None for top-level)"
    )
    order: int = Field(..., description="Index among siblings")


class RenderedPage(BaseModel):
    """
    One HTML document produced by the external renderer.
    """

    name: str = Field(..., description="Decoded file name of the rendered document")
    normalized_name: str = Field(..., description="Name after page-name normalization")
    title: str
    html: str = Field("", description="Body content of the document")
    tags: List[str] = Field(default_factory=list)
    properties: Dict[str, str] = Field(default_factory=dict)
