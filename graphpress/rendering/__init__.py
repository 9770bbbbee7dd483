"""HTML rendering: block markdown, Logseq inline syntax and the external renderer."""

from .block_html import render_block_markdown
from .references import process_references
from .exporter import LogseqExporter, find_binary
from .output import RenderedPageIndex, normalize_page_name, parse_rendered_output
from .assets import AssetRewriter

__all__ = [
    "render_block_markdown",
    "process_references",
    "LogseqExporter",
    "find_binary",
    "RenderedPageIndex",
    "normalize_page_name",
    "parse_rendered_output",
    "AssetRewriter"
]
