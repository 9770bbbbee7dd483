"""Graph importers for various source formats."""

from .base import BaseImporter
from .logseq_markdown import LogseqMarkdownImporter, parse_logseq_markdown, flatten_blocks

__all__ = ["BaseImporter", "LogseqMarkdownImporter", "parse_logseq_markdown", "flatten_blocks"]
