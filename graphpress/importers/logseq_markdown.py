"""
Logseq markdown importer for Graphpress.

This module parses Logseq's on-disk markdown format (one file per page,
one bullet per block, indentation for nesting, `key:: value` property lines)
into ParsedPage objects.
"""

import logging
import re
from pathlib import Path
from typing import Dict, List, Optional, Tuple
from urllib.parse import unquote

from ..models import FlatBlock, ParsedBlock, ParsedPage
from .base import BaseImporter


PROPERTY_RE = re.compile(r"^(\s*)([A-Za-z0-9_-]+)::\s*(.+)$")
BULLET_RE = re.compile(r"^(\s*)-(?:\s+(.*))?$")

# Logseq writes namespaced pages ("guides/setup") as "guides___setup.md"
NAMESPACE_FILE_SEPARATOR = "___"

GRAPH_DIRECTORIES = ("pages", "journals")


def _indent_level(whitespace: str) -> int:
    """Tabs count one level each, every two spaces count one level."""
    return whitespace.count("\t") + whitespace.count(" ") // 2


def _attach(roots: List[ParsedBlock], stack: List[Tuple[ParsedBlock, int]], block: ParsedBlock) -> None:
    while stack and stack[-1][1] >= block.indent:
        stack.pop()

    if stack:
        parent = stack[-1][0]
        block.order = len(parent.children)
        parent.children.append(block)
    else:
        block.order = len(roots)
        roots.append(block)

    stack.append((block, block.indent))


def parse_logseq_markdown(text: str, page_name: str) -> ParsedPage:
    """
    Parse the text of one Logseq markdown file.

    Args:
        text: Raw file content
        page_name: Name of the page the file belongs to

    Returns:
        ParsedPage with page properties and the block forest. A file without
        bullet lines yields only page properties.
    """
    page_properties: Dict[str, str] = {}
    roots: List[ParsedBlock] = []
    stack: List[Tuple[ParsedBlock, int]] = []
    current: Optional[ParsedBlock] = None

    for line in text.splitlines():
        if not line.strip():
            continue

        property_match = PROPERTY_RE.match(line)
        if property_match:
            indent, key, value = property_match.groups()
            value = value.strip()

            if current is None and not indent:
                page_properties[key] = value
                continue

            if current is not None:
                current.properties[key] = value
                if key == "id":
                    current.uuid = value
                continue

        bullet_match = BULLET_RE.match(line)
        if bullet_match:
            whitespace, content = bullet_match.groups()
            current = ParsedBlock(content=content or "", indent=_indent_level(whitespace))
            _attach(roots, stack, current)
            continue

        # Multi-line block content
        if current is not None:
            if current.content:
                current.content += "\n" + line.lstrip()
            else:
                current.content = line.lstrip()

    return ParsedPage(page_name=page_name, properties=page_properties, blocks=roots)


def flatten_blocks(blocks: List[ParsedBlock]) -> List[FlatBlock]:
    """
    Flatten a block forest in pre-order.

    Every entry references its parent by position in the returned list, so a
    parent always precedes its children.
    """
    result: List[FlatBlock] = []
    pending: List[Tuple[ParsedBlock, Optional[int], int]] = [
        (block, None, index) for index, block in reversed(list(enumerate(blocks)))
    ]

    while pending:
        block, parent_index, order = pending.pop()
        position = len(result)
        result.append(FlatBlock(block=block, parent_index=parent_index, order=order))
        for index in range(len(block.children) - 1, -1, -1):
            pending.append((block.children[index], position, index))

    return result


def page_name_from_path(file_path: Path) -> str:
    """Derive a page name from a markdown file name."""
    name = unquote(file_path.stem)
    return name.replace(NAMESPACE_FILE_SEPARATOR, "/")


class LogseqMarkdownImporter(BaseImporter):
    """
    Importer for a Logseq graph checked out on disk.
    """

    def __init__(self, graph_path: str):
        """
        Initialize the Logseq markdown importer.

        Args:
            graph_path: Path to the root of the Logseq graph (the repository checkout)
        """
        self.graph_path = Path(graph_path)

        if not self.graph_path.is_dir():
            logging.warning(f"Logseq graph directory not found: {graph_path}")

    def get_all_pages(self) -> List[ParsedPage]:
        """
        Parse every markdown file under pages/ and journals/.

        Files that cannot be read are logged and skipped.
        """
        pages: List[ParsedPage] = []

        for directory in GRAPH_DIRECTORIES:
            source_dir = self.graph_path / directory
            if not source_dir.is_dir():
                continue

            for file_path in sorted(source_dir.glob("*.md")):
                try:
                    text = file_path.read_text(encoding="utf-8")
                except (OSError, UnicodeDecodeError) as e:
                    logging.error(f"Error parsing {file_path.name}: {e}")
                    continue

                page = parse_logseq_markdown(text, page_name_from_path(file_path))
                page.is_journal = directory == "journals"
                pages.append(page)

        logging.info(f"Parsed {len(pages)} markdown pages from {self.graph_path}")
        return pages
