"""
Markdown to HTML conversion for individual block content.
"""

import re

import markdown


MARKDOWN_EXTENSIONS = ["extra", "sane_lists"]

# Logseq property drawers and inline properties are metadata, not content
PROPERTY_LINE_RE = re.compile(r"^\s*[A-Za-z0-9_-]+::.*$", re.MULTILINE)

# "#tag" at the start of a line is a tag, not a heading
LEADING_TAG_RE = re.compile(r"^#(?=[\w\[])", re.MULTILINE)


def render_block_markdown(content: str) -> str:
    """
    Render one block's markdown to an HTML fragment.

    Args:
        content: Block markdown, possibly multi-line

    Returns:
        The HTML fragment, stripped of surrounding whitespace
    """
    text = PROPERTY_LINE_RE.sub("", content).strip()
    text = LEADING_TAG_RE.sub(r"\\#", text)
    if not text:
        return ""
    return markdown.markdown(text, extensions=MARKDOWN_EXTENSIONS).strip()
