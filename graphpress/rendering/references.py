"""
Inline markup rewriting for Logseq syntax.

Rewrites page links, block links, task markers, priority cookies and
hashtags found in the text of rendered block HTML into link and semantic
markup. Only text nodes are touched, and text already inside generated
links or code is left alone. This is a best-effort transform: anything that
does not match stays as literal text.
"""

import html
import re
from typing import Optional
from urllib.parse import quote

from bs4 import BeautifulSoup, NavigableString


# Text inside these elements is never rewritten
SKIP_PARENTS = {"a", "code", "pre", "script", "style", "kbd"}

INLINE_SYNTAX = re.compile(
    r"#\[\[(?P<tag_page>[^\[\]]+)\]\]"
    r"|\[\[(?P<page>[^\[\]]+)\]\]"
    r"|\(\((?P<block>[a-f0-9-]{36})\)\)"
    r"|\b(?P<task>TODO|DOING|DONE|LATER|NOW)\b"
    r"|\[#(?P<priority>[ABC])\]"
    r"|(?<![\w/:&#])#(?P<tag>[\w-]+)"
)


def _attr(value: str) -> str:
    return value.replace('"', "&quot;")


def _page_href(workspace_slug: str, page_name: str) -> str:
    return f"/{workspace_slug}/{quote(html.unescape(page_name.strip()), safe='/')}"


def _tag_link(workspace_slug: str, tag: str, label: str) -> str:
    href = _page_href(workspace_slug, tag.lower())
    return f'<a href="{_attr(href)}" class="hashtag-link" data-tag="{_attr(tag)}">{label}</a>'


def _rewrite_text(text: str, workspace_slug: str, current_page: str) -> Optional[str]:
    """Return the rewritten markup, or None when nothing matched."""
    escaped = html.escape(text, quote=False)
    current = current_page.strip().lower()

    def replace(match: re.Match) -> str:
        if match.group("tag_page") is not None:
            tag = match.group("tag_page")
            return _tag_link(workspace_slug, tag, f"#{tag}")

        if match.group("page") is not None:
            page_name = match.group("page")
            href = _page_href(workspace_slug, page_name)
            aria = ' aria-current="page"' if html.unescape(page_name).strip().lower() == current else ""
            return (
                f'<a href="{_attr(href)}" class="page-reference" '
                f'data-page="{_attr(page_name)}"{aria}>{page_name}</a>'
            )

        if match.group("block") is not None:
            uuid = match.group("block")
            return (
                f'<a href="#{uuid}" class="block-reference" '
                f'data-block-uuid="{uuid}">(({uuid[:8]}))</a>'
            )

        if match.group("task") is not None:
            marker = match.group("task")
            checked = "checked " if marker == "DONE" else ""
            return (
                f'<span class="task-marker task-{marker.lower()}">'
                f'<input type="checkbox" {checked}disabled /> {marker}</span>'
            )

        if match.group("priority") is not None:
            level = match.group("priority")
            return f'<span class="priority priority-{level}" data-priority="{level}">[#{level}]</span>'

        tag = match.group("tag")
        return _tag_link(workspace_slug, tag, f"#{tag}")

    rewritten, count = INLINE_SYNTAX.subn(replace, escaped)
    return rewritten if count else None


def process_references(html_content: str, workspace_slug: str, current_page: str = "") -> str:
    """
    Rewrite Logseq inline syntax in an HTML fragment.

    Args:
        html_content: Rendered block HTML
        workspace_slug: Workspace identifier used as the first path segment of links
        current_page: Name of the page the block belongs to

    Returns:
        The rewritten HTML fragment
    """
    soup = BeautifulSoup(html_content, "html.parser")

    for text_node in list(soup.find_all(string=True)):
        # Comments, CDATA and doctypes are NavigableString subclasses
        if type(text_node) is not NavigableString:
            continue
        if any(parent.name in SKIP_PARENTS for parent in text_node.parents):
            continue

        rewritten = _rewrite_text(str(text_node), workspace_slug, current_page)
        if rewritten is not None:
            text_node.replace_with(BeautifulSoup(rewritten, "html.parser"))

    return str(soup)
