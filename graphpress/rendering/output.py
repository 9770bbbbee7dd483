"""
Reading the external renderer's output and matching it to parsed pages.

The renderer writes one HTML document per page, named after the page with
a normalization applied. Parsed pages are matched to documents by
normalized name, with a separator-insensitive fallback that only accepts
an unambiguous candidate.
"""

import logging
import re
from pathlib import Path
from typing import Dict, List
from urllib.parse import unquote

from bs4 import BeautifulSoup

from ..errors import MatchError, RenderError
from ..models import RenderedPage


SEPARATOR = "_"
STRIPPED_CHARS_RE = re.compile(r'[?!/\\:*"<>|]')
FOLDED_RE = re.compile(r"[\s\-]+")


def normalize_page_name(name: str) -> str:
    """
    Normalize a page name the way the renderer names its output files.

    URL-decodes, drops ``? ! / \\ : * " < > |``, folds runs of whitespace
    and hyphens into a single underscore, and lowercases.
    """
    decoded = unquote(name, errors="replace")
    stripped = STRIPPED_CHARS_RE.sub("", decoded)
    return FOLDED_RE.sub(SEPARATOR, stripped).lower()


def _meta_content(soup: BeautifulSoup, name: str) -> str:
    tag = soup.find("meta", attrs={"name": name})
    if tag is None:
        return ""
    return (tag.get("content") or "").strip()


def parse_rendered_document(file_path: Path) -> RenderedPage:
    """
    Parse one rendered HTML document.

    Title, tags and created/updated dates come from the head; the page HTML
    is the content of the body.
    """
    full_html = file_path.read_text(encoding="utf-8")
    soup = BeautifulSoup(full_html, "html.parser")
    name = unquote(file_path.stem)

    title = soup.title.get_text().strip() if soup.title else ""
    tags = [tag.strip() for tag in _meta_content(soup, "tags").split(",") if tag.strip()]

    properties: Dict[str, str] = {}
    for key in ("created", "updated"):
        value = _meta_content(soup, key)
        if value:
            properties[key] = value

    body = soup.body.decode_contents().strip() if soup.body else full_html

    return RenderedPage(
        name=name,
        normalized_name=normalize_page_name(name),
        title=title or name,
        html=body,
        tags=tags,
        properties=properties,
    )


def parse_rendered_output(output_dir: str) -> List[RenderedPage]:
    """
    Parse every HTML document in the renderer's output directory.

    Raises:
        RenderError: If the directory contains no HTML documents
    """
    html_files = sorted(Path(output_dir).glob("*.html"))
    if not html_files:
        raise RenderError("No HTML files found in export output")

    pages = [parse_rendered_document(file_path) for file_path in html_files]
    logging.info(f"Parsed {len(pages)} rendered pages from {output_dir}")
    return pages


class RenderedPageIndex:
    """
    Lookup of rendered documents by normalized page name.
    """

    def __init__(self, pages: List[RenderedPage]):
        self._exact: Dict[str, RenderedPage] = {}
        self._collapsed: Dict[str, List[RenderedPage]] = {}

        for page in pages:
            self._exact.setdefault(page.normalized_name, page)
            collapsed = page.normalized_name.replace(SEPARATOR, "")
            self._collapsed.setdefault(collapsed, []).append(page)

    def __len__(self) -> int:
        return len(self._exact)

    def match(self, page_name: str) -> RenderedPage:
        """
        Find the rendered document for a parsed page.

        Raises:
            MatchError: If there is no exact match and no single fallback candidate
        """
        normalized = normalize_page_name(page_name)

        page = self._exact.get(normalized)
        if page is not None:
            return page

        if SEPARATOR not in normalized:
            raise MatchError(page_name, f"no document named '{normalized}'")

        candidates = self._collapsed.get(normalized.replace(SEPARATOR, ""), [])
        if len(candidates) == 1:
            logging.info(f"Matched '{page_name}' to '{candidates[0].name}' ignoring separators")
            return candidates[0]

        if candidates:
            names = ", ".join(sorted(candidate.name for candidate in candidates))
            raise MatchError(page_name, f"ambiguous fallback match ({names})")

        raise MatchError(page_name, f"no document named '{normalized}'")
