"""
Shared fixtures: a small Logseq graph on disk and a stand-in for the
external renderer.
"""

from pathlib import Path
from typing import Dict, List, Optional

import pytest

from graphpress.database import DatabaseManager
from graphpress.importers.logseq_markdown import GRAPH_DIRECTORIES, page_name_from_path
from graphpress.rendering import normalize_page_name


FOOTER_UUID = "6489a3b2-1f2e-4c1d-9a8b-123456789abc"

GRAPH_FILES = {
    "pages/home.md": (
        "title:: Home\n"
        "tags:: intro\n"
        "\n"
        "- Welcome to [[guides/setup]]\n"
        "\t- TODO read #docs\n"
        "\t\t- deep child\n"
        "\t- second child\n"
        "- Footer block\n"
        f"  id:: {FOOTER_UUID}\n"
    ),
    "pages/guides___setup.md": "- Install\n- Configure\n\t- Edit config\n",
    "pages/empty.md": "tags:: placeholder\n",
    "pages/unmatched.md": "- lost\n",
    "journals/2024_01_15.md": "- DONE shipped\n",
}


class FakeExporter:
    """
    Writes one HTML document per markdown page, named the way the real
    renderer names them.
    """

    def __init__(self, skip: Optional[List[str]] = None, titles: Optional[Dict[str, str]] = None,
                 tags: Optional[Dict[str, List[str]]] = None, error: Optional[Exception] = None):
        self.skip = set(skip or [])
        self.titles = titles or {}
        self.tags = tags or {}
        self.error = error
        self.calls = 0

    async def export(self, repo_path: str) -> Path:
        self.calls += 1
        if self.error is not None:
            raise self.error

        root = Path(repo_path)
        output_dir = root / "out"
        output_dir.mkdir(exist_ok=True)

        for directory in GRAPH_DIRECTORIES:
            for file_path in sorted((root / directory).glob("*.md")):
                page_name = page_name_from_path(file_path)
                if page_name in self.skip:
                    continue
                title = self.titles.get(page_name, page_name)
                meta = ""
                if page_name in self.tags:
                    meta = f'<meta name="tags" content="{", ".join(self.tags[page_name])}">'
                (output_dir / f"{normalize_page_name(page_name)}.html").write_text(
                    f"<html><head><title>{title}</title>{meta}"
                    f'<meta name="created" content="2024-01-01"></head>'
                    f"<body><p>{page_name}</p></body></html>",
                    encoding="utf-8",
                )

        return output_dir


def write_graph(root: Path, files: Dict[str, str]) -> Path:
    for relative, text in files.items():
        path = root / relative
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(text, encoding="utf-8")
    return root


@pytest.fixture
def logseq_graph(tmp_path):
    return write_graph(tmp_path / "graph", GRAPH_FILES)


@pytest.fixture
def make_graph(tmp_path):
    def make(files: Dict[str, str], name: str = "custom") -> Path:
        return write_graph(tmp_path / name, files)
    return make


@pytest.fixture
def fake_exporter():
    return FakeExporter


@pytest.fixture
def memory_db():
    db = DatabaseManager(":memory:")
    db.connect()
    db.initialize_database()
    yield db
    db.disconnect()
