"""
Tests for the external renderer adapter: output parsing, page matching
and running the renderer binary.
"""

import asyncio
import stat
import sys
import unittest
from pathlib import Path

import pytest

from graphpress.errors import MatchError, RenderError
from graphpress.models import RenderedPage
from graphpress.rendering import (
    LogseqExporter,
    RenderedPageIndex,
    find_binary,
    normalize_page_name,
    parse_rendered_output,
)
from graphpress.rendering.exporter import CONFIG_FILE, SCRIPT_FILE, TEMPLATE_FILE


def _rendered(name):
    return RenderedPage(name=name, normalized_name=normalize_page_name(name), title=name)


class TestNormalizePageName(unittest.TestCase):

    def test_folds_whitespace_and_hyphens(self):
        self.assertEqual(normalize_page_name("Changelog 07-09"), "changelog_07_09")
        self.assertEqual(normalize_page_name("a  -  b"), "a_b")

    def test_strips_special_characters(self):
        self.assertEqual(normalize_page_name('What? "Now"!'), "what_now")
        self.assertEqual(normalize_page_name("guides/setup"), "guidessetup")

    def test_url_decodes(self):
        self.assertEqual(normalize_page_name("My%20Page"), "my_page")

    def test_idempotent(self):
        once = normalize_page_name("Some Page - Draft")
        self.assertEqual(normalize_page_name(once), once)


class TestRenderedPageIndex(unittest.TestCase):

    def test_exact_match(self):
        index = RenderedPageIndex([_rendered("my_page"), _rendered("other")])

        self.assertEqual(index.match("My Page").name, "my_page")

    def test_fallback_single_candidate(self):
        index = RenderedPageIndex([_rendered("changelog0709")])

        self.assertEqual(index.match("Changelog 07-09").name, "changelog0709")

    def test_fallback_ambiguous_is_skipped(self):
        index = RenderedPageIndex([_rendered("changelog0709"), _rendered("changelog07_09x"),
                                   _rendered("changelog_0709")])
        with self.assertRaises(MatchError) as ctx:
            index.match("Changelog 07-09")

        self.assertIn("ambiguous", ctx.exception.reason)

    def test_no_fallback_without_separator(self):
        index = RenderedPageIndex([_rendered("other")])

        with self.assertRaises(MatchError):
            index.match("missing")

    def test_no_candidates(self):
        index = RenderedPageIndex([_rendered("other")])

        with self.assertRaises(MatchError) as ctx:
            index.match("Some Page")

        self.assertEqual(ctx.exception.page_name, "Some Page")


def test_parse_rendered_output(tmp_path):
    (tmp_path / "guides_setup.html").write_text(
        """<!DOCTYPE html>
<html><head>
<title>Setup Guide</title>
<meta name="created" content="2024-01-02">
<meta name="updated" content="2024-02-03">
<meta name="tags" content="howto, install">
</head>
<body><h1>Setup</h1><p>Steps</p></body></html>""",
        encoding="utf-8",
    )
    (tmp_path / "plain.html").write_text("<html><body><p>x</p></body></html>", encoding="utf-8")
    (tmp_path / "notes.txt").write_text("ignored", encoding="utf-8")

    pages = {page.name: page for page in parse_rendered_output(str(tmp_path))}

    assert set(pages) == {"guides_setup", "plain"}
    setup = pages["guides_setup"]
    assert setup.title == "Setup Guide"
    assert setup.tags == ["howto", "install"]
    assert setup.properties == {"created": "2024-01-02", "updated": "2024-02-03"}
    assert setup.html == "<h1>Setup</h1><p>Steps</p>"
    assert pages["plain"].title == "plain"


def test_parse_rendered_output_empty_dir(tmp_path):
    with pytest.raises(RenderError):
        parse_rendered_output(str(tmp_path))


def test_find_binary(tmp_path):
    tool = tmp_path / "my-renderer"
    tool.write_text("#!/bin/sh\n", encoding="utf-8")
    tool.chmod(tool.stat().st_mode | stat.S_IEXEC)

    assert find_binary(str(tool)) == str(tool)
    assert find_binary("my-renderer", [str(tmp_path)]) == str(tool)
    assert find_binary("definitely-not-installed-renderer", [str(tmp_path)]) is None


def _fake_renderer(directory: Path, body: str) -> str:
    script = directory / "fake-export"
    script.write_text("#!/bin/sh\n" + body, encoding="utf-8")
    script.chmod(script.stat().st_mode | stat.S_IEXEC)
    return str(script)


@pytest.fixture
def graph_dir(tmp_path):
    graph = tmp_path / "graph"
    (graph / "pages").mkdir(parents=True)
    (graph / "pages" / "home.md").write_text("- hello\n", encoding="utf-8")
    return graph


posix_only = pytest.mark.skipif(sys.platform == "win32", reason="fake renderer is a shell script")


@posix_only
def test_exporter_success(tmp_path, graph_dir):
    binary = _fake_renderer(tmp_path, f"""
test -f {CONFIG_FILE} || exit 3
mkdir -p out
echo '<html><head><title>Home</title></head><body><p>hi</p></body></html>' > out/home.html
""")
    exporter = LogseqExporter(binary=binary, timeout=10, output_dir_name="out")

    output_dir = asyncio.run(exporter.export(str(graph_dir)))

    assert output_dir == graph_dir / "out"
    assert (output_dir / "home.html").exists()
    assert (graph_dir / "journals").is_dir()
    for generated in (CONFIG_FILE, SCRIPT_FILE, TEMPLATE_FILE):
        assert not (graph_dir / generated).exists()


@posix_only
def test_exporter_nonzero_exit(tmp_path, graph_dir):
    binary = _fake_renderer(tmp_path, "echo 'cannot parse page' >&2\nexit 2\n")
    exporter = LogseqExporter(binary=binary, timeout=10, output_dir_name="out")

    with pytest.raises(RenderError) as excinfo:
        asyncio.run(exporter.export(str(graph_dir)))

    assert "status 2" in str(excinfo.value)
    assert "cannot parse page" in excinfo.value.diagnostics
    assert not (graph_dir / CONFIG_FILE).exists()


@posix_only
def test_exporter_error_on_stderr(tmp_path, graph_dir):
    binary = _fake_renderer(tmp_path, "mkdir -p out\ntouch out/a.html\necho 'Error: bad template' >&2\n")
    exporter = LogseqExporter(binary=binary, timeout=10, output_dir_name="out")

    with pytest.raises(RenderError) as excinfo:
        asyncio.run(exporter.export(str(graph_dir)))

    assert "bad template" in excinfo.value.diagnostics


@posix_only
def test_exporter_no_output(tmp_path, graph_dir):
    binary = _fake_renderer(tmp_path, "exit 0\n")
    exporter = LogseqExporter(binary=binary, timeout=10, output_dir_name="out")

    with pytest.raises(RenderError, match="No pages exported"):
        asyncio.run(exporter.export(str(graph_dir)))


@posix_only
def test_exporter_timeout(tmp_path, graph_dir):
    binary = _fake_renderer(tmp_path, "exec sleep 5\n")
    exporter = LogseqExporter(binary=binary, timeout=0.5, output_dir_name="out")

    with pytest.raises(RenderError, match="timed out"):
        asyncio.run(exporter.export(str(graph_dir)))


def test_exporter_missing_binary(graph_dir):
    exporter = LogseqExporter(binary="definitely-not-installed-renderer", timeout=10)

    with pytest.raises(RenderError, match="not found"):
        asyncio.run(exporter.export(str(graph_dir)))
