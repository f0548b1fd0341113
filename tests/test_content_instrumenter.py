"""Tests for HTML instrumentation"""

from pathlib import Path

import pytest

from scorm_medic.services.content_instrumenter import (
    SHIM_MARKER,
    TRACKER_MARKER,
    ContentInstrumenter,
    Snippet,
    insert_into_head,
)

from conftest import SIMPLE_HTML, build_zip, read_zip


@pytest.fixture
def snippets():
    return [
        Snippet.inline_script("shim", "SHIM-MARK", "window.API = {};"),
        Snippet.inline_script("tracker", "TRACKER-MARK", "console.log('t');"),
    ]


class TestInsertIntoHead:
    def test_after_opening_head(self):
        html = '<html><HEAD lang="en"><title>x</title></HEAD></html>'
        result = insert_into_head(html, "<s/>")
        assert result == '<html><HEAD lang="en">\n<s/><title>x</title></HEAD></html>'

    def test_header_element_is_not_head(self):
        html = "<html><body><header>h</header></body></html>"
        assert insert_into_head(html, "<s/>") == "<s/>" + html

    def test_before_closing_head(self):
        html = "<title>x</title></head><body></body>"
        assert insert_into_head(html, "<s/>") == "<title>x</title><s/></head><body></body>"

    def test_prepend_without_head(self):
        assert insert_into_head("<p>hi</p>", "<s/>") == "<s/><p>hi</p>"


class TestInstrumentHtml:
    def test_injects_all_in_order(self, snippets):
        result, applied = ContentInstrumenter(snippets).instrument_html(SIMPLE_HTML)

        assert applied == ["shim", "tracker"]
        assert result.index("SHIM-MARK") < result.index("TRACKER-MARK")

    def test_idempotent(self, snippets):
        instrumenter = ContentInstrumenter(snippets)
        once, _ = instrumenter.instrument_html(SIMPLE_HTML)
        twice, applied = instrumenter.instrument_html(once)

        assert applied == []
        assert twice == once
        assert twice.count("SHIM-MARK") == 1
        assert twice.count("TRACKER-MARK") == 1

    def test_only_missing_snippet_added(self, snippets):
        html = "<html><head><script>/* SHIM-MARK */</script></head></html>"
        result, applied = ContentInstrumenter(snippets).instrument_html(html)

        assert applied == ["tracker"]
        assert result.count("SHIM-MARK") == 1

    def test_default_snippets_use_bundled_scripts(self):
        result, applied = ContentInstrumenter().instrument_html(SIMPLE_HTML)

        assert applied == ["shim", "tracker"]
        assert f"/* === {SHIM_MARKER} === */" in result
        assert f"/* === {TRACKER_MARKER} === */" in result
        assert "API_1484_11" in result


class TestInstrumentTree:
    def test_counts_and_leaves_other_files(self, snippets, temp_directory: Path):
        (temp_directory / "a.html").write_text(SIMPLE_HTML)
        (temp_directory / "sub").mkdir()
        (temp_directory / "sub" / "b.htm").write_text(SIMPLE_HTML)
        (temp_directory / "style.css").write_text("body {}")

        result = ContentInstrumenter(snippets).instrument_tree(temp_directory)

        assert result.filesScanned == 2
        assert result.filesModified == 2
        assert result.injections == {"shim": 2, "tracker": 2}
        assert (temp_directory / "style.css").read_text() == "body {}"

    def test_non_utf8_bytes_preserved(self, snippets, temp_directory: Path):
        page = temp_directory / "latin.html"
        page.write_bytes(b"<html><head></head><body>caf\xe9</body></html>")

        ContentInstrumenter(snippets).instrument_tree(temp_directory)

        data = page.read_bytes()
        assert b"caf\xe9" in data
        assert b"SHIM-MARK" in data

    def test_build_instrumented_archive(self, temp_directory: Path):
        source = build_zip(temp_directory / "course.zip", {
            "index.html": SIMPLE_HTML,
            "data.json": "{}",
        })
        output = temp_directory / "course_updated.zip"

        ContentInstrumenter().build_instrumented_archive(source, output)

        members = read_zip(output)
        assert SHIM_MARKER.encode() in members["index.html"]
        assert members["data.json"] == b"{}"
        assert SHIM_MARKER.encode() not in read_zip(source)["index.html"]
