"""Tests for archive extraction, repacking and tree search"""

import zipfile
from pathlib import Path

import pytest

from scorm_medic.services.archive_io import (
    extract_archive,
    find_file,
    find_first_html,
    pack_directory,
    working_directory,
)
from scorm_medic.services.errors import FilesystemFailure, MissingArchiveInput

from conftest import build_zip, patch_zip_member


class TestExtractAndPack:
    def test_round_trip_keeps_relative_paths(self, temp_directory: Path):
        source = build_zip(temp_directory / "in.zip", {
            "imsmanifest.xml": "<manifest/>",
            "content/page.html": "<html></html>",
            "content/media/clip.txt": "clip",
        })
        work = temp_directory / "work"
        extract_archive(source, work)
        (work / "empty").mkdir()

        output = pack_directory(work, temp_directory / "out.zip")

        with zipfile.ZipFile(output) as zf:
            names = set(zf.namelist())
        assert names == {
            "imsmanifest.xml",
            "content/page.html",
            "content/media/clip.txt",
            "empty/",
        }

    def test_missing_archive(self, temp_directory: Path):
        with pytest.raises(MissingArchiveInput):
            extract_archive(temp_directory / "nope.zip", temp_directory / "work")

    def test_corrupt_archive(self, corrupt_archive: Path, temp_directory: Path):
        with pytest.raises(FilesystemFailure):
            extract_archive(corrupt_archive, temp_directory / "work")

    def test_encrypted_member(self, temp_directory: Path):
        source = build_zip(temp_directory / "locked.zip", {
            "imsmanifest.xml": "<manifest/>",
            "app.js": "var x = 1;",
        })
        patch_zip_member(source, "app.js", flag_bits=0x1)

        with pytest.raises(FilesystemFailure, match="locked.zip"):
            extract_archive(source, temp_directory / "work")

    def test_unsupported_compression_method(self, temp_directory: Path):
        source = build_zip(temp_directory / "deflate64.zip", {
            "imsmanifest.xml": "<manifest/>",
            "index.html": "<html></html>",
        })
        # 9 is Deflate64, which zipfile cannot decompress
        patch_zip_member(source, "index.html", method=9)

        with pytest.raises(FilesystemFailure):
            extract_archive(source, temp_directory / "work")

    def test_pack_leaves_no_partial_files(self, temp_directory: Path):
        work = temp_directory / "work"
        work.mkdir()
        (work / "a.txt").write_text("a")
        out_dir = temp_directory / "out"

        pack_directory(work, out_dir / "a.zip")

        assert [p.name for p in out_dir.iterdir()] == ["a.zip"]

    def test_working_directory_removed_on_error(self):
        with pytest.raises(RuntimeError):
            with working_directory("scorm_test_") as work_dir:
                (work_dir / "file.txt").write_text("x")
                raise RuntimeError("boom")
        assert not work_dir.exists()


class TestTreeSearch:
    def test_find_file_is_case_insensitive(self, temp_directory: Path):
        (temp_directory / "sub").mkdir()
        (temp_directory / "sub" / "IMSManifest.XML").write_text("<manifest/>")

        found = find_file(temp_directory, "imsmanifest.xml")

        assert found == temp_directory / "sub" / "IMSManifest.XML"

    def test_files_checked_before_subdirectories(self, temp_directory: Path):
        (temp_directory / "a").mkdir()
        (temp_directory / "a" / "index.html").write_text("deep")
        (temp_directory / "index.html").write_text("top")

        assert find_file(temp_directory, "index.html") == temp_directory / "index.html"

    def test_find_first_html_ignores_other_files(self, temp_directory: Path):
        (temp_directory / "readme.txt").write_text("x")
        (temp_directory / "pages").mkdir()
        (temp_directory / "pages" / "b.htm").write_text("b")
        (temp_directory / "pages" / "a.html").write_text("a")

        assert find_first_html(temp_directory) == temp_directory / "pages" / "a.html"

    def test_find_first_html_none(self, temp_directory: Path):
        (temp_directory / "readme.txt").write_text("x")
        assert find_first_html(temp_directory) is None
