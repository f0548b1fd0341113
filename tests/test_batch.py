"""Tests for folder-level analysis and repair"""

from pathlib import Path

import pytest

from scorm_medic.services.batch import (
    BatchOrchestrator,
    derived_names,
    list_archives,
    repaired_name,
    updated_name,
)
from scorm_medic.services.content_instrumenter import ContentInstrumenter
from scorm_medic.services.errors import MissingArchiveInput
from scorm_medic.services.manifest_analyzer import ManifestAnalyzer
from scorm_medic.services.package_repair import PackageRepairService
from scorm_medic.services.player_sessions import PlayerSessionStore

from conftest import ASSET_MANIFEST, SIMPLE_HTML, build_zip, scorm12_manifest


@pytest.fixture
def packages(temp_directory: Path) -> Path:
    folder = temp_directory / "packages"
    build_zip(folder / "a_course.zip", {
        "imsmanifest.xml": scorm12_manifest(),
        "index.html": SIMPLE_HTML,
    })
    build_zip(folder / "b_asset.zip", {
        "imsmanifest.xml": ASSET_MANIFEST,
        "index.html": SIMPLE_HTML,
    })
    (folder / "c_corrupt.zip").write_bytes(b"garbage")
    build_zip(folder / "a_course_repaired.zip", {"index.html": SIMPLE_HTML})
    build_zip(folder / "a_course_updated.zip", {"index.html": SIMPLE_HTML})
    (folder / "notes.txt").write_text("ignored")
    return folder


def make_orchestrator(root: Path, workers: int = 1, instrumented: bool = False) -> BatchOrchestrator:
    return BatchOrchestrator(
        analyzer=ManifestAnalyzer(),
        repair_service=PackageRepairService(),
        sessions=PlayerSessionStore(root / "sessions"),
        repaired_dir=root / "repaired",
        updated_dir=root / "updated",
        instrumenter=ContentInstrumenter() if instrumented else None,
        workers=workers,
    )


class TestListArchives:
    def test_skips_artifacts_and_other_files(self, packages: Path):
        names = [p.name for p in list_archives(packages)]
        assert names == ["a_course.zip", "b_asset.zip", "c_corrupt.zip"]

    def test_missing_folder(self, temp_directory: Path):
        with pytest.raises(MissingArchiveInput):
            list_archives(temp_directory / "nope")

    def test_not_a_directory(self, temp_directory: Path):
        path = temp_directory / "file.zip"
        path.write_bytes(b"x")
        with pytest.raises(MissingArchiveInput):
            list_archives(path)

    def test_no_archives(self, temp_directory: Path):
        with pytest.raises(MissingArchiveInput):
            list_archives(temp_directory)

    def test_derived_names(self):
        assert repaired_name("Course.ZIP") == "Course_repaired.zip"
        assert updated_name("dir/course.zip") == "course_updated.zip"

    def test_names_differing_only_in_case_get_suffixes(self):
        archives = [Path("x.ZIP"), Path("x.zip"), Path("x_2.zip")]

        names = derived_names(archives, repaired_name)

        assert names == {
            Path("x.ZIP"): "x_repaired.zip",
            Path("x.zip"): "x_2_repaired.zip",
            Path("x_2.zip"): "x_2_2_repaired.zip",
        }


class TestAnalyzeFolder:
    @pytest.mark.parametrize("workers", [1, 3])
    def test_summary_matches_entries(self, packages: Path, temp_directory: Path, workers):
        result = make_orchestrator(temp_directory, workers).analyze_folder(packages)

        assert [r.filename for r in result.results] == ["a_course.zip", "b_asset.zip", "c_corrupt.zip"]
        summary = result.summary
        assert summary.totalFiles == 3
        assert summary.successfullyAnalyzed == 2
        assert summary.resumeCapable == 1
        assert summary.failed == 1
        assert summary.successfullyAnalyzed + summary.failed == summary.totalFiles

    def test_corrupt_archive_is_one_failed_entry(self, packages: Path, temp_directory: Path):
        result = make_orchestrator(temp_directory).analyze_folder(packages)

        corrupt = result.results[2]
        assert corrupt.success is False
        assert corrupt.errorType == "FilesystemFailure"

    def test_instrumented_copies(self, packages: Path, temp_directory: Path):
        result = make_orchestrator(temp_directory, instrumented=True).analyze_folder(packages)

        assert result.results[0].updatedFile == "a_course_updated.zip"
        assert (temp_directory / "updated" / "a_course_updated.zip").is_file()
        assert result.results[2].updatedFile is None


class TestRepairFolder:
    def test_repairs_and_opens_sessions(self, packages: Path, temp_directory: Path):
        result = make_orchestrator(temp_directory).repair_folder(packages)

        summary = result.summary
        assert summary.totalFiles == 3
        assert summary.repaired == 2
        assert summary.playable == 2
        assert summary.failed == 1

        course = result.results[0]
        assert course.repairedFile == "a_course_repaired.zip"
        assert (temp_directory / "repaired" / "a_course_repaired.zip").is_file()
        assert course.playerUrl == f"/play/{course.sessionId}/index.html"
        assert (temp_directory / "sessions" / course.sessionId / "index.html").is_file()

    def test_failed_entry_has_no_session(self, packages: Path, temp_directory: Path):
        result = make_orchestrator(temp_directory).repair_folder(packages)

        corrupt = result.results[2]
        assert corrupt.success is False
        assert corrupt.sessionId is None
        assert not (temp_directory / "repaired" / "c_corrupt_repaired.zip").exists()

    def test_case_variant_names_do_not_overwrite(self, temp_directory: Path):
        folder = temp_directory / "variants"
        for name in ("x.zip", "x.ZIP"):
            build_zip(folder / name, {
                "imsmanifest.xml": scorm12_manifest(),
                "index.html": SIMPLE_HTML,
            })

        result = make_orchestrator(temp_directory).repair_folder(folder)

        outputs = [r.repairedFile for r in result.results]
        assert outputs == ["x_repaired.zip", "x_2_repaired.zip"]
        for name in outputs:
            assert (temp_directory / "repaired" / name).is_file()
