"""
Batch Orchestrator

Runs the analysis or the repair+session pipeline over every course package
in a folder. Each archive is processed in isolation: a failure becomes one
failed entry and never aborts the rest of the batch.
"""

import logging
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import Callable, Dict, List, Optional, Sequence, TypeVar

from ..models.reports import (
    AnalysisBatchResult,
    AnalysisEntry,
    RepairBatchResult,
    RepairEntry,
)
from .content_instrumenter import ContentInstrumenter
from .errors import MissingArchiveInput, error_type_of
from .manifest_analyzer import ManifestAnalyzer
from .package_repair import PackageRepairService
from .player_sessions import PlayerSessionStore

logger = logging.getLogger(__name__)

REPAIRED_SUFFIX = "_repaired.zip"
UPDATED_SUFFIX = "_updated.zip"
# Outputs of earlier runs that must not be processed again
ARTIFACT_SUFFIXES = (REPAIRED_SUFFIX, UPDATED_SUFFIX)

T = TypeVar("T")


def archive_stem(filename: str) -> str:
    name = Path(filename).name
    if name.lower().endswith(".zip"):
        name = name[:-4]
    return name or "scorm"


def repaired_name(filename: str) -> str:
    return f"{archive_stem(filename)}{REPAIRED_SUFFIX}"


def updated_name(filename: str) -> str:
    return f"{archive_stem(filename)}{UPDATED_SUFFIX}"


def derived_names(archives: Sequence[Path], namer: Callable[[str], str]) -> Dict[Path, str]:
    """
    Output filename for each archive of a batch. Names that would collide
    case-insensitively (``x.zip`` and ``x.ZIP``) get a numeric suffix, in
    listing order.
    """
    names: Dict[Path, str] = {}
    taken = set()
    for archive in archives:
        candidate = namer(archive.name)
        counter = 2
        while candidate.lower() in taken:
            candidate = namer(f"{archive_stem(archive.name)}_{counter}.zip")
            counter += 1
        taken.add(candidate.lower())
        names[archive] = candidate
    return names


def list_archives(folder: Path) -> List[Path]:
    """
    Course archives in ``folder`` in (sorted) listing order, skipping
    repair and instrumentation artifacts.

    Raises:
        MissingArchiveInput: the folder is missing, not a directory or holds
            no archives
    """
    folder = Path(folder)
    if not folder.exists():
        raise MissingArchiveInput(f"Folder does not exist: {folder}")
    if not folder.is_dir():
        raise MissingArchiveInput(f"Path is not a directory: {folder}")

    archives = [
        path for path in sorted(folder.iterdir(), key=lambda p: p.name)
        if path.is_file()
        and path.name.lower().endswith(".zip")
        and not path.name.lower().endswith(ARTIFACT_SUFFIXES)
    ]
    if not archives:
        raise MissingArchiveInput(f"No ZIP files found in {folder}")
    return archives


class BatchOrchestrator:
    """Fans the single-archive pipelines out over a folder"""

    def __init__(
        self,
        analyzer: ManifestAnalyzer,
        repair_service: PackageRepairService,
        sessions: PlayerSessionStore,
        repaired_dir: Path,
        updated_dir: Optional[Path] = None,
        instrumenter: Optional[ContentInstrumenter] = None,
        workers: int = 1,
    ):
        self.analyzer = analyzer
        self.repair_service = repair_service
        self.sessions = sessions
        self.repaired_dir = Path(repaired_dir)
        self.updated_dir = Path(updated_dir) if updated_dir else None
        self.instrumenter = instrumenter
        self.workers = max(1, workers)

    def _map(self, func: Callable[[Path], T], archives: Sequence[Path]) -> List[T]:
        # Results keep listing order in both modes.
        if self.workers == 1 or len(archives) < 2:
            return [func(path) for path in archives]
        with ThreadPoolExecutor(max_workers=min(self.workers, len(archives))) as pool:
            return list(pool.map(func, archives))

    # ── Analysis ──────────────────────────────────────────────────────────
    def analyze_folder(self, folder: Path) -> AnalysisBatchResult:
        archives = list_archives(folder)
        logger.info(f"Analyzing {len(archives)} archive(s) in {folder}")
        names = derived_names(archives, updated_name)
        results = self._map(lambda path: self.analyze_entry(path, names[path]), archives)
        return AnalysisBatchResult(folderPath=str(folder), results=results)

    def analyze_entry(self, archive: Path, updated_file: Optional[str] = None) -> AnalysisEntry:
        try:
            report = self.analyzer.analyze(archive)
            entry = AnalysisEntry(
                **report.model_dump(),
                filename=archive.name,
                path=str(archive),
                size=archive.stat().st_size,
                updatedFile=self.build_instrumented_copy(archive, updated_file),
            )
        except Exception as e:
            logger.error("Analysis of %s failed: %s", archive.name, e, exc_info=True)
            entry = AnalysisEntry(
                success=False,
                error=str(e),
                errorType=error_type_of(e),
                filename=archive.name,
                path=str(archive),
            )
        return entry

    def build_instrumented_copy(self, archive: Path, output_name: Optional[str] = None) -> Optional[str]:
        """Best effort: a failure is logged and reported as no copy"""
        if self.instrumenter is None or self.updated_dir is None:
            return None
        output = self.updated_dir / (output_name or updated_name(archive.name))
        try:
            self.instrumenter.build_instrumented_archive(archive, output)
        except Exception as e:
            logger.warning("Failed to create instrumented copy of %s: %s", archive.name, e)
            return None
        return output.name

    # ── Repair ────────────────────────────────────────────────────────────
    def repair_folder(self, folder: Path) -> RepairBatchResult:
        archives = list_archives(folder)
        logger.info(f"Repairing {len(archives)} archive(s) in {folder}")
        names = derived_names(archives, repaired_name)
        results = self._map(lambda path: self.repair_entry(path, names[path]), archives)
        return RepairBatchResult(folderPath=str(folder), results=results)

    def repair_entry(self, archive: Path, output_name: Optional[str] = None) -> RepairEntry:
        try:
            return self.repair_file(archive, output_name)
        except Exception as e:
            logger.error("Repair of %s failed: %s", archive.name, e, exc_info=True)
            return RepairEntry(
                success=False,
                error=str(e),
                errorType=error_type_of(e),
                filename=archive.name,
                path=str(archive),
            )

    def repair_file(self, archive: Path, output_name: Optional[str] = None) -> RepairEntry:
        """
        Repair one archive into the repaired area and open a player session
        for it. Session creation errors propagate to the caller.
        """
        archive = Path(archive)
        output = self.repaired_dir / (output_name or repaired_name(archive.name))
        report = self.repair_service.repair(archive, output)
        entry = RepairEntry(**report.model_dump(), filename=archive.name, path=str(archive))
        if not report.success:
            return entry

        session = self.sessions.create(output, report.launchPath or report.launchFile)
        entry.sessionId = session.sessionId
        entry.playerUrl = session.playerUrl
        entry.repairedFile = output.name
        return entry
