"""
Manifest Analyzer

Reads a course package without extracting it and classifies whether it
can resume learner progress. Classification combines the manifest (SCO
resources) with a bounded substring scan over the package's scripts.
"""

import logging
import zipfile
from dataclasses import dataclass
from pathlib import Path, PurePosixPath
from typing import List, Optional, Sequence, Tuple

from ..models.manifest import ManifestDocument, parse_manifest
from ..models.reports import AnalysisMetadata, AnalysisReport
from .errors import (
    FilesystemFailure,
    MalformedManifest,
    MissingArchiveInput,
    MissingManifest,
    PackageError,
)

logger = logging.getLogger(__name__)

MANIFEST_NAME = "imsmanifest.xml"


@dataclass(frozen=True)
class ScanRule:
    """A script substring rule: any pattern hit records ``label``"""
    label: str
    patterns: Tuple[str, ...]
    implies_resume: bool

    def matches(self, content: str) -> bool:
        return any(pattern in content for pattern in self.patterns)


# Order is the reporting order of the labels.
SCAN_RULES: Tuple[ScanRule, ...] = (
    ScanRule("lesson_status", ("cmi.core.lesson_status", "cmi.completion_status"), False),
    ScanRule("suspend_data", ("cmi.suspend_data",), True),
    ScanRule("location", ("cmi.location", "cmi.core.lesson_location"), True),
    ScanRule("LMS_Initialize", ("API.LMSInitialize", "API_1484_11.Initialize"), False),
)


@dataclass
class ScriptScanResult:
    labels: List[str]
    implies_resume: bool
    scripts_scanned: int


def scan_scripts(contents: Sequence[str], rules: Sequence[ScanRule] = SCAN_RULES) -> ScriptScanResult:
    """
    Apply ``rules`` to every script body.

    Labels are deduplicated and returned in rule-table order, regardless of
    which script produced them.
    """
    hits = set()
    for content in contents:
        for rule in rules:
            if rule.label not in hits and rule.matches(content):
                hits.add(rule.label)
    labels = [rule.label for rule in rules if rule.label in hits]
    implies_resume = any(rule.implies_resume for rule in rules if rule.label in hits)
    return ScriptScanResult(labels, implies_resume, len(contents))


def find_manifest_member(names: Sequence[str]) -> Optional[str]:
    """Shallowest member named imsmanifest.xml (case-insensitive); ties keep archive order"""
    candidates = [
        name for name in names
        if not name.endswith("/") and PurePosixPath(name).name.lower() == MANIFEST_NAME
    ]
    if not candidates:
        return None
    return min(candidates, key=lambda name: name.strip("/").count("/"))


class ManifestAnalyzer:
    """Classifies the resume capability of course packages"""

    def __init__(self, script_scan_limit: int = 10, rules: Sequence[ScanRule] = SCAN_RULES):
        self.script_scan_limit = script_scan_limit
        self.rules = tuple(rules)

    def analyze(self, archive_path: Path) -> AnalysisReport:
        """
        Analyze one archive.

        Never raises for package problems: missing, corrupt or malformed
        inputs come back as ``success=False`` reports carrying ``errorType``.
        """
        archive_path = Path(archive_path)
        logger.info(f"Analyzing package: {archive_path.name}")
        try:
            return self._analyze(archive_path)
        except MalformedManifest as e:
            logger.warning("Malformed manifest in %s: %s", archive_path.name, e)
            return AnalysisReport.failure(str(e), e.error_type, has_manifest=True)
        except PackageError as e:
            logger.warning("Analysis failed for %s: %s", archive_path.name, e)
            return AnalysisReport.failure(str(e), e.error_type)

    def _analyze(self, archive_path: Path) -> AnalysisReport:
        if not archive_path.is_file():
            raise MissingArchiveInput(f"Archive not found: {archive_path}")

        try:
            with zipfile.ZipFile(archive_path) as zf:
                names = zf.namelist()
                manifest_name = find_manifest_member(names)
                if manifest_name is None:
                    raise MissingManifest(f"No {MANIFEST_NAME} found in the package")
                manifest_bytes = zf.read(manifest_name)
                script_names = [n for n in names if n.lower().endswith(".js")]
                scripts = [
                    zf.read(name).decode("utf-8", errors="replace")
                    for name in script_names[: self.script_scan_limit]
                ]
        except zipfile.BadZipFile as e:
            raise FilesystemFailure(f"Not a valid zip archive: {archive_path.name} ({e})") from e
        except (RuntimeError, NotImplementedError) as e:
            raise FilesystemFailure(f"Cannot read {archive_path.name}: {e}") from e
        except OSError as e:
            raise FilesystemFailure(f"Failed to read {archive_path.name}: {e}") from e

        manifest = parse_manifest(manifest_bytes)
        return self.classify(manifest, scan_scripts(scripts, self.rules))

    def classify(self, manifest: ManifestDocument, scan: ScriptScanResult) -> AnalysisReport:
        """Build the report for a parsed manifest and a script scan"""
        details: List[str] = []
        metadata = AnalysisMetadata()

        if manifest.metadata is not None:
            if manifest.metadata.schema_version:
                metadata.version = manifest.metadata.schema_version
                details.append(f"SCORM version: {metadata.version}")
            if manifest.metadata.title:
                metadata.title = manifest.metadata.title
                details.append(f"Course: {metadata.title}")

        if manifest.organizations:
            details.append(f"Found {len(manifest.organizations)} organization(s)")
            for org in manifest.organizations:
                for item in org.walk_items():
                    if item.identifierref:
                        details.append(f"SCO: {item.title or 'Untitled'}")

        sco_resources = manifest.sco_resources
        resume_capable = False
        if sco_resources:
            resume_capable = True
            details.append(f"Found {len(sco_resources)} SCO resource(s)")
            details.append("Package contains SCO resources (supports data persistence)")

        primary = manifest.primary_resource
        if primary is not None and primary.href:
            metadata.launchFile = primary.href

        if scan.labels:
            details.append(f"Found SCORM API calls: {', '.join(scan.labels)}")
        if scan.implies_resume:
            resume_capable = True

        if not resume_capable:
            details.append("No clear resume capability indicators found")
            details.append(
                "Package may still support resume if it persists progress at runtime"
            )

        return AnalysisReport(
            success=True,
            hasManifest=True,
            resumeCapable=resume_capable,
            details=details,
            metadata=metadata,
            scoCount=len(sco_resources),
            organizationCount=len(manifest.organizations),
            apiCalls=scan.labels,
        )
