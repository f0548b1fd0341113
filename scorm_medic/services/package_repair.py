"""
Package Repair Service

Turns a possibly broken SCORM package into a playable one. Repairs run as
an ordered sequence of idempotent steps over an extracted working copy;
every step that changes something appends one entry to the repair log.

Step order:
    1. manifest presence          5. primary resource / launch file
    2. manifest well-formedness   6. API shim injection into the launch page
    3. adlcp namespace            7. manifest serialization
    4. metadata / schema          8. repack
"""

import logging
import zipfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional
from urllib.parse import unquote, urlsplit

from ..models.manifest import (
    ADLCP_NAMESPACE,
    DEFAULT_SCHEMA,
    DEFAULT_SCHEMA_VERSION,
    ManifestDocument,
    ManifestMetadata,
    build_manifest,
    default_organization,
    default_resource,
    parse_manifest,
)
from ..models.reports import RepairReport
from .archive_io import (
    extract_archive,
    find_file,
    find_first_html,
    is_html,
    pack_directory,
    relative_posix,
    working_directory,
)
from .content_instrumenter import Snippet, read_markup, write_markup, ContentInstrumenter
from .errors import MissingArchiveInput, PackageError, UnresolvableLaunchFile, error_type_of

logger = logging.getLogger(__name__)

MANIFEST_NAME = "imsmanifest.xml"
FALLBACK_LAUNCH_FILE = "index.html"

# Authoring-tool launch pages first, then generic names.
LAUNCH_CANDIDATES = (
    "index_lms.html", "index_lms.htm",
    "story.html", "story.htm",
    "index.html", "index.htm",
    "launch.html", "launch.htm",
    "default.html", "default.htm",
)


def find_launch_file(root: Path) -> Optional[Path]:
    """Highest-priority candidate name anywhere in the tree, else the first HTML file"""
    for candidate in LAUNCH_CANDIDATES:
        found = find_file(root, candidate)
        if found is not None:
            return found
    return find_first_html(root)


def scorm_type_attribute(manifest: ManifestDocument) -> str:
    """Clark name of the SCO flag under the document's adlcp binding"""
    uri = manifest.namespaces.get("adlcp", ADLCP_NAMESPACE)
    local = "scormType" if "v1p3" in uri else "scormtype"
    return f"{{{uri}}}{local}"


def href_target(manifest_dir: Path, href: str) -> Path:
    """Filesystem path an href points at (query and fragment ignored)"""
    return manifest_dir / unquote(urlsplit(href).path)


@dataclass
class RepairContext:
    """Mutable state threaded through the repair steps of one package"""
    work_dir: Path
    manifest_path: Optional[Path] = None
    manifest: Optional[ManifestDocument] = None
    raw_manifest: Optional[bytes] = None
    launch_file: Optional[str] = None
    repairs: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)

    @property
    def manifest_dir(self) -> Path:
        return self.manifest_path.parent

    @property
    def launch_path(self) -> Optional[str]:
        """Launch file relative to the package root"""
        if not self.launch_file:
            return None
        return relative_posix(href_target(self.manifest_dir, self.launch_file), self.work_dir)

    def resolve_href(self, href: str) -> Optional[Path]:
        """Existing file an href names, provided it lies inside the package"""
        root = self.work_dir.resolve()
        target = href_target(self.manifest_dir, href).resolve()
        if root not in target.parents or not target.is_file():
            return None
        return target

    def record(self, message: str) -> None:
        logger.info("Repair: %s", message)
        self.repairs.append(message)

    def locate_launch(self) -> Optional[str]:
        """Launch candidate relative to the manifest directory"""
        found = find_launch_file(self.work_dir)
        if found is None:
            return None
        return relative_posix(found, self.manifest_dir)


class PackageRepairService:
    """Repairs SCORM packages into guaranteed-loadable archives"""

    def __init__(self, shim_url: str = "/scorm-api-shim.js"):
        self.shim_url = shim_url
        self.shim_reference = Snippet.script_reference(shim_url)
        self._launch_instrumenter = ContentInstrumenter([self.shim_reference])

    def repair(self, archive_path: Path, output_path: Path) -> RepairReport:
        """
        Repair ``archive_path`` into a new archive at ``output_path``.

        Package and filesystem errors abort the repair and are returned as a
        failed report; nothing is left at ``output_path`` in that case. The
        working directory is removed on every path.
        """
        archive_path = Path(archive_path)
        output_path = Path(output_path)
        logger.info(f"Repairing package: {archive_path.name}")

        repairs: List[str] = []
        try:
            if not archive_path.is_file():
                raise MissingArchiveInput(f"Archive not found: {archive_path}")

            with working_directory("scorm_repair_") as work_dir:
                ctx = RepairContext(work_dir=work_dir, repairs=repairs)
                extract_archive(archive_path, work_dir)

                self._ensure_manifest(ctx)
                self._ensure_well_formed(ctx)
                self._ensure_namespace(ctx)
                self._ensure_metadata(ctx)
                self._ensure_resources(ctx)
                self._inject_shim(ctx)
                self._write_manifest(ctx)
                pack_directory(work_dir, output_path)

                report = RepairReport(
                    success=True,
                    repairs=repairs,
                    warnings=ctx.warnings,
                    launchFile=ctx.launch_file,
                    launchPath=ctx.launch_path,
                    outputPath=str(output_path),
                )

        except (PackageError, OSError, zipfile.BadZipFile) as e:
            logger.error("Repair of %s failed: %s", archive_path.name, e)
            return RepairReport.failure(str(e), error_type_of(e), repairs)

        logger.info(
            "Repaired %s with %d fix(es) -> %s",
            archive_path.name, len(repairs), output_path.name,
        )
        return report

    # ── Step 1 ────────────────────────────────────────────────────────────
    def _ensure_manifest(self, ctx: RepairContext) -> None:
        found = find_file(ctx.work_dir, MANIFEST_NAME)
        if found is not None:
            ctx.manifest_path = found
            ctx.raw_manifest = found.read_bytes()
            return

        ctx.manifest_path = ctx.work_dir / MANIFEST_NAME
        ctx.manifest = self._minimal_manifest(ctx)
        ctx.manifest_path.write_text(build_manifest(ctx.manifest), encoding="utf-8")
        ctx.record("Created missing imsmanifest.xml")

    # ── Step 2 ────────────────────────────────────────────────────────────
    def _ensure_well_formed(self, ctx: RepairContext) -> None:
        if ctx.manifest is not None:
            return
        try:
            ctx.manifest = parse_manifest(ctx.raw_manifest)
        except PackageError as e:
            logger.warning("Discarding broken manifest: %s", e)
            ctx.manifest = self._minimal_manifest(ctx)
            ctx.record("Rebuilt corrupt imsmanifest.xml")

    def _minimal_manifest(self, ctx: RepairContext) -> ManifestDocument:
        launch = ctx.locate_launch()
        if launch is None:
            self._unresolvable(ctx)
            launch = FALLBACK_LAUNCH_FILE
        return ManifestDocument.minimal(launch)

    # ── Step 3 ────────────────────────────────────────────────────────────
    def _ensure_namespace(self, ctx: RepairContext) -> None:
        # Any binding of the prefix counts; SCORM 2004 packages bind it to
        # the v1p3 namespace.
        manifest = ctx.manifest
        if "adlcp" in manifest.namespaces:
            return
        # A prefix the document used undeclared keeps the uri it was parsed with
        manifest.namespaces["adlcp"] = manifest.undeclared_namespaces.get("adlcp", ADLCP_NAMESPACE)
        ctx.record("Added missing adlcp namespace")

    # ── Step 4 ────────────────────────────────────────────────────────────
    def _ensure_metadata(self, ctx: RepairContext) -> None:
        manifest = ctx.manifest
        if manifest.metadata is None:
            manifest.metadata = ManifestMetadata(
                schema=DEFAULT_SCHEMA, schema_version=DEFAULT_SCHEMA_VERSION
            )
            ctx.record("Added missing metadata/schema block")
            return

        metadata = manifest.metadata
        if not metadata.schema or not metadata.schema_version:
            metadata.schema = metadata.schema or DEFAULT_SCHEMA
            metadata.schema_version = metadata.schema_version or DEFAULT_SCHEMA_VERSION
            ctx.record("Completed metadata schema/schemaversion")

    # ── Step 5 ────────────────────────────────────────────────────────────
    def _ensure_resources(self, ctx: RepairContext) -> None:
        manifest = ctx.manifest
        primary = manifest.primary_resource

        if primary is None:
            href = ctx.locate_launch()
            if href is None:
                self._unresolvable(ctx)
                href = FALLBACK_LAUNCH_FILE
            else:
                ctx.launch_file = href
            if manifest.resources is None:
                manifest.resources = []
            resource = default_resource(href)
            resource.scorm_type_attr = scorm_type_attribute(manifest)
            manifest.resources.append(resource)
            ctx.record(f"Created missing resources block (launch: {href})")
            if not manifest.organizations:
                manifest.organizations.append(default_organization())
                manifest.default_organization = manifest.default_organization or "org_1"
                ctx.record("Created missing organization")
            return

        if not primary.scorm_type:
            primary.scorm_type = "sco"
            primary.scorm_type_attr = scorm_type_attribute(manifest)
            ctx.record('Set adlcp:scormtype="sco" on primary resource')

        if primary.href and ctx.resolve_href(primary.href) is not None:
            ctx.launch_file = primary.href
            return

        found = ctx.locate_launch()
        if found is None:
            self._unresolvable(ctx)
            return
        if primary.href:
            ctx.record(f"Fixed broken launch file → {found}")
        else:
            ctx.record(f"Set missing launch file → {found}")
        primary.href = found
        ctx.launch_file = found

    def _unresolvable(self, ctx: RepairContext) -> None:
        error = UnresolvableLaunchFile("No HTML launch file exists anywhere in the package")
        if str(error) not in ctx.warnings:
            logger.warning("%s; continuing without a confirmed launch file", error)
            ctx.warnings.append(str(error))

    # ── Step 6 ────────────────────────────────────────────────────────────
    def _inject_shim(self, ctx: RepairContext) -> None:
        if not ctx.launch_file:
            return
        launch_path = ctx.resolve_href(ctx.launch_file)
        if launch_path is None or not is_html(launch_path):
            return
        html = read_markup(launch_path)
        updated, applied = self._launch_instrumenter.instrument_html(html)
        if applied:
            write_markup(launch_path, updated)
            ctx.record("Injected SCORM API shim into launch HTML")

    # ── Step 7 ────────────────────────────────────────────────────────────
    def _write_manifest(self, ctx: RepairContext) -> None:
        ctx.manifest_path.write_text(build_manifest(ctx.manifest), encoding="utf-8")
