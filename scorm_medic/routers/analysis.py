"""
Package Analysis Router

Upload-and-analyze and analyze-folder endpoints. Analysis failures are
returned as ``success: false`` payloads; only bad requests raise.
"""

from typing import Any, Dict

from fastapi import APIRouter, Depends, File, HTTPException, UploadFile
from fastapi.concurrency import run_in_threadpool
import logging

from ..config import Settings, get_settings
from ..dependencies import get_analyzer, get_instrumenter, get_orchestrator
from ..models.reports import AnalysisBatchResult, FolderRequest
from ..services.batch import BatchOrchestrator, updated_name
from ..services.content_instrumenter import ContentInstrumenter
from ..services.errors import MissingArchiveInput
from ..services.manifest_analyzer import ManifestAnalyzer
from ..utils.feature_flags import is_feature_enabled
from ..utils.uploads import save_upload

router = APIRouter()
logger = logging.getLogger(__name__)


@router.post("/upload", summary="Upload and Analyze a SCORM Package")
async def upload_and_analyze(
    scormFile: UploadFile = File(..., description="SCORM package (.zip)"),
    settings: Settings = Depends(get_settings),
    analyzer: ManifestAnalyzer = Depends(get_analyzer),
    instrumenter: ContentInstrumenter = Depends(get_instrumenter),
) -> Dict[str, Any]:
    """
    Classify the resume capability of an uploaded package.

    When the ``instrumented_copy`` feature is enabled an ``_updated.zip``
    with the API shim and event tracker inlined is built alongside; its
    filename is returned as ``updatedFile``.
    """
    upload_path = await save_upload(scormFile, settings.uploads_dir, settings.max_upload_bytes)
    try:
        analysis = await run_in_threadpool(analyzer.analyze, upload_path)

        updated_file = None
        if is_feature_enabled("instrumented_copy"):
            output = settings.updated_dir / updated_name(scormFile.filename)
            try:
                await run_in_threadpool(
                    instrumenter.build_instrumented_archive, upload_path, output
                )
                updated_file = output.name
            except Exception as e:
                logger.warning("Failed to create instrumented copy: %s", e)

        return {**analysis.model_dump(), "updatedFile": updated_file}
    finally:
        upload_path.unlink(missing_ok=True)


@router.post(
    "/analyze-folder",
    response_model=AnalysisBatchResult,
    summary="Analyze Every Package in a Folder",
)
async def analyze_folder(
    request: FolderRequest,
    orchestrator: BatchOrchestrator = Depends(get_orchestrator),
) -> AnalysisBatchResult:
    """Analyze each archive in the folder; per-archive failures become entries"""
    try:
        return await run_in_threadpool(orchestrator.analyze_folder, request.folderPath)
    except MissingArchiveInput as e:
        raise HTTPException(status_code=400, detail=str(e))
