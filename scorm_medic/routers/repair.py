"""
Package Repair Router

Repairs uploaded or on-disk packages, opens player sessions for them and
serves the produced archives.
"""

from pathlib import Path
from typing import Any, Dict

from fastapi import APIRouter, Depends, File, HTTPException, UploadFile
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import FileResponse
import logging

from ..config import Settings, get_settings
from ..dependencies import get_orchestrator, get_repair_service, get_session_store
from ..models.reports import FileRequest, RepairBatchResult, FolderRequest
from ..services.batch import BatchOrchestrator, repaired_name
from ..services.errors import MissingArchiveInput, PackageError
from ..services.package_repair import PackageRepairService
from ..services.player_sessions import PlayerSessionStore
from ..utils.uploads import save_upload

router = APIRouter()
logger = logging.getLogger(__name__)


def _session_payload(report, session, repaired_file: str) -> Dict[str, Any]:
    return {
        "success": True,
        "sessionId": session.sessionId,
        "launchFile": report.launchFile or "index.html",
        "repairs": report.repairs,
        "warnings": report.warnings,
        "repairedFile": repaired_file,
        "playerUrl": session.playerUrl,
    }


@router.post("/repair", summary="Repair a Package and Open a Player Session")
async def repair_and_play(
    scormFile: UploadFile = File(..., description="SCORM package (.zip)"),
    settings: Settings = Depends(get_settings),
    repair_service: PackageRepairService = Depends(get_repair_service),
    sessions: PlayerSessionStore = Depends(get_session_store),
) -> Dict[str, Any]:
    """
    Repair an uploaded package, keep the repaired archive in the repaired
    area and extract it into a new player session.
    """
    upload_path = await save_upload(scormFile, settings.uploads_dir, settings.max_upload_bytes)
    output = settings.repaired_dir / repaired_name(scormFile.filename)
    try:
        report = await run_in_threadpool(repair_service.repair, upload_path, output)
    finally:
        upload_path.unlink(missing_ok=True)

    if not report.success:
        raise HTTPException(status_code=500, detail=report.error)

    try:
        session = await run_in_threadpool(
            sessions.create, output, report.launchPath or report.launchFile
        )
    except PackageError as e:
        logger.error("Player session creation failed: %s", e, exc_info=True)
        raise HTTPException(status_code=500, detail=str(e))

    return _session_payload(report, session, output.name)


@router.post("/repair-download", summary="Repair a Package and Download It")
async def repair_download(
    scormFile: UploadFile = File(..., description="SCORM package (.zip)"),
    settings: Settings = Depends(get_settings),
    repair_service: PackageRepairService = Depends(get_repair_service),
) -> FileResponse:
    upload_path = await save_upload(scormFile, settings.uploads_dir, settings.max_upload_bytes)
    output = settings.repaired_dir / repaired_name(scormFile.filename)
    try:
        report = await run_in_threadpool(repair_service.repair, upload_path, output)
    finally:
        upload_path.unlink(missing_ok=True)

    if not report.success:
        raise HTTPException(status_code=500, detail=report.error)

    return FileResponse(output, media_type="application/zip", filename=output.name)


@router.post(
    "/repair-folder",
    response_model=RepairBatchResult,
    summary="Repair Every Package in a Folder",
)
async def repair_folder(
    request: FolderRequest,
    orchestrator: BatchOrchestrator = Depends(get_orchestrator),
) -> RepairBatchResult:
    try:
        return await run_in_threadpool(orchestrator.repair_folder, request.folderPath)
    except MissingArchiveInput as e:
        raise HTTPException(status_code=400, detail=str(e))


@router.post("/repair-batch-file", summary="Repair One Package From a Batch")
async def repair_batch_file(
    request: FileRequest,
    orchestrator: BatchOrchestrator = Depends(get_orchestrator),
) -> Dict[str, Any]:
    """Repair a package already on disk (the per-card action of a batch analysis)"""
    file_path = Path(request.filePath)
    if not file_path.is_file():
        raise HTTPException(status_code=400, detail=f"File does not exist: {file_path}")
    if file_path.suffix.lower() != ".zip":
        raise HTTPException(status_code=400, detail="File must be a ZIP")

    try:
        entry = await run_in_threadpool(orchestrator.repair_file, file_path)
    except PackageError as e:
        raise HTTPException(status_code=500, detail=str(e))
    if not entry.success:
        raise HTTPException(status_code=500, detail=entry.error)
    return entry.model_dump()


def _artifact_response(directory: Path, filename: str) -> FileResponse:
    safe_name = Path(filename).name
    file_path = directory / safe_name
    if not safe_name or not file_path.is_file():
        raise HTTPException(status_code=404, detail="File not found")
    return FileResponse(file_path, media_type="application/zip", filename=safe_name)


@router.get("/download-repaired/{filename}", summary="Download a Repaired Package")
async def download_repaired(filename: str, settings: Settings = Depends(get_settings)) -> FileResponse:
    return _artifact_response(settings.repaired_dir, filename)


@router.get("/download-updated/{filename}", summary="Download an Instrumented Package")
async def download_updated(filename: str, settings: Settings = Depends(get_settings)) -> FileResponse:
    return _artifact_response(settings.updated_dir, filename)
