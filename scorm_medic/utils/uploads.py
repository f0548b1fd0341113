"""
Upload handling shared by the analysis and repair endpoints
"""

import logging
import uuid
from pathlib import Path

import aiofiles
from fastapi import HTTPException, UploadFile

from .validation import validate_archive_upload

logger = logging.getLogger(__name__)

CHUNK_SIZE = 1024 * 1024


async def save_upload(file: UploadFile, upload_dir: Path, max_bytes: int) -> Path:
    """
    Stream an uploaded package to ``upload_dir`` and validate it.

    The ceiling is enforced while streaming, so oversized uploads are never
    fully written. Rejected uploads are removed before the HTTPException is
    raised.
    """
    upload_dir.mkdir(parents=True, exist_ok=True)
    target = upload_dir / f"{uuid.uuid4().hex}.zip"
    size = 0
    head = b""

    try:
        async with aiofiles.open(target, "wb") as f:
            while True:
                chunk = await file.read(CHUNK_SIZE)
                if not chunk:
                    break
                if len(head) < 4:
                    head = (head + chunk)[:4]
                size += len(chunk)
                if size > max_bytes:
                    break
                await f.write(chunk)
    except OSError as e:
        target.unlink(missing_ok=True)
        logger.error(f"Failed to save upload {file.filename}: {e}")
        raise HTTPException(status_code=500, detail="Failed to save uploaded file")

    is_valid, error_msg = validate_archive_upload(file.filename, size, head, max_bytes)
    if not is_valid:
        target.unlink(missing_ok=True)
        logger.warning(f"Upload validation failed for {file.filename}: {error_msg}")
        status_code = 413 if size > max_bytes else 400
        raise HTTPException(status_code=status_code, detail=error_msg)

    logger.info(f"Saved upload {file.filename} ({size} bytes) as {target.name}")
    return target

