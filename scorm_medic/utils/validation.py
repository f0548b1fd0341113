"""
Input validation utilities

Checks uploaded archives before they reach the engine and validates the
events posted back by the injected event tracker.
"""

from typing import Any, Dict, List, Optional, Tuple
from pathlib import Path
from jsonschema import Draft7Validator, SchemaError
import logging

logger = logging.getLogger(__name__)

# Local file header, empty archive, spanned archive
ZIP_SIGNATURES = (b"PK\x03\x04", b"PK\x05\x06", b"PK\x07\x08")

TRACKER_EVENT_SCHEMA: Dict[str, Any] = {
    "$schema": "http://json-schema.org/draft-07/schema#",
    "type": "object",
    "properties": {
        "type": {"type": "string"},
        "eventType": {"type": "string", "minLength": 1, "maxLength": 100},
        "sessionId": {"type": ["string", "null"], "maxLength": 128},
        "timestamp": {"type": "string"},
        "url": {"type": "string"},
        "detail": {"type": ["object", "null"]},
    },
    "required": ["eventType"],
}

_event_validator = Draft7Validator(TRACKER_EVENT_SCHEMA)


class ValidationError:
    """Validation error structure"""
    def __init__(self, field: str, message: str):
        self.field = field
        self.message = message

    def to_dict(self) -> Dict[str, str]:
        return {"field": self.field, "message": self.message}


def validate_tracker_event(event: Any) -> List[ValidationError]:
    """
    Validate an event posted by the event tracker

    Args:
        event: Decoded JSON body

    Returns:
        List of validation errors, empty when the event is acceptable
    """
    errors = []
    for error in sorted(_event_validator.iter_errors(event), key=lambda e: list(e.path)):
        field_path = ".".join(str(x) for x in error.absolute_path) if error.absolute_path else "event"
        errors.append(ValidationError(field_path, error.message))
    return errors


def validate_archive_upload(
    filename: Optional[str], size: int, head: bytes, max_bytes: int
) -> Tuple[bool, str]:
    """
    Validate an uploaded course package.

    Args:
        filename: Client-supplied filename
        size: Number of bytes received
        head: First bytes of the upload
        max_bytes: Upload ceiling

    Returns:
        Tuple of (is_valid, error_message)
    """
    if not filename:
        return False, "Filename is required"

    if Path(filename).suffix.lower() != ".zip":
        return False, "Only .zip packages are supported"

    if size == 0:
        return False, "Empty files are not allowed"

    if size > max_bytes:
        return (
            False,
            f"File size ({size} bytes) exceeds maximum "
            f"allowed size ({max_bytes} bytes)"
        )

    if not head.startswith(ZIP_SIGNATURES):
        logger.warning(f"Upload {filename} does not start with a zip signature")
        return False, "File content is not a zip archive"

    return True, ""


async def get_validation_status() -> Dict[str, Any]:
    """
    FastAPI dependency reporting whether validation and the injected
    scripts are usable

    Returns:
        Dictionary containing validation system status
    """
    from ..services.content_instrumenter import STATIC_DIR, SHIM_SCRIPT, TRACKER_SCRIPT

    try:
        Draft7Validator.check_schema(TRACKER_EVENT_SCHEMA)
        schema_ok = True
    except SchemaError as e:
        logger.error(f"Tracker event schema invalid: {e}")
        schema_ok = False

    scripts = {
        name: (STATIC_DIR / name).is_file()
        for name in (SHIM_SCRIPT, TRACKER_SCRIPT)
    }
    return {
        "validation_system": "operational" if schema_ok else "error",
        "schema_loaded": schema_ok,
        "scripts_available": all(scripts.values()),
        "scripts": scripts,
    }
