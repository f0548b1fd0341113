"""
Event Log Store

Appends events reported by the injected event tracker to one
newline-delimited JSON file per player session.
"""

import json
import logging
import re
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List

from ..utils.validation import validate_tracker_event

logger = logging.getLogger(__name__)

_UNSAFE = re.compile(r"[^A-Za-z0-9_-]")


class InvalidEvent(ValueError):
    def __init__(self, errors: List[Dict[str, str]]):
        super().__init__("; ".join(f"{e['field']}: {e['message']}" for e in errors))
        self.errors = errors


class EventLogStore:
    """One ``<sessionId>.ndjson`` file per session below ``root``"""

    def __init__(self, root: Path):
        self.root = Path(root)

    @staticmethod
    def log_name(session_id: Any) -> str:
        cleaned = _UNSAFE.sub("", str(session_id or ""))[:128]
        return cleaned or "unknown"

    def log_path(self, session_id: Any) -> Path:
        return self.root / f"{self.log_name(session_id)}.ndjson"

    def append(self, event: Dict[str, Any]) -> Path:
        """Validate ``event`` and append it with a server timestamp"""
        errors = validate_tracker_event(event)
        if errors:
            raise InvalidEvent([e.to_dict() for e in errors])

        record = {**event, "serverTimestamp": datetime.utcnow().isoformat()}
        path = self.log_path(event.get("sessionId"))
        self.root.mkdir(parents=True, exist_ok=True)
        with open(path, "a", encoding="utf-8") as f:
            f.write(json.dumps(record) + "\n")
        return path

    def read(self, session_id: Any) -> List[Dict[str, Any]]:
        path = self.log_path(session_id)
        if not path.exists():
            return []
        with open(path, "r", encoding="utf-8") as f:
            return [json.loads(line) for line in f if line.strip()]
