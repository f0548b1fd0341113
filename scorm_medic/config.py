"""Runtime configuration read from the environment.

All storage used by the engine lives below ``SCORM_DATA_DIR`` (defaults to
the directory the service is started from). Each area is a plain directory
tree keyed by session id or by derived archive filename.
"""
from __future__ import annotations

import os
from dataclasses import dataclass, field
from functools import lru_cache
from pathlib import Path
from typing import List


def _int_env(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from None


@dataclass
class Settings:
    data_dir: Path
    max_upload_bytes: int = 200 * 1024 * 1024
    shim_url: str = "/scorm-api-shim.js"
    script_scan_limit: int = 10
    batch_workers: int = 1
    environment: str = "development"
    app_version: str = "1.0.0"
    cors_origins: List[str] = field(
        default_factory=lambda: ["http://localhost:3000"]
    )

    @property
    def uploads_dir(self) -> Path:
        return self.data_dir / "uploads"

    @property
    def sessions_dir(self) -> Path:
        return self.data_dir / "player_sessions"

    @property
    def repaired_dir(self) -> Path:
        return self.data_dir / "repaired"

    @property
    def updated_dir(self) -> Path:
        return self.data_dir / "updated"

    @property
    def event_logs_dir(self) -> Path:
        return self.data_dir / "event_logs"

    def ensure_directories(self) -> None:
        for directory in (
            self.uploads_dir,
            self.sessions_dir,
            self.repaired_dir,
            self.updated_dir,
            self.event_logs_dir,
        ):
            directory.mkdir(parents=True, exist_ok=True)

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            data_dir=Path(os.getenv("SCORM_DATA_DIR", ".")).resolve(),
            max_upload_bytes=_int_env("MAX_UPLOAD_MB", 200) * 1024 * 1024,
            shim_url=os.getenv("SCORM_SHIM_URL", "/scorm-api-shim.js"),
            script_scan_limit=_int_env("SCRIPT_SCAN_LIMIT", 10),
            batch_workers=max(1, _int_env("BATCH_WORKERS", 1)),
            environment=os.getenv("ENVIRONMENT", "development"),
            app_version=os.getenv("APP_VERSION", "1.0.0"),
            cors_origins=os.getenv(
                "CORS_ORIGINS", "http://localhost:3000,http://localhost:3001"
            ).split(","),
        )


@lru_cache()
def get_settings() -> Settings:
    """Process-wide settings, read once."""
    return Settings.from_env()
