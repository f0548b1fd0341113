"""Service wiring shared by the routers.

Each getter builds its service once from the process settings; routers
receive them through ``Depends`` so tests can override them.
"""
from __future__ import annotations

from functools import lru_cache

from .config import get_settings
from .services.batch import BatchOrchestrator
from .services.content_instrumenter import ContentInstrumenter
from .services.event_log import EventLogStore
from .services.manifest_analyzer import ManifestAnalyzer
from .services.package_repair import PackageRepairService
from .services.player_sessions import PlayerSessionStore
from .utils.feature_flags import is_feature_enabled


@lru_cache()
def get_analyzer() -> ManifestAnalyzer:
    return ManifestAnalyzer(script_scan_limit=get_settings().script_scan_limit)


@lru_cache()
def get_repair_service() -> PackageRepairService:
    return PackageRepairService(shim_url=get_settings().shim_url)


@lru_cache()
def get_instrumenter() -> ContentInstrumenter:
    return ContentInstrumenter()


@lru_cache()
def get_session_store() -> PlayerSessionStore:
    return PlayerSessionStore(get_settings().sessions_dir)


@lru_cache()
def get_event_log() -> EventLogStore:
    return EventLogStore(get_settings().event_logs_dir)


def get_orchestrator() -> BatchOrchestrator:
    # Not cached: feature flags may change between requests in development.
    settings = get_settings()
    return BatchOrchestrator(
        analyzer=get_analyzer(),
        repair_service=get_repair_service(),
        sessions=get_session_store(),
        repaired_dir=settings.repaired_dir,
        updated_dir=settings.updated_dir,
        instrumenter=get_instrumenter() if is_feature_enabled("instrumented_copy") else None,
        workers=settings.batch_workers if is_feature_enabled("parallel_batch") else 1,
    )
