"""
Player Session Router

Session teardown, tracker event intake and the instrumentation scripts
referenced by repaired launch pages.
"""

from typing import Any, Dict

from fastapi import APIRouter, Body, Depends, HTTPException
from fastapi.responses import FileResponse
import logging

from ..dependencies import get_event_log, get_session_store
from ..services.content_instrumenter import SHIM_SCRIPT, STATIC_DIR, TRACKER_SCRIPT
from ..services.errors import InvalidSessionId
from ..services.event_log import EventLogStore, InvalidEvent
from ..services.player_sessions import PlayerSessionStore
from ..utils.feature_flags import requires_feature

router = APIRouter()
logger = logging.getLogger(__name__)


@router.get("/play-session/{session_id}", summary="Player Session Status")
async def session_status(
    session_id: str,
    sessions: PlayerSessionStore = Depends(get_session_store),
) -> Dict[str, Any]:
    try:
        exists = sessions.exists(session_id)
    except InvalidSessionId as e:
        raise HTTPException(status_code=400, detail=str(e))
    return {"sessionId": session_id, "exists": exists}


@router.delete("/play-session/{session_id}", summary="Delete a Player Session")
async def delete_session(
    session_id: str,
    sessions: PlayerSessionStore = Depends(get_session_store),
) -> Dict[str, Any]:
    """Remove a session directory; deleting an absent session succeeds"""
    try:
        removed = sessions.destroy(session_id)
    except InvalidSessionId as e:
        raise HTTPException(status_code=400, detail=str(e))
    except OSError as e:
        logger.error(f"Failed to delete session {session_id}: {e}")
        raise HTTPException(status_code=500, detail=str(e))
    return {"success": True, "removed": removed}


@router.post(
    "/log-event",
    summary="Record a Tracker Event",
    dependencies=[Depends(requires_feature("event_logging"))],
)
async def log_event(
    event: Dict[str, Any] = Body(...),
    event_log: EventLogStore = Depends(get_event_log),
) -> Dict[str, Any]:
    try:
        event_log.append(event)
    except InvalidEvent as e:
        raise HTTPException(status_code=400, detail=e.errors)
    except OSError as e:
        logger.error(f"Failed to append tracker event: {e}")
        raise HTTPException(status_code=500, detail=str(e))
    return {"success": True}


@router.get(
    "/log-event/{session_id}",
    summary="Read a Session's Tracker Events",
    dependencies=[Depends(requires_feature("event_logging"))],
)
async def read_events(
    session_id: str,
    event_log: EventLogStore = Depends(get_event_log),
) -> Dict[str, Any]:
    """Events recorded for a session, oldest first; unknown sessions have none"""
    events = event_log.read(session_id)
    return {"sessionId": event_log.log_name(session_id), "events": events}


@router.get(f"/{SHIM_SCRIPT}", include_in_schema=False)
async def shim_script() -> FileResponse:
    return FileResponse(STATIC_DIR / SHIM_SCRIPT, media_type="application/javascript")


@router.get(f"/{TRACKER_SCRIPT}", include_in_schema=False)
async def tracker_script() -> FileResponse:
    return FileResponse(STATIC_DIR / TRACKER_SCRIPT, media_type="application/javascript")
