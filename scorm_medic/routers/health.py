"""
Health Check Router

Provides health check endpoints for monitoring application status.
"""

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field
from typing import Optional
import time
import os
import sys
from datetime import datetime

from ..config import Settings, get_settings
from ..utils.feature_flags import feature_flags
from ..utils.validation import get_validation_status

# Initialize router
router = APIRouter()

# Application start time for uptime calculation
_start_time = time.time()


class HealthCheckResponse(BaseModel):
    """Health check response model"""
    status: str = Field(..., description="Service status")
    version: str = Field(..., description="Application version")
    environment: str = Field(..., description="Current environment")
    timestamp: datetime = Field(default_factory=datetime.utcnow, description="Check timestamp")
    uptime: Optional[float] = Field(None, description="Uptime in seconds")


@router.get("/health", response_model=HealthCheckResponse, summary="Basic Health Check")
async def health_check(settings: Settings = Depends(get_settings)):
    """
    Basic health check endpoint

    Returns application status, version, and environment information.
    """
    return HealthCheckResponse(
        status="healthy",
        version=settings.app_version,
        environment=settings.environment,
        timestamp=datetime.utcnow(),
        uptime=time.time() - _start_time
    )


@router.get("/health/detailed", summary="Detailed Health Check")
async def detailed_health_check(
    validation_status: dict = Depends(get_validation_status),
    settings: Settings = Depends(get_settings),
):
    """
    Detailed health check with dependency validation

    Checks the event schema, the instrumentation scripts and that every
    storage area is writable.
    """
    storage = {
        name: os.access(path, os.W_OK)
        for name, path in (
            ("uploads", settings.uploads_dir),
            ("player_sessions", settings.sessions_dir),
            ("repaired", settings.repaired_dir),
            ("updated", settings.updated_dir),
            ("event_logs", settings.event_logs_dir),
        )
    }

    is_healthy = (
        validation_status["schema_loaded"] and
        validation_status["scripts_available"] and
        all(storage.values())
    )

    return {
        "status": "healthy" if is_healthy else "degraded",
        "version": settings.app_version,
        "environment": settings.environment,
        "timestamp": datetime.utcnow().isoformat(),
        "uptime": time.time() - _start_time,
        "components": {
            "validation": validation_status,
            "storage": storage,
            "features": feature_flags.get_environment_info(),
        },
        "details": {
            "data_dir": str(settings.data_dir),
            "python_version": sys.version,
            "startup_time": datetime.fromtimestamp(_start_time).isoformat()
        }
    }


@router.get("/health/ready", summary="Readiness Check")
async def readiness_check(validation_status: dict = Depends(get_validation_status)):
    """
    Kubernetes-style readiness probe

    Returns 200 once the instrumentation scripts can be served, 503
    otherwise.
    """
    if not validation_status["scripts_available"]:
        raise HTTPException(
            status_code=503,
            detail="Application not ready: instrumentation scripts missing"
        )
    return {"status": "ready", "timestamp": datetime.utcnow().isoformat()}


@router.get("/health/live", summary="Liveness Check")
async def liveness_check():
    """Kubernetes-style liveness probe"""
    return {
        "status": "alive",
        "timestamp": datetime.utcnow().isoformat(),
        "pid": os.getpid()
    }
