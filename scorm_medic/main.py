"""Main FastAPI application entry point.

Exposes the package analysis / repair engine, serves player sessions and
the instrumentation scripts injected into repaired content.
"""

from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
import logging
from datetime import datetime

from .config import get_settings
from .routers import analysis, health, player, repair

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)

settings = get_settings()
settings.ensure_directories()

# Application metadata
APP_NAME = "SCORM Medic API"
DESCRIPTION = """
SCORM package analysis and repair

## Features

* **Analysis**: Classify whether a package can resume learner progress
* **Repair**: Fix broken manifests and launch files, inject the SCORM API shim
* **Player sessions**: Serve repaired packages for interactive playback
* **Batch**: Analyze or repair every package in a folder
"""

app = FastAPI(
    title=APP_NAME,
    description=DESCRIPTION,
    version=settings.app_version,
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json"
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "DELETE", "OPTIONS"],
    allow_headers=["*"],
)


@app.exception_handler(HTTPException)
async def http_exception_handler(request, exc):
    """Handle HTTP exceptions with consistent error format"""
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "success": False,
            "error": exc.detail,
            "timestamp": datetime.utcnow().isoformat(),
            "path": str(request.url)
        }
    )


@app.exception_handler(Exception)
async def general_exception_handler(request, exc):
    """Handle general exceptions"""
    logger.error(f"Unhandled exception: {exc}", exc_info=True)
    return JSONResponse(
        status_code=500,
        content={
            "success": False,
            "error": "Internal server error",
            "timestamp": datetime.utcnow().isoformat(),
            "path": str(request.url)
        }
    )

# Include routers
app.include_router(health.router, prefix="/api/v1", tags=["Health"])
app.include_router(analysis.router, prefix="/api/v1", tags=["Analysis"])
app.include_router(repair.router, prefix="/api/v1", tags=["Repair"])
# Unprefixed: repaired launch pages reference the shim and the tracker posts
# events at the site root.
app.include_router(player.router, tags=["Player"])

app.mount("/play", StaticFiles(directory=settings.sessions_dir), name="play")


@app.get("/", tags=["Root"])
async def root():
    """Root endpoint with API information"""
    return {
        "name": APP_NAME,
        "version": settings.app_version,
        "status": "running",
        "environment": settings.environment,
        "timestamp": datetime.utcnow().isoformat(),
        "docs": "/docs",
        "health": "/api/v1/health"
    }


@app.on_event("startup")
async def startup_event():
    """Application startup tasks"""
    logger.info(f"Starting {APP_NAME} v{settings.app_version}")
    logger.info(f"Environment: {settings.environment}")
    logger.info(f"Data directory: {settings.data_dir}")


@app.on_event("shutdown")
async def shutdown_event():
    """Application shutdown tasks"""
    logger.info(f"Shutting down {APP_NAME}")

if __name__ == "__main__":
    import os
    import uvicorn

    uvicorn.run(
        "scorm_medic.main:app",
        host=os.getenv("HOST", "0.0.0.0"),
        port=int(os.getenv("PORT", 3000)),
        reload=True,
        log_level="info"
    )
