"""Health check and version endpoints."""

import time
from datetime import datetime, timezone
from pathlib import Path

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from scroll_video.config import get_settings
from scroll_video.schemas.render import HealthResponse, VersionResponse

router = APIRouter()

_started_at = time.monotonic()


@router.get("/health", response_model=HealthResponse, responses={503: {"description": "Unhealthy"}})
async def health_check(request: Request):
    """Report whether the working directories and the default frame are in place."""
    settings = get_settings()
    now = datetime.now(timezone.utc)

    missing = [
        path
        for path in (settings.tmp_root, settings.uploads_dir, settings.resolved_default_frame_path)
        if not Path(path).exists()
    ]
    if missing:
        return JSONResponse(
            status_code=503,
            content={
                "status": "unhealthy",
                "error": f"Missing: {', '.join(missing)}",
                "timestamp": now.isoformat(),
            },
        )

    return HealthResponse(
        status="healthy",
        version=settings.app_version,
        timestamp=now,
        uptime_s=round(time.monotonic() - _started_at, 3),
        active_jobs=request.app.state.supervisor.active_jobs,
    )


@router.get("/api/version", response_model=VersionResponse)
async def get_version() -> VersionResponse:
    """Return the backend version info."""
    return VersionResponse(version=get_settings().app_version)
