import logging
import time
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from scroll_video.api import health, render
from scroll_video.config import get_settings
from scroll_video.exceptions import ScrollVideoError
from scroll_video.render.default_frame import ensure_default_frame
from scroll_video.services.job_supervisor import JobSupervisor

settings = get_settings()
logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    # Startup
    current = get_settings()
    supervisor = JobSupervisor(current.tmp_root, current.uploads_dir)
    supervisor.ensure_dirs()
    supervisor.install()
    if not current.default_frame_path:
        ensure_default_frame(current.resolved_default_frame_path)
    app.state.supervisor = supervisor
    logger.info("%s %s ready, working under %s", current.app_name, current.app_version, current.tmp_root)
    yield
    # Shutdown
    supervisor.uninstall()


app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    lifespan=lifespan,
)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    start = time.perf_counter()
    response = await call_next(request)
    duration_ms = int((time.perf_counter() - start) * 1000)
    logger.info("%s %s - %d (%dms)", request.method, request.url.path, response.status_code, duration_ms)
    return response


@app.exception_handler(ScrollVideoError)
async def scroll_video_exception_handler(request: Request, exc: ScrollVideoError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content=exc.to_payload())


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Render FastAPI request validation errors in the ``{"error": ...}`` shape."""
    errors = exc.errors()
    if errors:
        first_error = errors[0]
        loc = " -> ".join(str(x) for x in first_error.get("loc", []))
        msg = first_error.get("msg", "Validation error")
        message = f"{loc}: {msg}" if loc else msg
    else:
        message = "Request validation failed"
    return JSONResponse(
        status_code=400,
        content={
            "error": message,
            "code": "VALIDATION_ERROR",
            "details": jsonable_encoder(errors),
        },
    )


# Global exception handler to ensure errors return proper JSON
@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception(f"Unhandled exception: {exc}")
    return JSONResponse(status_code=500, content={"error": "Internal server error", "code": "INTERNAL_ERROR"})


# Routers
app.include_router(render.router, tags=["render"])
app.include_router(health.router, tags=["health"])
