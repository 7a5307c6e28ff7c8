"""Render API endpoint - scrolling page animation inside a frame."""

import asyncio
import logging
from pathlib import Path

from fastapi import APIRouter, File, Form, Request, UploadFile
from fastapi.responses import FileResponse, JSONResponse, Response
from starlette.background import BackgroundTask
from starlette.types import Receive, Scope, Send

from scroll_video.config import get_settings
from scroll_video.exceptions import InternalError, JobCancelled, ScrollVideoError, ValidationError
from scroll_video.render.pipeline import ScrollRenderPipeline
from scroll_video.schemas.render import ErrorResponse, RenderParams
from scroll_video.services.job_guard import JobGuard
from scroll_video.services.job_lifecycle import Job, JobState, UploadedFile
from scroll_video.services.job_supervisor import JobSupervisor
from scroll_video.services.upload_service import UploadService

router = APIRouter()
logger = logging.getLogger(__name__)

# nginx's "client closed request"; nobody is left to read it
CANCELLED_STATUS_CODE = 499


class JobFileResponse(FileResponse):
    """FileResponse that releases its job however streaming ends."""

    def __init__(self, path: str | Path, guard: JobGuard, **kwargs):
        super().__init__(path, background=BackgroundTask(guard.deliver), **kwargs)
        self.guard = guard

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        try:
            await super().__call__(scope, receive, send)
        except BaseException:
            logger.warning("Delivery of %s did not complete", self.guard.job.id)
            self.guard.cancel("delivery-aborted")
            self.guard.release()
            raise


def get_supervisor(request: Request) -> JobSupervisor:
    return request.app.state.supervisor


@router.post(
    "/render",
    response_class=FileResponse,
    responses={
        200: {"content": {"video/mp4": {}}, "description": "Scrolling animation video"},
        400: {"model": ErrorResponse},
        413: {"model": ErrorResponse},
        500: {"model": ErrorResponse},
    },
)
async def render(
    request: Request,
    page: UploadFile | None = File(None),
    frame: UploadFile | None = File(None),
    duration: str | None = Form(None),
    fps: str | None = Form(None),
) -> Response:
    """
    Create a scrolling animation video.

    Detects the transparent cutout of the frame (or the built-in frame when
    none is uploaded), fits the page to it, renders every animation frame
    and encodes them to MP4. All temporary files are removed once the
    response is sent, the job fails, or it is cancelled.
    """
    settings = get_settings()
    supervisor = get_supervisor(request)

    if page is None:
        raise ValidationError("Please upload a page (long screenshot).")

    uploads = UploadService(settings.uploads_dir, settings.max_upload_size_mb)
    saved: list[UploadedFile] = []
    try:
        if frame is not None:
            saved.append(await uploads.save(frame, "frame"))
        saved.append(await uploads.save(page, "page"))
    except BaseException:
        uploads.discard(saved)
        raise

    job = Job.create(settings.tmp_root, saved)
    supervisor.register(job)

    files = {item.field: item.path for item in saved}
    frame_path = files.get("frame")
    if frame_path is None:
        frame_path = Path(settings.resolved_default_frame_path)
        logger.info("No frame provided, using default %s", frame_path)
    params = RenderParams.from_form(duration, fps, settings)

    guard = JobGuard(
        job,
        supervisor,
        timeout_s=settings.job_timeout_s,
        poll_interval_s=settings.disconnect_poll_interval_s,
    )
    guard.arm(request)
    pipeline = ScrollRenderPipeline(job, settings)

    try:
        result = await pipeline.run(frame_path, files["page"], params)
    except asyncio.CancelledError:
        guard.cancel("client-disconnect")
        guard.release()
        raise
    except Exception as exc:
        return _error_response(exc, guard)
    finally:
        guard.disarm()

    if job.state is JobState.CANCELLED:
        return _cancelled_response(guard)

    return JobFileResponse(
        result.output_path,
        guard,
        media_type="video/mp4",
        filename=f"scroll_{job.id}.mp4",
    )


def _cancelled_response(guard: JobGuard) -> Response:
    logger.info("No response for cancelled %s (%s)", guard.job.id, guard.job.end_reason)
    return Response(status_code=CANCELLED_STATUS_CODE, background=BackgroundTask(guard.release))


def _error_response(exc: Exception, guard: JobGuard) -> Response:
    """Turn a pipeline failure into exactly one response, or none if cancelled."""
    job = guard.job
    if isinstance(exc, JobCancelled) or job.state is JobState.CANCELLED:
        return _cancelled_response(guard)

    if isinstance(exc, ScrollVideoError):
        error = exc
        log = logger.warning if exc.status_code < 500 else logger.error
        log("Render error for %s: %s", job.id, exc.message)
    else:
        logger.exception("Render error for %s", job.id, exc_info=exc)
        error = InternalError(extra={"details": str(exc)})

    guard.fail("render-error")
    payload = error.to_payload()
    if error.status_code >= 500:
        payload["job_id"] = job.id
    return JSONResponse(
        status_code=error.status_code,
        content=payload,
        background=BackgroundTask(guard.release),
    )
