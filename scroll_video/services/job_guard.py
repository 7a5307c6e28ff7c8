"""Cancellation triggers and final release for a running job.

While the pipeline runs, two triggers can cancel the job: the client going
away and the wall-clock timeout. Both only mark the job CANCELLED and set
its token; the pipeline notices at its next phase boundary and unwinds,
after which the caller calls ``release()``.
"""

import asyncio
import logging
from typing import Optional

from starlette.requests import Request

from scroll_video.services.job_lifecycle import Job, JobState
from scroll_video.services.job_supervisor import JobSupervisor

logger = logging.getLogger(__name__)


class JobGuard:
    """Arms the timeout / disconnect triggers of one job and releases it."""

    def __init__(
        self,
        job: Job,
        supervisor: JobSupervisor,
        *,
        timeout_s: float,
        poll_interval_s: float = 0.5,
    ):
        self.job = job
        self.supervisor = supervisor
        self.timeout_s = timeout_s
        self.poll_interval_s = poll_interval_s
        self._timer: Optional[asyncio.TimerHandle] = None
        self._watcher: Optional[asyncio.Task] = None

    def arm(self, request: Optional[Request] = None) -> None:
        """Start the timeout and, given a request, the disconnect watcher."""
        loop = asyncio.get_running_loop()
        self._timer = loop.call_later(self.timeout_s, self.cancel, "timeout")
        if request is not None:
            self._watcher = loop.create_task(self._watch_disconnect(request))

    def disarm(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        if self._watcher is not None:
            if self._watcher is not asyncio.current_task():
                self._watcher.cancel()
            self._watcher = None

    def cancel(self, reason: str) -> None:
        """Mark the job CANCELLED; the pipeline stops at its next checkpoint."""
        if self.job.finish(JobState.CANCELLED, reason):
            logger.warning("%s for %s, stopping at next checkpoint", reason, self.job.id)

    async def _watch_disconnect(self, request: Request) -> None:
        while not self.job.is_finished:
            if await request.is_disconnected():
                logger.warning("Client disconnected during processing for %s", self.job.id)
                self.cancel("client-disconnect")
                return
            await asyncio.sleep(self.poll_interval_s)

    def fail(self, reason: str = "render-error") -> None:
        self.job.finish(JobState.FAILED, reason)

    def deliver(self) -> None:
        """Response fully sent: DELIVERED, then release."""
        if self.job.finish(JobState.DELIVERED, "success"):
            logger.info("Video delivered successfully for %s", self.job.id)
        self.release()

    def release(self) -> None:
        """Stop the triggers and clean up the job. Safe to call repeatedly."""
        self.disarm()
        if not self.job.is_finished:
            self.job.finish(JobState.CANCELLED, "released")
        self.job.cleanup()
        self.supervisor.unregister(self.job)
