"""Per-request render jobs: working area, cancellation and cleanup.

A job owns its working directory and the uploads it was handed. It moves
through

    CREATED -> PROCESSING -> DELIVERED | FAILED | CANCELLED

and the first terminal transition releases everything it owns. Later
transitions (a timeout firing after delivery, a disconnect after a
failure) are ignored.
"""

import logging
import shutil
import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Optional
from uuid import uuid4

from scroll_video.exceptions import JobCancelled

logger = logging.getLogger(__name__)

JOB_DIR_PREFIX = "job_"


class JobState(Enum):
    """Render job state."""

    CREATED = "created"
    PROCESSING = "processing"
    DELIVERED = "delivered"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in (JobState.DELIVERED, JobState.FAILED, JobState.CANCELLED)


class CancellationToken:
    """Cooperative cancellation flag shared by every phase of a job."""

    def __init__(self) -> None:
        self._event = threading.Event()
        self.reason: Optional[str] = None

    @property
    def is_cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self, reason: str) -> bool:
        """Set the flag. Returns False if it was already set."""
        if self._event.is_set():
            return False
        self.reason = reason
        self._event.set()
        return True

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise JobCancelled(self.reason or "cancelled")


def new_job_id() -> str:
    return f"{JOB_DIR_PREFIX}{uuid4().hex}"


@dataclass
class UploadedFile:
    """An upload handed over to a job."""

    path: Path
    field: str


@dataclass
class Job:
    """One request's unit of work."""

    id: str
    working_dir: Path
    uploaded_files: list[UploadedFile] = field(default_factory=list)
    token: CancellationToken = field(default_factory=CancellationToken)
    state: JobState = JobState.CREATED
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    finished_at: Optional[datetime] = None
    end_reason: Optional[str] = None
    cleanup_done: bool = False
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False, compare=False)

    @classmethod
    def create(cls, tmp_root: str | Path, uploaded_files: Optional[list[UploadedFile]] = None) -> "Job":
        """Create a job with a fresh, collision-resistant identifier.

        The working directory path is reserved but only created by
        ``start()``.
        """
        job_id = new_job_id()
        return cls(
            id=job_id,
            working_dir=Path(tmp_root) / job_id,
            uploaded_files=list(uploaded_files or []),
        )

    @property
    def is_finished(self) -> bool:
        return self.state.is_terminal

    def start(self) -> None:
        """CREATED -> PROCESSING; creates the working directory."""
        with self._lock:
            if self.state is not JobState.CREATED:
                raise RuntimeError(f"Cannot start job {self.id} in state {self.state.value}")
            self.working_dir.mkdir(parents=True, exist_ok=True)
            self.state = JobState.PROCESSING
        logger.info("Started %s in %s", self.id, self.working_dir)

    def finish(self, state: JobState, reason: str) -> bool:
        """Record the terminal state. Only the first call has any effect.

        Returns:
            True if this call moved the job into a terminal state
        """
        if not state.is_terminal:
            raise ValueError(f"{state.value} is not a terminal state")
        with self._lock:
            if self.state.is_terminal:
                return False
            self.state = state
            self.end_reason = reason
            self.finished_at = datetime.now(timezone.utc)
        if state is JobState.CANCELLED:
            self.token.cancel(reason)
        logger.info("%s -> %s (%s)", self.id, state.value, reason)
        return True

    def cleanup(self) -> bool:
        """Remove the working directory and uploads, once.

        Never raises; failures are logged.

        Returns:
            True if every owned artifact is gone
        """
        with self._lock:
            if self.cleanup_done:
                return True
            self.cleanup_done = True

        reason = self.end_reason or "cleanup"
        logger.info("Starting %s cleanup for %s", reason, self.id)
        ok = True

        try:
            shutil.rmtree(self.working_dir)
        except FileNotFoundError:
            pass
        except OSError as e:
            ok = False
            logger.error("%s cleanup error for %s: %s", reason, self.id, e)

        for upload in self.uploaded_files:
            try:
                upload.path.unlink(missing_ok=True)
            except OSError as e:
                ok = False
                logger.error("Could not remove uploaded %s %s: %s", upload.field, upload.path, e)

        if ok:
            logger.info("%s cleanup completed for %s", reason, self.id)
        return ok

    def terminate(self, state: JobState, reason: str) -> bool:
        """``finish`` followed by ``cleanup`` when this call was the first."""
        moved = self.finish(state, reason)
        if moved:
            self.cleanup()
        return moved

    def to_dict(self) -> dict[str, Any]:
        """Serialize to dictionary."""
        return {
            "id": self.id,
            "state": self.state.value,
            "working_dir": str(self.working_dir),
            "created_at": self.created_at.isoformat(),
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
            "end_reason": self.end_reason,
            "cleanup_done": self.cleanup_done,
        }
