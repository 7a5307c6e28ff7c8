"""Process-wide job registry and emergency cleanup.

Individual jobs clean up after themselves. The supervisor covers the case
where the process itself is going down on an unhandled exception: it
removes every job directory and pending upload under the tmp root,
whether or not a live Job object still refers to it.
"""

import logging
import shutil
import sys
import threading
from pathlib import Path
from types import TracebackType
from typing import Optional

from scroll_video.services.job_lifecycle import JOB_DIR_PREFIX, Job

logger = logging.getLogger(__name__)


class JobSupervisor:
    """Tracks active jobs and sweeps the tmp namespace on fatal errors."""

    def __init__(self, tmp_root: str | Path, uploads_dir: str | Path):
        self.tmp_root = Path(tmp_root)
        self.uploads_dir = Path(uploads_dir)
        self._jobs: dict[str, Job] = {}
        self._lock = threading.Lock()
        self._previous_excepthook = None

    def ensure_dirs(self) -> None:
        self.tmp_root.mkdir(parents=True, exist_ok=True)
        self.uploads_dir.mkdir(parents=True, exist_ok=True)
        logger.info("Temporary directories ready under %s", self.tmp_root)

    # ------------------------------------------------------------------
    # Registry
    # ------------------------------------------------------------------

    def register(self, job: Job) -> None:
        with self._lock:
            self._jobs[job.id] = job

    def unregister(self, job: Job) -> None:
        with self._lock:
            self._jobs.pop(job.id, None)

    def get_job(self, job_id: str) -> Optional[Job]:
        with self._lock:
            return self._jobs.get(job_id)

    @property
    def active_jobs(self) -> int:
        with self._lock:
            return len(self._jobs)

    # ------------------------------------------------------------------
    # Emergency sweep
    # ------------------------------------------------------------------

    def sweep_and_remove_all_jobs(self) -> int:
        """Remove all job directories and pending uploads.

        Every failure is logged and skipped so one stuck file cannot stop
        the rest of the sweep.

        Returns:
            Number of entries removed
        """
        logger.warning("Performing emergency cleanup of %s", self.tmp_root)
        removed = 0

        for entry in _list_dir(self.tmp_root):
            if not (entry.name.startswith(JOB_DIR_PREFIX) and entry.is_dir()):
                continue
            logger.info("Emergency cleanup: %s", entry.name)
            try:
                shutil.rmtree(entry)
                removed += 1
            except OSError as e:
                logger.error("Emergency cleanup of %s failed: %s", entry, e)

        for entry in _list_dir(self.uploads_dir):
            logger.info("Emergency cleanup upload: %s", entry.name)
            try:
                entry.unlink(missing_ok=True)
                removed += 1
            except OSError as e:
                logger.error("Emergency cleanup of upload %s failed: %s", entry, e)

        with self._lock:
            for job in self._jobs.values():
                job.cleanup_done = True
            self._jobs.clear()

        logger.warning("Emergency cleanup completed, %d entries removed", removed)
        return removed

    def install(self) -> None:
        """Sweep once when an uncaught exception reaches ``sys.excepthook``."""
        if self._previous_excepthook is not None:
            return
        self._previous_excepthook = sys.excepthook

        def _excepthook(
            exc_type: type[BaseException],
            exc: BaseException,
            tb: Optional[TracebackType],
        ) -> None:
            logger.critical("Uncaught exception", exc_info=(exc_type, exc, tb))
            try:
                self.sweep_and_remove_all_jobs()
            except Exception:
                logger.exception("Emergency cleanup failed")
            self._previous_excepthook(exc_type, exc, tb)

        sys.excepthook = _excepthook

    def uninstall(self) -> None:
        if self._previous_excepthook is not None:
            sys.excepthook = self._previous_excepthook
            self._previous_excepthook = None


def _list_dir(path: Path) -> list[Path]:
    try:
        return list(path.iterdir())
    except FileNotFoundError:
        return []
