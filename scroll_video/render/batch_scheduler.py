"""Bounded-concurrency fan-out for frame synthesis.

Frames are produced in consecutive windows of ``batch_size``. All frames of
a window run concurrently in worker threads and the whole window is joined
before the next one starts, which caps the number of decoded images, open
files and busy cores per job.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Callable, Optional

logger = logging.getLogger(__name__)

DEFAULT_BATCH_SIZE = 4


@dataclass
class BatchReport:
    """Outcome of a batch run."""

    frames_written: int
    total_frames: int
    cancelled: bool = False

    @property
    def complete(self) -> bool:
        return not self.cancelled and self.frames_written == self.total_frames


def batch_windows(total: int, batch_size: int) -> list[range]:
    """Split ``[0, total)`` into consecutive ranges of at most ``batch_size``."""
    if batch_size < 1:
        raise ValueError("batch_size must be at least 1")
    return [range(start, min(start + batch_size, total)) for start in range(0, total, batch_size)]


async def run_in_batches(
    total: int,
    work: Callable[[int], Any],
    *,
    batch_size: int = DEFAULT_BATCH_SIZE,
    is_cancelled: Optional[Callable[[], bool]] = None,
    label: str = "",
) -> BatchReport:
    """Run ``work(i)`` for every i in ``[0, total)`` window by window.

    ``work`` is a blocking callable executed via ``asyncio.to_thread``.
    The cancellation callback is polled between windows; when it returns
    True the run stops early and the report is marked cancelled. Cleaning
    up what was already written is the caller's job.

    Raises:
        Exception: The first error raised by ``work`` in a window, after
            every other call of that window has finished.
    """
    written = 0
    for window in batch_windows(total, batch_size):
        if is_cancelled is not None and is_cancelled():
            logger.info("%sCancelled before frame %d of %d", label, window.start + 1, total)
            return BatchReport(frames_written=written, total_frames=total, cancelled=True)

        results = await asyncio.gather(
            *(asyncio.to_thread(work, index) for index in window),
            return_exceptions=True,
        )
        errors = [result for result in results if isinstance(result, BaseException)]
        if errors:
            logger.error(
                "%sFrame batch %d-%d failed: %s",
                label,
                window.start + 1,
                window.stop,
                errors[0],
            )
            raise errors[0]

        written += len(window)
        logger.info("%sGenerated frames %d-%d of %d", label, window.start + 1, window.stop, total)

    return BatchReport(frames_written=written, total_frames=total)
