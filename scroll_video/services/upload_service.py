"""Persist multipart uploads into the shared uploads directory."""

import logging
import uuid
from pathlib import Path

from fastapi import UploadFile

from scroll_video.exceptions import UploadTooLargeError
from scroll_video.services.job_lifecycle import UploadedFile

logger = logging.getLogger(__name__)

CHUNK_SIZE = 1024 * 1024


class UploadService:
    """Stream uploads to disk under random names with a size cap."""

    def __init__(self, uploads_dir: str | Path, max_size_mb: int):
        self.uploads_dir = Path(uploads_dir)
        self.max_size_mb = max_size_mb

    @property
    def max_bytes(self) -> int:
        return self.max_size_mb * 1024 * 1024

    async def save(self, upload: UploadFile, field: str) -> UploadedFile:
        """Write one upload to ``<uploads_dir>/<uuid>``.

        Raises:
            UploadTooLargeError: If the body exceeds the size limit. The
                partial file is removed before raising.
        """
        self.uploads_dir.mkdir(parents=True, exist_ok=True)
        path = self.uploads_dir / uuid.uuid4().hex
        written = 0
        try:
            with path.open("wb") as out:
                while chunk := await upload.read(CHUNK_SIZE):
                    written += len(chunk)
                    if written > self.max_bytes:
                        raise UploadTooLargeError(field, self.max_size_mb)
                    out.write(chunk)
        except BaseException:
            path.unlink(missing_ok=True)
            raise
        finally:
            await upload.close()

        logger.info("Stored %s upload %r (%d bytes) as %s", field, upload.filename, written, path.name)
        return UploadedFile(path=path, field=field)

    def discard(self, files: list[UploadedFile]) -> None:
        """Best-effort removal of uploads that never reached a job."""
        for item in files:
            try:
                item.path.unlink(missing_ok=True)
            except OSError as e:
                logger.error("Could not remove upload %s: %s", item.path, e)
