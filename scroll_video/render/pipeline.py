"""
Scroll render pipeline.

Orchestrates one job from validated uploads to a finished MP4:
1. Validate page and frame dimensions
2. Detect the transparent cutout in the frame
3. Resize the page to the cutout width
4. Generate the composite frame sequence in bounded batches
5. Encode the sequence with FFmpeg

Cancellation is cooperative: the job's token is checked after detection,
after resizing, between frame batches, before the encode and after it.
A running encode is never interrupted.
"""

import asyncio
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Optional

from PIL import Image, JpegImagePlugin, PngImagePlugin, UnidentifiedImageError

from scroll_video.config import Settings, get_settings
from scroll_video.exceptions import (
    DetectionFailure,
    DimensionLimitError,
    InvalidImageError,
    JobCancelled,
)
from scroll_video.render.animation import AnimationParams
from scroll_video.render.batch_scheduler import run_in_batches
from scroll_video.render.cutout_detector import CutoutRect, detect_transparent_cutout, load_frame_image
from scroll_video.render.frame_synthesizer import FRAME_FILENAME_PATTERN, FrameSynthesizer
from scroll_video.render.page_resizer import PageImage, resize_page_to_width
from scroll_video.render.video_encoder import VideoEncoder
from scroll_video.schemas.render import RenderParams
from scroll_video.services.job_lifecycle import Job

logger = logging.getLogger(__name__)

OUTPUT_FILENAME = "output.mp4"
RESIZED_PAGE_FILENAME = "resized_page.png"


@dataclass
class RenderResult:
    """Output of a successful render."""

    output_path: Path
    cutout: CutoutRect
    animation: AnimationParams

    def to_dict(self) -> dict:
        """Serialize to dictionary."""
        return {
            "output_path": str(self.output_path),
            "cutout": self.cutout.to_dict(),
            "animation": self.animation.to_dict(),
        }


# Header-only readers for images Image.open refuses as decompression bombs
_HEADER_READERS = (PngImagePlugin.PngImageFile, JpegImagePlugin.JpegImageFile)


def _header_size(path: str | Path) -> Optional[tuple[int, int]]:
    for reader in _HEADER_READERS:
        try:
            with reader(str(path)) as img:
                return img.size
        except (SyntaxError, OSError):
            continue
    return None


def read_image_size(path: str | Path, field: str) -> tuple[int, int]:
    """Read width and height from the image header without decoding pixels.

    Images too large for Pillow to open still report their size, so the
    caller can reject them with the real dimensions.
    """
    try:
        with Image.open(path) as img:
            return img.size
    except Image.DecompressionBombError as e:
        size = _header_size(path)
        if size is None:
            raise InvalidImageError(field, str(e)) from e
        logger.warning("%s image %dx%d refused by decoder, checking header size only", field, *size)
        return size
    except (UnidentifiedImageError, OSError) as e:
        raise InvalidImageError(field, str(e)) from e


class ScrollRenderPipeline:
    """Run the render phases for a single job."""

    def __init__(
        self,
        job: Job,
        settings: Optional[Settings] = None,
        encoder: Optional[VideoEncoder] = None,
    ):
        self.job = job
        self.settings = settings or get_settings()
        self.encoder = encoder or VideoEncoder(self.settings.ffmpeg_path)
        self._progress_callback: Optional[Callable[[int, str], None]] = None

    def set_progress_callback(self, callback: Callable[[int, str], None]) -> None:
        """Set callback for progress updates."""
        self._progress_callback = callback

    def _update_progress(self, progress: int, stage: str) -> None:
        logger.info("[%s] %d%% %s", self.job.id, progress, stage)
        if self._progress_callback:
            self._progress_callback(progress, stage)

    def _checkpoint(self, phase: str) -> None:
        if self.job.token.is_cancelled:
            logger.warning("Request cancelled %s for %s", phase, self.job.id)
        self.job.token.raise_if_cancelled()

    def validate_inputs(self, frame_path: str | Path, page_path: str | Path) -> None:
        """Reject unreadable or oversize inputs before any job work starts.

        Raises:
            InvalidImageError: If either file is not a decodable image
            DimensionLimitError: If either side of either image is too large
        """
        limit = self.settings.max_dimension
        for field, path in (("page", page_path), ("frame", frame_path)):
            width, height = read_image_size(path, field)
            if width > limit or height > limit:
                raise DimensionLimitError(field, width, height, limit)

    async def run(
        self,
        frame_path: str | Path,
        page_path: str | Path,
        params: RenderParams,
    ) -> RenderResult:
        """Execute the full pipeline inside the job's working directory.

        Raises:
            ValidationError: Bad inputs (before the working dir is created)
            DetectionFailure: No alpha channel or no usable cutout
            EncodeFailure: FFmpeg failed
            JobCancelled: The token was set at a phase boundary
        """
        self.validate_inputs(frame_path, page_path)
        self.job.start()
        work_dir = self.job.working_dir

        # Step 1: Detect cutout
        self._update_progress(5, "Detecting transparent cutout")
        cutout = await asyncio.to_thread(self._detect_cutout, frame_path)
        self._checkpoint("during frame processing")

        # Step 2: Fit page to cutout width
        self._update_progress(10, "Resizing page")
        page: PageImage = await asyncio.to_thread(
            resize_page_to_width,
            page_path,
            cutout.width,
            work_dir / RESIZED_PAGE_FILENAME,
            self.settings.png_compress_level,
        )
        self._checkpoint("after page resize")

        animation = AnimationParams.compute(params.duration, params.fps, page.height, cutout.height)
        logger.info(
            "Animation for %s: %d frames, scroll range %dpx, %.2fpx/frame",
            self.job.id,
            animation.total_frames,
            animation.scroll_range,
            animation.step,
        )

        # Step 3: Generate frames
        self._update_progress(15, "Generating frames")
        synthesizer = await asyncio.to_thread(
            FrameSynthesizer,
            page.path,
            frame_path,
            cutout,
            animation,
            work_dir,
            self.settings.png_compress_level,
        )
        report = await run_in_batches(
            animation.total_frames,
            synthesizer.synthesize,
            batch_size=self.settings.batch_size,
            is_cancelled=lambda: self.job.token.is_cancelled,
            label=f"[{self.job.id}] ",
        )
        if report.cancelled:
            raise JobCancelled(self.job.token.reason or "cancelled")
        self._checkpoint("before video generation")

        # Step 4: Encode
        self._update_progress(80, "Encoding video")
        output_path = await self.encoder.encode(
            work_dir / FRAME_FILENAME_PATTERN,
            work_dir / OUTPUT_FILENAME,
            params.fps,
        )
        self._checkpoint("after video generation")

        self._update_progress(100, "Complete")
        return RenderResult(output_path=output_path, cutout=cutout, animation=animation)

    def _detect_cutout(self, frame_path: str | Path) -> CutoutRect:
        try:
            frame = load_frame_image(frame_path)
        except (UnidentifiedImageError, OSError) as e:
            raise InvalidImageError("frame", str(e)) from e

        cutout = detect_transparent_cutout(frame)
        if cutout.is_empty:
            raise DetectionFailure()
        return cutout
