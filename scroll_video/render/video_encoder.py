"""FFmpeg invocation for numbered PNG sequences."""

import asyncio
import logging
from pathlib import Path
from typing import Optional

from scroll_video.config import get_settings
from scroll_video.exceptions import EncodeFailure

logger = logging.getLogger(__name__)


class VideoEncoder:
    """Encode a frame sequence to a web-friendly H.264 MP4."""

    def __init__(self, ffmpeg_path: Optional[str] = None):
        self.ffmpeg_path = ffmpeg_path or get_settings().ffmpeg_path

    def build_command(self, input_pattern: str, output_path: str, fps: float) -> list[str]:
        """Build the ffmpeg argument list.

        Args:
            input_pattern: printf-style numbered input, e.g. ``/job/frame_%05d.png``
            output_path: MP4 to write (overwritten if present)
            fps: Input and output frame rate
        """
        fps_arg = _format_fps(fps)
        return [
            self.ffmpeg_path,
            "-y",
            "-framerate", fps_arg,
            "-i", input_pattern,
            "-c:v", "libx264",
            "-pix_fmt", "yuv420p",
            "-movflags", "+faststart",
            "-r", fps_arg,
            output_path,
        ]

    async def encode(self, input_pattern: str | Path, output_path: str | Path, fps: float) -> Path:
        """Run ffmpeg once and wait for it to exit.

        Raises:
            EncodeFailure: If ffmpeg cannot be started or exits non-zero
        """
        cmd = self.build_command(str(input_pattern), str(output_path), fps)
        logger.info("Encode FFmpeg cmd: %s", " ".join(cmd))

        try:
            process = await asyncio.create_subprocess_exec(
                *cmd,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            logger.error("Could not start FFmpeg (%s): %s", self.ffmpeg_path, e)
            raise EncodeFailure(None, str(e)) from e

        _, stderr = await process.communicate()
        if process.returncode != 0:
            error = stderr.decode("utf-8", errors="ignore")
            logger.error("Encode FFmpeg failed (rc=%d). stderr length=%d", process.returncode, len(error))
            logger.error("FFmpeg stderr (last 2000): %s", error[-2000:])
            raise EncodeFailure(process.returncode, error)

        return Path(output_path)


def _format_fps(fps: float) -> str:
    """``30.0`` -> ``"30"``, ``29.97`` -> ``"29.97"``."""
    if float(fps).is_integer():
        return str(int(fps))
    return str(fps)
