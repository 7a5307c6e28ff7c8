"""Fit the page screenshot to the cutout width."""

import logging
from dataclasses import dataclass
from pathlib import Path

from PIL import Image

from scroll_video.exceptions import InvalidImageError
from scroll_video.render.animation import round_half_up

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PageImage:
    """A page screenshot on disk and its pixel size."""

    path: Path
    width: int
    height: int


def resize_page_to_width(
    page_path: str | Path,
    target_width: int,
    output_path: str | Path,
    compress_level: int = 6,
) -> PageImage:
    """Scale the page to ``target_width`` keeping its aspect ratio.

    The source file is never modified. When the page already has the
    target width the source path is returned and nothing is written.

    Args:
        page_path: Source screenshot
        target_width: Cutout width in pixels
        output_path: Where to write the resized PNG
        compress_level: PNG zlib level (0-9)

    Returns:
        PageImage describing the file to crop from

    Raises:
        InvalidImageError: If the page pixel data cannot be decoded
    """
    with Image.open(page_path) as page:
        width, height = page.size
        if width == target_width:
            logger.info("Page already %dpx wide, no resize needed", width)
            return PageImage(Path(page_path), width, height)

        aspect_ratio = width / height
        new_height = round_half_up(target_width / aspect_ratio)
        logger.info(
            "Resizing page %dx%d -> %dx%d (aspect ratio %.4f)",
            width,
            height,
            target_width,
            new_height,
            aspect_ratio,
        )
        try:
            resized = page.convert("RGBA").resize((target_width, new_height), Image.Resampling.LANCZOS)
        except OSError as e:
            # header was fine, pixel data is truncated or corrupt
            raise InvalidImageError("page", str(e)) from e

    resized.save(output_path, "PNG", compress_level=compress_level)
    return PageImage(Path(output_path), target_width, new_height)
