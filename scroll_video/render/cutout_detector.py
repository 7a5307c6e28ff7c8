"""Transparent cutout detection for frame images.

Locates the "screen" of a decorative frame (phone bezel, browser chrome)
from its alpha channel so that no manual offsets are needed:

1. Bounding box of all fully transparent pixels (alpha == 0; translucent
   anti-aliased edges are ignored).
2. If all four corners of that box are transparent the frame is
   RECTANGULAR and the box is used as is.
3. Otherwise the frame is ROUNDED: centered candidates at 50%..95% of the
   box are tested in increasing order and the last one whose whole
   perimeter is transparent wins.
4. Width and height are truncated to even numbers (H.264 / yuv420p).

Usage:
    frame = load_frame_image("frame.png")
    cutout = detect_transparent_cutout(frame)
    # CutoutRect(x=19, y=20, width=780, height=1744)
"""

import logging
from dataclasses import dataclass
from enum import Enum
from pathlib import Path

import numpy as np
from PIL import Image

from scroll_video.exceptions import UnsupportedFormat

logger = logging.getLogger(__name__)

# Fractions of the bounding box tried for rounded frames, smallest first.
ROUNDED_TEST_FRACTIONS = (0.5, 0.55, 0.6, 0.65, 0.7, 0.75, 0.8, 0.85, 0.9, 0.95)


class FrameShape(Enum):
    """Shape of the transparent area of a frame."""

    RECTANGULAR = "rectangular"
    ROUNDED = "rounded"


@dataclass(frozen=True, eq=False)
class FrameImage:
    """Decoded, read-only pixel buffer of shape (height, width, channels)."""

    pixels: np.ndarray

    def __post_init__(self) -> None:
        # Freeze a view so the caller's array stays writable
        pixels = np.asarray(self.pixels).view()
        if pixels.ndim == 2:
            pixels = pixels[:, :, np.newaxis]
        pixels.setflags(write=False)
        object.__setattr__(self, "pixels", pixels)

    @property
    def height(self) -> int:
        return int(self.pixels.shape[0])

    @property
    def width(self) -> int:
        return int(self.pixels.shape[1])

    @property
    def channels(self) -> int:
        return int(self.pixels.shape[2])

    @property
    def has_alpha(self) -> bool:
        return self.channels >= 4

    @classmethod
    def from_pil(cls, image: Image.Image) -> "FrameImage":
        """Build from a Pillow image.

        Palette transparency is expanded to RGBA. Grayscale with alpha stays
        two channels, which the detector rejects like any frame without a
        full RGBA layout.
        """
        if image.mode == "P" and "transparency" in image.info:
            image = image.convert("RGBA")
        elif image.mode in ("PA", "RGBa"):
            image = image.convert("RGBA")
        elif image.mode == "La":
            image = image.convert("LA")
        elif image.mode not in ("RGBA", "RGB", "LA", "L"):
            # CMYK, I;16, palette without tRNS ... have no alpha band
            image = image.convert("RGB")
        return cls(np.array(image, dtype=np.uint8))


def load_frame_image(path: str | Path) -> FrameImage:
    """Decode a frame image file into a FrameImage."""
    with Image.open(path) as image:
        image.load()
        return FrameImage.from_pil(image)


@dataclass(frozen=True)
class CutoutRect:
    """Screen area of a frame, in frame pixel coordinates."""

    x: int
    y: int
    width: int
    height: int

    @property
    def is_empty(self) -> bool:
        return self.width <= 0 or self.height <= 0

    def to_dict(self) -> dict:
        """Serialize to dictionary."""
        return {"x": self.x, "y": self.y, "width": self.width, "height": self.height}


EMPTY_CUTOUT = CutoutRect(0, 0, 0, 0)


def _even(value: int) -> int:
    return value - (value % 2)


def _transparent_mask(frame: FrameImage) -> np.ndarray:
    if frame.channels < 4:
        raise UnsupportedFormat(frame.channels)
    return frame.pixels[:, :, 3] == 0


def _bounding_box(mask: np.ndarray) -> tuple[int, int, int, int] | None:
    """Return (min_x, min_y, max_x, max_y), inclusive, or None if mask is empty."""
    cols = np.flatnonzero(mask.any(axis=0))
    if cols.size == 0:
        return None
    rows = np.flatnonzero(mask.any(axis=1))
    return int(cols[0]), int(rows[0]), int(cols[-1]), int(rows[-1])


def classify_shape(mask: np.ndarray, bbox: tuple[int, int, int, int]) -> FrameShape:
    """RECTANGULAR when every corner of the bounding box is transparent."""
    min_x, min_y, max_x, max_y = bbox
    corners = ((min_x, min_y), (max_x, min_y), (min_x, max_y), (max_x, max_y))
    if all(mask[y, x] for x, y in corners):
        return FrameShape.RECTANGULAR
    return FrameShape.ROUNDED


def is_perimeter_transparent(mask: np.ndarray, x: int, y: int, width: int, height: int) -> bool:
    """Check every pixel on the four edges of a rectangle.

    Rounded corners can cut into a rectangle anywhere along its edges, so
    sampling a few points is not enough.
    """
    if width <= 0 or height <= 0:
        return True
    right = x + width - 1
    bottom = y + height - 1
    return bool(
        mask[y, x : right + 1].all()
        and mask[bottom, x : right + 1].all()
        and mask[y : bottom + 1, x].all()
        and mask[y : bottom + 1, right].all()
    )


def _largest_rounded_rect(mask: np.ndarray, bbox: tuple[int, int, int, int]) -> CutoutRect:
    min_x, min_y, max_x, max_y = bbox
    bbox_width = max_x - min_x + 1
    bbox_height = max_y - min_y + 1
    center_x = (min_x + max_x) // 2
    center_y = (min_y + max_y) // 2

    best = CutoutRect(min_x, min_y, 0, 0)
    for fraction in ROUNDED_TEST_FRACTIONS:
        test_width = int(bbox_width * fraction)
        test_height = int(bbox_height * fraction)
        test_x = center_x - test_width // 2
        test_y = center_y - test_height // 2

        inside = (
            test_x >= min_x
            and test_y >= min_y
            and test_x + test_width <= max_x + 1
            and test_y + test_height <= max_y + 1
        )
        if not inside:
            continue

        if not is_perimeter_transparent(mask, test_x, test_y, test_width, test_height):
            logger.debug("%d%% rectangle %dx%d is invalid, stopping", round(fraction * 100), test_width, test_height)
            break
        logger.debug("%d%% rectangle %dx%d at (%d, %d) is valid", round(fraction * 100), test_width, test_height, test_x, test_y)
        best = CutoutRect(test_x, test_y, test_width, test_height)

    return CutoutRect(best.x, best.y, _even(best.width), _even(best.height))


def detect_transparent_cutout(frame: FrameImage) -> CutoutRect:
    """Find the largest usable transparent rectangle in a frame.

    Args:
        frame: Decoded frame with an alpha channel

    Returns:
        CutoutRect with even width and height. A zero-area rect means no
        usable cutout was found.

    Raises:
        UnsupportedFormat: If the frame has fewer than 4 channels
    """
    mask = _transparent_mask(frame)
    bbox = _bounding_box(mask)
    if bbox is None:
        logger.info("No fully transparent pixels in %dx%d frame", frame.width, frame.height)
        return EMPTY_CUTOUT

    min_x, min_y, max_x, max_y = bbox
    logger.info(
        "Transparent bounding box: %dx%d at (%d, %d)",
        max_x - min_x + 1,
        max_y - min_y + 1,
        min_x,
        min_y,
    )

    shape = classify_shape(mask, bbox)
    if shape is FrameShape.RECTANGULAR:
        cutout = CutoutRect(min_x, min_y, _even(max_x - min_x + 1), _even(max_y - min_y + 1))
    else:
        cutout = _largest_rounded_rect(mask, bbox)

    logger.info(
        "Detected %s cutout: %dx%d at (%d, %d)",
        shape.value,
        cutout.width,
        cutout.height,
        cutout.x,
        cutout.y,
    )
    return cutout
