"""Built-in phone bezel used when the client uploads no frame."""

import logging
import os
from pathlib import Path

from PIL import Image, ImageDraw

logger = logging.getLogger(__name__)

FRAME_SIZE = (818, 1784)
# Screen area: x 19..798, y 20..1763 (780x1744, even on both sides)
SCREEN_BOX = (19, 20, 798, 1763)

BODY_COLOR = (24, 24, 27, 255)
EDGE_COLOR = (63, 63, 70, 255)
SPEAKER_COLOR = (9, 9, 11, 255)


def draw_default_frame() -> Image.Image:
    """Draw the bezel: opaque body with a fully transparent rectangular screen."""
    width, height = FRAME_SIZE
    img = Image.new("RGBA", FRAME_SIZE, BODY_COLOR)
    draw = ImageDraw.Draw(img)

    draw.rectangle([(0, 0), (width - 1, height - 1)], fill=None, outline=EDGE_COLOR, width=4)

    # Earpiece slot in the top bezel, clear of the screen edge
    slot_w = 120
    slot_left = (width - slot_w) // 2
    draw.rounded_rectangle([(slot_left, 6), (slot_left + slot_w, 12)], radius=3, fill=SPEAKER_COLOR)

    draw.rectangle([SCREEN_BOX[:2], SCREEN_BOX[2:]], fill=(0, 0, 0, 0))
    return img


def ensure_default_frame(path: str | Path) -> Path:
    """Write the built-in frame to ``path`` unless a file is already there."""
    path = Path(path)
    if path.exists():
        return path

    path.parent.mkdir(parents=True, exist_ok=True)
    # Write-then-rename so concurrent workers never see a half-written PNG
    tmp_path = path.with_name(f".{path.name}.{os.getpid()}.tmp")
    draw_default_frame().save(tmp_path, "PNG")
    os.replace(tmp_path, path)
    logger.info("Generated default frame at %s", path)
    return path
