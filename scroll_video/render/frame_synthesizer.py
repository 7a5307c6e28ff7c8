"""Per-frame compositing of a page slice into the frame cutout.

Each output image is built bottom to top:
    1. transparent canvas the size of the frame
    2. visible page slice pasted at the cutout offset
    3. the frame itself, which hides everything outside the cutout

No randomness and no clock reads: the same inputs always give
byte-identical PNG files.
"""

from pathlib import Path

from PIL import Image

from scroll_video.exceptions import InvalidImageError
from scroll_video.render.animation import AnimationParams
from scroll_video.render.cutout_detector import CutoutRect

FRAME_FILENAME_PATTERN = "frame_%05d.png"


def frame_filename(index: int) -> str:
    """Filename of frame ``index`` (0-based); numbering on disk starts at 1."""
    return FRAME_FILENAME_PATTERN % (index + 1)


def _decode_rgba(path: str | Path, field: str) -> Image.Image:
    try:
        with Image.open(path) as img:
            return img.convert("RGBA")
    except OSError as e:
        raise InvalidImageError(field, str(e)) from e


class FrameSynthesizer:
    """Render individual animation frames into an output directory.

    Page and frame are decoded once up front; ``synthesize`` only reads
    them, so it can run from several worker threads at the same time.
    """

    def __init__(
        self,
        page_path: str | Path,
        frame_path: str | Path,
        cutout: CutoutRect,
        params: AnimationParams,
        output_dir: str | Path,
        compress_level: int = 6,
    ):
        self.cutout = cutout
        self.params = params
        self.output_dir = Path(output_dir)
        self.compress_level = compress_level

        self._page = _decode_rgba(page_path, "page")
        self._frame = _decode_rgba(frame_path, "frame")

    @property
    def canvas_size(self) -> tuple[int, int]:
        return self._frame.size

    def crop_box(self, index: int) -> tuple[int, int, int, int]:
        """Page region visible in frame ``index`` as (left, top, right, bottom)."""
        top = self.params.offset_for(index)
        return (0, top, self.cutout.width, top + self.cutout.height)

    def compose(self, index: int) -> Image.Image:
        """Build the composite image for frame ``index``."""
        # Regions past the page edge come out transparent
        visible = self._page.crop(self.crop_box(index))

        canvas = Image.new("RGBA", self._frame.size, (0, 0, 0, 0))
        canvas.alpha_composite(visible, (self.cutout.x, self.cutout.y))
        canvas.alpha_composite(self._frame)
        return canvas

    def synthesize(self, index: int) -> Path:
        """Compose frame ``index`` and write it to the output directory."""
        if not 0 <= index < self.params.total_frames:
            raise IndexError(f"Frame index {index} out of range [0, {self.params.total_frames})")

        output_path = self.output_dir / frame_filename(index)
        self.compose(index).save(output_path, "PNG", compress_level=self.compress_level)
        return output_path
