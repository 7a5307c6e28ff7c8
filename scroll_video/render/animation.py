"""Scroll animation parameters.

The visible window starts at the top of the page and ends with the bottom
of the page aligned to the bottom of the cutout, moving by a constant
number of pixels per frame.
"""

import math
from dataclasses import dataclass


def round_half_up(value: float) -> int:
    """Round to the nearest integer with halves going up (round(2.5) == 2, this gives 3)."""
    return math.floor(value + 0.5)


@dataclass(frozen=True)
class AnimationParams:
    """Derived timing and scroll geometry for one render."""

    duration_s: float
    fps: float
    total_frames: int
    scroll_range: int
    page_height: int
    cutout_height: int

    @classmethod
    def compute(
        cls,
        duration_s: float,
        fps: float,
        page_height: int,
        cutout_height: int,
    ) -> "AnimationParams":
        return cls(
            duration_s=duration_s,
            fps=fps,
            total_frames=round_half_up(duration_s * fps),
            scroll_range=max(0, page_height - cutout_height),
            page_height=page_height,
            cutout_height=cutout_height,
        )

    @property
    def step(self) -> float:
        """Pixels scrolled between consecutive frames."""
        if self.total_frames > 1:
            return self.scroll_range / (self.total_frames - 1)
        return 0.0

    def offset_for(self, index: int) -> int:
        """Top edge of the visible page slice for frame ``index`` (0-based)."""
        y = round_half_up(self.step * index)
        return max(0, min(y, self.page_height - self.cutout_height))

    def to_dict(self) -> dict:
        """Serialize to dictionary."""
        return {
            "duration_s": self.duration_s,
            "fps": self.fps,
            "total_frames": self.total_frames,
            "scroll_range": self.scroll_range,
            "step": self.step,
        }
