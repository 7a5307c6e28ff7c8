import math
from datetime import datetime
from typing import Any

from pydantic import BaseModel

from scroll_video.config import Settings


def _coerce_number(raw: Any, default: float) -> float:
    """Parse a form value; missing, empty, zero or non-numeric -> default."""
    if raw is None:
        return default
    try:
        value = float(raw)
    except (TypeError, ValueError):
        return default
    if not math.isfinite(value) or value == 0:
        return default
    return value


class RenderParams(BaseModel):
    duration: float  # seconds
    fps: float

    @classmethod
    def from_form(cls, duration: Any, fps: Any, settings: Settings) -> "RenderParams":
        """Apply defaults, then floors, to raw form values."""
        return cls(
            duration=max(settings.min_duration_s, _coerce_number(duration, settings.default_duration_s)),
            fps=max(settings.min_fps, _coerce_number(fps, settings.default_fps)),
        )


class ErrorResponse(BaseModel):
    error: str
    code: str
    retryable: bool = False
    suggested_fix: str | None = None


class HealthResponse(BaseModel):
    status: str
    version: str
    timestamp: datetime
    uptime_s: float
    active_jobs: int


class VersionResponse(BaseModel):
    version: str
