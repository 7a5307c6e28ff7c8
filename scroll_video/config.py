from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import computed_field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # Application
    app_name: str = "Scroll Video Generator"
    app_version: str = "1.0.0"
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"

    # Server (python -m scroll_video)
    host: str = "0.0.0.0"
    port: int = 8080

    # Working area (one job_<id> directory per request + uploads/)
    tmp_root: str = "/tmp/scroll-video"

    # Frame used when the client uploads none. Empty = generate the built-in bezel.
    default_frame_path: str = ""

    # Input limits
    max_dimension: int = 4096  # px, applies to both page and frame
    max_upload_size_mb: int = 50

    # Animation parameters
    default_duration_s: float = 8
    min_duration_s: float = 1
    default_fps: float = 30
    min_fps: float = 12

    # Frame generation
    batch_size: int = 4  # frames synthesized concurrently per window
    png_compress_level: int = 6

    # Job lifecycle
    job_timeout_s: float = 300
    disconnect_poll_interval_s: float = 0.5

    # FFmpeg
    ffmpeg_path: str = "ffmpeg"

    @computed_field
    @property
    def uploads_dir(self) -> str:
        """Directory holding raw uploads until their job claims them."""
        return str(Path(self.tmp_root) / "uploads")

    @property
    def resolved_default_frame_path(self) -> str:
        if self.default_frame_path:
            return self.default_frame_path
        return str(Path(self.tmp_root) / "default_frame.png")


@lru_cache
def get_settings() -> Settings:
    return Settings()
