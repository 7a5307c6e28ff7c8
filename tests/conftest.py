"""
Pytest fixtures for scroll-video tests.

Images are built in memory with numpy / Pillow, so no test data files are
needed. Every test gets its own TMP_ROOT under pytest's tmp_path.

CI/CD Note:
Tests that run the real encoder are marked with @pytest.mark.requires_ffmpeg
and skipped when no ffmpeg binary is on PATH.
"""

import shutil
import struct
import zlib
from pathlib import Path

import numpy as np
import pytest
from PIL import Image

from scroll_video.config import get_settings

BEZEL_RGB = (30, 30, 30)


def pytest_configure(config):
    """Register custom markers for CI/CD test filtering."""
    config.addinivalue_line(
        "markers",
        "requires_ffmpeg: mark test as requiring an ffmpeg binary (skipped when absent)",
    )


requires_ffmpeg = pytest.mark.skipif(
    shutil.which("ffmpeg") is None,
    reason="ffmpeg not available",
)


def build_frame_pixels(
    width: int,
    height: int,
    box: tuple[int, int, int, int] | None = None,
    *,
    alpha: int = 0,
    opaque: tuple[tuple[int, int], ...] = (),
) -> np.ndarray:
    """Opaque RGBA frame with ``box`` = (x0, y0, x1, y1), end-exclusive, set to ``alpha``."""
    pixels = np.zeros((height, width, 4), dtype=np.uint8)
    pixels[:, :, :3] = BEZEL_RGB
    pixels[:, :, 3] = 255
    if box is not None:
        x0, y0, x1, y1 = box
        pixels[y0:y1, x0:x1, 3] = alpha
    for x, y in opaque:
        pixels[y, x, 3] = 255
    return pixels


def build_page_pixels(width: int, height: int) -> np.ndarray:
    """RGBA page whose row y is colored (y % 256, y // 256, 128)."""
    rows = np.arange(height)
    pixels = np.zeros((height, width, 4), dtype=np.uint8)
    pixels[:, :, 0] = (rows % 256)[:, np.newaxis]
    pixels[:, :, 1] = (rows // 256)[:, np.newaxis]
    pixels[:, :, 2] = 128
    pixels[:, :, 3] = 255
    return pixels


def save_png(pixels: np.ndarray, path: Path) -> Path:
    Image.fromarray(pixels).save(path, "PNG")
    return path


@pytest.fixture
def temp_output_dir(tmp_path) -> Path:
    """Temporary directory for test outputs."""
    path = tmp_path / "output"
    path.mkdir()
    return path


@pytest.fixture
def settings(tmp_path, monkeypatch):
    """Settings isolated to this test's tmp_path."""
    monkeypatch.setenv("TMP_ROOT", str(tmp_path / "scroll-video"))
    monkeypatch.delenv("DEFAULT_FRAME_PATH", raising=False)
    get_settings.cache_clear()
    yield get_settings()
    get_settings.cache_clear()


@pytest.fixture
def override_settings(settings, monkeypatch):
    """Return a function that changes settings via env vars and reloads them."""

    def _override(**values):
        for key, value in values.items():
            monkeypatch.setenv(key.upper(), str(value))
        get_settings.cache_clear()
        return get_settings()

    return _override


@pytest.fixture
def small_frame_png(temp_output_dir) -> Path:
    """40x60 frame with a 32x48 transparent screen at (4, 6)."""
    return save_png(build_frame_pixels(40, 60, (4, 6, 36, 54)), temp_output_dir / "frame.png")


@pytest.fixture
def small_page_png(temp_output_dir) -> Path:
    """32x200 page, already the width of ``small_frame_png``'s screen."""
    return save_png(build_page_pixels(32, 200), temp_output_dir / "page.png")


@pytest.fixture
def rgb_frame_png(temp_output_dir) -> Path:
    """Frame without alpha channel."""
    img = Image.new("RGB", (40, 60), BEZEL_RGB)
    path = temp_output_dir / "frame_rgb.png"
    img.save(path, "PNG")
    return path


def png_header_bytes(width: int, height: int) -> bytes:
    """RGBA PNG with a valid IHDR but an empty IDAT: readable size, no pixels."""

    def chunk(kind: bytes, data: bytes) -> bytes:
        crc = zlib.crc32(kind + data) & 0xFFFFFFFF
        return struct.pack(">I", len(data)) + kind + data + struct.pack(">I", crc)

    ihdr = struct.pack(">IIBBBBB", width, height, 8, 6, 0, 0, 0)
    return b"\x89PNG\r\n\x1a\n" + chunk(b"IHDR", ihdr) + chunk(b"IDAT", b"") + chunk(b"IEND", b"")
