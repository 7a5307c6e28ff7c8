"""
Tests for the HTTP surface: POST /render, /health and /api/version.

The encoder is replaced with a stub that writes a placeholder MP4 so these
tests do not need ffmpeg; see test_video_encoder.py for the real encode.
"""

import asyncio
import io
from pathlib import Path

import numpy as np
import pytest
from fastapi.testclient import TestClient
from PIL import Image

from conftest import build_frame_pixels, build_page_pixels, png_header_bytes, requires_ffmpeg
from scroll_video.exceptions import EncodeFailure
from scroll_video.main import app
from scroll_video.render.video_encoder import VideoEncoder

FAKE_MP4 = b"\x00\x00\x00\x18ftypmp42fake"


def png_bytes(pixels: np.ndarray) -> bytes:
    buf = io.BytesIO()
    Image.fromarray(pixels).save(buf, "PNG")
    return buf.getvalue()


@pytest.fixture
def encode_calls(monkeypatch):
    """Stub VideoEncoder.encode and record its arguments."""
    calls = []

    async def fake_encode(self, input_pattern, output_path, fps):
        calls.append({"pattern": str(input_pattern), "fps": fps})
        Path(output_path).write_bytes(FAKE_MP4)
        return Path(output_path)

    monkeypatch.setattr(VideoEncoder, "encode", fake_encode)
    return calls


@pytest.fixture
def client(settings):
    with TestClient(app, raise_server_exceptions=False) as c:
        yield c


@pytest.fixture
def frame_file():
    return ("frame.png", png_bytes(build_frame_pixels(40, 60, (4, 6, 36, 54))), "image/png")


@pytest.fixture
def page_file():
    return ("page.png", png_bytes(build_page_pixels(64, 400)), "image/png")


def assert_tmp_clean(settings):
    """No job directories and no uploads left behind."""
    root = Path(settings.tmp_root)
    assert [p.name for p in root.iterdir() if p.name.startswith("job_")] == []
    assert list(Path(settings.uploads_dir).iterdir()) == []


class TestRenderSuccess:
    def test_returns_mp4(self, client, settings, encode_calls, frame_file, page_file):
        response = client.post(
            "/render",
            files={"frame": frame_file, "page": page_file},
            data={"duration": "1", "fps": "12"},
        )

        assert response.status_code == 200
        assert response.headers["content-type"] == "video/mp4"
        assert response.content == FAKE_MP4
        assert 'filename="scroll_job_' in response.headers["content-disposition"]
        assert encode_calls[0]["fps"] == 12
        assert_tmp_clean(settings)

    def test_default_frame_used_without_upload(self, client, settings, encode_calls):
        page = ("page.png", png_bytes(build_page_pixels(780, 1800)), "image/png")

        response = client.post("/render", files={"page": page}, data={"duration": "1", "fps": "12"})

        assert response.status_code == 200
        assert response.content == FAKE_MP4
        assert Path(settings.resolved_default_frame_path).exists()
        assert_tmp_clean(settings)

    def test_floors_applied_to_form_values(self, client, settings, encode_calls, frame_file, page_file):
        response = client.post(
            "/render",
            files={"frame": frame_file, "page": page_file},
            data={"duration": "0.1", "fps": "3"},
        )

        assert response.status_code == 200
        assert encode_calls[0]["fps"] == 12

    def test_jobs_do_not_share_state(self, client, settings, encode_calls, frame_file, page_file):
        first = client.post("/render", files={"frame": frame_file, "page": page_file}, data={"duration": "1"})
        second = client.post("/render", files={"frame": frame_file, "page": page_file}, data={"duration": "1"})

        assert first.status_code == second.status_code == 200
        assert first.headers["content-disposition"] != second.headers["content-disposition"]
        assert encode_calls[0]["pattern"] != encode_calls[1]["pattern"]
        assert_tmp_clean(settings)


class TestRenderErrors:
    def test_missing_page(self, client, settings, encode_calls, frame_file):
        response = client.post("/render", files={"frame": frame_file})

        assert response.status_code == 400
        body = response.json()
        assert body["code"] == "VALIDATION_ERROR"
        assert body["error"] == "Please upload a page (long screenshot)."
        assert encode_calls == []
        assert_tmp_clean(settings)

    def test_page_too_large(self, client, settings, override_settings, encode_calls, frame_file):
        current = override_settings(max_dimension=256)
        page = ("page.png", png_bytes(build_page_pixels(32, 257)), "image/png")

        response = client.post("/render", files={"frame": frame_file, "page": page})

        assert response.status_code == 400
        body = response.json()
        assert body["code"] == "DIMENSION_LIMIT_EXCEEDED"
        assert body["error"] == "Image dimensions too large. Maximum allowed: 256x256px"
        assert body["current"] == "32x257px"
        assert "job_id" not in body
        assert encode_calls == []
        assert_tmp_clean(current)

    def test_frame_without_alpha(self, client, settings, encode_calls, page_file):
        frame = ("frame.jpg", png_bytes(np.full((60, 40, 3), 30, dtype=np.uint8)), "image/png")

        response = client.post("/render", files={"frame": frame, "page": page_file})

        assert response.status_code == 400
        assert response.json()["code"] == "UNSUPPORTED_FORMAT"
        assert_tmp_clean(settings)

    def test_frame_without_cutout(self, client, settings, encode_calls, page_file):
        frame = ("frame.png", png_bytes(build_frame_pixels(40, 60)), "image/png")

        response = client.post("/render", files={"frame": frame, "page": page_file})

        assert response.status_code == 400
        body = response.json()
        assert body["code"] == "DETECTION_FAILED"
        assert body["retryable"] is False
        assert_tmp_clean(settings)

    def test_page_not_an_image(self, client, settings, encode_calls, frame_file):
        page = ("page.png", b"definitely not a png", "image/png")

        response = client.post("/render", files={"frame": frame_file, "page": page})

        assert response.status_code == 400
        body = response.json()
        assert body["code"] == "INVALID_IMAGE"
        assert body["field"] == "page"
        assert_tmp_clean(settings)

    def test_upload_too_large(self, client, settings, override_settings, encode_calls, frame_file, page_file):
        current = override_settings(max_upload_size_mb=0)

        response = client.post("/render", files={"frame": frame_file, "page": page_file})

        assert response.status_code == 413
        assert response.json()["code"] == "UPLOAD_TOO_LARGE"
        assert_tmp_clean(current)

    def test_encode_failure(self, client, settings, monkeypatch, frame_file, page_file):
        async def failing_encode(self, input_pattern, output_path, fps):
            raise EncodeFailure(1, "Unknown encoder 'libx264'")

        monkeypatch.setattr(VideoEncoder, "encode", failing_encode)

        response = client.post("/render", files={"frame": frame_file, "page": page_file}, data={"duration": "1"})

        assert response.status_code == 500
        body = response.json()
        assert body["code"] == "ENCODE_FAILED"
        assert body["exit_code"] == 1
        assert body["job_id"].startswith("job_")
        assert body["retryable"] is True
        assert_tmp_clean(settings)

    def test_unexpected_error(self, client, settings, monkeypatch, frame_file, page_file):
        async def broken_encode(self, input_pattern, output_path, fps):
            raise RuntimeError("disk on fire")

        monkeypatch.setattr(VideoEncoder, "encode", broken_encode)

        response = client.post("/render", files={"frame": frame_file, "page": page_file}, data={"duration": "1"})

        assert response.status_code == 500
        body = response.json()
        assert body["code"] == "INTERNAL_ERROR"
        assert body["error"] == "Render failed"
        assert body["details"] == "disk on fire"
        assert "job_id" in body
        assert_tmp_clean(settings)


class TestRenderImageLimits:
    """Inputs whose header is readable but whose pixels are not usable."""

    def test_huge_page_rejected_by_dimensions(self, client, settings, encode_calls, frame_file):
        """Too large for the decoder to open: still a dimension error, not a 500."""
        page = ("page.png", png_header_bytes(15000, 15000), "image/png")

        response = client.post("/render", files={"frame": frame_file, "page": page})

        assert response.status_code == 400
        body = response.json()
        assert body["code"] == "DIMENSION_LIMIT_EXCEEDED"
        assert body["current"] == "15000x15000px"
        assert body["limit"] == "4096x4096px"
        assert body["field"] == "page"
        assert encode_calls == []
        assert_tmp_clean(settings)

    def test_huge_frame_rejected_by_dimensions(self, client, settings, encode_calls, page_file):
        frame = ("frame.png", png_header_bytes(15000, 15000), "image/png")

        response = client.post("/render", files={"frame": frame, "page": page_file})

        assert response.status_code == 400
        body = response.json()
        assert body["code"] == "DIMENSION_LIMIT_EXCEEDED"
        assert body["field"] == "frame"
        assert_tmp_clean(settings)

    def test_truncated_page(self, client, settings, encode_calls, frame_file):
        """Valid 64x400 header with no pixel data: the resize step cannot decode it."""
        page = ("page.png", png_header_bytes(64, 400), "image/png")

        response = client.post("/render", files={"frame": frame_file, "page": page})

        assert response.status_code == 400
        body = response.json()
        assert body["code"] == "INVALID_IMAGE"
        assert body["field"] == "page"
        assert "job_id" not in body
        assert encode_calls == []
        assert_tmp_clean(settings)


class TestRenderCancellation:
    """Jobs that end without a video still leave nothing behind."""

    def test_timeout_gives_empty_response(self, client, settings, override_settings, monkeypatch, frame_file, page_file):
        current = override_settings(job_timeout_s=0.05)

        async def slow_encode(self, input_pattern, output_path, fps):
            await asyncio.sleep(0.5)
            Path(output_path).write_bytes(FAKE_MP4)
            return Path(output_path)

        monkeypatch.setattr(VideoEncoder, "encode", slow_encode)

        response = client.post("/render", files={"frame": frame_file, "page": page_file}, data={"duration": "1"})

        assert response.status_code == 499
        assert response.content == b""
        assert "video/mp4" not in response.headers.get("content-type", "")
        assert_tmp_clean(current)
        assert app.state.supervisor.active_jobs == 0

    def test_delivery_failure_releases_job(self, client, settings, monkeypatch, frame_file, page_file):
        """The video vanished before streaming: the job is still cleaned up."""

        async def lost_output(self, input_pattern, output_path, fps):
            return Path(output_path).with_name("missing.mp4")

        monkeypatch.setattr(VideoEncoder, "encode", lost_output)

        response = client.post("/render", files={"frame": frame_file, "page": page_file}, data={"duration": "1"})

        assert response.status_code == 500
        assert_tmp_clean(settings)
        assert app.state.supervisor.active_jobs == 0


class TestServerEntrypoint:
    def test_main_runs_uvicorn(self, override_settings, monkeypatch):
        from scroll_video import __main__ as entrypoint

        override_settings(port=9001, log_level="WARNING")
        calls = []
        monkeypatch.setattr(entrypoint.uvicorn, "run", lambda app, **kwargs: calls.append((app, kwargs)))

        entrypoint.main()

        assert calls == [("scroll_video.main:app", {"host": "0.0.0.0", "port": 9001, "log_level": "warning"})]


class TestHealth:
    def test_healthy(self, client):
        response = client.get("/health")

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "healthy"
        assert body["version"] == "1.0.0"
        assert body["active_jobs"] == 0
        assert body["uptime_s"] >= 0

    def test_unhealthy_without_default_frame(self, client, settings):
        Path(settings.resolved_default_frame_path).unlink()

        response = client.get("/health")

        assert response.status_code == 503
        body = response.json()
        assert body["status"] == "unhealthy"
        assert "default_frame.png" in body["error"]

    def test_version(self, client):
        response = client.get("/api/version")

        assert response.status_code == 200
        assert response.json() == {"version": "1.0.0"}


@requires_ffmpeg
@pytest.mark.requires_ffmpeg
class TestRenderWithFfmpeg:
    def test_real_video(self, client, settings, frame_file, page_file):
        response = client.post(
            "/render",
            files={"frame": frame_file, "page": page_file},
            data={"duration": "1", "fps": "12"},
        )

        assert response.status_code == 200
        assert response.headers["content-type"] == "video/mp4"
        assert b"ftyp" in response.content[:64]
        assert_tmp_clean(settings)
