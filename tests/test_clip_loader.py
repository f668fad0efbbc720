"""Tests for clip download and probing."""

import json
import os
import subprocess
from unittest.mock import patch

import httpx
import pytest

from clipstitch.exceptions import (
    ClipAccessDeniedError,
    ClipNotFoundError,
    ClipTooLargeError,
    DownloadError,
    DownloadTimeoutError,
)
from clipstitch.render.clip_loader import download_file, load_clip
from clipstitch.utils.media_info import ProbeResult, probe_clip

URL = "https://cdn.example.com/clip.mp4"


def _transport(handler) -> httpx.MockTransport:
    return httpx.MockTransport(handler)


async def _chunks(total: int, size: int = 1024):
    sent = 0
    while sent < total:
        yield b"x" * size
        sent += size


class TestDownloadFile:
    """Streaming download with status mapping and a size cap."""

    @pytest.mark.asyncio
    async def test_writes_file_and_sends_user_agent(self, temp_output_dir):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["ua"] = request.headers.get("user-agent")
            return httpx.Response(200, content=b"video-bytes")

        dest = temp_output_dir / "clip"
        size = await download_file(URL, str(dest), transport=_transport(handler))

        assert size == len(b"video-bytes")
        assert dest.read_bytes() == b"video-bytes"
        assert seen["ua"].startswith("Clipstitch/")

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "status_code,error_cls,code",
        [
            (404, ClipNotFoundError, "CLIP_NOT_FOUND"),
            (403, ClipAccessDeniedError, "CLIP_ACCESS_DENIED"),
            (500, DownloadError, "DOWNLOAD_FAILED"),
        ],
    )
    async def test_status_mapping(self, temp_output_dir, status_code, error_cls, code):
        dest = temp_output_dir / "clip"

        with pytest.raises(error_cls) as exc_info:
            await download_file(URL, str(dest), transport=_transport(lambda r: httpx.Response(status_code)))

        assert exc_info.value.code == code
        assert exc_info.value.location.url == URL
        assert not dest.exists()

    @pytest.mark.asyncio
    async def test_declared_size_over_cap(self, temp_output_dir):
        """Content-Length over the cap is rejected before the body is read."""
        dest = temp_output_dir / "clip"
        handler = lambda r: httpx.Response(200, content=b"x" * 5000)  # noqa: E731

        with pytest.raises(ClipTooLargeError):
            await download_file(URL, str(dest), max_bytes=1000, transport=_transport(handler))

        assert not dest.exists()

    @pytest.mark.asyncio
    async def test_streamed_size_over_cap_removes_partial_file(self, temp_output_dir):
        """Without Content-Length the cap is enforced while streaming."""
        dest = temp_output_dir / "clip"
        handler = lambda r: httpx.Response(200, content=_chunks(10 * 1024))  # noqa: E731

        with pytest.raises(ClipTooLargeError) as exc_info:
            await download_file(URL, str(dest), max_bytes=4096, transport=_transport(handler))

        assert isinstance(exc_info.value, DownloadError)
        assert exc_info.value.status_code == 413
        assert not dest.exists()

    @pytest.mark.asyncio
    async def test_timeout(self, temp_output_dir):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("timed out", request=request)

        with pytest.raises(DownloadTimeoutError):
            await download_file(URL, str(temp_output_dir / "clip"), transport=_transport(handler))

    @pytest.mark.asyncio
    async def test_connection_error(self, temp_output_dir):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        with pytest.raises(DownloadError) as exc_info:
            await download_file(URL, str(temp_output_dir / "clip"), transport=_transport(handler))

        assert exc_info.value.code == "DOWNLOAD_FAILED"

    @pytest.mark.asyncio
    async def test_follows_redirects(self, temp_output_dir):
        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.path == "/clip.mp4":
                return httpx.Response(302, headers={"location": "https://cdn.example.com/real.mp4"})
            return httpx.Response(200, content=b"moved")

        dest = temp_output_dir / "clip"
        await download_file(URL, str(dest), transport=_transport(handler))

        assert dest.read_bytes() == b"moved"


class TestLoadClip:
    """Download followed by probing."""

    @pytest.mark.asyncio
    async def test_load_clip_uses_probe(self, temp_output_dir):
        dest = temp_output_dir / "input-0"
        transport = _transport(lambda r: httpx.Response(200, content=b"data"))

        with patch(
            "clipstitch.render.clip_loader.probe_clip",
            return_value=ProbeResult(duration_s=6.5, has_audio=True),
        ) as mock_probe:
            clip = await load_clip(URL, str(dest), transport=transport)

        mock_probe.assert_called_once_with(str(dest), None)
        assert clip.duration == 6.5
        assert clip.has_audio
        assert not clip.probe_degraded
        assert clip.local_path == str(dest)
        assert clip.source_url == URL

    @pytest.mark.asyncio
    async def test_download_failure_skips_probe(self, temp_output_dir):
        transport = _transport(lambda r: httpx.Response(404))

        with patch("clipstitch.render.clip_loader.probe_clip") as mock_probe:
            with pytest.raises(ClipNotFoundError):
                await load_clip(URL, str(temp_output_dir / "input-0"), transport=transport)

        mock_probe.assert_not_called()


class TestProbeClip:
    """Probe fallbacks."""

    def _ffprobe(self, duration: str | None, audio: bool):
        def fake_run(cmd, **kwargs):
            if "-show_format" in cmd:
                fmt = {"duration": duration} if duration is not None else {}
                out = json.dumps({"format": fmt})
            else:
                out = json.dumps({"streams": [{"codec_type": "audio"}] if audio else []})
            return subprocess.CompletedProcess(cmd, 0, stdout=out, stderr="")

        return fake_run

    def test_probe_success(self):
        with patch("clipstitch.utils.media_info.subprocess.run", side_effect=self._ffprobe("12.5", True)):
            result = probe_clip("/tmp/clip.mp4")

        assert result == ProbeResult(duration_s=12.5, has_audio=True, degraded=False)

    def test_missing_duration_falls_back_to_default(self):
        with patch("clipstitch.utils.media_info.subprocess.run", side_effect=self._ffprobe(None, False)):
            result = probe_clip("/tmp/clip.mp4")

        assert result.duration_s == 8.0
        assert result.has_audio is False
        assert result.degraded

    def test_ffprobe_unavailable(self):
        with patch("clipstitch.utils.media_info.subprocess.run", side_effect=FileNotFoundError("ffprobe")):
            result = probe_clip("/tmp/clip.mp4")

        assert result == ProbeResult(duration_s=8.0, has_audio=False, degraded=True)

    def test_duration_hint_skips_duration_probe(self):
        with patch("clipstitch.utils.media_info.subprocess.run", side_effect=self._ffprobe(None, True)) as run:
            result = probe_clip("/tmp/clip.mp4", duration_hint=4.0)

        assert result == ProbeResult(duration_s=4.0, has_audio=True, degraded=False)
        assert run.call_count == 1

    def test_ffprobe_error_exit(self):
        failed = subprocess.CompletedProcess([], 1, stdout="", stderr="moov atom not found")
        with patch("clipstitch.utils.media_info.subprocess.run", return_value=failed):
            result = probe_clip("/tmp/clip.mp4", duration_hint=3.0)

        assert result.duration_s == 3.0
        assert result.has_audio is False
        assert result.degraded


@pytest.mark.requires_ffmpeg
class TestProbeRealFile:
    """Probing files produced by a real ffmpeg."""

    def test_clip_with_audio(self, sample_video):
        result = probe_clip(str(sample_video))

        assert 2.5 <= result.duration_s <= 3.5
        assert result.has_audio
        assert not result.degraded

    def test_clip_without_audio(self, sample_video_no_audio):
        result = probe_clip(str(sample_video_no_audio))

        assert result.has_audio is False
        assert not result.degraded
        assert os.path.getsize(sample_video_no_audio) > 0
