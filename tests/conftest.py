"""
Pytest fixtures for clipstitch tests.

Output and working directories are redirected to a per-session temp root
before any clipstitch module reads its settings.

CI/CD Note:
Tests that run a real ffmpeg binary are marked with @pytest.mark.requires_ffmpeg
and skipped automatically when ffmpeg is not installed.
"""

import os
import shutil
import tempfile
from pathlib import Path

import pytest

_SESSION_ROOT = Path(tempfile.mkdtemp(prefix="clipstitch-tests-"))
os.environ.setdefault("OUTPUT_DIR", str(_SESSION_ROOT / "outputs"))
os.environ.setdefault("WORK_DIR_ROOT", str(_SESSION_ROOT / "work"))
os.environ.setdefault("BASE_URL", "http://testserver")

from clipstitch.config import get_settings  # noqa: E402

get_settings.cache_clear()


def pytest_configure(config):
    """Register custom markers for CI/CD test filtering."""
    config.addinivalue_line(
        "markers",
        "requires_ffmpeg: mark test as requiring the ffmpeg/ffprobe binaries (skipped if missing)"
    )


def _ffmpeg_available() -> bool:
    return shutil.which("ffmpeg") is not None and shutil.which("ffprobe") is not None


requires_ffmpeg = pytest.mark.skipif(
    not _ffmpeg_available(),
    reason="ffmpeg/ffprobe not installed"
)


def pytest_collection_modifyitems(config, items):
    for item in items:
        if "requires_ffmpeg" in item.keywords:
            item.add_marker(requires_ffmpeg)


@pytest.fixture
def temp_output_dir():
    """Temporary directory for test outputs."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def storage(temp_output_dir: Path):
    """Output store backed by a throwaway directory."""
    from clipstitch.services.storage_service import LocalStorageService

    return LocalStorageService(base_path=str(temp_output_dir / "store"))


@pytest.fixture
def work_root() -> Path:
    """Directory under which pipelines create their working directories."""
    root = Path(get_settings().work_dir_root)
    root.mkdir(parents=True, exist_ok=True)
    return root


@pytest.fixture
def sample_video(temp_output_dir: Path) -> Path:
    """A 3 second 320x240 test clip with a sine-wave audio track, made with ffmpeg."""
    import subprocess

    path = temp_output_dir / "sample.mp4"
    subprocess.run(
        [
            "ffmpeg", "-y", "-hide_banner", "-loglevel", "error",
            "-f", "lavfi", "-i", "testsrc=size=320x240:rate=30:duration=3",
            "-f", "lavfi", "-i", "sine=frequency=440:duration=3",
            "-c:v", "libx264", "-pix_fmt", "yuv420p", "-c:a", "aac", "-shortest",
            str(path),
        ],
        check=True,
        capture_output=True,
    )
    return path


@pytest.fixture
def sample_video_no_audio(temp_output_dir: Path) -> Path:
    """A 2 second 320x240 test clip without audio."""
    import subprocess

    path = temp_output_dir / "silent.mp4"
    subprocess.run(
        [
            "ffmpeg", "-y", "-hide_banner", "-loglevel", "error",
            "-f", "lavfi", "-i", "testsrc=size=320x240:rate=30:duration=2",
            "-c:v", "libx264", "-pix_fmt", "yuv420p",
            str(path),
        ],
        check=True,
        capture_output=True,
    )
    return path
