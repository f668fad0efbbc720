"""Media file information utilities using FFprobe."""

import json
import logging
import re
import subprocess
from dataclasses import dataclass

from clipstitch.config import get_settings

logger = logging.getLogger(__name__)


def _get_settings():
    """Get settings lazily to avoid import issues in tests."""
    return get_settings()


@dataclass(frozen=True)
class ProbeResult:
    """Duration and audio presence of a media file.

    ``degraded`` is set when either value is a fallback rather than a probe
    result.
    """

    duration_s: float
    has_audio: bool
    degraded: bool = False


def _run_ffprobe(file_path: str, *args) -> dict:
    """Run ffprobe and return parsed JSON."""
    settings = _get_settings()
    cmd = [
        settings.ffprobe_path,
        "-v", "error",
        "-print_format", "json",
        *args,
        file_path,
    ]

    try:
        result = subprocess.run(cmd, capture_output=True, text=True, timeout=60)
    except (OSError, subprocess.TimeoutExpired) as e:
        raise RuntimeError(f"ffprobe could not run: {e}") from e
    if result.returncode != 0:
        raise RuntimeError(f"ffprobe failed: {result.stderr}")

    try:
        return json.loads(result.stdout)
    except json.JSONDecodeError as e:
        raise RuntimeError(f"Failed to parse ffprobe output: {e}") from e


def get_media_duration(file_path: str) -> float:
    """
    Get media file duration in seconds.

    Raises:
        RuntimeError: If ffprobe fails or duration not found
    """
    data = _run_ffprobe(file_path, "-show_format")
    format_info = data.get("format", {})

    if "duration" not in format_info:
        raise RuntimeError(f"Duration not found in: {file_path}")

    duration = float(format_info["duration"])
    if duration <= 0:
        raise RuntimeError(f"Non-positive duration in: {file_path}")
    return duration


def has_audio_track(file_path: str) -> bool:
    """
    Check if media file has an audio track.

    Raises:
        RuntimeError: If ffprobe fails
    """
    data = _run_ffprobe(file_path, "-show_streams", "-select_streams", "a")
    return any(s.get("codec_type") == "audio" for s in data.get("streams", []))


def probe_clip(file_path: str, duration_hint: float | None = None) -> ProbeResult:
    """
    Probe duration and audio presence, falling back instead of failing.

    A failed duration probe falls back to ``default_clip_duration_s``; a failed
    audio probe falls back to "no audio", which only disables audio mixing.

    Args:
        file_path: Path to media file
        duration_hint: Caller-supplied duration; skips the duration probe

    Returns:
        ProbeResult
    """
    settings = _get_settings()
    degraded = False

    if duration_hint and duration_hint > 0:
        duration = duration_hint
    else:
        try:
            duration = get_media_duration(file_path)
        except (RuntimeError, ValueError) as e:
            logger.warning(
                f"[PROBE] Could not probe duration for {file_path}, "
                f"using default {settings.default_clip_duration_s}s: {e}"
            )
            duration = settings.default_clip_duration_s
            degraded = True

    try:
        audio = has_audio_track(file_path)
    except RuntimeError as e:
        logger.warning(f"[PROBE] Could not probe audio for {file_path}, assuming no audio: {e}")
        audio = False
        degraded = True

    return ProbeResult(duration_s=duration, has_audio=audio, degraded=degraded)


def get_ffmpeg_version() -> str | None:
    """Return the installed ffmpeg version string, or None if unavailable."""
    settings = _get_settings()
    try:
        result = subprocess.run(
            [settings.ffmpeg_path, "-version"], capture_output=True, text=True, timeout=10
        )
    except (OSError, subprocess.TimeoutExpired):
        return None
    if result.returncode != 0:
        return None

    match = re.search(r"ffmpeg version (\S+)", result.stdout)
    return match.group(1) if match else "unknown"
