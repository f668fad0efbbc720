"""Video trimming service.

Provides:
- Single-clip trim (cut a time range) as a stateless transform
- A download -> trim -> finalize pipeline usable by the job orchestrator
"""

import logging
import os
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Optional

import httpx

from clipstitch.config import get_settings
from clipstitch.exceptions import TranscodeError, TranscodeTimeoutError, ValidationError
from clipstitch.render.clip_loader import load_clip
from clipstitch.render.filter_graph import format_number
from clipstitch.render.finalizer import cleanup_work_dir, create_work_dir, finalize
from clipstitch.render.transcoder import CONTAINER_CODECS, run_ffmpeg
from clipstitch.services.storage_service import LocalStorageService

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TrimConfig:
    """Configuration for video trimming."""

    start_s: float
    end_s: Optional[float] = None
    container_format: str = "mp4"
    reencode: bool = False

    def validate(self) -> None:
        if self.start_s < 0:
            raise ValidationError("start must not be negative")
        if self.end_s is not None and self.end_s <= self.start_s:
            raise ValidationError("end must be greater than start")
        if self.container_format not in CONTAINER_CODECS:
            raise ValidationError(f"Unsupported output format: {self.container_format}")


@dataclass
class VideoOutput:
    """Output result from video processing."""

    path: Path
    duration_s: Optional[float]  # None when the source length is unknown and no end was given


class VideoTrimmer:
    """Service for video trimming."""

    def __init__(self):
        self.settings = get_settings()

    def build_command(
        self,
        input_path: str,
        output_path: str,
        config: TrimConfig,
        source_duration: Optional[float],
    ) -> list[str]:
        """Build the ffmpeg argv for a trim without executing it.

        With no ``end_s`` and an unknown ``source_duration`` the cut runs to
        the end of the input.
        """
        end_s = config.end_s if config.end_s is not None else source_duration
        length = ["-t", format_number(max(0.0, end_s - config.start_s))] if end_s is not None else []

        cmd = [self.settings.ffmpeg_path, "-y", "-hide_banner", "-nostats"]
        # WebM cannot carry the H.264/AAC streams a copy would keep.
        if config.reencode or config.container_format == "webm":
            # Re-encode: input first, then seek (slower but precise)
            codecs = CONTAINER_CODECS[config.container_format]
            cmd.extend(["-i", input_path])
            cmd.extend(["-ss", format_number(config.start_s), *length])
            cmd.extend(codecs["video"])
            cmd.extend(["-crf", str(self.settings.render_video_crf)])
            cmd.extend(codecs["audio"])
            cmd.extend(["-b:a", self.settings.render_audio_bitrate])
        else:
            # Stream copy: seek first (fast but may be imprecise)
            cmd.extend(["-ss", format_number(config.start_s), "-i", input_path])
            cmd.extend(length)
            cmd.extend(["-c", "copy"])
        cmd.append(output_path)
        return cmd

    async def trim(
        self,
        input_path: str,
        output_path: str,
        config: TrimConfig,
        source_duration: Optional[float],
    ) -> VideoOutput:
        """Trim video from ``start_s`` to ``end_s`` (or the end of the source).

        ``source_duration`` is None when the source could not be probed; the
        range is then passed to ffmpeg unchecked.

        Raises:
            ValidationError: If the range lies outside the source
            TranscodeError: If ffmpeg fails
        """
        config.validate()
        if source_duration is not None and config.start_s >= source_duration:
            raise ValidationError(
                f"start ({config.start_s}s) is beyond the video duration ({source_duration}s)"
            )

        end_s = config.end_s
        if source_duration is not None:
            end_s = min(end_s, source_duration) if end_s is not None else source_duration
        clamped = TrimConfig(config.start_s, end_s, config.container_format, config.reencode)

        result = await run_ffmpeg(self.build_command(input_path, output_path, clamped, source_duration))
        if result.timed_out:
            raise TranscodeTimeoutError(stderr=result.stderr_tail)
        if not result.exit_ok:
            raise TranscodeError(f"FFmpeg trim failed: {result.stderr_tail}", stderr=result.stderr_tail)

        duration_s = end_s - config.start_s if end_s is not None else None
        return VideoOutput(path=Path(output_path), duration_s=duration_s)


async def run_trim(
    url: str,
    config: TrimConfig,
    storage: Optional[LocalStorageService] = None,
    progress: Optional[Callable[[int, str], None]] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> dict:
    """Download a clip, trim it and store the result.

    When the source cannot be probed its fallback duration is not trusted for
    range checks; the result then carries a warning.
    """
    config.validate()
    storage = storage or LocalStorageService()
    report = progress or (lambda pct, stage: None)

    start = time.monotonic()
    work_dir = create_work_dir()
    try:
        report(10, "Downloading clip")
        clip = await load_clip(url, os.path.join(work_dir, "input"), transport=transport)
        report(40, "Clip downloaded")

        warnings = []
        source_duration: Optional[float] = clip.duration
        if clip.probe_degraded:
            source_duration = None
            warnings.append("Could not fully probe the source video; trim range was not checked")
            logger.warning(f"[TRIM] Probe degraded for {url}, skipping range check")

        report(50, "Transcoding")
        raw_output = os.path.join(work_dir, f"trimmed.{config.container_format}")
        output = await VideoTrimmer().trim(clip.local_path, raw_output, config, source_duration)
        report(90, "Transcode complete")

        finalized = await finalize(raw_output, storage, "trimmed", output.duration_s)
        return {
            **finalized.to_dict(),
            "processingTime": int((time.monotonic() - start) * 1000),
            "warnings": warnings,
        }
    finally:
        cleanup_work_dir(work_dir)
