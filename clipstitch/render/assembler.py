"""
Multi-clip crossfade assembly pipeline.

This module orchestrates one assembly:
1. Download and probe every clip
2. Compose the crossfade timeline
3. Emit the filter graph
4. Run ffmpeg
5. Finalize the output and clean up
"""

import logging
import os
import time
from dataclasses import dataclass, field
from typing import Callable, Optional

import httpx

from clipstitch.config import get_settings
from clipstitch.exceptions import TranscodeError, TranscodeTimeoutError, ValidationError
from clipstitch.render.clip_loader import Clip, load_clip
from clipstitch.render.filter_graph import GraphClip, emit_assembly_graph
from clipstitch.render.finalizer import cleanup_work_dir, create_work_dir, finalize
from clipstitch.render.timeline import Timeline, compose_timeline
from clipstitch.render.transcoder import CONTAINER_CODECS, build_assembly_command, run_ffmpeg
from clipstitch.services.storage_service import LocalStorageService

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int, str], None]


@dataclass(frozen=True)
class ClipSource:
    url: str
    duration: float | None = None  # Caller-supplied duration; skips probing


@dataclass(frozen=True)
class TransitionConfig:
    kind: str = "fade"
    duration_seconds: float = 1.0


@dataclass(frozen=True)
class OutputConfig:
    container_format: str = "mp4"
    width: int = 1920
    height: int = 1080


@dataclass
class AssemblyResult:
    filename: str
    size_bytes: int
    duration_seconds: float
    processing_time_ms: int
    has_audio: bool
    timeline: Timeline
    warnings: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "filename": self.filename,
            "size": self.size_bytes,
            "duration": round(self.duration_seconds, 2),
            "processingTime": self.processing_time_ms,
            "hasAudio": self.has_audio,
            "offsets": self.timeline.to_dict()["offsets"],
            "warnings": self.warnings,
        }


class AssemblyPipeline:
    """Runs a crossfade assembly in a private working directory."""

    def __init__(
        self,
        storage: Optional[LocalStorageService] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.settings = get_settings()
        self.storage = storage or LocalStorageService()
        self._transport = transport
        self._progress_callback: Optional[ProgressCallback] = None

    def set_progress_callback(self, callback: Optional[ProgressCallback]) -> None:
        """Set callback for progress updates."""
        self._progress_callback = callback

    def _update_progress(self, progress: int, stage: str) -> None:
        if self._progress_callback:
            self._progress_callback(progress, stage)

    def validate(self, sources: list[ClipSource], transition: TransitionConfig, output: OutputConfig) -> None:
        if len(sources) < 2:
            raise ValidationError("At least 2 videos are required for assembly")
        if len(sources) > self.settings.max_videos:
            raise ValidationError(f"Maximum {self.settings.max_videos} videos allowed")
        if transition.kind != "fade":
            raise ValidationError(f"Unsupported transition type: {transition.kind}")
        if transition.duration_seconds < 0:
            raise ValidationError("Transition duration must not be negative")
        if output.container_format not in CONTAINER_CODECS:
            raise ValidationError(f"Unsupported output format: {output.container_format}")
        if output.width <= 0 or output.height <= 0:
            raise ValidationError("Output resolution must be positive")

    async def run(
        self,
        sources: list[ClipSource],
        transition: TransitionConfig,
        output: OutputConfig,
    ) -> AssemblyResult:
        """
        Execute the full assembly pipeline.

        Raises:
            ValidationError: Bad parameters (before any download)
            DownloadError: A clip could not be fetched
            TranscodeError: ffmpeg failed or timed out
            StorageError: The output could not be stored
        """
        self.validate(sources, transition, output)

        start = time.monotonic()
        work_dir = create_work_dir()
        logger.info(f"[ASSEMBLE] Starting job in {work_dir} with {len(sources)} videos")

        try:
            self._update_progress(10, "Downloading clips")
            clips: list[Clip] = []
            for i, source in enumerate(sources):
                logger.info(f"[ASSEMBLE] Downloading video {i + 1}/{len(sources)}: {source.url[:80]}")
                local_path = os.path.join(work_dir, f"input-{i}")
                clips.append(await load_clip(source.url, local_path, source.duration, self._transport))
            self._update_progress(40, "Clips downloaded")

            audio_enabled = all(c.has_audio for c in clips)
            logger.info(
                "[ASSEMBLE] Audio processing: "
                + ("enabled (all videos have audio)" if audio_enabled else "disabled (some videos missing audio)")
            )

            timeline = compose_timeline([c.duration for c in clips], transition.duration_seconds)
            graph = emit_assembly_graph(
                [GraphClip(duration=c.duration, has_audio=c.has_audio) for c in clips],
                timeline,
                output.width,
                output.height,
                audio_enabled,
                fps=self.settings.render_fps,
                sample_rate=self.settings.render_audio_sample_rate,
                transition=transition.kind,
            )

            raw_output = os.path.join(work_dir, f"output.{output.container_format}")
            cmd = build_assembly_command(
                [c.local_path for c in clips],
                graph,
                raw_output,
                output.container_format,
                timeline.total_duration,
            )

            self._update_progress(50, "Transcoding")
            result = await run_ffmpeg(cmd)
            if result.timed_out:
                raise TranscodeTimeoutError(stderr=result.stderr_tail)
            if not result.exit_ok:
                raise TranscodeError(
                    f"FFmpeg assembly failed: {result.stderr_tail or 'no diagnostic output'}",
                    stderr=result.stderr_tail,
                )
            self._update_progress(90, "Transcode complete")

            finalized = await finalize(raw_output, self.storage, "assembled", timeline.total_duration)

            warnings = [
                f"Could not fully probe video {i + 1}; using fallback metadata"
                for i, c in enumerate(clips)
                if c.probe_degraded
            ]
            if not audio_enabled and any(c.has_audio for c in clips):
                warnings.append("Audio disabled: not every video has an audio stream")

            processing_ms = int((time.monotonic() - start) * 1000)
            logger.info(f"[ASSEMBLE] Complete in {processing_ms}ms: {finalized.filename}")
            return AssemblyResult(
                filename=finalized.filename,
                size_bytes=finalized.size_bytes,
                duration_seconds=finalized.duration_seconds,
                processing_time_ms=processing_ms,
                has_audio=audio_enabled,
                timeline=timeline,
                warnings=warnings,
            )
        finally:
            cleanup_work_dir(work_dir)
