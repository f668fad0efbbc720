"""
FFmpeg process invocation.

One subprocess per operation, executed without a shell. The process is killed
when it exceeds the wall-clock timeout or writes more diagnostic output than
the configured cap; either case is reported as a failed run.
"""

import asyncio
import logging
from dataclasses import dataclass

from clipstitch.config import get_settings
from clipstitch.render.filter_graph import FilterGraph, format_number

logger = logging.getLogger(__name__)

# Amount of stderr kept for error messages.
STDERR_TAIL_BYTES = 4000

# Codec arguments per container format.
CONTAINER_CODECS: dict[str, dict[str, list[str]]] = {
    "mp4": {
        "video": ["-c:v", "libx264"],
        "audio": ["-c:a", "aac"],
        "extra": ["-movflags", "+faststart"],
    },
    "mov": {
        "video": ["-c:v", "libx264"],
        "audio": ["-c:a", "aac"],
        "extra": ["-movflags", "+faststart"],
    },
    "mkv": {
        "video": ["-c:v", "libx264"],
        "audio": ["-c:a", "aac"],
        "extra": [],
    },
    "webm": {
        "video": ["-c:v", "libvpx-vp9", "-b:v", "0", "-row-mt", "1"],
        "audio": ["-c:a", "libopus"],
        "extra": [],
    },
}


@dataclass
class TranscodeResult:
    """Outcome of a single ffmpeg run."""

    exit_ok: bool
    returncode: int | None
    stderr: str
    timed_out: bool = False
    output_overflow: bool = False

    @property
    def stderr_tail(self) -> str:
        return self.stderr[-STDERR_TAIL_BYTES:]


async def _communicate(proc: asyncio.subprocess.Process, buffer: bytearray, limit: int) -> bool:
    """Collect stderr until the process exits. Returns False once ``limit`` is exceeded."""
    while True:
        chunk = await proc.stderr.read(65536)
        if not chunk:
            break
        buffer.extend(chunk)
        if len(buffer) > limit:
            return False
    await proc.wait()
    return True


async def run_ffmpeg(
    args: list[str],
    timeout_ms: int | None = None,
    max_output_bytes: int | None = None,
) -> TranscodeResult:
    """
    Run ffmpeg with the given arguments.

    Args:
        args: Full argv, starting with the ffmpeg executable
        timeout_ms: Kill the process after this many milliseconds
        max_output_bytes: Kill the process once captured output exceeds this

    Returns:
        TranscodeResult; ``exit_ok`` is True only for a clean zero exit
    """
    settings = get_settings()
    timeout_ms = timeout_ms if timeout_ms is not None else settings.ffmpeg_timeout_ms
    max_output_bytes = max_output_bytes if max_output_bytes is not None else settings.ffmpeg_max_output_bytes

    logger.info(f"[FFMPEG] Executing: {' '.join(args)[:500]}")

    try:
        proc = await asyncio.create_subprocess_exec(
            *args,
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.DEVNULL,
            stderr=asyncio.subprocess.PIPE,
        )
    except OSError as e:
        logger.error(f"[FFMPEG] Could not start {args[0]}: {e}")
        return TranscodeResult(exit_ok=False, returncode=None, stderr=str(e))

    stderr = bytearray()
    timed_out = False
    overflow = False

    try:
        overflow = not await asyncio.wait_for(
            _communicate(proc, stderr, max_output_bytes),
            timeout=timeout_ms / 1000,
        )
    except asyncio.TimeoutError:
        timed_out = True

    if timed_out or overflow:
        if proc.returncode is None:
            proc.kill()
        await proc.wait()
        reason = f"timed out after {timeout_ms}ms" if timed_out else f"exceeded {max_output_bytes} bytes of output"
        logger.error(f"[FFMPEG] Process killed: {reason}")

    text = stderr.decode("utf-8", errors="replace")
    exit_ok = not timed_out and not overflow and proc.returncode == 0
    if not exit_ok and not timed_out and not overflow:
        logger.error(f"[FFMPEG] Exit code {proc.returncode}: {text[-STDERR_TAIL_BYTES:]}")

    return TranscodeResult(
        exit_ok=exit_ok,
        returncode=proc.returncode,
        stderr=text,
        timed_out=timed_out,
        output_overflow=overflow,
    )


def build_assembly_command(
    input_paths: list[str],
    graph: FilterGraph,
    output_path: str,
    container_format: str,
    duration_s: float,
) -> list[str]:
    """Build the ffmpeg argv for a crossfade assembly without executing it."""
    settings = get_settings()
    codecs = CONTAINER_CODECS[container_format]

    cmd = [settings.ffmpeg_path, "-y", "-hide_banner", "-nostats"]
    for path in input_paths:
        cmd.extend(["-i", path])

    cmd.extend(["-filter_complex", graph.serialize()])
    cmd.extend(["-map", f"[{graph.video_output}]"])
    cmd.extend(codecs["video"])
    if container_format != "webm":
        cmd.extend(["-preset", settings.render_video_preset])
    cmd.extend(["-crf", str(settings.render_video_crf), "-pix_fmt", "yuv420p"])

    if graph.audio_output:
        cmd.extend(["-map", f"[{graph.audio_output}]"])
        cmd.extend(codecs["audio"])
        cmd.extend(["-b:a", settings.render_audio_bitrate])
    else:
        cmd.append("-an")

    cmd.extend(["-t", format_number(duration_s)])
    cmd.extend(codecs["extra"])
    cmd.append(output_path)
    return cmd
