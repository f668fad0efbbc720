"""Persisting transcoder output and removing working directories."""

import asyncio
import logging
import os
import shutil
import tempfile
from dataclasses import dataclass
from pathlib import Path

from clipstitch.config import get_settings
from clipstitch.exceptions import StorageError, TranscodeError
from clipstitch.services.storage_service import LocalStorageService
from clipstitch.utils.media_info import get_media_duration

logger = logging.getLogger(__name__)

# Allowed difference between the computed and the probed output duration.
DURATION_TOLERANCE_S = 0.1


@dataclass
class FinalizedOutput:
    """A finished output file in the store."""

    filename: str
    path: Path
    size_bytes: int
    duration_seconds: float

    def to_dict(self) -> dict:
        return {
            "filename": self.filename,
            "size": self.size_bytes,
            "duration": round(self.duration_seconds, 2),
        }


def create_work_dir(prefix: str = "clipstitch-job-") -> str:
    """Create a private working directory for one operation."""
    root = get_settings().work_dir_root
    os.makedirs(root, exist_ok=True)
    return tempfile.mkdtemp(prefix=prefix, dir=root)


def cleanup_work_dir(work_dir: str | None) -> bool:
    """Remove a working directory. Failures are logged, never raised."""
    if not work_dir or not os.path.exists(work_dir):
        return True
    try:
        shutil.rmtree(work_dir)
        logger.info(f"[CLEANUP] Removed {work_dir}")
        return True
    except OSError as e:
        error = StorageError(f"Failed to remove working directory {work_dir}: {e}")
        logger.error(f"[CLEANUP] {error.message}")
        return False


async def finalize(
    raw_output_path: str,
    storage: LocalStorageService,
    prefix: str,
    computed_duration: float | None = None,
) -> FinalizedOutput:
    """
    Move the transcoder output into the store and derive reported metadata.

    The reported duration is ``computed_duration`` when given; the stored file
    is probed to cross-check it (a mismatch is only logged). Without a computed
    duration the probe is authoritative.

    Raises:
        TranscodeError: If the transcoder left no usable output file
        StorageError: If the file could not be stored
    """
    if not os.path.isfile(raw_output_path) or os.path.getsize(raw_output_path) == 0:
        raise TranscodeError("FFmpeg produced no output file")

    ext = Path(raw_output_path).suffix.lstrip(".") or "mp4"
    filename = storage.generate_filename(prefix, ext)
    stored_path, size = await asyncio.to_thread(storage.save_file, raw_output_path, filename)

    probed: float | None = None
    try:
        probed = await asyncio.to_thread(get_media_duration, str(stored_path))
    except (RuntimeError, ValueError) as e:
        logger.warning(f"[FINALIZE] Could not probe output duration: {e}")

    if computed_duration is not None:
        duration = computed_duration
        if probed is not None and abs(probed - computed_duration) > DURATION_TOLERANCE_S:
            logger.warning(
                f"[FINALIZE] Output duration {probed:.3f}s differs from computed {computed_duration:.3f}s"
            )
    elif probed is not None:
        duration = probed
    else:
        duration = 0.0

    return FinalizedOutput(filename=filename, path=stored_path, size_bytes=size, duration_seconds=duration)
