import logging
import shutil
import time
import uuid
from pathlib import Path

from clipstitch.config import get_settings
from clipstitch.exceptions import StorageError

logger = logging.getLogger(__name__)


class LocalStorageService:
    """Directory of finalized output files served by the download endpoint."""

    def __init__(self, base_path: str | None = None) -> None:
        self.base_path = Path(base_path or get_settings().output_dir)
        self.base_path.mkdir(parents=True, exist_ok=True)

    def _get_full_path(self, filename: str) -> Path:
        # Only the basename is honoured so callers cannot escape the output directory.
        return self.base_path / Path(filename).name

    @staticmethod
    def generate_filename(prefix: str, ext: str) -> str:
        """Unique output filename, e.g. ``assembled-1718000000000-1a2b3c4d.mp4``."""
        return f"{prefix}-{int(time.time() * 1000)}-{uuid.uuid4().hex[:8]}.{ext}"

    def save_file(self, local_path: str, filename: str) -> tuple[Path, int]:
        """Copy a local file into the store.

        Returns:
            Tuple of (stored path, size in bytes)

        Raises:
            StorageError: If the copy fails
        """
        full_path = self._get_full_path(filename)
        try:
            self.base_path.mkdir(parents=True, exist_ok=True)
            shutil.copyfile(local_path, full_path)
            size = full_path.stat().st_size
        except OSError as e:
            raise StorageError(f"Failed to save {filename}: {e}") from e

        logger.info(f"[STORAGE] Saved {filename} ({size / 1024 / 1024:.2f}MB) to {full_path}")
        return full_path, size

    def get_file_path(self, filename: str) -> Path | None:
        """Get the stored path for a filename, or None if missing/expired."""
        if not filename or filename in (".", ".."):
            return None
        full_path = self._get_full_path(filename)
        return full_path if full_path.is_file() else None

    def cleanup_old_files(self, max_age_s: float) -> int:
        """Delete stored files older than ``max_age_s``. Returns the number deleted."""
        if not self.base_path.exists():
            return 0

        now = time.time()
        deleted = 0
        for entry in self.base_path.iterdir():
            try:
                if entry.is_file() and now - entry.stat().st_mtime > max_age_s:
                    entry.unlink()
                    deleted += 1
            except OSError as e:
                logger.warning(f"[STORAGE] Could not check/delete {entry.name}: {e}")

        if deleted:
            logger.info(f"[STORAGE] Cleaned up {deleted} old files")
        return deleted


def get_storage() -> LocalStorageService:
    return LocalStorageService()
