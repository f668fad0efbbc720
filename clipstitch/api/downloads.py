import logging

from fastapi import APIRouter
from fastapi.responses import FileResponse

from clipstitch.api.deps import Storage
from clipstitch.exceptions import OutputFileNotFoundError

router = APIRouter()
logger = logging.getLogger(__name__)

MEDIA_TYPES = {
    "mp4": "video/mp4",
    "mov": "video/quicktime",
    "mkv": "video/x-matroska",
    "webm": "video/webm",
}


@router.get("/download/{filename}")
async def download_file(filename: str, storage: Storage) -> FileResponse:
    """Stream a finalized output file."""
    path = storage.get_file_path(filename)
    if path is None:
        raise OutputFileNotFoundError(f"File not found or expired: {filename}")

    media_type = MEDIA_TYPES.get(path.suffix.lstrip(".").lower(), "application/octet-stream")
    logger.info(f"[STORAGE] Serving {path.name}")
    return FileResponse(path, media_type=media_type, filename=path.name)
