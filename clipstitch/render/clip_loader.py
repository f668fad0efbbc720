"""
Source clip loading.

Downloads each clip into the job's working directory with a size cap and a
timeout, then probes duration and audio presence. Probe failures degrade to
conservative defaults; download failures abort the request.
"""

import asyncio
import logging
import os
from dataclasses import dataclass

import httpx

from clipstitch.config import get_settings
from clipstitch.exceptions import (
    ClipAccessDeniedError,
    ClipNotFoundError,
    ClipTooLargeError,
    DownloadError,
    DownloadTimeoutError,
)
from clipstitch.utils.media_info import probe_clip

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Clip:
    """A downloaded and probed source clip."""

    source_url: str
    local_path: str
    duration: float
    has_audio: bool
    probe_degraded: bool = False


def _remove_partial(path: str) -> None:
    try:
        os.remove(path)
    except FileNotFoundError:
        pass
    except OSError as e:
        logger.warning(f"[DOWNLOAD] Could not remove partial file {path}: {e}")


async def download_file(
    url: str,
    dest_path: str,
    *,
    max_bytes: int | None = None,
    timeout_s: float | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
) -> int:
    """
    Stream ``url`` to ``dest_path``.

    Args:
        url: Source URL
        dest_path: Local file to write
        max_bytes: Abort once the declared or received size exceeds this
        timeout_s: Network timeout
        transport: Optional httpx transport (used by tests)

    Returns:
        Number of bytes written

    Raises:
        DownloadError: Or one of its subclasses; the partial file is removed
    """
    settings = get_settings()
    max_bytes = max_bytes if max_bytes is not None else settings.max_file_size_bytes
    timeout_s = timeout_s if timeout_s is not None else settings.download_timeout_s

    received = 0
    try:
        async with httpx.AsyncClient(
            timeout=timeout_s,
            follow_redirects=True,
            headers={"User-Agent": settings.download_user_agent},
            transport=transport,
        ) as client:
            async with asyncio.timeout(timeout_s):
                async with client.stream("GET", url) as response:
                    if response.status_code == 404:
                        raise ClipNotFoundError(url)
                    if response.status_code == 403:
                        raise ClipAccessDeniedError(url)
                    response.raise_for_status()

                    content_length = response.headers.get("content-length")
                    if content_length and content_length.isdigit() and int(content_length) > max_bytes:
                        raise ClipTooLargeError(max_bytes, url, declared_bytes=int(content_length))

                    with open(dest_path, "wb") as f:
                        async for chunk in response.aiter_bytes():
                            received += len(chunk)
                            if received > max_bytes:
                                raise ClipTooLargeError(max_bytes, url)
                            f.write(chunk)
    except DownloadError:
        _remove_partial(dest_path)
        raise
    except (httpx.TimeoutException, TimeoutError) as e:
        _remove_partial(dest_path)
        raise DownloadTimeoutError(url) from e
    except httpx.HTTPStatusError as e:
        _remove_partial(dest_path)
        raise DownloadError(
            f"Failed to download video: HTTP {e.response.status_code} from {url}", url=url
        ) from e
    except httpx.HTTPError as e:
        _remove_partial(dest_path)
        raise DownloadError(f"Failed to download video: {e}", url=url) from e
    except OSError as e:
        _remove_partial(dest_path)
        raise DownloadError(f"Failed to write file: {e}", url=url) from e

    return received


async def load_clip(
    url: str,
    dest_path: str,
    duration_hint: float | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
) -> Clip:
    """Download a clip and probe it."""
    size = await download_file(url, dest_path, transport=transport)

    probe = await asyncio.to_thread(probe_clip, dest_path, duration_hint)
    clip = Clip(
        source_url=url,
        local_path=dest_path,
        duration=probe.duration_s,
        has_audio=probe.has_audio,
        probe_degraded=probe.degraded,
    )
    logger.info(
        f"[DOWNLOAD] {os.path.basename(dest_path)} ({size} bytes), "
        f"duration: {clip.duration}s, audio: {clip.has_audio}"
    )
    return clip
