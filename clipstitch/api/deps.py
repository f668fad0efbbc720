from typing import Annotated

from fastapi import Depends, Request

from clipstitch.config import get_settings
from clipstitch.services.job_orchestrator import JobOrchestrator, get_orchestrator
from clipstitch.services.storage_service import LocalStorageService, get_storage

Storage = Annotated[LocalStorageService, Depends(get_storage)]
Orchestrator = Annotated[JobOrchestrator, Depends(get_orchestrator)]


def public_base_url(request: Request) -> str:
    """Base URL for download links.

    Uses ``settings.base_url`` when configured, otherwise the forwarded
    proto/host headers set by the proxy in front of the service.
    """
    configured = get_settings().base_url
    if configured:
        return configured.rstrip("/")

    proto = request.headers.get("x-forwarded-proto") or request.url.scheme
    host = request.headers.get("x-forwarded-host") or request.headers.get("host") or request.url.netloc
    return f"{proto}://{host}"


BaseUrl = Annotated[str, Depends(public_base_url)]


def download_url(base_url: str, filename: str) -> str:
    return f"{base_url}/api/download/{filename}"
