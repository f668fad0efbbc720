"""Trim API endpoint."""

import logging
from typing import Any

from fastapi import APIRouter, BackgroundTasks, status
from fastapi.responses import JSONResponse

from clipstitch.api.deps import BaseUrl, Orchestrator, Storage, download_url
from clipstitch.schemas.assemble import JobAcceptedResponse
from clipstitch.schemas.trim import TrimRequest, TrimResponse
from clipstitch.services.video_trimmer import run_trim

router = APIRouter()
logger = logging.getLogger(__name__)


@router.post(
    "/trim",
    response_model=TrimResponse,
    responses={202: {"model": JobAcceptedResponse}},
)
async def trim_video(
    request: TrimRequest,
    background_tasks: BackgroundTasks,
    storage: Storage,
    orchestrator: Orchestrator,
    base_url: BaseUrl,
) -> Any:
    """Cut a time range out of a single video."""
    url = str(request.url)
    config = request.to_config()
    config.validate()

    if request.callback_url is None:
        result = await run_trim(url, config, storage=storage)
        return TrimResponse(video_url=download_url(base_url, result["filename"]), **result)

    async def work(progress) -> dict[str, Any]:
        return await run_trim(url, config, storage=storage, progress=progress)

    def add_video_url(result: dict[str, Any]) -> dict[str, Any]:
        return {"videoUrl": download_url(base_url, result["filename"]), **result}

    job = orchestrator.submit("trim")
    background_tasks.add_task(orchestrator.run, job.id, work, str(request.callback_url), add_video_url)

    accepted = JobAcceptedResponse(job_id=job.id, message="Trim queued; result will be POSTed to the callback URL")
    return JSONResponse(
        status_code=status.HTTP_202_ACCEPTED,
        content=accepted.model_dump(by_alias=True),
    )
