"""Assembly API endpoint.

Without a callback URL the request blocks until the video is ready. With one,
the assembly runs as a background job and the caller gets a job id.
"""

import logging
from typing import Any

from fastapi import APIRouter, BackgroundTasks, status
from fastapi.responses import JSONResponse

from clipstitch.api.deps import BaseUrl, Orchestrator, Storage, download_url
from clipstitch.render.assembler import AssemblyPipeline
from clipstitch.schemas.assemble import AssembleRequest, AssembleResponse, JobAcceptedResponse

router = APIRouter()
logger = logging.getLogger(__name__)


@router.post(
    "/assemble",
    response_model=AssembleResponse,
    responses={202: {"model": JobAcceptedResponse}},
)
async def assemble_videos(
    request: AssembleRequest,
    background_tasks: BackgroundTasks,
    storage: Storage,
    orchestrator: Orchestrator,
    base_url: BaseUrl,
) -> Any:
    """Assemble 2 or more clips into one video with crossfades."""
    sources = request.to_sources()
    transition = request.transition.to_config()
    output = request.output.to_config()

    pipeline = AssemblyPipeline(storage=storage)
    # Reject bad parameters before anything is queued or downloaded
    pipeline.validate(sources, transition, output)

    logger.info(
        f"[ASSEMBLE] Request: {len(sources)} videos, "
        f"{transition.duration_seconds}s {transition.kind}, "
        f"{output.container_format} {output.width}x{output.height}"
    )

    if request.callback_url is None:
        result = await pipeline.run(sources, transition, output)
        return AssembleResponse(
            video_url=download_url(base_url, result.filename),
            **result.to_dict(),
        )

    async def work(progress) -> dict[str, Any]:
        pipeline.set_progress_callback(progress)
        result = await pipeline.run(sources, transition, output)
        return result.to_dict()

    def add_video_url(result: dict[str, Any]) -> dict[str, Any]:
        return {"videoUrl": download_url(base_url, result["filename"]), **result}

    job = orchestrator.submit("assemble")
    background_tasks.add_task(orchestrator.run, job.id, work, str(request.callback_url), add_video_url)

    accepted = JobAcceptedResponse(
        job_id=job.id,
        message=f"Assembly of {len(sources)} videos queued; result will be POSTed to the callback URL",
    )
    return JSONResponse(
        status_code=status.HTTP_202_ACCEPTED,
        content=accepted.model_dump(by_alias=True),
    )
