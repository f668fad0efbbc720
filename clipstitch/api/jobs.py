from typing import Any

from fastapi import APIRouter

from clipstitch.api.deps import Orchestrator

router = APIRouter()


@router.get("/job/{job_id}")
async def get_job(job_id: str, orchestrator: Orchestrator) -> dict[str, Any]:
    """Get the status of a background job. 404 once the job has been swept."""
    return orchestrator.registry.get(job_id).to_dict()
