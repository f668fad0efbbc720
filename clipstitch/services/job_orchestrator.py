"""Background job execution with webhook notification.

Any pipeline that accepts a progress callback and returns a result dict can
run as a job: assembly and every single-clip transform go through the same
path.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Optional

import httpx

from clipstitch.config import get_settings
from clipstitch.exceptions import ClipstitchError, JobNotFoundError
from clipstitch.services.job_registry import Job, JobRegistry, JobStatus, job_registry

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int, str], None]
JobWork = Callable[[ProgressCallback], Awaitable[dict[str, Any]]]
ResultDecorator = Callable[[dict[str, Any]], dict[str, Any]]


class JobOrchestrator:
    """Runs pipelines in the background and tracks their jobs."""

    def __init__(
        self,
        registry: Optional[JobRegistry] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.registry = registry if registry is not None else job_registry
        self.settings = get_settings()
        self._transport = transport

    def submit(self, kind: str) -> Job:
        """Register a queued job. Call ``run`` from a background task to execute it."""
        job = self.registry.create(kind)
        logger.info(f"[JOB] {job.id} queued ({kind})")
        return job

    def _progress_callback(self, job_id: str) -> ProgressCallback:
        def update(progress: int, stage: str) -> None:
            try:
                self.registry.update(job_id, progress=progress, stage=stage)
            except JobNotFoundError:
                logger.warning(f"[JOB] {job_id} vanished while reporting progress")

        return update

    async def run(
        self,
        job_id: str,
        work: JobWork,
        callback_url: Optional[str] = None,
        decorate_result: Optional[ResultDecorator] = None,
    ) -> Job:
        """
        Execute ``work`` for a queued job and record the outcome.

        The job moves to ``processing`` immediately, then to ``completed`` with
        the result or ``failed`` with the error. On either terminal state one
        callback is attempted when ``callback_url`` is set.

        Returns:
            Final job snapshot
        """
        self.registry.update(
            job_id,
            status=JobStatus.PROCESSING,
            started_at=datetime.now(timezone.utc),
            stage="Starting",
        )

        try:
            result = await work(self._progress_callback(job_id))
            if decorate_result:
                result = decorate_result(result)
        except ClipstitchError as e:
            logger.error(f"[JOB] {job_id} failed: {e.message}")
            job = self._fail(job_id, e.message, e.code)
        except Exception as e:
            logger.exception(f"[JOB] {job_id} failed unexpectedly")
            job = self._fail(job_id, str(e) or e.__class__.__name__, "INTERNAL_ERROR")
        else:
            job = self.registry.update(
                job_id,
                status=JobStatus.COMPLETED,
                progress=100,
                stage="Complete",
                result=result,
                completed_at=datetime.now(timezone.utc),
            )
            logger.info(f"[JOB] {job_id} completed")

        if callback_url:
            await self.notify(callback_url, job)
        return job

    def _fail(self, job_id: str, message: str, code: str) -> Job:
        return self.registry.update(
            job_id,
            status=JobStatus.FAILED,
            stage="Failed",
            error=message,
            error_code=code,
            failed_at=datetime.now(timezone.utc),
        )

    @staticmethod
    def callback_payload(job: Job) -> dict[str, Any]:
        payload: dict[str, Any] = {"jobId": job.id, "status": job.status.value}
        if job.status == JobStatus.COMPLETED:
            payload["result"] = job.result
        else:
            payload["error"] = job.error
            payload["errorCode"] = job.error_code
        return payload

    async def notify(self, callback_url: str, job: Job) -> bool:
        """POST the job outcome to ``callback_url``. Never raises.

        Returns:
            True if the callback was delivered with a 2xx response
        """
        try:
            async with httpx.AsyncClient(
                timeout=self.settings.callback_timeout_s, transport=self._transport
            ) as client:
                response = await client.post(callback_url, json=self.callback_payload(job))
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            logger.error(f"[JOB] Callback for {job.id} to {callback_url} failed: {e}")
            return False

        if not response.is_success:
            logger.error(f"[JOB] Callback for {job.id} returned HTTP {response.status_code}")
            return False

        logger.info(f"[JOB] Callback for {job.id} delivered")
        return True


def get_orchestrator() -> JobOrchestrator:
    return JobOrchestrator()
