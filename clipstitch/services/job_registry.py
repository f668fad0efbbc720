"""In-memory job registry with TTL sweep.

Jobs live only in this process; a restart forgets them. Access goes through
create/get/update/sweep, all under one lock, and callers only ever see copies.
"""

import copy
import threading
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any

from clipstitch.exceptions import InvalidJobTransitionError, JobNotFoundError


class JobStatus(str, Enum):
    """Job lifecycle state."""

    QUEUED = "queued"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.COMPLETED, JobStatus.FAILED)


_ALLOWED_TRANSITIONS: dict[JobStatus, set[JobStatus]] = {
    JobStatus.QUEUED: {JobStatus.PROCESSING, JobStatus.FAILED},
    JobStatus.PROCESSING: {JobStatus.COMPLETED, JobStatus.FAILED},
    JobStatus.COMPLETED: set(),
    JobStatus.FAILED: set(),
}


@dataclass
class Job:
    """Asynchronous execution state of one pipeline invocation."""

    id: str
    kind: str
    status: JobStatus = JobStatus.QUEUED
    progress: int = 0
    stage: str | None = None
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    started_at: datetime | None = None
    completed_at: datetime | None = None
    failed_at: datetime | None = None
    result: dict[str, Any] | None = None
    error: str | None = None
    error_code: str | None = None

    @property
    def finished_at(self) -> datetime | None:
        return self.completed_at or self.failed_at

    def to_dict(self) -> dict[str, Any]:
        """Serialize to the job status payload."""
        data: dict[str, Any] = {
            "jobId": self.id,
            "kind": self.kind,
            "status": self.status.value,
            "progress": self.progress,
            "stage": self.stage,
            "createdAt": self.created_at.isoformat(),
            "startedAt": self.started_at.isoformat() if self.started_at else None,
        }
        if self.status == JobStatus.COMPLETED:
            data["result"] = self.result
            data["completedAt"] = self.completed_at.isoformat() if self.completed_at else None
        elif self.status == JobStatus.FAILED:
            data["error"] = self.error
            data["errorCode"] = self.error_code
            data["failedAt"] = self.failed_at.isoformat() if self.failed_at else None
        return data


class JobRegistry:
    """Thread-safe in-memory job store."""

    def __init__(self) -> None:
        self._jobs: dict[str, Job] = {}
        self._lock = threading.Lock()

    def create(self, kind: str) -> Job:
        """Register a new queued job."""
        job = Job(id=str(uuid.uuid4()), kind=kind)
        with self._lock:
            self._jobs[job.id] = job
            return copy.deepcopy(job)

    def get(self, job_id: str) -> Job:
        """Get a snapshot of a job.

        Raises:
            JobNotFoundError: Unknown or already swept
        """
        with self._lock:
            job = self._jobs.get(job_id)
            if job is None:
                raise JobNotFoundError(job_id)
            return copy.deepcopy(job)

    def update(self, job_id: str, **changes: Any) -> Job:
        """Apply field changes to a job and return the new snapshot.

        A ``status`` change must follow the lifecycle
        ``queued -> processing -> completed | failed``.

        Raises:
            JobNotFoundError: Unknown or already swept
            InvalidJobTransitionError: Illegal status change
        """
        with self._lock:
            job = self._jobs.get(job_id)
            if job is None:
                raise JobNotFoundError(job_id)

            new_status = changes.get("status")
            if new_status is not None:
                new_status = JobStatus(new_status)
                if new_status != job.status and new_status not in _ALLOWED_TRANSITIONS[job.status]:
                    raise InvalidJobTransitionError(job_id, job.status.value, new_status.value)
                changes["status"] = new_status
            elif job.status.is_terminal:
                raise InvalidJobTransitionError(job_id, job.status.value, job.status.value)

            for key, value in changes.items():
                if not hasattr(job, key):
                    raise AttributeError(f"Job has no field {key!r}")
                setattr(job, key, value)
            return copy.deepcopy(job)

    def sweep(self, retention_s: float, now: datetime | None = None) -> int:
        """Remove jobs whose last timestamp is older than ``retention_s``.

        Returns:
            Number of jobs removed
        """
        now = now or datetime.now(timezone.utc)
        cutoff = now - timedelta(seconds=retention_s)
        with self._lock:
            expired = [
                job_id
                for job_id, job in self._jobs.items()
                if (job.finished_at or job.created_at) < cutoff
            ]
            for job_id in expired:
                del self._jobs[job_id]
            return len(expired)

    def __len__(self) -> int:
        with self._lock:
            return len(self._jobs)


# Singleton instance
job_registry = JobRegistry()
