from __future__ import annotations

import threading
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

RenderStatus = Literal["queued", "running", "succeeded", "failed", "cancelled"]
TERMINAL_STATUSES = frozenset({"succeeded", "failed", "cancelled"})


def _now() -> datetime:
    return datetime.now(timezone.utc)


class VideoRenderJob(BaseModel):
    """One export of one timeline snapshot.

    ``plan_snapshot`` is the compiled plan at creation time; later edits to the
    project never reach a job that already exists.
    """

    model_config = ConfigDict(validate_assignment=True)

    id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    project_id: str
    status: RenderStatus = "queued"
    progress: float = 0.0
    output_path: Optional[str] = None
    error_message: Optional[str] = None
    plan_snapshot: Optional[Dict[str, Any]] = None
    request_payload: Dict[str, Any] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=_now)
    updated_at: datetime = Field(default_factory=_now)
    finished_at: Optional[datetime] = None

    @field_validator("progress")
    @classmethod
    def _fraction(cls, v: float) -> float:
        return max(0.0, min(1.0, v))

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES


class RenderJobRepository:
    def create(self, job: VideoRenderJob) -> VideoRenderJob:
        raise NotImplementedError

    def get(self, job_id: str) -> Optional[VideoRenderJob]:
        raise NotImplementedError

    def list(self, project_id: Optional[str] = None, status: Optional[str] = None) -> List[VideoRenderJob]:
        raise NotImplementedError

    def update(self, job: VideoRenderJob) -> VideoRenderJob:
        raise NotImplementedError


class InMemoryRenderJobRepository(RenderJobRepository):
    """Jobs keyed by id; the runner reports progress from its own thread."""

    def __init__(self) -> None:
        self.jobs: Dict[str, VideoRenderJob] = {}
        self._lock = threading.Lock()

    def create(self, job: VideoRenderJob) -> VideoRenderJob:
        with self._lock:
            self.jobs[job.id] = job
        return job

    def get(self, job_id: str) -> Optional[VideoRenderJob]:
        return self.jobs.get(job_id)

    def list(self, project_id: Optional[str] = None, status: Optional[str] = None) -> List[VideoRenderJob]:
        jobs = [
            j for j in self.jobs.values()
            if (project_id is None or j.project_id == project_id) and (status is None or j.status == status)
        ]
        return sorted(jobs, key=lambda j: j.created_at, reverse=True)

    def update(self, job: VideoRenderJob) -> VideoRenderJob:
        job.updated_at = _now()
        if job.is_terminal and job.finished_at is None:
            job.finished_at = job.updated_at
        with self._lock:
            self.jobs[job.id] = job
        return job
