from __future__ import annotations

import logging
import os
import threading
from typing import Callable, Dict, List, Optional

from clipforge.config import runtime_config
from clipforge.media.service import MediaService, get_media_service
from clipforge.video_render.compiler import build_ffmpeg_args, compile_filter_graph
from clipforge.video_render.ffmpeg_runner import FFmpegError, RenderCancelled, run_ffmpeg
from clipforge.video_render.jobs import InMemoryRenderJobRepository, RenderJobRepository, VideoRenderJob
from clipforge.video_render.models import PlanStep, RenderPlan, RenderRequest, RenderResult
from clipforge.video_timeline.service import TimelineService, get_timeline_service

logger = logging.getLogger(__name__)

Runner = Callable[..., str]


class ProjectNotFound(LookupError):
    pass


class RenderService:
    def __init__(
        self,
        timeline_service: Optional[TimelineService] = None,
        media_service: Optional[MediaService] = None,
        job_repo: Optional[RenderJobRepository] = None,
        runner: Optional[Runner] = None,
    ) -> None:
        self._timeline_service = timeline_service
        self._media_service = media_service
        self.job_repo = job_repo or InMemoryRenderJobRepository()
        self._runner = runner or run_ffmpeg
        self._cancel_events: Dict[str, threading.Event] = {}

    @property
    def timeline_service(self) -> TimelineService:
        return self._timeline_service or get_timeline_service()

    @property
    def media_service(self) -> MediaService:
        return self._media_service or get_media_service()

    def _output_path(self, req: RenderRequest) -> str:
        if req.output_path:
            return req.output_path
        name = f"{req.settings.filename}.{req.settings.format}"
        return os.path.join(runtime_config.get_output_dir(), name)

    def build_plan(self, req: RenderRequest) -> RenderPlan:
        """Compile the project's current snapshot into a render plan.

        Raises ProjectNotFound, or a GraphCompileError before anything runs.
        """
        snapshot = self.timeline_service.snapshot(req.project_id)
        if snapshot is None:
            raise ProjectNotFound(req.project_id)
        compiled = compile_filter_graph(snapshot, self.media_service.library(), req.settings)
        output_path = self._output_path(req)
        args = build_ffmpeg_args(compiled, req.settings, output_path)
        return RenderPlan(
            inputs=[spec.uri for spec in compiled.inputs],
            input_meta=[{"clip_id": spec.clip_id, "kind": spec.kind} for spec in compiled.inputs],
            steps=[PlanStep(description="render timeline", ffmpeg_args=args)],
            output_path=output_path,
            width=compiled.width,
            height=compiled.height,
            fps=compiled.fps,
            duration=compiled.duration,
            filters=compiled.graph.lines(),
            meta={
                "project_name": snapshot.project_name,
                "aspect_ratio": req.settings.aspect_ratio or snapshot.aspect_ratio,
                "segments": [
                    {"kind": s.kind, "duration": s.duration, "clip_ids": list(s.clip_ids)}
                    for s in compiled.segments
                ],
                "ops": compiled.graph.ops(),
                "warnings": compiled.warnings,
            },
        )

    def dry_run(self, req: RenderRequest) -> RenderResult:
        plan = self.build_plan(req)
        return RenderResult(job_id="dry-run", status="planned", output_path=plan.output_path, plan_preview=plan)

    def create_job(self, req: RenderRequest) -> VideoRenderJob:
        plan = self.build_plan(req)
        job = VideoRenderJob(
            project_id=req.project_id,
            output_path=plan.output_path,
            plan_snapshot=plan.model_dump(),
            request_payload=req.model_dump(),
        )
        self._cancel_events[job.id] = threading.Event()
        return self.job_repo.create(job)

    def run_job(self, job_id: str) -> VideoRenderJob:
        job = self.job_repo.get(job_id)
        if not job:
            raise ValueError("job not found")
        if job.status in {"running", "succeeded", "cancelled"}:
            return job
        cancel_event = self._cancel_events.setdefault(job.id, threading.Event())
        job.status = "running"
        job.progress = 0.0
        job.error_message = None
        job.finished_at = None
        self.job_repo.update(job)
        plan = RenderPlan(**job.plan_snapshot)

        def _progress(fraction: float) -> None:
            job.progress = fraction
            self.job_repo.update(job)

        try:
            job.output_path = self._runner(plan, on_progress=_progress, cancel_event=cancel_event)
            job.status = "succeeded"
            job.progress = 1.0
        except RenderCancelled:
            job.status = "cancelled"
        except FFmpegError as exc:
            logger.error("render job %s failed: %s", job.id, exc)
            job.status = "failed"
            job.error_message = str(exc)
        except Exception as exc:
            logger.exception("render job %s crashed", job.id)
            job.status = "failed"
            job.error_message = f"{type(exc).__name__}: {exc}"
        finally:
            self._cancel_events.pop(job.id, None)
        return self.job_repo.update(job)

    def render(self, req: RenderRequest) -> RenderResult:
        if req.dry_run:
            return self.dry_run(req)
        job = self.run_job(self.create_job(req).id)
        return RenderResult(
            job_id=job.id,
            status=job.status,
            output_path=job.output_path if job.status == "succeeded" else None,
            error=job.error_message,
            plan_preview=RenderPlan(**job.plan_snapshot),
        )

    def cancel_job(self, job_id: str) -> Optional[VideoRenderJob]:
        """Safe at any point: queued jobs never start, running ones stop and clean up."""
        job = self.job_repo.get(job_id)
        if not job:
            return None
        if job.is_terminal:
            return job
        event = self._cancel_events.get(job_id)
        if event is not None:
            event.set()
        if job.status == "queued":
            job.status = "cancelled"
            self.job_repo.update(job)
        return job

    def get_job(self, job_id: str) -> Optional[VideoRenderJob]:
        return self.job_repo.get(job_id)

    def list_jobs(self, project_id: Optional[str] = None, status: Optional[str] = None) -> List[VideoRenderJob]:
        return self.job_repo.list(project_id=project_id, status=status)


_default_service: Optional[RenderService] = None


def get_render_service() -> RenderService:
    global _default_service
    if _default_service is None:
        _default_service = RenderService()
    return _default_service


def set_render_service(service: Optional[RenderService]) -> None:
    global _default_service
    _default_service = service
