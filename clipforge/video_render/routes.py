from __future__ import annotations

from typing import List, Optional

from fastapi import APIRouter

from clipforge.common.error_envelope import not_found_error, unprocessable_error
from clipforge.video_render.compiler import GraphCompileError, MissingMediaSource
from clipforge.video_render.jobs import VideoRenderJob
from clipforge.video_render.models import RenderRequest, RenderResult
from clipforge.video_render.service import ProjectNotFound, get_render_service

router = APIRouter(prefix="/video", tags=["video_render"])


def _compile_failed(exc: GraphCompileError):
    details = {}
    if isinstance(exc, MissingMediaSource):
        details = {"clip_id": exc.clip_id, "media_id": exc.media_id}
    unprocessable_error(exc.code, str(exc), details)


@router.post("/render", response_model=RenderResult)
def render(req: RenderRequest):
    try:
        return get_render_service().render(req)
    except ProjectNotFound:
        not_found_error("timeline", req.project_id)
    except GraphCompileError as exc:
        _compile_failed(exc)


@router.post("/render/dry-run", response_model=RenderResult)
def render_dry_run(req: RenderRequest):
    try:
        return get_render_service().dry_run(req)
    except ProjectNotFound:
        not_found_error("timeline", req.project_id)
    except GraphCompileError as exc:
        _compile_failed(exc)


@router.post("/render/jobs", response_model=VideoRenderJob)
def create_render_job(req: RenderRequest):
    try:
        return get_render_service().create_job(req)
    except ProjectNotFound:
        not_found_error("timeline", req.project_id)
    except GraphCompileError as exc:
        _compile_failed(exc)


@router.get("/render/jobs", response_model=List[VideoRenderJob])
def list_render_jobs(project_id: Optional[str] = None, status: Optional[str] = None):
    return get_render_service().list_jobs(project_id=project_id, status=status)


@router.get("/render/jobs/{job_id}", response_model=VideoRenderJob)
def get_render_job(job_id: str):
    job = get_render_service().get_job(job_id)
    if not job:
        not_found_error("render_job", job_id)
    return job


@router.post("/render/jobs/{job_id}/run", response_model=VideoRenderJob)
def run_render_job(job_id: str):
    if not get_render_service().get_job(job_id):
        not_found_error("render_job", job_id)
    return get_render_service().run_job(job_id)


@router.post("/render/jobs/{job_id}/cancel", response_model=VideoRenderJob)
def cancel_render_job(job_id: str):
    job = get_render_service().cancel_job(job_id)
    if not job:
        not_found_error("render_job", job_id)
    return job
