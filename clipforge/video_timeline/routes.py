from __future__ import annotations

from typing import Any, List, Literal, Optional

from fastapi import APIRouter
from pydantic import BaseModel, Field

from clipforge.common.error_envelope import invalid_edit_error, not_found_error
from clipforge.media.service import get_media_service
from clipforge.video_timeline import editing
from clipforge.video_timeline.models import AspectRatio, Position, Timeline, TrackKind, TransitionType
from clipforge.video_timeline.overlap import apply_snapping, find_non_colliding_position, has_collision
from clipforge.video_timeline.service import Command, TimelineProject, get_timeline_service

router = APIRouter(prefix="/video", tags=["video_timeline"])


class TimelineState(BaseModel):
    project_id: str
    timeline: Timeline
    duration: float
    can_undo: bool
    can_redo: bool


class CreateTimelineRequest(BaseModel):
    name: str = "Untitled"
    aspect_ratio: AspectRatio = "16:9"


class ProjectPatch(BaseModel):
    name: Optional[str] = None
    aspect_ratio: Optional[AspectRatio] = None


class AddTrackRequest(BaseModel):
    kind: TrackKind = "video"
    name: Optional[str] = None


class TrackPatch(BaseModel):
    muted: Optional[bool] = None
    locked: Optional[bool] = None
    gain: Optional[float] = None


class AddClipRequest(BaseModel):
    track_id: str
    media_id: str
    start_time: float = 0.0


class ClipPatch(BaseModel):
    name: Optional[str] = None
    start_time: Optional[float] = None
    trim_in: Optional[float] = None
    trim_out: Optional[float] = None
    crop: Optional[dict] = None
    transform: Optional[dict] = None
    audio_muted: Optional[bool] = None


class MoveClipRequest(BaseModel):
    track_id: str
    start_time: float
    snap: bool = True


class SplitClipRequest(BaseModel):
    time: float


class TrimClipRequest(BaseModel):
    trim_in: float = 0.0
    trim_out: float = 0.0


class ResizeClipRequest(BaseModel):
    edge: Literal["start", "end"]
    time: float


class LinkAudioRequest(BaseModel):
    audio_clip_id: str


class TransitionRequest(BaseModel):
    type: TransitionType
    duration: float = 1.0
    position: Position = "start"


class FilterRequest(BaseModel):
    name: str = "custom"
    brightness: float = 0.0
    contrast: float = 0.0
    saturation: float = 0.0
    grayscale: bool = False
    sepia: bool = False
    blur: float = 0.0


class TextOverlayRequest(BaseModel):
    text: str
    track_id: Optional[str] = None
    start_time: float = 0.0
    duration: float = Field(default=5.0, gt=0)
    x: float = 50.0
    y: float = 50.0
    font_size: int = 32
    font_family: str = "Arial"
    color: str = "#ffffff"
    background_color: Optional[str] = None
    bold: bool = False
    italic: bool = False


class TextOverlayPatch(BaseModel):
    text: Optional[str] = None
    track_id: Optional[str] = None
    start_time: Optional[float] = None
    duration: Optional[float] = None
    x: Optional[float] = None
    y: Optional[float] = None
    font_size: Optional[int] = None
    font_family: Optional[str] = None
    color: Optional[str] = None
    background_color: Optional[str] = None
    bold: Optional[bool] = None
    italic: Optional[bool] = None


def _state(project: TimelineProject) -> TimelineState:
    return TimelineState(
        project_id=project.id,
        timeline=project.current,
        duration=project.current.duration,
        can_undo=project.can_undo,
        can_redo=project.can_redo,
    )


def _project(project_id: str) -> TimelineProject:
    project = get_timeline_service().get_project(project_id)
    if not project:
        not_found_error("timeline", project_id)
    return project


def _apply(project_id: str, command: Command, *args: Any, **kwargs: Any) -> TimelineState:
    _project(project_id)
    try:
        get_timeline_service().apply(project_id, command, *args, **kwargs)
    except ValueError as exc:
        invalid_edit_error(str(exc))
    return _state(_project(project_id))


# Projects
@router.post("/timelines", response_model=TimelineState)
def create_timeline(req: CreateTimelineRequest):
    return _state(get_timeline_service().create_project(req.name, req.aspect_ratio))


@router.get("/timelines", response_model=List[TimelineState])
def list_timelines():
    return [_state(p) for p in get_timeline_service().list_projects()]


@router.get("/timelines/{project_id}", response_model=TimelineState)
def get_timeline(project_id: str):
    return _state(_project(project_id))


@router.patch("/timelines/{project_id}", response_model=TimelineState)
def patch_timeline(project_id: str, patch: ProjectPatch):
    state = _state(_project(project_id))
    if patch.name is not None:
        state = _apply(project_id, editing.set_project_name, patch.name)
    if patch.aspect_ratio is not None:
        state = _apply(project_id, editing.set_aspect_ratio, patch.aspect_ratio)
    return state


@router.post("/timelines/{project_id}/undo", response_model=TimelineState)
def undo(project_id: str):
    _project(project_id)
    get_timeline_service().undo(project_id)
    return _state(_project(project_id))


@router.post("/timelines/{project_id}/redo", response_model=TimelineState)
def redo(project_id: str):
    _project(project_id)
    get_timeline_service().redo(project_id)
    return _state(_project(project_id))


# Tracks
@router.post("/timelines/{project_id}/tracks", response_model=TimelineState)
def add_track(project_id: str, req: AddTrackRequest):
    return _apply(project_id, editing.add_track, req.kind, req.name)


@router.patch("/timelines/{project_id}/tracks/{track_id}", response_model=TimelineState)
def patch_track(project_id: str, track_id: str, patch: TrackPatch):
    track = _project(project_id).current.find_track(track_id)
    if not track:
        not_found_error("track", track_id)
    state = _state(_project(project_id))
    if patch.muted is not None and patch.muted != track.muted:
        state = _apply(project_id, editing.toggle_track_mute, track_id)
    if patch.locked is not None and patch.locked != track.locked:
        state = _apply(project_id, editing.toggle_track_lock, track_id)
    if patch.gain is not None:
        state = _apply(project_id, editing.set_track_gain, track_id, patch.gain)
    return state


@router.delete("/timelines/{project_id}/tracks/{track_id}", response_model=TimelineState)
def remove_track(project_id: str, track_id: str):
    return _apply(project_id, editing.remove_track, track_id)


# Clips
@router.post("/timelines/{project_id}/clips", response_model=TimelineState)
def add_clip(project_id: str, req: AddClipRequest):
    media = get_media_service().get_asset(req.media_id)
    if not media:
        not_found_error("media", req.media_id)
    return _apply(project_id, editing.add_clip_to_track, req.track_id, media, req.start_time)


@router.patch("/timelines/{project_id}/clips/{clip_id}", response_model=TimelineState)
def patch_clip(project_id: str, clip_id: str, patch: ClipPatch):
    changes = patch.model_dump(exclude_none=True)
    return _apply(project_id, editing.update_clip, clip_id, **changes)


@router.delete("/timelines/{project_id}/clips/{clip_id}", response_model=TimelineState)
def remove_clip(project_id: str, clip_id: str):
    return _apply(project_id, editing.remove_clip, clip_id)


@router.post("/timelines/{project_id}/clips/{clip_id}/move", response_model=TimelineState)
def move_clip(project_id: str, clip_id: str, req: MoveClipRequest):
    timeline = _project(project_id).current
    clip = timeline.find_clip(clip_id)
    target = timeline.find_track(req.track_id)
    if not clip:
        not_found_error("clip", clip_id)
    if not target:
        not_found_error("track", req.track_id)
    start = req.start_time
    if req.snap:
        start = apply_snapping(start, target.clips, clip.visible_duration, exclude_id=clip_id)
    if has_collision(target.clips, start, clip.visible_duration, exclude_id=clip_id):
        start = find_non_colliding_position(target.clips, start, clip.visible_duration, exclude_id=clip_id)
    return _apply(project_id, editing.move_clip, clip_id, req.track_id, start)


@router.post("/timelines/{project_id}/clips/{clip_id}/split", response_model=TimelineState)
def split_clip(project_id: str, clip_id: str, req: SplitClipRequest):
    return _apply(project_id, editing.split_clip, clip_id, req.time)


@router.post("/timelines/{project_id}/clips/{clip_id}/trim", response_model=TimelineState)
def trim_clip(project_id: str, clip_id: str, req: TrimClipRequest):
    return _apply(project_id, editing.trim_clip, clip_id, req.trim_in, req.trim_out)


@router.post("/timelines/{project_id}/clips/{clip_id}/resize", response_model=TimelineState)
def resize_clip(project_id: str, clip_id: str, req: ResizeClipRequest):
    return _apply(project_id, editing.resize_clip, clip_id, req.edge, req.time)


@router.post("/timelines/{project_id}/clips/{clip_id}/detach-audio", response_model=TimelineState)
def detach_audio(project_id: str, clip_id: str):
    return _apply(project_id, editing.detach_audio_from_video, clip_id)


@router.post("/timelines/{project_id}/clips/{clip_id}/link-audio", response_model=TimelineState)
def link_audio(project_id: str, clip_id: str, req: LinkAudioRequest):
    return _apply(project_id, editing.link_audio, clip_id, req.audio_clip_id)


@router.post("/timelines/{project_id}/clips/{clip_id}/unlink-audio", response_model=TimelineState)
def unlink_audio(project_id: str, clip_id: str):
    return _apply(project_id, editing.unlink_audio, clip_id)


# Transitions & filters
@router.put("/timelines/{project_id}/clips/{clip_id}/transitions", response_model=TimelineState)
def set_transition(project_id: str, clip_id: str, req: TransitionRequest):
    return _apply(project_id, editing.set_transition, clip_id, req.type, req.duration, req.position)


@router.delete("/timelines/{project_id}/clips/{clip_id}/transitions", response_model=TimelineState)
def remove_transition(project_id: str, clip_id: str, position: Optional[Position] = None):
    return _apply(project_id, editing.remove_transition, clip_id, position)


@router.put("/timelines/{project_id}/clips/{clip_id}/filter", response_model=TimelineState)
def set_filter(project_id: str, clip_id: str, req: FilterRequest):
    return _apply(project_id, editing.set_filter, clip_id, **req.model_dump())


@router.delete("/timelines/{project_id}/clips/{clip_id}/filter", response_model=TimelineState)
def reset_filter(project_id: str, clip_id: str):
    return _apply(project_id, editing.reset_filter, clip_id)


# Text overlays
@router.post("/timelines/{project_id}/text-overlays", response_model=TimelineState)
def add_text_overlay(project_id: str, req: TextOverlayRequest):
    style = req.model_dump(exclude={"text", "track_id", "start_time"})
    return _apply(project_id, editing.add_text_overlay, req.text, req.track_id, req.start_time, **style)


@router.patch("/timelines/{project_id}/text-overlays/{overlay_id}", response_model=TimelineState)
def patch_text_overlay(project_id: str, overlay_id: str, patch: TextOverlayPatch):
    if not _project(project_id).current.find_text_overlay(overlay_id):
        not_found_error("text_overlay", overlay_id)
    changes = patch.model_dump(exclude_none=True)
    track_id = changes.pop("track_id", None)
    state = _state(_project(project_id))
    if changes:
        state = _apply(project_id, editing.update_text_overlay, overlay_id, **changes)
    if track_id:
        state = _apply(project_id, editing.move_text_overlay_to_track, overlay_id, track_id)
    return state


@router.delete("/timelines/{project_id}/text-overlays/{overlay_id}", response_model=TimelineState)
def remove_text_overlay(project_id: str, overlay_id: str):
    return _apply(project_id, editing.remove_text_overlay, overlay_id)
