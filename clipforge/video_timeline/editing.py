"""Timeline commands.

Every command takes a ``Timeline`` snapshot and returns a new one; the input is
never modified. Commands addressing an entity that does not exist, or a clip on
a locked track, return the snapshot unchanged.
"""
from __future__ import annotations

import logging
import uuid
from typing import Any, Callable, Dict, Iterable, List, Literal, Optional, Set

from clipforge.media.models import MediaAsset
from clipforge.video_timeline.models import (
    MIN_CLIP_DURATION,
    AspectRatio,
    Clip,
    Position,
    TextOverlay,
    Timeline,
    Track,
    TrackKind,
    Transition,
    TransitionType,
    VideoFilter,
)
from clipforge.video_timeline.overlap import has_collision, is_clip_compatible_with_track, resolve_overlaps

logger = logging.getLogger(__name__)

_TRACK_NAMES: Dict[str, str] = {"video": "Video", "audio": "Audio", "image": "Image", "text": "Text"}
_TIMING_FIELDS = {"start_time", "trim_in", "trim_out", "raw_duration"}
_CLIP_EDITABLE = {"name", "start_time", "trim_in", "trim_out", "crop", "transform", "audio_muted"}
_OVERLAY_EDITABLE = {
    "text", "x", "y", "font_size", "font_family", "color", "background_color",
    "bold", "italic", "start_time", "duration",
}


def _new_id() -> str:
    return uuid.uuid4().hex


# ---------------------------------------------------------------- helpers

def _replace_track(timeline: Timeline, track: Track) -> Timeline:
    tracks = tuple(track if t.id == track.id else t for t in timeline.tracks)
    return timeline.model_copy(update={"tracks": tracks})


def _with_clips(track: Track, clips: Iterable[Clip]) -> Track:
    return track.model_copy(update={"clips": tuple(resolve_overlaps(list(clips)))})


def _map_clips(timeline: Timeline, fn: Callable[[Clip], Clip]) -> Timeline:
    tracks = tuple(t.model_copy(update={"clips": tuple(fn(c) for c in t.clips)}) for t in timeline.tracks)
    return timeline.model_copy(update={"tracks": tracks})


def _editable_clip(timeline: Timeline, clip_id: str, action: str):
    track = timeline.track_of(clip_id)
    if track is None:
        logger.debug("%s: clip %s not found", action, clip_id)
        return None, None
    if track.locked:
        logger.debug("%s: track %s is locked", action, track.id)
        return None, None
    return track, track.find_clip(clip_id)


def _clamp_trims(raw_duration: float, trim_in: float, trim_out: float):
    """Keep trims non-negative and the visible span at or above the floor.

    The out-trim gives way first, then the in-trim.
    """
    trim_in = max(0.0, trim_in)
    trim_out = max(0.0, trim_out)
    excess = trim_in + trim_out + MIN_CLIP_DURATION - raw_duration
    if excess > 0:
        take = min(trim_out, excess)
        trim_out -= take
        excess -= take
    if excess > 0:
        trim_in = max(0.0, trim_in - excess)
    return trim_in, trim_out


def _unlink(clip: Clip, removed: Set[str], mute_on_lost_audio: bool) -> Clip:
    updates: Dict[str, Any] = {}
    if clip.detached_audio_clip_id in removed:
        updates["detached_audio_clip_id"] = None
        if mute_on_lost_audio:
            updates["audio_muted"] = True
    if clip.linked_video_clip_id in removed:
        updates["linked_video_clip_id"] = None
    return clip.model_copy(update=updates) if updates else clip


def _drop_clip_records(timeline: Timeline, removed: Set[str]) -> Timeline:
    """Cascade a clip removal to filters, transitions and link counterparts."""
    if not removed:
        return timeline
    timeline = timeline.model_copy(
        update={
            "filters": tuple(f for f in timeline.filters if f.clip_id not in removed),
            "transitions": tuple(t for t in timeline.transitions if t.clip_id not in removed),
        }
    )
    muted = [c.id for c in timeline.all_clips() if c.detached_audio_clip_id in removed]
    if muted:
        logger.info("muting video clips %s after their detached audio was removed", muted)
    return _map_clips(timeline, lambda c: _unlink(c, removed, mute_on_lost_audio=True))


# ---------------------------------------------------------------- project

def set_project_name(timeline: Timeline, name: str) -> Timeline:
    return timeline.model_copy(update={"project_name": name})


def set_aspect_ratio(timeline: Timeline, aspect_ratio: AspectRatio) -> Timeline:
    return Timeline.model_validate({**timeline.model_dump(), "aspect_ratio": aspect_ratio})


# ---------------------------------------------------------------- tracks

def add_track(
    timeline: Timeline,
    kind: TrackKind = "video",
    name: Optional[str] = None,
    track_id: Optional[str] = None,
) -> Timeline:
    count = len(timeline.tracks_of_kind(kind))
    track = Track(
        id=track_id or _new_id(),
        name=name or f"{_TRACK_NAMES[kind]} {count + 1}",
        kind=kind,
    )
    return timeline.model_copy(update={"tracks": timeline.tracks + (track,)})


def remove_track(timeline: Timeline, track_id: str) -> Timeline:
    track = timeline.find_track(track_id)
    if track is None:
        logger.debug("remove_track: track %s not found", track_id)
        return timeline
    removed = {c.id for c in track.clips}
    timeline = timeline.model_copy(
        update={
            "tracks": tuple(t for t in timeline.tracks if t.id != track_id),
            "text_overlays": tuple(o for o in timeline.text_overlays if o.track_id != track_id),
        }
    )
    return _drop_clip_records(timeline, removed)


def toggle_track_mute(timeline: Timeline, track_id: str) -> Timeline:
    track = timeline.find_track(track_id)
    if track is None:
        return timeline
    return _replace_track(timeline, track.model_copy(update={"muted": not track.muted}))


def toggle_track_lock(timeline: Timeline, track_id: str) -> Timeline:
    track = timeline.find_track(track_id)
    if track is None:
        return timeline
    return _replace_track(timeline, track.model_copy(update={"locked": not track.locked}))


def set_track_gain(timeline: Timeline, track_id: str, gain: float) -> Timeline:
    track = timeline.find_track(track_id)
    if track is None:
        return timeline
    return _replace_track(timeline, track.model_copy(update={"gain": max(0.0, min(1.0, gain))}))


# ---------------------------------------------------------------- clips

def add_clip_to_track(
    timeline: Timeline,
    track_id: str,
    media: MediaAsset,
    start_time: float,
    clip_id: Optional[str] = None,
) -> Timeline:
    track = timeline.find_track(track_id)
    if track is None or track.locked:
        logger.debug("add_clip_to_track: track %s missing or locked", track_id)
        return timeline
    if not is_clip_compatible_with_track(media.kind, track):
        logger.debug("add_clip_to_track: %s media cannot go on %s track", media.kind, track.kind)
        return timeline
    clip = Clip(
        id=clip_id or _new_id(),
        media_id=media.id,
        track_id=track.id,
        kind=media.kind,
        name=media.name,
        start_time=max(0.0, start_time),
        raw_duration=max(MIN_CLIP_DURATION, media.timeline_duration),
    )
    return _replace_track(timeline, _with_clips(track, track.clips + (clip,)))


def remove_clip(timeline: Timeline, clip_id: str) -> Timeline:
    track, clip = _editable_clip(timeline, clip_id, "remove_clip")
    if clip is None:
        return timeline
    timeline = _replace_track(
        timeline, track.model_copy(update={"clips": tuple(c for c in track.clips if c.id != clip_id)})
    )
    return _drop_clip_records(timeline, {clip_id})


def update_clip(timeline: Timeline, clip_id: str, **changes: Any) -> Timeline:
    """Apply field changes to one clip; timing changes re-run the resolver."""
    track, clip = _editable_clip(timeline, clip_id, "update_clip")
    if clip is None:
        return timeline
    unknown = set(changes) - _CLIP_EDITABLE
    if unknown:
        raise ValueError(f"clip fields not editable: {sorted(unknown)}")
    if "start_time" in changes:
        changes["start_time"] = max(0.0, changes["start_time"])
    merged = {**clip.model_dump(), **changes}
    merged["trim_in"], merged["trim_out"] = _clamp_trims(merged["raw_duration"], merged["trim_in"], merged["trim_out"])
    updated = Clip.model_validate(merged)
    clips = [updated if c.id == clip_id else c for c in track.clips]
    if _TIMING_FIELDS & set(changes):
        new_track = _with_clips(track, clips)
    else:
        new_track = track.model_copy(update={"clips": tuple(clips)})
    return _replace_track(timeline, new_track)


def trim_clip(timeline: Timeline, clip_id: str, trim_in: float, trim_out: float) -> Timeline:
    return update_clip(timeline, clip_id, trim_in=trim_in, trim_out=trim_out)


def resize_clip(timeline: Timeline, clip_id: str, edge: Literal["start", "end"], time: float) -> Timeline:
    """Drag one edge of a clip to a timeline time.

    Dragging the start edge moves the start and the in-trim together so the
    content under the end edge stays put. Image clips may grow past their
    current length from the end edge.
    """
    track, clip = _editable_clip(timeline, clip_id, "resize_clip")
    if clip is None:
        return timeline
    if edge == "start":
        earliest = max(0.0, clip.start_time - clip.trim_in)
        new_start = max(earliest, min(time, clip.end_time - MIN_CLIP_DURATION))
        delta = new_start - clip.start_time
        return update_clip(timeline, clip_id, start_time=new_start, trim_in=clip.trim_in + delta)

    new_end = max(clip.start_time + MIN_CLIP_DURATION, time)
    visible = new_end - clip.start_time
    if clip.kind == "image":
        updated = clip.model_copy(update={"raw_duration": clip.trim_in + visible, "trim_out": 0.0})
        clips = [updated if c.id == clip_id else c for c in track.clips]
        return _replace_track(timeline, _with_clips(track, clips))
    visible = min(visible, clip.raw_duration - clip.trim_in)
    return update_clip(timeline, clip_id, trim_out=clip.raw_duration - clip.trim_in - visible)


def move_clip(timeline: Timeline, clip_id: str, track_id: str, start_time: float) -> Timeline:
    source, clip = _editable_clip(timeline, clip_id, "move_clip")
    if clip is None:
        return timeline
    target = timeline.find_track(track_id)
    if target is None or target.locked:
        logger.debug("move_clip: target track %s missing or locked", track_id)
        return timeline
    if not is_clip_compatible_with_track(clip.kind, target):
        logger.debug("move_clip: %s clip cannot go on %s track", clip.kind, target.kind)
        return timeline
    moved = clip.model_copy(update={"track_id": target.id, "start_time": max(0.0, start_time)})
    if source.id == target.id:
        clips = [moved if c.id == clip_id else c for c in source.clips]
        return _replace_track(timeline, _with_clips(source, clips))
    timeline = _replace_track(
        timeline, source.model_copy(update={"clips": tuple(c for c in source.clips if c.id != clip_id)})
    )
    return _replace_track(timeline, _with_clips(target, target.clips + (moved,)))


def split_clip(timeline: Timeline, clip_id: str, split_time: float, new_clip_id: Optional[str] = None) -> Timeline:
    """Cut a clip in two at ``split_time``.

    The first part keeps the id, the second part takes over the end transition.
    Neither part inherits audio-link state; the parent's counterpart is unlinked.
    """
    track, clip = _editable_clip(timeline, clip_id, "split_clip")
    if clip is None:
        return timeline
    if not clip.start_time + MIN_CLIP_DURATION <= split_time <= clip.end_time - MIN_CLIP_DURATION:
        logger.debug("split_clip: %.3f outside clip %s or too close to an edge", split_time, clip_id)
        return timeline

    split_point = split_time - clip.start_time + clip.trim_in
    reset = {"audio_muted": False, "detached_audio_clip_id": None, "linked_video_clip_id": None}
    first = clip.model_copy(update={**reset, "trim_out": clip.raw_duration - split_point})
    second = clip.model_copy(
        update={
            **reset,
            "id": new_clip_id or _new_id(),
            "start_time": split_time,
            "trim_in": split_point,
            "name": f"{clip.name} (2)",
        }
    )
    clips: List[Clip] = []
    for c in track.clips:
        clips.extend((first, second) if c.id == clip_id else (c,))
    timeline = _replace_track(timeline, _with_clips(track, clips))

    transitions = tuple(
        t.model_copy(update={"clip_id": second.id}) if t.clip_id == clip_id and t.position == "end" else t
        for t in timeline.transitions
    )
    timeline = timeline.model_copy(update={"transitions": transitions})

    counterparts = {clip.detached_audio_clip_id, clip.linked_video_clip_id} - {None}
    if counterparts:
        timeline = _map_clips(timeline, lambda c: _unlink(c, {clip_id}, mute_on_lost_audio=False))
    return timeline


# ---------------------------------------------------------------- audio links

def detach_audio_from_video(timeline: Timeline, video_clip_id: str, audio_clip_id: Optional[str] = None) -> Timeline:
    _, video = _editable_clip(timeline, video_clip_id, "detach_audio_from_video")
    if video is None or video.kind != "video":
        logger.debug("detach_audio_from_video: %s is not an editable video clip", video_clip_id)
        return timeline
    if video.detached_audio_clip_id:
        if timeline.find_clip(video.detached_audio_clip_id) is not None:
            return timeline
        timeline = repair_links(timeline)

    audio_tracks = [t for t in timeline.tracks_of_kind("audio") if not t.locked]
    if audio_tracks:
        audio_track = audio_tracks[0]
    else:
        timeline = add_track(timeline, "audio")
        audio_track = timeline.tracks[-1]

    audio = Clip(
        id=audio_clip_id or _new_id(),
        media_id=video.media_id,
        track_id=audio_track.id,
        kind="audio",
        name=f"{video.name} (audio)",
        start_time=video.start_time,
        raw_duration=video.raw_duration,
        trim_in=video.trim_in,
        trim_out=video.trim_out,
        linked_video_clip_id=video.id,
    )
    timeline = _replace_track(timeline, _with_clips(audio_track, audio_track.clips + (audio,)))
    return _map_clips(
        timeline,
        lambda c: c.model_copy(update={"audio_muted": False, "detached_audio_clip_id": audio.id})
        if c.id == video.id
        else c,
    )


def link_audio(timeline: Timeline, video_clip_id: str, audio_clip_id: str) -> Timeline:
    video = timeline.find_clip(video_clip_id)
    audio = timeline.find_clip(audio_clip_id)
    if video is None or audio is None or video.kind != "video" or audio.kind != "audio":
        logger.debug("link_audio: cannot link %s to %s", video_clip_id, audio_clip_id)
        return timeline
    timeline = unlink_audio(unlink_audio(timeline, video_clip_id), audio_clip_id)

    def _link(c: Clip) -> Clip:
        if c.id == video_clip_id:
            return c.model_copy(update={"detached_audio_clip_id": audio_clip_id, "audio_muted": False})
        if c.id == audio_clip_id:
            return c.model_copy(update={"linked_video_clip_id": video_clip_id})
        return c

    return _map_clips(timeline, _link)


def unlink_audio(timeline: Timeline, clip_id: str) -> Timeline:
    clip = timeline.find_clip(clip_id)
    if clip is None:
        return timeline
    pair = {clip_id, clip.detached_audio_clip_id, clip.linked_video_clip_id} - {None}

    def _clear(c: Clip) -> Clip:
        if c.id not in pair:
            return c
        return c.model_copy(update={"detached_audio_clip_id": None, "linked_video_clip_id": None})

    return _map_clips(timeline, _clear)


def set_clip_audio_muted(timeline: Timeline, clip_id: str, muted: bool) -> Timeline:
    return update_clip(timeline, clip_id, audio_muted=muted)


def repair_links(timeline: Timeline) -> Timeline:
    """Clear link fields whose counterpart is gone or no longer points back."""
    clips = {c.id: c for c in timeline.all_clips()}

    def _repair(c: Clip) -> Clip:
        updates: Dict[str, Any] = {}
        audio = clips.get(c.detached_audio_clip_id) if c.detached_audio_clip_id else None
        if c.detached_audio_clip_id and (audio is None or audio.linked_video_clip_id != c.id):
            updates["detached_audio_clip_id"] = None
        video = clips.get(c.linked_video_clip_id) if c.linked_video_clip_id else None
        if c.linked_video_clip_id and (video is None or video.detached_audio_clip_id != c.id):
            updates["linked_video_clip_id"] = None
        if updates:
            logger.info("clearing stale audio link on clip %s", c.id)
            return c.model_copy(update=updates)
        return c

    return _map_clips(timeline, _repair)


# ---------------------------------------------------------------- text overlays

def add_text_overlay(
    timeline: Timeline,
    text: str,
    track_id: Optional[str] = None,
    start_time: float = 0.0,
    overlay_id: Optional[str] = None,
    **style: Any,
) -> Timeline:
    """Add an overlay to ``track_id`` or the first text track, creating one if needed.

    A colliding start is pushed to the end of the overlay it collides with until
    the overlay fits.
    """
    if track_id is None:
        text_tracks = timeline.tracks_of_kind("text")
        if not text_tracks:
            timeline = add_track(timeline, "text")
            text_tracks = [timeline.tracks[-1]]
        track_id = text_tracks[0].id
    else:
        track = timeline.find_track(track_id)
        if track is None or track.kind != "text":
            logger.debug("add_text_overlay: %s is not a text track", track_id)
            return timeline

    overlay = TextOverlay(
        id=overlay_id or _new_id(),
        track_id=track_id,
        text=text,
        start_time=max(0.0, start_time),
        **style,
    )
    siblings = sorted((o for o in timeline.text_overlays if o.track_id == track_id), key=lambda o: o.start_time)
    start = overlay.start_time
    while has_collision(siblings, start, overlay.duration):
        start = max(o.end_time for o in siblings if start < o.end_time and start + overlay.duration > o.start_time)
    overlay = overlay.model_copy(update={"start_time": start})
    return timeline.model_copy(update={"text_overlays": timeline.text_overlays + (overlay,)})


def _resolve_overlay_track(timeline: Timeline, track_id: str) -> Timeline:
    on_track = [o for o in timeline.text_overlays if o.track_id == track_id]
    resolved = {o.id: o for o in resolve_overlaps(on_track)}
    overlays = tuple(resolved.get(o.id, o) for o in timeline.text_overlays)
    return timeline.model_copy(update={"text_overlays": overlays})


def update_text_overlay(timeline: Timeline, overlay_id: str, **changes: Any) -> Timeline:
    overlay = timeline.find_text_overlay(overlay_id)
    if overlay is None:
        logger.debug("update_text_overlay: overlay %s not found", overlay_id)
        return timeline
    unknown = set(changes) - _OVERLAY_EDITABLE
    if unknown:
        raise ValueError(f"text overlay fields not editable: {sorted(unknown)}")
    updated = TextOverlay.model_validate({**overlay.model_dump(), **changes})
    overlays = tuple(updated if o.id == overlay_id else o for o in timeline.text_overlays)
    timeline = timeline.model_copy(update={"text_overlays": overlays})
    if {"start_time", "duration"} & set(changes):
        timeline = _resolve_overlay_track(timeline, overlay.track_id)
    return timeline


def remove_text_overlay(timeline: Timeline, overlay_id: str) -> Timeline:
    overlays = tuple(o for o in timeline.text_overlays if o.id != overlay_id)
    return timeline.model_copy(update={"text_overlays": overlays})


def move_text_overlay_to_track(timeline: Timeline, overlay_id: str, track_id: str) -> Timeline:
    overlay = timeline.find_text_overlay(overlay_id)
    target = timeline.find_track(track_id)
    if overlay is None or overlay.track_id == track_id:
        return timeline
    if target is None or target.kind != "text":
        logger.debug("move_text_overlay_to_track: %s is not a text track", track_id)
        return timeline
    overlays = tuple(
        o.model_copy(update={"track_id": track_id}) if o.id == overlay_id else o for o in timeline.text_overlays
    )
    return _resolve_overlay_track(timeline.model_copy(update={"text_overlays": overlays}), track_id)


# ---------------------------------------------------------------- transitions & filters

def set_transition(
    timeline: Timeline,
    clip_id: str,
    type: TransitionType,
    duration: float,
    position: Position = "start",
) -> Timeline:
    """Attach a transition to one side of a clip, replacing any on that side."""
    if timeline.find_clip(clip_id) is None:
        logger.debug("set_transition: clip %s not found", clip_id)
        return timeline
    for existing in timeline.transitions:
        if existing.clip_id == clip_id and existing.position == position:
            replacement = Transition(id=existing.id, clip_id=clip_id, type=type, duration=duration, position=position)
            transitions = tuple(replacement if t.id == existing.id else t for t in timeline.transitions)
            return timeline.model_copy(update={"transitions": transitions})
    transition = Transition(clip_id=clip_id, type=type, duration=duration, position=position)
    return timeline.model_copy(update={"transitions": timeline.transitions + (transition,)})


def remove_transition(timeline: Timeline, clip_id: str, position: Optional[Position] = None) -> Timeline:
    transitions = tuple(
        t for t in timeline.transitions
        if not (t.clip_id == clip_id and (position is None or t.position == position))
    )
    return timeline.model_copy(update={"transitions": transitions})


def set_filter(timeline: Timeline, clip_id: str, **params: Any) -> Timeline:
    if timeline.find_clip(clip_id) is None:
        logger.debug("set_filter: clip %s not found", clip_id)
        return timeline
    video_filter = VideoFilter(clip_id=clip_id, **params)
    filters = tuple(f for f in timeline.filters if f.clip_id != clip_id) + (video_filter,)
    return timeline.model_copy(update={"filters": filters})


def reset_filter(timeline: Timeline, clip_id: str) -> Timeline:
    return timeline.model_copy(update={"filters": tuple(f for f in timeline.filters if f.clip_id != clip_id)})
