from __future__ import annotations

import uuid
from typing import Iterator, List, Literal, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator

from clipforge.media.models import MediaKind

TrackKind = Literal["video", "audio", "image", "text"]
AspectRatio = Literal["16:9", "9:16", "1:1", "4:3", "21:9"]
Position = Literal["start", "end"]
TransitionType = Literal[
    "none",
    "fade",
    "dissolve",
    "cross-dissolve",
    "slide-left",
    "slide-right",
    "slide-up",
    "slide-down",
    "slide-diagonal-tl",
    "slide-diagonal-tr",
    "wipe-left",
    "wipe-right",
    "wipe-up",
    "wipe-down",
    "zoom-in",
    "zoom-out",
    "rotate-in",
    "rotate-out",
    "circle-wipe",
    "diamond-wipe",
]

MIN_CLIP_DURATION = 0.1
MIN_TRANSITION_DURATION = 0.1
DEFAULT_TEXT_DURATION = 5.0


def _uuid() -> str:
    return uuid.uuid4().hex


def _clamp(value: float, lo: float, hi: float) -> float:
    return max(lo, min(hi, value))


class Snapshot(BaseModel):
    """Base for every timeline value; instances are never mutated in place."""
    model_config = ConfigDict(frozen=True)


class CropSettings(Snapshot):
    x: float = 0.0
    y: float = 0.0
    width: float = 100.0
    height: float = 100.0
    locked: bool = False

    @field_validator("x", "y", "width", "height")
    @classmethod
    def _percent(cls, v: float) -> float:
        return _clamp(v, 0.0, 100.0)

    @property
    def is_identity(self) -> bool:
        return self.x == 0 and self.y == 0 and self.width == 100 and self.height == 100


class TransformSettings(Snapshot):
    x: float = 50.0
    y: float = 50.0
    scale: float = 100.0
    rotation: float = 0.0

    @field_validator("scale")
    @classmethod
    def _scale_range(cls, v: float) -> float:
        return _clamp(v, 0.0, 200.0)

    @field_validator("rotation")
    @classmethod
    def _rotation_range(cls, v: float) -> float:
        return _clamp(v, -360.0, 360.0)


class Clip(Snapshot):
    id: str = Field(default_factory=_uuid)
    media_id: str
    track_id: str
    kind: MediaKind
    name: str = ""
    start_time: float = Field(default=0.0, ge=0)
    raw_duration: float = Field(gt=0)
    trim_in: float = Field(default=0.0, ge=0)
    trim_out: float = Field(default=0.0, ge=0)
    crop: Optional[CropSettings] = None
    transform: Optional[TransformSettings] = None
    # Audio detach bookkeeping. A video clip points at its detached audio clip;
    # the audio clip points back. Either side may go stale and is repaired lazily.
    audio_muted: bool = False
    detached_audio_clip_id: Optional[str] = None
    linked_video_clip_id: Optional[str] = None

    @property
    def visible_duration(self) -> float:
        return self.raw_duration - self.trim_in - self.trim_out

    @property
    def end_time(self) -> float:
        return self.start_time + self.visible_duration

    def contains(self, time: float) -> bool:
        return self.start_time < time < self.end_time


class Track(Snapshot):
    id: str = Field(default_factory=_uuid)
    name: str
    kind: TrackKind
    clips: Tuple[Clip, ...] = ()
    muted: bool = False
    locked: bool = False
    gain: float = 1.0

    @field_validator("gain")
    @classmethod
    def _gain_range(cls, v: float) -> float:
        return _clamp(v, 0.0, 1.0)

    @property
    def is_visual(self) -> bool:
        return self.kind in ("video", "image")

    def find_clip(self, clip_id: str) -> Optional[Clip]:
        for clip in self.clips:
            if clip.id == clip_id:
                return clip
        return None

    @property
    def end_time(self) -> float:
        return max((c.end_time for c in self.clips), default=0.0)


class TextOverlay(Snapshot):
    id: str = Field(default_factory=_uuid)
    track_id: str
    text: str
    x: float = 50.0
    y: float = 50.0
    font_size: int = 32
    font_family: str = "Arial"
    color: str = "#ffffff"
    background_color: Optional[str] = None
    bold: bool = False
    italic: bool = False
    start_time: float = Field(default=0.0, ge=0)
    duration: float = Field(default=DEFAULT_TEXT_DURATION, gt=0)

    @field_validator("x", "y")
    @classmethod
    def _percent(cls, v: float) -> float:
        return _clamp(v, 0.0, 100.0)

    # The overlap resolver treats overlays and clips alike.
    @property
    def visible_duration(self) -> float:
        return self.duration

    @property
    def end_time(self) -> float:
        return self.start_time + self.duration


class Transition(Snapshot):
    id: str = Field(default_factory=_uuid)
    clip_id: str
    type: TransitionType = "fade"
    duration: float = 1.0
    position: Position = "start"

    @field_validator("duration")
    @classmethod
    def _duration_floor(cls, v: float) -> float:
        return max(MIN_TRANSITION_DURATION, v)


class VideoFilter(Snapshot):
    clip_id: str
    name: str = "custom"
    brightness: float = 0.0
    contrast: float = 0.0
    saturation: float = 0.0
    grayscale: bool = False
    sepia: bool = False
    blur: float = 0.0

    @field_validator("brightness", "contrast", "saturation")
    @classmethod
    def _signed_percent(cls, v: float) -> float:
        return _clamp(v, -100.0, 100.0)

    @field_validator("blur")
    @classmethod
    def _blur_range(cls, v: float) -> float:
        return _clamp(v, 0.0, 20.0)

    @property
    def is_neutral(self) -> bool:
        return (
            self.brightness == 0
            and self.contrast == 0
            and self.saturation == 0
            and not self.grayscale
            and not self.sepia
            and self.blur == 0
        )


class Timeline(Snapshot):
    """One immutable edit state: tracks, overlays, transitions and filters."""

    project_name: str = "Untitled"
    aspect_ratio: AspectRatio = "16:9"
    tracks: Tuple[Track, ...] = ()
    text_overlays: Tuple[TextOverlay, ...] = ()
    transitions: Tuple[Transition, ...] = ()
    filters: Tuple[VideoFilter, ...] = ()

    @property
    def duration(self) -> float:
        clip_end = max((t.end_time for t in self.tracks), default=0.0)
        text_end = max((o.end_time for o in self.text_overlays), default=0.0)
        return max(clip_end, text_end)

    def all_clips(self) -> Iterator[Clip]:
        for track in self.tracks:
            yield from track.clips

    def find_track(self, track_id: str) -> Optional[Track]:
        for track in self.tracks:
            if track.id == track_id:
                return track
        return None

    def find_clip(self, clip_id: str) -> Optional[Clip]:
        for clip in self.all_clips():
            if clip.id == clip_id:
                return clip
        return None

    def track_of(self, clip_id: str) -> Optional[Track]:
        for track in self.tracks:
            if track.find_clip(clip_id) is not None:
                return track
        return None

    def tracks_of_kind(self, *kinds: str) -> List[Track]:
        return [t for t in self.tracks if t.kind in kinds]

    def find_text_overlay(self, overlay_id: str) -> Optional[TextOverlay]:
        for overlay in self.text_overlays:
            if overlay.id == overlay_id:
                return overlay
        return None

    def filter_for(self, clip_id: str) -> Optional[VideoFilter]:
        for f in self.filters:
            if f.clip_id == clip_id:
                return f
        return None

    def transitions_for(self, clip_id: str) -> List[Transition]:
        return [t for t in self.transitions if t.clip_id == clip_id]
