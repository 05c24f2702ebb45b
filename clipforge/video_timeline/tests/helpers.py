from __future__ import annotations

from typing import Optional

from fastapi.testclient import TestClient

from clipforge.media.models import MediaAsset
from clipforge.server import create_app
from clipforge.video_timeline import editing
from clipforge.video_timeline.models import Clip, Timeline


def make_media(media_id: str, kind: str = "video", duration: Optional[float] = 10.0, **kwargs) -> MediaAsset:
    return MediaAsset(
        id=media_id,
        name=kwargs.pop("name", media_id),
        kind=kind,
        source_uri=kwargs.pop("source_uri", f"/media/{media_id}.{'png' if kind == 'image' else 'mp4'}"),
        duration=duration,
        **kwargs,
    )


def make_clip(clip_id: str, start: float, duration: float, track_id: str = "v1", kind: str = "video", **kwargs) -> Clip:
    return Clip(
        id=clip_id,
        media_id=kwargs.pop("media_id", "m1"),
        track_id=track_id,
        kind=kind,
        name=clip_id,
        start_time=start,
        raw_duration=duration,
        **kwargs,
    )


def timeline_with_tracks(*specs) -> Timeline:
    """Empty tracks from (kind, track_id) pairs, in order."""
    timeline = Timeline()
    for kind, track_id in specs:
        timeline = editing.add_track(timeline, kind, track_id=track_id)
    return timeline


def place(timeline: Timeline, track_id: str, media: MediaAsset, start: float, clip_id: str) -> Timeline:
    return editing.add_clip_to_track(timeline, track_id, media, start, clip_id=clip_id)


def make_client() -> TestClient:
    return TestClient(create_app())
