"""Overlap resolution and placement queries for a single track.

Everything here works on any sequence of timed items exposing ``id``,
``start_time`` and ``visible_duration``; clips and text overlays both qualify.
"""
from __future__ import annotations

from typing import List, Optional, Sequence, Tuple, TypeVar

from clipforge.media.models import MediaKind
from clipforge.video_timeline.models import Track

OVERLAP_EPSILON = 0.001
SNAP_THRESHOLD = 0.2

T = TypeVar("T")


def resolve_overlaps(items: Sequence[T]) -> List[T]:
    """Greedy left-to-right compaction.

    Items are sorted by start; any item starting before the previous item's end
    (less the epsilon) is pushed to that end. Correctly spaced items keep their
    positions, so running this twice yields the same result.
    """
    ordered = sorted(items, key=lambda item: item.start_time)
    resolved: List[T] = []
    previous_end = 0.0
    for item in ordered:
        start = item.start_time
        if start < previous_end - OVERLAP_EPSILON:
            start = previous_end
            item = item.model_copy(update={"start_time": start})
        resolved.append(item)
        previous_end = start + item.visible_duration
    return resolved


def _intervals(items: Sequence, exclude_id: Optional[str]) -> List[Tuple[float, float]]:
    spans = [
        (item.start_time, item.start_time + item.visible_duration)
        for item in items
        if item.id != exclude_id
    ]
    return sorted(spans)


def has_collision(items: Sequence, start_time: float, duration: float, exclude_id: Optional[str] = None) -> bool:
    end_time = start_time + duration
    return any(start_time < end and end_time > start for start, end in _intervals(items, exclude_id))


def find_non_colliding_position(
    items: Sequence,
    preferred_time: float,
    duration: float,
    exclude_id: Optional[str] = None,
) -> float:
    """Closest start to ``preferred_time`` at which ``duration`` fits without overlap.

    Candidates are the starts of inter-item gaps large enough to hold the
    duration (the gap before the first item starts at 0) and the end of the last
    item. Ties keep the earliest candidate.
    """
    if not has_collision(items, preferred_time, duration, exclude_id):
        return max(0.0, preferred_time)

    spans = _intervals(items, exclude_id)
    last_end = max(end for _, end in spans)
    candidates: List[float] = []
    gap_start = 0.0
    for start, end in spans:
        if start - gap_start >= duration:
            candidates.append(gap_start)
        gap_start = max(gap_start, end)
    candidates.append(last_end)

    best = last_end
    best_distance = None
    for candidate in candidates:
        distance = abs(candidate - preferred_time)
        if best_distance is None or distance < best_distance:
            best, best_distance = candidate, distance
    return max(0.0, best)


def find_snap_points(items: Sequence, exclude_id: Optional[str] = None) -> List[float]:
    points = {0.0}
    for start, end in _intervals(items, exclude_id):
        points.add(start)
        points.add(end)
    return sorted(points)


def apply_snapping(
    time: float,
    items: Sequence,
    duration: float,
    exclude_id: Optional[str] = None,
    threshold: float = SNAP_THRESHOLD,
) -> float:
    """Snap a dragged item's start, or failing that its end, to a nearby edge."""
    points = find_snap_points(items, exclude_id)
    snapped = time
    min_distance = threshold
    for point in points:
        distance = abs(time - point)
        if distance < min_distance:
            min_distance = distance
            snapped = point
    item_end = time + duration
    for point in points:
        distance = abs(item_end - point)
        if distance < min_distance:
            min_distance = distance
            snapped = point - duration
    return max(0.0, snapped)


def is_clip_compatible_with_track(kind: MediaKind, track: Track) -> bool:
    if kind == "audio":
        return track.kind == "audio"
    if kind in ("video", "image"):
        return track.is_visual
    return False
