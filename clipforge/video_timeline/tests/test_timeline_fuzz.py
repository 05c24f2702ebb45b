import random

import pytest

from clipforge.video_timeline import editing
from clipforge.video_timeline.models import MIN_CLIP_DURATION, Timeline
from clipforge.video_timeline.overlap import OVERLAP_EPSILON, resolve_overlaps
from clipforge.video_timeline.tests.helpers import make_media, timeline_with_tracks

TOLERANCE = 1e-9

MEDIA = [
    make_media("short", duration=3.0),
    make_media("long", duration=12.5),
    make_media("pic", kind="image", duration=None),
]


def _assert_consistent(timeline: Timeline) -> None:
    for track in timeline.tracks:
        clips = sorted(track.clips, key=lambda c: c.start_time)
        for clip in clips:
            assert clip.start_time >= 0
            assert clip.trim_in >= 0 and clip.trim_out >= 0
            assert clip.visible_duration >= MIN_CLIP_DURATION - TOLERANCE
            assert clip.track_id == track.id
        for left, right in zip(clips, clips[1:]):
            assert right.start_time >= left.end_time - OVERLAP_EPSILON - TOLERANCE
        assert resolve_overlaps(list(track.clips)) == list(track.clips)


def _random_step(rng: random.Random, timeline: Timeline, counter: int) -> Timeline:
    clips = list(timeline.all_clips())
    op = rng.choice(["add", "add", "move", "split", "trim", "resize"]) if clips else "add"
    if op == "add":
        track = rng.choice(["v1", "v2"])
        return editing.add_clip_to_track(timeline, track, rng.choice(MEDIA), rng.uniform(0, 40), clip_id=f"c{counter}")
    clip = rng.choice(clips)
    if op == "move":
        return editing.move_clip(timeline, clip.id, rng.choice(["v1", "v2"]), rng.uniform(0, 40))
    if op == "split":
        at = clip.start_time + rng.random() * clip.visible_duration
        return editing.split_clip(timeline, clip.id, at, new_clip_id=f"c{counter}")
    if op == "trim":
        return editing.trim_clip(timeline, clip.id, rng.uniform(0, clip.raw_duration), rng.uniform(0, clip.raw_duration))
    return editing.resize_clip(timeline, clip.id, rng.choice(["start", "end"]), rng.uniform(0, 50))


@pytest.mark.parametrize("seed", [3, 17, 2024])
def test_random_edits_keep_tracks_free_of_overlaps(seed):
    rng = random.Random(seed)
    timeline = timeline_with_tracks(("video", "v1"), ("video", "v2"))
    for counter in range(250):
        timeline = _random_step(rng, timeline, counter)
        _assert_consistent(timeline)


def test_trim_never_goes_below_minimum():
    rng = random.Random(5)
    timeline = editing.add_clip_to_track(timeline_with_tracks(("video", "v1")), "v1", MEDIA[1], 0.0, clip_id="c")
    for _ in range(100):
        timeline = editing.trim_clip(timeline, "c", rng.uniform(0, 20), rng.uniform(0, 20))
        assert timeline.find_clip("c").visible_duration >= MIN_CLIP_DURATION - TOLERANCE


def test_split_preserves_total_visible_duration():
    rng = random.Random(11)
    timeline = editing.add_clip_to_track(timeline_with_tracks(("video", "v1")), "v1", MEDIA[1], 4.0, clip_id="c")
    timeline = editing.trim_clip(timeline, "c", 1.5, 2.0)
    total = timeline.find_clip("c").visible_duration
    for counter in range(20):
        clip = rng.choice(list(timeline.all_clips()))
        at = clip.start_time + rng.uniform(0.01, 0.99) * clip.visible_duration
        timeline = editing.split_clip(timeline, clip.id, at, new_clip_id=f"s{counter}")
        assert sum(c.visible_duration for c in timeline.all_clips()) == pytest.approx(total)
