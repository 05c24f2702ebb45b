import pytest

from clipforge.video_render.gaps import detect_gaps
from clipforge.video_render.grouping import build_transition_table, group_segments
from clipforge.video_timeline.models import Transition
from clipforge.video_timeline.tests.helpers import make_clip


def _group(clips, transitions):
    return group_segments(clips, detect_gaps(clips), transitions)


def test_transition_merges_adjacent_run():
    clips = [make_clip("a", 0.0, 4.0), make_clip("b", 4.0, 4.0), make_clip("c", 8.0, 4.0)]
    fade = Transition(clip_id="c", type="fade", duration=1.0, position="start")
    grouping = _group(clips, [fade])

    assert len(grouping.segments) == 1
    segment = grouping.segments[0]
    assert segment.kind == "merged"
    assert segment.clip_indices == (0, 1, 2)
    first, second = segment.joins
    assert not first.is_crossfade
    assert first.offset == 4.0
    assert second.transition == fade
    assert second.overlap == 1.0
    assert second.offset == 7.0
    assert segment.duration == 11.0
    assert grouping.edge_fades == {}


def test_adjacent_clips_without_transition_still_form_one_run():
    clips = [make_clip("a", 0.0, 4.0), make_clip("b", 4.0, 2.0)]
    grouping = _group(clips, [])
    assert [s.kind for s in grouping.segments] == ["merged"]
    assert grouping.duration == 6.0


def test_start_transition_wins_over_end_transition():
    clips = [make_clip("a", 0.0, 5.0), make_clip("b", 5.0, 5.0)]
    out = Transition(clip_id="a", type="wipe-left", duration=1.0, position="end")
    into = Transition(clip_id="b", type="fade", duration=1.0, position="start")
    grouping = _group(clips, [out, into])
    assert grouping.segments[0].joins[0].transition == into
    # Both junction keys are consumed, so the shadowed transition does not fade either clip.
    assert grouping.edge_fades == {}


def test_overlap_is_clamped_to_shorter_clip():
    clips = [make_clip("a", 0.0, 1.0), make_clip("b", 1.0, 5.0)]
    grouping = _group(clips, [Transition(clip_id="b", type="dissolve", duration=2.0)])
    join = grouping.segments[0].joins[0]
    assert join.overlap == pytest.approx(0.9)
    assert join.offset == pytest.approx(0.1)
    assert grouping.duration == pytest.approx(5.1)


def test_gap_splits_runs_and_leaves_edge_fade():
    clips = [make_clip("a", 0.0, 10.0), make_clip("b", 12.0, 8.0)]
    fade = Transition(clip_id="b", type="fade", duration=1.0, position="start")
    grouping = _group(clips, [fade])
    assert [s.kind for s in grouping.segments] == ["clip", "gap", "clip"]
    assert grouping.segments[1].duration == 2.0
    assert grouping.edge_fades == {1: [fade]}
    assert grouping.duration == 20.0


def test_trailing_end_transition_becomes_edge_fade():
    clips = [make_clip("a", 0.0, 3.0), make_clip("b", 3.0, 3.0)]
    out = Transition(clip_id="b", type="fade", duration=1.0, position="end")
    assert _group(clips, [out]).edge_fades == {1: [out]}


def test_none_and_unknown_transitions_are_ignored():
    clips = [make_clip("a", 0.0, 3.0), make_clip("b", 3.0, 3.0)]
    transitions = [
        Transition(clip_id="b", type="none", duration=1.0),
        Transition(clip_id="ghost", type="fade", duration=1.0),
    ]
    assert build_transition_table(clips, transitions) == {}
    grouping = _group(clips, transitions)
    assert not grouping.segments[0].joins[0].is_crossfade
    assert grouping.edge_fades == {}
