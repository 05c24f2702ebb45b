import pytest
from pydantic import ValidationError

from clipforge.video_timeline.models import (
    Clip,
    CropSettings,
    TextOverlay,
    Timeline,
    Track,
    Transition,
    VideoFilter,
)
from clipforge.video_timeline.tests.helpers import make_clip


def test_visible_duration_and_end():
    clip = make_clip("c1", start=2.0, duration=10.0, trim_in=1.0, trim_out=3.0)
    assert clip.visible_duration == pytest.approx(6.0)
    assert clip.end_time == pytest.approx(8.0)
    assert clip.contains(5.0)
    assert not clip.contains(2.0)
    assert not clip.contains(8.0)


def test_snapshots_are_frozen():
    clip = make_clip("c1", start=0.0, duration=5.0)
    with pytest.raises(ValidationError):
        clip.start_time = 3.0


def test_clip_rejects_negative_start_and_zero_duration():
    with pytest.raises(ValidationError):
        make_clip("c1", start=-1.0, duration=5.0)
    with pytest.raises(ValidationError):
        make_clip("c1", start=0.0, duration=0.0)


def test_track_gain_is_clamped():
    assert Track(name="A", kind="audio", gain=1.7).gain == 1.0
    assert Track(name="A", kind="audio", gain=-0.2).gain == 0.0


def test_transition_duration_floor_and_types():
    assert Transition(clip_id="c1", type="fade", duration=0.0).duration == pytest.approx(0.1)
    assert Transition(clip_id="c1", type="diamond-wipe", duration=2.0).duration == 2.0
    with pytest.raises(ValidationError):
        Transition(clip_id="c1", type="crossfade")


def test_filter_values_are_clamped():
    f = VideoFilter(clip_id="c1", brightness=150, contrast=-130, saturation=20, blur=40)
    assert (f.brightness, f.contrast, f.saturation, f.blur) == (100, -100, 20, 20)
    assert not f.is_neutral
    assert VideoFilter(clip_id="c1").is_neutral


def test_crop_percentages_clamped():
    crop = CropSettings(x=-5, y=10, width=120, height=50)
    assert (crop.x, crop.width) == (0, 100)
    assert not crop.is_identity
    assert CropSettings().is_identity


def test_timeline_duration_and_lookups():
    v = make_clip("c1", start=0.0, duration=4.0)
    a = make_clip("c2", start=1.0, duration=6.0, track_id="a1", kind="audio")
    timeline = Timeline(
        tracks=(
            Track(id="v1", name="Video 1", kind="video", clips=(v,)),
            Track(id="a1", name="Audio 1", kind="audio", clips=(a,)),
        ),
        text_overlays=(TextOverlay(track_id="t1", text="hi", start_time=5.0, duration=4.0),),
    )
    assert timeline.duration == pytest.approx(9.0)
    assert timeline.find_clip("c2") == a
    assert timeline.track_of("c1").id == "v1"
    assert timeline.find_clip("missing") is None
    assert [t.id for t in timeline.tracks_of_kind("audio")] == ["a1"]
    assert sorted(c.id for c in timeline.all_clips()) == ["c1", "c2"]
