"""Compile a timeline snapshot into an ffmpeg filter graph.

The compiler is a pure function of (snapshot, media library, export settings).
It validates every media reference before emitting anything, so a failure never
reaches the engine.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Mapping, Optional, Sequence, Tuple

from clipforge.config import runtime_config
from clipforge.media.models import MediaAsset
from clipforge.video_render import planner
from clipforge.video_render.gaps import detect_gaps
from clipforge.video_render.grouping import Grouping, SegmentPlan, group_segments
from clipforge.video_render.models import ExportSettings, FilterGraph, NodeRef, Ref, Segment, SourceRef
from clipforge.video_timeline.models import Clip, Timeline, Track
from clipforge.video_timeline.overlap import OVERLAP_EPSILON

logger = logging.getLogger(__name__)


class GraphCompileError(ValueError):
    code = "video_render.compile_failed"


class MissingMediaSource(GraphCompileError):
    code = "video_render.missing_media"

    def __init__(self, clip_id: str, media_id: str) -> None:
        super().__init__(f"clip {clip_id} references missing media {media_id}")
        self.clip_id = clip_id
        self.media_id = media_id


class EmptyTimeline(GraphCompileError):
    code = "video_render.empty_timeline"


@dataclass(frozen=True)
class InputSpec:
    uri: str
    kind: str
    clip_id: str


@dataclass
class CompiledTimeline:
    graph: FilterGraph
    inputs: List[InputSpec]
    segments: List[Segment]
    width: int
    height: int
    fps: int
    duration: float
    warnings: List[str] = field(default_factory=list)

    def to_filter_complex(self) -> str:
        return self.graph.to_filter_complex()


def visual_lane(timeline: Timeline) -> List[Clip]:
    """Clips of every video and image track, flattened and ordered by start then track."""
    order = {t.id: i for i, t in enumerate(timeline.tracks)}
    clips = [c for t in timeline.tracks if t.is_visual for c in t.clips]
    return sorted(clips, key=lambda c: (c.start_time, order[c.track_id]))


def _mixable_audio_clips(timeline: Timeline) -> List[Clip]:
    clips = [c for t in timeline.tracks if t.kind == "audio" and not t.muted for c in t.clips]
    return sorted(clips, key=lambda c: c.start_time)


def _require_media(clips: Sequence[Clip], media: Mapping[str, MediaAsset]) -> None:
    for clip in clips:
        if clip.media_id not in media:
            raise MissingMediaSource(clip.id, clip.media_id)


class _GraphBuilder:
    def __init__(self, timeline: Timeline, media: Mapping[str, MediaAsset], width: int, height: int, fps: int) -> None:
        self.timeline = timeline
        self.media = media
        self.width = width
        self.height = height
        self.fps = fps
        self.graph = FilterGraph()
        self.tracks: Dict[str, Track] = {t.id: t for t in timeline.tracks}

    # Every video node goes through here so clip, gap and merge outputs agree on
    # frame rate, time base and pixel format.
    def video(self, op: str, inputs: Tuple[Ref, ...], filters: Sequence[str]) -> NodeRef:
        return self.graph.add(op, "video", inputs, tuple(filters) + tuple(planner.video_normalize_filters(self.fps)))

    def audio(self, op: str, inputs: Tuple[Ref, ...], filters: Sequence[str]) -> NodeRef:
        return self.graph.add(op, "audio", inputs, tuple(filters) + tuple(planner.audio_normalize_filters()))

    def gap(self, duration: float) -> Segment:
        v = self.video("gap", (), [planner.color_source_filter(self.width, self.height, duration, self.fps)])
        a = self.audio("gap", (), [planner.silence_filter(duration)])
        return Segment(kind="gap", video=v, audio=a, duration=duration)

    def clip(self, clip: Clip, input_index: int, fades: Sequence) -> Tuple[NodeRef, NodeRef]:
        duration = clip.visible_duration
        asset = self.media[clip.media_id]
        track = self.tracks[clip.track_id]

        if clip.kind == "image":
            source = ["loop=loop=-1:size=1:start=0", f"trim=duration={planner.fmt_num(duration)}", "setpts=PTS-STARTPTS"]
        else:
            source = [
                f"trim=start={planner.fmt_num(clip.trim_in)}:duration={planner.fmt_num(duration)}",
                "setpts=PTS-STARTPTS",
            ]
        chain = list(source)
        if clip.crop is not None and not clip.crop.is_identity:
            chain.append(planner.crop_filter(clip.crop.x, clip.crop.y, clip.crop.width, clip.crop.height))
        chain.extend(planner.fit_filters(self.width, self.height))
        chain.extend(planner.color_filters(self.timeline.filter_for(clip.id)))
        for transition in fades:
            chain.extend(planner.single_clip_fade_filters(transition, duration))
        v = self.video("clip", (SourceRef(input_index, "video"),), chain)

        silent = clip.kind == "image" or clip.audio_muted or track.muted or not asset.has_audio
        if silent:
            a = self.audio("clip", (), [planner.silence_filter(duration)])
        else:
            achain = [
                f"atrim=start={planner.fmt_num(clip.trim_in)}:duration={planner.fmt_num(duration)}",
                "asetpts=PTS-STARTPTS",
                "apad",
                f"atrim=duration={planner.fmt_num(duration)}",
            ]
            if track.gain != 1.0:
                achain.append(f"volume={planner.fmt_num(track.gain)}")
            for transition in fades:
                achain.extend(planner.single_clip_audio_fade_filters(transition, duration))
            a = self.audio("clip", (SourceRef(input_index, "audio"),), achain)
        return v, a

    def run(self, lane: Sequence[Clip], plan: SegmentPlan, grouping: Grouping) -> Segment:
        refs = {
            i: self.clip(lane[i], i, grouping.edge_fades.get(i, ()))
            for i in plan.clip_indices
        }
        v, a = refs[plan.clip_indices[0]]
        for join in plan.joins:
            next_v, next_a = refs[join.right]
            if join.is_crossfade:
                v = self.video("xfade", (v, next_v), [planner.xfade_filter(join.transition, join.overlap, join.offset)])
                a = self.audio("acrossfade", (a, next_a), [planner.acrossfade_filter(join.overlap)])
            else:
                v = self.video("concat", (v, next_v), ["concat=n=2:v=1:a=0"])
                a = self.audio("concat", (a, next_a), ["concat=n=2:v=0:a=1"])
        return Segment(
            kind=plan.kind,
            video=v,
            audio=a,
            duration=plan.duration,
            clip_ids=tuple(lane[i].id for i in plan.clip_indices),
        )


def compile_filter_graph(
    timeline: Timeline,
    media: Mapping[str, MediaAsset],
    settings: Optional[ExportSettings] = None,
    font_path: Optional[str] = None,
) -> CompiledTimeline:
    settings = settings or ExportSettings()
    width, height = settings.dimensions(timeline.aspect_ratio)
    fps = settings.fps

    lane = visual_lane(timeline)
    audio_clips = _mixable_audio_clips(timeline)
    _require_media(lane, media)
    _require_media(audio_clips, media)
    if not lane:
        raise EmptyTimeline("timeline has no video or image clips to export")

    warnings: List[str] = []
    previous_end = 0.0
    for clip in lane:
        if clip.start_time < previous_end - OVERLAP_EPSILON:
            warnings.append(f"clip {clip.id} overlaps a clip on another track; laid out sequentially")
        previous_end = max(previous_end, clip.end_time)
    for message in warnings:
        logger.warning(message)

    builder = _GraphBuilder(timeline, media, width, height, fps)
    graph = builder.graph
    grouping = group_segments(lane, detect_gaps(lane), timeline.transitions)
    segments: List[Segment] = []
    for plan in grouping.segments:
        if plan.kind == "gap":
            segments.append(builder.gap(plan.duration))
        else:
            segments.append(builder.run(lane, plan, grouping))
    logger.debug("compiled %d segments from %d clips", len(segments), len(lane))

    if len(segments) == 1:
        video = graph.add("assemble", "video", (segments[0].video,), ("null",))
        audio = graph.add("assemble", "audio", (segments[0].audio,), ("anull",))
    else:
        n = len(segments)
        video = graph.add("assemble", "video", tuple(s.video for s in segments), (f"concat=n={n}:v=1:a=0",))
        audio = graph.add("assemble", "audio", tuple(s.audio for s in segments), (f"concat=n={n}:v=0:a=1",))
    total = grouping.duration

    font = font_path or runtime_config.get_font_path()
    for overlay in timeline.text_overlays:
        if not overlay.text.strip() or overlay.start_time >= total:
            continue
        end = min(overlay.end_time, total)
        video = graph.add(
            "drawtext",
            "video",
            (video,),
            (planner.drawtext_filter(overlay, width, height, overlay.start_time, end, font),),
        )

    inputs = [InputSpec(uri=media[c.media_id].source_uri, kind=c.kind, clip_id=c.id) for c in lane]
    mix_inputs: List[Ref] = [audio]
    for clip in audio_clips:
        if clip.start_time >= total:
            continue
        track = builder.tracks[clip.track_id]
        index = len(inputs)
        inputs.append(InputSpec(uri=media[clip.media_id].source_uri, kind="audio", clip_id=clip.id))
        delay_ms = int(round(clip.start_time * 1000))
        chain = [
            f"atrim=start={planner.fmt_num(clip.trim_in)}:duration={planner.fmt_num(clip.visible_duration)}",
            "asetpts=PTS-STARTPTS",
        ]
        if track.gain != 1.0:
            chain.append(f"volume={planner.fmt_num(track.gain)}")
        chain.append(f"adelay=delays={delay_ms}:all=1")
        mix_inputs.append(builder.audio("audio_track", (SourceRef(index, "audio"),), chain))
    if len(mix_inputs) > 1:
        audio = builder.audio(
            "amix",
            tuple(mix_inputs),
            [f"amix=inputs={len(mix_inputs)}:duration=first:dropout_transition=0:normalize=0"],
        )

    graph.video_out = graph.add("output", "video", (video,), ("null",))
    graph.audio_out = graph.add("output", "audio", (audio,), ("anull",))
    return CompiledTimeline(
        graph=graph,
        inputs=inputs,
        segments=segments,
        width=width,
        height=height,
        fps=fps,
        duration=total,
        warnings=warnings,
    )


def build_ffmpeg_args(
    compiled: CompiledTimeline,
    settings: ExportSettings,
    output_path: str,
    ffmpeg_bin: Optional[str] = None,
) -> List[str]:
    """Full engine invocation for a compiled timeline, progress reported on stdout."""
    codecs = planner.CONTAINER_CODECS[settings.format]
    quality = planner.QUALITY_PRESETS[settings.quality]
    args = [ffmpeg_bin or runtime_config.get_ffmpeg_bin(), "-y", "-hide_banner"]
    for spec in compiled.inputs:
        args.extend(["-i", spec.uri])
    graph = compiled.graph
    args.extend(
        [
            "-filter_complex",
            graph.to_filter_complex(),
            "-map",
            f"[{graph.label(graph.video_out)}]",
            "-map",
            f"[{graph.label(graph.audio_out)}]",
            "-c:v",
            codecs["vcodec"],
            "-crf",
            quality["crf"],
        ]
    )
    if codecs["vcodec"] == "libx264":
        args.extend(["-preset", quality["preset"], "-movflags", "+faststart"])
    else:
        args.extend(["-b:v", "0"])
    args.extend(
        [
            "-c:a",
            codecs["acodec"],
            "-r",
            str(compiled.fps),
            "-pix_fmt",
            "yuv420p",
            "-progress",
            "pipe:1",
            "-nostats",
            output_path,
        ]
    )
    return args
