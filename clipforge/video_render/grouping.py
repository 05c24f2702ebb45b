"""Segment grouping: decide how the visual lane is stitched together.

Adjacent clips (no gap between them) form a run. Each junction of a run is a
cross-fade when a transition claims it and a hard concat otherwise. Runs are
separated by synthesized gap segments.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Literal, Optional, Sequence, Set, Tuple

from clipforge.video_render.gaps import Gap
from clipforge.video_timeline.models import Position, Transition

logger = logging.getLogger(__name__)

# A cross-fade never eats more than this share of either clip.
MAX_OVERLAP_RATIO = 0.9

JunctionKey = Tuple[int, Position]


@dataclass(frozen=True)
class Join:
    left: int
    right: int
    transition: Optional[Transition]
    overlap: float
    offset: float

    @property
    def is_crossfade(self) -> bool:
        return self.transition is not None


@dataclass(frozen=True)
class SegmentPlan:
    kind: Literal["gap", "clip", "merged"]
    duration: float
    clip_indices: Tuple[int, ...] = ()
    joins: Tuple[Join, ...] = ()


@dataclass
class Grouping:
    segments: List[SegmentPlan] = field(default_factory=list)
    # Transitions no junction claimed; they degrade to single-clip fades.
    edge_fades: Dict[int, List[Transition]] = field(default_factory=dict)

    @property
    def duration(self) -> float:
        return sum(s.duration for s in self.segments)


def build_transition_table(clips: Sequence, transitions: Iterable[Transition]) -> Dict[JunctionKey, Transition]:
    index_of = {clip.id: i for i, clip in enumerate(clips)}
    table: Dict[JunctionKey, Transition] = {}
    for transition in transitions:
        if transition.type == "none":
            continue
        index = index_of.get(transition.clip_id)
        if index is None:
            continue
        table.setdefault((index, transition.position), transition)
    return table


def group_segments(clips: Sequence, gaps: Sequence[Gap], transitions: Iterable[Transition]) -> Grouping:
    table = build_transition_table(clips, transitions)
    gap_before = {gap.before_index: gap for gap in gaps}
    durations = [clip.visible_duration for clip in clips]
    consumed: Set[JunctionKey] = set()
    result = Grouping()

    i = 0
    while i < len(clips):
        if i in gap_before:
            result.segments.append(SegmentPlan(kind="gap", duration=gap_before[i].duration))

        joins: List[Join] = []
        cumulative = durations[i]
        j = i
        while j + 1 < len(clips) and (j + 1) not in gap_before:
            into_next: JunctionKey = (j + 1, "start")
            out_of_current: JunctionKey = (j, "end")
            transition = table.get(into_next) or table.get(out_of_current)
            if into_next in table and out_of_current in table:
                logger.debug("junction %d/%d: start transition shadows end transition", j, j + 1)
            consumed.update((into_next, out_of_current))

            if transition is not None:
                overlap = min(
                    transition.duration,
                    durations[j] * MAX_OVERLAP_RATIO,
                    durations[j + 1] * MAX_OVERLAP_RATIO,
                )
                offset = max(0.0, cumulative - overlap)
                cumulative = offset + durations[j + 1]
            else:
                overlap = 0.0
                offset = cumulative
                cumulative += durations[j + 1]
            joins.append(Join(left=j, right=j + 1, transition=transition, overlap=overlap, offset=offset))
            j += 1

        result.segments.append(
            SegmentPlan(
                kind="merged" if joins else "clip",
                duration=cumulative,
                clip_indices=tuple(range(i, j + 1)),
                joins=tuple(joins),
            )
        )
        i = j + 1

    for key, transition in table.items():
        if key not in consumed:
            result.edge_fades.setdefault(key[0], []).append(transition)
    return result
