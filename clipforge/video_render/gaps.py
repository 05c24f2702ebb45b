from __future__ import annotations

from dataclasses import dataclass
from typing import List, Sequence

GAP_EPSILON = 0.01


@dataclass(frozen=True)
class Gap:
    before_index: int
    duration: float


def detect_gaps(clips: Sequence) -> List[Gap]:
    """Gaps in a start-sorted clip sequence, keyed by the clip they precede.

    Gaps are measured from the furthest end seen so far; clips from different
    tracks may overlap.
    Spans shorter than the epsilon are floating-point noise and are dropped.
    """
    gaps: List[Gap] = []
    previous_end = 0.0
    for index, clip in enumerate(clips):
        if clip.start_time > previous_end + GAP_EPSILON:
            gaps.append(Gap(before_index=index, duration=clip.start_time - previous_end))
        previous_end = max(previous_end, clip.start_time + clip.visible_duration)
    return gaps
