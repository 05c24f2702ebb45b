from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Literal, Optional, Tuple, Union

from pydantic import BaseModel, Field

from clipforge.video_timeline.models import AspectRatio

ExportResolution = Literal["720p", "1080p", "4K"]
ExportFormat = Literal["mp4", "webm"]
ExportQuality = Literal["low", "medium", "high"]
ExportFPS = Literal[30, 60, 120]
StreamKind = Literal["video", "audio"]

RESOLUTION_PRESETS: Dict[str, Tuple[int, int]] = {
    "720p": (1280, 720),
    "1080p": (1920, 1080),
    "4K": (3840, 2160),
}

_ASPECT_RATIOS: Dict[str, Tuple[int, int]] = {
    "16:9": (16, 9),
    "9:16": (9, 16),
    "1:1": (1, 1),
    "4:3": (4, 3),
    "21:9": (21, 9),
}


def _even(value: float) -> int:
    return max(2, int(round(value / 2.0)) * 2)


def resolution_for_aspect_ratio(resolution: ExportResolution, aspect_ratio: AspectRatio) -> Tuple[int, int]:
    """Output frame size: the short side is the preset height, both sides even."""
    short_side = RESOLUTION_PRESETS[resolution][1]
    num, den = _ASPECT_RATIOS[aspect_ratio]
    if num >= den:
        return _even(short_side * num / den), short_side
    return short_side, _even(short_side * den / num)


class ExportSettings(BaseModel):
    resolution: ExportResolution = "1080p"
    aspect_ratio: Optional[AspectRatio] = None
    fps: ExportFPS = 30
    format: ExportFormat = "mp4"
    quality: ExportQuality = "high"
    filename: str = "export"

    def dimensions(self, fallback_aspect: AspectRatio = "16:9") -> Tuple[int, int]:
        return resolution_for_aspect_ratio(self.resolution, self.aspect_ratio or fallback_aspect)


# Filter graph arena. Nodes are appended in emission order and never removed,
# so a node may only reference inputs that precede it.

NodeRef = int


@dataclass(frozen=True)
class SourceRef:
    """One stream of an engine input file."""

    input_index: int
    stream: StreamKind

    @property
    def label(self) -> str:
        return f"{self.input_index}:{'v' if self.stream == 'video' else 'a'}"


Ref = Union[NodeRef, SourceRef]


@dataclass(frozen=True)
class GraphNode:
    op: str
    stream: StreamKind
    inputs: Tuple[Ref, ...]
    filters: Tuple[str, ...]

    @property
    def expression(self) -> str:
        return ",".join(self.filters)


@dataclass
class FilterGraph:
    nodes: List[GraphNode] = field(default_factory=list)
    video_out: Optional[NodeRef] = None
    audio_out: Optional[NodeRef] = None

    def add(self, op: str, stream: StreamKind, inputs: Tuple[Ref, ...], filters: Tuple[str, ...]) -> NodeRef:
        for ref in inputs:
            if isinstance(ref, int) and not 0 <= ref < len(self.nodes):
                raise ValueError(f"node {ref} does not exist yet")
        self.nodes.append(GraphNode(op=op, stream=stream, inputs=tuple(inputs), filters=tuple(filters)))
        return len(self.nodes) - 1

    @staticmethod
    def label(ref: Ref) -> str:
        if isinstance(ref, SourceRef):
            return ref.label
        return f"n{ref}"

    def ops(self) -> List[str]:
        return [node.op for node in self.nodes]

    def nodes_of(self, op: str) -> List[GraphNode]:
        return [node for node in self.nodes if node.op == op]

    def lines(self) -> List[str]:
        rendered = []
        for index, node in enumerate(self.nodes):
            ins = "".join(f"[{self.label(ref)}]" for ref in node.inputs)
            rendered.append(f"{ins}{node.expression}[{self.label(index)}]")
        return rendered

    def to_filter_complex(self) -> str:
        return ";".join(self.lines())


@dataclass(frozen=True)
class Segment:
    """One entry of the final concat: a video and an audio handle of equal length."""

    kind: Literal["gap", "clip", "merged"]
    video: NodeRef
    audio: NodeRef
    duration: float
    clip_ids: Tuple[str, ...] = ()


class PlanStep(BaseModel):
    description: str
    ffmpeg_args: List[str] = Field(default_factory=list)


class RenderPlan(BaseModel):
    inputs: List[str] = Field(default_factory=list)
    input_meta: List[Dict[str, Any]] = Field(default_factory=list)
    steps: List[PlanStep] = Field(default_factory=list)
    output_path: str
    width: int
    height: int
    fps: int
    duration: float
    filters: List[str] = Field(default_factory=list)
    meta: Dict[str, Any] = Field(default_factory=dict)


class RenderRequest(BaseModel):
    project_id: str
    settings: ExportSettings = Field(default_factory=ExportSettings)
    output_path: Optional[str] = None
    dry_run: bool = False


class RenderResult(BaseModel):
    job_id: str
    status: Literal["planned", "succeeded", "failed", "cancelled"]
    output_path: Optional[str] = None
    error: Optional[str] = None
    plan_preview: RenderPlan
