from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Literal, Optional

from pydantic import BaseModel, Field

MediaKind = Literal["video", "audio", "image"]

# Images have no intrinsic length; this is the default span they get on a track.
DEFAULT_IMAGE_DURATION = 5.0


def _uuid() -> str:
    return uuid.uuid4().hex


class MediaAsset(BaseModel):
    id: str = Field(default_factory=_uuid)
    name: str
    kind: MediaKind
    source_uri: str
    duration: Optional[float] = Field(default=None, ge=0)
    width: Optional[int] = None
    height: Optional[int] = None
    has_audio: bool = True
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def timeline_duration(self) -> float:
        if self.kind == "image":
            return self.duration or DEFAULT_IMAGE_DURATION
        return self.duration or 0.0


class MediaRegisterRequest(BaseModel):
    name: str
    kind: MediaKind
    source_uri: str
    duration: Optional[float] = Field(default=None, ge=0)
    width: Optional[int] = None
    height: Optional[int] = None
    has_audio: bool = True
