"""Error envelope shared by every clipforge router.

Responses carry the envelope as the HTTPException detail:

    {"detail": {"error": {"code": "...", "message": "...", "http_status": 404,
                          "resource_kind": "clip", "details": {}}}}

Codes are ``<engine or resource>.<reason>``, e.g. ``timeline.not_found`` or
``video_render.missing_media``.
"""
from __future__ import annotations

from typing import Any, Dict, NoReturn, Optional

from fastapi import HTTPException
from pydantic import BaseModel, Field


class ErrorDetail(BaseModel):
    code: str
    message: str
    http_status: int
    resource_kind: Optional[str] = None
    details: Dict[str, Any] = Field(default_factory=dict)


class ErrorEnvelope(BaseModel):
    error: ErrorDetail


def build_error_envelope(
    code: str,
    message: str,
    status_code: int = 400,
    resource_kind: Optional[str] = None,
    details: Optional[Dict[str, Any]] = None,
) -> ErrorEnvelope:
    return ErrorEnvelope(
        error=ErrorDetail(
            code=code,
            message=message,
            http_status=status_code,
            resource_kind=resource_kind,
            details=details or {},
        )
    )


def error_response(
    code: str,
    message: str,
    status_code: int = 400,
    resource_kind: Optional[str] = None,
    details: Optional[Dict[str, Any]] = None,
) -> NoReturn:
    """Raise an HTTPException whose detail is the serialized envelope."""
    envelope = build_error_envelope(code, message, status_code, resource_kind, details)
    raise HTTPException(status_code=status_code, detail=envelope.model_dump())


def not_found_error(resource_kind: str, resource_id: str) -> NoReturn:
    error_response(
        f"{resource_kind}.not_found",
        f"{resource_kind} {resource_id} not found",
        status_code=404,
        resource_kind=resource_kind,
        details={"id": resource_id},
    )


def invalid_edit_error(message: str) -> NoReturn:
    """A timeline command rejected its arguments (unknown field, bad value)."""
    error_response("video_timeline.invalid_edit", message, status_code=400, resource_kind="timeline")


def unprocessable_error(code: str, message: str, details: Optional[Dict[str, Any]] = None) -> NoReturn:
    """The request was well formed but the timeline cannot be compiled as it stands."""
    error_response(code, message, status_code=422, resource_kind="render", details=details)
