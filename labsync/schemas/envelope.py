"""Uniform response envelope shared by every API route.

Success: ``{"success": true, "data": ..., "meta": {...}?}``
Error:   ``{"success": false, "error": {"code", "message", "details"?, "field"?,
"timestamp", "traceId"}}``
"""

from __future__ import annotations

from typing import Any, Literal

from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field


class ApiMeta(BaseModel):
    """Pagination metadata for list responses."""

    model_config = ConfigDict(populate_by_name=True)

    page: int | None = None
    limit: int | None = None
    total: int | None = None
    has_more: bool | None = Field(default=None, alias="hasMore")


class ApiErrorBody(BaseModel):
    """Client-facing error payload."""

    model_config = ConfigDict(populate_by_name=True)

    code: str = Field(..., description="Stable error code from the fixed taxonomy.")
    message: str = Field(..., description="Human-readable description.")
    details: Any = Field(default=None, description="Debug context (non-production only).")
    field: str | None = Field(default=None, description="Dotted path of the offending input.")
    timestamp: str = Field(..., description="ISO-8601 UTC time the error was shaped.")
    trace_id: str = Field(..., alias="traceId", description="Correlates with server logs.")
    retry_after: int | None = Field(
        default=None,
        alias="retryAfter",
        description="Seconds to wait before retrying (rate limit denials only).",
    )


class SuccessEnvelope(BaseModel):
    success: Literal[True] = True
    data: Any = None
    meta: ApiMeta | None = None


class ErrorEnvelope(BaseModel):
    success: Literal[False] = False
    error: ApiErrorBody


def envelope_content(model: BaseModel) -> dict[str, Any]:
    """Serialize an envelope model using wire aliases, dropping unset optionals."""
    return model.model_dump(by_alias=True, exclude_none=True)


def success_response(
    data: Any,
    meta: ApiMeta | None = None,
    status_code: int = 200,
) -> JSONResponse:
    """Build a ``{"success": true, ...}`` JSON response.

    Args:
        data: Payload (already version-transformed by the caller).
        meta: Optional pagination metadata.
        status_code: HTTP status (200 by default, 201 for creations).
    """

    content: dict[str, Any] = {"success": True, "data": jsonable_encoder(data)}
    if meta is not None:
        content["meta"] = meta.model_dump(by_alias=True, exclude_none=True)
    return JSONResponse(status_code=status_code, content=content)


def pagination_meta(page: int, limit: int, total: int) -> ApiMeta:
    """Compute pagination metadata; ``hasMore`` is true while pages remain."""
    return ApiMeta(page=page, limit=limit, total=total, has_more=page * limit < total)
