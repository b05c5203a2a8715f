"""Error normalizer: any exception in, one uniform error envelope out.

Every exception raised while handling a request passes through
``ErrorNormalizer.normalize``. It decides the error code and HTTP status,
decides how much internal detail the client may see, and logs the failure
exactly once under a fresh ``traceId`` that is echoed in the response body.

Mapping:
- Pydantic / FastAPI validation errors -> VALIDATION_ERROR (first failure wins)
- PersistenceError -> CONFLICT / NOT_FOUND / BAD_REQUEST / VALIDATION_ERROR,
  DATABASE_ERROR for anything unrecognized
- AppError (and subclasses) -> its own code, message, details and field
- Starlette HTTPException -> code matching its status
- Anything else -> INTERNAL_ERROR, generic message in production
"""

from __future__ import annotations

import logging
import secrets
import string
import time
import traceback
from dataclasses import dataclass, field as dataclass_field
from datetime import datetime, timezone
from typing import Any, Sequence

from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import ValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException

from labsync.adapters.persistence.base import PersistenceError, PersistenceErrorKind
from labsync.core.errors import (
    AppError,
    ErrorCode,
    RateLimitExceededError,
    status_for_code,
)
from labsync.core.logging import get_request_id
from labsync.core.rate_limit import rate_limit_headers
from labsync.schemas.envelope import ApiErrorBody, ErrorEnvelope, envelope_content

logger = logging.getLogger(__name__)

GENERIC_ERROR_MESSAGE = "An unexpected error occurred"

# Location prefixes FastAPI adds to request validation errors
_REQUEST_LOCATIONS = frozenset({"body", "query", "path", "header", "cookie"})

_PERSISTENCE_MAP: dict[PersistenceErrorKind, tuple[ErrorCode, str]] = {
    PersistenceErrorKind.UNIQUE_VIOLATION: (
        ErrorCode.CONFLICT,
        "A record with this value already exists",
    ),
    PersistenceErrorKind.RECORD_NOT_FOUND: (ErrorCode.NOT_FOUND, "Record not found"),
    PersistenceErrorKind.FOREIGN_KEY_VIOLATION: (
        ErrorCode.BAD_REQUEST,
        "Foreign key constraint failed",
    ),
    PersistenceErrorKind.INVALID_DATA: (ErrorCode.VALIDATION_ERROR, "Invalid data format"),
}

_HTTP_STATUS_MAP: dict[int, ErrorCode] = {
    400: ErrorCode.BAD_REQUEST,
    401: ErrorCode.UNAUTHORIZED,
    403: ErrorCode.FORBIDDEN,
    404: ErrorCode.NOT_FOUND,
    405: ErrorCode.BAD_REQUEST,
    409: ErrorCode.CONFLICT,
    413: ErrorCode.BAD_REQUEST,
    422: ErrorCode.VALIDATION_ERROR,
    429: ErrorCode.RATE_LIMIT_EXCEEDED,
    503: ErrorCode.SERVICE_UNAVAILABLE,
    504: ErrorCode.TIMEOUT,
}

_BASE36 = string.digits + string.ascii_lowercase


def generate_trace_id() -> str:
    """Return ``<epoch-ms>-<9 base36 chars>``, unique per call for practical purposes."""
    suffix = "".join(secrets.choice(_BASE36) for _ in range(9))
    return f"{int(time.time() * 1000)}-{suffix}"


@dataclass
class NormalizedError:
    """Outcome of normalizing one exception."""

    status_code: int
    body: dict[str, Any]
    headers: dict[str, str] = dataclass_field(default_factory=dict)

    @property
    def code(self) -> str:
        return self.body["error"]["code"]

    @property
    def trace_id(self) -> str:
        return self.body["error"]["traceId"]

    def to_response(self) -> JSONResponse:
        return JSONResponse(
            status_code=self.status_code,
            content=self.body,
            headers=self.headers or None,
        )


@dataclass
class _Classified:
    code: ErrorCode
    message: str
    details: Any = None
    field: str | None = None
    internal: bool = True
    retry_after: int | None = None
    headers: dict[str, str] = dataclass_field(default_factory=dict)


def _field_path(loc: Sequence[Any]) -> str | None:
    parts = list(loc)
    if parts and parts[0] in _REQUEST_LOCATIONS:
        parts = parts[1:]
    path = ".".join(str(part) for part in parts)
    return path or None


def _validation_details(errors: Sequence[dict[str, Any]]) -> list[dict[str, Any]]:
    return [
        {
            "field": _field_path(err.get("loc", ())),
            "message": err.get("msg", ""),
            "type": err.get("type", ""),
        }
        for err in errors
    ]


class ErrorNormalizer:
    """Maps exceptions to the error envelope.

    Args:
        production: Hide internal detail (stack traces, raw backend messages,
            full validation lists) and replace unexpected messages with a
            generic one.
    """

    def __init__(self, *, production: bool = False) -> None:
        self.production = production

    def normalize(self, exc: BaseException) -> NormalizedError:
        """Classify ``exc``, log it once and build the client response body."""
        classified = self._classify(exc)
        status_code = status_for_code(classified.code)
        trace_id = generate_trace_id()

        details = classified.details
        if classified.internal and self.production:
            details = None

        error_body = ApiErrorBody(
            code=classified.code.value,
            message=classified.message,
            details=details,
            field=classified.field,
            timestamp=datetime.now(timezone.utc).isoformat(),
            trace_id=trace_id,
            retry_after=classified.retry_after,
        )
        body = envelope_content(ErrorEnvelope(error=error_body))

        self._log(exc, classified, status_code, trace_id)
        return NormalizedError(status_code=status_code, body=body, headers=classified.headers)

    def to_response(self, exc: BaseException) -> JSONResponse:
        return self.normalize(exc).to_response()

    def _classify(self, exc: BaseException) -> _Classified:
        if isinstance(exc, (RequestValidationError, ValidationError)):
            return self._classify_validation(exc.errors())
        if isinstance(exc, PersistenceError):
            return self._classify_persistence(exc)
        if isinstance(exc, RateLimitExceededError):
            headers = rate_limit_headers(exc.result) if exc.result is not None else {}
            return _Classified(
                code=exc.code,
                message=exc.message,
                details=exc.details,
                field=exc.field,
                internal=False,
                retry_after=exc.retry_after,
                headers=headers,
            )
        if isinstance(exc, AppError):
            return _Classified(
                code=exc.code,
                message=exc.message,
                details=exc.details,
                field=exc.field,
                internal=False,
            )
        if isinstance(exc, StarletteHTTPException):
            code = _HTTP_STATUS_MAP.get(exc.status_code, ErrorCode.INTERNAL_ERROR)
            return _Classified(
                code=code,
                message=str(exc.detail),
                internal=False,
                headers=dict(exc.headers or {}),
            )
        return _Classified(
            code=ErrorCode.INTERNAL_ERROR,
            message=GENERIC_ERROR_MESSAGE if self.production else (str(exc) or GENERIC_ERROR_MESSAGE),
            details="".join(traceback.format_exception(type(exc), exc, exc.__traceback__)),
        )

    def _classify_validation(self, errors: Sequence[dict[str, Any]]) -> _Classified:
        if not errors:
            return _Classified(code=ErrorCode.VALIDATION_ERROR, message="Validation failed")
        first = errors[0]
        return _Classified(
            code=ErrorCode.VALIDATION_ERROR,
            message=f"Validation failed: {first.get('msg', '')}",
            details=_validation_details(errors),
            field=_field_path(first.get("loc", ())),
        )

    def _classify_persistence(self, exc: PersistenceError) -> _Classified:
        mapped = _PERSISTENCE_MAP.get(exc.kind)
        if mapped is not None:
            code, message = mapped
            return _Classified(code=code, message=message, details=exc.meta)
        return _Classified(
            code=ErrorCode.DATABASE_ERROR,
            message="Database operation failed",
            details=exc.message,
        )

    def _log(
        self,
        exc: BaseException,
        classified: _Classified,
        status_code: int,
        trace_id: str,
    ) -> None:
        extra = {
            "trace_id": trace_id,
            "error_code": classified.code.value,
            "error_message": classified.message,
            "error_type": type(exc).__name__,
            "error_field": classified.field,
            "status_code": status_code,
            "request_id": get_request_id(),
        }
        if status_code >= 500:
            logger.error(
                "api_error.handled",
                extra=extra,
                exc_info=(type(exc), exc, exc.__traceback__),
            )
        else:
            logger.warning("api_error.handled", extra=extra)
