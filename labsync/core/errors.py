"""Application-level exception types and the client-facing error taxonomy.

This module defines the stable error codes surfaced to API clients, their
HTTP status mapping, and the domain errors raised across routes, adapters
and the request pipeline.
"""

from __future__ import annotations

from dataclasses import dataclass, field as dataclass_field
from enum import Enum
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from labsync.adapters.rate_limit.base import RateLimitResult


class ErrorCode(str, Enum):
    """Machine-readable error codes clients can branch on."""

    # Client errors (4xx)
    BAD_REQUEST = "BAD_REQUEST"
    UNAUTHORIZED = "UNAUTHORIZED"
    FORBIDDEN = "FORBIDDEN"
    NOT_FOUND = "NOT_FOUND"
    CONFLICT = "CONFLICT"
    VALIDATION_ERROR = "VALIDATION_ERROR"
    RATE_LIMIT_EXCEEDED = "RATE_LIMIT_EXCEEDED"

    # Server errors (5xx)
    INTERNAL_ERROR = "INTERNAL_ERROR"
    DATABASE_ERROR = "DATABASE_ERROR"
    SERVICE_UNAVAILABLE = "SERVICE_UNAVAILABLE"
    TIMEOUT = "TIMEOUT"


ERROR_STATUS_MAP: dict[ErrorCode, int] = {
    ErrorCode.BAD_REQUEST: 400,
    ErrorCode.UNAUTHORIZED: 401,
    ErrorCode.FORBIDDEN: 403,
    ErrorCode.NOT_FOUND: 404,
    ErrorCode.CONFLICT: 409,
    ErrorCode.VALIDATION_ERROR: 422,
    ErrorCode.RATE_LIMIT_EXCEEDED: 429,
    ErrorCode.INTERNAL_ERROR: 500,
    ErrorCode.DATABASE_ERROR: 500,
    ErrorCode.SERVICE_UNAVAILABLE: 503,
    ErrorCode.TIMEOUT: 504,
}


def status_for_code(code: ErrorCode) -> int:
    """Resolve an error code to its HTTP status, defaulting to 500."""
    return ERROR_STATUS_MAP.get(code, 500)


@dataclass
class AppError(Exception):
    """Base error for application/domain failures.

    Attributes:
        code: Stable, machine-readable error code.
        message: Human-readable error message.
        details: Optional structured details for debugging/observability.
        field: Optional dotted path of the offending input field.
    """

    code: ErrorCode
    message: str
    details: Any = None
    field: str | None = None

    def __post_init__(self) -> None:
        # Populate Exception args so str(error) is useful in logs/tracebacks.
        super().__init__(self.message)

    @property
    def status_code(self) -> int:
        return status_for_code(self.code)


@dataclass
class ValidationAppError(AppError):
    """Raised when input validation fails outside of Pydantic models."""

    code: ErrorCode = ErrorCode.VALIDATION_ERROR
    message: str = "Validation failed"


@dataclass
class AuthenticationAppError(AppError):
    """Raised when a request lacks a valid principal."""

    code: ErrorCode = ErrorCode.UNAUTHORIZED
    message: str = "Authentication required"


@dataclass
class NotFoundAppError(AppError):
    """Raised when a requested resource does not exist."""

    code: ErrorCode = ErrorCode.NOT_FOUND
    message: str = "Resource not found"


@dataclass
class RateLimitExceededError(AppError):
    """Raised when the caller has exhausted a rate limit budget.

    Attributes:
        result: Limiter decision used to build Retry-After and X-RateLimit-* headers.
    """

    code: ErrorCode = ErrorCode.RATE_LIMIT_EXCEEDED
    message: str = "Too many requests"
    result: "RateLimitResult | None" = dataclass_field(default=None, repr=False)

    @property
    def retry_after(self) -> int:
        if self.result is None or self.result.retry_after_seconds is None:
            return 0
        return self.result.retry_after_seconds
