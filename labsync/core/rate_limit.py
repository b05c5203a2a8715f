"""Rate limiting policy for the HTTP layer.

This module wires the rate limit store into the request pipeline.

Design goals:
- Minimal coupling: the pipeline depends on ``RateLimiter.check`` only.
- Swap-friendly: storage backend can be replaced (e.g., Redis) behind
  ``AbstractRateLimitStore``.
- Separate budgets per operation class: destructive calls are throttled far
  harder than reads, and exhausting one budget never touches another.

Identifier strategy:
- Authenticated principal id (``user:<id>``) when known.
- Otherwise the first X-Forwarded-For address, then the socket peer,
  then ``ip:unknown``.
"""

from __future__ import annotations

import hashlib
import logging
from dataclasses import dataclass
from enum import Enum

from starlette.requests import Request

from labsync.adapters.rate_limit.base import AbstractRateLimitStore, RateLimitResult
from labsync.core.config import ApiSettings

logger = logging.getLogger(__name__)


class OperationClass(str, Enum):
    """Coarse bucket determining which rate limit budget applies."""

    READ = "read"
    WRITE = "write"
    DESTRUCTIVE = "destructive"


_WRITE_METHODS = frozenset({"POST", "PUT", "PATCH"})


def operation_class_for_method(method: str) -> OperationClass:
    """Infer the operation class from an HTTP method."""
    upper = method.upper()
    if upper == "DELETE":
        return OperationClass.DESTRUCTIVE
    if upper in _WRITE_METHODS:
        return OperationClass.WRITE
    return OperationClass.READ


@dataclass(frozen=True)
class RateLimitPolicy:
    """Per-operation-class request budgets sharing one window length."""

    read_limit: int = 60
    write_limit: int = 30
    destructive_limit: int = 5
    window_seconds: int = 60

    def __post_init__(self) -> None:
        for name in ("read_limit", "write_limit", "destructive_limit", "window_seconds"):
            if getattr(self, name) < 1:
                raise ValueError(f"{name} must be >= 1")

    @classmethod
    def from_settings(cls, api_settings: ApiSettings) -> "RateLimitPolicy":
        return cls(
            read_limit=api_settings.rate_limit_read_requests,
            write_limit=api_settings.rate_limit_write_requests,
            destructive_limit=api_settings.rate_limit_delete_requests,
            window_seconds=api_settings.rate_limit_window_seconds,
        )

    def limit_for(self, operation_class: OperationClass) -> int:
        if operation_class is OperationClass.DESTRUCTIVE:
            return self.destructive_limit
        if operation_class is OperationClass.WRITE:
            return self.write_limit
        return self.read_limit


def _hash_identifier(identifier: str) -> str:
    """Hash the identifier for logging without exposing addresses or ids."""
    return hashlib.sha256(identifier.encode()).hexdigest()[:16]


class RateLimiter:
    """Checks requests against the budget of their operation class."""

    def __init__(self, store: AbstractRateLimitStore, policy: RateLimitPolicy | None = None) -> None:
        self._store = store
        self._policy = policy or RateLimitPolicy()

    @property
    def policy(self) -> RateLimitPolicy:
        return self._policy

    @property
    def store(self) -> AbstractRateLimitStore:
        return self._store

    def check(self, identifier: str, operation_class: OperationClass) -> RateLimitResult:
        """Consume one unit of ``identifier``'s budget for ``operation_class``.

        Args:
            identifier: Rate limit subject, e.g. ``user:42`` or ``ip:10.0.0.1``.
            operation_class: Budget to draw from.

        Returns:
            RateLimitResult; ``allowed`` is False once the budget is exhausted.
        """
        key = f"{operation_class.value}:{identifier or 'ip:unknown'}"
        result = self._store.consume(
            key,
            limit=self._policy.limit_for(operation_class),
            window_seconds=self._policy.window_seconds,
        )

        log_extra = {
            "operation_class": operation_class.value,
            "key_hash": _hash_identifier(identifier),
            "limit": result.limit,
            "remaining": result.remaining,
            "window_s": self._policy.window_seconds,
        }
        if result.allowed:
            logger.debug("rate_limit.allowed", extra=log_extra)
        else:
            logger.warning(
                "rate_limit.exceeded",
                extra={**log_extra, "retry_after_s": result.retry_after_seconds},
            )
        return result


def client_ip(request: Request) -> str:
    """Extract the client address, preferring the first X-Forwarded-For hop."""
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        first = forwarded.split(",")[0].strip()
        if first:
            return first
    if request.client and request.client.host:
        return request.client.host
    return "unknown"


def build_rate_limit_identifier(request: Request, principal_id: str | None = None) -> str:
    """Build the limiter identifier for the current request.

    Args:
        request: Incoming request.
        principal_id: Authenticated principal id, if one was resolved.

    Returns:
        str: Namespaced identifier (``user:<id>`` or ``ip:<addr>``).
    """

    if principal_id:
        return f"user:{principal_id}"
    return f"ip:{client_ip(request)}"


def rate_limit_headers(result: RateLimitResult) -> dict[str, str]:
    """Standard rate limit headers for a limiter decision."""
    headers = {
        "X-RateLimit-Limit": str(result.limit),
        "X-RateLimit-Remaining": str(result.remaining),
        "X-RateLimit-Reset": str(result.reset_at),
    }
    if not result.allowed:
        headers["Retry-After"] = str(result.retry_after_seconds or 0)
    return headers
