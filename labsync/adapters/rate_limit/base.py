"""Rate limit store interfaces.

The API should depend on this abstraction (not the concrete implementation)
so we can swap storage backends later (e.g., Redis) with minimal changes.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass


@dataclass(frozen=True)
class RateLimitResult:
    """Result of a rate limit check/consume operation.

    Attributes:
        allowed: Whether the request is allowed to proceed.
        limit: Max requests per window.
        remaining: Remaining requests in the current window (0 when blocked).
        reset_at: UNIX epoch seconds when the current window resets.
        retry_after_seconds: Suggested wait time in seconds when blocked.
    """

    allowed: bool
    limit: int
    remaining: int
    reset_at: int
    retry_after_seconds: int | None


class AbstractRateLimitStore(ABC):
    """Interface for per-key request counters.

    Implementations own the key -> window bookkeeping. Limits are passed per
    call so a single store can serve several budgets.
    """

    @abstractmethod
    def consume(self, key: str, *, limit: int, window_seconds: int) -> RateLimitResult:
        """Count one request against ``key`` if budget remains.

        Args:
            key: Unique identifier (e.g., ``write:user:42``).
            limit: Max requests allowed per window for this key.
            window_seconds: Window length in seconds.

        Returns:
            RateLimitResult describing whether it was allowed.
        """
        raise NotImplementedError

    @abstractmethod
    def sweep(self) -> int:
        """Drop entries whose window has expired.

        Returns:
            Number of entries removed.
        """
        raise NotImplementedError

    @abstractmethod
    def __len__(self) -> int:
        """Number of tracked windows."""
        raise NotImplementedError

    def init(self) -> None:
        """Prepare the store for use (no-op for in-process stores)."""

    def close(self) -> None:
        """Release resources on shutdown."""
