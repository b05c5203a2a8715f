"""In-memory rate limit store.

Notes:
- Per-process only: running multiple workers multiplies the effective limit.
- Thread-safe: uses a lock around shared state.
"""

from __future__ import annotations

import logging
import math
import threading
import time
from dataclasses import dataclass
from typing import Callable

from labsync.adapters.rate_limit.base import AbstractRateLimitStore, RateLimitResult

logger = logging.getLogger(__name__)


@dataclass
class _WindowState:
    window_start: float
    window_seconds: int
    count: int

    def expired(self, now: float) -> bool:
        return now - self.window_start > self.window_seconds


class InMemoryRateLimitStore(AbstractRateLimitStore):
    """Rate limit store using a per-key window anchored at the first request.

    A key's window opens on its first request and lasts ``window_seconds``.
    Once it has elapsed, the next request replaces the entry with a fresh
    window instead of carrying the old count over.

    Expired entries are purged at most once every ``sweep_interval_seconds``
    of clock time, piggybacking on ``consume`` calls, so memory stays bounded
    without a background timer.

    Important:
        This store is per-process only. If the API runs with multiple workers
        (e.g., multiple Uvicorn/Gunicorn workers), each worker will enforce its
        own independent limits.
    """

    def __init__(
        self,
        *,
        sweep_interval_seconds: int = 60,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """Initialize the in-memory store.

        Args:
            sweep_interval_seconds: Minimum clock time between purges.
            clock: Time source function returning UNIX time in seconds.

        Raises:
            ValueError: If sweep_interval_seconds is invalid.
        """
        if sweep_interval_seconds < 1:
            raise ValueError("sweep_interval_seconds must be >= 1")

        self._sweep_interval = sweep_interval_seconds
        self._clock = clock
        self._lock = threading.RLock()
        self._state_by_key: dict[str, _WindowState] = {}
        self._last_sweep = clock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._state_by_key)

    def _get_or_reset_state(self, key: str, now: float, window_seconds: int) -> _WindowState:
        """Get the current state for key or start a new window when expired.

        Args:
            key: Rate limit key.
            now: Current UNIX time in seconds.
            window_seconds: Window length for this key.

        Returns:
            The current window state for this key.
        """
        state = self._state_by_key.get(key)
        if state is None or state.expired(now):
            state = _WindowState(window_start=now, window_seconds=window_seconds, count=0)
            self._state_by_key[key] = state
        return state

    def _maybe_sweep_locked(self, now: float) -> None:
        if now - self._last_sweep < self._sweep_interval:
            return
        self._sweep_locked(now)

    def _sweep_locked(self, now: float) -> int:
        expired = [key for key, state in self._state_by_key.items() if state.expired(now)]
        for key in expired:
            del self._state_by_key[key]
        self._last_sweep = now
        if expired:
            logger.debug(
                "rate_limit.sweep",
                extra={"removed": len(expired), "remaining_keys": len(self._state_by_key)},
            )
        return len(expired)

    def consume(self, key: str, *, limit: int, window_seconds: int) -> RateLimitResult:
        """Count one request for the provided key.

        This method both checks the current window usage and mutates the state
        if the request is allowed. Denied requests leave the count untouched.

        Args:
            key: Unique identifier for rate limiting.
            limit: Max requests allowed per window.
            window_seconds: Window length in seconds.

        Returns:
            RateLimitResult with allowance decision and metadata.

        Raises:
            ValueError: If key is empty or limits are invalid.
        """
        if not key:
            raise ValueError("key must be a non-empty string")
        if limit < 1:
            raise ValueError("limit must be >= 1")
        if window_seconds < 1:
            raise ValueError("window_seconds must be >= 1")

        now = self._clock()

        with self._lock:
            self._maybe_sweep_locked(now)
            state = self._get_or_reset_state(key, now, window_seconds)
            reset_at = state.window_start + state.window_seconds

            if state.count < limit:
                state.count += 1
                return RateLimitResult(
                    allowed=True,
                    limit=limit,
                    remaining=limit - state.count,
                    reset_at=int(math.ceil(reset_at)),
                    retry_after_seconds=None,
                )

            retry_after = max(1, int(math.ceil(reset_at - now)))
            return RateLimitResult(
                allowed=False,
                limit=limit,
                remaining=0,
                reset_at=int(math.ceil(reset_at)),
                retry_after_seconds=retry_after,
            )

    def sweep(self) -> int:
        """Purge every expired entry immediately."""
        with self._lock:
            return self._sweep_locked(self._clock())

    def close(self) -> None:
        """Drop all counters."""
        with self._lock:
            self._state_by_key.clear()
