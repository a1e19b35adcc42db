"""In-memory fixed-window rate limiter.

Notes:
- Per-process only: running multiple workers multiplies the effective limit.
- Thread-safe: one lock guards the counts and the window start.
- Bounded memory: all counts share one window and are discarded together when
  it rolls over, so no per-address bookkeeping outlives its window.
- A burst straddling a window boundary can be admitted up to ``2 * limit``
  times in a short span. This is inherent to fixed windows.
"""

from __future__ import annotations

import math
import threading
import time
from dataclasses import dataclass
from typing import Callable

from gatehouse.adapters.rate_limit.base import AbstractRateLimiter, RateLimitResult


@dataclass(frozen=True)
class WindowSnapshot:
    """Debug view of one address in the current window."""

    count: int
    window_start: float
    found: bool


class InMemoryFixedWindowRateLimiter(AbstractRateLimiter):
    """Rate limiter counting requests per key in one shared fixed window.

    The window starts when the limiter is built and restarts on the first call
    made at or after ``window_start + window_seconds``. A restart replaces the
    whole counts mapping before the new request is counted.

    A non-positive ``limit`` or ``window_seconds`` disables the limiter: every
    call is allowed and nothing is recorded. The same goes for an empty key.
    """

    def __init__(
        self,
        *,
        limit: int,
        window_seconds: float,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """Initialize the in-memory rate limiter.

        Args:
            limit: Maximum number of allowed requests per window.
            window_seconds: Size of the fixed window in seconds.
            clock: Time source function returning UNIX time in seconds.
        """
        self._limit = limit
        self._window_seconds = window_seconds
        self._clock = clock
        self._lock = threading.Lock()
        self._counts: dict[str, int] = {}
        self._window_start = clock()

    @property
    def enabled(self) -> bool:
        return self._limit > 0 and self._window_seconds > 0

    @property
    def limit(self) -> int:
        return self._limit

    @property
    def window_seconds(self) -> float:
        return self._window_seconds

    def _build_disabled_result(self) -> RateLimitResult:
        return RateLimitResult(
            allowed=True,
            limit=0,
            remaining=0,
            reset_at=0,
            retry_after_seconds=None,
        )

    def _roll_window_locked(self, now: float) -> None:
        if now - self._window_start >= self._window_seconds:
            self._counts = {}
            self._window_start = now

    def consume(self, key: str) -> RateLimitResult:
        """Check the key's usage in the current window and count it if allowed.

        Args:
            key: Unique identifier for rate limiting (the client address).

        Returns:
            RateLimitResult with allowance decision and metadata.
        """
        if not key or not self.enabled:
            return self._build_disabled_result()

        with self._lock:
            now = self._clock()
            self._roll_window_locked(now)
            reset_at = self._window_start + self._window_seconds
            count = self._counts.get(key, 0)

            if count >= self._limit:
                return RateLimitResult(
                    allowed=False,
                    limit=self._limit,
                    remaining=0,
                    reset_at=int(math.ceil(reset_at)),
                    retry_after_seconds=max(1, int(math.ceil(reset_at - now))),
                )

            self._counts[key] = count + 1
            return RateLimitResult(
                allowed=True,
                limit=self._limit,
                remaining=self._limit - count - 1,
                reset_at=int(math.ceil(reset_at)),
                retry_after_seconds=None,
            )

    def inspect(self, key: str) -> WindowSnapshot:
        """Return the recorded count for a key without consuming budget."""
        with self._lock:
            count = self._counts.get(key)
            return WindowSnapshot(
                count=count or 0,
                window_start=self._window_start,
                found=count is not None,
            )

    def tracked_addresses(self) -> list[str]:
        """Keys with a count in the current window (as last rolled)."""
        with self._lock:
            return list(self._counts)
