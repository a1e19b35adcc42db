"""In-memory record of proof-of-work tokens that were already accepted.

Only used when single-use tokens are switched on. Each entry lives until the
token it stands for expires, so the cache never holds more than the tokens
issued within one TTL. Thread-safe and per-process, like the rate limiter.
"""

from __future__ import annotations

import logging
import threading
import time
from hashlib import sha256
from typing import Callable

logger = logging.getLogger(__name__)


class SpentTokenCache:
    """Thread-safe set of spent token digests with per-entry expiry.

    Attributes:
        max_entries: Upper bound on remembered tokens. When full, the entry
            closest to expiry is dropped first.
    """

    def __init__(
        self,
        max_entries: int = 100_000,
        *,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._max_entries = max_entries
        self._clock = clock
        self._store: dict[str, float] = {}
        self._lock = threading.Lock()
        self._evictions = 0

    def __repr__(self) -> str:  # pragma: no cover - representation only
        return (
            f"SpentTokenCache(max_entries={self._max_entries}, "
            f"size={len(self._store)}, evictions={self._evictions})"
        )

    def __len__(self) -> int:
        with self._lock:
            return len(self._store)

    def mark_spent(self, token: str, expires_at: float) -> bool:
        """Record a token as spent.

        Args:
            token: The signed token as presented by the client.
            expires_at: UNIX time after which the token is invalid anyway.

        Returns:
            True the first time a token is seen, False on every replay.
        """

        key = build_token_key(token)
        with self._lock:
            self._evict_expired_locked()
            if key in self._store:
                logger.debug("spent_token.replayed", extra={"token_key": key[:16]})
                return False

            self._store[key] = expires_at
            self._evict_if_over_capacity_locked()
            return True

    def clear(self) -> None:
        with self._lock:
            self._store.clear()
            self._evictions = 0

    def stats(self) -> dict[str, int]:
        """Return lightweight metrics without exposing token digests."""

        with self._lock:
            return {
                "max_entries": self._max_entries,
                "entries": len(self._store),
                "evictions": self._evictions,
            }

    def _evict_expired_locked(self) -> None:
        now = self._clock()
        expired_keys = [k for k, expires_at in self._store.items() if expires_at < now]
        for key in expired_keys:
            del self._store[key]
            self._evictions += 1

    def _evict_if_over_capacity_locked(self) -> None:
        while len(self._store) > self._max_entries:
            oldest = min(self._store, key=self._store.__getitem__)
            del self._store[oldest]
            self._evictions += 1


def build_token_key(token: str) -> str:
    """Hex SHA-256 of the token, so raw tokens are never kept in memory."""

    return sha256(token.encode()).hexdigest()
