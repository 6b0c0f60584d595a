"""Short-lived memory of webhook deliveries that were already accepted.

Platforms deliver webhooks at least once and retry aggressively when the
acknowledgement is slow. The boundary marks each delivery key (for example
``slack:event:<event_id>``) for a few minutes and drops repeats.
"""

from __future__ import annotations

import time
from collections.abc import Callable
from threading import Lock


class EventDeduplicator:
    """Thread-safe TTL set of delivery keys."""

    def __init__(
        self, ttl_seconds: float = 300, *, clock: Callable[[], float] = time.monotonic
    ) -> None:
        self._ttl = ttl_seconds
        self._clock = clock
        self._seen: dict[str, float] = {}
        self._lock = Lock()

    def mark_seen(self, key: str) -> bool:
        """Record ``key`` and return ``True`` if it had already been seen."""

        now = self._clock()
        with self._lock:
            self._evict(now)
            if key in self._seen:
                return True
            self._seen[key] = now + self._ttl
            return False

    def _evict(self, now: float) -> None:
        expired = [key for key, expires_at in self._seen.items() if expires_at <= now]
        for key in expired:
            del self._seen[key]

    def __len__(self) -> int:
        with self._lock:
            self._evict(self._clock())
            return len(self._seen)


__all__ = ["EventDeduplicator"]
