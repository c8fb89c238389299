"""In-memory TTL counter store.

Notes:
- Per-process only: running multiple workers multiplies the effective limit.
- Thread-safe: uses a lock around shared state, so one instance can be
  shared by code running on different threads.
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from typing import Callable

from app.adapters.cache.base import AbstractCounterStore

logger = logging.getLogger(__name__)


@dataclass
class _CounterItem:
    value: int
    expires_at: float


class InMemoryCounterStore(AbstractCounterStore):
    """Dictionary-backed counter store with lazy TTL expiry.

    Expired entries are dropped when read and swept every ``sweep_every``
    writes, so the store never needs a background task and a write stays O(1)
    between sweeps.
    """

    def __init__(
        self,
        *,
        clock: Callable[[], float] = time.time,
        sweep_every: int = 1000,
    ) -> None:
        """Initialize the store.

        Args:
            clock: Time source function returning UNIX time in seconds.
            sweep_every: Number of writes between full expiry sweeps.
        """
        if sweep_every < 1:
            raise ValueError("sweep_every must be >= 1")

        super().__init__()
        self._clock = clock
        self._sweep_every = sweep_every
        self._writes_since_sweep = 0
        self._lock = threading.RLock()
        self._store: dict[str, _CounterItem] = {}
        self._hits = 0
        self._misses = 0
        self._evictions = 0

    def __repr__(self) -> str:  # pragma: no cover - representation only
        return (
            f"InMemoryCounterStore(size={len(self._store)}, hits={self._hits}, "
            f"misses={self._misses}, evictions={self._evictions})"
        )

    async def get(self, key: str) -> int | None:
        with self._lock:
            item = self._store.get(key)
            if item is None:
                self._misses += 1
                return None

            if self._clock() >= item.expires_at:
                self._evict_single(key)
                self._misses += 1
                logger.debug("counter_store.expired", extra={"counter_key": key})
                return None

            self._hits += 1
            return item.value

    async def set(self, key: str, value: int, ttl_seconds: int) -> None:
        if ttl_seconds < 1:
            raise ValueError("ttl_seconds must be >= 1")

        with self._lock:
            self._writes_since_sweep += 1
            if self._writes_since_sweep >= self._sweep_every:
                self._evict_expired_locked()
                self._writes_since_sweep = 0
            self._store[key] = _CounterItem(
                value=value,
                expires_at=self._clock() + ttl_seconds,
            )

    def clear(self) -> None:
        """Remove all counters and reset statistics."""

        with self._lock:
            self._store.clear()
            self._writes_since_sweep = 0
            self._hits = 0
            self._misses = 0
            self._evictions = 0

    def stats(self) -> dict[str, int]:
        """Return lightweight store metrics without exposing keys."""

        with self._lock:
            return {
                "entries": len(self._store),
                "hits": self._hits,
                "misses": self._misses,
                "evictions": self._evictions,
            }

    def _evict_single(self, key: str) -> None:
        if self._store.pop(key, None) is not None:
            self._evictions += 1

    def _evict_expired_locked(self) -> None:
        now = self._clock()
        expired_keys = [k for k, item in self._store.items() if item.expires_at <= now]
        for key in expired_keys:
            self._evict_single(key)
