"""Counter store interfaces.

Rate limiters depend on this abstraction (not a concrete backend) so the
same policy can run against a per-process dict in tests and Redis in
production.
"""

from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from collections import defaultdict
from dataclasses import dataclass


@dataclass(frozen=True)
class CounterUpdate:
    """Outcome of a conditional increment.

    Attributes:
        count: Counter value after the operation (unchanged when not incremented).
        incremented: Whether the counter was below the ceiling and got bumped.
    """

    count: int
    incremented: bool


class AbstractCounterStore(ABC):
    """Interface for TTL-backed integer counters.

    Implementations raise ``CounterStoreError`` on backend failures.
    """

    def __init__(self) -> None:
        self._key_locks: dict[str, asyncio.Lock] = {}
        self._lock_users: defaultdict[str, int] = defaultdict(int)

    @abstractmethod
    async def get(self, key: str) -> int | None:
        """Return the counter stored under ``key`` or None when absent/expired."""
        raise NotImplementedError

    @abstractmethod
    async def set(self, key: str, value: int, ttl_seconds: int) -> None:
        """Store ``value`` under ``key`` expiring after ``ttl_seconds``."""
        raise NotImplementedError

    async def increment_below(
        self,
        key: str,
        *,
        ceiling: int,
        ttl_seconds: int,
    ) -> CounterUpdate:
        """Increment the counter only while it is below ``ceiling``.

        The default implementation serialises get/set per key with an
        ``asyncio.Lock``. That only holds within one process and one event
        loop; backends with a server-side atomic primitive should override it.

        Args:
            key: Counter key.
            ceiling: Maximum value the counter may reach.
            ttl_seconds: Expiry applied when the counter is created.

        Returns:
            CounterUpdate with the resulting count.
        """
        lock = self._key_locks.setdefault(key, asyncio.Lock())
        self._lock_users[key] += 1
        try:
            async with lock:
                current = await self.get(key) or 0
                if current >= ceiling:
                    return CounterUpdate(count=current, incremented=False)
                await self.set(key, current + 1, ttl_seconds)
                return CounterUpdate(count=current + 1, incremented=True)
        finally:
            # Drop the lock once nobody holds or waits on it; keys are per window.
            self._lock_users[key] -= 1
            if self._lock_users[key] == 0:
                del self._lock_users[key]
                self._key_locks.pop(key, None)

    async def close(self) -> None:
        """Release backend resources (connections, pools)."""
        return None
