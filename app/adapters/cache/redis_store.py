"""Redis-backed counter store.

Shared across workers and hosts, so every process enforcing a policy sees
the same window counters. The conditional increment runs as a Lua script,
making read-compare-increment-expire a single atomic step on the server.
"""

from __future__ import annotations

import logging
from typing import Any

from redis.asyncio import Redis
from redis.exceptions import RedisError

from app.adapters.cache.base import AbstractCounterStore, CounterUpdate
from app.core.errors import CounterStoreError

logger = logging.getLogger(__name__)


# KEYS[1] = counter key, ARGV[1] = ceiling, ARGV[2] = ttl seconds.
# Returns {count, incremented}. TTL is only applied when INCR creates the key.
INCREMENT_BELOW_SCRIPT = """
local current = tonumber(redis.call('GET', KEYS[1]) or '0')
if current >= tonumber(ARGV[1]) then
    return {current, 0}
end
local updated = redis.call('INCR', KEYS[1])
if updated == 1 then
    redis.call('EXPIRE', KEYS[1], ARGV[2])
end
return {updated, 1}
"""


class RedisCounterStore(AbstractCounterStore):
    """Counter store using ``redis.asyncio``.

    Any Redis or socket failure is re-raised as ``CounterStoreError`` with the
    original exception chained; callers decide whether that fails open or
    closed.
    """

    def __init__(self, client: Redis) -> None:
        super().__init__()
        self._client = client
        self._increment_below = client.register_script(INCREMENT_BELOW_SCRIPT)

    @classmethod
    def from_url(cls, url: str, *, socket_timeout_seconds: float = 2.0) -> "RedisCounterStore":
        """Build a store from a Redis URL.

        Args:
            url: Redis connection URL (``redis://`` or ``rediss://``).
            socket_timeout_seconds: Timeout for connect and individual commands.
        """
        client = Redis.from_url(
            url,
            encoding="utf-8",
            decode_responses=True,
            socket_connect_timeout=socket_timeout_seconds,
            socket_timeout=socket_timeout_seconds,
        )
        logger.debug("Redis connection created")
        return cls(client)

    async def get(self, key: str) -> int | None:
        raw = await self._call("get", self._client.get(key))
        if raw is None:
            return None
        return int(raw)

    async def set(self, key: str, value: int, ttl_seconds: int) -> None:
        if ttl_seconds < 1:
            raise ValueError("ttl_seconds must be >= 1")
        await self._call("set", self._client.set(key, value, ex=ttl_seconds))

    async def increment_below(
        self,
        key: str,
        *,
        ceiling: int,
        ttl_seconds: int,
    ) -> CounterUpdate:
        result = await self._call(
            "increment_below",
            self._increment_below(keys=[key], args=[ceiling, ttl_seconds]),
        )
        count, incremented = result
        return CounterUpdate(count=int(count), incremented=bool(int(incremented)))

    async def close(self) -> None:
        await self._client.aclose()
        logger.debug("Redis connection closed")

    async def _call(self, operation: str, awaitable: Any) -> Any:
        try:
            return await awaitable
        except (RedisError, OSError) as exc:
            logger.error(
                "counter_store.backend_error",
                extra={
                    "backend": "redis",
                    "operation": operation,
                    "error_type": type(exc).__name__,
                },
            )
            raise CounterStoreError(
                code="counter_store_unavailable",
                message="Rate limit counter store is unavailable",
                details={"backend": "redis", "operation": operation},
            ) from exc
