"""Unit tests for counter store adapters."""

from unittest.mock import AsyncMock, MagicMock

import fakeredis
import pytest
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import TimeoutError as RedisTimeoutError

from app.adapters.cache import create_counter_store
from app.adapters.cache.base import CounterUpdate
from app.adapters.cache.in_memory import InMemoryCounterStore
from app.adapters.cache.redis_store import INCREMENT_BELOW_SCRIPT, RedisCounterStore
from app.core.config import CacheSettings
from app.core.errors import CounterStoreError, ValidationAppError


class TestInMemoryCounterStore:
    @pytest.mark.asyncio
    async def test_get_missing_returns_none(self, store) -> None:
        assert await store.get("missing") is None
        assert store.stats()["misses"] == 1

    @pytest.mark.asyncio
    async def test_set_then_get(self, store) -> None:
        await store.set("k", 4, ttl_seconds=60)

        assert await store.get("k") == 4
        assert store.stats()["hits"] == 1

    @pytest.mark.asyncio
    async def test_entry_expires_after_ttl(self, store, clock) -> None:
        await store.set("k", 1, ttl_seconds=5)

        clock.advance(4.9)
        assert await store.get("k") == 1

        clock.advance(0.1)
        assert await store.get("k") is None
        assert store.stats()["evictions"] == 1

    @pytest.mark.asyncio
    async def test_sweep_runs_every_n_writes(self, clock) -> None:
        store = InMemoryCounterStore(clock=clock, sweep_every=3)
        await store.set("old", 1, ttl_seconds=1)
        clock.advance(2)

        await store.set("a", 1, ttl_seconds=60)
        assert store.stats()["entries"] == 2

        await store.set("b", 1, ttl_seconds=60)
        assert store.stats() == {"entries": 2, "hits": 0, "misses": 0, "evictions": 1}

    @pytest.mark.asyncio
    async def test_unswept_expired_entry_is_still_invisible(self, store, clock) -> None:
        await store.set("old", 1, ttl_seconds=1)
        clock.advance(2)
        await store.set("new", 1, ttl_seconds=60)

        assert store.stats()["entries"] == 2
        assert await store.get("old") is None

    def test_sweep_interval_must_be_positive(self, clock) -> None:
        with pytest.raises(ValueError):
            InMemoryCounterStore(clock=clock, sweep_every=0)

    @pytest.mark.asyncio
    async def test_set_rejects_non_positive_ttl(self, store) -> None:
        with pytest.raises(ValueError):
            await store.set("k", 1, ttl_seconds=0)

    @pytest.mark.asyncio
    async def test_increment_below_stops_at_ceiling(self, store) -> None:
        updates = [
            await store.increment_below("k", ceiling=2, ttl_seconds=60) for _ in range(3)
        ]

        assert updates == [
            CounterUpdate(count=1, incremented=True),
            CounterUpdate(count=2, incremented=True),
            CounterUpdate(count=2, incremented=False),
        ]
        assert await store.get("k") == 2

    @pytest.mark.asyncio
    async def test_increment_below_starts_over_after_expiry(self, store, clock) -> None:
        await store.increment_below("k", ceiling=1, ttl_seconds=10)
        clock.advance(10)

        update = await store.increment_below("k", ceiling=1, ttl_seconds=10)

        assert update == CounterUpdate(count=1, incremented=True)

    @pytest.mark.asyncio
    async def test_clear_resets_state(self, store) -> None:
        await store.set("a", 1, ttl_seconds=10)
        await store.get("a")

        store.clear()

        assert store.stats() == {"entries": 0, "hits": 0, "misses": 0, "evictions": 0}


def _mock_redis(script_result=None) -> MagicMock:
    client = MagicMock()
    client.get = AsyncMock(return_value=None)
    client.set = AsyncMock()
    client.aclose = AsyncMock()
    script = AsyncMock(return_value=script_result or [1, 1])
    client.register_script.return_value = script
    return client


class TestRedisCounterStore:
    def test_registers_increment_script(self) -> None:
        client = _mock_redis()

        RedisCounterStore(client)

        client.register_script.assert_called_once_with(INCREMENT_BELOW_SCRIPT)

    @pytest.mark.asyncio
    async def test_get_parses_integer(self) -> None:
        client = _mock_redis()
        client.get.return_value = "7"

        assert await RedisCounterStore(client).get("k") == 7
        client.get.assert_awaited_once_with("k")

    @pytest.mark.asyncio
    async def test_get_missing_returns_none(self) -> None:
        assert await RedisCounterStore(_mock_redis()).get("k") is None

    @pytest.mark.asyncio
    async def test_set_uses_expiry(self) -> None:
        client = _mock_redis()

        await RedisCounterStore(client).set("k", 3, ttl_seconds=60)

        client.set.assert_awaited_once_with("k", 3, ex=60)

    @pytest.mark.asyncio
    async def test_increment_below_runs_script(self) -> None:
        client = _mock_redis(script_result=[3, 1])
        store = RedisCounterStore(client)

        update = await store.increment_below("k", ceiling=5, ttl_seconds=60)

        assert update == CounterUpdate(count=3, incremented=True)
        client.register_script.return_value.assert_awaited_once_with(keys=["k"], args=[5, 60])

    @pytest.mark.asyncio
    async def test_increment_below_reports_rejection(self) -> None:
        store = RedisCounterStore(_mock_redis(script_result=[5, 0]))

        update = await store.increment_below("k", ceiling=5, ttl_seconds=60)

        assert update == CounterUpdate(count=5, incremented=False)

    @pytest.mark.asyncio
    async def test_backend_errors_become_counter_store_errors(self) -> None:
        client = _mock_redis()
        client.get.side_effect = RedisConnectionError("connection refused")

        with pytest.raises(CounterStoreError) as exc_info:
            await RedisCounterStore(client).get("k")

        assert exc_info.value.code == "counter_store_unavailable"
        assert isinstance(exc_info.value.__cause__, RedisConnectionError)

    @pytest.mark.asyncio
    async def test_timeouts_become_counter_store_errors(self) -> None:
        client = _mock_redis()
        client.register_script.return_value.side_effect = RedisTimeoutError("timed out")

        with pytest.raises(CounterStoreError) as exc_info:
            await RedisCounterStore(client).increment_below("k", ceiling=1, ttl_seconds=1)

        assert exc_info.value.details == {"backend": "redis", "operation": "increment_below"}

    @pytest.mark.asyncio
    async def test_close_closes_client(self) -> None:
        client = _mock_redis()

        await RedisCounterStore(client).close()

        client.aclose.assert_awaited_once()


@pytest.fixture
def fake_redis() -> fakeredis.FakeAsyncRedis:
    return fakeredis.FakeAsyncRedis(server=fakeredis.FakeServer(), decode_responses=True)


class TestRedisIncrementScript:
    """Runs the Lua script against an in-process Redis with scripting support."""

    @pytest.mark.asyncio
    async def test_counts_up_to_ceiling_then_stops(self, fake_redis) -> None:
        store = RedisCounterStore(fake_redis)

        updates = [
            await store.increment_below("tax:payment:k:0", ceiling=3, ttl_seconds=60)
            for _ in range(5)
        ]

        assert updates == [
            CounterUpdate(count=1, incremented=True),
            CounterUpdate(count=2, incremented=True),
            CounterUpdate(count=3, incremented=True),
            CounterUpdate(count=3, incremented=False),
            CounterUpdate(count=3, incremented=False),
        ]
        assert await fake_redis.get("tax:payment:k:0") == "3"

    @pytest.mark.asyncio
    async def test_ttl_applied_when_key_is_created(self, fake_redis) -> None:
        store = RedisCounterStore(fake_redis)

        await store.increment_below("k", ceiling=3, ttl_seconds=60)

        assert 0 < await fake_redis.ttl("k") <= 60

    @pytest.mark.asyncio
    async def test_ttl_not_rewritten_on_later_increments(self, fake_redis) -> None:
        await fake_redis.set("k", 1, ex=300)
        store = RedisCounterStore(fake_redis)

        update = await store.increment_below("k", ceiling=3, ttl_seconds=60)

        assert update == CounterUpdate(count=2, incremented=True)
        assert await fake_redis.ttl("k") > 60

    @pytest.mark.asyncio
    async def test_rejection_leaves_counter_untouched(self, fake_redis) -> None:
        await fake_redis.set("k", 2, ex=300)
        store = RedisCounterStore(fake_redis)

        update = await store.increment_below("k", ceiling=2, ttl_seconds=60)

        assert update == CounterUpdate(count=2, incremented=False)
        assert await store.get("k") == 2

    @pytest.mark.asyncio
    async def test_ceiling_of_one_admits_single_request(self, fake_redis) -> None:
        store = RedisCounterStore(fake_redis)

        first = await store.increment_below("k", ceiling=1, ttl_seconds=1)
        second = await store.increment_below("k", ceiling=1, ttl_seconds=1)

        assert (first.incremented, second.incremented) == (True, False)


class TestCreateCounterStore:
    def test_memory_backend(self) -> None:
        store = create_counter_store(CacheSettings(backend="memory"))

        assert isinstance(store, InMemoryCounterStore)

    def test_redis_backend(self) -> None:
        store = create_counter_store(
            CacheSettings(backend="redis", redis_url="redis://localhost:6379/1")
        )

        assert isinstance(store, RedisCounterStore)

    def test_unknown_backend(self) -> None:
        with pytest.raises(ValidationAppError) as exc_info:
            create_counter_store(CacheSettings.model_construct(backend="memcached"))

        assert exc_info.value.code == "cache_unknown_backend"
