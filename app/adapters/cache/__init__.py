"""Counter store adapters - abstracts over the key-value store backing rate limits."""

from app.adapters.cache.base import AbstractCounterStore, CounterUpdate
from app.adapters.cache.factory import create_counter_store
from app.adapters.cache.in_memory import InMemoryCounterStore
from app.adapters.cache.redis_store import RedisCounterStore

__all__ = [
    "AbstractCounterStore",
    "CounterUpdate",
    "InMemoryCounterStore",
    "RedisCounterStore",
    "create_counter_store",
]
