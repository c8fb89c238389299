"""Factory pattern for creating counter store instances."""

from app.adapters.cache.base import AbstractCounterStore
from app.adapters.cache.in_memory import InMemoryCounterStore
from app.adapters.cache.redis_store import RedisCounterStore
from app.core.config import CacheSettings, settings
from app.core.errors import ValidationAppError


def create_counter_store(cache_settings: CacheSettings | None = None) -> AbstractCounterStore:
    """Factory function to instantiate the configured counter store.

    Reads configuration from app.core.config.settings unless explicit
    settings are provided (tests pass their own).

    Returns:
        AbstractCounterStore: Configured store instance.

    Raises:
        ValidationAppError: If the backend name is not supported.
    """
    cfg = cache_settings or settings.cache
    backend = cfg.backend.lower()

    if backend == "memory":
        return InMemoryCounterStore()

    if backend == "redis":
        return RedisCounterStore.from_url(
            cfg.redis_url,
            socket_timeout_seconds=cfg.socket_timeout_seconds,
        )

    raise ValidationAppError(
        code="cache_unknown_backend",
        message=(
            f"Unknown counter store backend: '{backend}'. Supported backends: memory, redis"
        ),
    )
