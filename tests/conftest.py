"""Pytest configuration and fixtures shared across all test modules.

Environment defaults are set before any app import so the module-level
settings object never depends on a developer's local .env file.
"""

import os

os.environ["APP_ENV"] = "testing"
os.environ.setdefault("APP_API_KEY_REQUIRED", "true")
os.environ.setdefault("APP_API_KEYS", "test-api-key-123,test-api-key-456")
os.environ.setdefault("CACHE_BACKEND", "memory")

from typing import Callable, Iterator

import pytest
from fastapi.testclient import TestClient

from app.adapters.cache.in_memory import InMemoryCounterStore
from app.core.app_factory import create_app
from app.core.config import AppSettings, LogSettings, RateLimitSettings, Settings

API_KEY = "test-api-key-123"
OTHER_API_KEY = "test-api-key-456"

# 10 seconds into a 60-second window aligned to the epoch.
WINDOW_START_S = 1_699_999_980
NOW_S = WINDOW_START_S + 10


class FakeClock:
    """Deterministic clock returning UNIX seconds."""

    def __init__(self, start: float = NOW_S) -> None:
        self.current = float(start)

    def __call__(self) -> float:
        return self.current

    def advance(self, seconds: float) -> None:
        self.current += seconds


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def store(clock: FakeClock) -> InMemoryCounterStore:
    return InMemoryCounterStore(clock=clock)


def build_settings(*, trust_user_id_header: bool = False, **rate_limit_overrides) -> Settings:
    rate_limit = {
        "tax_calculation_requests": 3,
        "tax_calculation_window_ms": 60_000,
        "tax_payment_requests": 2,
        "tax_payment_window_ms": 60_000,
        **rate_limit_overrides,
    }
    return Settings(
        app=AppSettings(
            api_key_required=True,
            api_keys=f"{API_KEY},{OTHER_API_KEY}",
            trust_user_id_header=trust_user_id_header,
        ),
        log=LogSettings(level="WARNING"),
        rate_limit=RateLimitSettings(**rate_limit),
    )


@pytest.fixture
def make_client(clock: FakeClock, store: InMemoryCounterStore) -> Iterator[Callable[..., TestClient]]:
    """Build a TestClient around an app wired to the fake clock and store."""

    clients: list[TestClient] = []

    def _make(*, counter_store=None, trust_user_id_header=False, **rate_limit_overrides) -> TestClient:
        app = create_app(
            build_settings(trust_user_id_header=trust_user_id_header, **rate_limit_overrides),
            counter_store=counter_store or store,
            clock=clock,
        )
        client = TestClient(app)
        client.__enter__()
        clients.append(client)
        return client

    yield _make

    for client in clients:
        client.__exit__(None, None, None)
