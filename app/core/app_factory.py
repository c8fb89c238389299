"""Application factory for FastAPI app.

Centralizes app construction (metadata, middleware, handlers, routers) and
the rate limiting collaborators. The counter store, policies and clock live on
``app.state`` so tests can build an app with their own instances.
"""

from __future__ import annotations

import logging
import time
from contextlib import asynccontextmanager
from typing import AsyncIterator, Callable

from fastapi import FastAPI

from app.adapters.cache import AbstractCounterStore, create_counter_store
from app.adapters.rate_limit.policy import RateLimitPolicies, build_policies
from app.api.routes import health_router, rate_limits_router, tax_router
from app.core.config import Settings, settings as default_settings
from app.core.exception_handlers import setup_exception_handlers
from app.core.logging import configure_logging
from app.core.middleware import request_id_middleware
from app.core.openapi import apply_openapi_customizations

logger = logging.getLogger(__name__)


def create_app(
    app_settings: Settings | None = None,
    *,
    counter_store: AbstractCounterStore | None = None,
    policies: RateLimitPolicies | None = None,
    clock: Callable[[], float] = time.time,
) -> FastAPI:
    """Create and configure the FastAPI application instance.

    Args:
        app_settings: Settings to build from; defaults to the environment.
        counter_store: Counter store override; defaults to CACHE_BACKEND.
        policies: Policy set override; defaults to RATE_LIMIT_* settings.
        clock: Time source shared by limiters (UNIX seconds).

    Returns:
        Configured FastAPI app with middleware, handlers, routers and docs.
    """
    cfg = app_settings or default_settings

    # Logging first so subsequent init logs are formatted as desired
    configure_logging(cfg.log)

    store = counter_store or create_counter_store(cfg.cache)
    rate_limit_policies = policies or build_policies(cfg.rate_limit)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        logger.info(
            "app.startup",
            extra={
                "app_env": cfg.app_env,
                "cache_backend": type(store).__name__,
                "policies": rate_limit_policies.names(),
            },
        )
        try:
            yield
        finally:
            await store.close()

    app = FastAPI(
        title="Tax Rate Limiter API",
        description=(
            "Tax calculation and payment endpoints protected by per-user "
            "fixed-window rate limits. Throttled requests receive HTTP 429 with "
            "RATE_LIMIT_EXCEEDED, Retry-After and X-RateLimit-* headers."
        ),
        version="0.1.0",
        lifespan=lifespan,
    )

    app.state.settings = cfg
    app.state.counter_store = store
    app.state.rate_limit_policies = rate_limit_policies
    app.state.clock = clock

    # Middleware
    app.middleware("http")(request_id_middleware)

    # Exception handlers
    setup_exception_handlers(app)

    # Routers
    app.include_router(tax_router, prefix="/v1")
    app.include_router(rate_limits_router, prefix="/v1")
    app.include_router(health_router)

    # OpenAPI customizations (security scheme, tags, exemptions)
    apply_openapi_customizations(app)

    return app
