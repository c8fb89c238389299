"""Rate limiting adapter and dependency for FastAPI routes.

This module wires the fixed-window limiter into the HTTP layer.

Design goals:
- Minimal coupling: routes depend on ``rate_limited(<policy>)`` only.
- Swap-friendly: the counter store and policies come from ``app.state``, so
  tests inject their own instead of patching module globals.
- Throttling is a value, not an error: ``RateLimitEnforcer.enforce`` returns
  ``Proceed`` or ``RateLimitRejection``. Only the FastAPI dependency turns a
  rejection into ``RateLimitExceededError`` to short-circuit the route.

Identifier strategy:
- User id header (``X-User-ID`` by default), only when a trusted upstream
  sets it (``APP_TRUST_USER_ID_HEADER``).
- Else a hash of the API key, else the client IP.
"""

from __future__ import annotations

import hashlib
import logging
import math
import time
from dataclasses import dataclass
from typing import Annotated, Any, Awaitable, Callable

from fastapi import Header, Request, Response, status
from fastapi.responses import JSONResponse

from app.adapters.cache.base import AbstractCounterStore
from app.adapters.rate_limit.base import AbstractRateLimiter, RateLimitDecision
from app.adapters.rate_limit.fixed_window import FixedWindowRateLimiter, hash_identifier
from app.adapters.rate_limit.policy import RateLimitPolicies
from app.core.config import AppSettings, Settings
from app.core.errors import NotFoundAppError, RateLimitExceededError

logger = logging.getLogger(__name__)

RATE_LIMIT_EXCEEDED = "RATE_LIMIT_EXCEEDED"
RATE_LIMIT_MESSAGE = "Too many requests. Please try again later"


def _informational_headers(limit: int, remaining: int, reset_at_ms: int) -> dict[str, str]:
    return {
        "X-RateLimit-Limit": str(limit),
        "X-RateLimit-Remaining": str(remaining),
        "X-RateLimit-Reset": str(reset_at_ms),
    }


@dataclass(frozen=True)
class Proceed:
    """Signal that the request may continue.

    Carries the decision so callers can optionally attach informational
    headers to a successful response.
    """

    decision: RateLimitDecision

    @property
    def remaining(self) -> int:
        return self.decision.remaining

    @property
    def reset_at_ms(self) -> int:
        return self.decision.reset_at_ms

    def headers(self) -> dict[str, str]:
        return _informational_headers(
            self.decision.limit, self.decision.remaining, self.decision.reset_at_ms
        )


@dataclass(frozen=True)
class RateLimitRejection:
    """Structured "too many requests" outcome.

    Attributes:
        limit: Max requests per window.
        remaining: Always 0 for a rejection.
        reset_at_ms: UNIX epoch milliseconds when the window ends.
        retry_after_seconds: Seconds until the window ends, rounded up.
    """

    limit: int
    remaining: int
    reset_at_ms: int
    retry_after_seconds: int
    message: str = RATE_LIMIT_MESSAGE
    status_code: int = status.HTTP_429_TOO_MANY_REQUESTS

    def payload(self) -> dict[str, Any]:
        return {
            "success": False,
            "error": {
                "message": self.message,
                "code": RATE_LIMIT_EXCEEDED,
                "statusCode": self.status_code,
                "details": {
                    "remaining": self.remaining,
                    "resetTime": self.reset_at_ms,
                    "retryAfter": self.retry_after_seconds,
                },
            },
        }

    def headers(self) -> dict[str, str]:
        headers = _informational_headers(self.limit, self.remaining, self.reset_at_ms)
        headers["Retry-After"] = str(self.retry_after_seconds)
        return headers

    def to_response(self) -> JSONResponse:
        return JSONResponse(
            status_code=self.status_code,
            content=self.payload(),
            headers=self.headers(),
        )


class RateLimitEnforcer:
    """Translate limiter decisions into proceed/reject outcomes.

    Errors raised by the limiter (e.g. ``CounterStoreError``) propagate
    unchanged.
    """

    def __init__(
        self,
        limiter: AbstractRateLimiter,
        *,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._limiter = limiter
        self._clock = clock

    async def enforce(self, identifier: str) -> Proceed | RateLimitRejection:
        decision = await self._limiter.check_limit(identifier)
        if decision.allowed:
            return Proceed(decision=decision)

        now_ms = self._clock() * 1000
        retry_after = max(0, math.ceil((decision.reset_at_ms - now_ms) / 1000))
        return RateLimitRejection(
            limit=decision.limit,
            remaining=decision.remaining,
            reset_at_ms=decision.reset_at_ms,
            retry_after_seconds=retry_after,
        )


def build_rate_limit_identifier(
    request: Request,
    x_api_key: str | None,
    app_settings: AppSettings,
) -> str:
    """Build the limiter identifier for the current request.

    The user id header is client supplied, so it only counts when
    ``APP_TRUST_USER_ID_HEADER`` says an upstream gateway sets it. Otherwise
    one API key could rotate the header to get a fresh bucket per request.

    Args:
        request: FastAPI request.
        x_api_key: API key value from the X-API-Key header.
        app_settings: Provides the user id header name and whether to trust it.

    Returns:
        str: Namespaced identifier.
    """

    if app_settings.trust_user_id_header:
        user_id = request.headers.get(app_settings.user_id_header)
        if user_id:
            return f"user:{user_id}"

    if x_api_key:
        return f"api_key:{hashlib.sha256(x_api_key.encode()).hexdigest()[:32]}"

    client_host = request.client.host if request.client else "unknown"
    return f"ip:{client_host}"


def get_limiter(request: Request, policy_name: str) -> FixedWindowRateLimiter:
    """Build a limiter for ``policy_name`` from the app's injected state.

    Raises:
        NotFoundAppError: If the policy name is unknown.
    """

    policies: RateLimitPolicies = request.app.state.rate_limit_policies
    store: AbstractCounterStore = request.app.state.counter_store
    try:
        policy = policies.get(policy_name)
    except KeyError as exc:
        raise NotFoundAppError(
            code="rate_limit_policy_not_found",
            message=f"Unknown rate limit policy: {policy_name}",
            details={"policy": policy_name, "hint": f"Known policies: {', '.join(policies.names())}"},
        ) from exc
    return FixedWindowRateLimiter(policy, store, clock=request.app.state.clock)


def rate_limited(policy_name: str) -> Callable[..., Awaitable[None]]:
    """Create a FastAPI dependency enforcing the named policy.

    When enabled, consumes 1 unit from the caller's budget. A rejection is
    raised as ``RateLimitExceededError``; its handler returns the 429 payload.
    Successful requests get informational ``X-RateLimit-*`` headers when
    configured.

    Usage:
        @router.post("/tax/calculate", dependencies=[Depends(rate_limited(TAX_CALCULATION))])
    """

    async def enforce_rate_limit(
        request: Request,
        response: Response,
        x_api_key: Annotated[str | None, Header(alias="X-API-Key")] = None,
    ) -> None:
        app_settings: Settings = request.app.state.settings
        if not app_settings.rate_limit.enabled:
            return

        limiter = get_limiter(request, policy_name)
        enforcer = RateLimitEnforcer(limiter, clock=request.app.state.clock)
        identifier = build_rate_limit_identifier(request, x_api_key, app_settings.app)
        log_fields = {
            "policy": policy_name,
            "identifier_hash": hash_identifier(identifier),
            "limit": limiter.policy.request_ceiling,
            "window_ms": limiter.policy.window_duration_ms,
        }

        outcome = await enforcer.enforce(identifier)
        if isinstance(outcome, RateLimitRejection):
            logger.warning(
                "rate_limit.exceeded",
                extra={**log_fields, "retry_after_s": outcome.retry_after_seconds},
            )
            raise RateLimitExceededError(outcome)

        logger.info(
            "rate_limit.allowed",
            extra={**log_fields, "remaining": outcome.remaining},
        )
        if app_settings.rate_limit.include_headers:
            response.headers.update(outcome.headers())

    return enforce_rate_limit
