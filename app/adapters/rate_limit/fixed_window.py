"""Fixed-window rate limiter over a shared counter store.

Windows are aligned to epoch time (``floor(now / window) * window``), so every
process computing a decision at the same instant agrees on the window without
coordination. Counters live in the store under
``{namespace}:{identifier}:{window_start_ms}`` and expire by TTL.
"""

from __future__ import annotations

import hashlib
import logging
import time
from typing import Callable

from app.adapters.cache.base import AbstractCounterStore
from app.adapters.rate_limit.base import AbstractRateLimiter, RateLimitDecision
from app.adapters.rate_limit.policy import FailureMode, RateLimitPolicy
from app.core.errors import CounterStoreError

logger = logging.getLogger(__name__)


def hash_identifier(identifier: str) -> str:
    """Hash a rate limit identifier for logging without exposing it."""
    return hashlib.sha256(identifier.encode()).hexdigest()[:16]


class FixedWindowRateLimiter(AbstractRateLimiter):
    """Rate limiter counting requests per identifier within fixed windows.

    A request that would exceed the ceiling is rejected before incrementing,
    so a stored counter never goes above ``policy.request_ceiling``.
    """

    def __init__(
        self,
        policy: RateLimitPolicy,
        store: AbstractCounterStore,
        *,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """Initialize the limiter.

        Args:
            policy: Ceiling, window and namespace to enforce.
            store: Counter store shared by every process enforcing the policy.
            clock: Time source function returning UNIX time in seconds.
        """
        self._policy = policy
        self._store = store
        self._clock = clock

    @property
    def policy(self) -> RateLimitPolicy:
        return self._policy

    def _now_ms(self) -> int:
        return int(self._clock() * 1000)

    def _get_window_bounds(self, now_ms: int) -> tuple[int, int]:
        """Compute fixed-window boundaries for a given timestamp.

        Args:
            now_ms: UNIX time in milliseconds.

        Returns:
            Tuple of (window_start_ms, reset_at_ms).
        """
        window = self._policy.window_duration_ms
        window_start = (now_ms // window) * window
        return window_start, window_start + window

    def _build_key(self, identifier: str, window_start: int) -> str:
        return f"{self._policy.key_namespace}:{identifier}:{window_start}"

    async def check_limit(self, identifier: str) -> RateLimitDecision:
        """Check and consume one unit of the identifier's budget.

        Args:
            identifier: Rate limited principal. An empty string is accepted and
                acts as a single bucket shared by all such callers.

        Returns:
            RateLimitDecision for the current window.

        Raises:
            CounterStoreError: If the store fails and the policy's failure mode
                is ``raise``.
        """
        if not identifier:
            logger.warning(
                "rate_limit.empty_identifier",
                extra={"namespace": self._policy.key_namespace},
            )

        window_start, reset_at = self._get_window_bounds(self._now_ms())
        key = self._build_key(identifier, window_start)
        ceiling = self._policy.request_ceiling

        try:
            update = await self._store.increment_below(
                key,
                ceiling=ceiling,
                ttl_seconds=self._policy.ttl_seconds,
            )
        except CounterStoreError as exc:
            return self._on_store_error(exc, identifier=identifier, reset_at=reset_at)

        if not update.incremented:
            return RateLimitDecision(
                allowed=False,
                limit=ceiling,
                remaining=0,
                reset_at_ms=reset_at,
            )

        return RateLimitDecision(
            allowed=True,
            limit=ceiling,
            remaining=max(0, ceiling - update.count),
            reset_at_ms=reset_at,
        )

    async def peek(self, identifier: str) -> RateLimitDecision:
        """Return the identifier's status in the current window.

        Performs a single read and never writes. ``allowed`` reports whether
        the next request would be admitted.
        """
        window_start, reset_at = self._get_window_bounds(self._now_ms())
        count = await self._store.get(self._build_key(identifier, window_start)) or 0
        ceiling = self._policy.request_ceiling
        remaining = max(0, ceiling - count)
        return RateLimitDecision(
            allowed=remaining > 0,
            limit=ceiling,
            remaining=remaining,
            reset_at_ms=reset_at,
        )

    def _on_store_error(
        self,
        exc: CounterStoreError,
        *,
        identifier: str,
        reset_at: int,
    ) -> RateLimitDecision:
        mode = self._policy.failure_mode
        logger.error(
            "rate_limit.store_error",
            extra={
                "namespace": self._policy.key_namespace,
                "identifier_hash": hash_identifier(identifier),
                "failure_mode": mode.value,
                "error_code": exc.code,
            },
        )
        if mode is FailureMode.RAISE:
            raise exc

        ceiling = self._policy.request_ceiling
        if mode is FailureMode.OPEN:
            return RateLimitDecision(
                allowed=True,
                limit=ceiling,
                remaining=ceiling,
                reset_at_ms=reset_at,
            )
        return RateLimitDecision(
            allowed=False,
            limit=ceiling,
            remaining=0,
            reset_at_ms=reset_at,
        )
