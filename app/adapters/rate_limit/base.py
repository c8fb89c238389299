"""Rate limiter interfaces.

The API should depend on this abstraction (not the concrete implementation)
so the counting strategy can change without touching the HTTP layer.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass


@dataclass(frozen=True)
class RateLimitDecision:
    """Result of a rate limit check.

    Attributes:
        allowed: Whether the request is allowed to proceed.
        limit: Max requests per window.
        remaining: Remaining requests in the current window (0 when blocked).
        reset_at_ms: UNIX epoch milliseconds when the current window ends.
    """

    allowed: bool
    limit: int
    remaining: int
    reset_at_ms: int


class AbstractRateLimiter(ABC):
    """Interface for rate limiters."""

    @abstractmethod
    async def check_limit(self, identifier: str) -> RateLimitDecision:
        """Decide whether ``identifier`` may proceed, consuming one unit if so.

        Args:
            identifier: Rate limited principal (e.g., user id).

        Returns:
            RateLimitDecision describing whether it was allowed.
        """
        raise NotImplementedError

    @abstractmethod
    async def peek(self, identifier: str) -> RateLimitDecision:
        """Report the current window status without consuming budget."""
        raise NotImplementedError
