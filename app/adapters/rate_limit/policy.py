"""Rate limit policies for protected operations.

A policy is immutable configuration. The named set is built once at startup
from settings and handed to the app; tests build their own sets instead of
patching globals.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from enum import Enum

from app.core.config import RateLimitSettings

TAX_CALCULATION = "tax_calculation"
TAX_PAYMENT = "tax_payment"


class FailureMode(str, Enum):
    """What a limiter does when its counter store fails."""

    RAISE = "raise"
    OPEN = "open"
    CLOSED = "closed"


@dataclass(frozen=True)
class RateLimitPolicy:
    """Fixed-window limit for one protected operation.

    Attributes:
        request_ceiling: Max allowed requests per window.
        window_duration_ms: Window length in milliseconds.
        key_namespace: Prefix isolating this policy's counters.
        failure_mode: Behaviour on counter store failure.

    Raises:
        ValueError: If the ceiling or window is not positive.
    """

    request_ceiling: int
    window_duration_ms: int
    key_namespace: str
    failure_mode: FailureMode = FailureMode.RAISE

    def __post_init__(self) -> None:
        if self.request_ceiling < 1:
            raise ValueError("request_ceiling must be >= 1")
        if self.window_duration_ms < 1:
            raise ValueError("window_duration_ms must be >= 1")
        # Accept plain strings from settings.
        object.__setattr__(self, "failure_mode", FailureMode(self.failure_mode))

    @property
    def ttl_seconds(self) -> int:
        """Counter TTL: the window length rounded up to whole seconds."""
        return math.ceil(self.window_duration_ms / 1000)


@dataclass(frozen=True)
class RateLimitPolicies:
    """Named policies for the protected tax operations."""

    tax_calculation: RateLimitPolicy
    tax_payment: RateLimitPolicy
    _by_name: dict[str, RateLimitPolicy] = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        object.__setattr__(
            self,
            "_by_name",
            {TAX_CALCULATION: self.tax_calculation, TAX_PAYMENT: self.tax_payment},
        )

    def get(self, name: str) -> RateLimitPolicy:
        """Return the policy registered under ``name``.

        Raises:
            KeyError: If no policy has that name.
        """
        try:
            return self._by_name[name]
        except KeyError:
            raise KeyError(f"Unknown rate limit policy: {name!r}") from None

    def names(self) -> list[str]:
        return list(self._by_name)


def build_policies(rate_limit_settings: RateLimitSettings) -> RateLimitPolicies:
    """Build the named policy set from configuration.

    Args:
        rate_limit_settings: Resolved rate limit settings.

    Returns:
        RateLimitPolicies with one policy per protected operation.
    """

    cfg = rate_limit_settings
    return RateLimitPolicies(
        tax_calculation=RateLimitPolicy(
            request_ceiling=cfg.tax_calculation_requests,
            window_duration_ms=cfg.tax_calculation_window_ms,
            key_namespace="tax:calculation",
            failure_mode=FailureMode(cfg.tax_calculation_failure_mode),
        ),
        tax_payment=RateLimitPolicy(
            request_ceiling=cfg.tax_payment_requests,
            window_duration_ms=cfg.tax_payment_window_ms,
            key_namespace="tax:payment",
            failure_mode=FailureMode(cfg.tax_payment_failure_mode),
        ),
    )
