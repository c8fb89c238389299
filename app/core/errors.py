"""Application-level exception types.

This module defines domain errors used across services/adapters, enabling
consistent error handling, logging, and API responses.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, NotRequired, TypedDict

if TYPE_CHECKING:
    from app.core.rate_limit import RateLimitRejection


class ErrorDetails(TypedDict, total=False):
    """Structured error context for observability and clients.

    Fields are optional to keep backward compatibility while encouraging
    consistent shapes across the codebase.
    """

    code: str
    message: str
    hint: str
    http_status: int
    retry_after: float
    backend: str
    operation: str
    policy: str
    request_id: str
    context: NotRequired[dict[str, Any]]


@dataclass
class AppError(Exception):
    """Base error for application/domain failures.

    Attributes:
        code: Stable, machine-readable error code.
        message: Human-readable error message.
        details: Optional structured details for debugging/observability.
    """

    code: str
    message: str
    details: ErrorDetails | None = None

    def __post_init__(self) -> None:
        # Populate Exception args so str(error) is useful in logs/tracebacks.
        super().__init__(self.message)


class ValidationAppError(AppError):
    """Raised when input/config validation fails."""


class AuthenticationAppError(AppError):
    """Raised when authentication/authorization fails."""


class NotFoundAppError(AppError):
    """Raised when a named resource (e.g. a rate limit policy) does not exist."""


class CounterStoreError(AppError):
    """Raised when the counter store backend fails (connection, timeout, protocol)."""


class RateLimitExceededError(AppError):
    """Raised at the HTTP boundary to short-circuit a throttled request.

    The limiter itself never raises this; it returns a denied decision. The
    FastAPI dependency converts a rejection into this error so the registered
    handler can return the rejection response verbatim.
    """

    def __init__(self, rejection: "RateLimitRejection") -> None:
        self.rejection = rejection
        super().__init__(
            code="RATE_LIMIT_EXCEEDED",
            message=rejection.message,
            details={"retry_after": rejection.retry_after_seconds},
        )
