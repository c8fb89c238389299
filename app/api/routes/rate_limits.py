from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends, Header, Request

from app.core.auth import verify_api_key
from app.core.rate_limit import build_rate_limit_identifier, get_limiter
from app.schemas.tax import RateLimitStatusResponse

router = APIRouter(tags=["Rate Limits"])


@router.get(
    "/rate-limits/{policy_name}",
    response_model=RateLimitStatusResponse,
    dependencies=[Depends(verify_api_key)],
)
async def get_rate_limit_status(
    policy_name: str,
    request: Request,
    x_api_key: Annotated[str | None, Header(alias="X-API-Key")] = None,
) -> RateLimitStatusResponse:
    """Report the caller's remaining quota for a policy without consuming it.

    Raises:
        NotFoundAppError: 404 when the policy name is unknown.
    """
    limiter = get_limiter(request, policy_name)
    identifier = build_rate_limit_identifier(request, x_api_key, request.app.state.settings.app)
    decision = await limiter.peek(identifier)
    return RateLimitStatusResponse(
        policy=policy_name,
        limit=decision.limit,
        remaining=decision.remaining,
        reset_time=decision.reset_at_ms,
        window_ms=limiter.policy.window_duration_ms,
    )
