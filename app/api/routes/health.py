from __future__ import annotations

from fastapi import APIRouter

router = APIRouter(tags=["Health"])


@router.get("/health")
def health_check() -> dict:
    """Liveness check used by load balancers and monitoring.

    Does not touch the counter store, so it stays green during a cache outage.
    """

    return {"status": "ok"}
