from __future__ import annotations

from app.api.routes.health import router as health_router
from app.api.routes.rate_limits import router as rate_limits_router
from app.api.routes.tax import router as tax_router

__all__ = ["health_router", "rate_limits_router", "tax_router"]
