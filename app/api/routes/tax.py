from __future__ import annotations

from fastapi import APIRouter, Depends

from app.adapters.rate_limit.policy import TAX_CALCULATION, TAX_PAYMENT
from app.core.auth import verify_api_key
from app.core.rate_limit import rate_limited
from app.schemas.tax import (
    TaxCalculationRequest,
    TaxCalculationResponse,
    TaxPaymentRequest,
    TaxPaymentResponse,
)
from app.services.tax_service import TaxService

router = APIRouter(tags=["Tax"])

_tax_service = TaxService()


@router.post(
    "/tax/calculate",
    response_model=TaxCalculationResponse,
    dependencies=[Depends(verify_api_key), Depends(rate_limited(TAX_CALCULATION))],
)
async def calculate_tax(payload: TaxCalculationRequest) -> TaxCalculationResponse:
    """Estimate tax liability for the given income, deductions and rate.

    Rate limited per user under the ``tax_calculation`` policy; throttled
    callers get a 429 with ``Retry-After``.
    """
    return _tax_service.calculate(payload)


@router.post(
    "/tax/payments",
    response_model=TaxPaymentResponse,
    status_code=201,
    dependencies=[Depends(verify_api_key), Depends(rate_limited(TAX_PAYMENT))],
)
async def record_tax_payment(payload: TaxPaymentRequest) -> TaxPaymentResponse:
    """Record a payment against a tax obligation.

    Rate limited per user under the ``tax_payment`` policy.
    """
    return _tax_service.record_payment(payload)
