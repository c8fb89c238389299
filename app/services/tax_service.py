"""Tax operations guarded by rate limits.

Both operations are intentionally thin: persistence of obligations and
payments belongs to the ledger service, this module only computes results.
"""

from __future__ import annotations

import logging
import uuid
from datetime import date

from app.schemas.tax import (
    TaxCalculationRequest,
    TaxCalculationResponse,
    TaxPaymentRequest,
    TaxPaymentResponse,
)

logger = logging.getLogger(__name__)


def _cents(value: float) -> float:
    return round(value, 2)


class TaxService:
    """Compute tax estimates and payment outcomes."""

    def calculate(self, request: TaxCalculationRequest) -> TaxCalculationResponse:
        taxable = max(0.0, request.income - request.deductions)
        estimated = _cents(taxable * request.rate)
        effective = round(estimated / request.income, 4) if request.income else 0.0
        return TaxCalculationResponse(
            taxable_income=_cents(taxable),
            estimated_tax=estimated,
            effective_rate=effective,
        )

    def record_payment(self, request: TaxPaymentRequest) -> TaxPaymentResponse:
        """Record a payment and derive the obligation status.

        The obligation is ``paid`` once the amount covers what is due, overpayment
        included, and stays ``pending`` otherwise.
        """
        remaining = _cents(max(0.0, request.amount_due - request.amount))
        status = "paid" if request.amount >= request.amount_due else "pending"
        payment = TaxPaymentResponse(
            payment_id=str(uuid.uuid4()),
            obligation_id=request.obligation_id,
            amount=_cents(request.amount),
            remaining_balance=remaining,
            status=status,
            payment_method=request.payment_method,
            payment_date=request.payment_date or date.today(),
        )
        logger.info(
            "tax.payment_recorded",
            extra={
                "payment_id": payment.payment_id,
                "obligation_id": payment.obligation_id,
                "status": payment.status,
            },
        )
        return payment
