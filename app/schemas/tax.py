"""Pydantic schemas for the protected tax operations."""

from __future__ import annotations

from datetime import date
from typing import Literal

from pydantic import BaseModel, Field


class TaxCalculationRequest(BaseModel):
    """Input for a flat-rate tax liability estimate."""

    income: float = Field(..., ge=0, description="Gross income for the period.")
    deductions: float = Field(0.0, ge=0, description="Total deductible amount.")
    rate: float = Field(..., ge=0, le=1, description="Tax rate as a fraction (0.25 = 25%).")


class TaxCalculationResponse(BaseModel):
    taxable_income: float = Field(..., description="Income minus deductions, floored at 0.")
    estimated_tax: float = Field(..., description="Taxable income times rate, in cents precision.")
    effective_rate: float = Field(
        ..., description="Estimated tax divided by gross income (0 when income is 0)."
    )


class TaxPaymentRequest(BaseModel):
    """A payment recorded against a tax obligation."""

    obligation_id: str = Field(..., min_length=1, description="Tax obligation being paid.")
    amount_due: float = Field(..., gt=0, description="Outstanding amount on the obligation.")
    amount: float = Field(..., gt=0, description="Amount paid.")
    payment_method: str | None = Field(
        default=None, description="Payment method label (e.g. 'ach', 'card')."
    )
    payment_date: date | None = Field(
        default=None, description="Date of payment; defaults to today."
    )


class TaxPaymentResponse(BaseModel):
    payment_id: str
    obligation_id: str
    amount: float
    remaining_balance: float
    status: Literal["paid", "pending"] = Field(
        ..., description="'paid' when the amount covers the amount due, else 'pending'."
    )
    payment_method: str | None = None
    payment_date: date


class RateLimitStatusResponse(BaseModel):
    """Caller's quota for one protected operation in the current window."""

    policy: str
    limit: int
    remaining: int
    reset_time: int = Field(..., description="UNIX epoch milliseconds when the window ends.")
    window_ms: int
