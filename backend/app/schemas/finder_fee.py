"""
Finder fee schemas for API request/response validation.

WHAT: Pydantic schemas for finder fees and their payouts.

HOW: Uses Pydantic v2 with from_attributes for SQLAlchemy integration.
"""

from datetime import date, datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from app.models.finder_fee import FinderFeeStatus


class FinderFeePaymentCreate(BaseModel):
    """Payout recorded against a finder fee."""

    amount: Decimal = Field(..., gt=0, description="Payment amount")
    payment_date: Optional[date] = Field(
        default=None,
        description="Date of payment (defaults to today)",
    )
    notes: Optional[str] = Field(default=None, max_length=5000)
    paid_by: Optional[int] = Field(default=None, description="User who made the payment")

    model_config = ConfigDict(
        json_schema_extra={
            "example": {"amount": "40.00", "payment_date": "2025-07-01", "notes": "Bank transfer"}
        }
    )


class FinderFeePaymentResponse(BaseModel):
    id: int
    finder_fee_id: int
    amount: Decimal
    payment_date: date
    notes: Optional[str] = None
    paid_by: Optional[int] = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class FinderFeeResponse(BaseModel):
    """Finder fee without its payment history."""

    id: int
    bill_id: int
    client_finder_id: int
    client_id: int
    finder_id: int
    invoice_net_amount: Decimal
    finder_fee_percent: Decimal
    finder_fee_amount: Decimal
    paid_amount: Decimal
    remaining_amount: Decimal
    status: FinderFeeStatus
    earned_at: Optional[datetime] = None
    paid_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class FinderFeeDetailResponse(FinderFeeResponse):
    payments: List[FinderFeePaymentResponse] = Field(default_factory=list)


class FinderFeeListResponse(BaseModel):
    items: List[FinderFeeDetailResponse]
    skip: int
    limit: int
