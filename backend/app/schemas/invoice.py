"""
Bill (invoice) schemas for API request/response validation.

WHAT: Pydantic schemas for bill data validation.

WHY: Schemas provide:
1. Type-safe request/response handling
2. Automatic validation with clear error messages
3. OpenAPI documentation generation

HOW: Uses Pydantic v2 with Field validators and model_config.
"""

from datetime import date, datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from app.models.invoice import BillStatus


# ============================================================================
# Request Schemas
# ============================================================================


class BillItemInput(BaseModel):
    """
    Bill line as submitted.

    Credit lines (expense reimbursements) are entered as positive amounts
    and stored negative.
    """

    model_config = ConfigDict(str_strip_whitespace=True)

    description: str = Field(default="", max_length=5000)
    quantity: Optional[Decimal] = Field(default=None, ge=0)
    rate: Optional[Decimal] = Field(default=None, ge=0)
    amount: Optional[Decimal] = Field(
        default=None,
        description="Line amount; defaults to quantity × rate",
    )
    is_credit: bool = Field(default=False, description="Expense reimbursement")
    expense_id: Optional[int] = None

    @model_validator(mode="after")
    def amount_or_quantity_rate(self) -> "BillItemInput":
        if self.amount is None and (self.quantity is None or self.rate is None):
            raise ValueError("Provide an amount or both quantity and rate")
        if self.amount is not None and not self.is_credit and self.amount < 0:
            raise ValueError("Amount cannot be negative")
        return self


class BillAdjustments(BaseModel):
    """Discount and tax fields shared by manual and proposal-derived bills."""

    discount_percent: Optional[Decimal] = Field(default=None, ge=0, le=100)
    discount_amount: Optional[Decimal] = Field(default=None, ge=0)
    tax_rate: Decimal = Field(default=Decimal("0"), ge=0, le=100)
    tax_inclusive: bool = False

    @model_validator(mode="after")
    def single_discount(self) -> "BillAdjustments":
        if self.discount_percent is not None and self.discount_amount is not None:
            raise ValueError("Set either a discount percent or a discount amount, not both")
        return self


class BillCreate(BillAdjustments):
    """
    Schema for creating a bill manually.

    WHY: Not every bill comes from a proposal (ad-hoc charges, expense
    re-billing). ``subtotal`` may be given explicitly; otherwise it is the
    sum of the non-credit lines.
    """

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "client_id": 1,
                "discount_percent": "10",
                "items": [
                    {"description": "Advisory", "amount": "1000"},
                    {"description": "Travel", "amount": "50", "is_credit": True},
                ],
            }
        }
    )

    client_id: Optional[int] = None
    lead_id: Optional[int] = None
    proposal_id: Optional[int] = None
    currency: Optional[str] = Field(default=None, min_length=3, max_length=3)
    subtotal: Optional[Decimal] = Field(default=None, ge=0)
    issue_date: Optional[date] = Field(
        default=None,
        description="Bill issue date (defaults to today)",
    )
    due_date: Optional[date] = Field(
        default=None,
        description="Payment due date (defaults to issue date + INVOICE_DUE_DAYS)",
    )
    notes: Optional[str] = Field(default=None, max_length=5000)
    items: List[BillItemInput] = Field(default_factory=list)

    @model_validator(mode="after")
    def client_xor_lead(self) -> "BillCreate":
        if self.client_id is None and self.lead_id is None:
            raise ValueError("Please select either a client or a lead")
        if self.client_id is not None and self.lead_id is not None:
            raise ValueError("A bill is addressed to a client or a lead, not both")
        return self

    @model_validator(mode="after")
    def due_after_issue(self) -> "BillCreate":
        if self.issue_date and self.due_date and self.due_date < self.issue_date:
            raise ValueError("Due date cannot be before issue date")
        return self


class BillFromProposal(BaseModel):
    """Options when invoicing a proposal; everything else is copied."""

    issue_date: Optional[date] = None
    due_date: Optional[date] = None
    notes: Optional[str] = Field(default=None, max_length=5000)


class MarkPaidRequest(BaseModel):
    paid_at: Optional[datetime] = Field(
        default=None,
        description="When payment was received (defaults to now)",
    )


# ============================================================================
# Response Schemas
# ============================================================================


class BillItemResponse(BaseModel):
    id: int
    description: str
    quantity: Optional[Decimal] = None
    rate: Optional[Decimal] = None
    amount: Decimal
    is_credit: bool
    expense_id: Optional[int] = None

    model_config = ConfigDict(from_attributes=True)


class BillResponse(BaseModel):
    """Bill with its lines."""

    id: int
    invoice_number: str
    status: BillStatus
    proposal_id: Optional[int] = None
    client_id: Optional[int] = None
    lead_id: Optional[int] = None
    currency: str
    subtotal: Optional[Decimal] = None
    discount_percent: Optional[Decimal] = None
    discount_amount: Optional[Decimal] = None
    tax_rate: Decimal
    tax_inclusive: bool
    tax_amount: Decimal
    amount: Decimal
    issue_date: date
    due_date: Optional[date] = None
    paid_at: Optional[datetime] = None
    notes: Optional[str] = None
    created_at: datetime
    updated_at: datetime
    is_paid: bool
    items: List[BillItemResponse] = Field(default_factory=list)

    model_config = ConfigDict(from_attributes=True)


class NetAmountResponse(BaseModel):
    """Net amount finder fees are computed on."""

    bill_id: int
    net_amount: Decimal
