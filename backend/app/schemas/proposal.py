"""
Pydantic schemas for proposal endpoints.

WHAT: Request/response schemas for proposal management and quoting.

WHY: Schemas define API contracts for proposal operations:
1. Reject negative quantities, rates and amounts at the boundary
2. Enforce the "only one of" rules (client/lead, percent/amount discount)
3. Document the API for OpenAPI/Swagger
4. Serialize the priced snapshot including informational values

HOW: Uses Pydantic v2 with Field constraints, model validators and
from_attributes for SQLAlchemy integration.
"""

from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional, Union

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    computed_field,
    field_validator,
    model_validator,
)

from app.models.proposal import BillingMethod, HourlyRateTableType, ProposalStatus, ProposalType
from app.models.user import ProfileTier
from app.schemas.payment_term import PaymentTermInput, PaymentTermResponse, coerce_milestone_ids
from app.services.pricing import LineItem, SubtotalPolicy, capped_ceiling, success_fee_estimate

MilestoneRef = Union[int, str]


def _check_single_discount(percent: Optional[Decimal], amount: Optional[Decimal], label: str) -> None:
    if percent is not None and amount is not None:
        raise ValueError(f"Set either a {label} discount percent or a discount amount, not both")


# ============================================================================
# Input
# ============================================================================


class MilestoneInput(BaseModel):
    """
    Milestone as submitted.

    ``id`` is the durable id of an existing milestone or a temporary
    ``temp-...`` id for a new one; line items and payment terms reference
    milestones by this id.
    """

    id: Optional[MilestoneRef] = None
    name: str = Field(default="", max_length=255)
    description: Optional[str] = None
    amount: Optional[Decimal] = Field(default=None, ge=0)
    percent: Optional[Decimal] = Field(default=None, ge=0, le=100)
    due_date: Optional[date] = None

    @field_validator("id", mode="before")
    @classmethod
    def normalize_id(cls, v: Any) -> Any:
        return int(v) if isinstance(v, str) and v.isdigit() else v

    @model_validator(mode="after")
    def amount_xor_percent(self) -> "MilestoneInput":
        if self.amount is not None and self.percent is not None:
            raise ValueError("Specify either an amount or a percentage, not both")
        return self


class LineItemInput(BaseModel):
    """
    Line item as submitted.

    The amount of auto-calculating billing methods (HOURLY, unit-priced
    FIXED_FEE) is recomputed server-side; for other methods the submitted
    amount is authoritative.
    """

    billing_method: Optional[BillingMethod] = None
    description: str = Field(default="", max_length=5000)
    person_id: Optional[int] = None
    quantity: Optional[Decimal] = Field(default=None, ge=0)
    rate: Optional[Decimal] = Field(default=None, ge=0)
    unit_price: Optional[Decimal] = Field(default=None, ge=0)
    amount: Decimal = Field(default=Decimal("0"), ge=0)
    discount_percent: Optional[Decimal] = Field(default=None, ge=0, le=100)
    discount_amount: Optional[Decimal] = Field(default=None, ge=0)
    milestone_ids: List[MilestoneRef] = Field(default_factory=list)
    is_estimate: bool = False
    is_capped: bool = False
    capped_hours: Optional[Decimal] = Field(default=None, ge=0)
    capped_amount: Optional[Decimal] = Field(default=None, ge=0)
    expense_id: Optional[int] = None
    payment_term: Optional[PaymentTermInput] = Field(
        default=None, description="Item-level payment term"
    )

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "billing_method": "HOURLY",
                "description": "Contract review",
                "person_id": 3,
                "quantity": "5",
                "rate": "180",
            }
        }
    )

    @field_validator("milestone_ids", mode="before")
    @classmethod
    def normalize_milestone_ids(cls, v: Any) -> Any:
        return coerce_milestone_ids(v) or []

    @model_validator(mode="after")
    def single_discount(self) -> "LineItemInput":
        _check_single_discount(self.discount_percent, self.discount_amount, "line item")
        return self


class PricingInput(BaseModel):
    """Fields that determine the price of a proposal."""

    type: ProposalType
    currency: Optional[str] = Field(default=None, min_length=3, max_length=3)
    tax_rate: Decimal = Field(default=Decimal("0"), ge=0, le=100)
    tax_inclusive: bool = False
    client_discount_percent: Optional[Decimal] = Field(default=None, ge=0, le=100)
    client_discount_amount: Optional[Decimal] = Field(default=None, ge=0)
    use_blended_rate: bool = False
    blended_rate: Optional[Decimal] = Field(default=None, ge=0)
    hourly_rate_table_type: Optional[HourlyRateTableType] = None
    hourly_rate_table_rates: Dict[ProfileTier, Decimal] = Field(
        default_factory=dict, description="Hourly rate per profile tier (HOURLY_TABLE)"
    )
    hourly_rate_range_min: Optional[Decimal] = Field(default=None, ge=0)
    hourly_rate_range_max: Optional[Decimal] = Field(default=None, ge=0)
    use_milestones: bool = False
    success_fee_percent: Optional[Decimal] = Field(default=None, ge=0, le=100)
    success_fee_amount: Optional[Decimal] = Field(default=None, ge=0)
    success_fee_value: Optional[Decimal] = Field(default=None, ge=0)
    items: List[LineItemInput] = Field(default_factory=list)
    milestones: List[MilestoneInput] = Field(default_factory=list)

    @model_validator(mode="after")
    def single_client_discount(self) -> "PricingInput":
        _check_single_discount(
            self.client_discount_percent, self.client_discount_amount, "client"
        )
        return self

    @field_validator("hourly_rate_table_rates")
    @classmethod
    def non_negative_table_rates(cls, v: Dict[ProfileTier, Decimal]) -> Dict[ProfileTier, Decimal]:
        if any(rate < 0 for rate in v.values()):
            raise ValueError("Rate cannot be negative")
        return v

    @model_validator(mode="after")
    def ordered_rate_range(self) -> "PricingInput":
        low, high = self.hourly_rate_range_min, self.hourly_rate_range_max
        if low is not None and high is not None and low > high:
            raise ValueError("Minimum rate cannot exceed maximum rate")
        return self


class ProposalQuoteRequest(PricingInput):
    """
    Draft to price without persisting.

    ``client_id`` only supplies the client's default discount when no
    client discount is given.
    """

    client_id: Optional[int] = None
    subtotal_policy: Optional[SubtotalPolicy] = Field(
        default=None, description="Overrides the configured subtotal policy"
    )


class ProposalWrite(PricingInput):
    """Fields shared by create and full update."""

    title: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = Field(default=None, max_length=10000)
    client_id: Optional[int] = None
    lead_id: Optional[int] = None
    issue_date: Optional[date] = None
    expiry_date: Optional[date] = None
    payment_term: Optional[PaymentTermInput] = Field(
        default=None, description="Proposal-level payment term"
    )

    @model_validator(mode="after")
    def client_xor_lead(self) -> "ProposalWrite":
        if self.client_id is None and self.lead_id is None:
            raise ValueError("Please select either a client or a lead")
        if self.client_id is not None and self.lead_id is not None:
            raise ValueError("A proposal is addressed to a client or a lead, not both")
        return self

    @model_validator(mode="after")
    def expiry_after_issue(self) -> "ProposalWrite":
        if self.issue_date and self.expiry_date and self.expiry_date <= self.issue_date:
            raise ValueError("Expiry date must be after issue date")
        return self


class ProposalCreate(ProposalWrite):
    """
    Proposal creation request.

    A number is generated when ``proposal_number`` is omitted.
    """

    proposal_number: Optional[str] = Field(default=None, pattern=r"^\d{4}-\d{3}$")


class ProposalUpdate(ProposalWrite):
    """
    Full replacement of a draft proposal.

    Items and payment terms are replaced; milestones with a durable id are
    updated in place, new ones created and omitted ones removed.
    """

    status: Optional[ProposalStatus] = None


# ============================================================================
# Output
# ============================================================================


class MilestoneResponse(BaseModel):
    id: int
    name: str
    description: Optional[str] = None
    amount: Optional[Decimal] = None
    percent: Optional[Decimal] = None
    due_date: Optional[date] = None

    model_config = ConfigDict(from_attributes=True)


class LineItemResponse(BaseModel):
    """Persisted line item."""

    id: int
    position: int
    billing_method: Optional[BillingMethod] = None
    person_id: Optional[int] = None
    description: str
    quantity: Optional[Decimal] = None
    rate: Optional[Decimal] = None
    unit_price: Optional[Decimal] = None
    amount: Decimal
    discount_percent: Optional[Decimal] = None
    discount_amount: Optional[Decimal] = None
    is_estimate: bool = False
    is_capped: bool = False
    capped_hours: Optional[Decimal] = None
    capped_amount: Optional[Decimal] = None
    expense_id: Optional[int] = None
    milestone_ids: List[int] = Field(
        default_factory=list,
        validation_alias=AliasChoices("milestone_ids", "milestones"),
    )

    model_config = ConfigDict(from_attributes=True)

    @field_validator("milestone_ids", mode="before")
    @classmethod
    def milestones_to_ids(cls, v: Any) -> Any:
        return [getattr(m, "id", m) for m in (v or [])]

    @computed_field
    @property
    def capped_ceiling(self) -> Optional[Decimal]:
        return capped_ceiling(
            LineItem(
                is_capped=self.is_capped,
                capped_hours=self.capped_hours,
                capped_amount=self.capped_amount,
                rate=self.rate,
            )
        )


class ProposalResponse(BaseModel):
    """Proposal with its priced snapshot and children."""

    id: int
    proposal_number: str
    client_id: Optional[int] = None
    lead_id: Optional[int] = None
    type: ProposalType
    title: str
    description: Optional[str] = None
    status: ProposalStatus
    currency: str
    tax_rate: Decimal
    tax_inclusive: bool
    client_discount_percent: Optional[Decimal] = None
    client_discount_amount: Optional[Decimal] = None
    use_blended_rate: bool
    blended_rate: Optional[Decimal] = None
    hourly_rate_table_type: Optional[HourlyRateTableType] = None
    hourly_rate_table_rates: Optional[Dict[ProfileTier, Decimal]] = None
    hourly_rate_range_min: Optional[Decimal] = None
    hourly_rate_range_max: Optional[Decimal] = None
    use_milestones: bool
    success_fee_percent: Optional[Decimal] = None
    success_fee_amount: Optional[Decimal] = None
    success_fee_value: Optional[Decimal] = None
    subtotal: Decimal
    discount_total: Decimal
    tax_amount: Decimal
    amount: Decimal
    issue_date: Optional[date] = None
    expiry_date: Optional[date] = None
    created_at: datetime
    updated_at: datetime
    items: List[LineItemResponse] = Field(default_factory=list)
    milestones: List[MilestoneResponse] = Field(default_factory=list)
    payment_terms: List[PaymentTermResponse] = Field(default_factory=list)

    model_config = ConfigDict(from_attributes=True)

    @computed_field
    @property
    def success_fee_estimate(self) -> Optional[Decimal]:
        return success_fee_estimate(
            self.success_fee_percent, self.success_fee_amount, self.success_fee_value
        )


class ProposalSummary(BaseModel):
    """List entry."""

    id: int
    proposal_number: str
    client_id: Optional[int] = None
    lead_id: Optional[int] = None
    type: ProposalType
    title: str
    status: ProposalStatus
    currency: str
    amount: Decimal
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class ProposalListResponse(BaseModel):
    items: List[ProposalSummary]
    skip: int
    limit: int


class QuotedLineItem(BaseModel):
    billing_method: Optional[BillingMethod] = None
    description: str
    quantity: Optional[Decimal] = None
    rate: Optional[Decimal] = None
    unit_price: Optional[Decimal] = None
    amount: Decimal
    discount: Decimal
    effective_amount: Decimal
    capped_ceiling: Optional[Decimal] = None


class ProposalQuoteResponse(BaseModel):
    """Priced draft; nothing is persisted."""

    items: List[QuotedLineItem]
    subtotal: Decimal
    item_discount_total: Decimal
    client_discount: Decimal
    after_discount: Decimal
    tax: Decimal
    grand_total: Decimal
    subtotal_policy: SubtotalPolicy
    success_fee_estimate: Optional[Decimal] = None
