"""
Pydantic schemas for payment terms.

WHAT: Request/response schemas for payment terms, embedded in proposal
payloads and used by the standalone validation endpoint.

WHY: The input carries the chosen ``structure`` explicitly; the response
re-derives it from the stored columns, which is how a persisted term is
classified when it is edited again.
"""

from datetime import date
from decimal import Decimal
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, computed_field, field_validator

from app.models.payment_term import (
    BalancePaymentType,
    InstallmentFrequency,
    InstallmentType,
    PaymentStructure,
    RecurringFrequency,
    UpfrontType,
)
from app.services.payment_terms import detect_structure


def coerce_milestone_ids(value: Any) -> Any:
    """Numeric strings become ints so "5" and 5 refer to the same milestone."""
    if value is None:
        return value
    return [int(v) if isinstance(v, str) and v.isdigit() else v for v in value]


class PaymentTermFields(BaseModel):
    """Flat payment-term fields shared by input and output."""

    upfront_type: Optional[UpfrontType] = None
    upfront_value: Optional[Decimal] = None
    balance_payment_type: Optional[BalancePaymentType] = None
    balance_due_date: Optional[date] = None
    recurring_enabled: bool = False
    recurring_frequency: Optional[RecurringFrequency] = None
    recurring_custom_months: Optional[int] = None
    recurring_start_date: Optional[date] = None
    installment_type: Optional[InstallmentType] = None
    installment_count: Optional[int] = None
    installment_frequency: Optional[InstallmentFrequency] = None
    installment_maturity_dates: Optional[List[date]] = None
    milestone_ids: Optional[List[Union[int, str]]] = None

    @field_validator("milestone_ids", mode="before")
    @classmethod
    def normalize_milestone_ids(cls, v: Any) -> Any:
        return coerce_milestone_ids(v)


class PaymentTermInput(PaymentTermFields):
    """
    Payment term as submitted.

    ``structure`` is required to commit; leaving it out yields the
    "Please select a payment structure" validation error rather than a
    schema error, matching the interactive builder.
    """

    structure: Optional[PaymentStructure] = None

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "structure": "UPFRONT_BALANCE",
                "upfront_type": "PERCENT",
                "upfront_value": "30",
                "balance_payment_type": "TIME_BASED",
                "balance_due_date": "2025-09-30",
            }
        }
    )

    def field_values(self) -> Dict[str, Any]:
        """Submitted field values without the structure selector."""
        return self.model_dump(exclude={"structure"}, exclude_none=True)


class PaymentTermResponse(PaymentTermFields):
    """Persisted payment term."""

    id: int
    proposal_item_id: Optional[int] = None

    model_config = ConfigDict(from_attributes=True)

    @computed_field
    @property
    def structure(self) -> PaymentStructure:
        return detect_structure(self)


class PaymentTermValidationRequest(BaseModel):
    """
    Payment term to validate without persisting.

    Without ``term.structure`` the structure is detected from the fields.
    """

    term: PaymentTermInput
    available_milestone_ids: Optional[List[Union[int, str]]] = Field(
        default=None,
        description="Milestone ids the term may reference; omitted skips the check",
    )

    @field_validator("available_milestone_ids", mode="before")
    @classmethod
    def normalize_milestone_ids(cls, v: Any) -> Any:
        return coerce_milestone_ids(v)


class PaymentTermValidationResponse(BaseModel):
    """Result of validating a payment term without persisting it."""

    valid: bool
    structure: Optional[PaymentStructure] = None
    errors: Dict[str, str] = Field(default_factory=dict)
    normalized: Optional[PaymentTermFields] = Field(
        default=None,
        description="The committed values (other structures' fields reset)",
    )
