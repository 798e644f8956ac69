"""
Payment term model.

WHAT: How and when the total of a proposal (or of one of its line items) is
collected.

WHY: A payment term is a tagged variant over four structures (ONE_TIME,
UPFRONT_BALANCE, RECURRING, INSTALLMENTS). It is persisted as one flat row
with a column per field of every structure; the payment-terms engine nulls
every column that does not belong to the chosen structure before the row is
written, so exactly one structure is ever "active" in storage.

HOW:
- proposal_item_id IS NULL marks the single proposal-level term
- milestone_ids and installment_maturity_dates are JSON lists
"""

import enum
from datetime import date
from decimal import Decimal
from typing import List, Optional, TYPE_CHECKING

from sqlalchemy import Boolean, Date, Enum as SQLEnum, ForeignKey, Integer, Numeric
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.models.base import Base, JSONType, TimestampMixin

if TYPE_CHECKING:
    from app.models.proposal import Proposal


class PaymentStructure(str, enum.Enum):
    """Collection schedule. Derived from the flat columns, never stored."""

    ONE_TIME = "ONE_TIME"
    UPFRONT_BALANCE = "UPFRONT_BALANCE"
    RECURRING = "RECURRING"
    INSTALLMENTS = "INSTALLMENTS"


class UpfrontType(str, enum.Enum):
    PERCENT = "PERCENT"
    FIXED_AMOUNT = "FIXED_AMOUNT"


class BalancePaymentType(str, enum.Enum):
    MILESTONE_BASED = "MILESTONE_BASED"
    TIME_BASED = "TIME_BASED"
    FULL_UPFRONT = "FULL_UPFRONT"


class RecurringFrequency(str, enum.Enum):
    MONTHLY_1 = "MONTHLY_1"
    MONTHLY_3 = "MONTHLY_3"
    MONTHLY_6 = "MONTHLY_6"
    YEARLY_12 = "YEARLY_12"
    CUSTOM = "CUSTOM"


class InstallmentType(str, enum.Enum):
    TIME_BASED = "TIME_BASED"
    MILESTONE_BASED = "MILESTONE_BASED"


class InstallmentFrequency(str, enum.Enum):
    WEEKLY = "WEEKLY"
    MONTHLY = "MONTHLY"
    QUARTERLY = "QUARTERLY"


class PaymentTerm(Base, TimestampMixin):
    """
    Persisted payment term of a proposal or a proposal line item.

    Attributes:
        proposal_id: Owning proposal
        proposal_item_id: Owning line item, NULL for the proposal-level term
        upfront_type / upfront_value: UPFRONT_BALANCE first payment
        balance_payment_type / balance_due_date: UPFRONT_BALANCE remainder
            (balance_due_date doubles as the ONE_TIME due date)
        recurring_*: RECURRING schedule
        installment_*: INSTALLMENTS schedule
        milestone_ids: Milestones referenced by milestone-based payments
    """

    __tablename__ = "payment_terms"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    proposal_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("proposals.id", ondelete="CASCADE"), nullable=False, index=True
    )
    proposal_item_id: Mapped[Optional[int]] = mapped_column(
        Integer, ForeignKey("proposal_items.id", ondelete="CASCADE"), nullable=True, index=True
    )

    # UPFRONT_BALANCE
    upfront_type: Mapped[Optional[UpfrontType]] = mapped_column(
        SQLEnum(UpfrontType, name="upfronttype"), nullable=True
    )
    upfront_value: Mapped[Optional[Decimal]] = mapped_column(Numeric(12, 2), nullable=True)
    balance_payment_type: Mapped[Optional[BalancePaymentType]] = mapped_column(
        SQLEnum(BalancePaymentType, name="balancepaymenttype"), nullable=True
    )
    balance_due_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)

    # RECURRING
    recurring_enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    recurring_frequency: Mapped[Optional[RecurringFrequency]] = mapped_column(
        SQLEnum(RecurringFrequency, name="recurringfrequency"), nullable=True
    )
    recurring_custom_months: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    recurring_start_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)

    # INSTALLMENTS
    installment_type: Mapped[Optional[InstallmentType]] = mapped_column(
        SQLEnum(InstallmentType, name="installmenttype"), nullable=True
    )
    installment_count: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    installment_frequency: Mapped[Optional[InstallmentFrequency]] = mapped_column(
        SQLEnum(InstallmentFrequency, name="installmentfrequency"), nullable=True
    )
    installment_maturity_dates: Mapped[Optional[List[str]]] = mapped_column(
        JSONType, nullable=True, comment="ISO dates, one per installment"
    )

    milestone_ids: Mapped[Optional[List[int]]] = mapped_column(JSONType, nullable=True)

    proposal: Mapped["Proposal"] = relationship("Proposal", back_populates="payment_terms")

    def __repr__(self) -> str:
        return (
            f"<PaymentTerm(id={self.id}, proposal_id={self.proposal_id}, "
            f"item_id={self.proposal_item_id})>"
        )
