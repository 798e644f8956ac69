"""
Bill (invoice) model for billing and payment tracking.

WHAT: SQLAlchemy models representing a bill derived from a proposal and its
line items.

WHY: Bills are critical financial documents that:
1. Snapshot the amounts owed at the time they are issued
2. Record payment status, reaching PAID exactly once
3. Carry expense reimbursements as credit lines
4. Feed the finder-fee computation once paid

HOW: Uses SQLAlchemy 2.0 with:
- Proposal relationship (optional, manual bills allowed)
- Client XOR lead recipient, copied from the proposal
- Status enum for the payment workflow
- Amount tracking with proper decimal precision
"""

import enum
from datetime import date, datetime
from decimal import Decimal
from typing import List, Optional, TYPE_CHECKING

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Date,
    DateTime,
    Enum as SQLEnum,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.models.base import Base, Money, Percent, SoftDeleteMixin, TimestampMixin

if TYPE_CHECKING:
    from app.models.client import Client, Lead
    from app.models.proposal import Proposal


class BillStatus(str, enum.Enum):
    """
    Bill payment workflow status.

    - DRAFT: Created but not sent
    - SUBMITTED: Sent to the client
    - APPROVED: Approved for collection
    - PAID: Full payment received (terminal, set once)
    - CANCELLED: Voided
    - WRITTEN_OFF: Uncollectable
    """

    DRAFT = "DRAFT"
    SUBMITTED = "SUBMITTED"
    APPROVED = "APPROVED"
    PAID = "PAID"
    CANCELLED = "CANCELLED"
    WRITTEN_OFF = "WRITTEN_OFF"


class Bill(Base, TimestampMixin, SoftDeleteMixin):
    """
    Bill for client billing.

    Amounts are copied from the proposal for immutability: a bill does not
    change if the proposal is later revised.

    Attributes:
        id: Primary key
        invoice_number: Unique identifier (INV-YYYY-XXX)
        proposal_id: Source proposal (null for manual bills)
        client_id / lead_id: Recipient, exactly one is set
        status: Payment workflow status
        subtotal: Sum of non-credit items before adjustments
        discount_percent / discount_amount: At most one set
        tax_rate / tax_inclusive / tax_amount: Recorded tax
        amount: Final amount due
        paid_at: Set when status first becomes PAID, never cleared
    """

    __tablename__ = "bills"
    __table_args__ = (
        CheckConstraint(
            "discount_percent IS NULL OR discount_amount IS NULL",
            name="ck_bills_single_discount",
        ),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    invoice_number: Mapped[str] = mapped_column(
        String(50), unique=True, nullable=False, index=True,
        comment="Unique invoice number (e.g., INV-2025-001)",
    )
    status: Mapped[BillStatus] = mapped_column(
        SQLEnum(BillStatus, name="billstatus"),
        nullable=False,
        default=BillStatus.DRAFT,
        index=True,
    )

    proposal_id: Mapped[Optional[int]] = mapped_column(
        Integer, ForeignKey("proposals.id", ondelete="SET NULL"), nullable=True, index=True
    )
    client_id: Mapped[Optional[int]] = mapped_column(
        Integer, ForeignKey("clients.id"), nullable=True, index=True
    )
    lead_id: Mapped[Optional[int]] = mapped_column(
        Integer, ForeignKey("leads.id"), nullable=True, index=True
    )

    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="EUR")
    subtotal: Mapped[Optional[Decimal]] = mapped_column(
        Money, nullable=True, comment="Sum of line items before adjustments"
    )
    discount_percent: Mapped[Optional[Decimal]] = mapped_column(Percent, nullable=True)
    discount_amount: Mapped[Optional[Decimal]] = mapped_column(Money, nullable=True)
    tax_rate: Mapped[Decimal] = mapped_column(Percent, nullable=False, default=0)
    tax_inclusive: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    tax_amount: Mapped[Decimal] = mapped_column(Money, nullable=False, default=0)
    amount: Mapped[Decimal] = mapped_column(
        Money, nullable=False, default=0, comment="Final total amount due"
    )

    issue_date: Mapped[date] = mapped_column(Date, nullable=False, default=date.today)
    due_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    paid_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime, nullable=True, comment="When full payment was received"
    )
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    proposal: Mapped[Optional["Proposal"]] = relationship("Proposal")
    client: Mapped[Optional["Client"]] = relationship("Client")
    lead: Mapped[Optional["Lead"]] = relationship("Lead")
    items: Mapped[List["BillItem"]] = relationship(
        "BillItem",
        back_populates="bill",
        order_by="BillItem.id",
        cascade="all, delete-orphan",
    )

    def __repr__(self) -> str:
        return f"<Bill(id={self.id}, number={self.invoice_number}, status={self.status})>"

    @property
    def is_paid(self) -> bool:
        return self.status == BillStatus.PAID

    @property
    def is_closed(self) -> bool:
        """Cancelled and written-off bills can no longer be paid."""
        return self.status in (BillStatus.CANCELLED, BillStatus.WRITTEN_OFF)


class BillItem(Base, TimestampMixin):
    """
    Line of a bill.

    Credit lines (``is_credit``) are expense reimbursements and are stored
    with a negative amount. They are excluded from the subtotal and deducted
    from the net amount that finder fees are computed on.
    """

    __tablename__ = "bill_items"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    bill_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("bills.id", ondelete="CASCADE"), nullable=False, index=True
    )
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    quantity: Mapped[Optional[Decimal]] = mapped_column(Numeric(10, 2), nullable=True)
    rate: Mapped[Optional[Decimal]] = mapped_column(Money, nullable=True)
    amount: Mapped[Decimal] = mapped_column(Money, nullable=False, default=0)
    is_credit: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    expense_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    bill: Mapped["Bill"] = relationship("Bill", back_populates="items")

    def __repr__(self) -> str:
        return f"<BillItem(id={self.id}, amount={self.amount}, credit={self.is_credit})>"
