"""
Finder fee models.

WHAT: Referral payouts earned on paid bills and the payments made against
them.

WHY: Each ClientFinder of a client earns ``finder_fee_percent`` of the net
amount of every paid bill of that client. The net amount and percent are
snapshotted on the fee so later edits to the bill or the referral
association do not change an earned fee.
"""

import enum
from datetime import date, datetime
from decimal import Decimal
from typing import List, Optional, TYPE_CHECKING

from sqlalchemy import (
    Date,
    DateTime,
    Enum as SQLEnum,
    ForeignKey,
    Integer,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.models.base import Base, Money, Percent, TimestampMixin

if TYPE_CHECKING:
    from app.models.client import Client, ClientFinder
    from app.models.invoice import Bill
    from app.models.user import User


class FinderFeeStatus(str, enum.Enum):
    """PENDING → PARTIALLY_PAID → PAID."""

    PENDING = "PENDING"
    PARTIALLY_PAID = "PARTIALLY_PAID"
    PAID = "PAID"


class FinderFee(Base, TimestampMixin):
    """
    Fee owed to a finder for one paid bill.

    Attributes:
        bill_id: Paid bill the fee was earned on
        client_finder_id: Referral association that earned it
        client_id / finder_id: Denormalized for listing queries
        invoice_net_amount: Net bill amount at the time of computation
        finder_fee_percent: Percent at the time of computation
        finder_fee_amount: invoice_net_amount × percent / 100
        paid_amount / remaining_amount: Payout tracking
        earned_at: The bill's paid_at
        paid_at: When the fee was fully paid
    """

    __tablename__ = "finder_fees"
    __table_args__ = (
        UniqueConstraint("bill_id", "client_finder_id", name="uq_finder_fees_bill_finder"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    bill_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("bills.id", ondelete="CASCADE"), nullable=False, index=True
    )
    client_finder_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("client_finders.id", ondelete="CASCADE"), nullable=False
    )
    client_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("clients.id"), nullable=False, index=True
    )
    finder_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id"), nullable=False, index=True
    )

    invoice_net_amount: Mapped[Decimal] = mapped_column(Money, nullable=False)
    finder_fee_percent: Mapped[Decimal] = mapped_column(Percent, nullable=False)
    finder_fee_amount: Mapped[Decimal] = mapped_column(Money, nullable=False)
    paid_amount: Mapped[Decimal] = mapped_column(Money, nullable=False, default=0)
    remaining_amount: Mapped[Decimal] = mapped_column(Money, nullable=False)

    status: Mapped[FinderFeeStatus] = mapped_column(
        SQLEnum(FinderFeeStatus, name="finderfeestatus"),
        nullable=False,
        default=FinderFeeStatus.PENDING,
        index=True,
    )
    earned_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    paid_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    bill: Mapped["Bill"] = relationship("Bill")
    client_finder: Mapped["ClientFinder"] = relationship("ClientFinder")
    client: Mapped["Client"] = relationship("Client")
    finder: Mapped["User"] = relationship("User")
    payments: Mapped[List["FinderFeePayment"]] = relationship(
        "FinderFeePayment",
        back_populates="finder_fee",
        order_by="FinderFeePayment.id",
        cascade="all, delete-orphan",
    )

    def __repr__(self) -> str:
        return (
            f"<FinderFee(id={self.id}, bill_id={self.bill_id}, "
            f"amount={self.finder_fee_amount}, status={self.status})>"
        )


class FinderFeePayment(Base, TimestampMixin):
    """A single payout made against a finder fee."""

    __tablename__ = "finder_fee_payments"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    finder_fee_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("finder_fees.id", ondelete="CASCADE"), nullable=False, index=True
    )
    amount: Mapped[Decimal] = mapped_column(Money, nullable=False)
    payment_date: Mapped[date] = mapped_column(Date, nullable=False)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    paid_by: Mapped[Optional[int]] = mapped_column(
        Integer, ForeignKey("users.id"), nullable=True
    )

    finder_fee: Mapped["FinderFee"] = relationship("FinderFee", back_populates="payments")
