"""
Proposal model for priced offers to clients and leads.

WHAT: SQLAlchemy models for a proposal, its line items and its milestones.

WHY: Proposals are critical business documents that:
1. Choose a billing method (fixed fee, hourly, retainer, ...)
2. Itemize the priced work, optionally linked to milestones
3. Carry payment terms describing how the total is collected
4. Convert to bills (invoices) once accepted

HOW: Uses SQLAlchemy 2.0 with:
- CHECK constraints for the client/lead and discount exclusivity rules
- A many-to-many association between items and milestones
- Snapshot total columns recomputed by the pricing engine on every save
"""

import enum
from datetime import date
from decimal import Decimal
from typing import Dict, List, Optional, TYPE_CHECKING

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    Date,
    Enum as SQLEnum,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Table,
    Text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.models.base import Base, JSONType, Money, Percent, SoftDeleteMixin, TimestampMixin

if TYPE_CHECKING:
    from app.models.client import Client, Lead
    from app.models.payment_term import PaymentTerm
    from app.models.user import User


class ProposalType(str, enum.Enum):
    """
    Proposal-level billing method.

    RECURRING is not a proposal type: recurring collection is expressed
    through a RECURRING payment-term structure.
    """

    FIXED_FEE = "FIXED_FEE"
    HOURLY = "HOURLY"
    RETAINER = "RETAINER"
    SUCCESS_FEE = "SUCCESS_FEE"
    CAPPED_FEE = "CAPPED_FEE"
    MIXED_MODEL = "MIXED_MODEL"


class BillingMethod(str, enum.Enum):
    """Billing method of a single line item."""

    FIXED_FEE = "FIXED_FEE"
    HOURLY = "HOURLY"
    RETAINER = "RETAINER"
    SUCCESS_FEE = "SUCCESS_FEE"
    CAPPED_FEE = "CAPPED_FEE"
    RECURRING = "RECURRING"


class HourlyRateTableType(str, enum.Enum):
    """
    Per-person rate source of an hourly proposal.

    - HOURLY_TABLE: one rate per profile tier
    - RATE_RANGE: the average of a min/max range applies to everyone
    """

    HOURLY_TABLE = "HOURLY_TABLE"
    RATE_RANGE = "RATE_RANGE"


class ProposalStatus(str, enum.Enum):
    """
    Proposal workflow status.

    - DRAFT: Being created/edited
    - SUBMITTED: Sent to the client
    - APPROVED: Client accepted
    - REJECTED: Client declined
    """

    DRAFT = "DRAFT"
    SUBMITTED = "SUBMITTED"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"


proposal_item_milestones = Table(
    "proposal_item_milestones",
    Base.metadata,
    Column(
        "proposal_item_id",
        Integer,
        ForeignKey("proposal_items.id", ondelete="CASCADE"),
        primary_key=True,
    ),
    Column(
        "milestone_id",
        Integer,
        ForeignKey("milestones.id", ondelete="CASCADE"),
        primary_key=True,
    ),
)


class Proposal(Base, TimestampMixin, SoftDeleteMixin):
    """
    Priced offer to exactly one Client or Lead.

    Attributes:
        id: Primary key
        proposal_number: Year-scoped number (YYYY-XXX)
        client_id / lead_id: Recipient, exactly one is set
        type: Proposal billing method
        currency: ISO currency code, no conversion is performed
        tax_rate / tax_inclusive: Recorded tax configuration
        client_discount_percent / client_discount_amount: At most one set
        use_blended_rate / blended_rate: Uniform hourly rate override
        hourly_rate_table_type: Rate table or rate range for assigned people
        hourly_rate_table_rates: Profile tier -> hourly rate (HOURLY_TABLE)
        hourly_rate_range_min / hourly_rate_range_max: Bounds (RATE_RANGE)
        use_milestones: Forces at least one milestone when enabled
        subtotal / discount_total / tax_amount / amount: Snapshot totals
    """

    __tablename__ = "proposals"
    __table_args__ = (
        CheckConstraint(
            "(client_id IS NULL) <> (lead_id IS NULL)",
            name="ck_proposals_client_xor_lead",
        ),
        CheckConstraint(
            "client_discount_percent IS NULL OR client_discount_amount IS NULL",
            name="ck_proposals_single_client_discount",
        ),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    proposal_number: Mapped[str] = mapped_column(
        String(20), unique=True, nullable=False, index=True,
        comment="Year-scoped number, e.g. 2025-001",
    )

    # Recipient
    client_id: Mapped[Optional[int]] = mapped_column(
        Integer, ForeignKey("clients.id"), nullable=True, index=True
    )
    lead_id: Mapped[Optional[int]] = mapped_column(
        Integer, ForeignKey("leads.id"), nullable=True, index=True
    )
    created_by: Mapped[Optional[int]] = mapped_column(
        Integer, ForeignKey("users.id"), nullable=True
    )

    # Details
    type: Mapped[ProposalType] = mapped_column(
        SQLEnum(ProposalType, name="proposaltype"), nullable=False
    )
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    status: Mapped[ProposalStatus] = mapped_column(
        SQLEnum(ProposalStatus, name="proposalstatus"),
        nullable=False,
        default=ProposalStatus.DRAFT,
    )
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="EUR")
    issue_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    expiry_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)

    # Tax and client discount
    tax_rate: Mapped[Decimal] = mapped_column(Percent, nullable=False, default=0)
    tax_inclusive: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    client_discount_percent: Mapped[Optional[Decimal]] = mapped_column(Percent, nullable=True)
    client_discount_amount: Mapped[Optional[Decimal]] = mapped_column(Money, nullable=True)

    # Billing configuration
    use_blended_rate: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    blended_rate: Mapped[Optional[Decimal]] = mapped_column(Money, nullable=True)
    hourly_rate_table_type: Mapped[Optional[HourlyRateTableType]] = mapped_column(
        SQLEnum(HourlyRateTableType, name="hourlyratetabletype"), nullable=True
    )
    hourly_rate_table_rates: Mapped[Optional[Dict[str, str]]] = mapped_column(
        JSONType, nullable=True, comment="Profile tier -> rate, rates as decimal strings"
    )
    hourly_rate_range_min: Mapped[Optional[Decimal]] = mapped_column(Money, nullable=True)
    hourly_rate_range_max: Mapped[Optional[Decimal]] = mapped_column(Money, nullable=True)
    use_milestones: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    success_fee_percent: Mapped[Optional[Decimal]] = mapped_column(Percent, nullable=True)
    success_fee_amount: Mapped[Optional[Decimal]] = mapped_column(Money, nullable=True)
    success_fee_value: Mapped[Optional[Decimal]] = mapped_column(Money, nullable=True)

    # Snapshot totals, overwritten on every save
    subtotal: Mapped[Decimal] = mapped_column(Money, nullable=False, default=0)
    discount_total: Mapped[Decimal] = mapped_column(Money, nullable=False, default=0)
    tax_amount: Mapped[Decimal] = mapped_column(Money, nullable=False, default=0)
    amount: Mapped[Decimal] = mapped_column(
        Money, nullable=False, default=0, comment="Grand total snapshot"
    )

    # Relationships
    client: Mapped[Optional["Client"]] = relationship("Client")
    lead: Mapped[Optional["Lead"]] = relationship("Lead")
    items: Mapped[List["ProposalItem"]] = relationship(
        "ProposalItem",
        back_populates="proposal",
        order_by="ProposalItem.position",
        cascade="all, delete-orphan",
    )
    milestones: Mapped[List["Milestone"]] = relationship(
        "Milestone",
        back_populates="proposal",
        order_by="Milestone.id",
        cascade="all, delete-orphan",
    )
    payment_terms: Mapped[List["PaymentTerm"]] = relationship(
        "PaymentTerm",
        back_populates="proposal",
        cascade="all, delete-orphan",
    )

    def __repr__(self) -> str:
        return f"<Proposal(id={self.id}, number={self.proposal_number}, type={self.type})>"

    @property
    def is_editable(self) -> bool:
        """Only draft proposals may have items, milestones and terms replaced."""
        return self.status == ProposalStatus.DRAFT

    @property
    def proposal_level_term(self) -> Optional["PaymentTerm"]:
        """The single payment term not attached to a line item, if any."""
        for term in self.payment_terms:
            if term.proposal_item_id is None:
                return term
        return None


class ProposalItem(Base, TimestampMixin):
    """
    Line item of a proposal.

    One of three amount-determination modes applies: direct ``amount``,
    ``quantity × rate`` (hourly) or ``quantity × unit_price`` (unit-priced
    fixed fee). At most one of ``discount_percent``/``discount_amount`` is set.
    """

    __tablename__ = "proposal_items"
    __table_args__ = (
        CheckConstraint(
            "discount_percent IS NULL OR discount_amount IS NULL",
            name="ck_proposal_items_single_discount",
        ),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    proposal_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("proposals.id", ondelete="CASCADE"), nullable=False, index=True
    )
    position: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    billing_method: Mapped[Optional[BillingMethod]] = mapped_column(
        SQLEnum(BillingMethod, name="billingmethod"), nullable=True
    )
    person_id: Mapped[Optional[int]] = mapped_column(
        Integer, ForeignKey("users.id"), nullable=True
    )
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")

    quantity: Mapped[Optional[Decimal]] = mapped_column(Numeric(10, 2), nullable=True)
    rate: Mapped[Optional[Decimal]] = mapped_column(Money, nullable=True)
    unit_price: Mapped[Optional[Decimal]] = mapped_column(Money, nullable=True)
    amount: Mapped[Decimal] = mapped_column(Money, nullable=False, default=0)

    discount_percent: Mapped[Optional[Decimal]] = mapped_column(Percent, nullable=True)
    discount_amount: Mapped[Optional[Decimal]] = mapped_column(Money, nullable=True)

    is_estimate: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    is_capped: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    capped_hours: Mapped[Optional[Decimal]] = mapped_column(Numeric(10, 2), nullable=True)
    capped_amount: Mapped[Optional[Decimal]] = mapped_column(Money, nullable=True)

    # External expense record; description is read-only once linked
    expense_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    proposal: Mapped["Proposal"] = relationship("Proposal", back_populates="items")
    person: Mapped[Optional["User"]] = relationship("User")
    milestones: Mapped[List["Milestone"]] = relationship(
        "Milestone",
        secondary=proposal_item_milestones,
        back_populates="items",
    )

    def __repr__(self) -> str:
        return f"<ProposalItem(id={self.id}, method={self.billing_method}, amount={self.amount})>"


class Milestone(Base, TimestampMixin):
    """
    Named deliverable checkpoint of a proposal.

    Carries an optional fixed ``amount`` or ``percent`` share (never both)
    and an optional due date.
    """

    __tablename__ = "milestones"
    __table_args__ = (
        CheckConstraint(
            "amount IS NULL OR percent IS NULL",
            name="ck_milestones_amount_xor_percent",
        ),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    proposal_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("proposals.id", ondelete="CASCADE"), nullable=False, index=True
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    amount: Mapped[Optional[Decimal]] = mapped_column(Money, nullable=True)
    percent: Mapped[Optional[Decimal]] = mapped_column(Percent, nullable=True)
    due_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)

    proposal: Mapped["Proposal"] = relationship("Proposal", back_populates="milestones")
    items: Mapped[List["ProposalItem"]] = relationship(
        "ProposalItem",
        secondary=proposal_item_milestones,
        back_populates="milestones",
    )

    def __repr__(self) -> str:
        return f"<Milestone(id={self.id}, name={self.name})>"
