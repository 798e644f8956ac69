"""
Client, Lead and ClientFinder models.

WHAT: The parties a proposal or bill is addressed to, plus the referral
("finder") associations of a client.

WHY: A proposal targets exactly one Client or one Lead. Only Clients have
a referral program: each ClientFinder row entitles a user to a percentage
of the net amount of the client's paid invoices.
"""

from decimal import Decimal
from typing import List, Optional, TYPE_CHECKING

from sqlalchemy import ForeignKey, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.models.base import Base, Money, Percent, SoftDeleteMixin, TimestampMixin

if TYPE_CHECKING:
    from app.models.user import User


class Client(Base, TimestampMixin, SoftDeleteMixin):
    """
    Billable client.

    Attributes:
        id: Primary key
        name: Contact or client name
        company: Company name
        email: Contact email
        default_discount_percent: Discount applied to new proposals (percent)
        default_discount_amount: Discount applied to new proposals (fixed)
        finders: Referral associations
    """

    __tablename__ = "clients"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    company: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    default_discount_percent: Mapped[Optional[Decimal]] = mapped_column(
        Percent, nullable=True
    )
    default_discount_amount: Mapped[Optional[Decimal]] = mapped_column(
        Money, nullable=True
    )

    finders: Mapped[List["ClientFinder"]] = relationship(
        "ClientFinder",
        back_populates="client",
        cascade="all, delete-orphan",
    )

    def __repr__(self) -> str:
        return f"<Client(id={self.id}, name={self.name})>"


class Lead(Base, TimestampMixin, SoftDeleteMixin):
    """
    Prospective client. Leads receive proposals and bills but never
    generate finder fees.
    """

    __tablename__ = "leads"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    company: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    def __repr__(self) -> str:
        return f"<Lead(id={self.id}, name={self.name})>"


class ClientFinder(Base, TimestampMixin):
    """
    Referral association between a client and the user who brought it in.

    Attributes:
        client_id: Referred client
        user_id: Finder (user entitled to the fee)
        finder_fee_percent: Share of the net invoice amount, 0-100
    """

    __tablename__ = "client_finders"
    __table_args__ = (
        UniqueConstraint("client_id", "user_id", name="uq_client_finders_client_user"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    client_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("clients.id", ondelete="CASCADE"), nullable=False, index=True
    )
    user_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    finder_fee_percent: Mapped[Decimal] = mapped_column(
        Percent, nullable=False, default=0
    )

    client: Mapped["Client"] = relationship("Client", back_populates="finders")
    user: Mapped["User"] = relationship("User")

    def __repr__(self) -> str:
        return (
            f"<ClientFinder(client_id={self.client_id}, user_id={self.user_id}, "
            f"percent={self.finder_fee_percent})>"
        )
