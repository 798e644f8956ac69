"""
User model.

WHY: Users are the staff assigned to hourly line items and the finders who
earn referral fees. The billing core only reads their default hourly rate
and professional tier.
"""

import enum
from decimal import Decimal
from typing import Optional

from sqlalchemy import Boolean, Enum, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from app.models.base import Base, Money, SoftDeleteMixin, TimestampMixin


class ProfileTier(str, enum.Enum):
    """Professional profile tier of a staff member."""

    JUNIOR = "JUNIOR"
    ASSOCIATE = "ASSOCIATE"
    SENIOR = "SENIOR"
    PARTNER = "PARTNER"


class User(Base, TimestampMixin, SoftDeleteMixin):
    """
    Staff member who can be assigned to line items or act as a finder.

    Attributes:
        id: Primary key
        name: Display name
        email: Unique login email
        default_hourly_rate: Rate auto-filled into HOURLY line items
        profile_tier: Professional profile tier
        is_active: Whether the account is active
    """

    __tablename__ = "users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, index=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    email: Mapped[str] = mapped_column(String(255), unique=True, index=True, nullable=False)
    default_hourly_rate: Mapped[Optional[Decimal]] = mapped_column(
        Money, nullable=True, comment="Default hourly rate for HOURLY line items"
    )
    profile_tier: Mapped[Optional[ProfileTier]] = mapped_column(
        Enum(ProfileTier, name="profiletier"), nullable=True
    )
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    def __repr__(self) -> str:
        return f"<User(id={self.id}, email={self.email})>"
