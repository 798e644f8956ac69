"""
Base model class for all SQLAlchemy models.

WHY: Centralizing common model functionality (timestamps, soft delete,
money columns) in a base module keeps every billing table consistent.
"""

from datetime import datetime
from typing import Optional

from sqlalchemy import JSON, DateTime, Numeric
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


# Monetary amounts: 12 digits, 2 decimals.
Money = Numeric(12, 2)

# Percentages and tax rates: 0.00 - 999.99
Percent = Numeric(5, 2)

# JSONB on PostgreSQL, plain JSON elsewhere (SQLite in tests)
JSONType = JSON().with_variant(JSONB(), "postgresql")


class Base(DeclarativeBase):
    """
    Base class for all SQLAlchemy models.

    WHY: DeclarativeBase provides the foundation for SQLAlchemy 2.0 models
    with improved type hints and async support.
    """

    pass


class TimestampMixin:
    """
    Mixin to add created_at and updated_at timestamps to models.
    """

    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False
    )


class SoftDeleteMixin:
    """
    Mixin to add a deleted_at marker.

    WHY: Records referenced by invoices and fees are never hard-deleted.
    BaseDAO filters ``deleted_at IS NULL`` on every read of a model that
    carries this column.
    """

    deleted_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime, nullable=True, index=True
    )

    @property
    def is_deleted(self) -> bool:
        """True once the record has been soft-deleted."""
        return self.deleted_at is not None
