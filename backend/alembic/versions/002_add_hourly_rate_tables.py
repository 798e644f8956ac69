"""Add hourly rate table and rate range to proposals

Revision ID: 002
Revises: 001
Create Date: 2025-10-20

WHAT: Adds the per-person rate sources of hourly proposals: a rate per
profile tier or a min/max range whose average applies to everyone.

WHY: A person assigned to an HOURLY item is billed from the proposal's
rate table or range before falling back to their own default rate.
"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import JSONB


# revision identifiers, used by Alembic.
revision = "002"
down_revision = "001"
branch_labels = None
depends_on = None


hourly_rate_table_type = sa.Enum("HOURLY_TABLE", "RATE_RANGE", name="hourlyratetabletype")


def upgrade() -> None:
    """Add the rate table columns to proposals."""
    hourly_rate_table_type.create(op.get_bind(), checkfirst=True)
    op.add_column(
        "proposals",
        sa.Column("hourly_rate_table_type", hourly_rate_table_type, nullable=True),
    )
    op.add_column(
        "proposals",
        sa.Column(
            "hourly_rate_table_rates",
            sa.JSON().with_variant(JSONB(), "postgresql"),
            nullable=True,
            comment="Profile tier -> rate, rates as decimal strings",
        ),
    )
    op.add_column("proposals", sa.Column("hourly_rate_range_min", sa.Numeric(12, 2), nullable=True))
    op.add_column("proposals", sa.Column("hourly_rate_range_max", sa.Numeric(12, 2), nullable=True))


def downgrade() -> None:
    """Remove the rate table columns from proposals."""
    for column in (
        "hourly_rate_range_max",
        "hourly_rate_range_min",
        "hourly_rate_table_rates",
        "hourly_rate_table_type",
    ):
        op.drop_column("proposals", column)
    hourly_rate_table_type.drop(op.get_bind(), checkfirst=True)
