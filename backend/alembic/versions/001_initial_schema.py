"""Initial schema - billing tables

Revision ID: 001
Revises:
Create Date: 2025-10-12

WHY: Creates the people and recipient tables the billing core reads
(users, clients, leads, client_finders), the proposal graph (proposals,
proposal_items, milestones, their association table, payment_terms), bills
with their lines, and finder fees with their payments.
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import JSONB


# revision identifiers, used by Alembic.
revision: str = '001'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


MONEY = sa.Numeric(12, 2)
PERCENT = sa.Numeric(5, 2)
JSON_TYPE = sa.JSON().with_variant(JSONB(), 'postgresql')

profile_tier = sa.Enum('JUNIOR', 'ASSOCIATE', 'SENIOR', 'PARTNER', name='profiletier')
proposal_type = sa.Enum(
    'FIXED_FEE', 'HOURLY', 'RETAINER', 'SUCCESS_FEE', 'CAPPED_FEE', 'MIXED_MODEL',
    name='proposaltype',
)
proposal_status = sa.Enum('DRAFT', 'SUBMITTED', 'APPROVED', 'REJECTED', name='proposalstatus')
billing_method = sa.Enum(
    'FIXED_FEE', 'HOURLY', 'RETAINER', 'SUCCESS_FEE', 'CAPPED_FEE', 'RECURRING',
    name='billingmethod',
)
upfront_type = sa.Enum('PERCENT', 'FIXED_AMOUNT', name='upfronttype')
balance_payment_type = sa.Enum(
    'MILESTONE_BASED', 'TIME_BASED', 'FULL_UPFRONT', name='balancepaymenttype'
)
recurring_frequency = sa.Enum(
    'MONTHLY_1', 'MONTHLY_3', 'MONTHLY_6', 'YEARLY_12', 'CUSTOM', name='recurringfrequency'
)
installment_type = sa.Enum('TIME_BASED', 'MILESTONE_BASED', name='installmenttype')
installment_frequency = sa.Enum('WEEKLY', 'MONTHLY', 'QUARTERLY', name='installmentfrequency')
bill_status = sa.Enum(
    'DRAFT', 'SUBMITTED', 'APPROVED', 'PAID', 'CANCELLED', 'WRITTEN_OFF', name='billstatus'
)
finder_fee_status = sa.Enum('PENDING', 'PARTIALLY_PAID', 'PAID', name='finderfeestatus')


def _timestamps() -> list:
    return [
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
    ]


def upgrade() -> None:
    """
    Create every billing table.

    WHY: Enum types are created implicitly by the first create_table that
    uses them and dropped explicitly on downgrade.
    """
    # People and recipients
    op.create_table(
        'users',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=False),
        sa.Column('default_hourly_rate', MONEY, nullable=True),
        sa.Column('profile_tier', profile_tier, nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        *_timestamps(),
        sa.Column('deleted_at', sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_users_id', 'users', ['id'])
    op.create_index('ix_users_email', 'users', ['email'], unique=True)
    op.create_index('ix_users_deleted_at', 'users', ['deleted_at'])

    for table in ('clients', 'leads'):
        columns = [
            sa.Column('id', sa.Integer(), nullable=False),
            sa.Column('name', sa.String(length=255), nullable=False),
            sa.Column('company', sa.String(length=255), nullable=True),
            sa.Column('email', sa.String(length=255), nullable=True),
        ]
        if table == 'clients':
            columns += [
                sa.Column('default_discount_percent', PERCENT, nullable=True),
                sa.Column('default_discount_amount', MONEY, nullable=True),
            ]
        op.create_table(
            table,
            *columns,
            *_timestamps(),
            sa.Column('deleted_at', sa.DateTime(), nullable=True),
            sa.PrimaryKeyConstraint('id'),
        )
        op.create_index(f'ix_{table}_id', table, ['id'])
        op.create_index(f'ix_{table}_deleted_at', table, ['deleted_at'])

    op.create_table(
        'client_finders',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('client_id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('finder_fee_percent', PERCENT, nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['client_id'], ['clients.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
        sa.UniqueConstraint('client_id', 'user_id', name='uq_client_finders_client_user'),
    )
    op.create_index('ix_client_finders_id', 'client_finders', ['id'])
    op.create_index('ix_client_finders_client_id', 'client_finders', ['client_id'])
    op.create_index('ix_client_finders_user_id', 'client_finders', ['user_id'])

    # Proposals
    op.create_table(
        'proposals',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('proposal_number', sa.String(length=20), nullable=False),
        sa.Column('client_id', sa.Integer(), nullable=True),
        sa.Column('lead_id', sa.Integer(), nullable=True),
        sa.Column('created_by', sa.Integer(), nullable=True),
        sa.Column('type', proposal_type, nullable=False),
        sa.Column('title', sa.String(length=255), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('status', proposal_status, nullable=False),
        sa.Column('currency', sa.String(length=3), nullable=False),
        sa.Column('issue_date', sa.Date(), nullable=True),
        sa.Column('expiry_date', sa.Date(), nullable=True),
        sa.Column('tax_rate', PERCENT, nullable=False),
        sa.Column('tax_inclusive', sa.Boolean(), nullable=False),
        sa.Column('client_discount_percent', PERCENT, nullable=True),
        sa.Column('client_discount_amount', MONEY, nullable=True),
        sa.Column('use_blended_rate', sa.Boolean(), nullable=False),
        sa.Column('blended_rate', MONEY, nullable=True),
        sa.Column('use_milestones', sa.Boolean(), nullable=False),
        sa.Column('success_fee_percent', PERCENT, nullable=True),
        sa.Column('success_fee_amount', MONEY, nullable=True),
        sa.Column('success_fee_value', MONEY, nullable=True),
        sa.Column('subtotal', MONEY, nullable=False),
        sa.Column('discount_total', MONEY, nullable=False),
        sa.Column('tax_amount', MONEY, nullable=False),
        sa.Column('amount', MONEY, nullable=False),
        *_timestamps(),
        sa.Column('deleted_at', sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['client_id'], ['clients.id']),
        sa.ForeignKeyConstraint(['lead_id'], ['leads.id']),
        sa.ForeignKeyConstraint(['created_by'], ['users.id']),
        sa.CheckConstraint(
            '(client_id IS NULL) <> (lead_id IS NULL)', name='ck_proposals_client_xor_lead'
        ),
        sa.CheckConstraint(
            'client_discount_percent IS NULL OR client_discount_amount IS NULL',
            name='ck_proposals_single_client_discount',
        ),
    )
    op.create_index('ix_proposals_id', 'proposals', ['id'])
    op.create_index('ix_proposals_proposal_number', 'proposals', ['proposal_number'], unique=True)
    op.create_index('ix_proposals_client_id', 'proposals', ['client_id'])
    op.create_index('ix_proposals_lead_id', 'proposals', ['lead_id'])
    op.create_index('ix_proposals_deleted_at', 'proposals', ['deleted_at'])

    op.create_table(
        'proposal_items',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('proposal_id', sa.Integer(), nullable=False),
        sa.Column('position', sa.Integer(), nullable=False),
        sa.Column('billing_method', billing_method, nullable=True),
        sa.Column('person_id', sa.Integer(), nullable=True),
        sa.Column('description', sa.Text(), nullable=False),
        sa.Column('quantity', sa.Numeric(10, 2), nullable=True),
        sa.Column('rate', MONEY, nullable=True),
        sa.Column('unit_price', MONEY, nullable=True),
        sa.Column('amount', MONEY, nullable=False),
        sa.Column('discount_percent', PERCENT, nullable=True),
        sa.Column('discount_amount', MONEY, nullable=True),
        sa.Column('is_estimate', sa.Boolean(), nullable=False),
        sa.Column('is_capped', sa.Boolean(), nullable=False),
        sa.Column('capped_hours', sa.Numeric(10, 2), nullable=True),
        sa.Column('capped_amount', MONEY, nullable=True),
        sa.Column('expense_id', sa.Integer(), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['proposal_id'], ['proposals.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['person_id'], ['users.id']),
        sa.CheckConstraint(
            'discount_percent IS NULL OR discount_amount IS NULL',
            name='ck_proposal_items_single_discount',
        ),
    )
    op.create_index('ix_proposal_items_id', 'proposal_items', ['id'])
    op.create_index('ix_proposal_items_proposal_id', 'proposal_items', ['proposal_id'])

    op.create_table(
        'milestones',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('proposal_id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('amount', MONEY, nullable=True),
        sa.Column('percent', PERCENT, nullable=True),
        sa.Column('due_date', sa.Date(), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['proposal_id'], ['proposals.id'], ondelete='CASCADE'),
        sa.CheckConstraint(
            'amount IS NULL OR percent IS NULL', name='ck_milestones_amount_xor_percent'
        ),
    )
    op.create_index('ix_milestones_id', 'milestones', ['id'])
    op.create_index('ix_milestones_proposal_id', 'milestones', ['proposal_id'])

    op.create_table(
        'proposal_item_milestones',
        sa.Column('proposal_item_id', sa.Integer(), nullable=False),
        sa.Column('milestone_id', sa.Integer(), nullable=False),
        sa.PrimaryKeyConstraint('proposal_item_id', 'milestone_id'),
        sa.ForeignKeyConstraint(['proposal_item_id'], ['proposal_items.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['milestone_id'], ['milestones.id'], ondelete='CASCADE'),
    )

    op.create_table(
        'payment_terms',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('proposal_id', sa.Integer(), nullable=False),
        sa.Column('proposal_item_id', sa.Integer(), nullable=True),
        sa.Column('upfront_type', upfront_type, nullable=True),
        sa.Column('upfront_value', sa.Numeric(12, 2), nullable=True),
        sa.Column('balance_payment_type', balance_payment_type, nullable=True),
        sa.Column('balance_due_date', sa.Date(), nullable=True),
        sa.Column('recurring_enabled', sa.Boolean(), nullable=False),
        sa.Column('recurring_frequency', recurring_frequency, nullable=True),
        sa.Column('recurring_custom_months', sa.Integer(), nullable=True),
        sa.Column('recurring_start_date', sa.Date(), nullable=True),
        sa.Column('installment_type', installment_type, nullable=True),
        sa.Column('installment_count', sa.Integer(), nullable=True),
        sa.Column('installment_frequency', installment_frequency, nullable=True),
        sa.Column('installment_maturity_dates', JSON_TYPE, nullable=True),
        sa.Column('milestone_ids', JSON_TYPE, nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['proposal_id'], ['proposals.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['proposal_item_id'], ['proposal_items.id'], ondelete='CASCADE'),
    )
    op.create_index('ix_payment_terms_id', 'payment_terms', ['id'])
    op.create_index('ix_payment_terms_proposal_id', 'payment_terms', ['proposal_id'])
    op.create_index('ix_payment_terms_proposal_item_id', 'payment_terms', ['proposal_item_id'])

    # Bills
    op.create_table(
        'bills',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('invoice_number', sa.String(length=50), nullable=False),
        sa.Column('status', bill_status, nullable=False),
        sa.Column('proposal_id', sa.Integer(), nullable=True),
        sa.Column('client_id', sa.Integer(), nullable=True),
        sa.Column('lead_id', sa.Integer(), nullable=True),
        sa.Column('currency', sa.String(length=3), nullable=False),
        sa.Column('subtotal', MONEY, nullable=True),
        sa.Column('discount_percent', PERCENT, nullable=True),
        sa.Column('discount_amount', MONEY, nullable=True),
        sa.Column('tax_rate', PERCENT, nullable=False),
        sa.Column('tax_inclusive', sa.Boolean(), nullable=False),
        sa.Column('tax_amount', MONEY, nullable=False),
        sa.Column('amount', MONEY, nullable=False),
        sa.Column('issue_date', sa.Date(), nullable=False),
        sa.Column('due_date', sa.Date(), nullable=True),
        sa.Column('paid_at', sa.DateTime(), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        *_timestamps(),
        sa.Column('deleted_at', sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['proposal_id'], ['proposals.id'], ondelete='SET NULL'),
        sa.ForeignKeyConstraint(['client_id'], ['clients.id']),
        sa.ForeignKeyConstraint(['lead_id'], ['leads.id']),
        sa.CheckConstraint(
            'discount_percent IS NULL OR discount_amount IS NULL',
            name='ck_bills_single_discount',
        ),
    )
    op.create_index('ix_bills_id', 'bills', ['id'])
    op.create_index('ix_bills_invoice_number', 'bills', ['invoice_number'], unique=True)
    op.create_index('ix_bills_status', 'bills', ['status'])
    op.create_index('ix_bills_proposal_id', 'bills', ['proposal_id'])
    op.create_index('ix_bills_client_id', 'bills', ['client_id'])
    op.create_index('ix_bills_lead_id', 'bills', ['lead_id'])
    op.create_index('ix_bills_deleted_at', 'bills', ['deleted_at'])

    op.create_table(
        'bill_items',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('bill_id', sa.Integer(), nullable=False),
        sa.Column('description', sa.Text(), nullable=False),
        sa.Column('quantity', sa.Numeric(10, 2), nullable=True),
        sa.Column('rate', MONEY, nullable=True),
        sa.Column('amount', MONEY, nullable=False),
        sa.Column('is_credit', sa.Boolean(), nullable=False),
        sa.Column('expense_id', sa.Integer(), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['bill_id'], ['bills.id'], ondelete='CASCADE'),
    )
    op.create_index('ix_bill_items_id', 'bill_items', ['id'])
    op.create_index('ix_bill_items_bill_id', 'bill_items', ['bill_id'])

    # Finder fees
    op.create_table(
        'finder_fees',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('bill_id', sa.Integer(), nullable=False),
        sa.Column('client_finder_id', sa.Integer(), nullable=False),
        sa.Column('client_id', sa.Integer(), nullable=False),
        sa.Column('finder_id', sa.Integer(), nullable=False),
        sa.Column('invoice_net_amount', MONEY, nullable=False),
        sa.Column('finder_fee_percent', PERCENT, nullable=False),
        sa.Column('finder_fee_amount', MONEY, nullable=False),
        sa.Column('paid_amount', MONEY, nullable=False),
        sa.Column('remaining_amount', MONEY, nullable=False),
        sa.Column('status', finder_fee_status, nullable=False),
        sa.Column('earned_at', sa.DateTime(), nullable=True),
        sa.Column('paid_at', sa.DateTime(), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['bill_id'], ['bills.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['client_finder_id'], ['client_finders.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['client_id'], ['clients.id']),
        sa.ForeignKeyConstraint(['finder_id'], ['users.id']),
        sa.UniqueConstraint('bill_id', 'client_finder_id', name='uq_finder_fees_bill_finder'),
    )
    op.create_index('ix_finder_fees_id', 'finder_fees', ['id'])
    op.create_index('ix_finder_fees_bill_id', 'finder_fees', ['bill_id'])
    op.create_index('ix_finder_fees_client_id', 'finder_fees', ['client_id'])
    op.create_index('ix_finder_fees_finder_id', 'finder_fees', ['finder_id'])
    op.create_index('ix_finder_fees_status', 'finder_fees', ['status'])

    op.create_table(
        'finder_fee_payments',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('finder_fee_id', sa.Integer(), nullable=False),
        sa.Column('amount', MONEY, nullable=False),
        sa.Column('payment_date', sa.Date(), nullable=False),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('paid_by', sa.Integer(), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
        sa.ForeignKeyConstraint(['finder_fee_id'], ['finder_fees.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['paid_by'], ['users.id']),
    )
    op.create_index('ix_finder_fee_payments_id', 'finder_fee_payments', ['id'])
    op.create_index('ix_finder_fee_payments_finder_fee_id', 'finder_fee_payments', ['finder_fee_id'])


def downgrade() -> None:
    """Drop every billing table and enum type, dependents first."""
    for table in (
        'finder_fee_payments',
        'finder_fees',
        'bill_items',
        'bills',
        'payment_terms',
        'proposal_item_milestones',
        'milestones',
        'proposal_items',
        'proposals',
        'client_finders',
        'leads',
        'clients',
        'users',
    ):
        op.drop_table(table)

    bind = op.get_bind()
    for enum_type in (
        finder_fee_status,
        bill_status,
        installment_frequency,
        installment_type,
        recurring_frequency,
        balance_payment_type,
        upfront_type,
        billing_method,
        proposal_status,
        proposal_type,
        profile_tier,
    ):
        enum_type.drop(bind, checkfirst=True)
