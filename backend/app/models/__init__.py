"""
Database models package.

WHY: Centralizing model imports ensures Alembic can discover all models
for migration generation and makes it easier to import models elsewhere.
"""

from app.models.base import Base, TimestampMixin, SoftDeleteMixin
from app.models.user import User, ProfileTier
from app.models.client import Client, Lead, ClientFinder
from app.models.proposal import (
    Proposal,
    ProposalItem,
    Milestone,
    ProposalType,
    ProposalStatus,
    BillingMethod,
    HourlyRateTableType,
    proposal_item_milestones,
)
from app.models.payment_term import (
    PaymentTerm,
    PaymentStructure,
    UpfrontType,
    BalancePaymentType,
    RecurringFrequency,
    InstallmentType,
    InstallmentFrequency,
)
from app.models.invoice import Bill, BillItem, BillStatus
from app.models.finder_fee import FinderFee, FinderFeePayment, FinderFeeStatus

__all__ = [
    "Base",
    "TimestampMixin",
    "SoftDeleteMixin",
    "User",
    "ProfileTier",
    "Client",
    "Lead",
    "ClientFinder",
    "Proposal",
    "ProposalItem",
    "Milestone",
    "ProposalType",
    "ProposalStatus",
    "BillingMethod",
    "HourlyRateTableType",
    "proposal_item_milestones",
    "PaymentTerm",
    "PaymentStructure",
    "UpfrontType",
    "BalancePaymentType",
    "RecurringFrequency",
    "InstallmentType",
    "InstallmentFrequency",
    "Bill",
    "BillItem",
    "BillStatus",
    "FinderFee",
    "FinderFeePayment",
    "FinderFeeStatus",
]
