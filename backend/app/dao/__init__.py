"""
Data Access Object (DAO) package.

WHY: DAOs provide a clean separation between database operations and business logic,
making the codebase more testable and maintainable.
"""

from app.dao.base import BaseDAO
from app.dao.user import UserDAO
from app.dao.client import ClientDAO, LeadDAO, ClientFinderDAO
from app.dao.proposal import ProposalDAO
from app.dao.invoice import BillDAO
from app.dao.finder_fee import FinderFeeDAO, FinderFeePaymentDAO

__all__ = [
    "BaseDAO",
    "UserDAO",
    "ClientDAO",
    "LeadDAO",
    "ClientFinderDAO",
    "ProposalDAO",
    "BillDAO",
    "FinderFeeDAO",
    "FinderFeePaymentDAO",
]
