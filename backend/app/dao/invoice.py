"""
Bill (invoice) Data Access Object (DAO).

WHAT: Database operations for the Bill model.

WHY: The DAO pattern:
1. Separates data access from business logic
2. Provides a consistent API for bill operations
3. Encapsulates the queries used by numbering and the finder-fee sweep

HOW: Extends BaseDAO with bill-specific queries:
- Bill + items loading
- Last-number lookup for year-scoped numbering
- Paid bills that have not produced finder fees yet
"""

from typing import List, Optional

from sqlalchemy import exists, func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from app.dao.base import BaseDAO
from app.models.client import ClientFinder
from app.models.finder_fee import FinderFee
from app.models.invoice import Bill, BillStatus


class BillDAO(BaseDAO[Bill]):
    """
    Data Access Object for Bill model.

    HOW: Extends BaseDAO with bill-specific methods.
    """

    def __init__(self, session: AsyncSession):
        """
        Initialize BillDAO.

        Args:
            session: Async database session
        """
        super().__init__(Bill, session)

    async def get_with_items(self, bill_id: int) -> Optional[Bill]:
        """
        Get a bill with its line items loaded.

        WHY: Net-amount computation sums item amounts; under AsyncSession
        the items must be loaded eagerly.

        Args:
            bill_id: Bill ID

        Returns:
            Bill if found and not deleted, None otherwise
        """
        result = await self.session.execute(
            self._select()
            .where(Bill.id == bill_id)
            .options(selectinload(Bill.items))
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def get_by_invoice_number(self, invoice_number: str) -> Optional[Bill]:
        """
        Get a bill by its invoice number.

        Args:
            invoice_number: The invoice number (e.g., INV-2025-001)

        Returns:
            Bill if found, None otherwise
        """
        result = await self.session.execute(
            self._select().where(Bill.invoice_number == invoice_number)
        )
        return result.scalar_one_or_none()

    async def get_by_proposal(self, proposal_id: int) -> List[Bill]:
        result = await self.session.execute(
            self._select().where(Bill.proposal_id == proposal_id).order_by(Bill.id)
        )
        return list(result.scalars().all())

    async def get_last_number_with_prefix(self, prefix: str) -> Optional[str]:
        """
        Get the highest invoice number starting with prefix.

        Deleted bills are included because their numbers stay taken. Longer
        numbers sort first so the sequence continues past 999.

        Args:
            prefix: e.g. "INV-2025-"

        Returns:
            The last number, or None when the year has no bills yet
        """
        result = await self.session.execute(
            select(Bill.invoice_number)
            .where(Bill.invoice_number.like(f"{prefix}%"))
            .order_by(func.length(Bill.invoice_number).desc(), Bill.invoice_number.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def get_paid_without_finder_fees(
        self, limit: int = 100, after_id: Optional[int] = None
    ) -> List[int]:
        """
        Get ids of paid client bills that have no finder fees yet.

        WHAT: Candidate list for the background finder-fee sweep.

        WHY: Bills marked paid outside the API (imports, direct SQL) never
        went through the mark-paid path. Only bills whose client has at
        least one finder with a positive percent are returned.

        Bills that never produce fees (nothing left to share after discounts
        and reimbursements) stay candidates, so callers page through them
        with ``after_id`` instead of re-reading the first page.

        Args:
            limit: Maximum number of ids returned
            after_id: Only return ids greater than this one

        Returns:
            Bill ids in ascending order
        """
        query = select(Bill.id).where(
            Bill.deleted_at.is_(None),
            Bill.status == BillStatus.PAID,
            Bill.client_id.is_not(None),
            ~exists().where(FinderFee.bill_id == Bill.id),
            exists().where(
                ClientFinder.client_id == Bill.client_id,
                ClientFinder.finder_fee_percent > 0,
            ),
        )
        if after_id is not None:
            query = query.where(Bill.id > after_id)

        result = await self.session.execute(query.order_by(Bill.id).limit(limit))
        return list(result.scalars().all())
