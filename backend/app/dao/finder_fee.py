"""
Finder fee Data Access Objects.

WHAT: Database operations for FinderFee and FinderFeePayment.

WHY: The idempotence check of the finder-fee computation and the payout
listing both live here so the service stays free of query construction.
"""

from datetime import datetime
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from app.dao.base import BaseDAO
from app.models.finder_fee import FinderFee, FinderFeePayment, FinderFeeStatus


class FinderFeeDAO(BaseDAO[FinderFee]):
    """Data Access Object for FinderFee model."""

    def __init__(self, session: AsyncSession):
        super().__init__(FinderFee, session)

    async def exists_for_bill(self, bill_id: int) -> bool:
        """
        Check whether fees were already computed for a bill.

        Args:
            bill_id: Bill ID

        Returns:
            True if at least one FinderFee references the bill
        """
        result = await self.session.execute(
            select(FinderFee.id).where(FinderFee.bill_id == bill_id).limit(1)
        )
        return result.scalar_one_or_none() is not None

    async def get_by_bill(self, bill_id: int) -> List[FinderFee]:
        result = await self.session.execute(
            select(FinderFee).where(FinderFee.bill_id == bill_id).order_by(FinderFee.id)
        )
        return list(result.scalars().all())

    async def get_with_payments(self, fee_id: int) -> Optional[FinderFee]:
        """
        Get a fee with its payment history loaded.

        Args:
            fee_id: FinderFee ID

        Returns:
            FinderFee if found, None otherwise
        """
        result = await self.session.execute(
            select(FinderFee)
            .where(FinderFee.id == fee_id)
            .options(selectinload(FinderFee.payments))
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def get_for_finder(
        self,
        finder_id: Optional[int] = None,
        status: Optional[FinderFeeStatus] = None,
        client_id: Optional[int] = None,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        skip: int = 0,
        limit: int = 100,
    ) -> List[FinderFee]:
        """
        List fees, most recently earned first.

        WHAT: Payout report query.

        Args:
            finder_id: Restrict to one finder (None lists every finder)
            status: Optional status filter
            client_id: Optional client filter
            start: Earliest earned_at (inclusive)
            end: Latest earned_at (inclusive)
            skip: Pagination offset
            limit: Pagination limit

        Returns:
            Matching fees with payments loaded
        """
        query = select(FinderFee).options(selectinload(FinderFee.payments))
        if finder_id is not None:
            query = query.where(FinderFee.finder_id == finder_id)
        if status is not None:
            query = query.where(FinderFee.status == status)
        if client_id is not None:
            query = query.where(FinderFee.client_id == client_id)
        if start is not None:
            query = query.where(FinderFee.earned_at >= start)
        if end is not None:
            query = query.where(FinderFee.earned_at <= end)

        result = await self.session.execute(
            query.order_by(FinderFee.earned_at.desc(), FinderFee.id.desc())
            .offset(skip)
            .limit(limit)
        )
        return list(result.scalars().all())


class FinderFeePaymentDAO(BaseDAO[FinderFeePayment]):
    """Data Access Object for FinderFeePayment model."""

    def __init__(self, session: AsyncSession):
        super().__init__(FinderFeePayment, session)
