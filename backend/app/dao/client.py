"""
Client, Lead and ClientFinder Data Access Objects.

WHY: Proposals and bills reference their recipient by id; the services only
need existence checks, the client's default discount and the client's
referral rows.
"""

from typing import List

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.dao.base import BaseDAO
from app.models.client import Client, ClientFinder, Lead


class ClientDAO(BaseDAO[Client]):
    """Data Access Object for Client model."""

    def __init__(self, session: AsyncSession):
        super().__init__(Client, session)


class LeadDAO(BaseDAO[Lead]):
    """Data Access Object for Lead model."""

    def __init__(self, session: AsyncSession):
        super().__init__(Lead, session)


class ClientFinderDAO(BaseDAO[ClientFinder]):
    """
    Data Access Object for ClientFinder model.

    WHY: Finder-fee computation reads every referral row of the paid bill's
    client in a single query.
    """

    def __init__(self, session: AsyncSession):
        super().__init__(ClientFinder, session)

    async def get_by_client(self, client_id: int) -> List[ClientFinder]:
        """
        Get all referral rows of a client.

        Args:
            client_id: Client ID

        Returns:
            ClientFinder rows ordered by id (possibly empty)
        """
        result = await self.session.execute(
            select(ClientFinder)
            .where(ClientFinder.client_id == client_id)
            .order_by(ClientFinder.id)
        )
        return list(result.scalars().all())
