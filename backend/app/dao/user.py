"""
User Data Access Object.

WHY: UserDAO provides database operations for User model, following
the DAO pattern for separation of concerns and testability.
"""

from typing import Dict, Iterable

from sqlalchemy.ext.asyncio import AsyncSession

from app.dao.base import BaseDAO
from app.models.user import User


class UserDAO(BaseDAO[User]):
    """
    Data Access Object for User model.

    The billing services read users for two things: the default hourly rate
    that auto-fills HOURLY line items, and finder identity.
    """

    def __init__(self, session: AsyncSession):
        """Initialize UserDAO with session."""
        super().__init__(User, session)

    async def get_by_ids(self, ids: Iterable[int]) -> Dict[int, User]:
        """
        Load several users at once.

        WHY: Pricing a proposal needs the default rate of every person
        assigned to a line item; one IN query instead of one per item.

        Args:
            ids: User IDs (duplicates and None are ignored)

        Returns:
            Mapping of user id to User for the ids that exist
        """
        wanted = {i for i in ids if i is not None}
        if not wanted:
            return {}
        result = await self.session.execute(self._select().where(User.id.in_(wanted)))
        return {user.id: user for user in result.scalars().all()}
