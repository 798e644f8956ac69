"""
Proposal Data Access Object (DAO).

WHAT: Database operations for the Proposal model and its children.

WHY: The DAO pattern:
1. Separates data access from business logic
2. Provides a consistent API for proposal operations
3. Encapsulates the eager-loading needed under AsyncSession

HOW: Extends BaseDAO with proposal-specific queries:
- Full graph loading (items, milestones, payment terms)
- Last-number lookup for year-scoped numbering
- Filtered listing
"""

from typing import Iterable, List, Optional, Tuple

from sqlalchemy import delete, func, insert, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from app.dao.base import BaseDAO
from app.models.payment_term import PaymentTerm
from app.models.proposal import (
    Milestone,
    Proposal,
    ProposalItem,
    ProposalStatus,
    proposal_item_milestones,
)


class ProposalDAO(BaseDAO[Proposal]):
    """
    Data Access Object for Proposal model.

    WHY: Lazy loading is not available under AsyncSession, so every read
    that returns a proposal to a caller that walks its children goes
    through :meth:`get_with_details`.
    """

    def __init__(self, session: AsyncSession):
        """
        Initialize ProposalDAO.

        Args:
            session: Async database session
        """
        super().__init__(Proposal, session)

    async def get_with_details(self, proposal_id: int) -> Optional[Proposal]:
        """
        Get a proposal with items, milestones and payment terms loaded.

        WHAT: Loads the whole proposal graph in a fixed number of queries.

        WHY: Pricing, editing and invoicing all walk the full graph, from
        either side of the item/milestone association. populate_existing
        refreshes objects already in the identity map after their children
        were replaced in the same session.

        Args:
            proposal_id: Proposal ID

        Returns:
            Proposal if found and not deleted, None otherwise
        """
        result = await self.session.execute(
            self._select()
            .where(Proposal.id == proposal_id)
            .options(
                selectinload(Proposal.items).selectinload(ProposalItem.milestones),
                selectinload(Proposal.milestones).selectinload(Milestone.items),
                selectinload(Proposal.payment_terms),
            )
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def get_last_number_with_prefix(self, prefix: str) -> Optional[str]:
        """
        Get the highest proposal number starting with prefix.

        WHY: Numbers are unique across deleted rows too, so the lookup
        ignores the soft-delete filter. Longer numbers sort first so that
        "2025-1000" follows "2025-999".

        Args:
            prefix: Year prefix, e.g. "2025-"

        Returns:
            The last number, or None when the year has no proposals yet
        """
        result = await self.session.execute(
            select(Proposal.proposal_number)
            .where(Proposal.proposal_number.like(f"{prefix}%"))
            .order_by(
                func.length(Proposal.proposal_number).desc(),
                Proposal.proposal_number.desc(),
            )
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def number_exists(self, proposal_number: str) -> bool:
        result = await self.session.execute(
            select(Proposal.id).where(Proposal.proposal_number == proposal_number).limit(1)
        )
        return result.scalar_one_or_none() is not None

    async def list_proposals(
        self,
        status: Optional[ProposalStatus] = None,
        client_id: Optional[int] = None,
        lead_id: Optional[int] = None,
        skip: int = 0,
        limit: int = 100,
    ) -> List[Proposal]:
        """
        List proposals, newest first.

        Args:
            status: Optional status filter
            client_id: Optional client filter
            lead_id: Optional lead filter
            skip: Pagination offset
            limit: Pagination limit

        Returns:
            Proposals with items loaded
        """
        query = self._select().options(selectinload(Proposal.items))
        if status is not None:
            query = query.where(Proposal.status == status)
        if client_id is not None:
            query = query.where(Proposal.client_id == client_id)
        if lead_id is not None:
            query = query.where(Proposal.lead_id == lead_id)

        result = await self.session.execute(
            query.order_by(Proposal.id.desc()).offset(skip).limit(limit)
        )
        return list(result.scalars().all())

    async def clear_items_and_terms(self, proposal_id: int) -> None:
        """
        Delete every line item, item/milestone link and payment term of a proposal.

        WHY: Items and terms are replaced wholesale on save. Statements run
        in dependency order (terms, links, items) so no foreign key is
        violated on backends that enforce them.

        Args:
            proposal_id: Proposal ID
        """
        item_ids = select(ProposalItem.id).where(ProposalItem.proposal_id == proposal_id)
        await self.session.execute(
            delete(PaymentTerm).where(PaymentTerm.proposal_id == proposal_id)
        )
        await self.session.execute(
            delete(proposal_item_milestones).where(
                proposal_item_milestones.c.proposal_item_id.in_(item_ids)
            )
        )
        await self.session.execute(
            delete(ProposalItem).where(ProposalItem.proposal_id == proposal_id)
        )

    async def delete_milestones_except(self, proposal_id: int, keep_ids: Iterable[int]) -> None:
        """
        Delete the proposal's milestones whose id is not in keep_ids.

        Call after :meth:`clear_items_and_terms`, which already removed
        every item link.
        """
        query = delete(Milestone).where(Milestone.proposal_id == proposal_id)
        keep = list(keep_ids)
        if keep:
            query = query.where(Milestone.id.not_in(keep))
        await self.session.execute(query)

    async def link_item_milestones(self, links: Iterable[Tuple[int, int]]) -> None:
        """
        Insert item/milestone association rows.

        Args:
            links: (proposal_item_id, milestone_id) pairs
        """
        rows = [{"proposal_item_id": i, "milestone_id": m} for i, m in links]
        if rows:
            await self.session.execute(insert(proposal_item_milestones), rows)
