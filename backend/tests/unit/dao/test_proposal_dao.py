"""
Unit tests for Proposal DAO.

WHAT: Tests for ProposalDAO database operations.

WHY: Verifies that:
1. The whole proposal graph loads eagerly
2. Soft-deleted proposals are hidden from reads but keep their number
3. Listing filters and paginates correctly
4. Items and terms are replaced without touching milestones

HOW: Uses pytest-asyncio with in-memory SQLite database for isolation.
"""

import pytest

from app.dao.proposal import ProposalDAO
from app.models.proposal import ProposalStatus
from tests.factories import ProposalFactory


class TestProposalDAORead:
    """Tests for loading proposals."""

    @pytest.mark.asyncio
    async def test_get_with_details(self, db_session, test_client):
        created = await ProposalFactory.create(
            db_session,
            client=test_client,
            milestones=[{"id": "temp-1", "name": "Signing"}],
            items=[{"description": "Deal", "amount": "1000", "milestone_ids": ["temp-1"]}],
            payment_term={"structure": "ONE_TIME"},
        )

        proposal = await ProposalDAO(db_session).get_with_details(created.id)

        assert proposal.items[0].description == "Deal"
        assert proposal.milestones[0].name == "Signing"
        assert proposal.milestones[0].items[0].id == proposal.items[0].id
        assert len(proposal.payment_terms) == 1

    @pytest.mark.asyncio
    async def test_get_with_details_not_found(self, db_session):
        assert await ProposalDAO(db_session).get_with_details(999) is None

    @pytest.mark.asyncio
    async def test_soft_deleted_hidden_but_number_kept(self, db_session, test_client):
        proposal = await ProposalFactory.create(
            db_session, client=test_client, proposal_number="2031-007"
        )
        dao = ProposalDAO(db_session)

        assert await dao.delete(proposal.id) is True

        assert await dao.get_with_details(proposal.id) is None
        assert await dao.number_exists("2031-007") is True
        assert await dao.get_last_number_with_prefix("2031-") == "2031-007"

    @pytest.mark.asyncio
    async def test_last_number_is_lexicographic(self, db_session, test_client):
        for number in ("2032-002", "2032-010", "2032-009"):
            await ProposalFactory.create(db_session, client=test_client, proposal_number=number)

        dao = ProposalDAO(db_session)
        assert await dao.get_last_number_with_prefix("2032-") == "2032-010"
        assert await dao.get_last_number_with_prefix("2033-") is None


class TestProposalDAOList:
    """Tests for listing proposals."""

    @pytest.mark.asyncio
    async def test_newest_first_with_pagination(self, db_session, test_client):
        created = [
            await ProposalFactory.create(db_session, client=test_client, title=f"P{i}")
            for i in range(3)
        ]
        dao = ProposalDAO(db_session)

        page = await dao.list_proposals(skip=1, limit=1)

        assert [p.id for p in page] == [created[1].id]

    @pytest.mark.asyncio
    async def test_status_filter(self, db_session, test_client):
        proposal = await ProposalFactory.create(db_session, client=test_client)
        proposal.status = ProposalStatus.APPROVED
        await db_session.flush()
        await ProposalFactory.create(db_session, client=test_client)

        approved = await ProposalDAO(db_session).list_proposals(status=ProposalStatus.APPROVED)

        assert [p.id for p in approved] == [proposal.id]


class TestProposalDAOChildren:
    """Tests for replacing children."""

    @pytest.mark.asyncio
    async def test_clear_items_and_terms_keeps_milestones(self, db_session, test_client):
        proposal = await ProposalFactory.create(
            db_session,
            client=test_client,
            milestones=[{"id": "temp-1", "name": "Signing"}],
            items=[{"description": "Deal", "amount": "1000", "milestone_ids": ["temp-1"]}],
            payment_term={"structure": "ONE_TIME"},
        )
        dao = ProposalDAO(db_session)

        await dao.clear_items_and_terms(proposal.id)
        reloaded = await dao.get_with_details(proposal.id)

        assert reloaded.items == []
        assert reloaded.payment_terms == []
        assert [m.name for m in reloaded.milestones] == ["Signing"]
        assert reloaded.milestones[0].items == []

    @pytest.mark.asyncio
    async def test_delete_milestones_except(self, db_session, test_client):
        proposal = await ProposalFactory.create(
            db_session,
            client=test_client,
            milestones=[{"id": "temp-1", "name": "Keep"}, {"id": "temp-2", "name": "Drop"}],
        )
        keep = next(m.id for m in proposal.milestones if m.name == "Keep")
        dao = ProposalDAO(db_session)

        await dao.delete_milestones_except(proposal.id, [keep])
        reloaded = await dao.get_with_details(proposal.id)

        assert [m.id for m in reloaded.milestones] == [keep]
