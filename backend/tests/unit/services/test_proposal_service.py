"""
Unit tests for Proposal Service.

WHAT: Tests for quoting, creating and editing proposals.

WHY: Verifies that:
1. Stored totals match the pricing engine for every save
2. Person rates, blended rates and client default discounts are applied
3. Temporary milestone ids are resolved in items and payment terms
4. Payment terms are validated and normalized before they are stored
5. Only drafts can be edited, and leaving DRAFT needs payment terms

HOW: Uses pytest-asyncio with the SQLite test database.
"""

from datetime import date
from decimal import Decimal

import pytest

from app.core.exceptions import (
    BusinessRuleViolation,
    ClientNotFoundError,
    LeadNotFoundError,
    ProposalNotFoundError,
    ResourceAlreadyExistsError,
    ValidationError,
)
from app.models.payment_term import PaymentStructure
from app.models.proposal import BillingMethod, HourlyRateTableType, ProposalStatus
from app.models.user import ProfileTier
from app.schemas.proposal import ProposalCreate, ProposalQuoteRequest, ProposalUpdate
from app.services.milestones import MSG_NO_MILESTONES
from app.services.payment_terms import detect_structure
from app.services.pricing import SubtotalPolicy
from app.services.proposal_service import MSG_TERM_REQUIRED, ProposalService
from tests.factories import ClientFactory, ProposalFactory, UserFactory


def hourly_payload(client, person, **extra) -> dict:
    payload = {
        "title": "Contract review",
        "type": "HOURLY",
        "client_id": client.id,
        "items": [{"description": "Review", "person_id": person.id, "quantity": "5"}],
    }
    payload.update(extra)
    return payload


class TestQuote:
    @pytest.mark.asyncio
    async def test_quote_exclusive_tax(self, db_session, test_client, test_person):
        data = ProposalQuoteRequest(
            **hourly_payload(
                test_client,
                test_person,
                client_discount_percent="10",
                tax_rate="23",
            )
        )

        quote = await ProposalService(db_session).quote(data)

        assert quote["items"][0]["amount"] == Decimal("900.00")
        assert quote["subtotal"] == Decimal("900.00")
        assert quote["client_discount"] == Decimal("90.00")
        assert quote["after_discount"] == Decimal("810.00")
        assert quote["tax"] == Decimal("186.30")
        assert quote["grand_total"] == Decimal("996.30")

    @pytest.mark.asyncio
    async def test_quote_inclusive_tax(self, db_session, test_client, test_person):
        data = ProposalQuoteRequest(
            **hourly_payload(
                test_client,
                test_person,
                client_discount_percent="10",
                tax_rate="23",
                tax_inclusive=True,
            )
        )

        quote = await ProposalService(db_session).quote(data)

        assert quote["tax"] == Decimal("151.46")
        assert quote["grand_total"] == Decimal("810.00")

    @pytest.mark.asyncio
    async def test_quote_uses_client_default_discount(self, db_session, test_person):
        client = await ClientFactory.create(
            db_session, name="Loyal", default_discount_percent=Decimal("5")
        )
        data = ProposalQuoteRequest(**hourly_payload(client, test_person))

        quote = await ProposalService(db_session).quote(data)

        assert quote["client_discount"] == Decimal("45.00")
        assert quote["grand_total"] == Decimal("855.00")

    @pytest.mark.asyncio
    async def test_quote_subtotal_policy_override(self, db_session, test_client):
        data = ProposalQuoteRequest(
            type="FIXED_FEE",
            client_id=test_client.id,
            subtotal_policy=SubtotalPolicy.GROSS_ITEM_AMOUNTS,
            items=[{"description": "Phase", "amount": "1000", "discount_percent": "10"}],
        )

        quote = await ProposalService(db_session).quote(data)

        assert quote["subtotal"] == Decimal("1000.00")
        assert quote["item_discount_total"] == Decimal("100.00")
        assert quote["grand_total"] == Decimal("1000.00")

    @pytest.mark.asyncio
    async def test_quote_unknown_person(self, db_session, test_client):
        data = ProposalQuoteRequest(
            type="HOURLY",
            client_id=test_client.id,
            items=[{"description": "Review", "person_id": 999, "quantity": "1"}],
        )
        with pytest.raises(ValidationError) as exc_info:
            await ProposalService(db_session).quote(data)
        assert exc_info.value.context["errors"]["items.0.person_id"] == "Unknown person"

    @pytest.mark.asyncio
    async def test_quote_unknown_client(self, db_session):
        data = ProposalQuoteRequest(type="FIXED_FEE", client_id=999)
        with pytest.raises(ClientNotFoundError):
            await ProposalService(db_session).quote(data)

    @pytest.mark.asyncio
    async def test_quote_success_fee_estimate(self, db_session):
        data = ProposalQuoteRequest(
            type="SUCCESS_FEE",
            success_fee_percent="5",
            success_fee_value="200000",
        )
        quote = await ProposalService(db_session).quote(data)
        assert quote["success_fee_estimate"] == Decimal("10000.00")


class TestCreate:
    @pytest.mark.asyncio
    async def test_create_hourly_proposal(self, db_session, test_client, test_person):
        data = ProposalCreate(
            **hourly_payload(test_client, test_person, client_discount_percent="10", tax_rate="23")
        )

        proposal = await ProposalService(db_session).create(data)

        assert proposal.id is not None
        assert proposal.status == ProposalStatus.DRAFT
        assert proposal.proposal_number[4] == "-"
        assert proposal.currency == "EUR"
        assert proposal.subtotal == Decimal("900.00")
        assert proposal.discount_total == Decimal("90.00")
        assert proposal.tax_amount == Decimal("186.30")
        assert proposal.amount == Decimal("996.30")
        item = proposal.items[0]
        assert item.billing_method == BillingMethod.HOURLY
        assert item.rate == Decimal("180.00")
        assert item.person_id == test_person.id

    @pytest.mark.asyncio
    async def test_explicit_rate_not_overwritten_by_person_rate(
        self, db_session, test_client, test_person
    ):
        payload = hourly_payload(test_client, test_person)
        payload["items"][0]["rate"] = "200"

        proposal = await ProposalService(db_session).create(ProposalCreate(**payload))

        assert proposal.items[0].amount == Decimal("1000.00")

    @pytest.mark.asyncio
    async def test_blended_rate_wins(self, db_session, test_client, test_person):
        data = ProposalCreate(
            **hourly_payload(
                test_client, test_person, use_blended_rate=True, blended_rate="100"
            )
        )
        proposal = await ProposalService(db_session).create(data)

        assert proposal.items[0].rate == Decimal("100.00")
        assert proposal.amount == Decimal("500.00")

    @pytest.mark.asyncio
    async def test_rate_table_for_profile_tier(self, db_session, test_client):
        senior = await UserFactory.create(
            db_session,
            name="Sam Senior",
            default_hourly_rate=Decimal("180"),
            profile_tier=ProfileTier.SENIOR,
        )
        data = ProposalCreate(
            **hourly_payload(
                test_client,
                senior,
                hourly_rate_table_type="HOURLY_TABLE",
                hourly_rate_table_rates={"SENIOR": "250", "JUNIOR": "90"},
            )
        )

        proposal = await ProposalService(db_session).create(data)

        assert proposal.items[0].rate == Decimal("250.00")
        assert proposal.items[0].amount == Decimal("1250.00")
        assert proposal.hourly_rate_table_type == HourlyRateTableType.HOURLY_TABLE
        assert proposal.hourly_rate_table_rates == {"SENIOR": "250", "JUNIOR": "90"}

    @pytest.mark.asyncio
    async def test_rate_range_average(self, db_session, test_client, test_person):
        data = ProposalQuoteRequest(
            **hourly_payload(
                test_client,
                test_person,
                hourly_rate_table_type="RATE_RANGE",
                hourly_rate_range_min="200",
                hourly_rate_range_max="260",
            )
        )

        quote = await ProposalService(db_session).quote(data)

        assert quote["items"][0]["amount"] == Decimal("1150.00")

    @pytest.mark.asyncio
    async def test_tier_missing_from_table_keeps_person_rate(
        self, db_session, test_client, test_person
    ):
        data = ProposalQuoteRequest(
            **hourly_payload(
                test_client,
                test_person,
                hourly_rate_table_type="HOURLY_TABLE",
                hourly_rate_table_rates={"PARTNER": "400"},
            )
        )

        quote = await ProposalService(db_session).quote(data)

        assert quote["items"][0]["amount"] == Decimal("900.00")

    @pytest.mark.asyncio
    async def test_item_discount_above_amount_rejected(self, db_session, test_client):
        data = ProposalCreate(
            title="Audit",
            type="FIXED_FEE",
            client_id=test_client.id,
            items=[{"description": "Audit", "amount": "500", "discount_amount": "600"}],
        )

        with pytest.raises(ValidationError) as exc_info:
            await ProposalService(db_session).create(data)

        errors = exc_info.value.context["errors"]
        assert errors["items.0.discount_amount"] == "Discount cannot exceed the item amount"

    @pytest.mark.asyncio
    async def test_create_for_lead(self, db_session, test_lead):
        proposal = await ProposalFactory.create(db_session, lead=test_lead)
        assert proposal.lead_id == test_lead.id
        assert proposal.client_id is None

    @pytest.mark.asyncio
    async def test_unknown_lead(self, db_session):
        data = ProposalCreate(title="X", type="FIXED_FEE", lead_id=999)
        with pytest.raises(LeadNotFoundError):
            await ProposalService(db_session).create(data)

    @pytest.mark.asyncio
    async def test_sequential_numbers(self, db_session, test_client):
        first = await ProposalFactory.create(db_session, client=test_client)
        second = await ProposalFactory.create(db_session, client=test_client)

        assert int(second.proposal_number[-3:]) == int(first.proposal_number[-3:]) + 1

    @pytest.mark.asyncio
    async def test_duplicate_explicit_number(self, db_session, test_client):
        await ProposalFactory.create(db_session, client=test_client, proposal_number="2025-010")
        with pytest.raises(ResourceAlreadyExistsError):
            await ProposalFactory.create(
                db_session, client=test_client, proposal_number="2025-010"
            )

    @pytest.mark.asyncio
    async def test_milestones_with_temporary_ids(self, db_session, test_client):
        """Items and the payment term point at milestones that don't exist yet."""
        data = ProposalCreate(
            title="Fixed fee with milestones",
            type="FIXED_FEE",
            client_id=test_client.id,
            use_milestones=True,
            milestones=[
                {"id": "temp-a", "name": "Draft", "percent": "40"},
                {"id": "temp-b", "name": "Final", "percent": "60"},
            ],
            items=[{"description": "Deal", "amount": "5000", "milestone_ids": ["temp-a", "temp-b"]}],
            payment_term={
                "structure": "INSTALLMENTS",
                "installment_type": "MILESTONE_BASED",
                "milestone_ids": ["temp-b"],
            },
        )

        proposal = await ProposalService(db_session).create(data)

        ids = {m.name: m.id for m in proposal.milestones}
        assert sorted(m.id for m in proposal.items[0].milestones) == sorted(ids.values())
        term = proposal.proposal_level_term
        assert term.milestone_ids == [ids["Final"]]
        assert detect_structure(term) == PaymentStructure.INSTALLMENTS

    @pytest.mark.asyncio
    async def test_milestones_required_when_enabled(self, db_session, test_client):
        data = ProposalCreate(
            title="No milestones",
            type="FIXED_FEE",
            client_id=test_client.id,
            use_milestones=True,
            items=[{"description": "Deal", "amount": "5000"}],
        )
        with pytest.raises(ValidationError) as exc_info:
            await ProposalService(db_session).create(data)
        assert exc_info.value.context["errors"]["milestones"] == MSG_NO_MILESTONES

    @pytest.mark.asyncio
    async def test_invalid_payment_term(self, db_session, test_client):
        data = ProposalCreate(
            title="Upfront",
            type="FIXED_FEE",
            client_id=test_client.id,
            items=[{"description": "Deal", "amount": "5000"}],
            payment_term={
                "structure": "UPFRONT_BALANCE",
                "upfront_type": "PERCENT",
                "upfront_value": "150",
                "balance_payment_type": "FULL_UPFRONT",
            },
        )
        with pytest.raises(ValidationError) as exc_info:
            await ProposalService(db_session).create(data)
        assert (
            exc_info.value.context["errors"]["payment_term.upfront_value"]
            == "Percentage cannot exceed 100%"
        )

    @pytest.mark.asyncio
    async def test_item_level_payment_term(self, db_session, test_client):
        data = ProposalCreate(
            title="Retainer",
            type="RETAINER",
            client_id=test_client.id,
            items=[
                {
                    "description": "Monthly retainer",
                    "amount": "2000",
                    "payment_term": {
                        "structure": "RECURRING",
                        "recurring_enabled": True,
                        "recurring_frequency": "MONTHLY_1",
                        "recurring_start_date": "2025-01-01",
                    },
                }
            ],
        )

        proposal = await ProposalService(db_session).create(data)

        assert proposal.proposal_level_term is None
        term = proposal.payment_terms[0]
        assert term.proposal_item_id == proposal.items[0].id
        assert detect_structure(term) == PaymentStructure.RECURRING


class TestUpdate:
    @pytest.mark.asyncio
    async def test_update_reprices(self, db_session, test_client, test_person):
        proposal = await ProposalService(db_session).create(
            ProposalCreate(**hourly_payload(test_client, test_person))
        )
        payload = hourly_payload(test_client, test_person)
        payload["items"][0]["quantity"] = "10"

        updated = await ProposalService(db_session).update(proposal.id, ProposalUpdate(**payload))

        assert updated.amount == Decimal("1800.00")
        assert len(updated.items) == 1

    @pytest.mark.asyncio
    async def test_one_time_after_recurring_clears_recurring_fields(
        self, db_session, test_client
    ):
        proposal = await ProposalFactory.create(
            db_session,
            client=test_client,
            payment_term={
                "structure": "RECURRING",
                "recurring_enabled": True,
                "recurring_frequency": "MONTHLY_3",
                "recurring_start_date": "2025-01-01",
            },
        )
        assert detect_structure(proposal.proposal_level_term) == PaymentStructure.RECURRING

        updated = await ProposalService(db_session).update(
            proposal.id,
            ProposalUpdate(
                title=proposal.title,
                type="RETAINER",
                client_id=test_client.id,
                items=[{"description": "Retainer", "amount": "1000"}],
                payment_term={
                    "structure": "ONE_TIME",
                    "recurring_frequency": "MONTHLY_3",
                    "recurring_start_date": "2025-01-01",
                    "balance_due_date": "2025-06-30",
                },
            ),
        )

        term = updated.proposal_level_term
        assert detect_structure(term) == PaymentStructure.ONE_TIME
        assert term.recurring_enabled is False
        assert term.recurring_frequency is None
        assert term.recurring_start_date is None
        assert term.balance_due_date == date(2025, 6, 30)

    @pytest.mark.asyncio
    async def test_existing_milestone_keeps_id(self, db_session, test_client):
        proposal = await ProposalFactory.create(
            db_session,
            client=test_client,
            milestones=[{"id": "temp-1", "name": "Start"}, {"id": "temp-2", "name": "End"}],
        )
        start = next(m for m in proposal.milestones if m.name == "Start")

        updated = await ProposalService(db_session).update(
            proposal.id,
            ProposalUpdate(
                title=proposal.title,
                type="FIXED_FEE",
                client_id=test_client.id,
                milestones=[{"id": start.id, "name": "Kick-off"}, {"id": "temp-3", "name": "Close"}],
                items=[{"description": "Deal", "amount": "100", "milestone_ids": [start.id]}],
            ),
        )

        names = {m.id: m.name for m in updated.milestones}
        assert names[start.id] == "Kick-off"
        assert sorted(names.values()) == ["Close", "Kick-off"]
        assert [m.id for m in updated.items[0].milestones] == [start.id]

    @pytest.mark.asyncio
    async def test_leaving_draft_requires_payment_term(self, db_session, test_client):
        proposal = await ProposalFactory.create(db_session, client=test_client)

        with pytest.raises(ValidationError) as exc_info:
            await ProposalService(db_session).update(
                proposal.id,
                ProposalUpdate(
                    title=proposal.title,
                    type="FIXED_FEE",
                    client_id=test_client.id,
                    status=ProposalStatus.SUBMITTED,
                ),
            )
        assert exc_info.value.context["errors"]["payment_term"] == MSG_TERM_REQUIRED

    @pytest.mark.asyncio
    async def test_submitted_proposal_is_read_only(self, db_session, test_client):
        proposal = await ProposalFactory.create(db_session, client=test_client)
        service = ProposalService(db_session)
        submit = ProposalUpdate(
            title=proposal.title,
            type="FIXED_FEE",
            client_id=test_client.id,
            status=ProposalStatus.SUBMITTED,
            payment_term={"structure": "ONE_TIME"},
        )
        await service.update(proposal.id, submit)

        with pytest.raises(BusinessRuleViolation):
            await service.update(proposal.id, submit)

    @pytest.mark.asyncio
    async def test_update_unknown_proposal(self, db_session, test_client):
        data = ProposalUpdate(title="X", type="FIXED_FEE", client_id=test_client.id)
        with pytest.raises(ProposalNotFoundError):
            await ProposalService(db_session).update(999, data)


class TestList:
    @pytest.mark.asyncio
    async def test_filters(self, db_session, test_client, test_lead):
        await ProposalFactory.create(db_session, client=test_client)
        await ProposalFactory.create(db_session, lead=test_lead)
        service = ProposalService(db_session)

        assert len(await service.list_proposals()) == 2
        assert len(await service.list_proposals(client_id=test_client.id)) == 1
        assert len(await service.list_proposals(lead_id=test_lead.id)) == 1
        assert await service.list_proposals(status=ProposalStatus.APPROVED) == []
