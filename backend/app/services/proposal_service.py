"""
Proposal Service.

WHAT: Business logic for pricing, creating and editing proposals.

WHY: The service layer:
1. Runs the pricing engine, milestone allocator and payment-terms engine
   over a submitted proposal and collects every validation failure
2. Persists the proposal, its items, milestones and terms together
3. Keeps the stored totals a snapshot of the latest save

HOW: Pure engine functions do the computing; this class turns their
``(valid, errors)`` results into one ValidationError and drives the DAOs.
It flushes but never commits.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.exceptions import (
    BusinessRuleViolation,
    ClientNotFoundError,
    LeadNotFoundError,
    ProposalNotFoundError,
    ResourceAlreadyExistsError,
    ValidationError,
)
from app.dao.client import ClientDAO, LeadDAO
from app.dao.proposal import ProposalDAO
from app.dao.user import UserDAO
from app.models.client import Client
from app.models.payment_term import PaymentTerm
from app.models.proposal import Milestone, Proposal, ProposalItem, ProposalStatus
from app.schemas.payment_term import PaymentTermInput
from app.schemas.proposal import (
    LineItemInput,
    PricingInput,
    ProposalCreate,
    ProposalQuoteRequest,
    ProposalUpdate,
)
from app.services.milestones import MilestoneAllocator, MilestoneDraft, MilestoneId
from app.services.numbering import create_with_unique_number, generate_proposal_number
from app.services.payment_terms import PaymentTermValues, commit_payment_term
from app.services.pricing import (
    Discount,
    LineItem,
    PricingConfig,
    ProposalTotals,
    SubtotalPolicy,
    apply_person_rate,
    capped_ceiling,
    compute_totals,
    discount_fields,
    discount_from_fields,
    effective_amount,
    item_discount_value,
    rate_table_from,
    recalculate_item,
    success_fee_estimate,
    validate_line_item,
)


logger = logging.getLogger(__name__)

MSG_TERM_REQUIRED = "Payment terms are required before the proposal can be submitted"


@dataclass
class PricedProposal:
    """Outcome of running the engines over a submitted proposal."""

    config: PricingConfig
    items: List[LineItem]
    allocator: MilestoneAllocator
    totals: ProposalTotals
    errors: Dict[str, str] = field(default_factory=dict)
    payment_term: Optional[PaymentTermValues] = None
    item_terms: Dict[int, PaymentTermValues] = field(default_factory=dict)


def client_default_discount(client: Optional[Client]) -> Optional[Discount]:
    """A client's default discount; the percent wins if both are set."""
    if client is None:
        return None
    if client.default_discount_percent is not None:
        return discount_from_fields(client.default_discount_percent, None)
    if client.default_discount_amount is not None:
        return discount_from_fields(None, client.default_discount_amount)
    return None


def _prefixed(prefix: str, errors: Dict[str, str]) -> Dict[str, str]:
    return {f"{prefix}.{name}": message for name, message in errors.items()}


class ProposalService:
    """
    Service for proposal operations.

    HOW: Coordinates ProposalDAO, ClientDAO, LeadDAO and UserDAO with the
    pricing, milestone and payment-terms engines.
    """

    def __init__(self, session: AsyncSession):
        """
        Initialize ProposalService.

        Args:
            session: Async database session
        """
        self.session = session
        self.proposal_dao = ProposalDAO(session)
        self.client_dao = ClientDAO(session)
        self.lead_dao = LeadDAO(session)
        self.user_dao = UserDAO(session)

    # ------------------------------------------------------------------
    # Pricing
    # ------------------------------------------------------------------

    async def _resolve_recipient(
        self, client_id: Optional[int], lead_id: Optional[int]
    ) -> Optional[Client]:
        """
        Check the recipient exists.

        Raises:
            ClientNotFoundError / LeadNotFoundError
        """
        if client_id is not None:
            client = await self.client_dao.get_by_id(client_id)
            if client is None:
                raise ClientNotFoundError(client_id=client_id)
            return client
        if lead_id is not None and await self.lead_dao.get_by_id(lead_id) is None:
            raise LeadNotFoundError(lead_id=lead_id)
        return None

    def _pricing_config(
        self,
        data: PricingInput,
        client: Optional[Client],
        subtotal_policy: Optional[SubtotalPolicy] = None,
    ) -> PricingConfig:
        explicit = discount_from_fields(data.client_discount_percent, data.client_discount_amount)
        return PricingConfig(
            proposal_type=data.type,
            use_blended_rate=data.use_blended_rate,
            blended_rate=data.blended_rate,
            hourly_rate_table_type=data.hourly_rate_table_type,
            hourly_rate_table=rate_table_from(data.hourly_rate_table_rates),
            hourly_rate_range_min=data.hourly_rate_range_min,
            hourly_rate_range_max=data.hourly_rate_range_max,
            client_discount=explicit if explicit is not None else client_default_discount(client),
            tax_rate=data.tax_rate,
            tax_inclusive=data.tax_inclusive,
            subtotal_policy=subtotal_policy or SubtotalPolicy(settings.SUBTOTAL_POLICY),
        )

    @staticmethod
    def _line_item(data: LineItemInput) -> LineItem:
        return LineItem(
            billing_method=data.billing_method,
            description=data.description,
            quantity=data.quantity,
            rate=data.rate,
            unit_price=data.unit_price,
            amount=data.amount,
            discount=discount_from_fields(data.discount_percent, data.discount_amount),
            person_id=data.person_id,
            is_estimate=data.is_estimate,
            is_capped=data.is_capped,
            capped_hours=data.capped_hours,
            capped_amount=data.capped_amount,
            expense_id=data.expense_id,
        )

    async def price(
        self,
        data: PricingInput,
        client: Optional[Client] = None,
        subtotal_policy: Optional[SubtotalPolicy] = None,
    ) -> PricedProposal:
        """
        Run the pricing engine and milestone validation over a submission.

        An item with a person but no rate gets the person's rate on this
        proposal (see ``resolve_person_rate``); the blended rate, when
        enabled, overrides every HOURLY rate.

        Returns:
            PricedProposal; ``errors`` is empty when everything is valid
        """
        config = self._pricing_config(data, client, subtotal_policy)
        people = await self.user_dao.get_by_ids(i.person_id for i in data.items)

        allocator = MilestoneAllocator(use_milestones=data.use_milestones)
        for milestone in data.milestones:
            allocator.add_milestone(
                name=milestone.name,
                description=milestone.description,
                amount=milestone.amount,
                percent=milestone.percent,
                due_date=milestone.due_date,
                milestone_id=milestone.id,
            )

        errors: Dict[str, str] = {}
        items: List[LineItem] = []
        for index, item_data in enumerate(data.items):
            item = self._line_item(item_data)
            person = people.get(item.person_id) if item.person_id is not None else None
            if item_data.person_id is not None and person is None:
                errors[f"items.{index}.person_id"] = "Unknown person"
            if person is not None and item.rate is None:
                apply_person_rate(
                    item, person.id, person.default_hourly_rate, config, person.profile_tier
                )
            else:
                recalculate_item(item, config)
            allocator.assign_milestones(item, item_data.milestone_ids)

            valid, item_errors = validate_line_item(item, data.type)
            if not valid:
                errors.update(_prefixed(f"items.{index}", item_errors))
            items.append(item)

        valid, milestone_errors = allocator.validate(data.type)
        if not valid:
            errors.update(milestone_errors)

        return PricedProposal(
            config=config,
            items=items,
            allocator=allocator,
            totals=compute_totals(items, config),
            errors=errors,
        )

    def _commit_terms(self, data: ProposalCreate, priced: PricedProposal) -> None:
        """Validate the proposal-level and item-level payment terms into ``priced``."""
        available = priced.allocator.ids

        def commit(term: PaymentTermInput, prefix: str) -> Optional[PaymentTermValues]:
            values, errors = commit_payment_term(term.structure, term.field_values(), available)
            priced.errors.update(_prefixed(prefix, errors))
            return values

        if data.payment_term is not None:
            priced.payment_term = commit(data.payment_term, "payment_term")
        for index, item_data in enumerate(data.items):
            if item_data.payment_term is not None:
                values = commit(item_data.payment_term, f"items.{index}.payment_term")
                if values is not None:
                    priced.item_terms[index] = values

    async def quote(self, data: ProposalQuoteRequest) -> Dict[str, Any]:
        """
        Price a draft without persisting anything.

        Raises:
            ClientNotFoundError: If client_id is given and unknown
            ValidationError: If an item or milestone is invalid
        """
        client = await self._resolve_recipient(data.client_id, None)
        priced = await self.price(data, client, data.subtotal_policy)
        if priced.errors:
            raise ValidationError(message="Proposal validation failed", errors=priced.errors)

        totals = priced.totals
        return {
            "items": [
                {
                    "billing_method": item.billing_method,
                    "description": item.description,
                    "quantity": item.quantity,
                    "rate": item.rate,
                    "unit_price": item.unit_price,
                    "amount": item.amount,
                    "discount": item_discount_value(item),
                    "effective_amount": effective_amount(item),
                    "capped_ceiling": capped_ceiling(item),
                }
                for item in priced.items
            ],
            "subtotal": totals.subtotal,
            "item_discount_total": totals.item_discount_total,
            "client_discount": totals.client_discount,
            "after_discount": totals.after_discount,
            "tax": totals.tax,
            "grand_total": totals.grand_total,
            "subtotal_policy": priced.config.subtotal_policy,
            "success_fee_estimate": success_fee_estimate(
                data.success_fee_percent, data.success_fee_amount, data.success_fee_value
            ),
        }

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def _scalar_fields(self, data: ProposalCreate, priced: PricedProposal) -> Dict[str, Any]:
        """Proposal columns derived from the submission and its priced totals."""
        percent, amount = discount_fields(priced.config.client_discount)
        totals = priced.totals
        return {
            "client_id": data.client_id,
            "lead_id": data.lead_id,
            "type": data.type,
            "title": data.title,
            "description": data.description,
            "currency": data.currency or settings.DEFAULT_CURRENCY,
            "tax_rate": data.tax_rate,
            "tax_inclusive": data.tax_inclusive,
            "client_discount_percent": percent,
            "client_discount_amount": amount,
            "use_blended_rate": data.use_blended_rate,
            "blended_rate": data.blended_rate,
            "hourly_rate_table_type": data.hourly_rate_table_type,
            "hourly_rate_table_rates": (
                {tier: str(rate) for tier, rate in priced.config.hourly_rate_table.items()}
                or None
            ),
            "hourly_rate_range_min": data.hourly_rate_range_min,
            "hourly_rate_range_max": data.hourly_rate_range_max,
            "use_milestones": data.use_milestones,
            "success_fee_percent": data.success_fee_percent,
            "success_fee_amount": data.success_fee_amount,
            "success_fee_value": data.success_fee_value,
            "issue_date": data.issue_date,
            "expiry_date": data.expiry_date,
            "subtotal": totals.subtotal,
            "discount_total": totals.discount_total,
            "tax_amount": totals.tax,
            "amount": totals.grand_total,
        }

    async def _write_children(
        self,
        proposal: Proposal,
        priced: PricedProposal,
        existing_milestones: Dict[int, Milestone],
    ) -> None:
        """
        Replace items and payment terms, and sync milestones.

        Milestones with a durable id that still exist are updated in place;
        the rest are created, and omitted ones deleted. Temporary ids are
        then resolved everywhere they are referenced.
        """
        await self.proposal_dao.clear_items_and_terms(proposal.id)

        keep_ids = [
            m.id for m in priced.allocator.milestones
            if isinstance(m.id, int) and m.id in existing_milestones
        ]
        await self.proposal_dao.delete_milestones_except(proposal.id, keep_ids)

        id_map: Dict[MilestoneId, int] = {}
        new_rows: List[Tuple[MilestoneDraft, Milestone]] = []
        for draft in priced.allocator.milestones:
            values = {
                "name": draft.name,
                "description": draft.description,
                "amount": draft.amount,
                "percent": draft.percent,
                "due_date": draft.due_date,
            }
            if draft.id in keep_ids:
                row = existing_milestones[draft.id]
                for name, value in values.items():
                    setattr(row, name, value)
            else:
                row = Milestone(proposal_id=proposal.id, **values)
                self.session.add(row)
                new_rows.append((draft, row))
        await self.session.flush()
        for draft, row in new_rows:
            id_map[draft.id] = row.id
        priced.allocator.resolve_ids(id_map)

        links: List[Tuple[int, int]] = []
        item_rows: List[ProposalItem] = []
        for position, item in enumerate(priced.items):
            row = ProposalItem(
                proposal_id=proposal.id,
                position=position,
                billing_method=item.billing_method,
                person_id=item.person_id,
                description=item.description,
                quantity=item.quantity,
                rate=item.rate,
                unit_price=item.unit_price,
                amount=item.amount,
                discount_percent=item.discount_percent,
                discount_amount=item.discount_amount,
                is_estimate=item.is_estimate,
                is_capped=item.is_capped,
                capped_hours=item.capped_hours,
                capped_amount=item.capped_amount,
                expense_id=item.expense_id,
            )
            self.session.add(row)
            item_rows.append(row)
        await self.session.flush()

        for item, row in zip(priced.items, item_rows):
            links.extend((row.id, milestone_id) for milestone_id in item.milestone_ids)
        await self.proposal_dao.link_item_milestones(links)

        terms = []
        if priced.payment_term is not None:
            terms.append((None, priced.payment_term))
        for index, values in priced.item_terms.items():
            terms.append((item_rows[index].id, values))
        for item_id, values in terms:
            columns = values.as_column_values()
            if columns.get("milestone_ids") is not None:
                columns["milestone_ids"] = [id_map.get(i, i) for i in columns["milestone_ids"]]
            self.session.add(
                PaymentTerm(proposal_id=proposal.id, proposal_item_id=item_id, **columns)
            )
        await self.session.flush()

    async def _validated(
        self, data: ProposalCreate, client: Optional[Client]
    ) -> PricedProposal:
        priced = await self.price(data, client)
        self._commit_terms(data, priced)
        return priced

    async def get(self, proposal_id: int) -> Proposal:
        """
        Get a proposal with its children.

        Raises:
            ProposalNotFoundError: If the proposal doesn't exist
        """
        proposal = await self.proposal_dao.get_with_details(proposal_id)
        if proposal is None:
            raise ProposalNotFoundError(proposal_id=proposal_id)
        return proposal

    async def list_proposals(
        self,
        status: Optional[ProposalStatus] = None,
        client_id: Optional[int] = None,
        lead_id: Optional[int] = None,
        skip: int = 0,
        limit: int = 100,
    ) -> List[Proposal]:
        return await self.proposal_dao.list_proposals(
            status=status, client_id=client_id, lead_id=lead_id, skip=skip, limit=limit
        )

    async def create(self, data: ProposalCreate, created_by: Optional[int] = None) -> Proposal:
        """
        Create a proposal with items, milestones and payment terms.

        WHAT: Prices the submission, validates everything, allocates a
        number (unless one was supplied) and persists the whole graph.

        Args:
            data: Validated request payload
            created_by: Creating user, if known

        Returns:
            The created proposal with children loaded

        Raises:
            ClientNotFoundError / LeadNotFoundError: Unknown recipient
            ValidationError: Any item, milestone or payment-term error
            ResourceAlreadyExistsError: Supplied number already taken
            NumberGenerationError: No free number after retries
        """
        client = await self._resolve_recipient(data.client_id, data.lead_id)
        priced = await self._validated(data, client)
        if priced.errors:
            raise ValidationError(message="Proposal validation failed", errors=priced.errors)

        fields = self._scalar_fields(data, priced)

        async def insert(number: str) -> Proposal:
            proposal = Proposal(
                proposal_number=number,
                status=ProposalStatus.DRAFT,
                created_by=created_by,
                **fields,
            )
            self.session.add(proposal)
            await self.session.flush()
            return proposal

        if data.proposal_number:
            if await self.proposal_dao.number_exists(data.proposal_number):
                raise ResourceAlreadyExistsError(
                    message="Proposal number already exists",
                    proposal_number=data.proposal_number,
                )
            proposal = await insert(data.proposal_number)
        else:
            proposal = await create_with_unique_number(
                self.session,
                lambda: generate_proposal_number(self.session),
                insert,
            )

        await self._write_children(proposal, priced, existing_milestones={})
        logger.info(
            "Created proposal %s (%s) total %s %s",
            proposal.proposal_number,
            proposal.type.value,
            proposal.amount,
            proposal.currency,
        )
        return await self.get(proposal.id)

    async def update(self, proposal_id: int, data: ProposalUpdate) -> Proposal:
        """
        Replace a draft proposal's content and re-price it.

        Items and payment terms are replaced; milestones keep their ids when
        resubmitted with them. Moving the proposal out of DRAFT requires a
        proposal-level payment term.

        Raises:
            ProposalNotFoundError: If the proposal doesn't exist
            BusinessRuleViolation: If the proposal is no longer a draft
            ValidationError: Any item, milestone or payment-term error
        """
        proposal = await self.get(proposal_id)
        if not proposal.is_editable:
            raise BusinessRuleViolation(
                message="Only draft proposals can be edited",
                proposal_id=proposal_id,
                status=proposal.status.value,
            )

        client = await self._resolve_recipient(data.client_id, data.lead_id)
        priced = await self._validated(data, client)
        if (
            data.status is not None
            and data.status != ProposalStatus.DRAFT
            and data.payment_term is None
        ):
            priced.errors["payment_term"] = MSG_TERM_REQUIRED
        if priced.errors:
            raise ValidationError(message="Proposal validation failed", errors=priced.errors)

        for name, value in self._scalar_fields(data, priced).items():
            setattr(proposal, name, value)
        if data.status is not None:
            proposal.status = data.status
        await self.session.flush()

        existing = {m.id: m for m in proposal.milestones}
        await self._write_children(proposal, priced, existing_milestones=existing)
        logger.info("Updated proposal %s total %s", proposal.proposal_number, proposal.amount)
        return await self.get(proposal.id)
