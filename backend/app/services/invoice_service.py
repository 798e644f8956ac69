"""
Invoice Service.

WHAT: Business logic for bills: manual creation, invoicing a proposal and
marking a bill paid.

WHY: Marking a bill paid is the moment finder fees are earned, so the
state change and the fee computation belong to one operation. Bill
amounts use the same discount and tax arithmetic as proposal totals.

HOW: Coordinates BillDAO, ProposalDAO and the client DAOs; delegates fee
creation to FinderFeeService. It flushes but never commits.
"""

import logging
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from decimal import Decimal
from typing import Iterable, List, Optional, Tuple

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.exceptions import (
    BillNotFoundError,
    BusinessRuleViolation,
    ClientNotFoundError,
    InvalidStateTransitionError,
    LeadNotFoundError,
    ProposalNotFoundError,
)
from app.dao.client import ClientDAO, LeadDAO
from app.dao.invoice import BillDAO
from app.dao.proposal import ProposalDAO
from app.models.finder_fee import FinderFee
from app.models.invoice import Bill, BillItem, BillStatus
from app.models.proposal import ProposalStatus
from app.schemas.invoice import BillCreate, BillFromProposal, BillItemInput
from app.services.finder_fee_service import FinderFeeService, calculate_invoice_net_amount
from app.services.money import round_money, sum_money, to_decimal
from app.services.numbering import create_with_unique_number, generate_invoice_number
from app.services.pricing import (
    LineItem,
    apply_adjustments,
    discount_from_fields,
    effective_amount,
)


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BillTotals:
    subtotal: Decimal
    tax_amount: Decimal
    amount: Decimal


def compute_bill_totals(
    items: Iterable[BillItem],
    subtotal: Optional[Decimal],
    discount_percent: Optional[Decimal],
    discount_amount: Optional[Decimal],
    tax_rate: Decimal,
    tax_inclusive: bool,
) -> BillTotals:
    """
    Amount due on a bill.

    ::

        subtotal = explicit subtotal, else Σ non-credit line amounts
        base     = subtotal − Σ |credit line amounts|
        amount   = base − discount (+ tax when exclusive)

    The discount applies to ``base`` so reimbursed expenses are never
    discounted twice.
    """
    items = list(items)
    if subtotal is None:
        subtotal = sum_money(i.amount for i in items if not i.is_credit)
    subtotal = round_money(subtotal)
    credits = sum_money(abs(to_decimal(i.amount)) for i in items if i.is_credit)

    _, _, tax, grand_total = apply_adjustments(
        subtotal - credits,
        discount_from_fields(discount_percent, discount_amount),
        tax_rate,
        tax_inclusive,
    )
    return BillTotals(subtotal=subtotal, tax_amount=tax, amount=grand_total)


def bill_item_from_input(data: BillItemInput) -> BillItem:
    """Credit lines are stored negative."""
    if data.amount is not None:
        amount = round_money(data.amount)
    else:
        amount = round_money(to_decimal(data.quantity) * to_decimal(data.rate))
    if data.is_credit:
        amount = -abs(amount)
    return BillItem(
        description=data.description,
        quantity=data.quantity,
        rate=data.rate,
        amount=amount,
        is_credit=data.is_credit,
        expense_id=data.expense_id,
    )


class InvoiceService:
    """
    Service for bill operations.

    HOW: Coordinates the DAOs and FinderFeeService.
    """

    def __init__(self, session: AsyncSession):
        """
        Initialize InvoiceService.

        Args:
            session: Async database session
        """
        self.session = session
        self.bill_dao = BillDAO(session)
        self.proposal_dao = ProposalDAO(session)
        self.client_dao = ClientDAO(session)
        self.lead_dao = LeadDAO(session)
        self.finder_fee_service = FinderFeeService(session)

    async def get(self, bill_id: int) -> Bill:
        """
        Get a bill with its lines.

        Raises:
            BillNotFoundError: If the bill doesn't exist
        """
        bill = await self.bill_dao.get_with_items(bill_id)
        if bill is None:
            raise BillNotFoundError(bill_id=bill_id)
        return bill

    async def net_amount(self, bill_id: int) -> Decimal:
        """Net amount of a bill as used for finder fees."""
        return calculate_invoice_net_amount(await self.get(bill_id))

    async def _insert_bill(self, fields: dict, items: List[BillItem]) -> Bill:
        """Persist a bill under a fresh invoice number."""

        async def insert(number: str) -> Bill:
            bill = Bill(invoice_number=number, status=BillStatus.DRAFT, **fields)
            self.session.add(bill)
            await self.session.flush()
            return bill

        bill = await create_with_unique_number(
            self.session,
            lambda: generate_invoice_number(self.session),
            insert,
        )
        for item in items:
            item.bill_id = bill.id
            self.session.add(item)
        await self.session.flush()
        return bill

    @staticmethod
    def _dates(issue_date: Optional[date], due_date: Optional[date]) -> Tuple[date, date]:
        issue_date = issue_date or date.today()
        return issue_date, due_date or issue_date + timedelta(days=settings.INVOICE_DUE_DAYS)

    async def create_bill(self, data: BillCreate) -> Bill:
        """
        Create a bill manually.

        Args:
            data: Validated request payload

        Returns:
            The created DRAFT bill with lines loaded

        Raises:
            ClientNotFoundError / LeadNotFoundError: Unknown recipient
            ProposalNotFoundError: Unknown proposal_id
        """
        if data.client_id is not None and await self.client_dao.get_by_id(data.client_id) is None:
            raise ClientNotFoundError(client_id=data.client_id)
        if data.lead_id is not None and await self.lead_dao.get_by_id(data.lead_id) is None:
            raise LeadNotFoundError(lead_id=data.lead_id)
        if data.proposal_id is not None and await self.proposal_dao.get_by_id(data.proposal_id) is None:
            raise ProposalNotFoundError(proposal_id=data.proposal_id)

        items = [bill_item_from_input(i) for i in data.items]
        totals = compute_bill_totals(
            items,
            data.subtotal,
            data.discount_percent,
            data.discount_amount,
            data.tax_rate,
            data.tax_inclusive,
        )
        issue_date, due_date = self._dates(data.issue_date, data.due_date)

        bill = await self._insert_bill(
            {
                "proposal_id": data.proposal_id,
                "client_id": data.client_id,
                "lead_id": data.lead_id,
                "currency": data.currency or settings.DEFAULT_CURRENCY,
                "subtotal": totals.subtotal,
                "discount_percent": data.discount_percent,
                "discount_amount": data.discount_amount,
                "tax_rate": data.tax_rate,
                "tax_inclusive": data.tax_inclusive,
                "tax_amount": totals.tax_amount,
                "amount": totals.amount,
                "issue_date": issue_date,
                "due_date": due_date,
                "notes": data.notes,
            },
            items,
        )
        logger.info("Created bill %s for %s %s", bill.invoice_number, bill.amount, bill.currency)
        return await self.get(bill.id)

    async def create_from_proposal(
        self, proposal_id: int, data: Optional[BillFromProposal] = None
    ) -> Bill:
        """
        Invoice a proposal.

        WHAT: Copies the recipient, currency, client discount and tax
        settings; every proposal item becomes a bill line carrying its
        amount after its own discount.

        Raises:
            ProposalNotFoundError: If the proposal doesn't exist
            BusinessRuleViolation: If the proposal was rejected
        """
        data = data or BillFromProposal()
        proposal = await self.proposal_dao.get_with_details(proposal_id)
        if proposal is None:
            raise ProposalNotFoundError(proposal_id=proposal_id)
        if proposal.status == ProposalStatus.REJECTED:
            raise BusinessRuleViolation(
                message="A rejected proposal cannot be invoiced",
                proposal_id=proposal_id,
            )

        items = [self._line_from_proposal_item(item) for item in proposal.items]
        totals = compute_bill_totals(
            items,
            None,
            proposal.client_discount_percent,
            proposal.client_discount_amount,
            proposal.tax_rate,
            proposal.tax_inclusive,
        )
        issue_date, due_date = self._dates(data.issue_date, data.due_date)

        bill = await self._insert_bill(
            {
                "proposal_id": proposal.id,
                "client_id": proposal.client_id,
                "lead_id": proposal.lead_id,
                "currency": proposal.currency,
                "subtotal": totals.subtotal,
                "discount_percent": proposal.client_discount_percent,
                "discount_amount": proposal.client_discount_amount,
                "tax_rate": proposal.tax_rate,
                "tax_inclusive": proposal.tax_inclusive,
                "tax_amount": totals.tax_amount,
                "amount": totals.amount,
                "issue_date": issue_date,
                "due_date": due_date,
                "notes": data.notes,
            },
            items,
        )
        logger.info(
            "Invoiced proposal %s as %s (%s %s)",
            proposal.proposal_number,
            bill.invoice_number,
            bill.amount,
            bill.currency,
        )
        return await self.get(bill.id)

    @staticmethod
    def _line_from_proposal_item(item) -> BillItem:
        line = LineItem(
            amount=item.amount,
            discount=discount_from_fields(item.discount_percent, item.discount_amount),
        )
        return BillItem(
            description=item.description,
            quantity=item.quantity,
            rate=item.rate if item.rate is not None else item.unit_price,
            amount=round_money(effective_amount(line)),
            is_credit=False,
            expense_id=item.expense_id,
        )

    async def mark_paid(
        self, bill_id: int, paid_at: Optional[datetime] = None
    ) -> Tuple[Bill, List[FinderFee]]:
        """
        Mark a bill as paid and create its finder fees.

        WHAT: ``paid_at`` is set the first time the bill is paid and never
        changed afterwards. Re-marking a paid bill is a no-op apart from
        creating fees that are still missing.

        Args:
            bill_id: Bill ID
            paid_at: When payment was received (defaults to now)

        Returns:
            (bill, finder fees created by this call)

        Raises:
            BillNotFoundError: If the bill doesn't exist
            InvalidStateTransitionError: If the bill is cancelled or written off
        """
        bill = await self.get(bill_id)
        if bill.is_closed:
            raise InvalidStateTransitionError(
                message=f"Cannot mark a {bill.status.value.lower()} bill as paid",
                bill_id=bill_id,
                status=bill.status.value,
            )

        if bill.status != BillStatus.PAID:
            bill.status = BillStatus.PAID
            if bill.paid_at is None:
                bill.paid_at = paid_at or datetime.utcnow()
            await self.session.flush()
            logger.info("Bill %s marked paid at %s", bill.invoice_number, bill.paid_at)

        fees = await self.finder_fee_service.calculate_and_create_finder_fees(bill.id)
        return await self.get(bill.id), fees
