"""
Finder Fee Service.

WHAT: Computes referral payouts on paid bills and tracks payments made
against them.

WHY: Users who brought in a client (its "finders") earn a percentage of
the net amount of every bill that client pays. The net amount excludes tax
and expense reimbursements so finders are paid on fee income only.

HOW:
- ``calculate_invoice_net_amount`` is pure and works on any object exposing
  ``subtotal``, ``discount_percent``, ``discount_amount`` and ``items``
- ``FinderFeeService`` orchestrates the DAOs; it flushes but never commits,
  the caller owns the transaction
- Creation is idempotent per bill: an existence check plus the
  (bill_id, client_finder_id) unique constraint
"""

import logging
from datetime import date, datetime
from decimal import Decimal
from typing import Any, List, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import (
    BillNotFoundError,
    FinderFeeNotFoundError,
    FinderFeeOverpaymentError,
    ValidationError,
)
from app.dao.client import ClientFinderDAO
from app.dao.finder_fee import FinderFeeDAO, FinderFeePaymentDAO
from app.dao.invoice import BillDAO
from app.models.finder_fee import FinderFee, FinderFeeStatus
from app.models.invoice import BillStatus
from app.services.money import (
    ZERO,
    non_negative,
    percent_of,
    round_money,
    sum_money,
    to_decimal,
)


logger = logging.getLogger(__name__)


def calculate_invoice_net_amount(bill: Any) -> Decimal:
    """
    Net amount of a bill, the base for finder fees.

    ::

        subtotal = bill.subtotal ?? Σ non-credit item amounts
        discount = subtotal × discount_percent / 100 if a percent is set
                   else discount_amount ?? 0
        reimbursements = Σ |amount| over credit items
        net = max(0, subtotal − discount − reimbursements)

    Tax is never part of the net amount.

    Args:
        bill: Bill (or compatible object) with its items loaded

    Returns:
        Net amount rounded to cents, never negative
    """
    items = list(getattr(bill, "items", None) or [])

    if bill.subtotal is not None:
        subtotal = to_decimal(bill.subtotal)
    else:
        subtotal = sum_money(item.amount for item in items if not item.is_credit)

    if bill.discount_percent:
        discount = percent_of(subtotal, bill.discount_percent)
    else:
        discount = to_decimal(bill.discount_amount)

    reimbursements = sum_money(abs(to_decimal(item.amount)) for item in items if item.is_credit)

    return round_money(non_negative(subtotal - discount - reimbursements))


class FinderFeeService:
    """
    Service for finder fee operations.

    HOW: Coordinates BillDAO, ClientFinderDAO and the finder fee DAOs.
    """

    def __init__(self, session: AsyncSession):
        """
        Initialize FinderFeeService.

        Args:
            session: Async database session
        """
        self.session = session
        self.bill_dao = BillDAO(session)
        self.client_finder_dao = ClientFinderDAO(session)
        self.fee_dao = FinderFeeDAO(session)
        self.payment_dao = FinderFeePaymentDAO(session)

    async def calculate_and_create_finder_fees(self, bill_id: int) -> List[FinderFee]:
        """
        Create the finder fees of a paid bill.

        WHAT: One FinderFee per finder of the bill's client with a percent
        above zero: ``fee = net × percent / 100``.

        WHY: Preconditions that are not met (bill not paid, fees already
        created, bill addressed to a lead, client without finders, nothing
        to share) are normal situations for callers such as the mark-paid
        path and the background sweep, so they return an empty list.

        Args:
            bill_id: Bill ID

        Returns:
            The created fees (empty when nothing was created)

        Raises:
            BillNotFoundError: If the bill doesn't exist
        """
        bill = await self.bill_dao.get_with_items(bill_id)
        if bill is None:
            raise BillNotFoundError(bill_id=bill_id)

        if bill.status != BillStatus.PAID:
            logger.warning("Skipping finder fees for bill %s: status is %s", bill_id, bill.status.value)
            return []
        if await self.fee_dao.exists_for_bill(bill_id):
            logger.info("Finder fees already exist for bill %s", bill_id)
            return []
        if bill.client_id is None:
            logger.info("Skipping finder fees for bill %s: billed to a lead", bill_id)
            return []

        finders = await self.client_finder_dao.get_by_client(bill.client_id)
        if not finders:
            logger.info("Client %s has no finders, no fees for bill %s", bill.client_id, bill_id)
            return []

        net_amount = calculate_invoice_net_amount(bill)
        if net_amount <= ZERO:
            logger.info("Bill %s has no net amount, no finder fees", bill_id)
            return []

        fees: List[FinderFee] = []
        try:
            async with self.session.begin_nested():
                for finder in finders:
                    percent = to_decimal(finder.finder_fee_percent)
                    if percent <= ZERO:
                        continue
                    fee_amount = round_money(percent_of(net_amount, percent))
                    fee = await self.fee_dao.create(
                        bill_id=bill.id,
                        client_finder_id=finder.id,
                        client_id=bill.client_id,
                        finder_id=finder.user_id,
                        invoice_net_amount=net_amount,
                        finder_fee_percent=percent,
                        finder_fee_amount=fee_amount,
                        paid_amount=ZERO,
                        remaining_amount=fee_amount,
                        status=FinderFeeStatus.PENDING,
                        earned_at=bill.paid_at,
                    )
                    fees.append(fee)
        except IntegrityError:
            # A concurrent writer created the fees first
            logger.warning("Finder fees for bill %s were created concurrently", bill_id)
            return []

        logger.info(
            "Created %d finder fee(s) for bill %s on net amount %s",
            len(fees),
            bill_id,
            net_amount,
        )
        return fees

    async def get_fee(self, fee_id: int) -> FinderFee:
        """
        Get a fee with its payments.

        Raises:
            FinderFeeNotFoundError: If the fee doesn't exist
        """
        fee = await self.fee_dao.get_with_payments(fee_id)
        if fee is None:
            raise FinderFeeNotFoundError(fee_id=fee_id)
        return fee

    async def record_payment(
        self,
        fee_id: int,
        amount: Decimal,
        payment_date: Optional[date] = None,
        notes: Optional[str] = None,
        paid_by: Optional[int] = None,
    ) -> FinderFee:
        """
        Record a payout against a finder fee.

        WHAT: Creates a FinderFeePayment and updates the fee's paid and
        remaining amounts and status.

        Args:
            fee_id: FinderFee ID
            amount: Payment amount, greater than zero
            payment_date: Date of payment (defaults to today)
            notes: Optional notes
            paid_by: User who made the payment

        Returns:
            The updated fee with payments loaded

        Raises:
            FinderFeeNotFoundError: If the fee doesn't exist
            ValidationError: If the amount is not positive
            FinderFeeOverpaymentError: If the amount exceeds what remains
        """
        fee = await self.get_fee(fee_id)

        amount = round_money(amount)
        if amount <= ZERO:
            raise ValidationError(
                message="Payment amount must be greater than zero",
                errors={"amount": "Payment amount must be greater than zero"},
            )

        remaining = to_decimal(fee.remaining_amount)
        if amount > remaining:
            raise FinderFeeOverpaymentError(
                message=f"Payment amount exceeds remaining amount. Maximum payment: {remaining}",
                max_payment=str(remaining),
            )

        await self.payment_dao.create(
            finder_fee_id=fee.id,
            amount=amount,
            payment_date=payment_date or date.today(),
            notes=notes,
            paid_by=paid_by,
        )

        fee.paid_amount = to_decimal(fee.paid_amount) + amount
        fee.remaining_amount = remaining - amount
        if fee.remaining_amount <= ZERO:
            fee.status = FinderFeeStatus.PAID
            fee.paid_at = datetime.utcnow()
        else:
            fee.status = FinderFeeStatus.PARTIALLY_PAID
        await self.session.flush()

        logger.info(
            "Recorded payment of %s on finder fee %s (remaining %s, status %s)",
            amount,
            fee.id,
            fee.remaining_amount,
            fee.status.value,
        )
        return await self.get_fee(fee.id)

    async def get_fees_for_finder(
        self,
        finder_id: Optional[int] = None,
        status: Optional[FinderFeeStatus] = None,
        client_id: Optional[int] = None,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        skip: int = 0,
        limit: int = 100,
    ) -> List[FinderFee]:
        """List fees for a finder (or all finders), most recently earned first."""
        return await self.fee_dao.get_for_finder(
            finder_id=finder_id,
            status=status,
            client_id=client_id,
            start=start,
            end=end,
            skip=skip,
            limit=limit,
        )

    async def process_paid_bills(self, limit: int = 100) -> int:
        """
        Create missing finder fees for paid bills.

        WHAT: Sweep run by the scheduler; safe to run any number of times.

        HOW: Walks every candidate in pages keyed by bill id, so bills that
        never produce fees cannot hide the ones behind them.

        Args:
            limit: Number of bills loaded per page

        Returns:
            Number of bills that produced fees
        """
        processed = 0
        after_id: Optional[int] = None
        while True:
            bill_ids = await self.bill_dao.get_paid_without_finder_fees(
                limit=limit, after_id=after_id
            )
            if not bill_ids:
                break
            for bill_id in bill_ids:
                if await self.calculate_and_create_finder_fees(bill_id):
                    processed += 1
            after_id = bill_ids[-1]
        if processed:
            logger.info("Finder fee sweep created fees for %d bill(s)", processed)
        return processed
