"""
Invoice management API endpoints.

WHAT: RESTful API for bills and their payment.

WHY: Bills are the financial records derived from proposals. Marking a
bill paid is also when the client's finders earn their fees.

HOW: FastAPI router delegating to InvoiceService.
"""

from typing import Optional

from fastapi import APIRouter, Body, Depends, status
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.session import get_db
from app.schemas.finder_fee import FinderFeeResponse
from app.schemas.invoice import BillCreate, BillResponse, MarkPaidRequest, NetAmountResponse
from app.services.invoice_service import InvoiceService


router = APIRouter(prefix="/invoices", tags=["invoices"])


class MarkPaidResponse(BaseModel):
    """Paid bill and the finder fees created by this request."""

    bill: BillResponse
    finder_fees: list[FinderFeeResponse]


@router.post(
    "",
    response_model=BillResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create invoice",
    description="Create a bill manually",
)
async def create_invoice(
    data: BillCreate,
    db: AsyncSession = Depends(get_db),
) -> BillResponse:
    """
    Create a new bill.

    WHAT: Creates a bill in DRAFT status with an ``INV-YYYY-XXX`` number.

    Raises:
        ClientNotFoundError / LeadNotFoundError (404): Unknown recipient
        ProposalNotFoundError (404): Unknown proposal
    """
    bill = await InvoiceService(db).create_bill(data)
    return BillResponse.model_validate(bill)


@router.get(
    "/{bill_id}",
    response_model=BillResponse,
    status_code=status.HTTP_200_OK,
    summary="Get invoice",
)
async def get_invoice(
    bill_id: int,
    db: AsyncSession = Depends(get_db),
) -> BillResponse:
    bill = await InvoiceService(db).get(bill_id)
    return BillResponse.model_validate(bill)


@router.get(
    "/{bill_id}/net-amount",
    response_model=NetAmountResponse,
    status_code=status.HTTP_200_OK,
    summary="Get invoice net amount",
    description="Amount finder fees are computed on: subtotal minus discount and expense reimbursements",
)
async def get_invoice_net_amount(
    bill_id: int,
    db: AsyncSession = Depends(get_db),
) -> NetAmountResponse:
    net_amount = await InvoiceService(db).net_amount(bill_id)
    return NetAmountResponse(bill_id=bill_id, net_amount=net_amount)


@router.post(
    "/{bill_id}/mark-paid",
    response_model=MarkPaidResponse,
    status_code=status.HTTP_200_OK,
    summary="Mark invoice paid",
    description="Mark a bill as paid and create its finder fees",
)
async def mark_invoice_paid(
    bill_id: int,
    data: Optional[MarkPaidRequest] = Body(default=None),
    db: AsyncSession = Depends(get_db),
) -> MarkPaidResponse:
    """
    Mark a bill as paid.

    WHAT: Sets the status to PAID and records ``paid_at`` once. Finder
    fees are created for the client's finders; repeating the call creates
    nothing new.

    Raises:
        BillNotFoundError (404): If bill not found
        InvalidStateTransitionError (400): If the bill is cancelled or written off
    """
    paid_at = data.paid_at if data else None
    bill, fees = await InvoiceService(db).mark_paid(bill_id, paid_at=paid_at)
    return MarkPaidResponse(
        bill=BillResponse.model_validate(bill),
        finder_fees=[FinderFeeResponse.model_validate(f) for f in fees],
    )
