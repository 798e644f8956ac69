"""
Finder fee API endpoints.

WHAT: Payout reporting and payment recording for finder fees.

WHY: Finders are paid out over time; the API lists what each finder
earned and records the payments made against each fee.

HOW: FastAPI router delegating to FinderFeeService.
"""

from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.session import get_db
from app.models.finder_fee import FinderFeeStatus
from app.schemas.finder_fee import (
    FinderFeeDetailResponse,
    FinderFeeListResponse,
    FinderFeePaymentCreate,
)
from app.services.finder_fee_service import FinderFeeService


router = APIRouter(prefix="/finder-fees", tags=["finder-fees"])


@router.get(
    "",
    response_model=FinderFeeListResponse,
    status_code=status.HTTP_200_OK,
    summary="List finder fees",
    description="List finder fees, most recently earned first",
)
async def list_finder_fees(
    finder_id: Optional[int] = Query(default=None, description="Filter by finder (user) ID"),
    status_filter: Optional[FinderFeeStatus] = Query(
        default=None,
        alias="status",
        description="Filter by fee status",
    ),
    client_id: Optional[int] = Query(default=None, description="Filter by client ID"),
    start: Optional[datetime] = Query(default=None, description="Earned on or after"),
    end: Optional[datetime] = Query(default=None, description="Earned on or before"),
    skip: int = Query(default=0, ge=0),
    limit: int = Query(default=20, ge=1, le=100),
    db: AsyncSession = Depends(get_db),
) -> FinderFeeListResponse:
    fees = await FinderFeeService(db).get_fees_for_finder(
        finder_id=finder_id,
        status=status_filter,
        client_id=client_id,
        start=start,
        end=end,
        skip=skip,
        limit=limit,
    )
    return FinderFeeListResponse(
        items=[FinderFeeDetailResponse.model_validate(f) for f in fees],
        skip=skip,
        limit=limit,
    )


@router.get(
    "/{fee_id}",
    response_model=FinderFeeDetailResponse,
    status_code=status.HTTP_200_OK,
    summary="Get finder fee",
)
async def get_finder_fee(
    fee_id: int,
    db: AsyncSession = Depends(get_db),
) -> FinderFeeDetailResponse:
    fee = await FinderFeeService(db).get_fee(fee_id)
    return FinderFeeDetailResponse.model_validate(fee)


@router.post(
    "/{fee_id}/pay",
    response_model=FinderFeeDetailResponse,
    status_code=status.HTTP_200_OK,
    summary="Record finder fee payment",
)
async def pay_finder_fee(
    fee_id: int,
    data: FinderFeePaymentCreate,
    db: AsyncSession = Depends(get_db),
) -> FinderFeeDetailResponse:
    """
    Record a payout against a finder fee.

    Raises:
        FinderFeeNotFoundError (404): If the fee doesn't exist
        FinderFeeOverpaymentError (422): If the amount exceeds what remains;
            ``details.max_payment`` holds the remaining amount
    """
    fee = await FinderFeeService(db).record_payment(
        fee_id,
        amount=data.amount,
        payment_date=data.payment_date,
        notes=data.notes,
        paid_by=data.paid_by,
    )
    return FinderFeeDetailResponse.model_validate(fee)
