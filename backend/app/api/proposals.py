"""
Proposal management API endpoints.

WHAT: RESTful API for pricing, creating, editing and invoicing proposals.

WHY: Proposals are the priced offers sent to clients and leads:
1. Quote a draft while it is being assembled
2. Persist the priced proposal with its items, milestones and terms
3. Turn an accepted proposal into a bill

HOW: FastAPI router delegating to ProposalService and InvoiceService.
The request transaction is committed by the get_db dependency.
"""

from typing import Optional

from fastapi import APIRouter, Body, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.session import get_db
from app.models.proposal import ProposalStatus
from app.schemas.invoice import BillFromProposal, BillResponse
from app.schemas.proposal import (
    ProposalCreate,
    ProposalListResponse,
    ProposalQuoteRequest,
    ProposalQuoteResponse,
    ProposalResponse,
    ProposalSummary,
    ProposalUpdate,
)
from app.services.invoice_service import InvoiceService
from app.services.proposal_service import ProposalService


router = APIRouter(prefix="/proposals", tags=["proposals"])


@router.post(
    "/quote",
    response_model=ProposalQuoteResponse,
    status_code=status.HTTP_200_OK,
    summary="Quote proposal",
    description="Price a draft proposal without saving it",
)
async def quote_proposal(
    data: ProposalQuoteRequest,
    db: AsyncSession = Depends(get_db),
) -> ProposalQuoteResponse:
    """
    Price a draft proposal.

    WHAT: Recalculates every item and returns the totals breakdown.

    WHY: Editors show live totals while a proposal is assembled; nothing
    is persisted.

    Raises:
        ClientNotFoundError (404): If client_id is unknown
        ValidationError (400): If an item or milestone is invalid
    """
    quote = await ProposalService(db).quote(data)
    return ProposalQuoteResponse(**quote)


@router.post(
    "",
    response_model=ProposalResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create proposal",
    description="Create a priced proposal with items, milestones and payment terms",
)
async def create_proposal(
    data: ProposalCreate,
    db: AsyncSession = Depends(get_db),
) -> ProposalResponse:
    """
    Create a new proposal.

    WHAT: Creates a proposal in DRAFT status. A ``YYYY-XXX`` number is
    generated unless one is supplied.

    Args:
        data: Proposal creation data
        db: Database session

    Returns:
        Created proposal with its priced snapshot

    Raises:
        ClientNotFoundError / LeadNotFoundError (404): Unknown recipient
        ValidationError (400): If item, milestone or payment-term validation fails
        ResourceAlreadyExistsError (409): If the supplied number is taken
    """
    proposal = await ProposalService(db).create(data)
    return ProposalResponse.model_validate(proposal)


@router.get(
    "",
    response_model=ProposalListResponse,
    status_code=status.HTTP_200_OK,
    summary="List proposals",
    description="Get paginated list of proposals, newest first",
)
async def list_proposals(
    skip: int = Query(default=0, ge=0, description="Number of items to skip"),
    limit: int = Query(default=20, ge=1, le=100, description="Maximum items to return"),
    status_filter: Optional[ProposalStatus] = Query(
        default=None,
        alias="status",
        description="Filter by proposal status",
    ),
    client_id: Optional[int] = Query(default=None, description="Filter by client ID"),
    lead_id: Optional[int] = Query(default=None, description="Filter by lead ID"),
    db: AsyncSession = Depends(get_db),
) -> ProposalListResponse:
    proposals = await ProposalService(db).list_proposals(
        status=status_filter,
        client_id=client_id,
        lead_id=lead_id,
        skip=skip,
        limit=limit,
    )
    return ProposalListResponse(
        items=[ProposalSummary.model_validate(p) for p in proposals],
        skip=skip,
        limit=limit,
    )


@router.get(
    "/{proposal_id}",
    response_model=ProposalResponse,
    status_code=status.HTTP_200_OK,
    summary="Get proposal",
    description="Get a proposal with items, milestones and payment terms",
)
async def get_proposal(
    proposal_id: int,
    db: AsyncSession = Depends(get_db),
) -> ProposalResponse:
    """
    Get a proposal by ID.

    Raises:
        ProposalNotFoundError (404): If proposal not found
    """
    proposal = await ProposalService(db).get(proposal_id)
    return ProposalResponse.model_validate(proposal)


@router.put(
    "/{proposal_id}",
    response_model=ProposalResponse,
    status_code=status.HTTP_200_OK,
    summary="Update proposal",
    description="Replace a draft proposal's content and re-price it",
)
async def update_proposal(
    proposal_id: int,
    data: ProposalUpdate,
    db: AsyncSession = Depends(get_db),
) -> ProposalResponse:
    """
    Update a draft proposal.

    WHAT: Replaces items and payment terms, syncs milestones and
    overwrites the stored totals. A status change may accompany the edit;
    leaving DRAFT requires a proposal-level payment term.

    Raises:
        ProposalNotFoundError (404): If proposal not found
        BusinessRuleViolation (422): If the proposal is not a draft
        ValidationError (400): If validation fails
    """
    proposal = await ProposalService(db).update(proposal_id, data)
    return ProposalResponse.model_validate(proposal)


@router.post(
    "/{proposal_id}/invoice",
    response_model=BillResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Invoice proposal",
    description="Create a DRAFT bill from a proposal",
)
async def invoice_proposal(
    proposal_id: int,
    data: Optional[BillFromProposal] = Body(default=None),
    db: AsyncSession = Depends(get_db),
) -> BillResponse:
    """
    Create a bill from a proposal.

    Raises:
        ProposalNotFoundError (404): If proposal not found
        BusinessRuleViolation (422): If the proposal was rejected
    """
    bill = await InvoiceService(db).create_from_proposal(proposal_id, data)
    return BillResponse.model_validate(bill)
