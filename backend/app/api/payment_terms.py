"""
Payment terms API endpoints.

WHAT: Stateless validation of a payment term.

WHY: Editors check a term before the proposal is saved and need the
normalized result (other structures' fields reset) to show back.

HOW: Runs the payment-terms engine; nothing touches the database.
"""

from fastapi import APIRouter, status

from app.schemas.payment_term import (
    PaymentTermFields,
    PaymentTermValidationRequest,
    PaymentTermValidationResponse,
)
from app.services.payment_terms import commit_payment_term, detect_structure


router = APIRouter(prefix="/payment-terms", tags=["payment-terms"])


@router.post(
    "/validate",
    response_model=PaymentTermValidationResponse,
    status_code=status.HTTP_200_OK,
    summary="Validate payment term",
    description="Validate a payment term and return its normalized form",
)
async def validate_payment_term(
    data: PaymentTermValidationRequest,
) -> PaymentTermValidationResponse:
    """
    Validate a payment term.

    WHAT: Uses the submitted structure, or detects it from the fields
    when none is given, then runs every step's validation.

    Returns:
        ``valid`` with per-field ``errors``; ``normalized`` is set when valid
    """
    term = data.term
    structure = term.structure or detect_structure(term)
    values, errors = commit_payment_term(
        structure, term.field_values(), data.available_milestone_ids
    )
    return PaymentTermValidationResponse(
        valid=values is not None,
        structure=values.structure if values is not None else structure,
        errors=errors,
        normalized=(
            PaymentTermFields.model_validate(values.as_column_values())
            if values is not None
            else None
        ),
    )
