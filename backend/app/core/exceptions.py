"""
Custom exception hierarchy for structured error handling.

WHY: Custom exceptions provide:
1. Consistent error handling across the API
2. HTTP status code mapping for FastAPI
3. Structured error responses with contextual data

Field-level validation results produced by the pricing and payment-terms
engines are plain ``(valid, errors)`` tuples. Services convert a failed
result into ``ValidationError(errors=errors)`` at the persistence boundary.
"""

from typing import Any, Dict, Optional


class AppException(Exception):
    """
    Base exception class for all application exceptions.

    All custom exceptions should inherit from this class.
    """

    status_code: int = 500
    default_message: str = "An unexpected error occurred"

    def __init__(
        self,
        message: Optional[str] = None,
        status_code: Optional[int] = None,
        **context: Any,
    ):
        """
        Initialize exception with message and context.

        Args:
            message: Human-readable error message
            status_code: HTTP status code (overrides class default)
            **context: Additional context for debugging (e.g. bill_id)
        """
        self.message = message or self.default_message
        if status_code is not None:
            self.status_code = status_code
        self.context = context
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        """
        Serialize exception to dictionary for JSON response.

        Returns:
            Dictionary with error name, message, status code and context
        """
        return {
            "error": self.__class__.__name__,
            "message": self.message,
            "status_code": self.status_code,
            "details": self.context if self.context else None,
        }


# ============================================================================
# Validation & Input Exceptions
# ============================================================================


class ValidationError(AppException):
    """
    Raised when input validation fails.

    Services pass the engine's field to message map as ``errors``.

    HTTP Status: 400 Bad Request
    """

    status_code = 400
    default_message = "Validation failed"


# ============================================================================
# Resource Exceptions
# ============================================================================


class ResourceNotFoundError(AppException):
    """
    Raised when a requested resource doesn't exist.

    A missing record for an explicitly supplied id is a collaborator
    contract violation, so these always propagate to the caller.

    HTTP Status: 404 Not Found
    """

    status_code = 404
    default_message = "Resource not found"


class ResourceAlreadyExistsError(AppException):
    """
    Raised when attempting to create a resource that already exists.

    HTTP Status: 409 Conflict
    """

    status_code = 409
    default_message = "Resource already exists"


# ============================================================================
# Business Logic Exceptions
# ============================================================================


class BusinessRuleViolation(AppException):
    """
    Raised when a business rule is violated.

    HTTP Status: 422 Unprocessable Entity
    """

    status_code = 422
    default_message = "Business rule violation"


class InvalidStateTransitionError(BusinessRuleViolation):
    """
    Raised when an invalid state transition is attempted
    (e.g. marking a cancelled bill as paid).

    HTTP Status: 400 Bad Request
    """

    status_code = 400
    default_message = "Invalid state transition"


# ============================================================================
# Billing-Specific Exceptions
# ============================================================================


class ProposalNotFoundError(ResourceNotFoundError):
    """Raised when a proposal doesn't exist."""

    default_message = "Proposal not found"


class BillNotFoundError(ResourceNotFoundError):
    """Raised when a bill (invoice) doesn't exist."""

    default_message = "Invoice not found"


class ClientNotFoundError(ResourceNotFoundError):
    """Raised when a client doesn't exist."""

    default_message = "Client not found"


class LeadNotFoundError(ResourceNotFoundError):
    """Raised when a lead doesn't exist."""

    default_message = "Lead not found"


class FinderFeeNotFoundError(ResourceNotFoundError):
    """Raised when a finder fee doesn't exist."""

    default_message = "Finder fee not found"


class FinderFeeOverpaymentError(BusinessRuleViolation):
    """
    Raised when a finder fee payment exceeds the remaining amount.

    The context carries ``max_payment`` so the caller can correct the input.
    """

    default_message = "Payment amount exceeds remaining amount"


class NumberGenerationError(AppException):
    """
    Raised when a unique proposal/invoice number could not be allocated.

    Happens only after every retry collided with a concurrent writer.

    HTTP Status: 409 Conflict
    """

    status_code = 409
    default_message = "Could not allocate a unique document number"
