"""
FastAPI exception handlers for custom exceptions.

WHY: Every error leaves the API in one shape:
``{"error", "message", "status_code", "details"}``. Field-level failures,
whether caught by the request schemas or by the pricing and payment-terms
engines, carry ``details.errors`` as a ``{field: message}`` map keyed the
same way (``items.0.rate``, ``payment_term.upfront_value``).
"""

import logging
from typing import Any, Dict, Sequence

from fastapi import Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from app.core.exceptions import AppException


logger = logging.getLogger(__name__)

REQUEST_FIELD = "request"


def _error_body(error: str, message: str, status_code: int, details: Any = None) -> Dict[str, Any]:
    return {"error": error, "message": message, "status_code": status_code, "details": details}


def _field_name(loc: Sequence[Any]) -> str:
    """
    Dotted field path without the request part it came from.

    Model-level validators (client XOR lead, one discount field) report
    against the whole body, which is keyed as ``request``.
    """
    parts = [str(p) for p in loc]
    if parts and parts[0] in ("body", "query", "path"):
        parts = parts[1:]
    return ".".join(parts) or REQUEST_FIELD


async def app_exception_handler(request: Request, exc: AppException) -> JSONResponse:
    """
    Handle AppException and its subclasses.

    Returns:
        JSONResponse built from ``exc.to_dict()``
    """
    if exc.status_code >= 500:
        logger.error("%s on %s %s: %s", type(exc).__name__, request.method, request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """
    Handle request schema validation errors.

    Negative amounts, both discount fields set or both recipients supplied
    are reported as 400 with the same ``details.errors`` map as engine
    validation failures. The first message per field wins.
    """
    errors: Dict[str, str] = {}
    for error in exc.errors():
        message = error["msg"]
        if message.startswith("Value error, "):
            message = message[len("Value error, "):]
        errors.setdefault(_field_name(error["loc"]), message)

    return JSONResponse(
        status_code=400,
        content=_error_body("ValidationError", "Request validation failed", 400, {"errors": errors}),
    )


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """Handle Starlette HTTP exceptions (unknown routes, wrong methods)."""
    return JSONResponse(
        status_code=exc.status_code,
        content=_error_body("HTTPException", exc.detail, exc.status_code),
    )


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """
    Catch-all for unexpected exceptions.

    The traceback goes to the log; the caller gets a generic 500 body.
    """
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=500,
        content=_error_body("InternalServerError", "An unexpected error occurred", 500),
    )
