"""
Request context middleware for log correlation.

WHAT: Middleware that assigns every request an ID, exposes it to the rest
of the request lifecycle and logs one line per request.

WHY: A single proposal save or mark-paid call logs from several services
(pricing, numbering, finder fees). A shared request ID ties those lines
together, and the X-Request-ID header lets a caller quote it.

HOW: Stores the context in request.state and in a ContextVar so services
can log it without access to the request. ``RequestIdLogFilter`` copies
the ID onto every log record.
"""

import logging
import time
import uuid
from contextvars import ContextVar
from dataclasses import dataclass
from typing import Callable, Optional

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response


logger = logging.getLogger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"


@dataclass(frozen=True)
class RequestContext:
    """
    Request-scoped context.

    Fields:
    - request_id: Caller-supplied X-Request-ID or a fresh UUID4
    - path: Request path
    - method: HTTP method
    """

    request_id: str
    path: str
    method: str


# Each async request gets its own isolated context
_request_context: ContextVar[Optional[RequestContext]] = ContextVar(
    "request_context", default=None
)


def get_request_context() -> Optional[RequestContext]:
    """
    Get the current request context.

    Returns:
        RequestContext if within a request, None otherwise (e.g. in the
        background sweep)
    """
    return _request_context.get()


class RequestIdLogFilter(logging.Filter):
    """Adds ``request_id`` to log records ("-" outside a request)."""

    def filter(self, record: logging.LogRecord) -> bool:
        context = _request_context.get()
        record.request_id = context.request_id if context else "-"
        return True


class RequestContextMiddleware(BaseHTTPMiddleware):
    """
    Middleware that captures request context and logs request timing.

    Example:
        @app.get("/api/example")
        async def example(request: Request):
            ctx = request.state.context
            # or
            ctx = get_request_context()
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        """
        Process request and add context.

        Args:
            request: Incoming request
            call_next: Next middleware/handler

        Returns:
            Response with request ID header added
        """
        request_id = request.headers.get(REQUEST_ID_HEADER) or str(uuid.uuid4())
        context = RequestContext(
            request_id=request_id,
            path=request.url.path,
            method=request.method,
        )
        request.state.context = context
        token = _request_context.set(context)
        started = time.perf_counter()

        try:
            response = await call_next(request)
            response.headers[REQUEST_ID_HEADER] = request_id
            logger.info(
                "%s %s -> %s (%.1f ms)",
                request.method,
                request.url.path,
                response.status_code,
                (time.perf_counter() - started) * 1000,
            )
            return response

        finally:
            _request_context.reset(token)
