"""
Main FastAPI application.

WHY: This is the entry point for the application. It configures logging,
middleware, routes, exception handlers and the background scheduler.
"""

import logging

from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from starlette.exceptions import HTTPException as StarletteHTTPException

from app.core.config import settings
from app.core.exception_handlers import (
    app_exception_handler,
    generic_exception_handler,
    http_exception_handler,
    validation_exception_handler,
)
from app.core.exceptions import AppException
from app.middleware import RequestContextMiddleware, RequestIdLogFilter
from app.api import finder_fees, invoices, payment_terms, proposals
from app.services.scheduler import get_scheduler_status, shutdown_scheduler, start_scheduler


LOG_FORMAT = "%(asctime)s %(levelname)s [%(request_id)s] %(name)s: %(message)s"


def configure_logging() -> None:
    """
    Configure root logging from settings.LOG_LEVEL.

    WHY: Services log through module-level loggers; every line carries the
    request ID so one request's lines can be followed.
    """
    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    handler.addFilter(RequestIdLogFilter())

    root = logging.getLogger()
    root.handlers = [handler]
    root.setLevel(settings.LOG_LEVEL.upper())


def create_app() -> FastAPI:
    """
    Build the billing API.

    Tests call this through the module-level ``app``; the scheduler is only
    started by the startup hook, never here.
    """
    configure_logging()

    app = FastAPI(
        title=settings.PROJECT_NAME,
        description="Proposal pricing, invoicing and finder fee API",
        version=settings.VERSION,
        docs_url="/api/docs",
        redoc_url="/api/redoc",
        openapi_url="/api/openapi.json",
    )

    # Consistent error bodies across the API
    app.add_exception_handler(AppException, app_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(Exception, generic_exception_handler)

    # Sets X-Request-ID and the context read by RequestIdLogFilter
    app.add_middleware(RequestContextMiddleware)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.get("/health", tags=["health"])
    async def health_check() -> dict:
        """Liveness plus the finder fee sweep state. Does not touch the database."""
        return {
            "status": "healthy",
            "version": settings.VERSION,
            "scheduler": get_scheduler_status(),
        }

    @app.on_event("startup")
    async def startup_event():
        """
        Application startup event handler.

        Starts the finder fee sweep when FINDER_FEE_SWEEP_ENABLED is set.
        """
        if settings.FINDER_FEE_SWEEP_ENABLED:
            await start_scheduler()

    @app.on_event("shutdown")
    async def shutdown_event():
        """Stops background jobs so a running sweep can finish."""
        await shutdown_scheduler()

    @app.get("/", tags=["root"])
    async def root() -> dict:
        return {
            "name": settings.PROJECT_NAME,
            "version": settings.VERSION,
            "docs": "/api/docs",
        }

    app.include_router(proposals.router, prefix=settings.API_V1_PREFIX)
    app.include_router(payment_terms.router, prefix=settings.API_V1_PREFIX)
    app.include_router(invoices.router, prefix=settings.API_V1_PREFIX)
    app.include_router(finder_fees.router, prefix=settings.API_V1_PREFIX)

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    # Development only; in production run `uvicorn app.main:app`
    uvicorn.run(
        "app.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.DEBUG,
        log_level="info" if settings.DEBUG else "warning",
    )
