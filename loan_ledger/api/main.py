"""FastAPI application factory"""

import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from prometheus_client import generate_latest, CONTENT_TYPE_LATEST
from starlette.responses import Response

from loan_ledger.api.middleware import AccessLogMiddleware, RequestIDMiddleware
from loan_ledger.api.v1 import balance, borrowers, loans, payments, reports
from loan_ledger.domain.exceptions import (
    ConflictError,
    DomainException,
    LedgerInconsistencyError,
    NotFoundError,
    ValidationError,
)
from loan_ledger.infrastructure.observability.logging import setup_logging
from loan_ledger.config import settings

# Setup structured logging
setup_logging(settings.log_level, settings.log_format)

# Most specific first; DomainException catches anything unmapped
ERROR_STATUS = (
    (ValidationError, 422),
    (NotFoundError, 404),
    (ConflictError, 409),
    (LedgerInconsistencyError, 500),
    (DomainException, 400),
)


async def domain_exception_handler(request: Request, exc: DomainException) -> JSONResponse:
    """Map domain errors to HTTP status codes"""
    status_code = next(code for exc_type, code in ERROR_STATUS if isinstance(exc, exc_type))
    request_id = getattr(request.state, "request_id", "unknown")

    if status_code >= 500:
        logging.error(f"Ledger error: {exc}", extra={"request_id": request_id})
        detail = "Ledger inconsistency; operation rolled back"
    else:
        logging.warning(f"{type(exc).__name__}: {exc}", extra={"request_id": request_id})
        detail = str(exc)

    return JSONResponse(status_code=status_code, content={"detail": detail, "error": type(exc).__name__})


def create_app() -> FastAPI:
    """Create and configure FastAPI application"""
    app = FastAPI(
        title="Loan Ledger",
        description="Loan accounting and shared balance ledger service",
        version="0.1.0",
        docs_url="/docs",
        redoc_url="/redoc",
    )

    # Add middleware (order matters: last added = first executed)
    app.add_middleware(AccessLogMiddleware)
    app.add_middleware(RequestIDMiddleware)

    app.add_exception_handler(DomainException, domain_exception_handler)

    # Health check endpoint
    @app.get("/health")
    def health_check():
        return {"status": "ok", "service": settings.service_name}

    # Prometheus metrics endpoint
    @app.get("/metrics")
    def metrics():
        return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)

    # Register API routers
    app.include_router(borrowers.router, prefix="/v1", tags=["borrowers"])
    app.include_router(loans.router, prefix="/v1", tags=["loans"])
    app.include_router(payments.router, prefix="/v1", tags=["payments"])
    app.include_router(balance.router, prefix="/v1", tags=["balance"])
    app.include_router(reports.router, prefix="/v1", tags=["reports"])

    return app


app = create_app()
