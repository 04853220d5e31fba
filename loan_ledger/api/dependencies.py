"""Dependency injection for FastAPI endpoints"""

from fastapi import Depends, Request
from sqlalchemy.orm import Session

from loan_ledger.infrastructure.database.repositories import EntityStore
from loan_ledger.infrastructure.database.session import get_db
from loan_ledger.services.accounting import LoanAccountingService
from loan_ledger.utils.date_utils import SystemClock


def get_request_id(request: Request) -> str:
    """Extract request ID from request state"""
    return getattr(request.state, "request_id", "unknown")


def get_clock() -> SystemClock:
    """Provide the wall clock (overridden in tests)"""
    return SystemClock()


def get_accounting_service(
    db: Session = Depends(get_db),
    clock=Depends(get_clock),
) -> LoanAccountingService:
    """Provide a per-request accounting service bound to the request's session"""
    return LoanAccountingService(EntityStore(db), clock)
