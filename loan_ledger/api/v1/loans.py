"""/v1/loans - loan lifecycle endpoints"""

from typing import List, Optional

from fastapi import APIRouter, Depends, Query, Response

from loan_ledger.api.dependencies import get_accounting_service
from loan_ledger.api.v1.schemas import (
    LoanCreate,
    LoanResponse,
    LoanUpdate,
    PaymentResponse,
    ScheduleEntrySchema,
)
from loan_ledger.domain.models import Loan, LoanDuration, LoanStatus
from loan_ledger.services.accounting import LoanAccountingService

router = APIRouter()


def loan_response(service: LoanAccountingService, loan: Loan) -> LoanResponse:
    """Serialize a loan with its displayed (derived) status"""
    return LoanResponse.model_validate(loan).model_copy(update={"status": service.loan_status(loan)})


@router.post("/loans", response_model=LoanResponse, status_code=201)
def create_loan(body: LoanCreate, service: LoanAccountingService = Depends(get_accounting_service)):
    """
    Create and disburse a loan.

    Flow:
    1. Compute interest, total and installment
    2. Persist the loan with outstanding = total
    3. Post the disbursement to the shared ledger
    4. Recompute the borrower's totals
    """
    loan = service.create_loan(
        borrower_id=body.borrower_id,
        principal=body.principal,
        interest_rate=body.interest_rate,
        interest_type=body.interest_type,
        duration=LoanDuration(value=body.duration.value, unit=body.duration.unit),
        start_date=body.start_date,
    )
    return loan_response(service, loan)


@router.get("/loans", response_model=List[LoanResponse])
def list_loans(
    borrower_id: Optional[str] = Query(None),
    status: Optional[LoanStatus] = Query(None, description="Stored status filter"),
    service: LoanAccountingService = Depends(get_accounting_service),
):
    return [loan_response(service, loan) for loan in service.list_loans(borrower_id=borrower_id, status=status)]


@router.get("/loans/{loan_id}", response_model=LoanResponse)
def get_loan(loan_id: str, service: LoanAccountingService = Depends(get_accounting_service)):
    return loan_response(service, service.get_loan(loan_id))


@router.patch("/loans/{loan_id}", response_model=LoanResponse)
def update_loan(loan_id: str, body: LoanUpdate, service: LoanAccountingService = Depends(get_accounting_service)):
    patch = body.model_dump(exclude_unset=True)
    if body.duration is not None:
        patch["duration"] = LoanDuration(value=body.duration.value, unit=body.duration.unit)
    return loan_response(service, service.update_loan(loan_id, patch))


@router.post("/loans/{loan_id}/default", response_model=LoanResponse)
def default_loan(loan_id: str, service: LoanAccountingService = Depends(get_accounting_service)):
    return loan_response(service, service.default_loan(loan_id))


@router.delete("/loans/{loan_id}", status_code=204)
def delete_loan(loan_id: str, service: LoanAccountingService = Depends(get_accounting_service)):
    service.delete_loan(loan_id)
    return Response(status_code=204)


@router.get("/loans/{loan_id}/schedule", response_model=List[ScheduleEntrySchema])
def get_schedule(loan_id: str, service: LoanAccountingService = Depends(get_accounting_service)):
    return service.repayment_schedule(loan_id)


@router.get("/loans/{loan_id}/payments", response_model=List[PaymentResponse])
def list_loan_payments(loan_id: str, service: LoanAccountingService = Depends(get_accounting_service)):
    service.get_loan(loan_id)
    return service.list_payments(loan_id=loan_id)
