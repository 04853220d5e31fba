"""/v1/payments - repayment endpoints"""

from typing import List, Optional

from fastapi import APIRouter, Depends, Query

from loan_ledger.api.dependencies import get_accounting_service
from loan_ledger.api.v1.schemas import PaymentCreate, PaymentResponse
from loan_ledger.services.accounting import LoanAccountingService

router = APIRouter()


@router.post("/payments", response_model=PaymentResponse, status_code=201)
def create_payment(body: PaymentCreate, service: LoanAccountingService = Depends(get_accounting_service)):
    """
    Apply a payment to a loan.

    Returns 422 for a non-positive amount or one exceeding the outstanding
    balance, and 409 when the loan changed concurrently.
    """
    return service.apply_payment(
        loan_id=body.loan_id,
        amount=body.amount,
        payment_type=body.payment_type,
        payment_date=body.payment_date,
        description=body.description,
    )


@router.get("/payments", response_model=List[PaymentResponse])
def list_payments(
    loan_id: Optional[str] = Query(None),
    borrower_id: Optional[str] = Query(None),
    service: LoanAccountingService = Depends(get_accounting_service),
):
    return service.list_payments(loan_id=loan_id, borrower_id=borrower_id)


@router.get("/payments/{payment_id}", response_model=PaymentResponse)
def get_payment(payment_id: str, service: LoanAccountingService = Depends(get_accounting_service)):
    return service.get_payment(payment_id)
