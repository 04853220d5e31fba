"""/v1/borrowers - borrower management"""

from typing import List, Optional

from fastapi import APIRouter, Depends, Query, Response

from loan_ledger.api.dependencies import get_accounting_service
from loan_ledger.api.v1.loans import loan_response
from loan_ledger.api.v1.schemas import BorrowerCreate, BorrowerResponse, BorrowerUpdate, LoanResponse
from loan_ledger.domain.models import BorrowerStatus
from loan_ledger.services.accounting import LoanAccountingService

router = APIRouter()


@router.post("/borrowers", response_model=BorrowerResponse, status_code=201)
def create_borrower(
    body: BorrowerCreate,
    service: LoanAccountingService = Depends(get_accounting_service),
):
    return service.create_borrower(**body.model_dump())


@router.get("/borrowers", response_model=List[BorrowerResponse])
def list_borrowers(
    status: Optional[BorrowerStatus] = Query(None),
    service: LoanAccountingService = Depends(get_accounting_service),
):
    return service.list_borrowers(status=status)


@router.get("/borrowers/{borrower_id}", response_model=BorrowerResponse)
def get_borrower(borrower_id: str, service: LoanAccountingService = Depends(get_accounting_service)):
    return service.get_borrower(borrower_id)


@router.get("/borrowers/{borrower_id}/loans", response_model=List[LoanResponse])
def list_borrower_loans(borrower_id: str, service: LoanAccountingService = Depends(get_accounting_service)):
    service.get_borrower(borrower_id)
    return [loan_response(service, loan) for loan in service.list_loans(borrower_id=borrower_id)]


@router.patch("/borrowers/{borrower_id}", response_model=BorrowerResponse)
def update_borrower(
    borrower_id: str,
    body: BorrowerUpdate,
    service: LoanAccountingService = Depends(get_accounting_service),
):
    return service.update_borrower(borrower_id, body.model_dump(exclude_unset=True))


@router.delete("/borrowers/{borrower_id}", status_code=204)
def delete_borrower(borrower_id: str, service: LoanAccountingService = Depends(get_accounting_service)):
    """
    Delete a borrower, its loans and payments.

    Returns 409 while any of its loans is still active.
    """
    service.delete_borrower(borrower_id)
    return Response(status_code=204)
