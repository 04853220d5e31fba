"""/v1/balance - shared lending capital and its transaction log"""

from typing import List

from fastapi import APIRouter, Depends

from loan_ledger.api.dependencies import get_accounting_service
from loan_ledger.api.v1.schemas import (
    BalanceResponse,
    BalanceTransactionResponse,
    BalanceUpdate,
    ReconciliationResponse,
)
from loan_ledger.services.accounting import LoanAccountingService

router = APIRouter()


@router.get("/balance", response_model=BalanceResponse)
def get_balance(service: LoanAccountingService = Depends(get_accounting_service)):
    return service.get_balance()


@router.put("/balance", response_model=BalanceResponse)
def set_balance(body: BalanceUpdate, service: LoanAccountingService = Depends(get_accounting_service)):
    """Administrative override; the delta is logged as a balance transaction"""
    return service.set_available_balance(body.amount, body.description)


@router.get("/balance/transactions", response_model=List[BalanceTransactionResponse])
def list_transactions(service: LoanAccountingService = Depends(get_accounting_service)):
    """Transaction log, newest first"""
    return service.balance_transactions()


@router.get("/balance/reconciliation", response_model=ReconciliationResponse)
def reconcile(service: LoanAccountingService = Depends(get_accounting_service)):
    """Ledger total_outstanding versus the sum recomputed from all loans"""
    return ReconciliationResponse.model_validate(service.reconcile())
