"""/v1/reports and /v1/dashboard - read-only portfolio views"""

from fastapi import APIRouter, Depends

from loan_ledger.api.dependencies import get_accounting_service
from loan_ledger.api.v1.schemas import DashboardResponse, ReportResponse
from loan_ledger.services.accounting import LoanAccountingService

router = APIRouter()


@router.get("/reports", response_model=ReportResponse)
def get_report(service: LoanAccountingService = Depends(get_accounting_service)):
    """
    Portfolio report from a point-in-time snapshot.

    Returns:
        Outstanding and past-due loans, per-borrower totals, portfolio summary
    """
    return ReportResponse.model_validate(service.generate_report())


@router.get("/dashboard", response_model=DashboardResponse)
def get_dashboard(service: LoanAccountingService = Depends(get_accounting_service)):
    return service.dashboard()
