"""Portfolio reporting - read-only derivations over entity snapshots"""

from datetime import date
from decimal import Decimal
from typing import Dict, Iterable, List

from loan_ledger.domain.lifecycle import effective_status
from loan_ledger.domain.models import (
    Borrower,
    BorrowerReport,
    BorrowerStatus,
    DashboardStats,
    Loan,
    LoanStatus,
    Payment,
    PortfolioSummary,
    ReportData,
)
from loan_ledger.domain.money import ZERO, to_money


def _total(values: Iterable[Decimal]) -> Decimal:
    return to_money(sum(values, ZERO))


def outstanding_loans(loans: List[Loan]) -> List[Loan]:
    """Active loans that still have a balance"""
    return [l for l in loans if l.status == LoanStatus.ACTIVE and l.outstanding_amount > 0]


def past_due_loans(loans: List[Loan], today: date) -> List[Loan]:
    return [l for l in outstanding_loans(loans) if l.due_date < today]


def borrowers_report(borrowers: List[Borrower], loans: List[Loan]) -> List[BorrowerReport]:
    loans_by_borrower: Dict[str, List[Loan]] = {}
    for loan in loans:
        loans_by_borrower.setdefault(loan.borrower_id, []).append(loan)

    report = []
    for borrower in borrowers:
        owned = loans_by_borrower.get(borrower.id, [])
        report.append(
            BorrowerReport(
                borrower=borrower,
                loans=owned,
                total_borrowed=_total(l.principal for l in owned),
                total_paid=_total(l.paid_amount for l in owned),
                current_outstanding=_total(l.outstanding_amount for l in owned),
            )
        )
    return report


def portfolio_summary(
    borrowers: List[Borrower],
    loans: List[Loan],
    payments: List[Payment],
) -> PortfolioSummary:
    """
    Global aggregates across the whole book.

    average_loan_size and default_rate are 0 (not NaN) for an empty book.
    default_rate is a percentage: defaulted loans / all loans * 100.
    """
    loan_count = len(loans)
    disbursed = _total(l.principal for l in loans)
    defaulted = sum(1 for l in loans if l.status == LoanStatus.DEFAULTED)

    if loan_count > 0:
        average_loan_size = to_money(disbursed / loan_count)
        default_rate = to_money(Decimal(defaulted) / loan_count * 100)
    else:
        average_loan_size = ZERO
        default_rate = ZERO

    return PortfolioSummary(
        total_borrowers=len(borrowers),
        total_loans_issued=loan_count,
        total_amount_disbursed=disbursed,
        total_amount_collected=_total(p.amount for p in payments),
        total_outstanding=_total(l.outstanding_amount for l in loans),
        average_loan_size=average_loan_size,
        default_rate=default_rate,
    )


def build_report(
    borrowers: List[Borrower],
    loans: List[Loan],
    payments: List[Payment],
    today: date,
) -> ReportData:
    """Main entry point: assemble every report view from one snapshot"""
    return ReportData(
        outstanding_loans=outstanding_loans(loans),
        past_due_loans=past_due_loans(loans, today),
        borrowers_report=borrowers_report(borrowers, loans),
        portfolio_summary=portfolio_summary(borrowers, loans, payments),
    )


def dashboard_stats(
    borrowers: List[Borrower],
    loans: List[Loan],
    payments: List[Payment],
    today: date,
) -> DashboardStats:
    statuses = [effective_status(l, today) for l in loans]
    return DashboardStats(
        total_borrowers=len(borrowers),
        active_borrowers=sum(1 for b in borrowers if b.status == BorrowerStatus.ACTIVE),
        total_loans=len(loans),
        active_loans=statuses.count(LoanStatus.ACTIVE),
        overdue_loans=statuses.count(LoanStatus.OVERDUE),
        total_payments=len(payments),
        total_outstanding=_total(l.outstanding_amount for l in loans),
        total_collected=_total(p.amount for p in payments),
    )
