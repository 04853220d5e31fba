"""Loan status state machine.

    active ──payment clears balance──► completed   (terminal)
    active ──manual──────────────────► defaulted   (terminal)
    active ──due date passes─────────► overdue     (derived at read time only)
"""

from datetime import date

from loan_ledger.domain.exceptions import ValidationError
from loan_ledger.domain.models import Loan, LoanStatus

TERMINAL_STATUSES = frozenset({LoanStatus.COMPLETED, LoanStatus.DEFAULTED})


def effective_status(loan: Loan, today: date) -> LoanStatus:
    """Stored status, with active loans past their due date shown as overdue"""
    if loan.status == LoanStatus.ACTIVE and loan.due_date < today and loan.outstanding_amount > 0:
        return LoanStatus.OVERDUE
    return LoanStatus(loan.status)


def status_after_payment(current: LoanStatus, outstanding_after: object) -> LoanStatus:
    """Only an active loan whose balance reaches zero becomes completed"""
    if current == LoanStatus.ACTIVE and outstanding_after == 0:
        return LoanStatus.COMPLETED
    return LoanStatus(current)


def check_manual_transition(current: LoanStatus, target: LoanStatus) -> None:
    """
    Validate a status change requested through a loan update.

    Raises:
        ValidationError: target is derived (overdue), reachable only by
            payment (completed), or leaves a terminal status
    """
    current = LoanStatus(current)
    target = LoanStatus(target)

    if target == current:
        return
    if target == LoanStatus.OVERDUE:
        raise ValidationError("Overdue is derived from the due date and cannot be set")
    if target == LoanStatus.COMPLETED:
        raise ValidationError("A loan is completed only by paying its outstanding amount")
    if current in TERMINAL_STATUSES:
        raise ValidationError(f"Loan is {current.value}; its status can no longer change")
    if target != LoanStatus.DEFAULTED:
        raise ValidationError(f"Cannot move loan from {current.value} to {target.value}")
