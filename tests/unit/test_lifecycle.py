"""Unit tests for the loan status state machine"""

import pytest
from datetime import date
from decimal import Decimal
from loan_ledger.domain.exceptions import ValidationError
from loan_ledger.domain.lifecycle import (
    check_manual_transition,
    effective_status,
    status_after_payment,
)
from loan_ledger.domain.models import LoanStatus


def test_active_loan_before_due_date(loan_factory):
    loan = loan_factory(due_date=date(2024, 4, 1))
    assert effective_status(loan, date(2024, 3, 15)) == LoanStatus.ACTIVE


def test_active_loan_on_due_date_is_not_overdue(loan_factory):
    loan = loan_factory(due_date=date(2024, 4, 1))
    assert effective_status(loan, date(2024, 4, 1)) == LoanStatus.ACTIVE


def test_active_loan_past_due_date_reads_as_overdue(loan_factory):
    """Test overdue is derived without touching the stored status"""
    loan = loan_factory(due_date=date(2024, 4, 1))

    assert effective_status(loan, date(2024, 4, 2)) == LoanStatus.OVERDUE
    assert loan.status == LoanStatus.ACTIVE


@pytest.mark.parametrize("status", [LoanStatus.COMPLETED, LoanStatus.DEFAULTED])
def test_terminal_loans_never_read_as_overdue(loan_factory, status):
    loan = loan_factory(status=status, due_date=date(2024, 1, 1))
    assert effective_status(loan, date(2024, 6, 1)) == status


def test_payment_clearing_balance_completes_active_loan():
    assert status_after_payment(LoanStatus.ACTIVE, Decimal("0.00")) == LoanStatus.COMPLETED


def test_partial_payment_keeps_loan_active():
    assert status_after_payment(LoanStatus.ACTIVE, Decimal("0.01")) == LoanStatus.ACTIVE


def test_payment_on_defaulted_loan_keeps_default():
    assert status_after_payment(LoanStatus.DEFAULTED, Decimal("0.00")) == LoanStatus.DEFAULTED


def test_manual_default_allowed():
    check_manual_transition(LoanStatus.ACTIVE, LoanStatus.DEFAULTED)


def test_unchanged_status_allowed():
    check_manual_transition(LoanStatus.COMPLETED, LoanStatus.COMPLETED)


@pytest.mark.parametrize(
    "current, target",
    [
        (LoanStatus.ACTIVE, LoanStatus.OVERDUE),
        (LoanStatus.ACTIVE, LoanStatus.COMPLETED),
        (LoanStatus.COMPLETED, LoanStatus.ACTIVE),
        (LoanStatus.COMPLETED, LoanStatus.DEFAULTED),
        (LoanStatus.DEFAULTED, LoanStatus.ACTIVE),
    ],
)
def test_forbidden_manual_transitions(current, target):
    with pytest.raises(ValidationError):
        check_manual_transition(current, target)


def test_transition_accepts_raw_values():
    """Test status strings from request payloads are coerced"""
    check_manual_transition("active", "defaulted")
    with pytest.raises(ValidationError):
        check_manual_transition("defaulted", "active")
