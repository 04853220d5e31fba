"""Service tests for loan accounting against a real (SQLite) database"""

import pytest
from datetime import date
from decimal import Decimal
from loan_ledger.domain.exceptions import (
    ConflictError,
    LedgerInconsistencyError,
    NotFoundError,
    ValidationError,
)
from loan_ledger.domain.models import (
    BorrowerStatus,
    DurationUnit,
    InterestType,
    LoanDuration,
    LoanStatus,
    PaymentType,
    TransactionType,
)
from loan_ledger.infrastructure.database.repositories import LOANS, EntityStore
from loan_ledger.services.accounting import LoanAccountingService
from loan_ledger.services.ledger import BalanceLedger


def assert_books_balance(service: LoanAccountingService):
    """Loan, borrower and ledger figures agree with each other"""
    loans = service.list_loans()
    for loan in loans:
        assert loan.outstanding_amount + loan.paid_amount == loan.total_amount
        assert loan.outstanding_amount >= 0

    for borrower in service.list_borrowers():
        owned = [l for l in loans if l.borrower_id == borrower.id]
        assert borrower.total_loans == len(owned)
        assert borrower.total_outstanding == sum((l.outstanding_amount for l in owned), Decimal("0.00"))

    assert service.verify_ledger().consistent


def create_zero_interest_loan(service, borrower_id, principal="500.00"):
    return service.create_loan(
        borrower_id=borrower_id,
        principal=Decimal(principal),
        interest_rate=Decimal("0"),
        interest_type=InterestType.SIMPLE,
        duration=LoanDuration(1, DurationUnit.MONTHS),
        start_date=date(2024, 3, 1),
    )


# Borrowers


def test_create_borrower_defaults(service):
    borrower = service.create_borrower(name="  Peter Mwale ", phone="0966", address="Ndola")

    assert borrower.name == "Peter Mwale"
    assert borrower.status == BorrowerStatus.ACTIVE
    assert borrower.joining_date == date(2024, 3, 15)
    assert borrower.total_loans == 0
    assert borrower.total_outstanding == Decimal("0.00")


def test_create_borrower_requires_contact_fields(service):
    with pytest.raises(ValidationError):
        service.create_borrower(name="", phone="0966", address="Ndola")


def test_update_borrower_name_propagates_to_loans(funded_service, borrower, monthly_loan):
    funded_service.update_borrower(borrower.id, {"name": "Jane Phiri"})

    assert funded_service.get_borrower(borrower.id).name == "Jane Phiri"
    assert funded_service.get_loan(monthly_loan.id).borrower_name == "Jane Phiri"


def test_update_borrower_rejects_derived_fields(service, borrower):
    with pytest.raises(ValidationError):
        service.update_borrower(borrower.id, {"total_outstanding": Decimal("0")})


@pytest.mark.parametrize("patch", [{"joining_date": None}, {"status": None}, {"phone": " "}])
def test_update_borrower_rejects_clearing_required_fields(service, borrower, patch):
    with pytest.raises(ValidationError):
        service.update_borrower(borrower.id, patch)
    assert service.get_borrower(borrower.id).joining_date == date(2024, 1, 10)


def test_list_borrowers_by_status(service, borrower):
    service.create_borrower(name="Dormant", phone="1", address="x", status=BorrowerStatus.INACTIVE)

    assert [b.id for b in service.list_borrowers(status=BorrowerStatus.ACTIVE)] == [borrower.id]
    assert len(service.list_borrowers()) == 2


def test_missing_borrower_not_found(service):
    with pytest.raises(NotFoundError):
        service.get_borrower("nope")


# Loans


def test_create_loan_disburses_and_aggregates(funded_service, borrower, monthly_loan):
    """Test scenario: 1000 at 10% simple, 1 month"""
    assert monthly_loan.total_interest == Decimal("100.00")
    assert monthly_loan.total_amount == Decimal("1100.00")
    assert monthly_loan.installment_amount == Decimal("1100.00")
    assert monthly_loan.outstanding_amount == Decimal("1100.00")
    assert monthly_loan.paid_amount == Decimal("0.00")
    assert monthly_loan.due_date == date(2024, 4, 1)
    assert monthly_loan.status == LoanStatus.ACTIVE
    assert monthly_loan.borrower_name == "Jane Banda"

    balance = funded_service.get_balance()
    assert balance.available_balance == Decimal("9000.00")
    assert balance.total_disbursed == Decimal("1000.00")
    assert balance.total_outstanding == Decimal("1100.00")

    updated = funded_service.get_borrower(borrower.id)
    assert updated.total_loans == 1
    assert updated.total_outstanding == Decimal("1100.00")
    assert_books_balance(funded_service)


def test_create_loan_for_missing_borrower(funded_service):
    with pytest.raises(ValidationError):
        create_zero_interest_loan(funded_service, "ghost")
    assert funded_service.list_loans() == []


def test_create_loan_for_inactive_borrower(funded_service, borrower):
    funded_service.update_borrower(borrower.id, {"status": BorrowerStatus.INACTIVE})

    with pytest.raises(ValidationError):
        create_zero_interest_loan(funded_service, borrower.id)


def test_create_loan_accepts_duration_mapping(funded_service, borrower):
    loan = funded_service.create_loan(
        borrower_id=borrower.id,
        principal="1200",
        interest_rate="12",
        interest_type="annual",
        duration={"value": 6, "unit": "months"},
    )

    assert loan.total_amount == Decimal("1272.00")
    assert loan.installment_amount == Decimal("212.00")
    assert loan.start_date == date(2024, 3, 15)
    assert loan.term_in_months == 6


def test_weekly_loan_term_in_months(funded_service, borrower):
    loan = funded_service.create_loan(
        borrower_id=borrower.id,
        principal=Decimal("520"),
        interest_rate=Decimal("10"),
        interest_type=InterestType.ANNUAL,
        duration=LoanDuration(13, DurationUnit.WEEKS),
        start_date=date(2024, 3, 1),
    )

    assert loan.total_interest == Decimal("13.00")
    assert loan.due_date == date(2024, 5, 31)
    assert loan.term_in_months == 3


def test_create_loan_rolls_back_when_ledger_fails(store, clock, borrower):
    """Test the loan, borrower totals and ledger commit together or not at all"""

    class BrokenLedger(BalanceLedger):
        def record_disbursement(self, amount, loan_id, receivable=None):
            raise LedgerInconsistencyError("ledger unavailable")

    service = LoanAccountingService(store, clock, ledger=BrokenLedger(store, clock))
    with pytest.raises(LedgerInconsistencyError):
        create_zero_interest_loan(service, borrower.id)

    assert service.list_loans() == []
    assert service.get_borrower(borrower.id).total_loans == 0


def test_loan_reads_overdue_after_due_date(funded_service, clock, monthly_loan):
    clock.advance(days=30)

    loan = funded_service.get_loan(monthly_loan.id)
    assert funded_service.loan_status(loan) == LoanStatus.OVERDUE
    assert loan.status == LoanStatus.ACTIVE
    assert funded_service.dashboard().overdue_loans == 1


def test_update_loan_terms_before_payments_reconciles_ledger(funded_service, borrower, monthly_loan):
    updated = funded_service.update_loan(monthly_loan.id, {"principal": Decimal("2000")})

    assert updated.total_interest == Decimal("200.00")
    assert updated.total_amount == Decimal("2200.00")
    assert updated.outstanding_amount == Decimal("2200.00")
    assert updated.version == monthly_loan.version + 1

    balance = funded_service.get_balance()
    assert balance.available_balance == Decimal("8000.00")
    assert balance.total_disbursed == Decimal("2000.00")
    assert balance.total_outstanding == Decimal("2200.00")

    latest = funded_service.balance_transactions()[0]
    assert latest.type == TransactionType.DISBURSEMENT
    assert latest.amount == Decimal("1000.00")
    assert latest.related_loan_id == monthly_loan.id
    assert funded_service.get_borrower(borrower.id).total_outstanding == Decimal("2200.00")
    assert_books_balance(funded_service)


def test_update_loan_lower_principal_returns_cash(funded_service, monthly_loan):
    funded_service.update_loan(
        monthly_loan.id,
        {"principal": Decimal("400"), "duration": LoanDuration(2, DurationUnit.MONTHS)},
    )

    loan = funded_service.get_loan(monthly_loan.id)
    assert loan.total_amount == Decimal("440.00")
    assert loan.installment_amount == Decimal("220.00")
    assert loan.due_date == date(2024, 5, 1)

    latest = funded_service.balance_transactions()[0]
    assert latest.type == TransactionType.DEPOSIT
    assert latest.amount == Decimal("600.00")
    assert funded_service.get_balance().available_balance == Decimal("9600.00")
    assert_books_balance(funded_service)


def test_update_loan_terms_after_payment_forbidden(funded_service, monthly_loan):
    funded_service.apply_payment(monthly_loan.id, Decimal("100"))

    with pytest.raises(ConflictError):
        funded_service.update_loan(monthly_loan.id, {"interest_rate": Decimal("5")})
    assert funded_service.get_loan(monthly_loan.id).total_amount == Decimal("1100.00")


def test_update_loan_start_date_moves_due_date(funded_service, monthly_loan):
    updated = funded_service.update_loan(monthly_loan.id, {"start_date": date(2024, 1, 31)})

    assert updated.due_date == date(2024, 2, 29)
    assert len(funded_service.balance_transactions()) == 2


def test_update_loan_no_changes_is_a_noop(funded_service, monthly_loan):
    loan = funded_service.update_loan(monthly_loan.id, {"principal": Decimal("1000.00")})
    assert loan.version == monthly_loan.version


def test_update_loan_rejects_unknown_fields(funded_service, monthly_loan):
    with pytest.raises(ValidationError):
        funded_service.update_loan(monthly_loan.id, {"outstanding_amount": Decimal("0")})


@pytest.mark.parametrize("target", [LoanStatus.COMPLETED, LoanStatus.OVERDUE])
def test_update_loan_rejects_payment_only_and_derived_statuses(funded_service, monthly_loan, target):
    with pytest.raises(ValidationError):
        funded_service.update_loan(monthly_loan.id, {"status": target})


def test_default_loan_is_terminal(funded_service, monthly_loan):
    defaulted = funded_service.default_loan(monthly_loan.id)

    assert defaulted.status == LoanStatus.DEFAULTED
    with pytest.raises(ValidationError):
        funded_service.update_loan(monthly_loan.id, {"status": LoanStatus.ACTIVE})


def test_schedule_for_stored_loan(funded_service, borrower):
    loan = funded_service.create_loan(
        borrower_id=borrower.id,
        principal=Decimal("1000"),
        interest_rate=Decimal("0"),
        interest_type=InterestType.SIMPLE,
        duration=LoanDuration(3, DurationUnit.MONTHS),
        start_date=date(2024, 3, 1),
    )
    funded_service.apply_payment(loan.id, Decimal("333.33"))

    schedule = funded_service.repayment_schedule(loan.id)
    assert [e.emi_amount for e in schedule] == [Decimal("333.33"), Decimal("333.33"), Decimal("333.34")]
    assert schedule[0].status.value == "paid"
    assert schedule[1].status.value == "pending"


# Payments


def test_full_payment_completes_loan(funded_service, borrower, monthly_loan):
    """Test scenario: paying 1100 on a 1100 loan"""
    before = funded_service.get_balance()
    payment = funded_service.apply_payment(monthly_loan.id, Decimal("1100"), PaymentType.FULL)

    loan = funded_service.get_loan(monthly_loan.id)
    assert loan.outstanding_amount == Decimal("0.00")
    assert loan.paid_amount == Decimal("1100.00")
    assert loan.status == LoanStatus.COMPLETED

    after = funded_service.get_balance()
    assert after.available_balance - before.available_balance == Decimal("1100.00")
    assert after.total_collected - before.total_collected == Decimal("1100.00")
    assert after.total_outstanding == Decimal("0.00")

    latest = funded_service.balance_transactions()[0]
    assert latest.type == TransactionType.COLLECTION
    assert latest.related_payment_id == payment.id
    assert payment.payment_date == date(2024, 3, 15)
    assert payment.borrower_id == borrower.id
    assert_books_balance(funded_service)


def test_partial_payments_accumulate(funded_service, borrower, monthly_loan):
    funded_service.apply_payment(monthly_loan.id, Decimal("300"))
    funded_service.apply_payment(monthly_loan.id, Decimal("250.50"), PaymentType.EMI)

    loan = funded_service.get_loan(monthly_loan.id)
    assert loan.paid_amount == Decimal("550.50")
    assert loan.outstanding_amount == Decimal("549.50")
    assert loan.status == LoanStatus.ACTIVE
    assert funded_service.get_borrower(borrower.id).total_outstanding == Decimal("549.50")
    assert len(funded_service.list_payments(loan_id=monthly_loan.id)) == 2
    assert len(funded_service.list_payments(borrower_id=borrower.id)) == 2
    assert_books_balance(funded_service)


def test_overpayment_rejected_without_side_effects(funded_service, monthly_loan):
    before = funded_service.get_balance()

    with pytest.raises(ValidationError):
        funded_service.apply_payment(monthly_loan.id, Decimal("1100.01"))

    assert funded_service.get_loan(monthly_loan.id).outstanding_amount == Decimal("1100.00")
    assert funded_service.list_payments() == []
    assert funded_service.get_balance().available_balance == before.available_balance


@pytest.mark.parametrize("amount", [Decimal("0"), Decimal("-10"), "abc", "NaN", "Infinity", None])
def test_invalid_payment_amounts_rejected(funded_service, monthly_loan, amount):
    with pytest.raises(ValidationError):
        funded_service.apply_payment(monthly_loan.id, amount)
    assert funded_service.list_payments() == []


def test_sub_cent_payment_rejected_not_rounded(funded_service, monthly_loan):
    with pytest.raises(ValidationError):
        funded_service.apply_payment(monthly_loan.id, "10.005")

    payment = funded_service.apply_payment(monthly_loan.id, "10.050")
    assert payment.amount == Decimal("10.05")


@pytest.mark.parametrize(
    "principal, rate",
    [("NaN", "10"), ("1000", "NaN"), ("Infinity", "10"), ("1000.005", "10"), ("1000", "2.125")],
)
def test_create_loan_rejects_non_finite_and_sub_cent_inputs(funded_service, borrower, principal, rate):
    with pytest.raises(ValidationError):
        funded_service.create_loan(
            borrower_id=borrower.id,
            principal=principal,
            interest_rate=rate,
            interest_type=InterestType.SIMPLE,
            duration=LoanDuration(1, DurationUnit.MONTHS),
        )
    assert funded_service.list_loans() == []


def test_payment_for_missing_loan(funded_service):
    with pytest.raises(NotFoundError):
        funded_service.apply_payment("ghost", Decimal("10"))


def test_payment_on_defaulted_loan_keeps_status(funded_service, monthly_loan):
    funded_service.default_loan(monthly_loan.id)
    funded_service.apply_payment(monthly_loan.id, Decimal("1100"))

    loan = funded_service.get_loan(monthly_loan.id)
    assert loan.outstanding_amount == Decimal("0.00")
    assert loan.status == LoanStatus.DEFAULTED
    assert_books_balance(funded_service)


def test_payment_on_completed_loan_rejected(funded_service, monthly_loan):
    funded_service.apply_payment(monthly_loan.id, Decimal("1100"))

    with pytest.raises(ValidationError):
        funded_service.apply_payment(monthly_loan.id, Decimal("0.01"))


class InterleavingStore(EntityStore):
    """Runs a callback right after the first loan read, standing in for a concurrent writer"""

    def __init__(self, db, on_loan_read):
        super().__init__(db)
        self.on_loan_read = on_loan_read

    def get(self, collection, entity_id):
        entity = super().get(collection, entity_id)
        if collection == LOANS and self.on_loan_read is not None:
            callback, self.on_loan_read = self.on_loan_read, None
            callback()
        return entity


def test_concurrent_payment_conflicts_instead_of_overpaying(db, clock, session_factory, service, monthly_loan):
    """Test two 600 payments against 1100 outstanding cannot both succeed"""

    def pay_from_other_session():
        other = session_factory()
        try:
            LoanAccountingService(EntityStore(other), clock).apply_payment(monthly_loan.id, Decimal("600"))
        finally:
            other.close()

    racing = LoanAccountingService(InterleavingStore(db, pay_from_other_session), clock)
    with pytest.raises(ConflictError):
        racing.apply_payment(monthly_loan.id, Decimal("600"))

    loan = service.get_loan(monthly_loan.id)
    assert loan.paid_amount == Decimal("600.00")
    assert loan.outstanding_amount == Decimal("500.00")
    assert len(service.list_payments(loan_id=monthly_loan.id)) == 1
    assert_books_balance(service)


def test_borrower_recompute_is_idempotent(funded_service, borrower, monthly_loan):
    first = funded_service.aggregator.recompute(borrower.id)
    second = funded_service.aggregator.recompute(borrower.id)

    assert first == second


# Deletion


def test_delete_loan_refunds_principal_less_payments(funded_service, borrower, monthly_loan):
    """Test scenario: principal 1000, paid 300 → 700 deposited back"""
    funded_service.apply_payment(monthly_loan.id, Decimal("300"))
    funded_service.delete_loan(monthly_loan.id)

    with pytest.raises(NotFoundError):
        funded_service.get_loan(monthly_loan.id)
    assert funded_service.list_payments() == []

    refund = funded_service.balance_transactions()[0]
    assert refund.type == TransactionType.DEPOSIT
    assert refund.amount == Decimal("700.00")
    assert refund.related_loan_id == monthly_loan.id

    balance = funded_service.get_balance()
    assert balance.available_balance == Decimal("10000.00")
    assert balance.total_disbursed == Decimal("0.00")
    assert balance.total_collected == Decimal("0.00")
    assert balance.total_outstanding == Decimal("0.00")

    updated = funded_service.get_borrower(borrower.id)
    assert updated.total_loans == 0
    assert updated.total_outstanding == Decimal("0.00")
    assert_books_balance(funded_service)


def test_delete_loan_paid_beyond_principal_claws_back(funded_service, monthly_loan):
    funded_service.apply_payment(monthly_loan.id, Decimal("1100"))
    funded_service.delete_loan(monthly_loan.id)

    clawback = funded_service.balance_transactions()[0]
    assert clawback.type == TransactionType.DISBURSEMENT
    assert clawback.amount == Decimal("100.00")
    assert funded_service.get_balance().available_balance == Decimal("10000.00")
    assert_books_balance(funded_service)


def test_delete_missing_loan(funded_service):
    with pytest.raises(NotFoundError):
        funded_service.delete_loan("ghost")


def test_delete_borrower_with_active_loan_conflicts(funded_service, borrower, monthly_loan):
    with pytest.raises(ConflictError):
        funded_service.delete_borrower(borrower.id)

    assert funded_service.get_borrower(borrower.id).total_loans == 1
    assert funded_service.get_loan(monthly_loan.id).status == LoanStatus.ACTIVE


def test_delete_borrower_with_completed_loan(funded_service, borrower):
    """Test scenario: completed loan of 500 fully repaid"""
    loan = create_zero_interest_loan(funded_service, borrower.id)
    funded_service.apply_payment(loan.id, Decimal("500"))
    assert funded_service.get_balance().total_collected == Decimal("500.00")
    transactions_before = len(funded_service.balance_transactions())

    funded_service.delete_borrower(borrower.id)

    balance = funded_service.get_balance()
    assert balance.total_collected == Decimal("0.00")
    assert balance.total_disbursed == Decimal("0.00")
    assert balance.available_balance == Decimal("10000.00")
    assert len(funded_service.balance_transactions()) == transactions_before
    assert funded_service.list_borrowers() == []
    assert funded_service.list_loans() == []
    assert_books_balance(funded_service)


def test_delete_borrower_with_defaulted_loan(funded_service, borrower, monthly_loan):
    funded_service.apply_payment(monthly_loan.id, Decimal("200"))
    funded_service.default_loan(monthly_loan.id)

    funded_service.delete_borrower(borrower.id)

    balance = funded_service.get_balance()
    assert balance.available_balance == Decimal("10000.00")
    assert balance.total_outstanding == Decimal("0.00")
    assert balance.total_collected == Decimal("0.00")
    assert funded_service.reconcile().consistent


# Balance and reports


def test_set_available_balance_requires_description(funded_service):
    with pytest.raises(ValidationError):
        funded_service.set_available_balance(Decimal("1"), " ")


def test_books_balance_through_a_full_lifecycle(funded_service, borrower, clock):
    """Test ledger outstanding equals the loan book after every mutation"""
    second = funded_service.create_borrower(name="Peter Mwale", phone="0966", address="Ndola")
    a = create_zero_interest_loan(funded_service, borrower.id, "800.00")
    assert_books_balance(funded_service)
    b = funded_service.create_loan(
        borrower_id=second.id,
        principal=Decimal("1200"),
        interest_rate=Decimal("12"),
        interest_type=InterestType.ANNUAL,
        duration=LoanDuration(6, DurationUnit.MONTHS),
    )
    assert_books_balance(funded_service)
    funded_service.apply_payment(b.id, Decimal("212"), PaymentType.EMI)
    assert_books_balance(funded_service)
    funded_service.update_loan(a.id, {"interest_rate": Decimal("5")})
    assert_books_balance(funded_service)
    funded_service.apply_payment(a.id, Decimal("840"), PaymentType.FULL)
    assert_books_balance(funded_service)
    clock.advance(days=200)
    funded_service.default_loan(b.id)
    assert_books_balance(funded_service)
    funded_service.delete_loan(b.id)
    assert_books_balance(funded_service)
    funded_service.delete_borrower(borrower.id)
    assert_books_balance(funded_service)

    balance = funded_service.get_balance()
    assert balance.total_outstanding == Decimal("0.00")
    assert balance.total_disbursed == Decimal("0.00")
    assert balance.available_balance == Decimal("10000.00")


def test_generate_report(funded_service, borrower, clock, monthly_loan):
    funded_service.apply_payment(monthly_loan.id, Decimal("100"))
    clock.advance(days=20)

    report = funded_service.generate_report()
    assert [l.id for l in report.outstanding_loans] == [monthly_loan.id]
    assert [l.id for l in report.past_due_loans] == [monthly_loan.id]
    assert report.borrowers_report[0].total_paid == Decimal("100.00")
    assert report.portfolio_summary.total_amount_collected == Decimal("100.00")
    assert report.portfolio_summary.default_rate == Decimal("0.00")
