"""Loan accounting - lifecycle of borrowers, loans and payments and their ledger effects"""

from datetime import date
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, List, Optional

from loan_ledger.domain.calculator import calculate_due_date, calculate_loan_terms
from loan_ledger.domain.exceptions import ConflictError, ValidationError
from loan_ledger.domain.installments import generate_repayment_schedule
from loan_ledger.domain.lifecycle import check_manual_transition, effective_status, status_after_payment
from loan_ledger.domain.models import (
    AccountBalance,
    BalanceTransaction,
    Borrower,
    BorrowerStatus,
    DashboardStats,
    DurationUnit,
    InterestType,
    Loan,
    LoanDuration,
    LoanStatus,
    Payment,
    PaymentType,
    ReconciliationResult,
    ReportData,
    ScheduleEntry,
    TransactionType,
)
from loan_ledger.domain.money import ZERO, to_money
from loan_ledger.domain.reports import build_report, dashboard_stats
from loan_ledger.infrastructure.database.repositories import BORROWERS, LOANS, PAYMENTS, EntityStore
from loan_ledger.infrastructure.observability.logging import log_loan_event
from loan_ledger.infrastructure.observability.metrics import (
    loans_disbursed_counter,
    payments_collected_counter,
    payments_rejected_counter,
)
from loan_ledger.services.aggregator import BorrowerAggregator
from loan_ledger.services.ledger import BalanceLedger

BORROWER_FIELDS = frozenset({"name", "phone", "address", "email", "joining_date", "status"})
TERM_FIELDS = ("principal", "interest_rate", "interest_type", "duration")
LOAN_PATCH_FIELDS = frozenset(TERM_FIELDS + ("start_date", "status"))


def _decimal(value: Any, field: str) -> Decimal:
    """Parse a money or rate input; sub-cent precision is rejected, not rounded"""
    try:
        raw = Decimal(str(value)) if isinstance(value, float) else Decimal(value)
    except (InvalidOperation, TypeError, ValueError) as e:
        raise ValidationError(f"{field} must be a number") from e
    if not raw.is_finite():
        raise ValidationError(f"{field} must be a finite number")
    amount = to_money(raw)
    if amount != raw:
        raise ValidationError(f"{field} cannot have more than 2 decimal places")
    return amount


def _duration(value: Any) -> LoanDuration:
    """Normalize a LoanDuration or a {"value", "unit"} mapping"""
    try:
        if isinstance(value, LoanDuration):
            raw_value, raw_unit = value.value, value.unit
        else:
            raw_value, raw_unit = value["value"], value["unit"]
        duration = LoanDuration(value=int(raw_value), unit=DurationUnit(raw_unit))
    except (KeyError, TypeError, ValueError) as e:
        raise ValidationError(f"Invalid duration: {value!r}") from e
    if duration.value <= 0:
        raise ValidationError("Duration must be at least one period")
    return duration


def _required_text(value: Any, field: str) -> str:
    if value is None or not str(value).strip():
        raise ValidationError(f"{field} is required")
    return str(value).strip()


def _enum(enum_type, value: Any, field: str):
    try:
        return enum_type(value)
    except ValueError as e:
        raise ValidationError(f"Invalid {field}: {value!r}") from e


class LoanAccountingService:
    """
    Orchestrates loan creation, updates, deletion and payment application.

    Every mutation runs inside one store transaction as a named sequence:
    validate → compute derived fields → persist entity → ledger posting →
    borrower aggregate recompute. A failure at any step rolls the whole
    sequence back, so loan balances, borrower totals and the shared ledger
    stay mutually consistent.
    """

    def __init__(
        self,
        store: EntityStore,
        clock,
        ledger: Optional[BalanceLedger] = None,
        aggregator: Optional[BorrowerAggregator] = None,
    ):
        self.store = store
        self.clock = clock
        self.ledger = ledger or BalanceLedger(store, clock)
        self.aggregator = aggregator or BorrowerAggregator(store, clock)

    # Borrowers

    def create_borrower(
        self,
        name: str,
        phone: str,
        address: str,
        email: Optional[str] = None,
        joining_date: Optional[date] = None,
        status: BorrowerStatus = BorrowerStatus.ACTIVE,
    ) -> Borrower:
        now = self.clock.now()
        record = {
            "name": _required_text(name, "name"),
            "phone": _required_text(phone, "phone"),
            "address": _required_text(address, "address"),
            "email": email or None,
            "joining_date": joining_date or self.clock.today(),
            "status": _enum(BorrowerStatus, status, "borrower status"),
            "total_loans": 0,
            "total_outstanding": ZERO,
            "created_at": now,
            "updated_at": now,
        }
        with self.store.transaction():
            return self.store.insert(BORROWERS, record)

    def update_borrower(self, borrower_id: str, patch: Dict[str, Any]) -> Borrower:
        """
        Update contact fields or status. Derived totals are not patchable.
        A new name is copied onto the borrower's loans.
        """
        unknown = set(patch) - BORROWER_FIELDS
        if unknown:
            raise ValidationError(f"Cannot update borrower fields: {', '.join(sorted(unknown))}")

        changes = dict(patch)
        for field in ("name", "phone", "address"):
            if field in changes:
                changes[field] = _required_text(changes[field], field)
        if "joining_date" in changes and changes["joining_date"] is None:
            raise ValidationError("joining_date is required")
        if "status" in changes:
            changes["status"] = _enum(BorrowerStatus, changes["status"], "borrower status")
        if not changes:
            return self.store.get(BORROWERS, borrower_id)

        now = self.clock.now()
        changes["updated_at"] = now
        with self.store.transaction():
            borrower = self.store.update(BORROWERS, borrower_id, changes)
            if "name" in patch:
                for loan in self.store.list(LOANS, borrower_id=borrower_id):
                    self.store.update(LOANS, loan.id, {"borrower_name": borrower.name, "updated_at": now})
            return borrower

    def get_borrower(self, borrower_id: str) -> Borrower:
        return self.store.get(BORROWERS, borrower_id)

    def list_borrowers(self, status: Optional[BorrowerStatus] = None) -> List[Borrower]:
        filters = {"status": BorrowerStatus(status)} if status is not None else {}
        return self.store.list(BORROWERS, **filters)

    def delete_borrower(self, borrower_id: str) -> None:
        """
        Delete a borrower with all its loans and payments.

        Ledger effects: one compensating adjustment for the aggregate
        principal-minus-paid refund (releasing the loans' principal and
        outstanding figures), then a separate downward correction of
        total_collected by the deleted payments.

        Raises:
            NotFoundError: borrower does not exist
            ConflictError: borrower still has an active loan
        """
        with self.store.transaction():
            borrower = self.store.get(BORROWERS, borrower_id)
            loans = self.store.list(LOANS, borrower_id=borrower_id)
            active = [l.id for l in loans if l.status == LoanStatus.ACTIVE]
            if active:
                raise ConflictError(f"Borrower {borrower.name} has {len(active)} active loan(s)")

            refund = ZERO
            released_principal = ZERO
            released_outstanding = ZERO
            collected = ZERO
            for loan in loans:
                for payment in self.store.list(PAYMENTS, loan_id=loan.id):
                    collected += payment.amount
                    self.store.delete(PAYMENTS, payment.id)
                self.store.delete(LOANS, loan.id)
                refund += loan.principal - loan.paid_amount
                released_principal += loan.principal
                released_outstanding += loan.outstanding_amount
            self.store.delete(BORROWERS, borrower_id)

            if loans:
                self.ledger.record_adjustment(
                    abs(refund),
                    TransactionType.DEPOSIT if refund >= 0 else TransactionType.DISBURSEMENT,
                    f"Borrower {borrower.name} deleted with {len(loans)} loan(s)",
                    disbursed_delta=-released_principal,
                    outstanding_delta=-released_outstanding,
                )
            if collected > 0:
                self.ledger.correct_collected(collected, f"Payments of deleted borrower {borrower.name}")

    # Loans

    def create_loan(
        self,
        borrower_id: str,
        principal: Decimal,
        interest_rate: Decimal,
        interest_type: InterestType,
        duration: LoanDuration,
        start_date: Optional[date] = None,
    ) -> Loan:
        """
        Create and disburse a loan.

        Raises:
            ValidationError: borrower missing or inactive, principal <= 0,
                negative rate, or malformed duration/type
        """
        principal = _decimal(principal, "principal")
        interest_rate = _decimal(interest_rate, "interest_rate")
        interest_type = _enum(InterestType, interest_type, "interest type")
        duration = _duration(duration)
        start_date = start_date or self.clock.today()

        # 1. Compute derived fields
        terms = calculate_loan_terms(principal, interest_rate, interest_type, duration)
        due_date = calculate_due_date(start_date, duration)

        with self.store.transaction():
            borrower = self.store.find(BORROWERS, borrower_id)
            if borrower is None:
                raise ValidationError(f"Borrower {borrower_id} does not exist")
            if borrower.status != BorrowerStatus.ACTIVE:
                raise ValidationError(f"Borrower {borrower.name} is not active")

            # 2. Persist loan
            now = self.clock.now()
            loan = self.store.insert(
                LOANS,
                {
                    "borrower_id": borrower.id,
                    "borrower_name": borrower.name,
                    "principal": principal,
                    "interest_rate": interest_rate,
                    "interest_type": interest_type,
                    "duration": duration,
                    "start_date": start_date,
                    "due_date": due_date,
                    "status": LoanStatus.ACTIVE,
                    "installment_amount": terms.installment_amount,
                    "total_interest": terms.total_interest,
                    "total_amount": terms.total_amount,
                    "outstanding_amount": terms.total_amount,
                    "paid_amount": ZERO,
                    "disbursement_date": now,
                    "created_at": now,
                    "updated_at": now,
                },
            )

            # 3. Ledger disbursement; the full repayable amount becomes outstanding
            self.ledger.record_disbursement(principal, loan.id, receivable=loan.total_amount)

            # 4. Borrower aggregates
            self.aggregator.recompute(borrower.id)

        loans_disbursed_counter.labels(interest_type=interest_type.value).inc()
        log_loan_event("created", loan.id, borrower.id, principal=principal, total_amount=loan.total_amount)
        return loan

    def update_loan(self, loan_id: str, patch: Dict[str, Any]) -> Loan:
        """
        Update loan terms, start date or status.

        A change to principal, rate, type or duration recomputes every
        derived figure from the new inputs. That is only allowed while the
        loan has no payments; the difference is then posted to the ledger as
        a reconciling adjustment so ledger totals keep matching the book.

        Raises:
            NotFoundError: loan does not exist
            ValidationError: bad field or illegal status transition
            ConflictError: terms edited after a payment, or concurrent write
        """
        unknown = set(patch) - LOAN_PATCH_FIELDS
        if unknown:
            raise ValidationError(f"Cannot update loan fields: {', '.join(sorted(unknown))}")

        with self.store.transaction():
            loan = self.store.get(LOANS, loan_id)

            principal = _decimal(patch["principal"], "principal") if "principal" in patch else loan.principal
            rate = _decimal(patch["interest_rate"], "interest_rate") if "interest_rate" in patch else loan.interest_rate
            interest_type = (
                _enum(InterestType, patch["interest_type"], "interest type")
                if "interest_type" in patch
                else loan.interest_type
            )
            duration = _duration(patch["duration"]) if "duration" in patch else loan.duration
            start_date = patch.get("start_date") or loan.start_date

            terms_changed = (principal, rate, interest_type, duration) != (
                loan.principal,
                loan.interest_rate,
                loan.interest_type,
                loan.duration,
            )

            changes: Dict[str, Any] = {}
            if terms_changed:
                if loan.paid_amount > 0 or self.store.list(PAYMENTS, loan_id=loan_id):
                    raise ConflictError("Loan terms cannot change once payments have been recorded")
                terms = calculate_loan_terms(principal, rate, interest_type, duration)
                changes.update(
                    principal=principal,
                    interest_rate=rate,
                    interest_type=interest_type,
                    duration=duration,
                    total_interest=terms.total_interest,
                    total_amount=terms.total_amount,
                    installment_amount=terms.installment_amount,
                    outstanding_amount=terms.total_amount,
                    paid_amount=ZERO,
                )

            if terms_changed or start_date != loan.start_date:
                changes["start_date"] = start_date
                changes["due_date"] = calculate_due_date(start_date, duration)

            if "status" in patch:
                target = _enum(LoanStatus, patch["status"], "loan status")
                check_manual_transition(loan.status, target)
                if target != loan.status:
                    changes["status"] = target

            if not changes:
                return loan

            changes["updated_at"] = self.clock.now()
            updated = self.store.update(LOANS, loan_id, changes, expected_version=loan.version)

            if terms_changed:
                self._post_terms_change(loan, updated)
            self.aggregator.recompute(loan.borrower_id)

        log_loan_event("updated", loan_id, loan.borrower_id, fields=sorted(changes))
        return updated

    def default_loan(self, loan_id: str) -> Loan:
        """Administratively mark an active loan as defaulted"""
        return self.update_loan(loan_id, {"status": LoanStatus.DEFAULTED})

    def delete_loan(self, loan_id: str) -> None:
        """
        Delete a loan and its payments, reversing its ledger footprint.

        The compensating adjustment is principal - paid: positive returns
        money to available balance (deposit), negative takes it back
        (disbursement). The loan's principal and outstanding figures are
        released from the ledger totals, and its payments are removed from
        total_collected.
        """
        with self.store.transaction():
            loan = self.store.get(LOANS, loan_id)

            total_paid = ZERO
            for payment in self.store.list(PAYMENTS, loan_id=loan_id):
                total_paid += payment.amount
                self.store.delete(PAYMENTS, payment.id)
            self.store.delete(LOANS, loan_id)

            self.aggregator.recompute(loan.borrower_id)

            net = loan.principal - total_paid
            self.ledger.record_adjustment(
                abs(net),
                TransactionType.DEPOSIT if net >= 0 else TransactionType.DISBURSEMENT,
                f"Loan to {loan.borrower_name} deleted",
                related_loan_id=loan_id,
                disbursed_delta=-loan.principal,
                outstanding_delta=-loan.outstanding_amount,
            )
            if total_paid > 0:
                self.ledger.correct_collected(total_paid, f"Payments of deleted loan {loan_id}")

        log_loan_event("deleted", loan_id, loan.borrower_id, refund=net)

    def get_loan(self, loan_id: str) -> Loan:
        return self.store.get(LOANS, loan_id)

    def list_loans(self, borrower_id: Optional[str] = None, status: Optional[LoanStatus] = None) -> List[Loan]:
        filters: Dict[str, Any] = {}
        if borrower_id is not None:
            filters["borrower_id"] = borrower_id
        if status is not None:
            filters["status"] = LoanStatus(status)
        return self.store.list(LOANS, **filters)

    def loan_status(self, loan: Loan) -> LoanStatus:
        """Status as displayed: active loans past due read as overdue"""
        return effective_status(loan, self.clock.today())

    def repayment_schedule(self, loan_id: str) -> List[ScheduleEntry]:
        return generate_repayment_schedule(self.store.get(LOANS, loan_id), self.clock.today())

    # Payments

    def apply_payment(
        self,
        loan_id: str,
        amount: Decimal,
        payment_type: PaymentType = PaymentType.PARTIAL,
        payment_date: Optional[date] = None,
        description: Optional[str] = None,
    ) -> Payment:
        """
        Record a repayment.

        The loan row is written with a compare-and-set on the version read
        at the start, so two concurrent payments cannot both pass the
        outstanding check against the same balance.

        Raises:
            NotFoundError: loan does not exist
            ValidationError: amount <= 0 or amount > outstanding (never clamped)
            ConflictError: the loan changed concurrently; retry with fresh state
        """
        amount = _decimal(amount, "amount")
        if amount <= 0:
            payments_rejected_counter.labels(reason="invalid_amount").inc()
            raise ValidationError("Payment amount must be greater than zero")
        payment_type = _enum(PaymentType, payment_type, "payment type")

        try:
            with self.store.transaction():
                loan = self.store.get(LOANS, loan_id)
                if amount > loan.outstanding_amount:
                    payments_rejected_counter.labels(reason="overpayment").inc()
                    raise ValidationError(
                        f"Payment {amount} exceeds outstanding amount {loan.outstanding_amount}"
                    )

                # 1. Loan balances
                now = self.clock.now()
                outstanding = max(ZERO, loan.outstanding_amount - amount)
                self.store.update(
                    LOANS,
                    loan_id,
                    {
                        "paid_amount": loan.paid_amount + amount,
                        "outstanding_amount": outstanding,
                        "status": status_after_payment(loan.status, outstanding),
                        "updated_at": now,
                    },
                    expected_version=loan.version,
                )

                # 2. Payment record
                payment = self.store.insert(
                    PAYMENTS,
                    {
                        "loan_id": loan_id,
                        "borrower_id": loan.borrower_id,
                        "amount": amount,
                        "payment_date": payment_date or self.clock.today(),
                        "payment_type": payment_type,
                        "description": description,
                        "created_at": now,
                    },
                )

                # 3. Ledger collection
                self.ledger.record_collection(amount, payment.id)

                # 4. Borrower aggregates
                self.aggregator.recompute(loan.borrower_id)
        except ConflictError:
            payments_rejected_counter.labels(reason="conflict").inc()
            raise

        payments_collected_counter.labels(payment_type=payment_type.value).inc()
        log_loan_event("payment_applied", loan_id, loan.borrower_id, amount=amount, outstanding=outstanding)
        return payment

    def get_payment(self, payment_id: str) -> Payment:
        return self.store.get(PAYMENTS, payment_id)

    def list_payments(self, loan_id: Optional[str] = None, borrower_id: Optional[str] = None) -> List[Payment]:
        filters = {}
        if loan_id is not None:
            filters["loan_id"] = loan_id
        if borrower_id is not None:
            filters["borrower_id"] = borrower_id
        return self.store.list(PAYMENTS, **filters)

    # Balance

    def get_balance(self) -> AccountBalance:
        with self.store.transaction():
            return self.ledger.get_balance()

    def set_available_balance(self, amount: Decimal, description: str) -> AccountBalance:
        amount = _decimal(amount, "amount")
        with self.store.transaction():
            return self.ledger.set_available_balance(amount, _required_text(description, "description"))

    def balance_transactions(self) -> List[BalanceTransaction]:
        return self.ledger.transactions(newest_first=True)

    def reconcile(self) -> ReconciliationResult:
        return self.ledger.reconcile()

    def verify_ledger(self) -> ReconciliationResult:
        return self.ledger.verify()

    # Reports

    def generate_report(self) -> ReportData:
        borrowers, loans, payments = self._snapshot()
        return build_report(borrowers, loans, payments, self.clock.today())

    def dashboard(self) -> DashboardStats:
        borrowers, loans, payments = self._snapshot()
        return dashboard_stats(borrowers, loans, payments, self.clock.today())

    def _snapshot(self):
        return self.store.list(BORROWERS), self.store.list(LOANS), self.store.list(PAYMENTS)

    def _post_terms_change(self, before: Loan, after: Loan) -> None:
        """Reconcile the ledger with a re-priced, still unpaid loan"""
        principal_delta = after.principal - before.principal
        outstanding_delta = after.outstanding_amount - before.outstanding_amount
        if principal_delta == 0 and outstanding_delta == 0:
            return
        self.ledger.record_adjustment(
            abs(principal_delta),
            TransactionType.DISBURSEMENT if principal_delta > 0 else TransactionType.DEPOSIT,
            f"Loan to {after.borrower_name} re-priced",
            related_loan_id=after.id,
            disbursed_delta=principal_delta,
            outstanding_delta=outstanding_delta,
        )
