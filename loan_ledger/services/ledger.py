"""Shared cash-balance ledger with an append-only transaction log"""

import logging
from decimal import Decimal
from typing import Callable, Dict, List, Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from loan_ledger.domain.exceptions import ConflictError, LedgerInconsistencyError, ValidationError
from loan_ledger.domain.models import (
    AccountBalance,
    BalanceTransaction,
    Loan,
    ReconciliationResult,
    TransactionType,
)
from loan_ledger.domain.money import ZERO, to_money
from loan_ledger.infrastructure.database.repositories import BALANCE, LOANS, TRANSACTIONS, EntityStore
from loan_ledger.infrastructure.observability.logging import log_ledger_event
from loan_ledger.infrastructure.observability.metrics import (
    ledger_inconsistency_counter,
    record_ledger_posting,
)

Totals = Dict[str, Decimal]

BALANCE_ID = "primary"


def _positive(amount: Decimal, what: str) -> Decimal:
    amount = to_money(amount)
    if amount <= 0:
        raise ValidationError(f"{what} amount must be greater than zero")
    return amount


class BalanceLedger:
    """
    Single shared lending-capital position.

    Every posting is one logical unit: read balance → compute new figures →
    write balance (compare-and-set on version) → append a transaction whose
    balance_after equals the written available balance. Postings flush into
    the caller's store transaction and commit together with the entity write
    that caused them.

    available_balance may go negative: there is no overdraft protection, and
    funding checks are the caller's responsibility.
    """

    def __init__(self, store: EntityStore, clock):
        self.store = store
        self.clock = clock

    def get_balance(self) -> AccountBalance:
        """Return the singleton balance, creating it at zero on first use"""
        balance = self.store.find(BALANCE, BALANCE_ID)
        if balance is not None:
            return balance
        now = self.clock.now()
        try:
            return self.store.insert(
                BALANCE,
                {
                    "id": BALANCE_ID,
                    "available_balance": ZERO,
                    "total_disbursed": ZERO,
                    "total_collected": ZERO,
                    "total_outstanding": ZERO,
                    "last_updated": now,
                    "created_at": now,
                },
            )
        except IntegrityError as e:
            # Another writer created the singleton after our read
            logging.warning("Balance singleton created concurrently", extra={"step": "ledger_init"})
            raise ConflictError("Account balance was initialised concurrently; retry") from e

    def record_disbursement(
        self,
        amount: Decimal,
        loan_id: str,
        receivable: Optional[Decimal] = None,
    ) -> BalanceTransaction:
        """
        Pay out a loan's principal.

        receivable is what the borrower now owes (principal plus interest) and
        is added to total_outstanding; it defaults to the disbursed amount.
        """
        amount = _positive(amount, "Disbursement")
        owed = amount if receivable is None else to_money(receivable)

        def apply(b: AccountBalance) -> Totals:
            return {
                "available_balance": b.available_balance - amount,
                "total_disbursed": b.total_disbursed + amount,
                "total_outstanding": b.total_outstanding + owed,
            }

        return self._post(apply, TransactionType.DISBURSEMENT, amount, "Loan disbursement", loan_id=loan_id)

    def record_collection(self, amount: Decimal, payment_id: str) -> BalanceTransaction:
        amount = _positive(amount, "Collection")

        def apply(b: AccountBalance) -> Totals:
            return {
                "available_balance": b.available_balance + amount,
                "total_collected": b.total_collected + amount,
                "total_outstanding": max(ZERO, b.total_outstanding - amount),
            }

        return self._post(apply, TransactionType.COLLECTION, amount, "Loan repayment", payment_id=payment_id)

    def record_adjustment(
        self,
        amount: Decimal,
        direction: TransactionType,
        description: str,
        *,
        related_loan_id: Optional[str] = None,
        disbursed_delta: Optional[Decimal] = None,
        outstanding_delta: Optional[Decimal] = None,
    ) -> Optional[BalanceTransaction]:
        """
        Compensating posting for deletions and corrections.

        direction=deposit returns `amount` to available balance and, unless
        explicit deltas are given, lowers total_disbursed and total_outstanding
        by the same amount. direction=disbursement is the inverse. Callers
        reversing a loan pass signed deltas for the principal and outstanding
        figures being released. Totals clamp at zero.

        A zero amount still applies the deltas but writes no transaction, and
        None is returned.
        """
        direction = TransactionType(direction)
        if direction == TransactionType.COLLECTION:
            raise ValidationError("Adjustments are deposits or disbursements")
        amount = to_money(amount)
        if amount < 0:
            raise ValidationError("Adjustment amount must be a positive magnitude; use direction for the sign")

        sign = 1 if direction == TransactionType.DEPOSIT else -1
        d_disbursed = -sign * amount if disbursed_delta is None else to_money(disbursed_delta)
        d_outstanding = -sign * amount if outstanding_delta is None else to_money(outstanding_delta)

        def apply(b: AccountBalance) -> Totals:
            return {
                "available_balance": b.available_balance + sign * amount,
                "total_disbursed": max(ZERO, b.total_disbursed + d_disbursed),
                "total_outstanding": max(ZERO, b.total_outstanding + d_outstanding),
            }

        return self._post(apply, direction if amount > 0 else None, amount, description, loan_id=related_loan_id)

    def correct_collected(self, amount: Decimal, description: str) -> AccountBalance:
        """Lower total_collected without moving cash; no transaction is logged"""
        amount = to_money(amount)
        if amount < 0:
            raise ValidationError("Collected correction must be a positive magnitude")

        def apply(b: AccountBalance) -> Totals:
            return {"total_collected": max(ZERO, b.total_collected - amount)}

        self._post(apply, None, amount, description)
        return self.get_balance()

    def set_available_balance(self, new_amount: Decimal, description: str) -> AccountBalance:
        """
        Administrative override of the available balance.

        No loan state is consulted. The delta from the old figure is logged
        as a deposit when the balance rises, or as a disbursement with no
        related loan when it falls.
        """
        new_amount = to_money(new_amount)
        current = self.get_balance()
        delta = new_amount - current.available_balance
        direction = TransactionType.DEPOSIT if delta >= 0 else TransactionType.DISBURSEMENT

        def apply(b: AccountBalance) -> Totals:
            return {"available_balance": new_amount}

        self._post(apply, direction if delta != 0 else None, abs(delta), description)
        return self.get_balance()

    def transactions(self, newest_first: bool = True) -> List[BalanceTransaction]:
        entries = self.store.list(TRANSACTIONS)
        return list(reversed(entries)) if newest_first else entries

    def reconcile(self, loans: Optional[List[Loan]] = None) -> ReconciliationResult:
        """Compare ledger total_outstanding against the sum over every loan"""
        if loans is None:
            loans = self.store.list(LOANS)
        return ReconciliationResult(
            ledger_outstanding=self.get_balance().total_outstanding,
            computed_outstanding=to_money(sum((l.outstanding_amount for l in loans), ZERO)),
        )

    def verify(self, loans: Optional[List[Loan]] = None) -> ReconciliationResult:
        """
        Raises:
            LedgerInconsistencyError: ledger and loan book disagree
        """
        result = self.reconcile(loans)
        if not result.consistent:
            ledger_inconsistency_counter.inc()
            logging.critical(
                "Ledger outstanding does not match loan book",
                extra={
                    "step": "ledger_reconcile",
                    "ledger_outstanding": str(result.ledger_outstanding),
                    "computed_outstanding": str(result.computed_outstanding),
                    "difference": str(result.difference),
                },
            )
            raise LedgerInconsistencyError(
                f"Ledger outstanding {result.ledger_outstanding} != loan book {result.computed_outstanding}"
            )
        return result

    def _post(
        self,
        apply: Callable[[AccountBalance], Totals],
        transaction_type: Optional[TransactionType],
        amount: Decimal,
        description: str,
        loan_id: Optional[str] = None,
        payment_id: Optional[str] = None,
    ) -> Optional[BalanceTransaction]:
        """Write new balance figures and, if transaction_type is set, the log entry"""
        try:
            current = self.get_balance()
            now = self.clock.now()
            patch = {key: to_money(value) for key, value in apply(current).items()}
            patch["last_updated"] = now
            balance = self.store.update(BALANCE, current.id, patch, expected_version=current.version)

            entry = None
            if transaction_type is not None:
                entry = self.store.insert(
                    TRANSACTIONS,
                    {
                        "type": transaction_type,
                        "amount": amount,
                        "description": description,
                        "related_loan_id": loan_id,
                        "related_payment_id": payment_id,
                        "balance_after": balance.available_balance,
                        "created_at": now,
                    },
                )
        except SQLAlchemyError as e:
            ledger_inconsistency_counter.inc()
            logging.critical(
                f"Ledger write failed: {e}",
                extra={"step": "ledger_posting", "related_loan_id": loan_id, "related_payment_id": payment_id},
            )
            raise LedgerInconsistencyError(f"Ledger write failed for {description!r}") from e

        record_ledger_posting(transaction_type.value if transaction_type else None, balance.available_balance)
        if entry is not None:
            log_ledger_event(entry.type.value, entry.amount, entry.balance_after, loan_id, payment_id)
        return entry
