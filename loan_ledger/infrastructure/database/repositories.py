"""Data access layer: a collection-oriented entity store over SQLAlchemy"""

from contextlib import contextmanager
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, Iterator, List, Optional, Tuple

from sqlalchemy import update
from sqlalchemy.orm import Session

from loan_ledger.domain.exceptions import ConflictError, NotFoundError
from loan_ledger.domain.models import (
    AccountBalance,
    BalanceTransaction,
    Borrower,
    BorrowerStatus,
    DurationUnit,
    InterestType,
    Loan,
    LoanDuration,
    LoanStatus,
    Payment,
    PaymentType,
    TransactionType,
)
from loan_ledger.domain.money import from_cents, to_cents
from loan_ledger.infrastructure.database.models import (
    AccountBalanceRecord,
    BalanceTransactionRecord,
    BorrowerRecord,
    LoanRecord,
    PaymentRecord,
)

BORROWERS = "borrowers"
LOANS = "loans"
PAYMENTS = "payments"
BALANCE = "account_balance"
TRANSACTIONS = "balance_transactions"


def _borrower(row: BorrowerRecord) -> Borrower:
    return Borrower(
        id=row.id,
        name=row.name,
        phone=row.phone,
        address=row.address,
        email=row.email,
        joining_date=row.joining_date,
        status=BorrowerStatus(row.status),
        total_loans=row.total_loans,
        total_outstanding=from_cents(row.total_outstanding_cents),
        created_at=row.created_at,
        updated_at=row.updated_at,
        version=row.version,
    )


def _loan(row: LoanRecord) -> Loan:
    return Loan(
        id=row.id,
        borrower_id=row.borrower_id,
        borrower_name=row.borrower_name,
        principal=from_cents(row.principal_cents),
        interest_rate=from_cents(row.interest_rate_bps),
        interest_type=InterestType(row.interest_type),
        duration=LoanDuration(value=row.duration_value, unit=DurationUnit(row.duration_unit)),
        start_date=row.start_date,
        due_date=row.due_date,
        status=LoanStatus(row.status),
        installment_amount=from_cents(row.installment_amount_cents),
        total_interest=from_cents(row.total_interest_cents),
        total_amount=from_cents(row.total_amount_cents),
        outstanding_amount=from_cents(row.outstanding_amount_cents),
        paid_amount=from_cents(row.paid_amount_cents),
        disbursement_date=row.disbursement_date,
        created_at=row.created_at,
        updated_at=row.updated_at,
        version=row.version,
    )


def _payment(row: PaymentRecord) -> Payment:
    return Payment(
        id=row.id,
        loan_id=row.loan_id,
        borrower_id=row.borrower_id,
        amount=from_cents(row.amount_cents),
        payment_date=row.payment_date,
        payment_type=PaymentType(row.payment_type),
        description=row.description,
        created_at=row.created_at,
    )


def _balance(row: AccountBalanceRecord) -> AccountBalance:
    return AccountBalance(
        id=row.id,
        available_balance=from_cents(row.available_balance_cents),
        total_disbursed=from_cents(row.total_disbursed_cents),
        total_collected=from_cents(row.total_collected_cents),
        total_outstanding=from_cents(row.total_outstanding_cents),
        last_updated=row.last_updated,
        version=row.version,
    )


def _transaction(row: BalanceTransactionRecord) -> BalanceTransaction:
    return BalanceTransaction(
        id=row.id,
        type=TransactionType(row.type),
        amount=from_cents(row.amount_cents),
        description=row.description,
        related_loan_id=row.related_loan_id,
        related_payment_id=row.related_payment_id,
        balance_after=from_cents(row.balance_after_cents),
        created_at=row.created_at,
    )


@dataclass(frozen=True)
class _Collection:
    model: type
    to_domain: Callable[[Any], Any]
    cents_fields: Tuple[str, ...]
    order_by: Tuple[str, ...] = ("created_at", "id")
    append_only: bool = False


_COLLECTIONS: Dict[str, _Collection] = {
    BORROWERS: _Collection(BorrowerRecord, _borrower, ("total_outstanding",)),
    LOANS: _Collection(
        LoanRecord,
        _loan,
        (
            "principal",
            "installment_amount",
            "total_interest",
            "total_amount",
            "outstanding_amount",
            "paid_amount",
        ),
    ),
    PAYMENTS: _Collection(PaymentRecord, _payment, ("amount",)),
    BALANCE: _Collection(
        AccountBalanceRecord,
        _balance,
        ("available_balance", "total_disbursed", "total_collected", "total_outstanding"),
    ),
    TRANSACTIONS: _Collection(
        BalanceTransactionRecord,
        _transaction,
        ("amount", "balance_after"),
        order_by=("id",),
        append_only=True,
    ),
}


class EntityStore:
    """
    Read/write domain entities by collection name.

    Records go in as dicts keyed by domain field names (Decimal money,
    LoanDuration, enums) and come back as domain dataclasses. Money is
    persisted as integer cents; interest rates as basis points.

    Writes are flushed but not committed: callers group them with
    `transaction()` so an entity write and its ledger postings commit or
    roll back together.
    """

    def __init__(self, db: Session):
        self.db = db

    @contextmanager
    def transaction(self) -> Iterator["EntityStore"]:
        """Commit on success, roll back and re-raise on any error"""
        try:
            yield self
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

    def get(self, collection: str, entity_id: Any) -> Any:
        meta = _COLLECTIONS[collection]
        return meta.to_domain(self._load(collection, entity_id))

    def find(self, collection: str, entity_id: Any) -> Optional[Any]:
        """Like get(), but returns None for a missing entity"""
        row = self.db.get(_COLLECTIONS[collection].model, entity_id)
        return _COLLECTIONS[collection].to_domain(row) if row is not None else None

    def list(self, collection: str, **filters: Any) -> List[Any]:
        meta = _COLLECTIONS[collection]
        order = [getattr(meta.model, name) for name in meta.order_by]
        rows = (
            self.db.query(meta.model)
            .filter_by(**self._to_columns(meta, filters))
            .order_by(*order)
            .all()
        )
        return [meta.to_domain(row) for row in rows]

    def insert(self, collection: str, record: Dict[str, Any]) -> Any:
        meta = _COLLECTIONS[collection]
        row = meta.model(**self._to_columns(meta, record))
        self.db.add(row)
        self.db.flush()  # Assign ID and defaults without committing
        return meta.to_domain(row)

    def update(
        self,
        collection: str,
        entity_id: Any,
        patch: Dict[str, Any],
        expected_version: Optional[int] = None,
    ) -> Any:
        """
        Apply a partial update.

        Versioned collections are written with a compare-and-set on the
        version column, so a write based on a stale read fails instead of
        overwriting a concurrent change.

        Raises:
            NotFoundError: entity does not exist
            ConflictError: expected_version is stale, the row changed
                between read and write, or the collection is append-only
        """
        meta = _COLLECTIONS[collection]
        if meta.append_only:
            raise ConflictError(f"{collection} is append-only")

        row = self._load(collection, entity_id)
        values = self._to_columns(meta, patch)
        stmt = update(meta.model).where(meta.model.id == entity_id)

        if hasattr(meta.model, "version"):
            current_version = row.version
            if expected_version is not None and expected_version != current_version:
                raise ConflictError(
                    f"{collection} {entity_id} changed (version {current_version}, expected {expected_version})"
                )
            stmt = stmt.where(meta.model.version == current_version)
            values["version"] = current_version + 1

        result = self.db.execute(stmt.values(**values).execution_options(synchronize_session=False))
        if result.rowcount != 1:
            raise ConflictError(f"{collection} {entity_id} was modified concurrently")

        self.db.refresh(row)
        return meta.to_domain(row)

    def delete(self, collection: str, entity_id: Any) -> None:
        meta = _COLLECTIONS[collection]
        if meta.append_only:
            raise ConflictError(f"{collection} is append-only")
        self.db.delete(self._load(collection, entity_id))
        self.db.flush()

    def _load(self, collection: str, entity_id: Any) -> Any:
        row = self.db.get(_COLLECTIONS[collection].model, entity_id)
        if row is None:
            raise NotFoundError(collection, entity_id)
        return row

    @staticmethod
    def _to_columns(meta: _Collection, data: Dict[str, Any]) -> Dict[str, Any]:
        """Translate domain field names and values into column values"""
        columns: Dict[str, Any] = {}
        for key, value in data.items():
            if key == "duration":
                columns["duration_value"] = value.value
                columns["duration_unit"] = DurationUnit(value.unit).value
            elif key == "interest_rate":
                columns["interest_rate_bps"] = to_cents(value)
            elif key in meta.cents_fields:
                columns[f"{key}_cents"] = to_cents(value)
            elif isinstance(value, Enum):
                columns[key] = value.value
            else:
                columns[key] = value
        return columns
