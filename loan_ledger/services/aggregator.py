"""Borrower aggregate recomputation"""

from loan_ledger.domain.models import Borrower
from loan_ledger.domain.money import ZERO, to_money
from loan_ledger.infrastructure.database.repositories import BORROWERS, LOANS, EntityStore


class BorrowerAggregator:
    """Rebuilds a borrower's loan count and outstanding total from its loans"""

    def __init__(self, store: EntityStore, clock):
        self.store = store
        self.clock = clock

    def recompute(self, borrower_id: str) -> Borrower:
        """
        Full recompute from source, never incremental, so drift cannot
        accumulate. Idempotent when nothing changed in between.

        Raises:
            NotFoundError: borrower does not exist
        """
        borrower = self.store.get(BORROWERS, borrower_id)
        loans = self.store.list(LOANS, borrower_id=borrower_id)

        total_loans = len(loans)
        total_outstanding = to_money(sum((l.outstanding_amount for l in loans), ZERO))
        if borrower.total_loans == total_loans and borrower.total_outstanding == total_outstanding:
            return borrower

        return self.store.update(
            BORROWERS,
            borrower_id,
            {
                "total_loans": total_loans,
                "total_outstanding": total_outstanding,
                "updated_at": self.clock.now(),
            },
        )
