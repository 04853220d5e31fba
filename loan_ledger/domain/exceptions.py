"""Domain-specific exceptions"""


class DomainException(Exception):
    """Base exception for domain layer"""

    pass


class ValidationError(DomainException):
    """Input rejected: non-positive amounts, missing fields, overpayment"""

    pass


class NotFoundError(DomainException):
    """Referenced borrower, loan or payment does not exist"""

    def __init__(self, collection: str, entity_id: object):
        super().__init__(f"{collection} {entity_id} not found")
        self.collection = collection
        self.entity_id = entity_id


class ConflictError(DomainException):
    """Operation conflicts with current state; retry with fresh data"""

    pass


class LedgerInconsistencyError(DomainException):
    """Ledger totals diverged from the loan book or a ledger write failed"""

    pass
