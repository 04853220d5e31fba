"""Domain models - pure Python dataclasses representing business entities"""

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal, ROUND_HALF_UP
from enum import Enum
from typing import List, Optional

from loan_ledger.domain.money import ZERO


class BorrowerStatus(str, Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"


class InterestType(str, Enum):
    SIMPLE = "simple"  # rate applied once, regardless of duration
    ANNUAL = "annual"  # rate prorated by the fraction of a year


class DurationUnit(str, Enum):
    WEEKS = "weeks"
    MONTHS = "months"


class LoanStatus(str, Enum):
    ACTIVE = "active"
    COMPLETED = "completed"
    OVERDUE = "overdue"  # derived at read time, never persisted
    DEFAULTED = "defaulted"


class PaymentType(str, Enum):
    EMI = "emi"
    PARTIAL = "partial"
    FULL = "full"


class TransactionType(str, Enum):
    DEPOSIT = "deposit"
    DISBURSEMENT = "disbursement"
    COLLECTION = "collection"


class ScheduleStatus(str, Enum):
    PENDING = "pending"
    PAID = "paid"
    OVERDUE = "overdue"


@dataclass(frozen=True)
class LoanDuration:
    """Loan length; one installment falls due per unit"""

    value: int
    unit: DurationUnit


@dataclass(frozen=True)
class LoanTerms:
    """Derived financial figures for a loan"""

    total_interest: Decimal
    total_amount: Decimal
    installment_amount: Decimal


@dataclass
class Borrower:
    id: str
    name: str
    phone: str
    address: str
    email: Optional[str]
    joining_date: date
    status: BorrowerStatus
    total_loans: int
    total_outstanding: Decimal
    created_at: datetime
    updated_at: datetime
    version: int = 1


@dataclass
class Loan:
    id: str
    borrower_id: str
    borrower_name: str
    principal: Decimal
    interest_rate: Decimal
    interest_type: InterestType
    duration: LoanDuration
    start_date: date
    due_date: date
    status: LoanStatus
    installment_amount: Decimal
    total_interest: Decimal
    total_amount: Decimal
    outstanding_amount: Decimal
    paid_amount: Decimal
    disbursement_date: Optional[datetime]
    created_at: datetime
    updated_at: datetime
    version: int = 1

    @property
    def term_in_months(self) -> int:
        """Duration expressed in whole months (weeks use 30.44 days per month)"""
        if self.duration.unit == DurationUnit.MONTHS:
            return self.duration.value
        months = Decimal(self.duration.value * 7) / Decimal("30.44")
        return int(months.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


@dataclass
class Payment:
    id: str
    loan_id: str
    borrower_id: str
    amount: Decimal
    payment_date: date
    payment_type: PaymentType
    description: Optional[str]
    created_at: datetime


@dataclass
class AccountBalance:
    """Shared lending capital position"""

    id: str
    available_balance: Decimal
    total_disbursed: Decimal
    total_collected: Decimal
    total_outstanding: Decimal
    last_updated: datetime
    version: int = 1


@dataclass
class BalanceTransaction:
    """Append-only ledger entry; amount is always a positive magnitude"""

    id: int
    type: TransactionType
    amount: Decimal
    description: str
    related_loan_id: Optional[str]
    related_payment_id: Optional[str]
    balance_after: Decimal
    created_at: datetime


@dataclass
class ScheduleEntry:
    """Single installment in a flat repayment schedule"""

    installment_number: int
    due_date: date
    emi_amount: Decimal
    principal_amount: Decimal
    interest_amount: Decimal
    outstanding_balance: Decimal
    status: ScheduleStatus


@dataclass
class BorrowerReport:
    borrower: Borrower
    loans: List[Loan]
    total_borrowed: Decimal
    total_paid: Decimal
    current_outstanding: Decimal


@dataclass
class PortfolioSummary:
    total_borrowers: int
    total_loans_issued: int
    total_amount_disbursed: Decimal
    total_amount_collected: Decimal
    total_outstanding: Decimal
    average_loan_size: Decimal
    default_rate: Decimal  # percent of loans in defaulted status


@dataclass
class ReportData:
    outstanding_loans: List[Loan]
    past_due_loans: List[Loan]
    borrowers_report: List[BorrowerReport]
    portfolio_summary: PortfolioSummary


@dataclass
class DashboardStats:
    total_borrowers: int = 0
    active_borrowers: int = 0
    total_loans: int = 0
    active_loans: int = 0
    overdue_loans: int = 0
    total_payments: int = 0
    total_outstanding: Decimal = ZERO
    total_collected: Decimal = ZERO


@dataclass
class ReconciliationResult:
    """Ledger outstanding versus the sum recomputed from every loan"""

    ledger_outstanding: Decimal
    computed_outstanding: Decimal
    difference: Decimal = field(init=False)

    def __post_init__(self) -> None:
        self.difference = self.ledger_outstanding - self.computed_outstanding

    @property
    def consistent(self) -> bool:
        return self.difference == 0
