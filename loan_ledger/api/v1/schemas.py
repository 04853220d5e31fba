"""Pydantic schemas for API request/response validation"""

from datetime import date, datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from loan_ledger.domain.models import (
    BorrowerStatus,
    DurationUnit,
    InterestType,
    LoanStatus,
    PaymentType,
    ScheduleStatus,
    TransactionType,
)


class DurationSchema(BaseModel):
    """Loan duration: one installment per unit"""

    model_config = ConfigDict(from_attributes=True)

    value: int = Field(..., gt=0)
    unit: DurationUnit


class BorrowerCreate(BaseModel):
    """Request body for POST /v1/borrowers"""

    name: str = Field(..., min_length=1)
    phone: str = Field(..., min_length=1)
    address: str = Field(..., min_length=1)
    email: Optional[str] = None
    joining_date: Optional[date] = None
    status: BorrowerStatus = BorrowerStatus.ACTIVE


class BorrowerUpdate(BaseModel):
    """Request body for PATCH /v1/borrowers/{borrower_id}"""

    name: Optional[str] = Field(None, min_length=1)
    phone: Optional[str] = Field(None, min_length=1)
    address: Optional[str] = Field(None, min_length=1)
    email: Optional[str] = None
    joining_date: Optional[date] = None
    status: Optional[BorrowerStatus] = None


class BorrowerResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    phone: str
    address: str
    email: Optional[str] = None
    joining_date: date
    status: BorrowerStatus
    total_loans: int
    total_outstanding: Decimal
    created_at: datetime
    updated_at: datetime


class LoanCreate(BaseModel):
    """Request body for POST /v1/loans"""

    borrower_id: str = Field(..., min_length=1)
    principal: Decimal = Field(..., gt=0, decimal_places=2, description="Amount disbursed, at most 2 decimal places")
    interest_rate: Decimal = Field(..., ge=0, decimal_places=2, description="Percent, at most 2 decimal places")
    interest_type: InterestType = InterestType.SIMPLE
    duration: DurationSchema
    start_date: Optional[date] = None


class LoanUpdate(BaseModel):
    """Request body for PATCH /v1/loans/{loan_id}"""

    principal: Optional[Decimal] = Field(None, gt=0, decimal_places=2)
    interest_rate: Optional[Decimal] = Field(None, ge=0, decimal_places=2)
    interest_type: Optional[InterestType] = None
    duration: Optional[DurationSchema] = None
    start_date: Optional[date] = None
    status: Optional[LoanStatus] = None


class LoanResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    borrower_id: str
    borrower_name: str
    principal: Decimal
    interest_rate: Decimal
    interest_type: InterestType
    duration: DurationSchema
    term_in_months: int
    start_date: date
    due_date: date
    status: LoanStatus  # stored status; active loans past due show as overdue
    installment_amount: Decimal
    total_interest: Decimal
    total_amount: Decimal
    outstanding_amount: Decimal
    paid_amount: Decimal
    disbursement_date: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime


class ScheduleEntrySchema(BaseModel):
    """Single installment in a repayment schedule"""

    model_config = ConfigDict(from_attributes=True)

    installment_number: int
    due_date: date
    emi_amount: Decimal
    principal_amount: Decimal
    interest_amount: Decimal
    outstanding_balance: Decimal
    status: ScheduleStatus


class PaymentCreate(BaseModel):
    """Request body for POST /v1/payments"""

    loan_id: str = Field(..., min_length=1)
    amount: Decimal = Field(
        ...,
        decimal_places=2,
        description="At most 2 decimal places; must not exceed the loan's outstanding amount",
    )
    payment_type: PaymentType = PaymentType.PARTIAL
    payment_date: Optional[date] = None
    description: Optional[str] = None


class PaymentResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    loan_id: str
    borrower_id: str
    amount: Decimal
    payment_date: date
    payment_type: PaymentType
    description: Optional[str] = None
    created_at: datetime


class BalanceResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    available_balance: Decimal
    total_disbursed: Decimal
    total_collected: Decimal
    total_outstanding: Decimal
    last_updated: datetime


class BalanceUpdate(BaseModel):
    """Request body for PUT /v1/balance - administrative override"""

    amount: Decimal = Field(..., decimal_places=2)
    description: str = Field(..., min_length=1)


class BalanceTransactionResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    type: TransactionType
    amount: Decimal
    description: str
    related_loan_id: Optional[str] = None
    related_payment_id: Optional[str] = None
    balance_after: Decimal
    created_at: datetime


class ReconciliationResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    ledger_outstanding: Decimal
    computed_outstanding: Decimal
    difference: Decimal
    consistent: bool


class BorrowerReportSchema(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    borrower: BorrowerResponse
    loans: List[LoanResponse]
    total_borrowed: Decimal
    total_paid: Decimal
    current_outstanding: Decimal


class PortfolioSummarySchema(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    total_borrowers: int
    total_loans_issued: int
    total_amount_disbursed: Decimal
    total_amount_collected: Decimal
    total_outstanding: Decimal
    average_loan_size: Decimal
    default_rate: Decimal


class ReportResponse(BaseModel):
    """Response for GET /v1/reports"""

    model_config = ConfigDict(from_attributes=True)

    outstanding_loans: List[LoanResponse]
    past_due_loans: List[LoanResponse]
    borrowers_report: List[BorrowerReportSchema]
    portfolio_summary: PortfolioSummarySchema


class DashboardResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    total_borrowers: int
    active_borrowers: int
    total_loans: int
    active_loans: int
    overdue_loans: int
    total_payments: int
    total_outstanding: Decimal
    total_collected: Decimal
