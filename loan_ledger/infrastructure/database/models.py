"""SQLAlchemy ORM models for the loan book and the shared balance ledger"""

import uuid
from sqlalchemy import Column, String, BigInteger, Date, DateTime, Integer, ForeignKey, Text
from sqlalchemy.orm import declarative_base
from sqlalchemy.sql import func

Base = declarative_base()


def _uuid() -> str:
    return str(uuid.uuid4())


class BorrowerRecord(Base):
    """Borrower with loan-derived totals"""

    __tablename__ = "borrowers"

    id = Column(String(36), primary_key=True, default=_uuid)
    name = Column(Text, nullable=False)
    phone = Column(Text, nullable=False)
    address = Column(Text, nullable=False)
    email = Column(Text, nullable=True)
    joining_date = Column(Date, nullable=False)
    status = Column(Text, nullable=False, default="active")
    total_loans = Column(Integer, nullable=False, default=0)
    total_outstanding_cents = Column(BigInteger, nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    version = Column(Integer, nullable=False, default=1)


class LoanRecord(Base):
    """Loan with stored terms and derived balances"""

    __tablename__ = "loans"

    id = Column(String(36), primary_key=True, default=_uuid)
    borrower_id = Column(String(36), ForeignKey("borrowers.id", ondelete="CASCADE"), nullable=False, index=True)
    borrower_name = Column(Text, nullable=False)
    principal_cents = Column(BigInteger, nullable=False)
    interest_rate_bps = Column(BigInteger, nullable=False)  # hundredths of a percent
    interest_type = Column(Text, nullable=False)
    duration_value = Column(Integer, nullable=False)
    duration_unit = Column(Text, nullable=False)
    start_date = Column(Date, nullable=False)
    due_date = Column(Date, nullable=False)
    status = Column(Text, nullable=False, default="active")
    installment_amount_cents = Column(BigInteger, nullable=False)
    total_interest_cents = Column(BigInteger, nullable=False)
    total_amount_cents = Column(BigInteger, nullable=False)
    outstanding_amount_cents = Column(BigInteger, nullable=False)
    paid_amount_cents = Column(BigInteger, nullable=False, default=0)
    disbursement_date = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    version = Column(Integer, nullable=False, default=1)


class PaymentRecord(Base):
    """Repayment against a loan; immutable once written"""

    __tablename__ = "payments"

    id = Column(String(36), primary_key=True, default=_uuid)
    loan_id = Column(String(36), ForeignKey("loans.id", ondelete="CASCADE"), nullable=False, index=True)
    borrower_id = Column(String(36), ForeignKey("borrowers.id", ondelete="CASCADE"), nullable=False, index=True)
    amount_cents = Column(BigInteger, nullable=False)
    payment_date = Column(Date, nullable=False)
    payment_type = Column(Text, nullable=False)
    description = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())


class AccountBalanceRecord(Base):
    """Singleton lending-capital position shared by all users"""

    __tablename__ = "account_balance"

    id = Column(String(36), primary_key=True, default=_uuid)
    available_balance_cents = Column(BigInteger, nullable=False, default=0)
    total_disbursed_cents = Column(BigInteger, nullable=False, default=0)
    total_collected_cents = Column(BigInteger, nullable=False, default=0)
    total_outstanding_cents = Column(BigInteger, nullable=False, default=0)
    last_updated = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    version = Column(Integer, nullable=False, default=1)


class BalanceTransactionRecord(Base):
    """Append-only balance log; the integer id gives causal order"""

    __tablename__ = "balance_transactions"

    id = Column(Integer, primary_key=True, autoincrement=True)
    type = Column(Text, nullable=False)
    amount_cents = Column(BigInteger, nullable=False)
    description = Column(Text, nullable=False)
    # No foreign keys: entries outlive the loans and payments they mention
    related_loan_id = Column(String(36), nullable=True, index=True)
    related_payment_id = Column(String(36), nullable=True)
    balance_after_cents = Column(BigInteger, nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
