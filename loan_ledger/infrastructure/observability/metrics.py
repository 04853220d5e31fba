"""Prometheus metrics for lending activity, ledger health and HTTP latency"""

from decimal import Decimal

from prometheus_client import Counter, Histogram, Gauge

# Lending activity
loans_disbursed_counter = Counter(
    "loan_ledger_loans_disbursed_total",
    "Loans created and disbursed",
    ["interest_type"],  # simple | annual
)

payments_collected_counter = Counter(
    "loan_ledger_payments_collected_total",
    "Payments applied to loans",
    ["payment_type"],  # emi | partial | full
)

payments_rejected_counter = Counter(
    "loan_ledger_payments_rejected_total",
    "Payments refused",
    ["reason"],  # invalid_amount | overpayment | conflict
)

# Ledger
ledger_transaction_counter = Counter(
    "loan_ledger_balance_transactions_total",
    "Balance transactions appended to the ledger",
    ["type"],  # deposit | disbursement | collection
)

ledger_inconsistency_counter = Counter(
    "loan_ledger_inconsistency_total",
    "Ledger write failures and reconciliation mismatches",
)

available_balance_gauge = Gauge(
    "loan_ledger_available_balance",
    "Available lending capital after the latest ledger posting",
)

# Service health
request_duration_histogram = Histogram(
    "http_request_duration_seconds",
    "HTTP request latency",
    ["method", "endpoint", "status"],
)


def record_ledger_posting(transaction_type: str | None, available_balance: Decimal) -> None:
    """Track a balance change; transaction_type is None when no log entry was written"""
    if transaction_type is not None:
        ledger_transaction_counter.labels(type=transaction_type).inc()
    available_balance_gauge.set(float(available_balance))
