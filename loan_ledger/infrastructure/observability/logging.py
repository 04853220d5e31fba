"""Structured JSON logging for production observability"""

import logging
import sys
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Dict, Optional
from pythonjsonlogger import jsonlogger

from loan_ledger.config import settings


class CustomJsonFormatter(jsonlogger.JsonFormatter):
    """Custom JSON formatter with timestamp and service metadata"""

    def add_fields(self, log_record: Dict[str, Any], record: logging.LogRecord, message_dict: Dict[str, Any]) -> None:
        super().add_fields(log_record, record, message_dict)
        log_record["timestamp"] = datetime.now(timezone.utc).isoformat()
        log_record["level"] = record.levelname
        log_record["service"] = settings.service_name


def setup_logging(level: str = "INFO", log_format: str = "json") -> None:
    """Configure structured JSON logging (or plain text for local runs)"""
    logger = logging.getLogger()
    logger.setLevel(level)

    # Remove existing handlers
    logger.handlers.clear()

    handler = logging.StreamHandler(sys.stdout)
    if log_format == "json":
        formatter = CustomJsonFormatter(
            "%(timestamp)s %(level)s %(name)s %(message)s",
            json_default=str,  # Decimal, date
        )
    else:
        formatter = logging.Formatter("%(asctime)s | %(levelname)-8s | %(name)s | %(message)s")
    handler.setFormatter(formatter)
    logger.addHandler(handler)

    # Reduce noise from external libraries
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)


def log_request(request_id: str, method: str, endpoint: str, status: int, duration_ms: float) -> None:
    """Access log entry; 5xx responses are logged at ERROR"""
    logging.log(
        logging.ERROR if status >= 500 else logging.INFO,
        f"{method} {endpoint} {status}",
        extra={
            "step": "http_request",
            "request_id": request_id,
            "method": method,
            "endpoint": endpoint,
            "status": status,
            "duration_ms": round(duration_ms, 2),
        },
    )


def log_ledger_event(
    transaction_type: str,
    amount: Decimal,
    balance_after: Decimal,
    related_loan_id: Optional[str] = None,
    related_payment_id: Optional[str] = None,
) -> None:
    """Log a balance-affecting posting"""
    logging.info(
        "Ledger posting",
        extra={
            "step": "ledger_posting",
            "transaction_type": transaction_type,
            "amount": str(amount),
            "balance_after": str(balance_after),
            "related_loan_id": related_loan_id,
            "related_payment_id": related_payment_id,
        },
    )


def log_loan_event(event: str, loan_id: str, borrower_id: str, **fields: Any) -> None:
    """Log a loan lifecycle step (created, updated, payment_applied, deleted)"""
    logging.info(
        f"Loan {event}",
        extra={
            "step": f"loan_{event}",
            "loan_id": loan_id,
            "borrower_id": borrower_id,
            **{key: str(value) if isinstance(value, Decimal) else value for key, value in fields.items()},
        },
    )
