"""Structured JSON logging for production observability"""

import logging
import sys
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Dict, Optional
from pythonjsonlogger import jsonlogger

from savings_engine.config import settings


class CustomJsonFormatter(jsonlogger.JsonFormatter):
    """Custom JSON formatter with timestamp and service metadata"""

    def add_fields(self, log_record: Dict[str, Any], record: logging.LogRecord, message_dict: Dict[str, Any]) -> None:
        super().add_fields(log_record, record, message_dict)
        log_record["timestamp"] = datetime.now(timezone.utc).isoformat()
        log_record["level"] = record.levelname
        log_record["service"] = settings.service_name


def setup_logging(level: str = "INFO") -> None:
    """Configure structured JSON logging"""
    logger = logging.getLogger()
    logger.setLevel(level)

    # Remove existing handlers
    logger.handlers.clear()

    # JSON handler for stdout
    handler = logging.StreamHandler(sys.stdout)
    formatter = CustomJsonFormatter(
        "%(timestamp)s %(level)s %(name)s %(message)s",
        json_default=str,  # Decimal and date values
    )
    handler.setFormatter(formatter)
    logger.addHandler(handler)


def log_deposit(
    request_id: str,
    user_id: str,
    channel: str,
    status: str,
    amount: Decimal,
    fee: Decimal,
    subscription_id: Optional[str],
    duration_ms: float,
) -> None:
    """Log structured deposit outcome"""
    logging.info(
        "Deposit completed",
        extra={
            "request_id": request_id,
            "user_id": user_id,
            "step": "deposit_complete",
            "channel": channel,
            "deposit_status": status,
            "amount": str(amount),
            "fee": str(fee),
            "subscription_id": subscription_id,
            "duration_ms": duration_ms,
        },
    )


def log_plan_credit_failure(
    request_id: str,
    user_id: str,
    subscription_id: str,
    debit_entry_id: Optional[str],
    reconciliation_id: Optional[str],
    amount: Decimal,
) -> None:
    """Funds left the wallet but never reached the plan; ops must reconcile"""
    logging.error(
        "Plan credit failed after wallet debit",
        extra={
            "request_id": request_id,
            "user_id": user_id,
            "step": "plan_credit_failed",
            "subscription_id": subscription_id,
            "debit_entry_id": debit_entry_id,
            "reconciliation_id": reconciliation_id,
            "amount": str(amount),
        },
    )


def log_maturity_transition(user_id: str, subscription_id: str, plan_type: str) -> None:
    logging.info(
        "Subscription matured",
        extra={
            "user_id": user_id,
            "step": "maturity_transition",
            "subscription_id": subscription_id,
            "plan_type": plan_type,
        },
    )


def log_loan_decision(request_id: str, user_id: str, loan_number: str, status: str, amount: Decimal) -> None:
    logging.info(
        "Loan request processed",
        extra={
            "request_id": request_id,
            "user_id": user_id,
            "step": "loan_decision",
            "loan_number": loan_number,
            "loan_status": status,
            "amount": str(amount),
        },
    )
