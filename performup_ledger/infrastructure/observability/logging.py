"""Structured JSON logging for production observability"""

import logging
import sys
from datetime import datetime, timezone
from typing import Any, Dict, Optional
from pythonjsonlogger import jsonlogger

from performup_ledger.config import settings


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
        "%(timestamp)s %(level)s %(name)s %(message)s"
    )
    handler.setFormatter(formatter)
    logger.addHandler(handler)


def log_settlement(
    request_id: str,
    payment_id: str,
    status: str,
    amount: int,
    currency: str,
    allocations_created: int,
    transaction_number: Optional[str],
    duration_ms: float,
) -> None:
    """Log structured settlement outcome for analysis"""
    logging.info(
        "Payment settled" if transaction_number else "Payment recorded",
        extra={
            "request_id": request_id,
            "payment_id": payment_id,
            "step": "settlement_complete",
            "payment_status": status,
            "amount": amount,
            "currency": currency,
            "allocations_created": allocations_created,
            "transaction_number": transaction_number,
            "duration_ms": duration_ms,
        },
    )


def log_allocation(request_id: str, payment_id: str, schedule_ids: list, total_allocated: int) -> None:
    logging.info(
        "Payment allocated",
        extra={
            "request_id": request_id,
            "payment_id": payment_id,
            "step": "allocation_complete",
            "schedule_ids": schedule_ids,
            "total_allocated": total_allocated,
        },
    )


def log_journal_entry(request_id: str, transaction_number: str, transaction_type: str, amount: int, currency: str) -> None:
    logging.info(
        "Journal entry recorded",
        extra={
            "request_id": request_id,
            "step": "journal_append",
            "transaction_number": transaction_number,
            "transaction_type": transaction_type,
            "amount": amount,
            "currency": currency,
        },
    )
