"""Structured JSON logging for production observability"""

import logging
import sys
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Dict, Optional
from pythonjsonlogger import jsonlogger

from chama_gateway.config import settings


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


def log_push(
    request_id: str,
    member_id: str,
    amount: Decimal,
    outcome: str,
    correlation_id: Optional[str] = None,
    duration_ms: Optional[float] = None,
) -> None:
    """Log STK push outcome; never includes credentials"""
    logging.info(
        "STK push handled",
        extra={
            "request_id": request_id,
            "member_id": member_id,
            "step": "stk_push",
            "amount": str(amount),
            "outcome": outcome,
            "checkout_request_id": correlation_id,
            "duration_ms": duration_ms,
        },
    )


def log_callback(request_id: str, kind: str, receipt_code: Optional[str] = None, error: Optional[str] = None) -> None:
    """Log callback outcome for operator follow-up"""
    level = logging.INFO if kind in ("recorded", "duplicate") else logging.WARNING
    logging.log(
        level,
        "Callback handled",
        extra={
            "request_id": request_id,
            "step": "stk_callback",
            "outcome": kind,
            "receipt_code": receipt_code,
            "error": error,
        },
    )


def log_loan_transition(request_id: str, loan_id: str, transition: str, status: str) -> None:
    logging.info(
        "Loan updated",
        extra={
            "request_id": request_id,
            "loan_id": loan_id,
            "step": "loan_transition",
            "transition": transition,
            "status": status,
        },
    )
