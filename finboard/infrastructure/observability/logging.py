"""Structured JSON logging for production observability"""

import logging
import sys
from datetime import datetime, timezone
from typing import Any, Dict
from pythonjsonlogger import jsonlogger

from finboard.config import settings


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

    logger.handlers.clear()

    handler = logging.StreamHandler(sys.stdout)
    formatter = CustomJsonFormatter("%(timestamp)s %(level)s %(name)s %(message)s")
    handler.setFormatter(formatter)
    logger.addHandler(handler)


def log_schedule_computed(request_id: str, user_id: str, principal: str, term_months: int, duration_ms: float) -> None:
    logging.info(
        "Amortization schedule computed",
        extra={
            "request_id": request_id,
            "user_id": user_id,
            "step": "schedule_computed",
            "principal": principal,
            "term_months": term_months,
            "duration_ms": duration_ms,
        },
    )


def log_coupon_evaluated(request_id: str, user_id: str, code: str, is_valid: bool, message: str) -> None:
    """Log coupon outcome; invalid attempts are routine and stay at INFO"""
    logging.info(
        "Coupon evaluated",
        extra={
            "request_id": request_id,
            "user_id": user_id,
            "step": "coupon_evaluated",
            "coupon_code": code,
            "outcome": "valid" if is_valid else "invalid",
            "reason": message,
        },
    )


def log_recurring_executed(request_id: str, user_id: str, recurring_id: str, executed_on: str, next_execution: str) -> None:
    logging.info(
        "Recurring transaction executed",
        extra={
            "request_id": request_id,
            "user_id": user_id,
            "step": "recurring_executed",
            "recurring_id": recurring_id,
            "executed_on": executed_on,
            "next_execution": next_execution,
        },
    )


def log_payment_status_changed(request_id: str, admin_id: str, payment_ids: list, status: str) -> None:
    logging.info(
        "Payment status changed",
        extra={
            "request_id": request_id,
            "admin_id": admin_id,
            "step": "payment_status_changed",
            "payment_ids": payment_ids,
            "status": status,
        },
    )
