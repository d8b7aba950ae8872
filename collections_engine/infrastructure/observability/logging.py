"""Structured JSON logging for production observability"""

import logging
import sys
from datetime import datetime, timezone
from typing import Any, Dict

from pythonjsonlogger import jsonlogger


class CustomJsonFormatter(jsonlogger.JsonFormatter):
    """Custom JSON formatter with timestamp and service metadata"""

    def __init__(self, *args, service_name: str = "collections-engine", **kwargs):
        super().__init__(*args, **kwargs)
        self.service_name = service_name

    def add_fields(self, log_record: Dict[str, Any], record: logging.LogRecord, message_dict: Dict[str, Any]) -> None:
        super().add_fields(log_record, record, message_dict)
        log_record["timestamp"] = datetime.now(timezone.utc).isoformat()
        log_record["level"] = record.levelname
        log_record["service"] = self.service_name


def setup_logging(level: str = "INFO", service_name: str = "collections-engine") -> None:
    """Configure structured JSON logging"""
    logger = logging.getLogger()
    logger.setLevel(level)

    # Remove existing handlers
    logger.handlers.clear()

    handler = logging.StreamHandler(sys.stdout)
    formatter = CustomJsonFormatter("%(timestamp)s %(level)s %(name)s %(message)s", service_name=service_name)
    handler.setFormatter(formatter)
    logger.addHandler(handler)


def log_plan_generated(
    request_id: str,
    account_id: str,
    is_paused: bool,
    pending_actions: int,
    duration_ms: float,
) -> None:
    """Log structured dunning plan outcome"""
    logging.info(
        "Dunning plan generated",
        extra={
            "request_id": request_id,
            "account_id": account_id,
            "step": "plan_generated",
            "plan_outcome": "paused" if is_paused else "active",
            "pending_actions": pending_actions,
            "duration_ms": duration_ms,
        },
    )


def log_batch_completed(
    request_id: str,
    processed: int,
    actions_executed: int,
    skipped: int,
    nothing_due: int,
    error_count: int,
    duration_ms: float,
) -> None:
    """Log structured dunning batch summary"""
    logging.info(
        "Dunning batch completed",
        extra={
            "request_id": request_id,
            "step": "batch_complete",
            "processed": processed,
            "actions_executed": actions_executed,
            "skipped": skipped,
            "nothing_due": nothing_due,
            "error_count": error_count,
            "duration_ms": duration_ms,
        },
    )
