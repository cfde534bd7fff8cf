"""Structured JSON logging for production observability"""

import logging
import sys
from datetime import datetime, timezone
from typing import Any, Dict, Optional
from pythonjsonlogger import jsonlogger

from payout_gateway.config import settings
from payout_gateway.domain.models import GroupFailure


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


def log_group_failure(stage: str, failure: GroupFailure, request_id: Optional[str] = None) -> None:
    """Log a rolled-back group with enough context to replay it"""
    logging.warning(
        "Payout group failed",
        extra={
            "request_id": request_id,
            "step": stage,
            "group_key": f"{failure.user_id}:{failure.bank_account_id}",
            "payout_ids": failure.payout_ids,
            "error_code": failure.code,
            "error": failure.message,
        },
    )


def log_stage_complete(
    stage: str,
    request_id: Optional[str],
    succeeded: int,
    failed: int,
    total_amount: int,
    duration_ms: float,
    **fields: Any,
) -> None:
    """Log structured stage outcome for analysis"""
    logging.info(
        "Payout stage completed",
        extra={
            "request_id": request_id,
            "step": stage,
            "succeeded": succeeded,
            "failed": failed,
            "total_amount": str(total_amount),
            "duration_ms": duration_ms,
            **fields,
        },
    )
