"""
Structured Logging Configuration

Provides JSON-formatted logging with:
- Request ID tracking
- Actor context (staff/admin identity passed by the caller)
- Entity tagging for facility requests
- Structured output for log aggregation
"""

import logging
import json
import sys
from datetime import datetime, timezone
from typing import Optional, Any, Dict
from contextvars import ContextVar

# Context variables for request tracking
request_id_var: ContextVar[str] = ContextVar('request_id', default='')
actor_var: ContextVar[str] = ContextVar('actor', default='')


class JSONFormatter(logging.Formatter):
    """
    Custom JSON formatter for structured logging.
    Outputs logs in JSON format for easy parsing by log aggregators.
    """

    def format(self, record: logging.LogRecord) -> str:
        log_data: Dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        request_id = request_id_var.get()
        if request_id:
            log_data["request_id"] = request_id

        actor = actor_var.get()
        if actor:
            log_data["actor"] = actor

        log_data["module"] = record.module
        log_data["function"] = record.funcName
        log_data["line"] = record.lineno

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        if hasattr(record, 'extra_data'):
            log_data["data"] = record.extra_data

        if hasattr(record, 'entity_type'):
            log_data["entity_type"] = record.entity_type
        if hasattr(record, 'entity_id'):
            log_data["entity_id"] = record.entity_id

        return json.dumps(log_data, ensure_ascii=False, default=str)


class StructuredLogger(logging.LoggerAdapter):
    """
    Logger adapter that adds structured context to log messages.
    """

    def process(self, msg: str, kwargs: Dict[str, Any]) -> tuple:
        extra = kwargs.get('extra', {})
        extra.update(self.extra)
        kwargs['extra'] = extra
        return msg, kwargs

    def log_with_context(
        self,
        level: int,
        msg: str,
        entity_type: Optional[str] = None,
        entity_id: Optional[str] = None,
        **extra_data
    ):
        """Log with additional structured context."""
        extra = {}
        if entity_type:
            extra['entity_type'] = entity_type
        if entity_id:
            extra['entity_id'] = entity_id
        if extra_data:
            extra['extra_data'] = extra_data

        self.log(level, msg, extra=extra)

    def request_submitted(self, request_id: str, request_number: str, facility_id: str, total_amount: float):
        """Log a new facility request."""
        self.log_with_context(
            logging.INFO,
            f"Facility request submitted: {request_number}",
            entity_type="facility_request",
            entity_id=request_id,
            facility_id=facility_id,
            total_amount=total_amount
        )

    def request_status_changed(
        self,
        request_id: str,
        old_status: Optional[str],
        new_status: str,
        changed_by: str,
        is_override: bool = False
    ):
        """Log a facility request status change."""
        self.log_with_context(
            logging.WARNING if is_override else logging.INFO,
            f"Facility request status changed: {old_status} -> {new_status}",
            entity_type="facility_request",
            entity_id=request_id,
            old_status=old_status,
            new_status=new_status,
            changed_by=changed_by,
            is_override=is_override
        )

    def slot_conflict(self, facility_id: str, request_count: int, blackout_count: int, late: bool = False):
        """Log a rejected reservation attempt."""
        self.log_with_context(
            logging.INFO,
            "Facility slot unavailable" + (" (lost race at insert)" if late else ""),
            entity_type="facility",
            entity_id=facility_id,
            conflicting_requests=request_count,
            conflicting_blackouts=blackout_count,
            late=late
        )


def setup_logging(
    level: str = "INFO",
    json_format: bool = True,
    include_uvicorn: bool = True
) -> None:
    """
    Configure application logging.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR)
        json_format: Use JSON format (True for production)
        include_uvicorn: Also configure uvicorn loggers
    """
    log_level = getattr(logging, level.upper(), logging.INFO)

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(log_level)

    if json_format:
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(logging.Formatter(
            '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
        ))

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)
    root_logger.handlers = [handler]

    logging.getLogger("facility_booking").setLevel(log_level)

    if include_uvicorn:
        for logger_name in ["uvicorn", "uvicorn.access", "uvicorn.error"]:
            logging.getLogger(logger_name).handlers = [handler]

    # Reduce noise from third-party loggers
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)


def get_logger(name: str) -> StructuredLogger:
    """Get a structured logger for the given module."""
    return StructuredLogger(logging.getLogger(name), {})


def set_request_context(request_id: str, actor: Optional[str] = None):
    """Set context for the current request."""
    request_id_var.set(request_id)
    if actor:
        actor_var.set(actor)


def clear_request_context():
    """Clear request context."""
    request_id_var.set('')
    actor_var.set('')
