"""
Structured Logging Configuration

Configures JSON-formatted logging with correlation IDs and the Stripe
event/session currently being processed, so every log line of one webhook
delivery can be joined together.
"""

import logging
import sys
import uuid
from contextvars import ContextVar
from typing import Any, Dict, Optional

from pythonjsonlogger import jsonlogger

ROOT_LOGGER_NAME = "contact_sync"

correlation_id_var: ContextVar[Optional[str]] = ContextVar(
    "correlation_id", default=None
)
event_context_var: ContextVar[Dict[str, str]] = ContextVar(
    "event_context", default={}
)


class RequestContextFilter(logging.Filter):
    """Add correlation ID and Stripe event context to log records"""

    def filter(self, record: logging.LogRecord) -> bool:
        record.correlation_id = correlation_id_var.get() or "N/A"
        for key, value in event_context_var.get().items():
            if not hasattr(record, key):
                setattr(record, key, value)
        return True


class CustomJsonFormatter(jsonlogger.JsonFormatter):
    """
    Custom JSON formatter for structured logging.
    Includes correlation ID, timestamp, and source location.
    """

    def add_fields(
        self,
        log_record: Dict[str, Any],
        record: logging.LogRecord,
        message_dict: Dict[str, Any],
    ) -> None:
        super().add_fields(log_record, record, message_dict)

        log_record["timestamp"] = self.formatTime(record, self.datefmt)
        log_record["level"] = record.levelname
        log_record["logger"] = record.name
        log_record["module"] = record.module
        log_record["function"] = record.funcName
        log_record["line"] = record.lineno

        if hasattr(record, "correlation_id"):
            log_record["correlation_id"] = record.correlation_id

        if record.exc_info:
            log_record["exception"] = self.formatException(record.exc_info)


def setup_logging(log_level: str = "INFO") -> logging.Logger:
    """
    Configure application logging with JSON formatting.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)

    Returns:
        Configured root application logger
    """
    logger = logging.getLogger(ROOT_LOGGER_NAME)
    logger.setLevel(log_level)
    logger.propagate = False
    logger.handlers.clear()

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(log_level)
    console_handler.setFormatter(
        CustomJsonFormatter(
            "%(timestamp)s %(level)s %(name)s %(message)s",
            datefmt="%Y-%m-%dT%H:%M:%S%z",
        )
    )
    console_handler.addFilter(RequestContextFilter())
    logger.addHandler(console_handler)

    return logger


def get_logger(name: str) -> logging.Logger:
    """Get a logger namespaced under the application root logger"""
    if name.startswith(f"{ROOT_LOGGER_NAME}."):
        return logging.getLogger(name)
    return logging.getLogger(f"{ROOT_LOGGER_NAME}.{name}")


def set_correlation_id(correlation_id: Optional[str] = None) -> str:
    """
    Set correlation ID for the current context.
    Generates a new UUID if not provided.

    Returns:
        The correlation ID that was set
    """
    if correlation_id is None:
        correlation_id = str(uuid.uuid4())
    correlation_id_var.set(correlation_id)
    return correlation_id


def get_correlation_id() -> Optional[str]:
    return correlation_id_var.get()


def bind_event_context(**fields: Optional[str]) -> None:
    """
    Attach Stripe identifiers (event_id, session_id, ...) to every log
    record emitted in the current context. None values are ignored.
    """
    context = dict(event_context_var.get())
    context.update({key: value for key, value in fields.items() if value})
    event_context_var.set(context)


def clear_request_context() -> None:
    """Reset correlation ID and event context for the current context"""
    correlation_id_var.set(None)
    event_context_var.set({})
