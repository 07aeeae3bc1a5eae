"""
Structured JSON Logging Configuration

Every record carries the request id and the (masked) WhatsApp sender so a
single conversation can be followed across webhook deliveries.
"""

import logging
import json
import sys
from datetime import datetime, timezone
from contextvars import ContextVar

# Context variables for request-scoped data
request_id_var: ContextVar[str] = ContextVar("request_id", default=None)
user_id_var: ContextVar[str] = ContextVar("user_id", default=None)


def mask_phone(phone: str) -> str:
    """Keep only the last four digits of a phone identifier."""
    if not phone:
        return ""
    digits = "".join(ch for ch in phone if ch.isdigit())
    if len(digits) <= 4:
        return "***"
    return f"***{digits[-4:]}"


class JSONFormatter(logging.Formatter):
    """
    Formats log records as JSON with automatic context injection.
    """

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        # Add request context if available
        request_id = request_id_var.get()
        if request_id:
            log_data["request_id"] = request_id

        user_id = user_id_var.get()
        if user_id:
            log_data["user"] = mask_phone(user_id)

        # Add extra fields from the log record
        if hasattr(record, "action"):
            log_data["action"] = record.action
        if hasattr(record, "extra_data"):
            log_data.update(record.extra_data)

        # Add exception info if present
        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_data, default=str)


def setup_logging(level: str = "INFO") -> None:
    """
    Configure structured JSON logging for the application.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR)
    """
    # Remove existing handlers
    root = logging.getLogger()
    for handler in root.handlers[:]:
        root.removeHandler(handler)

    # Create JSON handler for stdout
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(JSONFormatter())

    # Configure root logger
    root.setLevel(getattr(logging, level.upper(), logging.INFO))
    root.addHandler(handler)

    # Reduce noise from third-party loggers
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("twilio.http_client").setLevel(logging.WARNING)
    logging.getLogger("pdfminer").setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    """Get a logger instance with the given name."""
    return logging.getLogger(name)


def log_action(logger: logging.Logger, level: str, action: str, message: str, **kwargs) -> None:
    """
    Log a structured action with additional context.

    Args:
        logger: Logger instance
        level: Log level (info, warning, error)
        action: Action identifier (e.g., "artifact_emitted")
        message: Human-readable message
        **kwargs: Additional fields to include in log

    Example:
        log_action(logger, "info", "contacts_staged",
                   "Staged contacts from attachments",
                   added=12, total=40)
    """
    level_no = getattr(logging, level.upper(), logging.INFO)
    if not logger.isEnabledFor(level_no):
        return
    record = logging.LogRecord(
        name=logger.name,
        level=level_no,
        pathname="",
        lineno=0,
        msg=message,
        args=(),
        exc_info=None,
    )
    record.action = action
    record.extra_data = kwargs
    logger.handle(record)
