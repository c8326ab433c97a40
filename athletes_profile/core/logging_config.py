"""
Structured logging configuration for the application.

Provides JSON-formatted logs tagged with the client context (X-Client-Id) that
produced them, and readable logs for local development. Email addresses are
masked with mask_email() before they reach a log line.
"""

import logging
import sys
from contextvars import ContextVar
from typing import Any, Dict
from datetime import datetime, timezone
from pythonjsonlogger import jsonlogger

# Client context of the request being served, set by the client context dependency
client_id_var: ContextVar[str] = ContextVar("client_id", default="-")


class ClientIdFilter(logging.Filter):
    """
    Stamps every record with the current client id so both formatters can use it.
    """

    def filter(self, record: logging.LogRecord) -> bool:
        record.client_id = client_id_var.get()
        return True


class CustomJsonFormatter(jsonlogger.JsonFormatter):
    """
    JSON formatter adding timestamp, level, origin and client context to every record.
    """

    def add_fields(self, log_record: Dict[str, Any], record: logging.LogRecord, message_dict: Dict[str, Any]) -> None:
        super().add_fields(log_record, record, message_dict)

        # UTC timestamp in ISO format
        log_record['timestamp'] = datetime.now(timezone.utc).isoformat().replace('+00:00', 'Z')

        log_record['level'] = record.levelname
        log_record['logger'] = record.name
        log_record['module'] = record.module
        log_record['function'] = record.funcName

        # Client context, only when the record was emitted while serving one
        client_id = getattr(record, 'client_id', None) or client_id_var.get()
        if client_id != '-':
            log_record['client_id'] = client_id
        else:
            log_record.pop('client_id', None)

        # Add line number for errors/warnings
        if record.levelno >= logging.WARNING:
            log_record['line'] = record.lineno
            log_record['pathname'] = record.pathname


def setup_logging(log_level: str = "INFO", json_logs: bool = True) -> None:
    """
    Configure structured logging for the application.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        json_logs: Whether to use JSON formatting (True for production, False for development)
    """
    # Remove any existing handlers
    root_logger = logging.getLogger()
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.addFilter(ClientIdFilter())

    if json_logs:
        # Production: one JSON document per line
        formatter = CustomJsonFormatter(
            '%(timestamp)s %(level)s %(logger)s %(module)s %(funcName)s %(message)s'
        )
    else:
        # Development: human-readable, client id in brackets
        formatter = logging.Formatter(
            '%(asctime)s - %(name)s - %(levelname)s - [%(client_id)s] %(message)s',
            datefmt='%Y-%m-%d %H:%M:%S'
        )

    console_handler.setFormatter(formatter)

    root_logger.setLevel(getattr(logging, log_level.upper(), logging.INFO))
    root_logger.addHandler(console_handler)

    # Platform requests are logged by the services, not per HTTP call
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)


def mask_email(email: str) -> str:
    """
    Mask an email address before it goes into a log line.

    Example: jamie.rivera@example.com -> j***@example.com
    """
    if "@" not in (email or ""):
        return "***"

    local, domain = email.split("@", 1)
    masked_local = "*" if len(local) <= 1 else f"{local[0]}***"
    return f"{masked_local}@{domain}"
