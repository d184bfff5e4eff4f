"""Structured logging configuration using structlog."""

import logging
import sys
from typing import Any

import structlog
from structlog.types import EventDict, Processor

REDACTED = "[REDACTED]"

SENSITIVE_FIELDS = frozenset({
    "app_id",
    "app_key",
    "access_token",
    "first_name",
    "last_name",
    "email",
    "line_1",
    "line_2",
    "city",
    "postcode",
    "country_code",
    "hash",
    "holder_name",
    "scheme",
    "number",
})


def redact_sensitive_data(data: Any) -> Any:
    """Return a copy of data with sensitive keys replaced at any depth."""
    if isinstance(data, dict):
        return {
            key: REDACTED if str(key).lower() in SENSITIVE_FIELDS else redact_sensitive_data(value)
            for key, value in data.items()
        }
    if isinstance(data, (list, tuple)):
        return [redact_sensitive_data(value) for value in data]
    return data


def redact_processor(logger: Any, method_name: str, event_dict: EventDict) -> EventDict:
    """Redact card, customer and credential fields from log context."""
    return redact_sensitive_data(event_dict)


def drop_all(logger: Any, method_name: str, event_dict: EventDict) -> EventDict:
    raise structlog.DropEvent


def configure_logging(
    log_level: str = "INFO",
    format_as_json: bool = True,
    enabled: bool = True,
) -> None:
    """
    Configure structured logging for the gateway.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        format_as_json: If True, output logs as JSON; otherwise use console format
        enabled: If False, every log event is dropped (debug log switched off)
    """
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, log_level.upper()),
    )

    processors: list[Processor] = []

    if not enabled:
        processors.append(drop_all)

    processors.extend([
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.StackInfoRenderer(),
        redact_processor,
    ])

    if format_as_json:
        processors.append(structlog.processors.JSONRenderer(default=str))
    else:
        processors.append(structlog.dev.ConsoleRenderer())

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """
    Get a structured logger instance.

    Args:
        name: Logger name (typically __name__ of the module)

    Returns:
        Configured structlog logger
    """
    return structlog.get_logger(name)
