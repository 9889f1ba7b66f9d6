"""
Structured Logging with Structlog.

Every log line carries the service name and version, plus whatever
request-scoped context the HTTP middleware bound (request_id). Credentials
that flow through the auth pipeline (API keys, bearer tokens, passwords)
are masked by ``redact_secrets`` before rendering.
"""

import logging
import sys
from typing import Any

import structlog
from structlog.types import EventDict, Processor

from speedformat.config import settings

# Event keys whose values are credentials
SECRET_FIELDS = frozenset(
    {
        "api_key",
        "authorization",
        "bearer_token",
        "current_password",
        "new_password",
        "password",
        "token",
    }
)
# Enough of an API key to tell keys apart in logs, same as the stored prefix
VISIBLE_KEY_CHARS = 10


def add_app_context(logger: Any, method_name: str, event_dict: EventDict) -> EventDict:
    """Add service name and version to all log entries."""
    event_dict["service"] = settings.service_name
    event_dict["version"] = settings.api_version
    return event_dict


def redact_secrets(logger: Any, method_name: str, event_dict: EventDict) -> EventDict:
    """Mask credential values. API keys keep their display prefix."""
    for field in SECRET_FIELDS.intersection(event_dict):
        value = event_dict[field]
        if value is None:
            continue
        if field == "api_key" and isinstance(value, str):
            event_dict[field] = f"{value[:VISIBLE_KEY_CHARS]}..."
        else:
            event_dict[field] = "[redacted]"
    return event_dict


def setup_logging() -> None:
    """
    Configure structured logging with structlog.

    JSON output (LOG_FORMAT=json) looks like:
    {
        "event": "code_formatted",
        "level": "info",
        "timestamp": "2026-10-18T12:00:00.123456Z",
        "logger": "speedformat.services.pipeline",
        "service": "speed-formatter-api",
        "version": "0.1.0",
        "request_id": "9f1c...",
        "endpoint": "api",
        "plan": "pro",
        ...
    }

    LOG_FORMAT=console switches to the colored dev renderer.
    """
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, settings.log_level.upper()),
    )

    processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        add_app_context,
        redact_secrets,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]

    if settings.log_format == "json":
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=True))

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

    Usage:
        logger = get_logger(__name__)
        logger.info("quota_checked", account_id=account_id, allowed=True)
    """
    return structlog.get_logger(name)  # type: ignore[no-any-return]


class log_context:
    """
    Bind request-scoped fields for the duration of a block.

    The HTTP middleware wraps each request:
        with log_context(request_id=request_id):
            ...  # pipeline, resolver and ledger logs all carry request_id
    """

    def __init__(self, **kwargs: Any) -> None:
        self.context = kwargs

    def __enter__(self) -> None:
        structlog.contextvars.bind_contextvars(**self.context)

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        structlog.contextvars.unbind_contextvars(*self.context.keys())
