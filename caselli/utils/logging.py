"""
Structured logging configuration for the Caselli agent core.

This module provides centralized logging configuration using structlog,
with support for request context tracking and environment-specific formatting.
"""

import logging
import sys
from contextvars import ContextVar
from typing import Any, Dict, Optional

import structlog
from structlog.types import EventDict, Processor

# Context variable for request-scoped data
request_context: ContextVar[Optional[Dict[str, Any]]] = ContextVar(
    "request_context", default=None
)


class RequestContextProcessor:
    """
    Add request context to all log entries.

    Extracts request-scoped fields (request_id, user_id, conversation_id)
    from the context variable and adds them to every log entry. Background
    tasks copy the context at creation time, so their logs keep the ids of
    the turn that spawned them.
    """

    def __call__(
        self, logger: Any, method_name: str, event_dict: EventDict
    ) -> EventDict:
        ctx = request_context.get()
        if ctx is not None:
            for key, value in ctx.items():
                event_dict.setdefault(key, value)
        return event_dict


class EnvironmentProcessor:
    """Add app version and environment to log entries."""

    def __init__(self, app_env: str, app_version: str):
        self.app_env = app_env
        self.app_version = app_version

    def __call__(
        self, logger: Any, method_name: str, event_dict: EventDict
    ) -> EventDict:
        event_dict["env"] = self.app_env
        event_dict["version"] = self.app_version
        return event_dict


SENSITIVE_KEYS = (
    "password",
    "api_key",
    "secret",
    "authorization",
    "access_token",
    "refresh_token",
    "service_role",
    "anon_key",
    "bearer",
)


def filter_sensitive_data(
    logger: Any, method_name: str, event_dict: EventDict
) -> EventDict:
    """
    Mask sensitive fields like tokens and API keys in log entries.

    Strings longer than 8 characters keep their first and last 4 characters,
    anything else is replaced outright.
    """
    for key in list(event_dict.keys()):
        key_lower = key.lower()
        if any(sensitive in key_lower for sensitive in SENSITIVE_KEYS):
            value = event_dict[key]
            if isinstance(value, str) and len(value) > 8:
                event_dict[key] = f"{value[:4]}...{value[-4:]}"
            else:
                event_dict[key] = "***REDACTED***"

    return event_dict


# Free text typed by agents or written by the model; logged only as a prefix
CONVERSATION_TEXT_KEYS = ("message", "content", "reply", "user_message", "excerpt")
CONVERSATION_TEXT_LIMIT = 120


def clip_conversation_text(
    logger: Any, method_name: str, event_dict: EventDict
) -> EventDict:
    for key in CONVERSATION_TEXT_KEYS:
        value = event_dict.get(key)
        if isinstance(value, str) and len(value) > CONVERSATION_TEXT_LIMIT:
            event_dict[key] = f"{value[:CONVERSATION_TEXT_LIMIT]}... ({len(value)} chars)"
    return event_dict


# Third-party loggers that log every request at INFO
NOISY_LOGGERS = ("httpx", "httpcore", "anthropic", "sqlalchemy.engine", "aiosqlite")


def configure_logging(
    log_level: str = "INFO",
    app_env: str = "development",
    app_version: str = "0.1.0",
    json_format: Optional[bool] = None,
) -> None:
    """
    Configure structured logging for the application.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
        app_env: Application environment (development, staging, production, test)
        app_version: Application version for tracking
        json_format: Force JSON output (None = auto-detect based on environment)

    Development gets human-readable console output; staging and production
    get JSON lines for log aggregation.
    """
    if json_format is None:
        json_format = app_env in ["staging", "production"]

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, log_level.upper()),
    )
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(logging.WARNING, logging.getLogger().level))

    processors: list[Processor] = [
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.CallsiteParameterAdder(
            parameters=[
                structlog.processors.CallsiteParameter.FILENAME,
                structlog.processors.CallsiteParameter.LINENO,
                structlog.processors.CallsiteParameter.FUNC_NAME,
            ]
        ),
        RequestContextProcessor(),
        EnvironmentProcessor(app_env, app_version),
        filter_sensitive_data,
        clip_conversation_text,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
    ]

    if json_format:
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=True))

    structlog.configure(
        processors=processors,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(name: Optional[str] = None) -> structlog.stdlib.BoundLogger:
    """
    Get a configured logger instance.

    Args:
        name: Logger name (usually __name__ from the calling module)
    """
    return structlog.get_logger(name)


def set_request_context(**kwargs: Any) -> None:
    """
    Set request-scoped context that will be included in all logs.

    Example:
        set_request_context(request_id="123", user_id="456", path="/api/v1/chat")
    """
    ctx = dict(request_context.get() or {})
    ctx.update(kwargs)
    request_context.set(ctx)


def clear_request_context() -> None:
    """Clear the request context (called at the end of each request)."""
    request_context.set(None)
