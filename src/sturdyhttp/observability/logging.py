"""Structured logging configuration for sturdyhttp.

This module configures structlog for structured logging with support for
both development (console) and production (JSON) output formats.

Environment Variables:
    STURDYHTTP_LOG_FORMAT: Set to "json" for JSON output, "console" for colored output
    STURDYHTTP_LOG_LEVEL: Set log level (DEBUG, INFO, WARNING, ERROR)
    STURDYHTTP_SERVICE_NAME: Service name to include in logs
    STURDYHTTP_DEBUG: Set to "true" or "1" to log header values unredacted

Library code only obtains loggers; events are routed through the stdlib
``logging`` tree under the module name and are silent until the application
configures logging. Applications (and the ``sturdyhttp`` CLI) call
:func:`configure_logging` to install a structlog renderer.

Example:
    >>> from sturdyhttp.observability.logging import get_logger, configure_logging
    >>>
    >>> configure_logging(log_format="json", log_level="INFO")
    >>> logger = get_logger("sturdyhttp.client")
    >>> logger.info("sturdyhttp.client.attempt", attempt=1)
"""

import logging
import os
import sys
from collections.abc import Mapping
from typing import Any, TextIO

import structlog
from structlog.typing import Processor

# Default configuration
DEFAULT_LOG_LEVEL = "INFO"
DEFAULT_LOG_FORMAT = "console"
DEFAULT_SERVICE_NAME = "sturdyhttp"

# Environment variable names
ENV_LOG_FORMAT = "STURDYHTTP_LOG_FORMAT"
ENV_LOG_LEVEL = "STURDYHTTP_LOG_LEVEL"
ENV_SERVICE_NAME = "STURDYHTTP_SERVICE_NAME"
ENV_DEBUG = "STURDYHTTP_DEBUG"

# Placeholder for redacted sensitive values in logs
REDACTED_PLACEHOLDER = "***REDACTED***"

# Key substrings (case-insensitive) that indicate sensitive data to redact
_SENSITIVE_KEY_PATTERNS = frozenset(
    {"password", "token", "secret", "authorization", "cookie", "api-key", "api_key"}
)

_logging_configured = False


def _is_sensitive_key(key: str) -> bool:
    lower = key.lower()
    return any(pattern in lower for pattern in _SENSITIVE_KEY_PATTERNS)


def sanitize_for_logging(data: Mapping[str, Any]) -> dict[str, Any]:
    """Redact sensitive values from a mapping (e.g. request headers) before logging.

    Keys containing password, token, secret, authorization, cookie or api-key
    (case-insensitive) have their values replaced with REDACTED_PLACEHOLDER,
    unless debug mode is enabled. Nested mappings are sanitized recursively.

    Example:
        >>> sanitize_for_logging({"Accept": "*/*", "Authorization": "Bearer abc"})
        {'Accept': '*/*', 'Authorization': '***REDACTED***'}
    """
    if not data:
        return {}
    debug = is_debug_mode()
    result: dict[str, Any] = {}
    for k, v in data.items():
        if not debug and _is_sensitive_key(k):
            result[k] = REDACTED_PLACEHOLDER
        elif isinstance(v, Mapping):
            result[k] = sanitize_for_logging(v)
        else:
            result[k] = v
    return result


def is_debug_mode() -> bool:
    """Return True if STURDYHTTP_DEBUG is set to a truthy value (e.g. true, 1)."""
    value = os.environ.get(ENV_DEBUG, "").strip().lower()
    return value in ("true", "1", "yes", "on")


def _get_log_level() -> str:
    return os.environ.get(ENV_LOG_LEVEL, DEFAULT_LOG_LEVEL).upper()


def _get_log_format() -> str:
    return os.environ.get(ENV_LOG_FORMAT, DEFAULT_LOG_FORMAT).lower()


def _get_service_name() -> str:
    return os.environ.get(ENV_SERVICE_NAME, DEFAULT_SERVICE_NAME)


def _get_shared_processors() -> list[Processor]:
    """Get shared processors for all log formats."""
    return [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]


def configure_logging(
    log_format: str | None = None,
    log_level: str | None = None,
    service_name: str | None = None,
    force: bool = False,
    stream: TextIO | None = None,
) -> None:
    """Configure structured logging for the application.

    Replaces the root logger's handlers, so only applications should call it.

    Args:
        log_format: Output format - "json" or "console". Defaults to env var or "console"
        log_level: Minimum log level. Defaults to env var or "INFO"
        service_name: Service name for log context. Defaults to env var or "sturdyhttp"
        force: If True, reconfigure even if already configured
        stream: Where log lines are written. Defaults to stdout
    """
    global _logging_configured

    if _logging_configured and not force:
        return

    log_format = log_format or _get_log_format()
    log_level = log_level or _get_log_level()
    service_name = service_name or _get_service_name()

    shared_processors = _get_shared_processors()

    if log_format == "json":
        renderer: Processor = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(
            colors=True,
            exception_formatter=structlog.dev.plain_traceback,
        )

    structlog.configure(
        processors=[
            *shared_processors,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    formatter = structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=shared_processors,
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            renderer,
        ],
    )

    handler = logging.StreamHandler(stream if stream is not None else sys.stdout)
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(getattr(logging, log_level))

    structlog.contextvars.bind_contextvars(service=service_name)

    _logging_configured = True


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """Get a structured logger for the given name.

    The logger hands events to the stdlib logger of the same name without
    touching global logging state. Output depends on how the application
    configured ``logging``; :func:`configure_logging` renders them with structlog.

    Example:
        >>> logger = get_logger(__name__)
        >>> logger.info("sturdyhttp.client.response", status_code=200)
    """
    logger: structlog.stdlib.BoundLogger = structlog.wrap_logger(
        logging.getLogger(name),
        processors=[
            *_get_shared_processors(),
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
    )
    return logger


def bind_context(**kwargs: Any) -> None:
    """Bind context variables that will be included in all subsequent logs.

    Example:
        >>> bind_context(request_id="req_123")
    """
    structlog.contextvars.bind_contextvars(**kwargs)


def clear_context() -> None:
    """Clear all bound context variables."""
    structlog.contextvars.clear_contextvars()
