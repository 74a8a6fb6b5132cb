"""Observability module for sturdyhttp.

Structured logging (structlog) and in-process metrics for the retrying client,
the restricted dialer and the response lifecycle.

Example:
    >>> from sturdyhttp.observability import get_logger, get_metrics
    >>>
    >>> logger = get_logger(__name__)
    >>> logger.info("sturdyhttp.client.attempt", attempt=1)
    >>>
    >>> get_metrics().get_counter("sturdyhttp_attempts_total")
    0.0
"""

from sturdyhttp.observability.logging import (
    bind_context,
    clear_context,
    configure_logging,
    get_logger,
    is_debug_mode,
    sanitize_for_logging,
)
from sturdyhttp.observability.metrics import (
    MetricsCollector,
    get_metrics,
    reset_metrics,
)

__all__ = [
    "bind_context",
    "clear_context",
    "configure_logging",
    "get_logger",
    "get_metrics",
    "is_debug_mode",
    "reset_metrics",
    "MetricsCollector",
    "sanitize_for_logging",
]
