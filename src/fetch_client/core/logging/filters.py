"""
Log filters for correlation ids and static fields.

The correlation id lives in a :class:`contextvars.ContextVar`, so every
asyncio task sees its own value and concurrent requests on one loop do not
overwrite each other.
"""

import logging
from contextvars import ContextVar, Token
from typing import Any, Dict, Optional

_correlation_id: ContextVar[Optional[str]] = ContextVar("fetch_client_correlation_id", default=None)


def set_correlation_id(correlation_id: Optional[str]) -> Token:
    """
    Set correlation ID for the current context.

    Returns:
        Token for :func:`reset_correlation_id`

    Example:
        >>> token = set_correlation_id("req-12345")
        >>> logger.info("Processing request")  # includes correlation_id
        >>> reset_correlation_id(token)
    """
    return _correlation_id.set(correlation_id)


def reset_correlation_id(token: Token) -> None:
    """Restore the value that was current before :func:`set_correlation_id`."""
    _correlation_id.reset(token)


def get_correlation_id() -> Optional[str]:
    """Correlation ID of the current context, or None."""
    return _correlation_id.get()


def clear_correlation_id() -> None:
    _correlation_id.set(None)


class CorrelationIdFilter(logging.Filter):
    """Adds ``correlation_id`` to records when one is set."""

    def filter(self, record: logging.LogRecord) -> bool:
        correlation_id = get_correlation_id()
        if correlation_id and not hasattr(record, "correlation_id"):
            record.correlation_id = correlation_id
        return True


class ExtraFieldsFilter(logging.Filter):
    """
    Adds static fields (service, environment, ...) to every record.

    Fields already present on the record win.

    Example:
        >>> handler.addFilter(ExtraFieldsFilter({"service": "billing"}))
    """

    def __init__(self, extra_fields: Dict[str, Any]):
        super().__init__()
        self.extra_fields = dict(extra_fields)

    def filter(self, record: logging.LogRecord) -> bool:
        for key, value in self.extra_fields.items():
            if not hasattr(record, key):
                setattr(record, key, value)
        return True
