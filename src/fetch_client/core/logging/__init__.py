"""
Structured logging for Fetch Client.

Example:
    >>> from fetch_client.core.logging import LoggingConfig
    >>> client = FetchClient(
    ...     "https://api.example.com",
    ...     logging=LoggingConfig.create(level="DEBUG", format="json"),
    ... )
"""

from .config import LogFormat, LoggingConfig, LogLevel
from .filters import (
    CorrelationIdFilter,
    ExtraFieldsFilter,
    clear_correlation_id,
    get_correlation_id,
    reset_correlation_id,
    set_correlation_id,
)
from .formatters import JSONFormatter, TextFormatter, get_formatter
from .logger import FetchClientLogger

__all__ = [
    # Config
    "LoggingConfig",
    "LogLevel",
    "LogFormat",
    # Logger
    "FetchClientLogger",
    # Formatters
    "JSONFormatter",
    "TextFormatter",
    "get_formatter",
    # Filters
    "CorrelationIdFilter",
    "ExtraFieldsFilter",
    "set_correlation_id",
    "reset_correlation_id",
    "get_correlation_id",
    "clear_correlation_id",
]
