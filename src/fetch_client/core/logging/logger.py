"""
Structured request logger.

Each :class:`FetchClientLogger` owns the handlers of one named
``logging.Logger``; the client creates one when ``ClientConfig.logging`` is
set and closes it in ``FetchClient.close()``.
"""

import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, List, Optional

from ...utils.sanitizer import mask_sensitive_data
from .config import LoggingConfig, LogLevel
from .filters import CorrelationIdFilter, ExtraFieldsFilter
from .formatters import get_formatter


def _attach(handler: logging.Handler, level: int, formatter: logging.Formatter,
            filters: List[logging.Filter]) -> logging.Handler:
    handler.setLevel(level)
    handler.setFormatter(formatter)
    for f in filters:
        handler.addFilter(f)
    return handler


class FetchClientLogger:
    """
    Logger with console/file handlers, correlation ids and masked fields.

    Keyword arguments of the logging methods become structured fields;
    sensitive ones (tokens, passwords, auth headers) are masked.

    Example:
        >>> config = LoggingConfig.create(level="INFO", format="json")
        >>> with FetchClientLogger(config) as logger:
        ...     logger.info("Request completed", method="GET", status=200)
    """

    def __init__(self, config: Optional[LoggingConfig] = None):
        self.config = config or LoggingConfig()
        self.name = self.config.logger_name
        self._closed = False

        level = self._get_level(self.config.level)
        self._logger = logging.getLogger(self.name)
        self._logger.setLevel(level)
        self._logger.propagate = False

        # Re-initialising the same name replaces the previous handlers
        for handler in self._logger.handlers[:]:
            self._logger.removeHandler(handler)
            handler.close()

        filters: List[logging.Filter] = []
        if self.config.enable_correlation_id:
            filters.append(CorrelationIdFilter())
        if self.config.extra_fields:
            filters.append(ExtraFieldsFilter(self.config.extra_fields))

        formatter = get_formatter(self.config.format.value)

        if self.config.enable_console:
            self._logger.addHandler(
                _attach(logging.StreamHandler(sys.stdout), level, formatter, filters)
            )

        if self.config.enable_file and self.config.file_path:
            Path(self.config.file_path).parent.mkdir(parents=True, exist_ok=True)
            file_handler = RotatingFileHandler(
                filename=self.config.file_path,
                maxBytes=self.config.max_bytes,
                backupCount=self.config.backup_count,
                encoding="utf-8",
            )
            self._logger.addHandler(_attach(file_handler, level, formatter, filters))

    @staticmethod
    def _get_level(level: LogLevel) -> int:
        return getattr(logging, level.value)

    @property
    def handlers(self) -> List[logging.Handler]:
        return list(self._logger.handlers)

    @property
    def closed(self) -> bool:
        return self._closed

    def is_enabled_for(self, level: int) -> bool:
        return not self._closed and self._logger.isEnabledFor(level)

    def _log(self, level: int, message: str, fields: dict, exc_info: Any = None) -> None:
        if not self.is_enabled_for(level):
            return
        self._logger.log(level, message, extra=mask_sensitive_data(fields), exc_info=exc_info)

    def debug(self, message: str, **kwargs: Any) -> None:
        self._log(logging.DEBUG, message, kwargs)

    def info(self, message: str, **kwargs: Any) -> None:
        """
        Log info message.

        Example:
            >>> logger.info("Request completed", status=200, duration_ms=150)
        """
        self._log(logging.INFO, message, kwargs)

    def warning(self, message: str, **kwargs: Any) -> None:
        self._log(logging.WARNING, message, kwargs)

    def error(self, message: str, **kwargs: Any) -> None:
        self._log(logging.ERROR, message, kwargs)

    def exception(self, message: str, **kwargs: Any) -> None:
        """Log an error with the active exception's traceback."""
        self._log(logging.ERROR, message, kwargs, exc_info=True)

    def close(self) -> None:
        """
        Flush and close every handler. Idempotent.

        Example:
            >>> logger = FetchClientLogger(config)
            >>> logger.close()
            >>> logger.close()  # Safe to call again
        """
        if self._closed:
            return

        for handler in self._logger.handlers[:]:
            handler.flush()
            handler.close()
            self._logger.removeHandler(handler)

        self._closed = True

    def __enter__(self) -> "FetchClientLogger":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False
