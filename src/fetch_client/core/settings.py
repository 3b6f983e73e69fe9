"""
Client configuration from environment variables and .env files.

Example .env file:
    FETCH_CLIENT_BASE_URL=https://api.example.com
    FETCH_CLIENT_TIMEOUT=10
    FETCH_CLIENT_RETRY_MAX_RETRIES=5
    FETCH_CLIENT_RETRY_STATUS_CODES=429,503
    FETCH_CLIENT_LOG_ENABLED=true
    FETCH_CLIENT_LOG_FORMAT=json
"""

from typing import FrozenSet, Literal, Optional

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .config import ClientConfig, RetryOptions
from .logging.config import LoggingConfig


class FetchClientSettings(BaseSettings):
    """
    Fetch Client settings read from ``FETCH_CLIENT_*`` variables.

    Priority: explicit init arguments > environment > .env file > defaults.

    Usage:
        >>> settings = FetchClientSettings()
        >>> settings.timeout
        30.0
    """

    model_config = SettingsConfigDict(
        env_prefix='FETCH_CLIENT_',
        env_file='.env',
        env_file_encoding='utf-8',
        case_sensitive=False,
        extra='ignore',
    )

    base_url: str = Field(default="", description="Base URL for relative request URLs")
    timeout: float = Field(default=30.0, gt=0, description="Per-attempt timeout in seconds")

    # Retry
    retry_max_retries: int = Field(default=3, ge=0)
    retry_delay: float = Field(default=0.3, ge=0)
    retry_backoff_factor: float = Field(default=2.0, ge=1.0)
    retry_max_delay: float = Field(default=30.0, ge=0)
    retry_network_errors: bool = Field(default=True)
    retry_status_codes: Optional[str] = Field(
        default=None, description="Comma-separated status codes, e.g. '429,503'"
    )

    # Logging
    log_enabled: bool = Field(default=False)
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(default="INFO")
    log_format: Literal["json", "text"] = Field(default="text")
    log_enable_console: bool = Field(default=True)
    log_enable_file: bool = Field(default=False)
    log_file_path: Optional[str] = None
    log_max_bytes: int = Field(default=10 * 1024 * 1024, gt=0)
    log_backup_count: int = Field(default=5, ge=0)
    log_enable_correlation_id: bool = Field(default=True)

    @field_validator('log_level', mode='before')
    @classmethod
    def normalize_log_level(cls, v):
        return v.upper() if isinstance(v, str) else v

    @field_validator('log_format', mode='before')
    @classmethod
    def normalize_log_format(cls, v):
        return v.lower() if isinstance(v, str) else v

    @field_validator('retry_status_codes')
    @classmethod
    def validate_status_codes(cls, v: Optional[str]) -> Optional[str]:
        """Every comma-separated item must be an HTTP status code."""
        if v is None or not v.strip():
            return None
        for item in v.split(','):
            item = item.strip()
            if not item.isdigit() or not 100 <= int(item) <= 599:
                raise ValueError(f"Invalid status code in retry_status_codes: {item!r}")
        return v

    @model_validator(mode='after')
    def validate_log_file(self) -> 'FetchClientSettings':
        if self.log_enabled and self.log_enable_file and not self.log_file_path:
            raise ValueError("log_file_path is required when log_enable_file=True")
        return self

    def status_codes(self) -> Optional[FrozenSet[int]]:
        """Parsed ``retry_status_codes`` or None when unset."""
        if self.retry_status_codes is None:
            return None
        return frozenset(int(item) for item in self.retry_status_codes.split(','))

    def to_retry_options(self) -> RetryOptions:
        return RetryOptions(
            max_retries=self.retry_max_retries,
            retry_delay=self.retry_delay,
            backoff_factor=self.retry_backoff_factor,
            retry_status_codes=self.status_codes(),
            retry_network_errors=self.retry_network_errors,
            max_retry_delay=self.retry_max_delay,
        )

    def to_logging_config(self) -> Optional[LoggingConfig]:
        """LoggingConfig if logging is enabled, else None."""
        if not self.log_enabled:
            return None
        return LoggingConfig.create(
            level=self.log_level,
            format=self.log_format,
            enable_console=self.log_enable_console,
            enable_file=self.log_enable_file,
            file_path=self.log_file_path,
            max_bytes=self.log_max_bytes,
            backup_count=self.log_backup_count,
            enable_correlation_id=self.log_enable_correlation_id,
        )


def load_from_env(env_file: Optional[str] = None, **overrides) -> ClientConfig:
    """
    Load ClientConfig from environment variables.

    Priority (highest to lowest):
    1. **overrides (FetchClientSettings field names)
    2. Environment variables (FETCH_CLIENT_*)
    3. .env file
    4. Defaults

    Args:
        env_file: Custom .env file path (default: ``.env``)
        **overrides: Explicit settings, e.g. ``base_url=...``, ``retry_max_retries=0``

    Returns:
        ClientConfig instance

    Raises:
        pydantic.ValidationError: A value does not validate

    Example:
        >>> config = load_from_env(base_url="https://staging.example.com")
        >>> client = FetchClient(config=config)
    """
    if env_file is not None:
        settings = FetchClientSettings(_env_file=env_file, **overrides)
    else:
        settings = FetchClientSettings(**overrides)

    return ClientConfig(
        base_url=settings.base_url,
        timeout=settings.timeout,
        retry=settings.to_retry_options(),
        logging=settings.to_logging_config(),
    )
