"""
Система конфигурации для Fetch Client.

Все конфиги immutable (frozen dataclasses): один ClientConfig безопасно
разделяется между конкурентными запросами.
"""

from dataclasses import dataclass, field, fields, replace
from types import MappingProxyType
from typing import (
    TYPE_CHECKING, Any, Awaitable, Callable, Dict, FrozenSet, Iterable, Mapping,
    Optional, Union,
)

from .paths import ParamsSerializer, normalize_base_url

if TYPE_CHECKING:
    from .logging import LoggingConfig

RetryPredicate = Callable[[Exception, int], Union[bool, Awaitable[bool]]]

DEFAULT_TIMEOUT = 30.0

DEFAULT_RETRY_STATUS_CODES: FrozenSet[int] = frozenset({429, 500, 502, 503, 504})

# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# RETRY CONFIG
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

@dataclass(frozen=True)
class RetryOptions:
    """
    Частичные настройки retry (уровень клиента или запроса).

    Поле со значением None не переопределяет нижний уровень.

    Args:
        max_retries: Количество повторов (не включая первую попытку)
        retry_delay: Базовая задержка (сек)
        backoff_factor: Множитель для exponential backoff
        retry_status_codes: Какие статус коды ретраить
        retry_network_errors: Ретраить ли NetworkError
        max_retry_delay: Максимальная задержка (сек)
        should_retry: Кастомный предикат (error, attempt) -> bool, sync или async

    Examples:
        >>> RetryOptions(max_retries=5)
        >>> RetryOptions(retry_status_codes={503}, retry_delay=1.0)
    """
    max_retries: Optional[int] = None
    retry_delay: Optional[float] = None
    backoff_factor: Optional[float] = None
    retry_status_codes: Optional[Iterable[int]] = None
    retry_network_errors: Optional[bool] = None
    max_retry_delay: Optional[float] = None
    should_retry: Optional[RetryPredicate] = None


@dataclass(frozen=True)
class RetryPolicy:
    """
    Итоговая политика retry для одного вызова.

    Собирается слоями: дефолты < RetryOptions клиента < RetryOptions запроса.

    Examples:
        >>> policy = RetryPolicy().merged(RetryOptions(max_retries=1))
        >>> policy.max_retries
        1
    """
    max_retries: int = 3
    retry_delay: float = 0.3
    backoff_factor: float = 2.0
    retry_status_codes: FrozenSet[int] = DEFAULT_RETRY_STATUS_CODES
    retry_network_errors: bool = True
    max_retry_delay: float = 30.0
    should_retry: Optional[RetryPredicate] = None

    def __post_init__(self):
        """Валидация."""
        if not isinstance(self.retry_status_codes, frozenset):
            object.__setattr__(self, 'retry_status_codes', frozenset(self.retry_status_codes))

        if self.max_retries < 0:
            raise ValueError("max_retries must be non-negative")
        if self.retry_delay < 0:
            raise ValueError("retry_delay must be non-negative")
        if self.backoff_factor < 1:
            raise ValueError("backoff_factor must be >= 1")
        if self.max_retry_delay < 0:
            raise ValueError("max_retry_delay must be non-negative")

    def merged(self, *overrides: Optional[RetryOptions]) -> 'RetryPolicy':
        """
        Наложить слои RetryOptions по порядку (последний побеждает).

        Args:
            overrides: Слои настроек; None пропускается

        Returns:
            Новый RetryPolicy
        """
        changes: Dict[str, Any] = {}
        for options in overrides:
            if options is None:
                continue
            for f in fields(options):
                value = getattr(options, f.name)
                if value is not None:
                    changes[f.name] = value

        if not changes:
            return self
        return replace(self, **changes)

# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# MAIN CONFIG
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

def _freeze_dict(d: Optional[Mapping[str, str]]) -> Mapping[str, str]:
    """
    Convert mapping to immutable MappingProxyType.

    Example:
        >>> frozen = _freeze_dict({"X-API-Key": "secret"})
        >>> frozen["X-New"] = "value"  # Raises TypeError
    """
    if d is None:
        return MappingProxyType({})
    return MappingProxyType(dict(d))


@dataclass(frozen=True)
class ClientConfig:
    """
    Главная конфигурация FetchClient.

    Args:
        base_url: Базовый URL ("" , относительный путь с "/" или абсолютный URL)
        headers: Дефолтные заголовки
        timeout: Таймаут одной попытки (сек)
        retry: Настройки retry уровня клиента
        schema_validator: Адаптер схем (None = StandardSchemaValidator)
        serialize_body: Кастомный сериализатор тела запроса
        serialize_params: Кастомный сериализатор query параметров
        on_request: Request middleware
        on_response: Response middleware
        logging: Конфигурация логирования (None = без структурных логов)

    Raises:
        InvalidBaseUrlError: base_url некорректен
        ValueError: timeout <= 0

    Examples:
        >>> config = ClientConfig(base_url="https://api.example.com/")
        >>> config.base_url
        'https://api.example.com'
        >>> config = ClientConfig.create(timeout=10, max_retries=5)
    """
    base_url: str = ""
    headers: Mapping[str, str] = field(default_factory=lambda: MappingProxyType({}))
    timeout: float = DEFAULT_TIMEOUT
    retry: Optional[RetryOptions] = None
    schema_validator: Any = None
    serialize_body: Optional[Callable[[Any], Any]] = None
    serialize_params: Optional[ParamsSerializer] = None
    on_request: Optional[Callable[..., Any]] = None
    on_response: Optional[Callable[..., Any]] = None
    logging: Optional['LoggingConfig'] = None

    def __post_init__(self):
        """Normalize base_url, freeze headers and validate timeout."""
        object.__setattr__(self, 'base_url', normalize_base_url(self.base_url))

        if not isinstance(self.headers, MappingProxyType):
            object.__setattr__(self, 'headers', _freeze_dict(self.headers))

        if self.timeout <= 0:
            raise ValueError("timeout must be positive")

    @classmethod
    def create(
        cls,
        base_url: Optional[str] = None,
        timeout: float = DEFAULT_TIMEOUT,
        max_retries: Optional[int] = None,
        retry_delay: Optional[float] = None,
        headers: Optional[Mapping[str, str]] = None,
        logging: Optional['LoggingConfig'] = None,
        **kwargs
    ) -> 'ClientConfig':
        """
        Удобный конструктор конфигурации.

        Args:
            base_url: Базовый URL
            timeout: Таймаут попытки (сек)
            max_retries: Количество retry
            retry_delay: Базовая задержка retry (сек)
            headers: Заголовки
            logging: Конфигурация логирования
            **kwargs: Остальные поля ClientConfig

        Examples:
            >>> ClientConfig.create("https://api.example.com", max_retries=0)
        """
        retry = kwargs.pop('retry', None)
        if max_retries is not None or retry_delay is not None:
            retry = replace(
                retry or RetryOptions(),
                **{
                    k: v for k, v in (('max_retries', max_retries), ('retry_delay', retry_delay))
                    if v is not None
                }
            )

        return cls(
            base_url=base_url or "",
            headers=headers or {},
            timeout=timeout,
            retry=retry,
            logging=logging,
            **kwargs
        )

    def with_headers(self, headers: Mapping[str, str]) -> 'ClientConfig':
        """
        Создать новый конфиг с дополнительными заголовками.

        Example:
            >>> new_config = config.with_headers({"X-API-Key": "secret"})
        """
        merged = dict(self.headers)
        merged.update(headers)
        return replace(self, headers=merged)

    def with_retry(self, retry: Optional[RetryOptions] = None, **options) -> 'ClientConfig':
        """
        Создать новый конфиг с наложенными настройками retry.

        Example:
            >>> new_config = config.with_retry(max_retries=5)
        """
        layer = retry if retry is not None else RetryOptions(**options)
        current = self.retry or RetryOptions()
        combined = replace(
            current,
            **{f.name: getattr(layer, f.name) for f in fields(layer) if getattr(layer, f.name) is not None}
        )
        return replace(self, retry=combined)

    def retry_policy(self, overrides: Optional[RetryOptions] = None) -> RetryPolicy:
        """Итоговая политика: дефолты < retry клиента < overrides запроса."""
        return RetryPolicy().merged(self.retry, overrides)
