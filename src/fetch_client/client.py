# src/fetch_client/client.py
"""
Асинхронный HTTP клиент поверх fetch-подобного транспорта.

Тонкая обёртка над RequestPipeline: методы get/post/... собирают
RequestOptions и передают их в конвейер.
"""

import logging as _stdlib_logging
from typing import Any, Callable, Mapping, Optional

from .core.config import DEFAULT_TIMEOUT, ClientConfig, RetryOptions
from .core.context import ResponseEnvelope
from .core.logging import FetchClientLogger, LoggingConfig
from .core.paths import ParamsSerializer
from .core.pipeline import RequestOptions, RequestPipeline
from .core.transport import HttpxTransport, Transport

logger = _stdlib_logging.getLogger(__name__)


class FetchClient:
    """
    HTTP клиент с retry, отменой, middleware, прогрессом и валидацией схем.

    Example:
        >>> async with FetchClient("https://api.example.com") as client:
        ...     response = await client.get("/users/:id", path_params={"id": 1})
        ...     print(response.data)

        >>> # Или без context manager
        >>> client = FetchClient("https://api.example.com", retry=RetryOptions(max_retries=5))
        >>> response = await client.post("/users", {"name": "Alice"})
        >>> await client.close()

    Features:
        - Retry с exponential backoff по статусам и сетевым ошибкам
        - Таймаут на попытку и отмена через CancellationToken
        - Request/response middleware (sync или async)
        - Прогресс отправки и загрузки
        - Валидация ответа схемой (standard protocol или pydantic)
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        *,
        config: Optional[ClientConfig] = None,
        headers: Optional[Mapping[str, str]] = None,
        timeout: float = DEFAULT_TIMEOUT,
        retry: Optional[RetryOptions] = None,
        transport: Optional[Transport] = None,
        schema_validator: Any = None,
        serialize_body: Optional[Callable[[Any], Any]] = None,
        serialize_params: Optional[ParamsSerializer] = None,
        on_request: Optional[Callable[..., Any]] = None,
        on_response: Optional[Callable[..., Any]] = None,
        logging: Optional[LoggingConfig] = None,
    ):
        """
        Инициализация клиента.

        Args:
            base_url: Базовый URL для относительных путей
            config: ClientConfig (если указан, остальные параметры конфигурации игнорируются)
            headers: Заголовки по умолчанию
            timeout: Таймаут одной попытки (сек)
            retry: Настройки retry уровня клиента
            transport: ``async (url, RequestInit) -> TransportResponse``;
                по умолчанию HttpxTransport, который клиент закрывает сам
            schema_validator: Адаптер схем
            serialize_body: Кастомный сериализатор тела
            serialize_params: Кастомный сериализатор query параметров
            on_request: Request middleware
            on_response: Response middleware
            logging: Конфигурация структурного логирования

        Raises:
            InvalidBaseUrlError: base_url некорректен
        """
        if config is not None:
            self._config = config
        else:
            self._config = ClientConfig(
                base_url=base_url or "",
                headers=headers or {},
                timeout=timeout,
                retry=retry,
                schema_validator=schema_validator,
                serialize_body=serialize_body,
                serialize_params=serialize_params,
                on_request=on_request,
                on_response=on_response,
                logging=logging,
            )

        if transport is None:
            self._transport: Transport = HttpxTransport()
            self._owns_transport = True
        else:
            self._transport = transport
            self._owns_transport = False

        self._logger: Optional[FetchClientLogger] = None
        if self._config.logging is not None:
            self._logger = FetchClientLogger(self._config.logging)

        self._pipeline = RequestPipeline(self._config, self._transport, self._logger)
        self._closed = False

    @property
    def config(self) -> ClientConfig:
        return self._config

    @property
    def base_url(self) -> str:
        return self._config.base_url

    @property
    def transport(self) -> Transport:
        return self._transport

    async def __aenter__(self) -> "FetchClient":
        """Async context manager entry."""
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        """Async context manager exit."""
        await self.close()

    async def close(self) -> None:
        """Закрыть собственный транспорт и логгер. Повторный вызов ничего не делает."""
        if self._closed:
            return
        self._closed = True

        if self._owns_transport and isinstance(self._transport, HttpxTransport):
            await self._transport.aclose()
        if self._logger is not None:
            self._logger.close()
        logger.debug("FetchClient closed")

    # ==================== HTTP методы ====================

    async def request(self, url: str, **options: Any) -> ResponseEnvelope:
        """
        Выполнить запрос.

        Args:
            url: Шаблон URL (``/users/:id``) или абсолютный URL
            **options: Поля RequestOptions (method, headers, params, path_params,
                body, schema, timeout, signal, response_type, retry_options,
                on_upload_streaming, on_download_streaming, validate_status,
                transport_options)

        Returns:
            ResponseEnvelope

        Raises:
            FetchClientError: Любая ошибка таксономии
            RuntimeError: Клиент закрыт
        """
        if self._closed:
            raise RuntimeError("FetchClient is closed")
        return await self._pipeline.execute(url, RequestOptions(**options))

    async def get(self, url: str, **options: Any) -> ResponseEnvelope:
        """GET запрос."""
        return await self.request(url, method="GET", **options)

    async def delete(self, url: str, **options: Any) -> ResponseEnvelope:
        """DELETE запрос."""
        return await self.request(url, method="DELETE", **options)

    async def head(self, url: str, **options: Any) -> ResponseEnvelope:
        """HEAD запрос."""
        return await self.request(url, method="HEAD", **options)

    async def options(self, url: str, **options: Any) -> ResponseEnvelope:
        """OPTIONS запрос."""
        return await self.request(url, method="OPTIONS", **options)

    async def post(self, url: str, body: Any = None, **options: Any) -> ResponseEnvelope:
        """POST запрос."""
        return await self.request(url, method="POST", body=body, **options)

    async def put(self, url: str, body: Any = None, **options: Any) -> ResponseEnvelope:
        """PUT запрос."""
        return await self.request(url, method="PUT", body=body, **options)

    async def patch(self, url: str, body: Any = None, **options: Any) -> ResponseEnvelope:
        """PATCH запрос."""
        return await self.request(url, method="PATCH", body=body, **options)
