"""
Конвейер выполнения запроса.

Один вызов ``RequestPipeline.execute`` превращает логический запрос (шаблон
URL, метод, параметры, тело, опции) в провалидированный ResponseEnvelope
или в одну ошибку из таксономии, с ограниченным числом повторов.

Порядок:
    path params + base URL -> request middleware -> query -> body ->
    цикл попыток { transport -> decode -> validate_status -> schema } ->
    response middleware
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Mapping, Optional

import httpx

from .body import BODY_METHODS, RESPONSE_TYPES, FormData, decode_response, encode_body, is_replayable
from .cancellation import CancellationSource, CancellationToken
from .config import ClientConfig, RetryOptions
from .context import QueryParams, RequestContext, ResponseEnvelope, StreamingCallback
from .exceptions import (
    FetchClientError,
    HTTPError,
    NetworkError,
    RequestAbortedError,
    TimeoutError,
    describe_error,
)
from .logging import FetchClientLogger, reset_correlation_id, set_correlation_id
from .middleware import run_request_middleware, run_response_middleware
from .paths import apply_query, generate_path, join_base
from .retry_engine import RetryEngine
from .schema import validate_schema
from .streaming import content_length, event_callback, instrument_stream, iter_payload
from .transport import RequestInit, Transport, TransportResponse
from ..utils.sanitizer import mask_headers, mask_url

logger = logging.getLogger(__name__)


@dataclass
class RequestOptions:
    """
    Параметры одного вызова.

    Args:
        method: HTTP метод
        headers: Заголовки запроса (перекрывают заголовки клиента)
        params: Query параметры
        path_params: Значения для токенов ``:name`` в шаблоне URL
        body: Логическое тело (только для POST/PUT/PATCH)
        schema: Схема для валидации ответа
        timeout: Таймаут одной попытки (сек), перекрывает таймаут клиента
        signal: CancellationToken вызывающей стороны
        response_type: "text", "bytes" или "json" вместо авто-определения
        retry_options: Настройки retry уровня запроса
        on_upload_streaming: Callback прогресса отправки
        on_download_streaming: Callback прогресса загрузки
        validate_status: Предикат успешного статуса (по умолчанию 2xx)
        transport_options: Опции, передаваемые транспорту как есть
    """
    method: str = "GET"
    headers: Optional[Mapping[str, str]] = None
    params: Optional[QueryParams] = None
    path_params: Optional[Mapping[str, Any]] = None
    body: Any = None
    schema: Any = None
    timeout: Optional[float] = None
    signal: Optional[CancellationToken] = None
    response_type: Optional[str] = None
    retry_options: Optional[RetryOptions] = None
    on_upload_streaming: Optional[StreamingCallback] = None
    on_download_streaming: Optional[StreamingCallback] = None
    validate_status: Optional[Callable[[int], bool]] = None
    transport_options: Optional[Dict[str, Any]] = None

    def __post_init__(self):
        """Валидация."""
        self.method = self.method.upper()
        if self.timeout is not None and self.timeout <= 0:
            raise ValueError("timeout must be positive")
        if self.response_type is not None and self.response_type not in RESPONSE_TYPES:
            raise ValueError(
                f"Unknown response_type: {self.response_type}. "
                f"Available: {', '.join(RESPONSE_TYPES)}"
            )


def _default_validate_status(status: int) -> bool:
    return 200 <= status < 300


class RequestPipeline:
    """
    Исполнитель запросов поверх транспорта.

    Не хранит состояния между вызовами: каждый execute создаёт свой
    RequestContext, RetryEngine и CancellationSource на каждую попытку,
    поэтому один пайплайн можно вызывать конкурентно.

    Example:
        >>> pipeline = RequestPipeline(ClientConfig(base_url="https://api.example.com"), transport)
        >>> envelope = await pipeline.execute("/users/:id", RequestOptions(path_params={"id": 1}))
        >>> envelope.status
        200
    """

    def __init__(
        self,
        config: ClientConfig,
        transport: Transport,
        logger: Optional[FetchClientLogger] = None,
    ):
        """
        Args:
            config: Конфигурация клиента
            transport: ``async (url, RequestInit) -> TransportResponse``
            logger: Структурный логгер (None = без лог-записей о запросах)
        """
        self.config = config
        self.transport = transport
        self.logger = logger

    async def execute(self, url: str, options: Optional[RequestOptions] = None) -> ResponseEnvelope:
        """
        Выполнить запрос.

        Args:
            url: Шаблон URL (относительный или абсолютный)
            options: Параметры вызова

        Returns:
            ResponseEnvelope с декодированными (и провалидированными) данными

        Raises:
            PathParameterError: Нет значения для обязательного токена
            MiddlewareError: Middleware выбросил исключение
            HTTPError: Статус не прошёл validate_status после всех попыток
            NetworkError: Ошибка транспорта после всех попыток
            TimeoutError: Попытка не уложилась в таймаут
            RequestAbortedError: Отмена через signal
            SerializationError: Тело ответа не декодируется
            SchemaValidationError: Данные не прошли схему
        """
        options = options if options is not None else RequestOptions()

        resolved = join_base(generate_path(url, options.path_params), self.config.base_url)

        headers = httpx.Headers(self.config.headers)
        if options.headers:
            headers.update(options.headers)

        context = RequestContext(
            url=resolved,
            method=options.method,
            headers=headers,
            params=options.params,
            body=options.body,
            signal=options.signal,
            transport_options=dict(options.transport_options or {}),
        )

        correlation = set_correlation_id(context.request_id)
        try:
            return await self._run(context, options)
        finally:
            reset_correlation_id(correlation)

    async def _run(self, context: RequestContext, options: RequestOptions) -> ResponseEnvelope:
        context = await run_request_middleware(self.config.on_request, context)

        method = context.method.upper()
        url = apply_query(context.url, context.params, self.config.serialize_params)

        payload = None
        if context.body is not None and method in BODY_METHODS:
            encoded = encode_body(context.body, context.headers, self.config.serialize_body)
            payload = encoded.payload
            if encoded.content_type:
                context.headers["content-type"] = encoded.content_type
        elif context.body is not None:
            logger.debug(f"Ignoring request body for {method} request")

        context.freeze()

        engine = RetryEngine(self.config.retry_policy(options.retry_options))
        timeout = options.timeout if options.timeout is not None else self.config.timeout
        replayable = is_replayable(payload)
        started = time.monotonic()

        self._log_info(
            "Request started",
            method=method,
            url=mask_url(url),
            headers=mask_headers(context.headers),
        )

        while True:
            try:
                envelope = await self._attempt(context, method, url, payload, options, timeout)
                break
            except FetchClientError as error:
                if not replayable:
                    logger.debug("Request payload is a one-shot stream, not retrying")
                    self._log_failure(error, method, url, engine.attempt, started)
                    raise
                if not await engine.should_retry(error):
                    self._log_failure(error, method, url, engine.attempt, started)
                    raise

                self._log_warning(
                    "Retrying request",
                    method=method,
                    url=mask_url(url),
                    attempt=engine.attempt + 1,
                    max_retries=engine.policy.max_retries,
                    delay=round(engine.get_wait_time(), 3),
                    error_type=type(error).__name__,
                )
                await self._backoff(engine, context.signal, url)
                engine.increment()

        envelope = await run_response_middleware(self.config.on_response, envelope, context)

        self._log_info(
            "Request completed",
            method=method,
            url=mask_url(url),
            status=envelope.status,
            attempts=engine.attempt + 1,
            duration_ms=round((time.monotonic() - started) * 1000, 2),
        )
        return envelope

    async def _backoff(
        self,
        engine: RetryEngine,
        signal: Optional[CancellationToken],
        url: str,
    ) -> None:
        """Пауза между попытками; отмена через signal прерывает её."""
        if signal is None:
            await engine.async_wait()
            return

        with CancellationSource(signal) as source:
            try:
                await source.guard(engine.async_wait())
            except asyncio.CancelledError:
                if source.aborted:
                    raise RequestAbortedError(url, source.abort_reason) from None
                raise

    async def _attempt(
        self,
        context: RequestContext,
        method: str,
        url: str,
        payload: Any,
        options: RequestOptions,
        timeout: float,
    ) -> ResponseEnvelope:
        """Одна попытка под собственным таймером и объединённым токеном."""
        signal = context.signal
        if signal is not None and signal.cancelled:
            raise RequestAbortedError(url, signal.reason)

        with CancellationSource(signal, timeout=timeout) as source:
            try:
                return await source.guard(
                    self._send(context, method, url, payload, options, source.token)
                )
            except asyncio.CancelledError:
                if source.timed_out:
                    raise TimeoutError(timeout, url) from None
                if source.aborted:
                    raise RequestAbortedError(url, source.abort_reason) from None
                raise

    async def _send(
        self,
        context: RequestContext,
        method: str,
        url: str,
        payload: Any,
        options: RequestOptions,
        token: CancellationToken,
    ) -> ResponseEnvelope:
        headers = httpx.Headers(context.headers)
        body = payload

        if options.on_upload_streaming is not None and payload is not None:
            if isinstance(payload, FormData):
                payload, content_type = payload.encode()
                if content_type and "content-type" not in headers:
                    headers["content-type"] = content_type
            body = instrument_stream(
                iter_payload(payload),
                content_length(headers),
                event_callback(options.on_upload_streaming),
            )

        init = RequestInit(
            method=method,
            headers=headers,
            body=body,
            signal=token,
            options=dict(context.transport_options),
        )

        try:
            response: TransportResponse = await self.transport(url, init)
        except FetchClientError:
            raise
        except Exception as e:
            raise NetworkError(describe_error("Transport request failed", e), url, e) from e

        try:
            stream = None
            if options.on_download_streaming is not None:
                stream = instrument_stream(
                    response.aiter_bytes(),
                    content_length(response.headers),
                    event_callback(options.on_download_streaming),
                )

            data = await decode_response(response, options.response_type, stream)

            validate_status = options.validate_status or _default_validate_status
            if not validate_status(response.status):
                raise HTTPError(response.status, response.status_text, data, method, url, response)

            if options.schema is not None:
                data = validate_schema(self.config.schema_validator, options.schema, data)

            return ResponseEnvelope(
                data=data,
                status=response.status,
                status_text=response.status_text,
                headers=dict(response.headers),
                method=method,
                url=url,
                raw=response,
            )
        finally:
            await response.aclose()

    # ==================== Логирование ====================

    def _log_info(self, message: str, **fields: Any) -> None:
        if self.logger is not None:
            self.logger.info(message, **fields)

    def _log_warning(self, message: str, **fields: Any) -> None:
        if self.logger is not None:
            self.logger.warning(message, **fields)

    def _log_failure(
        self,
        error: FetchClientError,
        method: str,
        url: str,
        attempt: int,
        started: float,
    ) -> None:
        logger.debug(f"{method} {mask_url(url)} failed after {attempt + 1} attempt(s): {error!r}")
        if self.logger is None:
            return
        fields: Dict[str, Any] = {
            "method": method,
            "url": mask_url(url),
            "attempts": attempt + 1,
            "error_type": type(error).__name__,
            "error": mask_url(str(error)),
            "duration_ms": round((time.monotonic() - started) * 1000, 2),
        }
        if isinstance(error, HTTPError):
            fields["status"] = error.status
        self.logger.error("Request failed", **fields)
