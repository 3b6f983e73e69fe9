"""
Transport primitive and the default httpx-based implementation.

A transport is any coroutine function ``async (url, init) -> TransportResponse``.
The pipeline never inspects anything beyond status, headers and the byte
stream, so tests and alternative backends can plug in a plain function.
"""

import logging
from collections.abc import AsyncIterable, Iterable
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Awaitable, Callable, Dict, Mapping, Optional, Protocol

import httpx

from .body import FormData, read_stream
from .cancellation import CancellationToken
from .exceptions import ConnectionError, NetworkError, TimeoutError, describe_error
from .streaming import iter_payload

logger = logging.getLogger(__name__)


@dataclass
class RequestInit:
    """Transport input for one attempt."""

    method: str
    headers: httpx.Headers = field(default_factory=httpx.Headers)
    body: Any = None
    signal: Optional[CancellationToken] = None
    options: Dict[str, Any] = field(default_factory=dict)


async def _empty() -> AsyncIterator[bytes]:
    return
    yield


async def _single(content: bytes) -> AsyncIterator[bytes]:
    if content:
        yield content


class TransportResponse:
    """
    Transport output: status line, headers and a one-shot byte stream.

    Example:
        >>> response = TransportResponse.from_bytes(200, b'{"a":1}', {"content-type": "application/json"})
        >>> await response.aread()
        b'{"a":1}'
    """

    def __init__(
        self,
        status: int,
        status_text: str = "",
        headers: Optional[Mapping[str, str]] = None,
        url: str = "",
        stream: Optional[AsyncIterable[bytes]] = None,
        on_close: Optional[Callable[[], Awaitable[None]]] = None,
        raw: Any = None,
    ):
        self.status = status
        self.status_text = status_text
        self.headers = httpx.Headers(headers)
        self.url = url
        self.raw = raw
        self._stream = stream
        self._on_close = on_close
        self._consumed = False
        self._closed = False

    @classmethod
    def from_bytes(
        cls,
        status: int,
        content: bytes = b"",
        headers: Optional[Mapping[str, str]] = None,
        status_text: Optional[str] = None,
        url: str = "",
    ) -> "TransportResponse":
        """Build a fully buffered response."""
        if isinstance(content, str):
            content = content.encode("utf-8")
        return cls(
            status=status,
            status_text=httpx.codes.get_reason_phrase(status) if status_text is None else status_text,
            headers=headers,
            url=url,
            stream=_single(content),
        )

    @property
    def consumed(self) -> bool:
        return self._consumed

    def aiter_bytes(self) -> AsyncIterable[bytes]:
        """Return the body stream. Can be called once."""
        if self._consumed:
            raise RuntimeError("Response body has already been consumed")
        self._consumed = True
        return self._stream if self._stream is not None else _empty()

    async def aread(self) -> bytes:
        return await read_stream(self.aiter_bytes(), self.url or None)

    async def aclose(self) -> None:
        """Release the underlying connection. Safe to call repeatedly."""
        if self._closed:
            return
        self._closed = True
        if self._on_close is not None:
            await self._on_close()

    def __repr__(self) -> str:
        return f"<TransportResponse [{self.status} {self.status_text}] {self.url}>"


class Transport(Protocol):
    async def __call__(self, url: str, init: RequestInit) -> TransportResponse:
        ...


def _map_httpx_error(error: httpx.TransportError, url: str) -> Exception:
    if isinstance(error, httpx.TimeoutException):
        return TimeoutError(None, url, error)
    if isinstance(error, httpx.ConnectError):
        return ConnectionError(describe_error("Connection failed", error), url, error)
    return NetworkError(describe_error("Network error", error), url, error)


async def _as_async(chunks: Iterable[Any]) -> AsyncIterator[bytes]:
    async for chunk in iter_payload(chunks):
        yield chunk


class HttpxTransport:
    """
    Default transport on top of ``httpx.AsyncClient``.

    Responses are opened in streaming mode, so download progress sees the
    body as it arrives. Timeouts are enforced by the pipeline; the owned
    client is created without httpx timeouts unless ``timeout`` is passed.

    Supported ``transport_options``: ``follow_redirects``, ``extensions``,
    ``timeout`` (httpx per-request timeout).

    Example:
        >>> transport = HttpxTransport(verify=False)
        >>> async with FetchClient("https://api.example.com", transport=transport) as client:
        ...     await client.get("/health")
    """

    def __init__(self, client: Optional[httpx.AsyncClient] = None, **client_kwargs: Any):
        if client is None:
            client_kwargs.setdefault("timeout", None)
            client = httpx.AsyncClient(**client_kwargs)
            self._owns_client = True
        else:
            self._owns_client = False
        self._client = client

    @property
    def client(self) -> httpx.AsyncClient:
        return self._client

    def _content(self, body: Any, headers: httpx.Headers) -> Any:
        if body is None:
            return None
        if isinstance(body, FormData):
            payload, content_type = body.encode()
            if content_type and "content-type" not in headers:
                headers["content-type"] = content_type
            return payload
        if isinstance(body, (bytes, bytearray, memoryview)):
            return bytes(body)
        if isinstance(body, (str, AsyncIterable)):
            return body
        if isinstance(body, Iterable):
            # httpx.AsyncClient only streams async iterables
            return _as_async(body)
        raise TypeError(f"Unsupported request body type: {type(body).__name__}")

    async def __call__(self, url: str, init: RequestInit) -> TransportResponse:
        headers = httpx.Headers(init.headers)
        options = init.options or {}

        request = self._client.build_request(
            init.method,
            url,
            headers=headers,
            content=self._content(init.body, headers),
            extensions=options.get("extensions"),
            timeout=options.get("timeout", httpx.USE_CLIENT_DEFAULT),
        )

        try:
            response = await self._client.send(
                request,
                stream=True,
                follow_redirects=options.get("follow_redirects", httpx.USE_CLIENT_DEFAULT),
            )
        except httpx.TransportError as e:
            logger.debug(f"httpx transport error for {init.method} {url}: {e!r}")
            raise _map_httpx_error(e, url) from e

        return TransportResponse(
            status=response.status_code,
            status_text=response.reason_phrase,
            headers=response.headers,
            url=str(response.url),
            stream=self._iter_body(response, url),
            on_close=response.aclose,
            raw=response,
        )

    async def _iter_body(self, response: httpx.Response, url: str) -> AsyncIterator[bytes]:
        try:
            async for chunk in response.aiter_bytes():
                yield chunk
        except httpx.TransportError as e:
            raise _map_httpx_error(e, url) from e

    async def aclose(self) -> None:
        """Закрыть httpx клиент, если он создан транспортом."""
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self) -> "HttpxTransport":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.aclose()
