"""
Progress instrumentation for upload and download byte streams.

The instrumented stream yields the same chunks in the same order and
terminates the same way as its source; the only side effect is the
``on_chunk`` callback, invoked before each chunk is handed downstream.
"""

import logging
from collections.abc import AsyncIterable, Iterable
from typing import AsyncIterator, Callable, Mapping, Optional

from .body import FormData
from .context import StreamingCallback, StreamingEvent
from .exceptions import SerializationError, describe_error

logger = logging.getLogger(__name__)

ChunkCallback = Callable[[bytes, Optional[int], int], None]

DEFAULT_CHUNK_SIZE = 64 * 1024


def content_length(headers: Optional[Mapping[str, str]]) -> Optional[int]:
    """Total size from ``content-length``; None when absent or malformed."""
    if not headers:
        return None
    value = headers.get("content-length")
    if value is None:
        return None
    try:
        length = int(value)
    except (TypeError, ValueError):
        logger.debug(f"Ignoring malformed content-length: {value!r}")
        return None
    return length if length >= 0 else None


def event_callback(callback: StreamingCallback) -> ChunkCallback:
    """Adapt a StreamingEvent callback to the ``on_chunk`` signature."""

    def _on_chunk(chunk: bytes, total_bytes: Optional[int], transferred: int) -> None:
        callback(StreamingEvent(chunk=chunk, total_bytes=total_bytes, transferred_bytes=transferred))

    return _on_chunk


async def _close(iterator) -> None:
    aclose = getattr(iterator, "aclose", None)
    if aclose is not None:
        await aclose()


async def _instrumented(
    stream: AsyncIterable[bytes],
    total_bytes: Optional[int],
    on_chunk: ChunkCallback,
) -> AsyncIterator[bytes]:
    iterator = stream.__aiter__()
    transferred = 0
    try:
        async for chunk in iterator:
            transferred += len(chunk)
            try:
                on_chunk(chunk, total_bytes, transferred)
            except Exception as e:
                raise SerializationError(describe_error("Progress callback failed", e), e) from e
            yield chunk
    finally:
        # Closes the source both after exhaustion and when the consumer stops early
        await _close(iterator)


def instrument_stream(
    stream: AsyncIterable[bytes],
    total_bytes: Optional[int],
    on_chunk: Optional[ChunkCallback],
) -> AsyncIterable[bytes]:
    """
    Wrap a byte stream so every chunk is reported to ``on_chunk``.

    Args:
        stream: Source stream
        total_bytes: Expected total, None if unknown
        on_chunk: ``(chunk, total_bytes, transferred_bytes)`` callback;
            None returns ``stream`` untouched

    Raises:
        SerializationError: ``on_chunk`` raised while the stream was read

    Example:
        >>> def progress(chunk, total, done):
        ...     print(f"{done}/{total}")
        >>> async for chunk in instrument_stream(response.aiter_bytes(), 1024, progress):
        ...     ...
    """
    if on_chunk is None:
        return stream
    return _instrumented(stream, total_bytes, on_chunk)


async def iter_payload(payload, chunk_size: int = DEFAULT_CHUNK_SIZE) -> AsyncIterator[bytes]:
    """
    Turn a transport payload into an async byte stream.

    In-memory payloads (bytes, str, FormData) are split into ``chunk_size``
    pieces; sync and async iterables are forwarded chunk by chunk.
    """
    if payload is None:
        return

    if isinstance(payload, FormData):
        payload, _ = payload.encode()
    if isinstance(payload, str):
        payload = payload.encode("utf-8")

    if isinstance(payload, (bytes, bytearray, memoryview)):
        data = bytes(payload)
        for offset in range(0, len(data), chunk_size):
            yield data[offset:offset + chunk_size]
        return

    if isinstance(payload, AsyncIterable):
        async for chunk in payload:
            yield chunk.encode("utf-8") if isinstance(chunk, str) else bytes(chunk)
        return

    if isinstance(payload, Iterable):
        for chunk in payload:
            yield chunk.encode("utf-8") if isinstance(chunk, str) else bytes(chunk)
        return

    raise TypeError(f"Cannot stream payload of type {type(payload).__name__}")
