"""
Body codec: request body encoding and response body decoding.

Encoding turns a logical body into a transport-ready payload plus an
optional content type; decoding reads a transport response and turns it into
a Python value based on the forced ``response_type`` or the declared
``Content-Type``.
"""

import dataclasses
import json
from collections.abc import AsyncIterable, Iterable
from email.message import Message
from typing import Any, Callable, Mapping, NamedTuple, Optional, Tuple

import httpx
from pydantic import BaseModel

from .exceptions import FetchClientError, NetworkError, SerializationError, describe_error

BodySerializer = Callable[[Any], Any]

JSON_CONTENT_TYPE = "application/json"

BODY_METHODS = frozenset({"POST", "PUT", "PATCH"})

RESPONSE_TYPES = ("text", "bytes", "json")


class FormData:
    """
    Form container passed through to the transport.

    Without ``files`` it encodes as ``application/x-www-form-urlencoded``,
    with files as ``multipart/form-data``.

    Example:
        >>> form = FormData({"name": "report"}, files={"file": ("r.csv", b"a,b", "text/csv")})
        >>> await client.post("/upload", form)
    """

    def __init__(
        self,
        fields: Optional[Mapping[str, Any]] = None,
        files: Optional[Mapping[str, Any]] = None,
    ):
        self.fields = dict(fields or {})
        self.files = dict(files or {})

    def encode(self) -> Tuple[bytes, Optional[str]]:
        """Render the form to bytes and return them with the matching content type."""
        request = httpx.Request(
            "POST",
            "http://form.invalid/",
            data=self.fields or None,
            files=self.files or None,
        )
        return request.read(), request.headers.get("content-type")

    def __repr__(self) -> str:
        return f"<FormData fields={list(self.fields)} files={list(self.files)}>"


class EncodedBody(NamedTuple):
    payload: Any
    content_type: Optional[str] = None


def is_passthrough(body: Any) -> bool:
    """True for values the transport accepts as-is (bytes, text, forms, streams)."""
    if isinstance(body, (bytes, bytearray, memoryview, str, FormData)):
        return True
    if is_structured(body) or isinstance(body, (set, frozenset)):
        return False
    return isinstance(body, (AsyncIterable, Iterable))


def is_structured(body: Any) -> bool:
    """True for values encoded as JSON by default."""
    return (
        isinstance(body, (dict, list, tuple, BaseModel))
        or (dataclasses.is_dataclass(body) and not isinstance(body, type))
        or callable(getattr(body, "__json__", None))
    )


def _to_jsonable(body: Any) -> Any:
    if isinstance(body, BaseModel):
        return body.model_dump(mode="json")
    if dataclasses.is_dataclass(body) and not isinstance(body, type):
        return dataclasses.asdict(body)
    if callable(getattr(body, "__json__", None)):
        return body.__json__()
    return body


def _json_default(value: Any) -> Any:
    if isinstance(value, BaseModel) or dataclasses.is_dataclass(value) or hasattr(value, "__json__"):
        return _to_jsonable(value)
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


def encode_body(
    body: Any,
    headers: Optional[Mapping[str, str]] = None,
    serializer: Optional[BodySerializer] = None,
) -> EncodedBody:
    """
    Encode a request body.

    Args:
        body: Logical body
        headers: Current request headers (``content-type`` presence is checked)
        serializer: Custom serializer replacing the default encoding

    Returns:
        EncodedBody(payload, content_type); ``content_type`` is None when the
        header must not be touched

    Example:
        >>> encode_body({"a": 1})
        EncodedBody(payload='{"a":1}', content_type='application/json')
    """
    has_content_type = headers is not None and "content-type" in headers

    if serializer is not None:
        payload = serializer(body)
        if payload is None:
            return EncodedBody(b"")
        if is_structured(body) and isinstance(payload, str) and not has_content_type:
            return EncodedBody(payload, JSON_CONTENT_TYPE)
        return EncodedBody(payload)

    if is_passthrough(body):
        return EncodedBody(body)

    if is_structured(body):
        payload = json.dumps(_to_jsonable(body), separators=(",", ":"), default=_json_default)
        return EncodedBody(payload, None if has_content_type else JSON_CONTENT_TYPE)

    if isinstance(body, bool):
        return EncodedBody("true" if body else "false")
    if isinstance(body, (int, float)):
        return EncodedBody(str(body))
    return EncodedBody(body)


def is_replayable(payload: Any) -> bool:
    """False for one-shot iterator payloads that cannot be re-sent on retry."""
    if payload is None:
        return True
    return isinstance(payload, (bytes, bytearray, memoryview, str, FormData))

# ==================== Decoding ====================


def _parse_content_type(content_type: str) -> Tuple[str, Optional[str]]:
    message = Message()
    message["content-type"] = content_type
    return message.get_content_type(), message.get_content_charset()


def is_json_content_type(media_type: str) -> bool:
    return media_type == JSON_CONTENT_TYPE or media_type.endswith("+json")


def decode_body(
    content: bytes,
    content_type: Optional[str] = None,
    response_type: Optional[str] = None,
) -> Any:
    """
    Decode raw response bytes.

    Args:
        content: Body bytes
        content_type: Declared ``Content-Type`` header value
        response_type: ``text``, ``bytes`` or ``json`` to force a decoding

    Returns:
        Parsed JSON, ``str`` or ``bytes``

    Raises:
        SerializationError: The body does not decode as requested
    """
    if response_type is not None and response_type not in RESPONSE_TYPES:
        raise ValueError(
            f"Unknown response_type: {response_type}. Available: {', '.join(RESPONSE_TYPES)}"
        )

    media_type, charset = _parse_content_type(content_type) if content_type else ("", None)
    encoding = charset or "utf-8"

    try:
        if response_type == "bytes":
            return bytes(content)
        if response_type == "text":
            return content.decode(encoding)
        if response_type == "json" or is_json_content_type(media_type):
            if not content.strip():
                return None
            return json.loads(content.decode(encoding))
        if media_type.startswith("text/"):
            return content.decode(encoding)
        return bytes(content)
    except (ValueError, LookupError) as e:
        # JSONDecodeError и UnicodeDecodeError наследуются от ValueError
        raise SerializationError(describe_error("Failed to parse response body", e), e) from e


async def read_stream(stream: AsyncIterable[bytes], url: Optional[str] = None) -> bytes:
    """Collect an async byte stream; transport read failures become NetworkError."""
    chunks = []
    try:
        async for chunk in stream:
            chunks.append(chunk)
    except FetchClientError:
        raise
    except Exception as e:
        raise NetworkError(describe_error("Failed to read response body", e), url, e) from e
    return b"".join(chunks)


async def decode_response(
    response: Any,
    response_type: Optional[str] = None,
    stream: Optional[AsyncIterable[bytes]] = None,
) -> Any:
    """
    Read and decode a transport response.

    Args:
        response: TransportResponse (status, headers, aiter_bytes())
        response_type: Forced decoding (see decode_body)
        stream: Byte stream to read instead of ``response.aiter_bytes()``,
            e.g. an instrumented one
    """
    content = await read_stream(
        stream if stream is not None else response.aiter_bytes(),
        str(getattr(response, "url", "") or "") or None,
    )
    return decode_body(content, response.headers.get("content-type"), response_type)
