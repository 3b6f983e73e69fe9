"""Core Fetch Client модули."""

from .body import FormData, decode_body, encode_body
from .cancellation import CancellationSource, CancellationToken
from .config import ClientConfig, RetryOptions, RetryPolicy
from .context import RequestContext, ResponseEnvelope, StreamingEvent
from .exceptions import (
    AsyncSchemaValidationError,
    ConnectionError,
    FetchClientError,
    HTTPError,
    InvalidBaseUrlError,
    InvalidSchemaError,
    MiddlewareError,
    NetworkError,
    PathParameterError,
    RequestAbortedError,
    SchemaValidationError,
    SerializationError,
    TimeoutError,
)
from .paths import apply_query, generate_path, join_base, normalize_base_url, resolve_url, serialize_query
from .pipeline import RequestOptions, RequestPipeline
from .retry_engine import RetryEngine
from .schema import (
    PydanticSchemaValidator,
    SchemaValidator,
    StandardSchemaValidator,
    ValidationResult,
    standard_schema,
)
from .settings import FetchClientSettings, load_from_env
from .streaming import instrument_stream
from .transport import HttpxTransport, RequestInit, TransportResponse

__all__ = [
    # Config
    "ClientConfig",
    "RetryOptions",
    "RetryPolicy",
    "FetchClientSettings",
    "load_from_env",
    # Pipeline
    "RequestPipeline",
    "RequestOptions",
    "RequestContext",
    "ResponseEnvelope",
    "RetryEngine",
    "CancellationToken",
    "CancellationSource",
    # Transport
    "HttpxTransport",
    "RequestInit",
    "TransportResponse",
    # Codec / URL
    "FormData",
    "encode_body",
    "decode_body",
    "generate_path",
    "serialize_query",
    "apply_query",
    "join_base",
    "resolve_url",
    "normalize_base_url",
    # Streaming
    "StreamingEvent",
    "instrument_stream",
    # Schema
    "SchemaValidator",
    "StandardSchemaValidator",
    "PydanticSchemaValidator",
    "ValidationResult",
    "standard_schema",
    # Exceptions
    "FetchClientError",
    "PathParameterError",
    "InvalidBaseUrlError",
    "HTTPError",
    "NetworkError",
    "ConnectionError",
    "TimeoutError",
    "RequestAbortedError",
    "SerializationError",
    "SchemaValidationError",
    "AsyncSchemaValidationError",
    "InvalidSchemaError",
    "MiddlewareError",
]
