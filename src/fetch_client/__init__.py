"""Fetch Client - async HTTP request client with retry, cancellation and schema validation."""

import logging
from importlib.metadata import PackageNotFoundError, version

from .client import FetchClient
from .core.body import FormData
from .core.cancellation import CancellationToken
from .core.config import ClientConfig, RetryOptions, RetryPolicy
from .core.context import RequestContext, ResponseEnvelope, StreamingEvent
from .core.exceptions import (
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
from .core.logging import LoggingConfig
from .core.pipeline import RequestOptions, RequestPipeline
from .core.schema import (
    PydanticSchemaValidator,
    SchemaValidator,
    StandardSchemaValidator,
    ValidationResult,
    standard_schema,
)
from .core.settings import FetchClientSettings, load_from_env
from .core.transport import HttpxTransport, RequestInit, TransportResponse

# NullHandler prevents "No handler found" warnings;
# configure logging.getLogger('fetch_client') to see diagnostics
logging.getLogger('fetch_client').addHandler(logging.NullHandler())

try:
    __version__ = version("fetch-client-core")
except PackageNotFoundError:
    __version__ = "0.0.0-dev"

__all__ = [
    # Client
    "FetchClient",
    "RequestPipeline",
    "RequestOptions",

    # Config
    "ClientConfig",
    "RetryOptions",
    "RetryPolicy",
    "LoggingConfig",
    "FetchClientSettings",
    "load_from_env",

    # Data model
    "RequestContext",
    "ResponseEnvelope",
    "StreamingEvent",
    "CancellationToken",
    "FormData",

    # Transport
    "HttpxTransport",
    "RequestInit",
    "TransportResponse",

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

    # Version
    "__version__",
]
