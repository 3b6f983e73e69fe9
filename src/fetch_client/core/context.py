"""Request/response records passed through the pipeline."""

import copy
import uuid
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Generic, Mapping, Optional, Sequence, TypeVar, Union

import httpx

from .cancellation import CancellationToken

T = TypeVar("T")

ParamValue = Union[str, int, float, bool, None]
QueryParams = Mapping[str, Union[ParamValue, Sequence[ParamValue]]]


@dataclass
class RequestContext:
    """Mutable request state handed to request middleware.

    Attributes:
        url: Resolved URL (path params interpolated, base joined, no query yet)
        method: HTTP method, upper case
        headers: Case-insensitive ordered multimap
        params: Query parameters, serialized after request middleware
        body: Logical request body (encoded after request middleware)
        signal: Caller cancellation token
        transport_options: Passthrough options for the transport
        request_id: Unique identifier for this invocation

    Once :meth:`freeze` is called (right before the first transport call)
    attributes can no longer be reassigned.

    Example:
        >>> def add_auth(ctx: RequestContext) -> RequestContext:
        ...     ctx.headers["Authorization"] = "Bearer token"
        ...     return ctx
    """

    url: str
    method: str
    headers: httpx.Headers = field(default_factory=httpx.Headers)
    params: Optional[QueryParams] = None
    body: Any = None
    signal: Optional[CancellationToken] = None
    transport_options: Dict[str, Any] = field(default_factory=dict)
    request_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    _frozen: bool = field(default=False, init=False, repr=False, compare=False)

    def __setattr__(self, name: str, value: Any) -> None:
        if getattr(self, "_frozen", False):
            raise AttributeError(
                f"RequestContext is frozen; cannot set {name!r} after the request was sent"
            )
        super().__setattr__(name, value)

    @property
    def frozen(self) -> bool:
        return self._frozen

    def freeze(self) -> None:
        """Forbid further attribute assignment."""
        object.__setattr__(self, "_frozen", True)

    def copy(self) -> "RequestContext":
        """Create an unfrozen copy; headers, params and options are copied, body is shared."""
        return RequestContext(
            url=self.url,
            method=self.method,
            headers=httpx.Headers(self.headers),
            params=copy.copy(self.params),
            body=self.body,
            signal=self.signal,
            transport_options=dict(self.transport_options),
            request_id=self.request_id,
        )


@dataclass
class ResponseEnvelope(Generic[T]):
    """Decoded, validated response returned to the caller."""

    data: T
    status: int
    status_text: str
    headers: Dict[str, str]
    method: str
    url: str
    raw: Any = field(default=None, repr=False)


@dataclass(frozen=True)
class StreamingEvent:
    """Progress of one upload or download chunk.

    ``chunk`` is the live buffer forwarded downstream; copy it if you need to
    keep it after the callback returns.
    """

    chunk: bytes
    total_bytes: Optional[int]
    transferred_bytes: int


StreamingCallback = Callable[[StreamingEvent], None]
