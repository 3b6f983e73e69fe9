"""
Request/response middleware hooks.

A hook is a plain callable or a coroutine function. Whatever it raises is
reported as :class:`MiddlewareError`, which ends the invocation without a
retry.

Example:
    >>> async def add_auth(ctx):
    ...     ctx.headers["Authorization"] = f"Bearer {await get_token()}"
    ...     return ctx
    >>> client = FetchClient("https://api.example.com", on_request=add_auth)
"""

import inspect
import logging
from typing import Any, Awaitable, Callable, Optional, Union

from .context import RequestContext, ResponseEnvelope
from .exceptions import MiddlewareError, describe_error

logger = logging.getLogger(__name__)

RequestMiddleware = Callable[
    [RequestContext],
    Union[Optional[RequestContext], Awaitable[Optional[RequestContext]]],
]
ResponseMiddleware = Callable[
    [ResponseEnvelope, RequestContext],
    Union[Optional[ResponseEnvelope], Awaitable[Optional[ResponseEnvelope]]],
]


async def _call(hook: Callable[..., Any], *args: Any) -> Any:
    result = hook(*args)
    if inspect.isawaitable(result):
        result = await result
    return result


async def run_request_middleware(
    hook: Optional[RequestMiddleware],
    context: RequestContext,
) -> RequestContext:
    """
    Run the request hook once.

    Returns:
        The context returned by the hook, or ``context`` itself when the
        hook returns None (mutated in place).

    Raises:
        MiddlewareError: The hook raised or returned something else
    """
    if hook is None:
        return context

    try:
        result = await _call(hook, context)
    except Exception as e:
        raise MiddlewareError(
            describe_error("Request middleware failed", e),
            phase="request",
            url=context.url,
            method=context.method,
            cause=e,
        ) from e

    if result is None:
        return context
    if not isinstance(result, RequestContext):
        raise MiddlewareError(
            f"Request middleware must return a RequestContext or None, got {type(result).__name__}",
            phase="request",
            url=context.url,
            method=context.method,
        )
    return result


async def run_response_middleware(
    hook: Optional[ResponseMiddleware],
    envelope: ResponseEnvelope,
    context: RequestContext,
) -> ResponseEnvelope:
    """
    Run the response hook once for a validated envelope.

    A None result keeps ``envelope``; any other value replaces it.

    Raises:
        MiddlewareError: The hook raised
    """
    if hook is None:
        return envelope

    try:
        result = await _call(hook, envelope, context)
    except Exception as e:
        raise MiddlewareError(
            describe_error("Response middleware failed", e),
            phase="response",
            url=envelope.url,
            method=envelope.method,
            cause=e,
        ) from e

    if result is None:
        logger.debug("Response middleware returned None, keeping the original envelope")
        return envelope
    return result
