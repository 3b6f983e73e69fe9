"""Cooperative cancellation primitives for the request pipeline.

:class:`CancellationToken` is the caller-facing trigger (pass it as
``signal=`` and call :meth:`~CancellationToken.cancel` to abort a request).
:class:`CancellationSource` merges any number of upstream tokens with an
optional per-attempt timer into a single effective token, and releases every
listener and timer handle in :meth:`~CancellationSource.dispose`.

Both types are meant to be used from the event loop thread only.
"""

import asyncio
from typing import Any, Awaitable, Callable, List, Optional, Tuple, TypeVar

T = TypeVar("T")

Listener = Callable[["CancellationToken"], None]


class CancellationToken:
    """
    One-shot cancellation trigger.

    Example:
        >>> token = CancellationToken()
        >>> task = asyncio.create_task(client.get("/slow", signal=token))
        >>> token.cancel("user navigated away")
    """

    def __init__(self) -> None:
        self._cancelled = False
        self._reason: Any = None
        self._listeners: List[Listener] = []
        self._event: Optional[asyncio.Event] = None

    @property
    def cancelled(self) -> bool:
        """True once cancel() has been called."""
        return self._cancelled

    @property
    def reason(self) -> Any:
        """Value passed to cancel()."""
        return self._reason

    @property
    def listener_count(self) -> int:
        """Number of currently registered listeners."""
        return len(self._listeners)

    def cancel(self, reason: Any = None) -> None:
        """
        Trigger cancellation and notify listeners.

        Repeated calls are no-ops. Listeners are notified in registration
        order and dropped afterwards.
        """
        if self._cancelled:
            return
        self._cancelled = True
        self._reason = reason

        listeners, self._listeners = self._listeners, []
        for listener in listeners:
            listener(self)

        if self._event is not None:
            self._event.set()

    def add_listener(self, listener: Listener) -> None:
        """Register a callback; called immediately if already cancelled."""
        if self._cancelled:
            listener(self)
            return
        self._listeners.append(listener)

    def remove_listener(self, listener: Listener) -> None:
        """Deregister a callback. Unknown callbacks are ignored."""
        try:
            self._listeners.remove(listener)
        except ValueError:
            pass

    async def wait(self) -> Any:
        """Suspend until the token is cancelled and return the reason."""
        if not self._cancelled:
            if self._event is None:
                self._event = asyncio.Event()
            await self._event.wait()
        return self._reason

    def __repr__(self) -> str:
        state = "cancelled" if self._cancelled else "active"
        return f"<CancellationToken {state}>"


class CancellationSource:
    """
    Merged cancellation for one attempt.

    The merged :attr:`token` fires when any linked upstream token fires or
    when the timer elapses, whichever happens first. :attr:`timed_out` and
    :attr:`aborted` tell the two apart afterwards.

    Example:
        >>> with CancellationSource(caller_token, timeout=5.0) as source:
        ...     response = await source.guard(transport(url, init))
    """

    def __init__(self, *upstream: Optional[CancellationToken], timeout: Optional[float] = None):
        self.token = CancellationToken()
        self.timeout = timeout
        self._links: List[Tuple[CancellationToken, Listener]] = []
        self._timer: Optional[asyncio.TimerHandle] = None
        self._timed_out = False
        self._aborted_by: Optional[CancellationToken] = None
        self._disposed = False

        for token in upstream:
            if token is not None:
                self.link(token)

        if timeout is not None and not self.token.cancelled:
            loop = asyncio.get_running_loop()
            self._timer = loop.call_later(timeout, self._on_timeout)

    @property
    def timed_out(self) -> bool:
        """True if the timer fired before any upstream token."""
        return self._timed_out

    @property
    def aborted(self) -> bool:
        """True if an upstream token fired before the timer."""
        return self._aborted_by is not None

    @property
    def abort_reason(self) -> Any:
        """Reason of the upstream token that fired, if any."""
        return self._aborted_by.reason if self._aborted_by is not None else None

    def link(self, upstream: CancellationToken) -> None:
        """Forward cancellation of ``upstream`` into the merged token."""
        if self._disposed:
            raise RuntimeError("CancellationSource is disposed")

        def _forward(source: CancellationToken) -> None:
            if not self.token.cancelled:
                self._aborted_by = source
                self.token.cancel(source.reason)

        self._links.append((upstream, _forward))
        upstream.add_listener(_forward)

    def _on_timeout(self) -> None:
        self._timer = None
        if not self.token.cancelled:
            self._timed_out = True
            self.token.cancel(f"timeout after {self.timeout}s")

    def dispose(self) -> None:
        """Clear the timer and deregister from every upstream token."""
        if self._disposed:
            return
        self._disposed = True

        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

        for upstream, listener in self._links:
            upstream.remove_listener(listener)
        self._links.clear()

    async def guard(self, awaitable: Awaitable[T]) -> T:
        """
        Run ``awaitable`` as a task that is cancelled when :attr:`token` fires.

        Raises:
            asyncio.CancelledError: the merged token fired (check
                :attr:`timed_out` / :attr:`aborted`) or the caller itself
                was cancelled.
        """
        task = asyncio.ensure_future(awaitable)

        def _cancel_task(_: CancellationToken) -> None:
            task.cancel()

        self.token.add_listener(_cancel_task)
        try:
            return await task
        finally:
            self.token.remove_listener(_cancel_task)

    def __enter__(self) -> "CancellationSource":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.dispose()
