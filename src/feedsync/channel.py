"""Cancellable stream of invalidation events.

A push channel hands out `Subscription` objects. A subscription is an
async context manager (connect on enter, guaranteed teardown on exit) and
an async iterator of `InvalidationEvent`s. It is lazy, unbounded and not
restartable: once closed it yields nothing and cannot be entered again.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Any, Protocol

from feedsync.exceptions import FeedSyncChannelError
from feedsync.state.events import InvalidationEvent

_logger = logging.getLogger(__name__)

_CLOSED = object()


class Subscription:
    """One live subscription to a push channel.

    Producers (network readers, MQTT callbacks marshalled onto the loop)
    call `publish` and `fail`. Consumers iterate with ``async for``.
    """

    def __init__(
        self,
        *,
        on_open: Callable[[Subscription], Awaitable[None]] | None = None,
        on_close: Callable[[], Awaitable[None]] | None = None,
    ) -> None:
        self._on_open = on_open
        self._on_close = on_close
        self._queue: asyncio.Queue[Any] = asyncio.Queue()
        self._opened = False
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    async def __aenter__(self) -> Subscription:
        if self._closed or self._opened:
            raise FeedSyncChannelError("subscription cannot be restarted")
        self._opened = True
        if self._on_open is not None:
            try:
                await self._on_open(self)
            except BaseException:
                await self.close()
                raise
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self.close()

    def __aiter__(self) -> Subscription:
        return self

    async def __anext__(self) -> InvalidationEvent:
        if self._closed:
            raise StopAsyncIteration
        item = await self._queue.get()
        if item is _CLOSED:
            raise StopAsyncIteration
        if isinstance(item, BaseException):
            raise item
        return item

    def publish(self, event: InvalidationEvent) -> None:
        """Queue an event for the consumer. Ignored once closed."""
        if self._closed:
            return
        self._queue.put_nowait(event)

    def fail(self, exc: BaseException) -> None:
        """Make the consumer's next read raise *exc*."""
        if self._closed:
            return
        self._queue.put_nowait(exc)

    def drain(self) -> list[InvalidationEvent]:
        """Pop every queued event without waiting.

        Stops at (and re-queues) a pending failure or close marker so the
        consumer still observes it on the next read.
        """
        drained: list[InvalidationEvent] = []
        while not self._queue.empty():
            item = self._queue.get_nowait()
            if item is _CLOSED or isinstance(item, BaseException):
                self._requeue_front(item)
                break
            drained.append(item)
        return drained

    def _requeue_front(self, item: Any) -> None:
        rest: list[Any] = []
        while not self._queue.empty():
            rest.append(self._queue.get_nowait())
        self._queue.put_nowait(item)
        for other in rest:
            self._queue.put_nowait(other)

    async def close(self) -> None:
        """Tear the subscription down. Safe to call more than once."""
        if self._closed:
            return
        self._closed = True
        self._queue.put_nowait(_CLOSED)
        if self._on_close is not None:
            try:
                await self._on_close()
            except Exception:
                _logger.debug("Subscription teardown failed", exc_info=True)


class UpdateChannel(Protocol):
    """A push source of "collection changed" notifications."""

    @property
    def scope(self) -> str:
        ...

    def subscribe(self) -> Subscription:
        ...
