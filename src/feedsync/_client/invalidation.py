"""Push-driven resynchronization of the record store."""

from __future__ import annotations

import asyncio
import contextlib
import logging
from typing import Any

from feedsync._api.records import RemoteStore
from feedsync._client.resync import resync
from feedsync.channel import Subscription, UpdateChannel
from feedsync.exceptions import FeedSyncConfigError, FeedSyncError
from feedsync.state.events import InvalidationEvent
from feedsync.state.store import RecordStore

_logger = logging.getLogger(__name__)


class InvalidationListener:
    """Keep the store eventually consistent with backend-side updates.

    Usage::

        async with InvalidationListener(channel=channel, remote=remote, store=store):
            ...  # the view refreshes itself while inside the block

    Every event in scope triggers one full resync; bursts queued while a
    resync runs are coalesced into the next one. When the subscription
    fails it is re-established with exponential backoff, followed by one
    resync covering whatever was missed in between. Leaving the block
    cancels the background task and closes the subscription.

    A configuration error while subscribing is not retried: the task
    stops, logs it, and `stop` re-raises it.
    """

    def __init__(
        self,
        *,
        channel: UpdateChannel,
        remote: RemoteStore,
        store: RecordStore,
        resync_attempts: int = 2,
        initial_delay: float = 1.0,
        max_delay: float = 30.0,
        logger: logging.Logger | None = None,
    ) -> None:
        self._channel = channel
        self._remote = remote
        self._store = store
        self._resync_attempts = resync_attempts
        self._initial_delay = initial_delay
        self._max_delay = max_delay
        self._logger = logger or _logger
        self._task: asyncio.Task[None] | None = None
        self._subscription: Subscription | None = None
        self._connected = asyncio.Event()
        self._resyncs = 0

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def connected(self) -> bool:
        return self._connected.is_set()

    @property
    def resync_count(self) -> int:
        return self._resyncs

    async def wait_connected(self, timeout: float | None = None) -> bool:
        """Wait until a subscription is established; ``False`` on timeout."""
        try:
            await asyncio.wait_for(self._connected.wait(), timeout)
        except TimeoutError:
            return False
        return True

    async def __aenter__(self) -> InvalidationListener:
        self.start()
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self.stop()

    def start(self) -> None:
        if self.is_running:
            return
        self._task = asyncio.create_task(self._run(), name=f"feedsync-invalidation-{self._channel.scope}")

    async def stop(self) -> None:
        task, self._task = self._task, None
        if task is not None:
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task
        subscription, self._subscription = self._subscription, None
        if subscription is not None:
            await subscription.close()
        self._connected.clear()

    async def _resync(self, reason: str) -> None:
        self._resyncs += 1
        self._logger.debug("Invalidation resync reason=%s scope=%s", reason, self._channel.scope)
        await resync(self._remote, self._store, attempts=self._resync_attempts, logger=self._logger)

    def _in_scope(self, event: InvalidationEvent) -> bool:
        return event.scope == self._channel.scope

    async def _consume(self, subscription: Subscription) -> None:
        async for event in subscription:
            if not self._in_scope(event):
                continue
            coalesced = [other for other in subscription.drain() if self._in_scope(other)]
            reason = event.kind.value if not coalesced else f"{event.kind.value}+{len(coalesced)}"
            await self._resync(reason)

    async def _run(self) -> None:
        try:
            await self._subscribe_forever()
        except Exception:
            self._logger.error("Invalidation listener stopped scope=%s", self._channel.scope, exc_info=True)
            raise

    async def _subscribe_forever(self) -> None:
        delay = self._initial_delay
        first = True
        while True:
            subscription = self._channel.subscribe()
            self._subscription = subscription
            try:
                async with subscription:
                    self._connected.set()
                    delay = self._initial_delay
                    if not first:
                        await self._resync("resubscribed")
                    first = False
                    await self._consume(subscription)
                self._logger.debug("Invalidation stream ended scope=%s", self._channel.scope)
            except FeedSyncConfigError:
                raise
            except (FeedSyncError, OSError):
                self._logger.debug("Invalidation subscription failed scope=%s", self._channel.scope, exc_info=True)
            finally:
                self._connected.clear()
                self._subscription = None

            first = False
            self._logger.debug("Resubscribing in %.2fs scope=%s", delay, self._channel.scope)
            await asyncio.sleep(delay)
            delay = min(self._max_delay, max(delay * 2, self._initial_delay))
