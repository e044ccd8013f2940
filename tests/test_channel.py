from __future__ import annotations

import asyncio

import pytest

from feedsync.channel import Subscription
from feedsync.exceptions import FeedSyncChannelError
from feedsync.state.events import InvalidationEvent, InvalidationKind


def _event(kind: InvalidationKind = InvalidationKind.UPDATE) -> InvalidationEvent:
    return InvalidationEvent(kind=kind, scope="feedback")


@pytest.mark.asyncio
async def test_subscription_yields_published_events_in_order() -> None:
    subscription = Subscription()
    async with subscription:
        subscription.publish(_event(InvalidationKind.INSERT))
        subscription.publish(_event(InvalidationKind.UPDATE))

        first = await subscription.__anext__()
        second = await subscription.__anext__()

    assert [first.kind, second.kind] == [InvalidationKind.INSERT, InvalidationKind.UPDATE]


@pytest.mark.asyncio
async def test_close_ends_iteration() -> None:
    subscription = Subscription()
    received: list[InvalidationEvent] = []

    async def _consume() -> None:
        async for event in subscription:
            received.append(event)

    async with subscription:
        task = asyncio.create_task(_consume())
        subscription.publish(_event())
        await asyncio.sleep(0)
        await subscription.close()
        await asyncio.wait_for(task, 1.0)

    assert len(received) == 1
    assert subscription.closed


@pytest.mark.asyncio
async def test_failure_is_raised_to_consumer() -> None:
    subscription = Subscription()
    async with subscription:
        subscription.fail(FeedSyncChannelError("boom"))
        with pytest.raises(FeedSyncChannelError):
            await subscription.__anext__()


@pytest.mark.asyncio
async def test_drain_stops_at_failure_and_keeps_it_queued() -> None:
    subscription = Subscription()
    async with subscription:
        subscription.publish(_event())
        subscription.publish(_event())
        subscription.fail(FeedSyncChannelError("boom"))
        subscription.publish(_event())

        assert len(subscription.drain()) == 2
        with pytest.raises(FeedSyncChannelError):
            await subscription.__anext__()


@pytest.mark.asyncio
async def test_open_and_close_hooks_run_once() -> None:
    calls: list[str] = []

    async def _open(_sub: Subscription) -> None:
        calls.append("open")

    async def _close() -> None:
        calls.append("close")

    subscription = Subscription(on_open=_open, on_close=_close)
    async with subscription:
        pass
    await subscription.close()

    assert calls == ["open", "close"]


@pytest.mark.asyncio
async def test_failed_open_still_tears_down() -> None:
    calls: list[str] = []

    async def _open(_sub: Subscription) -> None:
        raise FeedSyncChannelError("join rejected")

    async def _close() -> None:
        calls.append("close")

    subscription = Subscription(on_open=_open, on_close=_close)
    with pytest.raises(FeedSyncChannelError):
        async with subscription:
            pass

    assert calls == ["close"]
    assert subscription.closed


@pytest.mark.asyncio
async def test_subscription_cannot_be_restarted() -> None:
    subscription = Subscription()
    async with subscription:
        pass

    with pytest.raises(FeedSyncChannelError):
        async with subscription:
            pass

    subscription.publish(_event())
    with pytest.raises(StopAsyncIteration):
        await subscription.__anext__()
