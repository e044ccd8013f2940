from __future__ import annotations

import asyncio
import time

import pytest
from fakes import FakeRemote, make_record

from feedsync._client.enrichment import EnrichmentWaiter
from feedsync.models.record import Record


@pytest.mark.asyncio
async def test_returns_as_soon_as_record_is_enriched(remote: FakeRemote) -> None:
    remote.rows["1"] = make_record("1")
    remote.enrich_after["1"] = 2
    waiter = EnrichmentWaiter(remote, attempts=3, interval=0.0)

    record = await waiter.await_enrichment("1")

    assert record is not None
    assert record.is_enriched
    assert remote.calls["fetch_record"] == 2


@pytest.mark.asyncio
async def test_returns_none_after_exhausting_attempts(remote: FakeRemote) -> None:
    remote.rows["1"] = make_record("1")
    waiter = EnrichmentWaiter(remote, attempts=3, interval=0.0)

    assert await waiter.await_enrichment("1") is None
    assert remote.calls["fetch_record"] == 3


@pytest.mark.asyncio
async def test_missing_row_counts_as_not_enriched(remote: FakeRemote) -> None:
    waiter = EnrichmentWaiter(remote, attempts=2, interval=0.0)

    assert await waiter.await_enrichment("nope") is None
    assert remote.calls["fetch_record"] == 2


@pytest.mark.asyncio
async def test_fetch_errors_are_retried(remote: FakeRemote) -> None:
    remote.rows["1"] = make_record("1", status="Open")
    remote.fetch_one_failures = 2
    waiter = EnrichmentWaiter(remote, attempts=3, interval=0.0)

    record = await waiter.await_enrichment("1")

    assert record is not None
    assert remote.calls["fetch_record"] == 3


@pytest.mark.asyncio
async def test_does_not_sleep_after_last_attempt(remote: FakeRemote) -> None:
    remote.rows["1"] = make_record("1")
    waiter = EnrichmentWaiter(remote, attempts=3, interval=0.05)

    started = time.monotonic()
    assert await waiter.await_enrichment("1") is None
    elapsed = time.monotonic() - started

    # Two gaps between three attempts, none after the last one.
    assert 0.09 <= elapsed < 0.5


@pytest.mark.asyncio
async def test_hanging_fetch_is_bounded_by_attempt_timeout() -> None:
    class _Hanging:
        async def fetch_record(self, identity: str) -> Record | None:
            await asyncio.sleep(10)
            return None

    waiter = EnrichmentWaiter(_Hanging(), attempts=2, interval=0.0, attempt_timeout=0.01)  # type: ignore[arg-type]

    assert await asyncio.wait_for(waiter.await_enrichment("1"), 1.0) is None


def test_rejects_zero_attempts(remote: FakeRemote) -> None:
    with pytest.raises(ValueError):
        EnrichmentWaiter(remote, attempts=0)
