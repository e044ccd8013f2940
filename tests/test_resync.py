from __future__ import annotations

import asyncio

import pytest
from fakes import FakeRemote, make_record

from feedsync._client.resync import resync
from feedsync.models.record import Record
from feedsync.state.store import RecordStore


@pytest.mark.asyncio
async def test_resync_replaces_view(remote: FakeRemote) -> None:
    store = RecordStore()
    store.upsert_one(make_record("gone"))
    remote.rows["a"] = make_record("a", minutes=1)
    remote.rows["b"] = make_record("b", minutes=2)

    assert await resync(remote, store) is True
    assert [record.id for record in store] == ["b", "a"]


@pytest.mark.asyncio
async def test_resync_retries_transient_failures(remote: FakeRemote) -> None:
    store = RecordStore()
    remote.rows["a"] = make_record("a")
    remote.fetch_all_failures = 1

    assert await resync(remote, store, attempts=2) is True
    assert remote.calls["fetch_all_records"] == 2
    assert "a" in store


@pytest.mark.asyncio
async def test_resync_gives_up_without_raising(remote: FakeRemote) -> None:
    store = RecordStore()
    store.upsert_one(make_record("kept"))
    remote.fetch_all_failures = 3

    assert await resync(remote, store, attempts=3) is False
    assert remote.calls["fetch_all_records"] == 3
    assert "kept" in store


@pytest.mark.asyncio
async def test_slow_resync_finishing_last_does_not_drop_newer_rows(remote: FakeRemote) -> None:
    store = RecordStore()
    remote.rows["a"] = make_record("a", minutes=1)
    release_first = asyncio.Event()
    original = remote.fetch_all_records
    fetches = 0

    async def _fetch_all() -> list[Record]:
        nonlocal fetches
        fetches += 1
        rows = await original()
        if fetches == 1:
            # Rows read now, delivered after the second resync finished.
            await release_first.wait()
        return rows

    remote.fetch_all_records = _fetch_all  # type: ignore[method-assign]

    slow = asyncio.create_task(resync(remote, store))
    await asyncio.sleep(0)

    remote.rows["y"] = make_record("y", minutes=2)
    assert await resync(remote, store) is True
    assert [record.id for record in store] == ["y", "a"]

    release_first.set()
    assert await slow is True
    assert [record.id for record in store] == ["y", "a"]
