"""Remote store bound to a :class:`feedsync.client.FeedSyncClient`.

Adds lazy authentication and one re-login on token expiry around the row
endpoints, so the reconciliation components only see `RemoteStore`.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import TYPE_CHECKING, Any

from feedsync._api import records as _records_api
from feedsync.models.record import Record

if TYPE_CHECKING:
    from feedsync.client import FeedSyncClient


class ClientRemoteStore:
    def __init__(self, client: FeedSyncClient) -> None:
        self._client = client

    async def insert_record(self, fields: Mapping[str, Any]) -> str | None:
        client = self._client

        async def _call() -> str | None:
            session = await client.ensure_session()
            transport = client._require_transport()
            return await _records_api.insert_record(client._config, session, transport, fields)

        return await client._call_with_reauth(_call)

    async def fetch_record(self, identity: str) -> Record | None:
        client = self._client

        async def _call() -> Record | None:
            session = await client.ensure_session()
            transport = client._require_transport()
            return await _records_api.fetch_record(client._config, session, transport, identity)

        return await client._call_with_reauth(_call)

    async def fetch_all_records(self) -> list[Record]:
        client = self._client

        async def _call() -> list[Record]:
            session = await client.ensure_session()
            transport = client._require_transport()
            return await _records_api.fetch_all_records(client._config, session, transport)

        return await client._call_with_reauth(_call)
