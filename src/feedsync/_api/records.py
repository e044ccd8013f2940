"""Feedback row endpoints (PostgREST).

Endpoints:
  - POST /rest/v1/{table} (insert, returns the inserted row)
  - GET  /rest/v1/{table}?id=eq.{id} (single row)
  - GET  /rest/v1/{table}?order=created_at.desc (whole collection)
"""

from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from typing import Any, Protocol

from pydantic import ValidationError

from feedsync._constants import REST_PREFIX
from feedsync._transport import Transport
from feedsync.config import FeedSyncConfig
from feedsync.exceptions import FeedSyncApiError
from feedsync.models.record import Record
from feedsync.session import Session

_logger = logging.getLogger(__name__)


class RemoteStore(Protocol):
    """The remote entity store as seen by the reconciliation components."""

    async def insert_record(self, fields: Mapping[str, Any]) -> str | None:
        ...

    async def fetch_record(self, identity: str) -> Record | None:
        ...

    async def fetch_all_records(self) -> list[Record]:
        ...


def _table_endpoint(config: FeedSyncConfig) -> str:
    return f"{REST_PREFIX}/{config.table}"


def _schema_headers(config: FeedSyncConfig, *, write: bool = False) -> dict[str, str]:
    key = "content-profile" if write else "accept-profile"
    return {key: config.schema}


def sort_newest_first(records: Sequence[Record]) -> list[Record]:
    """Order by ``created_at`` descending; ties keep their incoming order."""
    return sorted(records, key=lambda record: record.created_at, reverse=True)


def parse_record_rows(rows: Any, *, endpoint: str) -> list[Record]:
    """Validate a PostgREST row array into records, skipping malformed rows."""
    if rows is None:
        return []
    if not isinstance(rows, list):
        raise FeedSyncApiError(f"{endpoint} returned {type(rows).__name__}, expected a list", endpoint=endpoint)
    records: list[Record] = []
    for row in rows:
        if not isinstance(row, dict):
            continue
        try:
            records.append(Record.model_validate(row))
        except ValidationError:
            _logger.debug("Skipping malformed row from %s: %s", endpoint, row, exc_info=True)
    return records


async def insert_record(
    config: FeedSyncConfig,
    session: Session,
    transport: Transport,
    fields: Mapping[str, Any],
) -> str | None:
    """Insert a raw row and return its server-assigned identity.

    Returns ``None`` when the backend accepted the insert but did not
    return the row (e.g. row-level security hides it from ``select``).
    """
    endpoint = _table_endpoint(config)
    headers = {"prefer": "return=representation", **_schema_headers(config, write=True)}
    rows = await transport.request(
        "POST",
        endpoint,
        json_body=dict(fields),
        headers=headers,
        access_token=session.access_token,
    )
    inserted = parse_record_rows(rows, endpoint=endpoint)
    if not inserted:
        _logger.debug("Insert into %s returned no row", endpoint)
        return None
    return inserted[0].id


async def fetch_record(
    config: FeedSyncConfig,
    session: Session,
    transport: Transport,
    identity: str,
) -> Record | None:
    """Fetch one row by identity, ``None`` when it is not visible."""
    endpoint = _table_endpoint(config)
    rows = await transport.request(
        "GET",
        endpoint,
        params={"select": "*", "id": f"eq.{identity}", "limit": "1"},
        headers=_schema_headers(config),
        access_token=session.access_token,
    )
    records = parse_record_rows(rows, endpoint=endpoint)
    return records[0] if records else None


async def fetch_all_records(
    config: FeedSyncConfig,
    session: Session,
    transport: Transport,
) -> list[Record]:
    """Fetch the whole collection, newest first."""
    endpoint = _table_endpoint(config)
    rows = await transport.request(
        "GET",
        endpoint,
        params={"select": "*", "order": "created_at.desc"},
        headers=_schema_headers(config),
        access_token=session.access_token,
    )
    # Order is enforced locally too; views may drop the order clause.
    return sort_newest_first(parse_record_rows(rows, endpoint=endpoint))
