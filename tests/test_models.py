from __future__ import annotations

from datetime import UTC, datetime

import pytest
from pydantic import ValidationError

from feedsync.models.record import EnrichmentState, Record
from feedsync.models.token import AuthToken
from feedsync.session import Session
from feedsync.state.events import InvalidationEvent, InvalidationKind


def test_record_parses_postgrest_row() -> None:
    row = {
        "id": 42,
        "title": "Export broken",
        "description": "Nothing happens",
        "category": None,
        "priority": None,
        "status": "Pending",
        "user_id": "0b7c4c56-1c51-4b0a-9a53-7c1d3b1f5e11",
        "created_at": "2026-03-01T10:00:00.123456+00:00",
        "unknown_column": "ignored",
    }

    record = Record.model_validate(row)

    assert record.id == "42"
    assert record.enrichment_state is EnrichmentState.PENDING
    assert record.created_at == datetime(2026, 3, 1, 10, 0, 0, 123456, tzinfo=UTC)
    assert record.raw == row
    assert not hasattr(record, "unknown_column")


def test_record_null_text_columns_fall_back_to_defaults() -> None:
    record = Record.model_validate({"id": "a", "title": None, "description": None, "status": None})

    assert record.title == ""
    assert record.description == ""
    assert record.enrichment_state is EnrichmentState.PENDING


@pytest.mark.parametrize("status", ["Open", "In Progress", "Closed"])
def test_any_non_pending_status_means_enriched(status: str) -> None:
    record = Record(id="a", status=status)
    assert record.is_enriched


def test_blank_status_is_pending() -> None:
    assert Record(id="a", status="  ").enrichment_state is EnrichmentState.PENDING


def test_naive_created_at_is_treated_as_utc() -> None:
    record = Record(id="a", created_at=datetime(2026, 3, 1, 10, 0))
    assert record.created_at.tzinfo is UTC


def test_record_requires_non_empty_id() -> None:
    with pytest.raises(ValidationError):
        Record(id="  ")


def test_record_is_frozen() -> None:
    record = Record(id="a")
    with pytest.raises(ValidationError):
        record.status = "Open"  # type: ignore[misc]


def test_invalidation_event_requires_scope() -> None:
    event = InvalidationEvent(kind=InvalidationKind.UPDATE, scope=" feedback ")
    assert event.scope == "feedback"
    with pytest.raises(ValidationError):
        InvalidationEvent(kind=InvalidationKind.UPDATE, scope="")


def test_session_expiry() -> None:
    live = Session(user_id="u", access_token="t", ttl=3600)
    dead = Session(user_id="u", access_token="t", ttl=0)

    assert not live.is_expired
    assert dead.is_expired


def test_auth_token_keeps_raw() -> None:
    token = AuthToken(user_id="u", access_token="t", raw={"access_token": "t"})
    assert token.refresh_token == ""
    assert token.raw["access_token"] == "t"
