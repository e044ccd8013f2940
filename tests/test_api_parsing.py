from __future__ import annotations

from typing import Any

import pytest

from feedsync._api.auth import build_login_request, parse_login_response
from feedsync._api.records import parse_record_rows, sort_newest_first
from feedsync._transport import RestTransport
from feedsync.config import FeedSyncConfig
from feedsync.exceptions import (
    FeedSyncApiError,
    FeedSyncAuthenticationError,
    FeedSyncSessionExpiredError,
    FeedSyncTransportError,
)


class _FakeResponse:
    def __init__(self, status: int, text: str) -> None:
        self.status = status
        self._text = text

    async def text(self) -> str:
        return self._text

    async def __aenter__(self) -> _FakeResponse:
        return self

    async def __aexit__(self, *exc: Any) -> None:
        return None


class _FakeHttpSession:
    def __init__(self, status: int, text: str) -> None:
        self._response = _FakeResponse(status, text)
        self.requests: list[dict[str, Any]] = []

    def request(self, method: str, url: str, **kwargs: Any) -> _FakeResponse:
        self.requests.append({"method": method, "url": url, **kwargs})
        return self._response


def _config(**overrides: Any) -> FeedSyncConfig:
    return FeedSyncConfig(url="https://project.supabase.co/", api_key="anon-key", **overrides)


def test_login_request_requires_credentials() -> None:
    with pytest.raises(FeedSyncAuthenticationError):
        build_login_request(_config())
    assert build_login_request(_config(email="a@b.c", password="pw")) == {"email": "a@b.c", "password": "pw"}


def test_parse_login_response() -> None:
    token = parse_login_response(
        {
            "access_token": "jwt",
            "refresh_token": "r",
            "expires_in": 3600,
            "user": {"id": "u-1", "email": "a@b.c"},
        }
    )

    assert (token.user_id, token.access_token, token.refresh_token) == ("u-1", "jwt", "r")
    assert token.expires_in == 3600.0
    assert token.email == "a@b.c"


@pytest.mark.parametrize("response", [None, [], {"access_token": "jwt"}, {"user": {"id": "u"}}])
def test_parse_login_response_rejects_incomplete(response: Any) -> None:
    with pytest.raises(FeedSyncAuthenticationError):
        parse_login_response(response)


def test_parse_record_rows_skips_malformed_rows() -> None:
    rows = [
        {"id": 1, "title": "ok", "created_at": "2026-01-01T00:00:00Z"},
        {"title": "no id"},
        "garbage",
        {"id": 2, "created_at": "2026-01-02T00:00:00Z"},
    ]

    records = parse_record_rows(rows, endpoint="/rest/v1/feedback")

    assert [record.id for record in records] == ["1", "2"]
    assert [record.id for record in sort_newest_first(records)] == ["2", "1"]


def test_parse_record_rows_rejects_non_list() -> None:
    assert parse_record_rows(None, endpoint="/rest/v1/feedback") == []
    with pytest.raises(FeedSyncApiError):
        parse_record_rows({"id": 1}, endpoint="/rest/v1/feedback")


@pytest.mark.asyncio
async def test_transport_sends_key_and_bearer_token() -> None:
    http = _FakeHttpSession(200, '[{"id": 1}]')
    transport = RestTransport(_config(), http)  # type: ignore[arg-type]

    body = await transport.request(
        "GET",
        "/rest/v1/feedback",
        params={"select": "*"},
        headers={"accept-profile": "public"},
        access_token="jwt",
    )

    assert body == [{"id": 1}]
    sent = http.requests[0]
    assert sent["url"] == "https://project.supabase.co/rest/v1/feedback"
    assert sent["headers"]["apikey"] == "anon-key"
    assert sent["headers"]["authorization"] == "Bearer jwt"
    assert sent["headers"]["accept-profile"] == "public"


@pytest.mark.asyncio
async def test_transport_falls_back_to_api_key_as_bearer() -> None:
    http = _FakeHttpSession(204, "")
    transport = RestTransport(_config(), http)  # type: ignore[arg-type]

    assert await transport.request("POST", "/auth/v1/token", json_body={"email": "x"}) is None
    assert http.requests[0]["headers"]["authorization"] == "Bearer anon-key"
    assert http.requests[0]["data"] == '{"email":"x"}'


@pytest.mark.asyncio
@pytest.mark.parametrize(
    ("status", "text"),
    [
        (401, '{"code": "PGRST301", "message": "JWT expired"}'),
        (400, '{"code": "PGRST301", "message": "JWT expired"}'),
        (403, '{"error_code": "bad_jwt", "msg": "invalid JWT"}'),
    ],
)
async def test_transport_maps_expired_tokens(status: int, text: str) -> None:
    transport = RestTransport(_config(), _FakeHttpSession(status, text))  # type: ignore[arg-type]

    with pytest.raises(FeedSyncSessionExpiredError):
        await transport.request("GET", "/rest/v1/feedback")


@pytest.mark.asyncio
async def test_transport_maps_api_errors() -> None:
    transport = RestTransport(  # type: ignore[arg-type]
        _config(),
        _FakeHttpSession(409, '{"code": "23505", "message": "duplicate key"}'),
    )

    with pytest.raises(FeedSyncApiError) as exc_info:
        await transport.request("POST", "/rest/v1/feedback", json_body={})

    assert not isinstance(exc_info.value, FeedSyncAuthenticationError)
    assert exc_info.value.code == "23505"
    assert exc_info.value.status_code == 409


@pytest.mark.asyncio
async def test_transport_rejects_invalid_json() -> None:
    transport = RestTransport(_config(), _FakeHttpSession(502, "<html>bad gateway</html>"))  # type: ignore[arg-type]

    with pytest.raises(FeedSyncTransportError) as exc_info:
        await transport.request("GET", "/rest/v1/feedback")

    assert exc_info.value.status_code == 502
