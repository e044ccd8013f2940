"""HTTP transport for the REST, auth and row endpoints."""

from __future__ import annotations

import json
import logging
from collections.abc import Mapping
from typing import Any, Protocol

import aiohttp

from feedsync._constants import SESSION_EXPIRED_CODES, USER_AGENT
from feedsync._redact import redact_for_log
from feedsync.config import FeedSyncConfig
from feedsync.exceptions import FeedSyncApiError, FeedSyncSessionExpiredError, FeedSyncTransportError

_logger = logging.getLogger(__name__)


class Transport(Protocol):
    """Structural transport interface used by endpoint modules.

    Having a protocol here makes it easy to pass test doubles while
    keeping the production implementation (`RestTransport`) concrete.
    """

    async def request(
        self,
        method: str,
        endpoint: str,
        *,
        params: Mapping[str, str] | None = None,
        json_body: Any = None,
        headers: Mapping[str, str] | None = None,
        access_token: str | None = None,
    ) -> Any:
        ...


def _error_fields(body: Any) -> tuple[str, str]:
    """Pull ``(code, message)`` out of a PostgREST or GoTrue error body."""
    if not isinstance(body, dict):
        return "", ""
    code = body.get("code") or body.get("error_code") or body.get("error") or ""
    message = body.get("message") or body.get("msg") or body.get("error_description") or ""
    return str(code), str(message)


class RestTransport:
    """JSON-over-HTTP transport that adds the API key and bearer token."""

    def __init__(self, config: FeedSyncConfig, http_session: aiohttp.ClientSession) -> None:
        self._config = config
        self._http = http_session
        self._timeout = aiohttp.ClientTimeout(total=config.request_timeout)

    def _headers(self, access_token: str | None, extra: Mapping[str, str] | None) -> dict[str, str]:
        headers: dict[str, str] = {
            "accept": "application/json",
            "content-type": "application/json",
            "user-agent": USER_AGENT,
            "apikey": self._config.api_key,
            "authorization": f"Bearer {access_token or self._config.api_key}",
        }
        if extra:
            headers.update(extra)
        return headers

    async def request(
        self,
        method: str,
        endpoint: str,
        *,
        params: Mapping[str, str] | None = None,
        json_body: Any = None,
        headers: Mapping[str, str] | None = None,
        access_token: str | None = None,
    ) -> Any:
        """Send a request and return the decoded JSON body.

        Returns ``None`` for empty bodies (e.g. ``204 No Content``).
        """
        url = f"{self._config.base_url}{endpoint}"
        body = None if json_body is None else json.dumps(json_body, separators=(",", ":"))

        _logger.debug("%s %s params=%s", method, url, dict(params or {}))
        if self._config.api_trace_enabled and json_body is not None:
            _logger.debug("Request body endpoint=%s body=%s", endpoint, redact_for_log(json_body))

        try:
            async with self._http.request(
                method,
                url,
                params=params,
                data=body,
                headers=self._headers(access_token, headers),
                timeout=self._timeout,
            ) as resp:
                status = resp.status
                text = await resp.text()
        except aiohttp.ClientError as exc:
            raise FeedSyncTransportError(
                f"Request to {endpoint} failed: {exc}",
                endpoint=endpoint,
            ) from exc
        except TimeoutError as exc:
            raise FeedSyncTransportError(
                f"Request to {endpoint} timed out after {self._config.request_timeout}s",
                endpoint=endpoint,
            ) from exc

        parsed: Any = None
        if text.strip():
            try:
                parsed = json.loads(text)
            except json.JSONDecodeError as exc:
                raise FeedSyncTransportError(
                    f"Invalid JSON from {endpoint} (HTTP {status}): {text[:200]}",
                    status_code=status,
                    endpoint=endpoint,
                ) from exc

        if self._config.api_trace_enabled:
            _logger.debug("Response endpoint=%s status=%s body=%s", endpoint, status, redact_for_log(parsed))

        if status >= 400:
            code, message = _error_fields(parsed)
            if status == 401 or code in SESSION_EXPIRED_CODES:
                raise FeedSyncSessionExpiredError(
                    f"{endpoint} rejected token: HTTP {status} code={code} message={message}",
                    code=code,
                    endpoint=endpoint,
                    status_code=status,
                )
            raise FeedSyncApiError(
                f"{endpoint} failed: HTTP {status} code={code} message={message or text[:200]}",
                code=code,
                endpoint=endpoint,
                status_code=status,
            )

        return parsed
