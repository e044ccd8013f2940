"""Auth endpoints.

Endpoints:
  - /auth/v1/token?grant_type=password (login)
  - /auth/v1/user (resolve the user behind an access token)
"""

from __future__ import annotations

import logging
from typing import Any

from feedsync._constants import AUTH_PREFIX
from feedsync._redact import redact_for_log
from feedsync._transport import Transport
from feedsync.config import FeedSyncConfig
from feedsync.exceptions import FeedSyncApiError, FeedSyncAuthenticationError, FeedSyncSessionExpiredError
from feedsync.models.token import AuthToken

_logger = logging.getLogger(__name__)

_TOKEN_ENDPOINT = f"{AUTH_PREFIX}/token"
_USER_ENDPOINT = f"{AUTH_PREFIX}/user"


def build_login_request(config: FeedSyncConfig) -> dict[str, str]:
    """Build the JSON body for a password grant."""
    if not config.email or not config.password:
        raise FeedSyncAuthenticationError(
            "Login requires email and password",
            endpoint=_TOKEN_ENDPOINT,
        )
    return {"email": config.email, "password": config.password}


def parse_login_response(response: Any) -> AuthToken:
    """Parse a token response.

    Raises
    ------
    FeedSyncAuthenticationError
        If the response is missing the access token or the user id.
    """
    if not isinstance(response, dict):
        raise FeedSyncAuthenticationError("Login response is not an object", endpoint=_TOKEN_ENDPOINT)

    _logger.debug("Login response parsed=%s", redact_for_log(response))
    user = response.get("user")
    access_token = response.get("access_token")
    if not isinstance(user, dict) or not user.get("id") or not access_token:
        raise FeedSyncAuthenticationError(
            "Login response missing token fields",
            endpoint=_TOKEN_ENDPOINT,
        )

    expires_in = response.get("expires_in")
    return AuthToken(
        user_id=str(user["id"]),
        access_token=str(access_token),
        refresh_token=str(response.get("refresh_token") or ""),
        expires_in=float(expires_in) if isinstance(expires_in, (int, float)) else None,
        email=user.get("email"),
        raw=response,
    )


async def login(config: FeedSyncConfig, transport: Transport) -> AuthToken:
    """Exchange email/password for an access token."""
    body = build_login_request(config)
    try:
        response = await transport.request(
            "POST",
            _TOKEN_ENDPOINT,
            params={"grant_type": "password"},
            json_body=body,
        )
    except FeedSyncApiError as exc:
        # A rejected password grant is never a session expiry.
        raise FeedSyncAuthenticationError(
            f"Login failed: code={exc.code} {exc}",
            code=exc.code,
            endpoint=_TOKEN_ENDPOINT,
            status_code=exc.status_code,
        ) from exc
    return parse_login_response(response)


async def fetch_user(config: FeedSyncConfig, transport: Transport, access_token: str) -> AuthToken:
    """Resolve the user behind a pre-issued access token."""
    try:
        response = await transport.request("GET", _USER_ENDPOINT, access_token=access_token)
    except FeedSyncSessionExpiredError:
        raise
    except FeedSyncApiError as exc:
        raise FeedSyncAuthenticationError(
            f"User lookup failed: code={exc.code} {exc}",
            code=exc.code,
            endpoint=_USER_ENDPOINT,
            status_code=exc.status_code,
        ) from exc

    if not isinstance(response, dict) or not response.get("id"):
        raise FeedSyncAuthenticationError("User lookup returned no user id", endpoint=_USER_ENDPOINT)
    return AuthToken(
        user_id=str(response["id"]),
        access_token=access_token,
        email=response.get("email"),
        expires_in=config.session_ttl,
        raw=response,
    )
