"""Custom exception hierarchy for feedsync."""

from __future__ import annotations


class FeedSyncError(Exception):
    """Base exception for all feedsync errors."""


class FeedSyncConfigError(FeedSyncError):
    """Invalid or missing configuration."""


class FeedSyncTransportError(FeedSyncError):
    """HTTP-level failure (network, timeout, invalid JSON)."""

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        endpoint: str = "",
    ) -> None:
        self.status_code = status_code
        self.endpoint = endpoint
        super().__init__(message)


class FeedSyncApiError(FeedSyncError):
    """Backend answered with an error payload (PostgREST / GoTrue)."""

    def __init__(
        self,
        message: str,
        *,
        code: str = "",
        endpoint: str = "",
        status_code: int | None = None,
    ) -> None:
        self.code = code
        self.endpoint = endpoint
        self.status_code = status_code
        super().__init__(message)


class FeedSyncAuthenticationError(FeedSyncApiError):
    """Login failed or no authenticated user is available."""


class FeedSyncSessionExpiredError(FeedSyncAuthenticationError):
    """Access token rejected by the backend.

    Raised when a call fails with HTTP 401 or a JWT-expired code
    (``PGRST301``).  The client catches this internally to trigger
    re-authentication when credentials are configured.
    """


class FeedSyncChannelError(FeedSyncError):
    """Push channel could not be joined or was closed by the server."""
