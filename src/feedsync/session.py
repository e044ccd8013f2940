"""Session state for authenticated API calls."""

from __future__ import annotations

import time

from pydantic import BaseModel, ConfigDict, Field

#: Default access token time-to-live in seconds (1 hour), used when the
#: backend does not report ``expires_in``.
DEFAULT_SESSION_TTL: float = 3600.0


class Session(BaseModel):
    """Authenticated user session.

    Parameters
    ----------
    user_id : str
        The authenticated user's ID. This is the identity stamped on
        every inserted record.
    access_token : str
        Bearer token for row and realtime requests.
    refresh_token : str
        Refresh token, empty when the session was built from a
        pre-issued access token.
    email : str or None
        Email of the user, if known.
    created_at : float
        Monotonic timestamp (``time.monotonic()``) when the session
        was created.
    ttl : float
        Time-to-live in seconds. After this period the session is
        considered expired and should be refreshed via a new login.
    """

    model_config = ConfigDict(
        frozen=True,
        extra="forbid",
        validate_default=True,
        str_strip_whitespace=True,
    )

    user_id: str
    access_token: str
    refresh_token: str = ""
    email: str | None = None
    created_at: float = Field(default_factory=time.monotonic)
    ttl: float = DEFAULT_SESSION_TTL

    @property
    def is_expired(self) -> bool:
        """Whether the session has exceeded its TTL."""
        return (time.monotonic() - self.created_at) >= self.ttl

    @property
    def age(self) -> float:
        """Seconds since the session was created."""
        return time.monotonic() - self.created_at
