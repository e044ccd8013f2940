"""Authentication token model."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict


class AuthToken(BaseModel):
    """Token returned after a successful password login.

    Parameters
    ----------
    user_id : str
        The authenticated user's ID.
    access_token : str
        Bearer token sent with row and realtime requests.
    refresh_token : str
        Token that can be exchanged for a new access token.
    expires_in : float or None
        Lifetime of the access token in seconds, when reported.
    email : str or None
        Email of the authenticated user.
    raw : dict
        Full token response for access to additional fields.
    """

    model_config = ConfigDict(frozen=True)

    user_id: str
    access_token: str
    refresh_token: str = ""
    expires_in: float | None = None
    email: str | None = None
    raw: dict[str, Any]
