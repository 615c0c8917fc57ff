"""Session state handed over by the authentication collaborator."""

from __future__ import annotations

import time
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from rangeherd.exceptions import HerdAuthenticationError


class Session(BaseModel):
    """An authenticated dashboard session.

    rangeherd never logs in by itself; the token comes from the host's
    authentication flow (or a stored session) and is attached to every REST
    request and to the live stream handshake.

    Parameters
    ----------
    token : str
        Bearer token.
    user : dict
        User profile as returned by the login endpoint, passed through.
    created_at : float
        Monotonic timestamp (``time.monotonic()``) of session creation.
    """

    model_config = ConfigDict(
        frozen=True,
        extra="forbid",
        str_strip_whitespace=True,
    )

    token: str
    user: dict[str, Any] = Field(default_factory=dict)
    created_at: float = Field(default_factory=time.monotonic)

    @field_validator("token")
    @classmethod
    def _require_token(cls, value: str) -> str:
        if not value:
            raise ValueError("token must be non-empty")
        return value

    @classmethod
    def restore(cls, token: str | None, user: dict[str, Any] | None = None) -> Session:
        """Rebuild a session from stored credentials.

        Raises :class:`HerdAuthenticationError` when no token is available,
        which tells the host to return to its login view.
        """
        if token is None or not token.strip():
            raise HerdAuthenticationError("No session token available; login required")
        return cls(token=token, user=dict(user or {}))

    @property
    def authorization(self) -> str:
        return f"Bearer {self.token}"

    @property
    def age(self) -> float:
        """Seconds since the session was created."""
        return time.monotonic() - self.created_at
