"""Custom exception hierarchy for rangeherd."""

from __future__ import annotations


class HerdError(Exception):
    """Base exception for all rangeherd errors."""


class HerdConfigError(HerdError):
    """Invalid or missing configuration."""


class HerdTransportError(HerdError):
    """HTTP-level failure (network, non-2xx, invalid JSON)."""

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


class HerdAuthenticationError(HerdTransportError):
    """Bearer token missing or rejected by the backend (HTTP 401).

    The dashboard escalates this to its ``on_logout`` collaborator and never
    retries the request.
    """
