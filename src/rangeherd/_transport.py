"""HTTP transport with bearer authentication and 401 escalation."""

from __future__ import annotations

import json
import logging
from collections.abc import Callable, Mapping
from typing import Any, Protocol

import aiohttp

from rangeherd._constants import USER_AGENT
from rangeherd._redact import redact_for_log
from rangeherd.config import HerdConfig
from rangeherd.exceptions import HerdAuthenticationError, HerdTransportError

_logger = logging.getLogger(__name__)


class Transport(Protocol):
    """Structural transport interface used by endpoint modules.

    Having a protocol here makes it easy to pass test doubles/mocks while
    keeping the production implementation (`HttpTransport`) concrete.
    """

    async def request_json(
        self,
        method: str,
        endpoint: str,
        *,
        params: Mapping[str, str] | None = None,
    ) -> Any: ...


class HttpTransport:
    """JSON-over-HTTP transport for the backend REST endpoints.

    Every request carries ``Authorization: Bearer <token>``.  A 401 from
    any endpoint calls *on_unauthorized* once per response and raises
    :class:`HerdAuthenticationError`; other non-2xx responses raise
    :class:`HerdTransportError`.  Nothing is retried here.
    """

    def __init__(
        self,
        config: HerdConfig,
        http_session: aiohttp.ClientSession,
        *,
        token: str,
        on_unauthorized: Callable[[], None] | None = None,
    ) -> None:
        self._config = config
        self._http = http_session
        self._token = token
        self._on_unauthorized = on_unauthorized

    def _headers(self) -> dict[str, str]:
        headers = {
            "accept": "application/json",
            "user-agent": USER_AGENT,
        }
        if self._token:
            headers["authorization"] = f"Bearer {self._token}"
        return headers

    def _escalate_unauthorized(self) -> None:
        if self._on_unauthorized is None:
            return
        try:
            self._on_unauthorized()
        except Exception:
            _logger.debug("on_unauthorized callback failed", exc_info=True)

    async def request_json(
        self,
        method: str,
        endpoint: str,
        *,
        params: Mapping[str, str] | None = None,
    ) -> Any:
        """Send a request and return the decoded JSON body (``None`` if empty)."""
        url = self._config.rest_url(endpoint)
        headers = self._headers()
        timeout = aiohttp.ClientTimeout(total=self._config.request_timeout)

        _logger.debug("%s %s headers=%s", method, url, redact_for_log(headers))

        try:
            async with self._http.request(
                method,
                url,
                headers=headers,
                params=dict(params) if params else None,
                timeout=timeout,
            ) as resp:
                text = await resp.text()
                status = resp.status
        except (aiohttp.ClientError, TimeoutError) as exc:
            raise HerdTransportError(
                f"Request to {endpoint} failed: {exc}",
                endpoint=endpoint,
            ) from exc

        if status == 401:
            _logger.warning("Backend rejected the session token on %s; forcing logout", endpoint)
            self._escalate_unauthorized()
            raise HerdAuthenticationError(
                f"HTTP 401 from {endpoint}",
                status_code=status,
                endpoint=endpoint,
            )
        if not 200 <= status < 300:
            raise HerdTransportError(
                f"HTTP {status} from {endpoint}: {text[:200]}",
                status_code=status,
                endpoint=endpoint,
            )

        if not text.strip():
            return None
        try:
            return json.loads(text)
        except json.JSONDecodeError as exc:
            raise HerdTransportError(
                f"Invalid JSON from {endpoint}: {text[:200]}",
                status_code=status,
                endpoint=endpoint,
            ) from exc
