"""Helpers for safe debug logging.

Requests carry bearer tokens in headers and the WebSocket handshake; this
module masks them (and any credential-like field) before DEBUG logs.
"""

from __future__ import annotations

import re
from collections.abc import Mapping, Sequence
from typing import Any

_SENSITIVE_KEYS: frozenset[str] = frozenset(
    {
        "authorization",
        "token",
        "accesstoken",
        "refreshtoken",
        "password",
        "cookie",
        "set-cookie",
    }
)

_BEARER_RE = re.compile(r"(?i)\b(bearer)\s+[A-Za-z0-9\-._~+/]+=*")

_MAX_DEPTH = 20


def redact_text(text: str, *, max_string: int = 512) -> str:
    """Mask bearer tokens inside free text and truncate long strings."""
    masked = _BEARER_RE.sub(r"\1 <redacted>", text)
    if len(masked) > max_string:
        return f"{masked[:max_string]}…<truncated>"
    return masked


def redact_for_log(value: Any, *, max_string: int = 512, _depth: int = 0) -> Any:
    """Return a redacted copy of *value* suitable for debug logs."""
    if _depth > _MAX_DEPTH:
        return "<max-depth>"
    if value is None or isinstance(value, (bool, int, float)):
        return value
    if isinstance(value, str):
        return redact_text(value, max_string=max_string)
    if isinstance(value, (bytes, bytearray)):
        return f"<bytes:{len(value)}b>"
    if isinstance(value, Mapping):
        return {
            str(key): (
                "<redacted>"
                if str(key).lower().replace("_", "") in _SENSITIVE_KEYS
                else redact_for_log(item, max_string=max_string, _depth=_depth + 1)
            )
            for key, item in value.items()
        }
    if isinstance(value, Sequence):
        return [redact_for_log(item, max_string=max_string, _depth=_depth + 1) for item in value]
    return repr(value)
