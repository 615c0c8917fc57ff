"""Normalization helpers.

Centralizes defensive parsing and placeholder handling.
"""

from __future__ import annotations

import math
from datetime import UTC, datetime
from typing import Any

# Sentinel strings some tracker firmwares and the backend use for "not available".
SENTINELS = frozenset({"", "--", "NaN", "nan", "null"})

# Threshold to distinguish epoch seconds from epoch milliseconds.
_MS_THRESHOLD = 1e11


def is_sentinel(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str) and value.strip() in SENTINELS:
        return True
    return isinstance(value, float) and math.isnan(value)


def safe_float(value: Any) -> float | None:
    if is_sentinel(value) or isinstance(value, bool):
        return None
    try:
        result = float(value)
    except (TypeError, ValueError):
        return None
    if math.isnan(result) or math.isinf(result):
        return None
    return result


def safe_int(value: Any) -> int | None:
    parsed = safe_float(value)
    if parsed is None:
        return None
    return int(parsed)


def safe_str(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text if text else None


def parse_timestamp_ms(value: Any) -> int | None:
    """Parse an ISO-8601 string or an epoch number into epoch milliseconds.

    Epoch numbers above ``1e11`` are taken as milliseconds, others as
    seconds.  Naive ISO strings are read as UTC.  Returns ``None`` when the
    value is missing or unparseable.
    """
    if is_sentinel(value) or isinstance(value, bool):
        return None
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, (int, float)):
        return _epoch_to_ms(float(value))
    else:
        text = str(value).strip()
        numeric = safe_float(text)
        if numeric is not None:
            return _epoch_to_ms(numeric)
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return int(parsed.timestamp() * 1000)


def _epoch_to_ms(value: float) -> int | None:
    if math.isnan(value) or math.isinf(value) or value <= 0:
        return None
    if value > _MS_THRESHOLD:
        return int(value)
    return int(value * 1000)


def ms_to_datetime(value: int | None) -> datetime | None:
    if not value:
        return None
    return datetime.fromtimestamp(value / 1000.0, tz=UTC)


def clean_payload(values: dict[str, Any], aliases: dict[str, str] | None = None) -> dict[str, Any]:
    """Drop sentinel values and apply key aliases on a raw payload dict."""
    working = dict(values)
    if aliases:
        for old_key, new_key in aliases.items():
            if old_key in working and new_key not in working:
                working[new_key] = working.pop(old_key)
    return {key: value for key, value in working.items() if not is_sentinel(value)}
