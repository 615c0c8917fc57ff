"""Row-level parsing for list payloads.

REST list endpoints and stream frames deliver loosely validated JSON.  A
single malformed row must never discard the rest of a batch, so parsing
happens one row at a time and failures are logged and skipped here, before
anything reaches the point store.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from typing import Any, TypeVar

from pydantic import BaseModel, ValidationError

from rangeherd.models.point import LivePoint

_logger = logging.getLogger(__name__)

TModel = TypeVar("TModel", bound=BaseModel)


def parse_row(model_cls: type[TModel], row: Any) -> TModel | None:
    """Validate one row, returning ``None`` when it is malformed."""
    if not isinstance(row, dict):
        _logger.debug("Skipping non-object %s row: %r", model_cls.__name__, row)
        return None
    try:
        return model_cls.model_validate(row)
    except ValidationError as exc:
        _logger.debug("Skipping malformed %s row: %s", model_cls.__name__, exc.errors(include_url=False))
        return None


def parse_rows(model_cls: type[TModel], rows: Any) -> list[TModel]:
    """Validate every row of a list payload, skipping malformed rows."""
    if not isinstance(rows, list):
        _logger.debug("Expected a list of %s rows, got %s", model_cls.__name__, type(rows).__name__)
        return []
    parsed: list[TModel] = []
    for row in rows:
        model = parse_row(model_cls, row)
        if model is not None:
            parsed.append(model)
    return parsed


def parse_points(rows: Any) -> list[LivePoint]:
    return parse_rows(LivePoint, rows)


def group_by_device(points: Iterable[LivePoint]) -> dict[str, list[LivePoint]]:
    """Group points by device id, preserving arrival order within each group."""
    grouped: dict[str, list[LivePoint]] = {}
    for point in points:
        grouped.setdefault(point.device_id, []).append(point)
    return grouped
