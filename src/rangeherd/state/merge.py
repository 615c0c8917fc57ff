"""Deterministic point merge policy.

This module contains *no* payload parsing.  The ingestion/Pydantic boundary
is responsible for producing validated :class:`LivePoint` objects; merging
here is a pure function of the existing history and the incoming points.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence

from rangeherd.models.point import LivePoint, PointIdentity


def dedupe_points(points: Iterable[LivePoint]) -> list[LivePoint]:
    """Drop repeated observations; the first occurrence of an identity wins."""
    seen: set[PointIdentity] = set()
    unique: list[LivePoint] = []
    for point in points:
        key = point.identity
        if key in seen:
            continue
        seen.add(key)
        unique.append(point)
    return unique


def merge_points(
    existing: Sequence[LivePoint],
    incoming: Iterable[LivePoint],
    *,
    window: int,
) -> tuple[LivePoint, ...]:
    """Fold *incoming* into *existing* and return the new bounded history.

    Steps: concatenate, de-duplicate (first seen wins), sort ascending by
    timestamp, keep the newest *window* points.  Points sharing a timestamp
    are ordered by identity so the result does not depend on arrival order.
    """
    if window < 1:
        raise ValueError("window must be at least 1")
    unique = dedupe_points([*existing, *incoming])
    unique.sort(key=lambda point: point.sort_key)
    return tuple(unique[-window:])
