"""Deterministic in-memory point store.

This is the only component allowed to mutate device histories.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable, Iterator, Mapping

from rangeherd.ingestion.rows import group_by_device
from rangeherd.models.point import LivePoint
from rangeherd.state.merge import merge_points

_logger = logging.getLogger(__name__)

DEFAULT_HISTORY_WINDOW = 60

StoreListener = Callable[[str], None]


class PointStore:
    """Per-device bounded point histories.

    Every mutation goes through :meth:`merge_batch`, which replaces the
    device history with the result of :func:`merge_points`.  Histories are
    stored as tuples, so callers can never patch them in place.  Given the
    same set of points the store produces the same histories, in whatever
    order or multiplicity the points arrive.
    """

    def __init__(self, *, window: int = DEFAULT_HISTORY_WINDOW) -> None:
        if window < 1:
            raise ValueError("window must be at least 1")
        self._window = window
        self._histories: dict[str, tuple[LivePoint, ...]] = {}
        self._listeners: list[StoreListener] = []

    @property
    def window(self) -> int:
        return self._window

    def subscribe(self, listener: StoreListener) -> Callable[[], None]:
        """Call *listener* with the device id after every merge.

        Returns a callable that removes the listener again.
        """
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def _notify(self, device_id: str) -> None:
        for listener in list(self._listeners):
            try:
                listener(device_id)
            except Exception:
                _logger.debug("Store listener failed for device %s", device_id, exc_info=True)

    def merge_batch(self, device_id: str, new_points: Iterable[LivePoint]) -> tuple[LivePoint, ...]:
        """Merge *new_points* into the history of *device_id*.

        Points belonging to another device are ignored.  Returns the new
        history.
        """
        key = device_id.strip()
        if not key:
            raise ValueError("device_id must be non-empty")

        incoming: list[LivePoint] = []
        for point in new_points:
            if point.device_id != key:
                _logger.debug("Ignoring point for %s in batch for %s", point.device_id, key)
                continue
            incoming.append(point)

        history = merge_points(self._histories.get(key, ()), incoming, window=self._window)
        self._histories[key] = history
        self._notify(key)
        return history

    def replace_snapshot(self, device_id: str, points: Iterable[LivePoint]) -> tuple[LivePoint, ...]:
        """Reconcile a REST snapshot for *device_id*.

        Snapshots go through the same merge path as streamed points, so no
        separate consistency logic exists between the two sources.
        """
        return self.merge_batch(device_id, points)

    def merge_point(self, point: LivePoint) -> tuple[LivePoint, ...]:
        return self.merge_batch(point.device_id, (point,))

    def merge_points(self, points: Iterable[LivePoint]) -> dict[str, tuple[LivePoint, ...]]:
        """Merge a batch spanning several devices, one merge per device."""
        merged: dict[str, tuple[LivePoint, ...]] = {}
        for device_id, group in group_by_device(points).items():
            merged[device_id] = self.merge_batch(device_id, group)
        return merged

    def history(self, device_id: str) -> tuple[LivePoint, ...]:
        return self._histories.get(device_id, ())

    def latest(self, device_id: str) -> LivePoint | None:
        history = self._histories.get(device_id)
        return history[-1] if history else None

    def device_ids(self) -> list[str]:
        """Device ids in first-seen order."""
        return list(self._histories)

    def histories(self) -> Mapping[str, tuple[LivePoint, ...]]:
        return dict(self._histories)

    def __contains__(self, device_id: object) -> bool:
        return device_id in self._histories

    def __iter__(self) -> Iterator[str]:
        return iter(list(self._histories))

    def __len__(self) -> int:
        return len(self._histories)
