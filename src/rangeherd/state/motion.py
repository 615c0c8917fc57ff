"""Motion classification over a device history.

A device is ``moving`` only when its last *two* consecutive segments both
cover a real distance at a real speed, which rejects single-sample GPS
spikes.  Stale devices and segments spanning a delivery gap are reported as
``stationary``; too little data is ``unknown``.
"""

from __future__ import annotations

import dataclasses
import logging
import time
from collections.abc import Callable, Sequence

from rangeherd.geo import haversine_m
from rangeherd.models.point import LivePoint
from rangeherd.models.status import MotionState

_logger = logging.getLogger(__name__)


@dataclasses.dataclass(frozen=True)
class MotionThresholds:
    """Classifier tuning.

    Parameters
    ----------
    movement_threshold_m : float
        Minimum distance, in meters, each of the last two segments must
        exceed.
    min_speed_mps : float
        Minimum speed, in meters per second, each segment must exceed.
    max_gap : float
        Longest time gap, in seconds, a segment may span.
    recency_window : float
        Maximum age, in seconds, of the newest point.
    """

    movement_threshold_m: float = 20.0
    min_speed_mps: float = 0.4
    max_gap: float = 90.0
    recency_window: float = 300.0


def _now_ms() -> int:
    return int(time.time() * 1000)


def classify_motion(
    points: Sequence[LivePoint],
    *,
    now_ms: int,
    thresholds: MotionThresholds | None = None,
) -> MotionState:
    """Classify a device from its history.

    *points* need not be sorted.  Points without a GPS fix are ignored.
    """
    limits = thresholds or MotionThresholds()
    fixes = sorted((p for p in points if p.has_fix), key=lambda p: p.sort_key)
    if len(fixes) < 3:
        return MotionState.UNKNOWN

    p1, p2, p3 = fixes[-3:]

    if (now_ms - p3.timestamp_ms) / 1000.0 > limits.recency_window:
        return MotionState.STATIONARY

    dt12 = (p2.timestamp_ms - p1.timestamp_ms) / 1000.0
    dt23 = (p3.timestamp_ms - p2.timestamp_ms) / 1000.0
    if dt12 <= 0 or dt23 <= 0 or dt12 > limits.max_gap or dt23 > limits.max_gap:
        return MotionState.STATIONARY

    # has_fix guarantees the coordinates below are set.
    d12 = haversine_m(p1.lat, p1.lon, p2.lat, p2.lon)  # type: ignore[arg-type]
    d23 = haversine_m(p2.lat, p2.lon, p3.lat, p3.lon)  # type: ignore[arg-type]
    v12 = d12 / dt12
    v23 = d23 / dt23

    far_enough = d12 > limits.movement_threshold_m and d23 > limits.movement_threshold_m
    fast_enough = v12 > limits.min_speed_mps and v23 > limits.min_speed_mps
    return MotionState.MOVING if far_enough and fast_enough else MotionState.STATIONARY


class MotionClassifier:
    """:func:`classify_motion` bound to thresholds and a clock.

    Holds no state besides its settings; every call recomputes from the
    history it is given.
    """

    def __init__(
        self,
        thresholds: MotionThresholds | None = None,
        *,
        clock_ms: Callable[[], int] = _now_ms,
    ) -> None:
        self._thresholds = thresholds or MotionThresholds()
        self._clock_ms = clock_ms

    @property
    def thresholds(self) -> MotionThresholds:
        return self._thresholds

    def classify(self, points: Sequence[LivePoint]) -> MotionState:
        try:
            return classify_motion(points, now_ms=self._clock_ms(), thresholds=self._thresholds)
        except Exception:
            _logger.debug("Motion classification failed", exc_info=True)
            return MotionState.UNKNOWN
