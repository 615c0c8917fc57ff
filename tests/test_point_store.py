from __future__ import annotations

import itertools
import random
from datetime import UTC, datetime, timedelta

import pytest

from rangeherd.models.point import LivePoint
from rangeherd.state.merge import dedupe_points, merge_points
from rangeherd.state.store import PointStore

_BASE = datetime(2026, 1, 1, tzinfo=UTC)


def _point(seconds: float, lat: float | None = 32.95, lon: float | None = -96.38, **extra: object) -> LivePoint:
    payload: dict[str, object] = {
        "deviceId": extra.pop("device_id", "cow-1"),
        "ts": (_BASE + timedelta(seconds=seconds)).isoformat(),
        "lat": lat,
        "lon": lon,
    }
    payload.update(extra)
    return LivePoint.model_validate(payload)


def _stamps(points: tuple[LivePoint, ...] | list[LivePoint]) -> list[int]:
    return [p.timestamp_ms for p in points]


def test_merge_sorts_ascending() -> None:
    history = merge_points((), [_point(30), _point(10), _point(20)], window=60)
    assert _stamps(history) == sorted(_stamps(history))
    assert len(history) == 3


def test_merge_is_idempotent() -> None:
    batch = [_point(0), _point(60, lat=32.96), _point(120, lat=32.97)]
    once = merge_points((), batch, window=60)
    twice = merge_points(once, batch, window=60)
    assert twice == once


def test_duplicates_within_batch_collapse() -> None:
    history = merge_points((), [_point(0), _point(0), _point(0)], window=60)
    assert len(history) == 1


def test_first_seen_duplicate_wins() -> None:
    first = _point(0, batteryPct=90)
    later = _point(0, batteryPct=40)
    assert dedupe_points([first, later]) == [first]
    history = merge_points((first,), [later], window=60)
    assert history[0].battery_pct == 90.0


def test_same_timestamp_different_coordinates_are_distinct() -> None:
    history = merge_points((), [_point(0, lat=32.95), _point(0, lat=32.96)], window=60)
    assert len(history) == 2


def test_same_timestamp_different_frame_counter_are_distinct() -> None:
    history = merge_points((), [_point(0, fCnt=1), _point(0, fCnt=2)], window=60)
    assert len(history) == 2


def test_window_keeps_newest() -> None:
    points = [_point(i) for i in range(100)]
    history = merge_points((), points, window=60)
    assert len(history) == 60
    assert history[0].timestamp_ms == _point(40).timestamp_ms
    assert history[-1].timestamp_ms == _point(99).timestamp_ms


def test_late_old_point_drops_off_full_window() -> None:
    history = merge_points((), [_point(i) for i in range(10, 70)], window=60)
    merged = merge_points(history, [_point(0)], window=60)
    assert merged == history


def test_unparseable_timestamp_sorts_first() -> None:
    broken = LivePoint.model_validate({"deviceId": "cow-1", "ts": "garbage", "lat": 1.0, "lon": 1.0})
    history = merge_points((), [_point(10), broken], window=60)
    assert history[0] is broken
    assert history[0].timestamp_ms == 0


def test_no_fix_points_are_kept() -> None:
    history = merge_points((), [_point(0, lat=None, lon=None, batteryPct=55), _point(10)], window=60)
    assert len(history) == 2
    assert not history[0].has_fix


def test_merge_rejects_zero_window() -> None:
    with pytest.raises(ValueError):
        merge_points((), [], window=0)


def test_arrival_order_does_not_matter() -> None:
    points = [
        _point(0),
        _point(0, lat=32.951),
        _point(0, lat=None, lon=None),
        _point(30),
        _point(30),
        _point(60, fCnt=7),
        _point(60, fCnt=8),
        LivePoint.model_validate({"deviceId": "cow-1", "ts": "garbage"}),
    ]
    expected = merge_points((), points, window=5)

    for ordering in itertools.permutations(points[:6]):
        assert merge_points((), [*ordering, *points[6:]], window=5) == expected

    rng = random.Random(7)
    for _ in range(20):
        shuffled = points[:]
        rng.shuffle(shuffled)
        # Split into arbitrary batches: the batch boundaries must not matter either.
        cut = rng.randrange(len(shuffled))
        history = merge_points((), shuffled[:cut], window=5)
        history = merge_points(history, shuffled[cut:], window=5)
        assert [p.identity for p in history] == [p.identity for p in expected]


# ------------------------------------------------------------------
# PointStore
# ------------------------------------------------------------------


def test_store_merge_batch_and_queries() -> None:
    store = PointStore(window=3)
    store.merge_batch("cow-1", [_point(0), _point(10)])
    store.merge_batch("cow-1", [_point(20), _point(30)])

    assert len(store.history("cow-1")) == 3
    assert store.latest("cow-1") == _point(30)
    assert store.history("missing") == ()
    assert store.latest("missing") is None
    assert "cow-1" in store
    assert list(store) == ["cow-1"]
    assert len(store) == 1


def test_store_ignores_points_for_other_devices() -> None:
    store = PointStore()
    store.merge_batch("cow-1", [_point(0), _point(5, device_id="cow-2")])
    assert len(store.history("cow-1")) == 1
    assert "cow-2" not in store


def test_store_rejects_blank_device_id() -> None:
    with pytest.raises(ValueError):
        PointStore().merge_batch("  ", [_point(0)])


def test_snapshot_and_stream_share_merge_path() -> None:
    store = PointStore()
    store.merge_point(_point(60))
    store.replace_snapshot("cow-1", [_point(0), _point(60)])
    assert _stamps(store.history("cow-1")) == [_point(0).timestamp_ms, _point(60).timestamp_ms]


def test_store_merge_points_groups_devices() -> None:
    store = PointStore()
    merged = store.merge_points([_point(0), _point(0, device_id="cow-2"), _point(10)])
    assert set(merged) == {"cow-1", "cow-2"}
    assert len(store.history("cow-1")) == 2
    assert store.device_ids() == ["cow-1", "cow-2"]


def test_store_histories_are_immutable_snapshots() -> None:
    store = PointStore()
    store.merge_point(_point(0))
    snapshot = store.histories()
    store.merge_point(_point(10))
    assert len(snapshot["cow-1"]) == 1
    assert isinstance(store.history("cow-1"), tuple)


def test_store_listeners() -> None:
    store = PointStore()
    seen: list[str] = []

    def broken(_device_id: str) -> None:
        raise RuntimeError("listener bug")

    store.subscribe(broken)
    unsubscribe = store.subscribe(seen.append)
    store.merge_point(_point(0))
    unsubscribe()
    store.merge_point(_point(10))

    assert seen == ["cow-1"]
    assert len(store.history("cow-1")) == 2


def test_store_requires_positive_window() -> None:
    with pytest.raises(ValueError):
        PointStore(window=0)
