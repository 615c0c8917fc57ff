"""Pure derived views over the point store.

Nothing in here mutates state; every function can be called on each render.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence

from pydantic import BaseModel, ConfigDict, Field

from rangeherd._constants import DEFAULT_MAP_CENTER
from rangeherd.models.device import DeviceRow
from rangeherd.models.point import LivePoint
from rangeherd.models.status import ConnectionStatus, LoadStatus, MotionState

Coordinate = tuple[float, float]


class DeviceSummary(BaseModel):
    """One device list row: latest telemetry plus motion state."""

    model_config = ConfigDict(frozen=True)

    device_id: str
    name: str | None = None
    motion: MotionState = MotionState.UNKNOWN
    last_seen_ms: int | None = None
    lat: float | None = None
    lon: float | None = None
    battery_pct: float | None = None
    battery_v: float | None = None
    rssi: float | None = None
    snr: float | None = None
    temperature_c: float | None = None
    altitude_m: float | None = None
    point_count: int = 0

    @property
    def label(self) -> str:
        return self.name or self.device_id

    @property
    def position(self) -> Coordinate | None:
        if self.lat is None or self.lon is None:
            return None
        return (self.lat, self.lon)


class DashboardView(BaseModel):
    """Everything a renderer needs for one frame, computed in one pass."""

    model_config = ConfigDict(frozen=True)

    connection_status: ConnectionStatus
    load_status: LoadStatus
    map_center: Coordinate
    selected_device: str | None = None
    selected_route: list[Coordinate] = Field(default_factory=list)
    summaries: list[DeviceSummary] = Field(default_factory=list)


def _latest_fix(points: Sequence[LivePoint]) -> LivePoint | None:
    best: LivePoint | None = None
    for point in points:
        if not point.has_fix:
            continue
        if best is None or point.sort_key >= best.sort_key:
            best = point
    return best


def map_center(
    histories: Mapping[str, Sequence[LivePoint]],
    *,
    selected: str | None = None,
    focus: Coordinate | None = None,
    default: Coordinate = DEFAULT_MAP_CENTER,
) -> Coordinate:
    """Where the map should be centered.

    An explicit *focus* (e.g. a clicked alert) wins.  Otherwise the newest
    fix of the *selected* device, or of all devices when nothing is
    selected, and finally *default*.
    """
    if focus is not None:
        return focus

    if selected is not None:
        candidates: Sequence[LivePoint] = histories.get(selected, ())
    else:
        candidates = [point for points in histories.values() for point in points]

    latest = _latest_fix(candidates)
    if latest is None:
        return default
    return (latest.lat, latest.lon)  # type: ignore[return-value]


def route_for_device(points: Sequence[LivePoint]) -> list[Coordinate]:
    """Polyline of the device's fixes in time order; empty below two fixes."""
    route = [(p.lat, p.lon) for p in points if p.has_fix]
    if len(route) < 2:
        return []
    return route  # type: ignore[return-value]


def summary_row(
    device_id: str,
    points: Sequence[LivePoint],
    motion: MotionState,
    device: DeviceRow | None = None,
) -> DeviceSummary:
    last = points[-1] if points else None
    name = device.name if device is not None else None
    if last is None:
        # Known to the device list but nothing received yet.
        return DeviceSummary(
            device_id=device_id,
            name=name,
            motion=motion,
            lat=device.last_lat if device is not None else None,
            lon=device.last_lon if device is not None else None,
            battery_pct=device.battery_pct if device is not None else None,
        )
    return DeviceSummary(
        device_id=device_id,
        name=name,
        motion=motion,
        last_seen_ms=last.timestamp_ms or None,
        lat=last.lat,
        lon=last.lon,
        battery_pct=last.battery_pct,
        battery_v=last.battery_v,
        rssi=last.rssi,
        snr=last.snr,
        temperature_c=last.temperature_c,
        altitude_m=last.altitude_m,
        point_count=len(points),
    )


def build_view(
    histories: Mapping[str, Sequence[LivePoint]],
    motion: Mapping[str, MotionState],
    *,
    connection_status: ConnectionStatus,
    load_status: LoadStatus,
    devices: Mapping[str, DeviceRow] | None = None,
    selected: str | None = None,
    focus: Coordinate | None = None,
) -> DashboardView:
    known = devices or {}
    device_ids = list(histories)
    device_ids.extend(device_id for device_id in known if device_id not in histories)

    summaries = [
        summary_row(
            device_id,
            histories.get(device_id, ()),
            motion.get(device_id, MotionState.UNKNOWN),
            known.get(device_id),
        )
        for device_id in device_ids
    ]
    route = route_for_device(histories.get(selected, ())) if selected is not None else []
    return DashboardView(
        connection_status=connection_status,
        load_status=load_status,
        map_center=map_center(histories, selected=selected, focus=focus),
        selected_device=selected,
        selected_route=route,
        summaries=summaries,
    )
