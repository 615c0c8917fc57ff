from __future__ import annotations

import asyncio
import json
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from typing import Any

import aiohttp
import pytest

from rangeherd.config import HerdConfig
from rangeherd.dashboard import HerdDashboard
from rangeherd.exceptions import HerdAuthenticationError, HerdTransportError
from rangeherd.models.alert import AlertRecord
from rangeherd.models.status import ConnectionStatus, LoadStatus, MotionState
from rangeherd.session import Session
from rangeherd.state.views import DashboardView

pytestmark = pytest.mark.e2e

_BASE = datetime(2026, 1, 1, tzinfo=UTC)
_NOW_MS = int((_BASE + timedelta(seconds=130)).timestamp() * 1000)


def _row(device_id: str, seconds: float, lat: float | None, lon: float | None = -96.38, **extra: Any) -> dict[str, Any]:
    return {
        "deviceId": device_id,
        "ts": (_BASE + timedelta(seconds=seconds)).isoformat(),
        "lat": lat,
        "lon": lon,
        **extra,
    }


@dataclass
class FakeHerdBackend:
    devices: list[dict[str, Any]] = field(
        default_factory=lambda: [
            {"id": "cow-1", "name": "Bessie", "batteryPct": 91},
            {"id": "cow-2", "name": "Daisy"},
            {"id": "cow-3", "name": "Clover"},
        ]
    )
    latest: list[dict[str, Any]] = field(
        default_factory=lambda: [
            _row("cow-1", 0, 32.9500),
            _row("cow-1", 60, 32.9503),
            _row("cow-1", 120, 32.9506),
            _row("cow-2", 100, 32.9600, batteryPct=40),
            {"lat": 1.0},
        ]
    )
    geofences: list[dict[str, Any]] = field(
        default_factory=lambda: [{"id": "g-1", "name": "North", "type": "circle", "centerLat": 32.95, "radiusM": 300}]
    )
    alerts: list[dict[str, Any]] = field(
        default_factory=lambda: [
            {"id": "a-1", "type": "geofence_exit", "message": "Bessie left North", "lat": 32.97, "lon": -96.4},
            {"id": "a-2", "type": "geofence_enter", "message": "Daisy entered North", "isRead": True},
        ]
    )
    calls: dict[str, int] = field(default_factory=dict)
    unauthorized: set[str] = field(default_factory=set)
    failing: set[str] = field(default_factory=set)
    gate: asyncio.Event | None = None

    async def request_json(self, transport: Any, method: str, endpoint: str, params: Any) -> Any:
        self.calls[endpoint] = self.calls.get(endpoint, 0) + 1
        # The server reads its rows when the request arrives.
        latest = list(self.latest)
        if endpoint == "/api/live/latest" and self.gate is not None:
            await self.gate.wait()
        if endpoint in self.unauthorized:
            transport._escalate_unauthorized()  # noqa: SLF001
            raise HerdAuthenticationError(f"HTTP 401 from {endpoint}", status_code=401, endpoint=endpoint)
        if endpoint in self.failing:
            raise HerdTransportError(f"HTTP 500 from {endpoint}", status_code=500, endpoint=endpoint)

        if endpoint == "/api/devices":
            return self.devices
        if endpoint == "/api/live/latest":
            return latest
        if endpoint == "/api/geofences":
            return self.geofences
        if endpoint == "/api/alerts":
            if params and params.get("unreadOnly") == "true":
                return [a for a in self.alerts if not a.get("isRead")]
            return self.alerts
        if endpoint.startswith("/api/alerts/"):
            return None
        raise AssertionError(f"Unexpected endpoint in fake backend: {method} {endpoint}")


class FakeWebSocket:
    def __init__(self) -> None:
        self._queue: asyncio.Queue[str | None] = asyncio.Queue()
        self.closed = False
        self.close_code: int | None = None

    def feed(self, frame: dict[str, Any]) -> None:
        self._queue.put_nowait(json.dumps(frame))

    def __aiter__(self) -> FakeWebSocket:
        return self

    async def __anext__(self) -> Any:
        if self.closed:
            raise StopAsyncIteration
        data = await self._queue.get()
        if data is None:
            raise StopAsyncIteration
        return _Msg(aiohttp.WSMsgType.TEXT, data)

    async def close(self) -> bool:
        if not self.closed:
            self.closed = True
            self.close_code = 1000
            self._queue.put_nowait(None)
        return True

    def exception(self) -> BaseException | None:
        return None


@dataclass
class _Msg:
    type: aiohttp.WSMsgType
    data: str


@dataclass
class FakeStreamSession:
    sockets: list[FakeWebSocket] = field(default_factory=list)

    async def ws_connect(self, url: str, *, headers: dict[str, str], heartbeat: float | None = None) -> FakeWebSocket:
        ws = FakeWebSocket()
        self.sockets.append(ws)
        return ws


@dataclass
class Host:
    views: list[DashboardView] = field(default_factory=list)
    alerts: list[AlertRecord] = field(default_factory=list)
    statuses: list[ConnectionStatus] = field(default_factory=list)
    logouts: int = 0

    def on_logout(self) -> None:
        self.logouts += 1


@pytest.fixture
def backend(monkeypatch: pytest.MonkeyPatch) -> FakeHerdBackend:
    fake_backend = FakeHerdBackend()

    async def fake_request_json(self: Any, method: str, endpoint: str, *, params: Any = None) -> Any:
        return await fake_backend.request_json(self, method, endpoint, params)

    monkeypatch.setattr("rangeherd._transport.HttpTransport.request_json", fake_request_json)
    return fake_backend


def _config(**overrides: Any) -> HerdConfig:
    values: dict[str, Any] = {
        "api_url": "http://ranch.test",
        "poll_interval": 0,
        "reconnect_base_delay": 0.001,
        "reconnect_max_delay": 0.001,
        "reconnect_max_retries": 2,
    }
    values.update(overrides)
    return HerdConfig(**values)


def _dashboard(config: HerdConfig, host: Host, stream: FakeStreamSession | None = None) -> HerdDashboard:
    return HerdDashboard(
        config,
        Session.restore("tok-123"),
        http_session=stream or FakeStreamSession(),  # type: ignore[arg-type]
        on_change=host.views.append,
        on_alert=host.alerts.append,
        on_status=host.statuses.append,
        on_logout=host.on_logout,
        clock_ms=lambda: _NOW_MS,
    )


async def _until(predicate: Callable[[], bool], timeout: float = 2.0) -> None:
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not met before timeout")
        await asyncio.sleep(0.001)


@pytest.mark.asyncio
async def test_start_loads_snapshot_and_projects_views(backend: FakeHerdBackend) -> None:
    host = Host()
    async with _dashboard(_config(), host) as dashboard:
        await dashboard.start()
        await _until(lambda: dashboard.connection_status is ConnectionStatus.CONNECTED)

        assert dashboard.load_status is LoadStatus.READY
        assert dashboard.store.device_ids() == ["cow-1", "cow-2"]
        assert len(dashboard.store.history("cow-1")) == 3
        assert [g.name for g in dashboard.geofences] == ["North"]
        assert dashboard.motion_for("cow-1") is MotionState.MOVING
        assert dashboard.motion_for("cow-2") is MotionState.UNKNOWN

        view = dashboard.view()
        assert [(row.label, row.motion) for row in view.summaries] == [
            ("Bessie", MotionState.MOVING),
            ("Daisy", MotionState.UNKNOWN),
            ("Clover", MotionState.UNKNOWN),
        ]
        assert view.map_center == (32.9506, -96.38)
        assert host.views
        assert host.views[-1].connection_status is ConnectionStatus.CONNECTED
        assert host.statuses[:2] == [ConnectionStatus.CONNECTING, ConnectionStatus.CONNECTED]


@pytest.mark.asyncio
async def test_stream_points_share_merge_path_with_snapshots(backend: FakeHerdBackend) -> None:
    host = Host()
    stream = FakeStreamSession()
    async with _dashboard(_config(), host, stream) as dashboard:
        await dashboard.start()
        await _until(lambda: dashboard.connection_status is ConnectionStatus.CONNECTED)
        ws = stream.sockets[-1]

        # Replayed snapshot point plus one new point.
        ws.feed({"type": "uplink", "data": _row("cow-1", 120, 32.9506)})
        ws.feed({"type": "live_point", "data": _row("cow-2", 125, 32.9601)})
        await _until(lambda: len(dashboard.store.history("cow-2")) == 2)

        assert len(dashboard.store.history("cow-1")) == 3
        await dashboard.refresh()
        assert len(dashboard.store.history("cow-2")) == 2
        assert dashboard.view().map_center == (32.9601, -96.38)


@pytest.mark.asyncio
async def test_alert_frames_reach_host_and_focus_map(backend: FakeHerdBackend) -> None:
    host = Host()
    stream = FakeStreamSession()
    async with _dashboard(_config(), host, stream) as dashboard:
        await dashboard.start()
        await _until(lambda: dashboard.connection_status is ConnectionStatus.CONNECTED)

        frame = {"type": "alert", "data": {"id": "a-9", "type": "geofence_exit", "lat": 33.0, "lon": -97.0}}
        stream.sockets[-1].feed(frame)
        stream.sockets[-1].feed(frame)
        await _until(lambda: len(host.alerts) == 2)

        assert [a.id for a in dashboard.alerts] == ["a-9"]
        dashboard.focus_alert(host.alerts[0])
        assert dashboard.map_center() == (33.0, -97.0)
        assert host.views[-1].map_center == (33.0, -97.0)
        dashboard.clear_focus()
        assert dashboard.map_center() == (32.9506, -96.38)


@pytest.mark.asyncio
async def test_tick_frame_triggers_refresh(backend: FakeHerdBackend) -> None:
    host = Host()
    stream = FakeStreamSession()
    async with _dashboard(_config(), host, stream) as dashboard:
        await dashboard.start()
        await _until(lambda: dashboard.connection_status is ConnectionStatus.CONNECTED)
        assert backend.calls["/api/live/latest"] == 1

        backend.latest.append(_row("cow-3", 110, 32.9700))
        stream.sockets[-1].feed({"type": "tick"})
        await _until(lambda: "cow-3" in dashboard.store)
        assert backend.calls["/api/live/latest"] == 2


@pytest.mark.asyncio
async def test_selection_drives_route_and_center(backend: FakeHerdBackend) -> None:
    host = Host()
    async with _dashboard(_config(stream_enabled=False), host) as dashboard:
        await dashboard.start()
        dashboard.select_device("cow-2")

        view = host.views[-1]
        assert view.selected_device == "cow-2"
        assert view.selected_route == []
        assert view.map_center == (32.96, -96.38)
        assert dashboard.route_for_device("cow-1") == [(32.95, -96.38), (32.9503, -96.38), (32.9506, -96.38)]
        assert dashboard.summary_row("cow-2").battery_pct == 40.0
        assert dashboard.connection_status is ConnectionStatus.CLOSED


@pytest.mark.asyncio
async def test_unauthorized_initial_load_forces_logout(backend: FakeHerdBackend) -> None:
    backend.unauthorized = {"/api/devices"}
    host = Host()
    async with _dashboard(_config(stream_enabled=False, poll_interval=0.01), host) as dashboard:
        with pytest.raises(HerdAuthenticationError):
            await dashboard.start()
        await asyncio.sleep(0.03)

    assert host.logouts == 1
    assert backend.calls["/api/devices"] == 1


@pytest.mark.asyncio
async def test_rest_failure_sets_error_status_and_poll_recovers(backend: FakeHerdBackend) -> None:
    backend.failing = {"/api/live/latest"}
    host = Host()
    async with _dashboard(_config(stream_enabled=False, poll_interval=0.01), host) as dashboard:
        await dashboard.start()
        assert dashboard.load_status is LoadStatus.ERROR
        assert host.views[-1].load_status is LoadStatus.ERROR

        backend.failing = set()
        await _until(lambda: dashboard.load_status is LoadStatus.READY)
        assert len(dashboard.store) == 2


@pytest.mark.asyncio
async def test_polling_stops_after_close(backend: FakeHerdBackend) -> None:
    host = Host()
    async with _dashboard(_config(stream_enabled=False, poll_interval=0.01), host) as dashboard:
        await dashboard.start()
        await _until(lambda: backend.calls["/api/devices"] >= 3)
        await dashboard.close()
        calls = backend.calls["/api/devices"]
        await asyncio.sleep(0.05)
        assert backend.calls["/api/devices"] == calls
        assert not dashboard.is_running


@pytest.mark.asyncio
async def test_late_rest_response_after_close_is_discarded(backend: FakeHerdBackend) -> None:
    host = Host()
    async with _dashboard(_config(stream_enabled=False), host) as dashboard:
        await dashboard.start()
        history = dashboard.store.history("cow-1")

        backend.gate = asyncio.Event()
        backend.latest.append(_row("cow-1", 125, 32.9509))
        refresh = asyncio.create_task(dashboard.refresh())
        await _until(lambda: backend.calls["/api/live/latest"] == 2)

        views_before = len(host.views)
        await dashboard.close()
        backend.gate.set()
        await refresh

        assert dashboard.store.history("cow-1") == history
        assert len(host.views) == views_before


@pytest.mark.asyncio
async def test_close_stops_stream_callbacks(backend: FakeHerdBackend) -> None:
    host = Host()
    stream = FakeStreamSession()
    async with _dashboard(_config(), host, stream) as dashboard:
        await dashboard.start()
        await _until(lambda: dashboard.connection_status is ConnectionStatus.CONNECTED)
        ws = stream.sockets[-1]
        await dashboard.close()
        statuses = list(host.statuses)

        ws.feed({"type": "uplink", "data": _row("cow-9", 125, 32.0)})
        await asyncio.sleep(0.02)

        assert ws.closed
        assert "cow-9" not in dashboard.store
        assert host.statuses == statuses
        assert dashboard.connection_status is ConnectionStatus.CLOSED


@pytest.mark.asyncio
async def test_alert_read_state(backend: FakeHerdBackend) -> None:
    host = Host()
    async with _dashboard(_config(stream_enabled=False), host) as dashboard:
        await dashboard.start()
        unread = await dashboard.get_alerts(unread_only=True)
        assert [a.id for a in unread] == ["a-1"]

        await dashboard.get_alerts()
        assert dashboard.unread_alerts == 1

        backend.failing = {"/api/alerts/a-1/read"}
        with pytest.raises(HerdTransportError):
            await dashboard.mark_alert_read("a-1")
        assert dashboard.unread_alerts == 1

        backend.failing = set()
        await dashboard.mark_alert_read("a-1")
        assert dashboard.unread_alerts == 0

        backend.alerts.append({"id": "a-3", "type": "geofence_exit"})
        await dashboard.get_alerts()
        await dashboard.mark_all_alerts_read()
        assert dashboard.unread_alerts == 0
        assert backend.calls["/api/alerts/read-all"] == 1


@pytest.mark.asyncio
async def test_refresh_requested_mid_refresh_is_not_lost(backend: FakeHerdBackend) -> None:
    host = Host()
    stream = FakeStreamSession()
    async with _dashboard(_config(), host, stream) as dashboard:
        await dashboard.start()
        await _until(lambda: dashboard.connection_status is ConnectionStatus.CONNECTED)
        ws = stream.sockets[-1]

        backend.gate = asyncio.Event()
        ws.feed({"type": "tick"})
        await _until(lambda: backend.calls["/api/live/latest"] == 2)

        # Lands after the in-flight refresh already read the snapshot.
        backend.latest.append(_row("cow-3", 125, 32.9700))
        ws.feed({"type": "tick"})
        ws.feed({"type": "tick"})
        await _until(lambda: dashboard._refresh_pending)  # noqa: SLF001
        backend.gate.set()

        await _until(lambda: "cow-3" in dashboard.store)
        await asyncio.sleep(0.01)
        assert backend.calls["/api/live/latest"] == 3


@pytest.mark.asyncio
async def test_failed_mark_read_restores_previous_state(backend: FakeHerdBackend) -> None:
    host = Host()
    async with _dashboard(_config(stream_enabled=False), host) as dashboard:
        await dashboard.start()
        await dashboard.get_alerts()

        backend.failing = {"/api/alerts/a-2/read"}
        with pytest.raises(HerdTransportError):
            await dashboard.mark_alert_read("a-2")

        assert [(a.id, a.is_read) for a in dashboard.alerts] == [("a-1", False), ("a-2", True)]


@pytest.mark.asyncio
async def test_unauthorized_after_close_is_ignored(backend: FakeHerdBackend) -> None:
    host = Host()
    async with _dashboard(_config(stream_enabled=False), host) as dashboard:
        await dashboard.start()
        await dashboard.close()

        backend.unauthorized = {"/api/devices"}
        with pytest.raises(HerdAuthenticationError):
            await dashboard.refresh()

        assert host.logouts == 0
        assert dashboard._logged_out is False  # noqa: SLF001
