"""High-level async dashboard session for the cattle-tracking backend."""

from __future__ import annotations

import asyncio
import contextlib
import logging
import time
from collections.abc import Callable
from typing import Any

import aiohttp

from rangeherd._api import alerts as _alerts_api
from rangeherd._api.devices import fetch_devices
from rangeherd._api.geofences import fetch_geofences
from rangeherd._api.live import fetch_latest_points
from rangeherd._stream import LiveStream
from rangeherd._transport import HttpTransport
from rangeherd.config import HerdConfig
from rangeherd.exceptions import HerdAuthenticationError, HerdError
from rangeherd.models.alert import AlertRecord
from rangeherd.models.device import DeviceRow
from rangeherd.models.geofence import Geofence
from rangeherd.models.point import LivePoint
from rangeherd.models.status import ConnectionStatus, LoadStatus, MotionState
from rangeherd.reconnect import BackoffPolicy
from rangeherd.session import Session
from rangeherd.state import views as _views
from rangeherd.state.motion import MotionClassifier
from rangeherd.state.store import PointStore

_logger = logging.getLogger(__name__)

_MAX_ALERTS = 200


def _now_ms() -> int:
    """Current epoch timestamp in milliseconds."""
    return int(time.time() * 1000)


class HerdDashboard:
    """Live view of a ranch's tracking devices.

    Owns the REST transport, the point store, the live stream and the
    polling task.  REST snapshots and streamed points go through the same
    store merge; after every merge the dashboard recomputes motion and the
    derived views and hands a fresh :class:`DashboardView` to *on_change*.

    Usage::

        session = Session.restore(token)
        async with HerdDashboard(config, session, on_change=render) as dashboard:
            await dashboard.start()
            ...
    """

    def __init__(
        self,
        config: HerdConfig,
        session: Session,
        *,
        http_session: aiohttp.ClientSession | None = None,
        on_change: Callable[[_views.DashboardView], None] | None = None,
        on_alert: Callable[[AlertRecord], None] | None = None,
        on_status: Callable[[ConnectionStatus], None] | None = None,
        on_logout: Callable[[], None] | None = None,
        clock_ms: Callable[[], int] = _now_ms,
    ) -> None:
        self._config = config
        self._session = session
        self._external_session = http_session is not None
        self._http_session = http_session
        self._transport: HttpTransport | None = None
        self._stream: LiveStream | None = None
        self._poll_task: asyncio.Task[None] | None = None
        self._refresh_task: asyncio.Task[None] | None = None
        self._refresh_pending = False

        self._on_change = on_change
        self._on_alert = on_alert
        self._on_status = on_status
        self._on_logout = on_logout

        self._store = PointStore(window=config.history_window)
        self._classifier = MotionClassifier(config.motion, clock_ms=clock_ms)
        self._store.subscribe(self._on_store_changed)

        self._alive = False
        self._logged_out = False
        self._load_status = LoadStatus.LOADING
        self._connection_status = ConnectionStatus.CLOSED
        self._devices: dict[str, DeviceRow] = {}
        self._geofences: list[Geofence] = []
        self._alerts: list[AlertRecord] = []
        self._selected: str | None = None
        self._focus: _views.Coordinate | None = None

    # ------------------------------------------------------------------
    # Context manager lifecycle
    # ------------------------------------------------------------------

    async def __aenter__(self) -> HerdDashboard:
        if self._http_session is None:
            self._http_session = aiohttp.ClientSession()
        self._transport = HttpTransport(
            self._config,
            self._http_session,
            token=self._session.token,
            on_unauthorized=self._handle_unauthorized,
        )
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self.close()
        if not self._external_session and self._http_session is not None:
            await self._http_session.close()
            self._http_session = None
        self._transport = None

    def _require_transport(self) -> HttpTransport:
        if self._transport is None:
            raise HerdError("Dashboard not initialized. Use 'async with HerdDashboard(...) as dashboard:'")
        return self._transport

    async def start(self) -> None:
        """Open the live stream, load the initial snapshot and start polling.

        A 401 during the initial load raises :class:`HerdAuthenticationError`
        (after *on_logout* has been called).  Other load failures only set
        the load status to ``error``; the next poll retries.
        """
        self._require_transport()
        if self._alive:
            return
        self._alive = True
        self._logged_out = False
        self._load_status = LoadStatus.LOADING

        if self._config.stream_enabled:
            self._start_stream()

        try:
            await self.refresh()
        except HerdAuthenticationError:
            raise
        except HerdError as exc:
            _logger.debug("Initial load failed: %s", exc)

        if self._alive:
            try:
                await self.get_geofences()
            except HerdAuthenticationError:
                raise
            except HerdError as exc:
                _logger.debug("Geofence load failed: %s", exc)

        if self._alive and self._config.poll_interval > 0:
            self._poll_task = asyncio.get_running_loop().create_task(self._poll_loop())

    async def close(self) -> None:
        """Tear down the stream and the polling task.

        Late REST responses and stream callbacks are discarded afterwards.
        """
        self._alive = False
        stream = self._stream
        self._stream = None
        tasks = [task for task in (self._poll_task, self._refresh_task) if task is not None]
        self._poll_task = None
        self._refresh_task = None
        self._refresh_pending = False
        for task in tasks:
            task.cancel()

        if stream is not None:
            await stream.close()
        current = asyncio.current_task()
        for task in tasks:
            if task is current:
                continue
            with contextlib.suppress(asyncio.CancelledError):
                await task
        self._connection_status = ConnectionStatus.CLOSED

    @property
    def is_running(self) -> bool:
        return self._alive

    # ------------------------------------------------------------------
    # Live stream
    # ------------------------------------------------------------------

    def _start_stream(self) -> None:
        assert self._http_session is not None  # noqa: S101
        self._stream = LiveStream(
            url=self._config.ws_url,
            http_session=self._http_session,
            token=self._session.token,
            on_point=self._on_stream_point,
            on_alert=self._on_stream_alert,
            on_status=self._on_stream_status,
            on_refresh=self._schedule_refresh,
            policy=BackoffPolicy(
                base_delay=self._config.reconnect_base_delay,
                max_delay=self._config.reconnect_max_delay,
                max_retries=self._config.reconnect_max_retries,
            ),
            heartbeat=self._config.ws_heartbeat,
            logger=_logger,
        )
        self._stream.connect()

    def reconnect(self) -> None:
        """Restart the live stream with a fresh retry budget."""
        if not self._alive or not self._config.stream_enabled:
            return
        if self._stream is None:
            self._start_stream()
        else:
            self._stream.reconnect()

    def _on_stream_point(self, point: LivePoint) -> None:
        if not self._alive:
            return
        self._store.merge_point(point)

    def _on_stream_alert(self, alert: AlertRecord) -> None:
        if not self._alive:
            return
        self._remember_alert(alert)
        if self._on_alert is not None:
            self._call(self._on_alert, alert)

    def _on_stream_status(self, status: ConnectionStatus) -> None:
        if not self._alive:
            return
        self._connection_status = status
        if self._on_status is not None:
            self._call(self._on_status, status)
        self._publish()

    def _schedule_refresh(self) -> None:
        """Coalesce stream refresh requests.

        A request arriving while a refresh is in flight is remembered and
        served by one more refresh once the current one finishes.
        """
        if not self._alive or self._logged_out:
            return
        if self._refresh_task is not None and not self._refresh_task.done():
            self._refresh_pending = True
            return
        self._refresh_pending = False
        self._refresh_task = asyncio.get_running_loop().create_task(self._refresh_quietly())

    async def _refresh_quietly(self) -> None:
        while True:
            self._refresh_pending = False
            try:
                await self.refresh()
            except HerdError as exc:
                _logger.debug("Stream-triggered refresh failed: %s", exc)
            if not (self._refresh_pending and self._alive and not self._logged_out):
                return

    # ------------------------------------------------------------------
    # REST snapshots
    # ------------------------------------------------------------------

    async def refresh(self) -> None:
        """Reload the device list and the latest points.

        Raises the underlying :class:`HerdError` after recording the
        ``error`` load status.
        """
        transport = self._require_transport()
        try:
            devices = await fetch_devices(transport)
            grouped = await fetch_latest_points(transport)
        except HerdError:
            if self._alive:
                self._set_load_status(LoadStatus.ERROR)
            raise

        if not self._alive:
            _logger.debug("Discarding REST snapshot that arrived after teardown")
            return

        self._devices = {device.id: device for device in devices}
        for device_id, points in grouped.items():
            self._store.replace_snapshot(device_id, points)
        self._set_load_status(LoadStatus.READY)

    async def _poll_loop(self) -> None:
        interval = self._config.poll_interval
        while self._alive:
            await asyncio.sleep(interval)
            if not self._alive or self._logged_out:
                return
            try:
                await self.refresh()
            except HerdAuthenticationError:
                _logger.warning("Polling stopped: session token rejected")
                return
            except HerdError as exc:
                _logger.debug("Poll failed, retrying next interval: %s", exc)

    async def get_geofences(self) -> list[Geofence]:
        geofences = await fetch_geofences(self._require_transport())
        if self._alive:
            self._geofences = geofences
        return geofences

    async def get_alerts(self, *, unread_only: bool = False) -> list[AlertRecord]:
        alerts = await _alerts_api.fetch_alerts(self._require_transport(), unread_only=unread_only)
        if self._alive:
            self._alerts = alerts[:_MAX_ALERTS]
        return alerts

    async def mark_alert_read(self, alert_id: str) -> None:
        """Mark one alert read, optimistically; reverted if the call fails."""
        previous = next((alert.is_read for alert in self._alerts if alert.id == alert_id), None)
        self._set_alert_read(alert_id, True)
        try:
            await _alerts_api.mark_alert_read(self._require_transport(), alert_id)
        except HerdError:
            if previous is not None:
                self._set_alert_read(alert_id, previous)
            raise

    async def mark_all_alerts_read(self) -> None:
        previous = list(self._alerts)
        self._alerts = [alert.model_copy(update={"is_read": True}) for alert in self._alerts]
        try:
            await _alerts_api.mark_all_alerts_read(self._require_transport())
        except HerdError:
            self._alerts = previous
            raise

    def _set_alert_read(self, alert_id: str, is_read: bool) -> None:
        if not self._alive:
            return
        self._alerts = [
            alert.model_copy(update={"is_read": is_read}) if alert.id == alert_id else alert for alert in self._alerts
        ]

    def _remember_alert(self, alert: AlertRecord) -> None:
        if any(existing.id == alert.id for existing in self._alerts):
            return
        self._alerts = [alert, *self._alerts][:_MAX_ALERTS]

    def _handle_unauthorized(self) -> None:
        if not self._alive or self._logged_out:
            return
        self._logged_out = True
        if self._on_logout is not None:
            self._call(self._on_logout)

    # ------------------------------------------------------------------
    # Selection and focus
    # ------------------------------------------------------------------

    def select_device(self, device_id: str | None) -> None:
        """Focus the map and the route on one device (``None`` clears)."""
        self._selected = device_id
        self._publish()

    def focus_on(self, lat: float, lon: float) -> None:
        """Pin the map center, e.g. on a clicked alert."""
        self._focus = (lat, lon)
        self._publish()

    def focus_alert(self, alert: AlertRecord) -> None:
        location = alert.location
        if location is not None:
            self.focus_on(*location)

    def clear_focus(self) -> None:
        self._focus = None
        self._publish()

    # ------------------------------------------------------------------
    # Derived views
    # ------------------------------------------------------------------

    @property
    def store(self) -> PointStore:
        return self._store

    @property
    def connection_status(self) -> ConnectionStatus:
        return self._connection_status

    @property
    def load_status(self) -> LoadStatus:
        return self._load_status

    @property
    def devices(self) -> dict[str, DeviceRow]:
        return dict(self._devices)

    @property
    def geofences(self) -> list[Geofence]:
        return list(self._geofences)

    @property
    def alerts(self) -> list[AlertRecord]:
        return list(self._alerts)

    @property
    def unread_alerts(self) -> int:
        return sum(1 for alert in self._alerts if not alert.is_read)

    @property
    def selected_device(self) -> str | None:
        return self._selected

    def motion_for(self, device_id: str) -> MotionState:
        return self._classifier.classify(self._store.history(device_id))

    def motion_by_device(self) -> dict[str, MotionState]:
        return {device_id: self.motion_for(device_id) for device_id in self._store.device_ids()}

    def map_center(self) -> _views.Coordinate:
        return _views.map_center(self._store.histories(), selected=self._selected, focus=self._focus)

    def route_for_device(self, device_id: str) -> list[_views.Coordinate]:
        return _views.route_for_device(self._store.history(device_id))

    def summary_row(self, device_id: str) -> _views.DeviceSummary:
        return _views.summary_row(
            device_id,
            self._store.history(device_id),
            self.motion_for(device_id),
            self._devices.get(device_id),
        )

    def view(self) -> _views.DashboardView:
        return _views.build_view(
            self._store.histories(),
            self.motion_by_device(),
            connection_status=self._connection_status,
            load_status=self._load_status,
            devices=self._devices,
            selected=self._selected,
            focus=self._focus,
        )

    # ------------------------------------------------------------------
    # Change propagation
    # ------------------------------------------------------------------

    def _on_store_changed(self, _device_id: str) -> None:
        self._publish()

    def _set_load_status(self, status: LoadStatus) -> None:
        if status is self._load_status:
            return
        self._load_status = status
        self._publish()

    def _publish(self) -> None:
        if not self._alive or self._on_change is None:
            return
        try:
            view = self.view()
        except Exception:
            _logger.debug("View projection failed", exc_info=True)
            return
        self._call(self._on_change, view)

    def _call(self, callback: Callable[..., None], *args: Any) -> None:
        try:
            callback(*args)
        except Exception:
            _logger.debug("Dashboard callback %r failed", callback, exc_info=True)
