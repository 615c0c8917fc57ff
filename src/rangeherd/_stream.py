"""Live telemetry stream: WebSocket runtime, frame parsing and reconnects."""

from __future__ import annotations

import asyncio
import contextlib
import json
import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

import aiohttp

from rangeherd._constants import ALERT_FRAME_TYPE, TELEMETRY_FRAME_TYPES, TICK_FRAME_TYPE, USER_AGENT
from rangeherd.ingestion.rows import parse_row, parse_rows
from rangeherd.models.alert import AlertRecord
from rangeherd.models.point import LivePoint
from rangeherd.models.status import ConnectionStatus
from rangeherd.reconnect import BackoffPolicy, ReconnectState, StreamEvent, transition


@dataclass(frozen=True)
class StreamFrame:
    """One decoded stream message envelope."""

    type: str
    data: Any
    raw: dict[str, Any]


def decode_frame(payload: str | bytes) -> StreamFrame:
    """Parse a raw frame into its ``{"type": ..., "data": ...}`` envelope.

    Raises :class:`ValueError` for anything that is not a JSON object with a
    string ``type``.
    """
    text = payload.decode("utf-8") if isinstance(payload, (bytes, bytearray)) else payload
    parsed = json.loads(text)
    if not isinstance(parsed, dict):
        raise ValueError("frame is not a JSON object")
    frame_type = parsed.get("type")
    if not isinstance(frame_type, str) or not frame_type.strip():
        raise ValueError("frame has no type")
    return StreamFrame(type=frame_type.strip().lower(), data=parsed.get("data"), raw=parsed)


class LiveStream:
    """Single logical WebSocket connection with automatic reconnect.

    Owns at most one live socket and at most one pending reconnect timer.
    Every socket attempt is tagged with a generation number; callbacks from
    a superseded attempt are ignored, so after :meth:`close` nothing reaches
    the host callbacks anymore.

    Transport failures never raise into the host: they only move the status
    to ``reconnecting`` or, once the retry budget is spent, ``closed``.
    """

    def __init__(
        self,
        *,
        url: str,
        http_session: aiohttp.ClientSession,
        token: str,
        on_point: Callable[[LivePoint], None],
        on_alert: Callable[[AlertRecord], None] | None = None,
        on_status: Callable[[ConnectionStatus], None] | None = None,
        on_refresh: Callable[[], None] | None = None,
        policy: BackoffPolicy | None = None,
        heartbeat: float | None = 30.0,
        logger: logging.Logger | None = None,
    ) -> None:
        self._url = url
        self._http = http_session
        self._token = token
        self._on_point = on_point
        self._on_alert = on_alert
        self._on_status = on_status
        self._on_refresh = on_refresh
        self._policy = policy or BackoffPolicy()
        self._heartbeat = heartbeat
        self._logger = logger or logging.getLogger(__name__)

        self._loop: asyncio.AbstractEventLoop | None = None
        self._state = ReconnectState()
        self._generation = 0
        self._ws: aiohttp.ClientWebSocketResponse | None = None
        self._task: asyncio.Task[None] | None = None
        self._timer: asyncio.TimerHandle | None = None
        self._closing: set[asyncio.Task[Any]] = set()
        self._torn_down = False

    # ------------------------------------------------------------------
    # Public surface
    # ------------------------------------------------------------------

    @property
    def status(self) -> ConnectionStatus:
        return self._state.status

    @property
    def retries(self) -> int:
        return self._state.retries

    @property
    def is_running(self) -> bool:
        return not self._torn_down and self._state.status is not ConnectionStatus.CLOSED

    @property
    def has_pending_retry(self) -> bool:
        return self._timer is not None

    def connect(self) -> None:
        """Start from scratch: drop any connection/timer, reset retries, open.

        Must be called from inside the running event loop.
        """
        self._loop = asyncio.get_running_loop()
        self._torn_down = False
        self._invalidate()
        self._apply(StreamEvent.START)

    reconnect = connect

    async def close(self) -> None:
        """Tear down: cancel the timer and the receive task, close the socket.

        Everything that stops callbacks happens before the first ``await``.
        """
        self._torn_down = True
        ws = self._ws
        task = self._task
        self._invalidate()
        self._state = transition(self._state, StreamEvent.STOP, self._policy).state

        if task is not None and not task.done():
            with contextlib.suppress(asyncio.CancelledError):
                await task
        if ws is not None and not ws.closed:
            try:
                await ws.close()
            except Exception:
                self._logger.debug("Live stream socket close failed", exc_info=True)
        if self._closing:
            await asyncio.gather(*self._closing, return_exceptions=True)
        self._logger.debug("Live stream torn down")

    # ------------------------------------------------------------------
    # State machine plumbing
    # ------------------------------------------------------------------

    def _invalidate(self) -> None:
        """Make every in-flight socket, task and timer stale."""
        self._generation += 1
        timer = self._timer
        self._timer = None
        if timer is not None:
            timer.cancel()
        task = self._task
        self._task = None
        if task is not None and not task.done():
            task.cancel()
        ws = self._ws
        self._ws = None
        if ws is not None and not ws.closed and self._loop is not None and not self._torn_down:
            closing = self._loop.create_task(ws.close())
            self._closing.add(closing)
            closing.add_done_callback(self._closing.discard)

    def _apply(self, event: StreamEvent) -> None:
        if self._torn_down:
            return
        previous = self._state
        result = transition(previous, event, self._policy)
        self._state = result.state
        self._logger.debug(
            "Live stream %s: %s -> %s (retries=%d)",
            event.value,
            previous.status.value,
            result.state.status.value,
            result.state.retries,
        )

        if result.retry_delay is not None:
            self._schedule_retry(result.retry_delay)
        if result.state.status is ConnectionStatus.CLOSED and previous.status is not ConnectionStatus.CLOSED:
            self._logger.warning(
                "Live stream closed after %d reconnect attempts; call reconnect() to resume",
                result.state.retries,
            )
        if result.state.status is not previous.status or event is StreamEvent.START:
            self._emit_status(result.state.status)
        if result.open_socket:
            self._open_socket()

    def _schedule_retry(self, delay: float) -> None:
        assert self._loop is not None  # noqa: S101
        if self._timer is not None:
            self._timer.cancel()
        self._timer = self._loop.call_later(delay, self._on_retry_due, self._generation)
        self._logger.debug("Live stream reconnect scheduled in %.1fs", delay)

    def _on_retry_due(self, generation: int) -> None:
        if generation != self._generation or self._torn_down:
            return
        self._timer = None
        self._apply(StreamEvent.RETRY_DUE)

    def _open_socket(self) -> None:
        assert self._loop is not None  # noqa: S101
        self._generation += 1
        self._task = self._loop.create_task(self._run(self._generation))

    def _is_current(self, generation: int) -> bool:
        return generation == self._generation and not self._torn_down

    async def _run(self, generation: int) -> None:
        headers = {
            "Authorization": f"Bearer {self._token}",
            "User-Agent": USER_AGENT,
        }
        self._logger.debug("Live stream connecting to %s", self._url)
        try:
            ws = await self._http.ws_connect(self._url, headers=headers, heartbeat=self._heartbeat)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            self._logger.debug("Live stream connect failed: %s", exc)
            if self._is_current(generation):
                self._apply(StreamEvent.DROPPED)
            return

        if not self._is_current(generation):
            await ws.close()
            return

        self._ws = ws
        self._apply(StreamEvent.OPENED)
        try:
            async for msg in ws:
                if not self._is_current(generation):
                    break
                if msg.type in (aiohttp.WSMsgType.TEXT, aiohttp.WSMsgType.BINARY):
                    self._handle_payload(msg.data)
                elif msg.type is aiohttp.WSMsgType.ERROR:
                    self._logger.debug("Live stream error frame: %s", ws.exception())
                    break
        except asyncio.CancelledError:
            raise
        except Exception:
            self._logger.debug("Live stream receive loop failed", exc_info=True)
        finally:
            if self._ws is ws:
                self._ws = None

        if not self._is_current(generation):
            return
        if not ws.closed:
            with contextlib.suppress(Exception):
                await ws.close()
        self._logger.debug("Live stream disconnected close_code=%s", ws.close_code)
        if self._is_current(generation):
            self._apply(StreamEvent.DROPPED)

    # ------------------------------------------------------------------
    # Frame dispatch
    # ------------------------------------------------------------------

    def _handle_payload(self, payload: str | bytes) -> None:
        try:
            frame = decode_frame(payload)
        except (ValueError, UnicodeDecodeError) as exc:
            self._logger.debug("Dropping malformed live frame: %s", exc)
            return
        except Exception:
            # RecursionError from absurdly nested JSON, among others.
            self._logger.debug("Dropping undecodable live frame", exc_info=True)
            return
        try:
            self._dispatch(frame)
        except Exception:
            self._logger.debug("Live frame dispatch failed type=%s", frame.type, exc_info=True)

    def _dispatch(self, frame: StreamFrame) -> None:
        if frame.type in TELEMETRY_FRAME_TYPES:
            if isinstance(frame.data, list):
                points = parse_rows(LivePoint, frame.data)
            else:
                point = parse_row(LivePoint, frame.data)
                points = [point] if point is not None else []
            if not points:
                # Notification-only frame: the backend wants us to re-read.
                self._request_refresh()
                return
            for point in points:
                self._call(self._on_point, point)
            return

        if frame.type == ALERT_FRAME_TYPE:
            alert = parse_row(AlertRecord, frame.data)
            if alert is not None and self._on_alert is not None:
                self._call(self._on_alert, alert)
            return

        if frame.type == TICK_FRAME_TYPE:
            self._request_refresh()
            return

        self._logger.debug("Ignoring live frame type=%s", frame.type)

    def _request_refresh(self) -> None:
        if self._on_refresh is not None:
            self._call(self._on_refresh)

    def _emit_status(self, status: ConnectionStatus) -> None:
        if self._on_status is not None:
            self._call(self._on_status, status)

    def _call(self, callback: Callable[..., None], *args: Any) -> None:
        if self._torn_down:
            return
        try:
            callback(*args)
        except Exception:
            self._logger.debug("Live stream callback %r failed", callback, exc_info=True)
