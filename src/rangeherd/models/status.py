"""Status enums shared by the stream, the store views and the dashboard."""

from __future__ import annotations

from enum import StrEnum


class MotionState(StrEnum):
    MOVING = "moving"
    STATIONARY = "stationary"
    UNKNOWN = "unknown"


class ConnectionStatus(StrEnum):
    """Live stream connection status.

    ``CLOSED`` is terminal: it is reached after teardown or once the
    reconnect budget is exhausted, and only an explicit reconnect leaves it.
    """

    CONNECTING = "connecting"
    CONNECTED = "connected"
    RECONNECTING = "reconnecting"
    CLOSED = "closed"


class LoadStatus(StrEnum):
    LOADING = "loading"
    READY = "ready"
    ERROR = "error"
