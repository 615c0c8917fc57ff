"""rangeherd - Async Python client for LoRa cattle-tracking telemetry."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("rangeherd")
except PackageNotFoundError:
    __version__ = "0+local"
from rangeherd._stream import LiveStream
from rangeherd.config import HerdConfig
from rangeherd.dashboard import HerdDashboard
from rangeherd.exceptions import (
    HerdAuthenticationError,
    HerdConfigError,
    HerdError,
    HerdTransportError,
)
from rangeherd.models import (
    AlertRecord,
    ConnectionStatus,
    DeviceRow,
    Geofence,
    LivePoint,
    LoadStatus,
    MotionState,
)
from rangeherd.reconnect import BackoffPolicy
from rangeherd.session import Session
from rangeherd.state.motion import MotionClassifier, MotionThresholds, classify_motion
from rangeherd.state.store import PointStore
from rangeherd.state.views import DashboardView, DeviceSummary

__all__ = [
    "__version__",
    "AlertRecord",
    "BackoffPolicy",
    "ConnectionStatus",
    "DashboardView",
    "DeviceRow",
    "DeviceSummary",
    "Geofence",
    "HerdAuthenticationError",
    "HerdConfig",
    "HerdConfigError",
    "HerdDashboard",
    "HerdError",
    "HerdTransportError",
    "LivePoint",
    "LiveStream",
    "LoadStatus",
    "MotionClassifier",
    "MotionState",
    "MotionThresholds",
    "PointStore",
    "Session",
    "classify_motion",
]
