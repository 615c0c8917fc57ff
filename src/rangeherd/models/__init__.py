"""Data models for backend payloads."""

from rangeherd.models._base import HerdBaseModel
from rangeherd.models.alert import AlertRecord
from rangeherd.models.device import DeviceRow
from rangeherd.models.geofence import Geofence
from rangeherd.models.point import LivePoint, PointIdentity
from rangeherd.models.status import ConnectionStatus, LoadStatus, MotionState

__all__ = [
    "AlertRecord",
    "ConnectionStatus",
    "DeviceRow",
    "Geofence",
    "HerdBaseModel",
    "LivePoint",
    "LoadStatus",
    "MotionState",
    "PointIdentity",
]
