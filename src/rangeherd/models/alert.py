"""Geofence alert model."""

from __future__ import annotations

from typing import Any, ClassVar

from pydantic import field_validator, model_validator

from rangeherd.ingestion.normalize import safe_float, safe_str
from rangeherd.models._base import HerdBaseModel

_BADGES = {
    "geofence_exit": "EXIT",
    "geofence_enter": "ENTER",
}


class AlertRecord(HerdBaseModel):
    """An alert raised by the backend, received over the stream or ``/api/alerts``.

    The backend sometimes embeds the related device and geofence objects
    (``device.name``, ``geofence.name``) instead of flat name fields; both
    shapes are accepted.
    """

    _KEY_ALIASES: ClassVar[dict[str, str]] = {
        "read": "isRead",
    }

    id: str
    ranch_id: str | None = None
    device_id: str | None = None
    geofence_id: str | None = None
    type: str = ""
    severity: str = ""
    message: str = ""
    lat: float | None = None
    lon: float | None = None
    is_read: bool = False
    created_at: str | None = None
    device_name: str | None = None
    geofence_name: str | None = None

    @model_validator(mode="before")
    @classmethod
    def _flatten_nested_names(cls, values: Any) -> Any:
        if not isinstance(values, dict):
            return values
        merged = dict(values)
        device = values.get("device")
        if isinstance(device, dict) and merged.get("deviceName") is None:
            merged["deviceName"] = device.get("name")
        geofence = values.get("geofence")
        if isinstance(geofence, dict) and merged.get("geofenceName") is None:
            merged["geofenceName"] = geofence.get("name")
        return merged

    @field_validator("id", mode="before")
    @classmethod
    def _normalize_id(cls, value: Any) -> str:
        alert_id = safe_str(value)
        if alert_id is None:
            raise ValueError("alert id must be non-empty")
        return alert_id

    @field_validator(
        "ranch_id",
        "device_id",
        "geofence_id",
        "created_at",
        "device_name",
        "geofence_name",
        mode="before",
    )
    @classmethod
    def _coerce_text(cls, value: Any) -> str | None:
        return safe_str(value)

    @field_validator("lat", "lon", mode="before")
    @classmethod
    def _coerce_floats(cls, value: Any) -> float | None:
        return safe_float(value)

    @property
    def badge(self) -> str:
        return _BADGES.get(self.type, self.type)

    @property
    def location(self) -> tuple[float, float] | None:
        if self.lat is None or self.lon is None:
            return None
        return (self.lat, self.lon)
