"""Device list model."""

from __future__ import annotations

from typing import Any, ClassVar

from pydantic import field_validator

from rangeherd.ingestion.normalize import safe_float, safe_str
from rangeherd.models._base import HerdBaseModel


class DeviceRow(HerdBaseModel):
    """A tracking device registered to the ranch.

    Fields are mapped from the ``/api/devices`` response.  The ``last_*``
    fields are the backend's own view of the latest uplink and may lag the
    live stream.
    """

    _KEY_ALIASES: ClassVar[dict[str, str]] = {
        "deviceId": "id",
        "device_id": "id",
    }

    id: str
    """Device identifier (LoRaWAN dev EUI or backend id)."""
    name: str | None = None
    """Display name assigned on the ranch."""
    battery_pct: float | None = None
    last_lat: float | None = None
    last_lon: float | None = None
    last_seen_at: str | None = None

    @field_validator("id", mode="before")
    @classmethod
    def _normalize_id(cls, value: Any) -> str:
        device_id = safe_str(value)
        if device_id is None:
            raise ValueError("device id must be non-empty")
        return device_id

    @field_validator("name", "last_seen_at", mode="before")
    @classmethod
    def _coerce_text(cls, value: Any) -> str | None:
        return safe_str(value)

    @field_validator("battery_pct", "last_lat", "last_lon", mode="before")
    @classmethod
    def _coerce_floats(cls, value: Any) -> float | None:
        return safe_float(value)

    @property
    def label(self) -> str:
        return self.name or self.id
