"""Live telemetry point model."""

from __future__ import annotations

from datetime import datetime
from typing import Any, ClassVar

from pydantic import Field, field_validator, model_validator

from rangeherd.ingestion.normalize import ms_to_datetime, parse_timestamp_ms, safe_float, safe_int, safe_str
from rangeherd.models._base import HerdBaseModel

PointIdentity = tuple[str, float | None, float | None, str]
"""Deduplication identity: ``(timestamp text, lat, lon, frame counter)``."""


def _coord_sort_key(value: float | None) -> float:
    return float("-inf") if value is None else value


class LivePoint(HerdBaseModel):
    """One telemetry sample reported by a tracking collar.

    Coordinates are ``None`` when the device had no GPS fix.  Points
    without a fix still carry battery/radio telemetry and are kept in the
    history, but every spatial view skips them.

    Parameters
    ----------
    device_id : str
        Owning device (``deviceId``).
    lat, lon : float or None
        Position in degrees.
    ts : str or None
        Device-side sample time, as received.
    received_at : str or None
        Backend ingestion time (``receivedAt``), used when ``ts`` is
        missing or unparseable.
    battery_pct, battery_v, rssi, snr, temperature_c, altitude_m : float or None
        Optional telemetry.
    frame_counter : int or None
        LoRaWAN uplink frame counter (``fCnt``).
    timestamp_ms : int
        Epoch milliseconds derived from ``ts`` / ``received_at``; ``0``
        when neither parses.
    """

    _KEY_ALIASES: ClassVar[dict[str, str]] = {
        "device_id": "deviceId",
        "devEui": "deviceId",
        "latitude": "lat",
        "longitude": "lon",
        "lng": "lon",
        "timestamp": "ts",
        "received_at": "receivedAt",
        "fCnt": "frameCounter",
        "fcnt": "frameCounter",
        "battery": "batteryPct",
        "temperature": "temperatureC",
        "altitude": "altitudeM",
    }

    id: str | None = None
    device_id: str
    lat: float | None = None
    lon: float | None = None
    ts: str | None = None
    received_at: str | None = None
    battery_pct: float | None = None
    battery_v: float | None = None
    rssi: float | None = None
    snr: float | None = None
    temperature_c: float | None = None
    altitude_m: float | None = None
    frame_counter: int | None = None
    timestamp_ms: int = Field(default=0, exclude=True)

    @field_validator("device_id", mode="before")
    @classmethod
    def _normalize_device_id(cls, value: Any) -> str:
        device_id = safe_str(value)
        if device_id is None:
            raise ValueError("deviceId must be non-empty")
        return device_id

    @field_validator("id", "ts", "received_at", mode="before")
    @classmethod
    def _coerce_text(cls, value: Any) -> str | None:
        return safe_str(value)

    @field_validator(
        "lat",
        "lon",
        "battery_pct",
        "battery_v",
        "rssi",
        "snr",
        "temperature_c",
        "altitude_m",
        mode="before",
    )
    @classmethod
    def _coerce_floats(cls, value: Any) -> float | None:
        return safe_float(value)

    @field_validator("frame_counter", mode="before")
    @classmethod
    def _coerce_frame_counter(cls, value: Any) -> int | None:
        return safe_int(value)

    @field_validator("lat")
    @classmethod
    def _check_lat(cls, value: float | None) -> float | None:
        if value is not None and not -90.0 <= value <= 90.0:
            return None
        return value

    @field_validator("lon")
    @classmethod
    def _check_lon(cls, value: float | None) -> float | None:
        if value is not None and not -180.0 <= value <= 180.0:
            return None
        return value

    @model_validator(mode="after")
    def _derive_timestamp(self) -> LivePoint:
        ts_ms = parse_timestamp_ms(self.ts)
        if ts_ms is None:
            ts_ms = parse_timestamp_ms(self.received_at)
        object.__setattr__(self, "timestamp_ms", ts_ms or 0)
        return self

    @property
    def has_fix(self) -> bool:
        """Whether both coordinates are present."""
        return self.lat is not None and self.lon is not None

    @property
    def timestamp_text(self) -> str:
        """The raw timestamp ``timestamp_ms`` was derived from."""
        if self.ts is not None and self.received_at is not None and parse_timestamp_ms(self.ts) is None:
            if parse_timestamp_ms(self.received_at) is not None:
                return self.received_at
        return self.ts or self.received_at or ""

    @property
    def identity(self) -> PointIdentity:
        """Two points with the same identity are the same observation."""
        counter = "" if self.frame_counter is None else str(self.frame_counter)
        return (self.timestamp_text, self.lat, self.lon, counter)

    @property
    def sort_key(self) -> tuple[int, str, float, float, str]:
        """Total ordering: timestamp first, identity as tie-breaker."""
        text, lat, lon, counter = self.identity
        return (self.timestamp_ms, text, _coord_sort_key(lat), _coord_sort_key(lon), counter)

    @property
    def observed_at(self) -> datetime | None:
        """Sample time as a UTC datetime, ``None`` if unknown."""
        return ms_to_datetime(self.timestamp_ms)
