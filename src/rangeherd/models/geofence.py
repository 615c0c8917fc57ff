"""Geofence model (display data only)."""

from __future__ import annotations

from typing import Any

from pydantic import field_validator

from rangeherd.ingestion.normalize import safe_float, safe_str
from rangeherd.models._base import HerdBaseModel


class Geofence(HerdBaseModel):
    """A named boundary: a circle (``center_*`` + ``radius_m``) or a polygon."""

    id: str
    name: str = ""
    type: str = ""
    center_lat: float | None = None
    center_lon: float | None = None
    radius_m: float | None = None
    polygon: Any = None
    created_at: str | None = None

    @field_validator("id", mode="before")
    @classmethod
    def _normalize_id(cls, value: Any) -> str:
        geofence_id = safe_str(value)
        if geofence_id is None:
            raise ValueError("geofence id must be non-empty")
        return geofence_id

    @field_validator("created_at", mode="before")
    @classmethod
    def _coerce_text(cls, value: Any) -> str | None:
        return safe_str(value)

    @field_validator("center_lat", "center_lon", "radius_m", mode="before")
    @classmethod
    def _coerce_floats(cls, value: Any) -> float | None:
        return safe_float(value)

    @property
    def is_circle(self) -> bool:
        return self.center_lat is not None and self.center_lon is not None and self.radius_m is not None
