"""Great-circle distance helpers."""

from __future__ import annotations

import math

from rangeherd._constants import EARTH_RADIUS_M


def haversine_m(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Great-circle distance in meters between two coordinates in degrees."""
    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)
    d_phi = math.radians(lat2 - lat1)
    d_lambda = math.radians(lon2 - lon1)

    sin_d_phi = math.sin(d_phi / 2)
    sin_d_lambda = math.sin(d_lambda / 2)
    h = sin_d_phi * sin_d_phi + math.cos(phi1) * math.cos(phi2) * sin_d_lambda * sin_d_lambda
    # Rounding can push h a hair above 1 for antipodal points.
    return 2 * EARTH_RADIUS_M * math.asin(min(1.0, math.sqrt(h)))


def distance_between(a: tuple[float, float], b: tuple[float, float]) -> float:
    """:func:`haversine_m` for ``(lat, lon)`` pairs."""
    return haversine_m(a[0], a[1], b[0], b[1])
