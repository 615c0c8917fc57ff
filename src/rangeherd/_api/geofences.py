"""Geofence list endpoint.

Endpoint:
  - GET /api/geofences
"""

from __future__ import annotations

from rangeherd._constants import GEOFENCES_ENDPOINT
from rangeherd._transport import Transport
from rangeherd.ingestion.rows import parse_rows
from rangeherd.models.geofence import Geofence


async def fetch_geofences(transport: Transport) -> list[Geofence]:
    payload = await transport.request_json("GET", GEOFENCES_ENDPOINT)
    return parse_rows(Geofence, payload)
