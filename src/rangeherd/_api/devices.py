"""Device list endpoint.

Endpoint:
  - GET /api/devices
"""

from __future__ import annotations

import logging

from rangeherd._constants import DEVICES_ENDPOINT
from rangeherd._transport import Transport
from rangeherd.ingestion.rows import parse_rows
from rangeherd.models.device import DeviceRow

_logger = logging.getLogger(__name__)


async def fetch_devices(transport: Transport) -> list[DeviceRow]:
    """Fetch every device visible to the session's ranch."""
    payload = await transport.request_json("GET", DEVICES_ENDPOINT)
    devices = parse_rows(DeviceRow, payload)
    _logger.debug("Fetched %d devices", len(devices))
    return devices
