"""Latest-points snapshot endpoint.

Endpoint:
  - GET /api/live/latest

The backend answers with a flat list of recent points across all devices.
Rows are validated one by one and grouped per device so the caller can
feed each group to :meth:`rangeherd.state.store.PointStore.replace_snapshot`.
"""

from __future__ import annotations

import logging

from rangeherd._constants import LATEST_POINTS_ENDPOINT
from rangeherd._transport import Transport
from rangeherd.ingestion.rows import group_by_device, parse_points
from rangeherd.models.point import LivePoint

_logger = logging.getLogger(__name__)


async def fetch_latest_points(transport: Transport) -> dict[str, list[LivePoint]]:
    payload = await transport.request_json("GET", LATEST_POINTS_ENDPOINT)
    points = parse_points(payload)
    grouped = group_by_device(points)
    _logger.debug("Fetched %d latest points for %d devices", len(points), len(grouped))
    return grouped
