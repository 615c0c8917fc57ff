"""Alert endpoints.

Endpoints:
  - GET   /api/alerts[?unreadOnly=true]
  - PATCH /api/alerts/{id}/read
  - POST  /api/alerts/read-all
"""

from __future__ import annotations

from urllib.parse import quote

from rangeherd._constants import ALERTS_ENDPOINT
from rangeherd._transport import Transport
from rangeherd.ingestion.rows import parse_rows
from rangeherd.models.alert import AlertRecord


async def fetch_alerts(transport: Transport, *, unread_only: bool = False) -> list[AlertRecord]:
    params = {"unreadOnly": "true"} if unread_only else None
    payload = await transport.request_json("GET", ALERTS_ENDPOINT, params=params)
    return parse_rows(AlertRecord, payload)


async def mark_alert_read(transport: Transport, alert_id: str) -> None:
    alert_key = alert_id.strip()
    if not alert_key:
        raise ValueError("alert_id must be non-empty")
    await transport.request_json("PATCH", f"{ALERTS_ENDPOINT}/{quote(alert_key, safe='')}/read")


async def mark_all_alerts_read(transport: Transport) -> None:
    await transport.request_json("POST", f"{ALERTS_ENDPOINT}/read-all")
