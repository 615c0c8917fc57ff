"""Internal constants shared across the library."""

API_URL = "http://localhost:8080"
USER_AGENT = "rangeherd/0.3"

DEVICES_ENDPOINT = "/api/devices"
LATEST_POINTS_ENDPOINT = "/api/live/latest"
GEOFENCES_ENDPOINT = "/api/geofences"
ALERTS_ENDPOINT = "/api/alerts"
LIVE_STREAM_PATH = "/api/live"

# Map center used before any device has reported a fix.
DEFAULT_MAP_CENTER: tuple[float, float] = (32.9565, -96.3893)

EARTH_RADIUS_M = 6_371_000.0

# Stream frame types.  ``live_point`` and ``ttn_uplink`` are emitted by older
# backend builds and carry the same payload as ``uplink``.
TELEMETRY_FRAME_TYPES: frozenset[str] = frozenset({"uplink", "telemetry", "live_point", "ttn_uplink"})
ALERT_FRAME_TYPE = "alert"
TICK_FRAME_TYPE = "tick"
