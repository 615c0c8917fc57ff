"""State/store layer.

This package is the single source of truth for how telemetry points from
REST polling and the live stream are merged into per-device histories, and
holds the pure derived views (motion, map center, routes, summaries) read
from it.
"""
