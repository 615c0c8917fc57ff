"""Ingestion layer.

Adapters that turn REST snapshot rows and live stream frames into
validated :class:`rangeherd.models.LivePoint` batches for the point store.
"""

__all__: list[str] = []
