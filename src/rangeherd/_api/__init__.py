"""Backend REST endpoint modules.

Each module wraps one collaborator endpoint and returns validated models.
These are internal to rangeherd and may change at any time.
"""
