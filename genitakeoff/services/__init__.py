"""Async services that coordinate the domain with storage and rendering."""

from . import calibration_service, estimate_service, persistence, quantity_engine, takeoff_store, viewer_session

__all__ = [
    "calibration_service",
    "estimate_service",
    "persistence",
    "quantity_engine",
    "takeoff_store",
    "viewer_session",
]
