"""Pure takeoff measurement and estimating logic."""

from . import aggregation, calibration, estimate, geometry, takeoff, units, viewport

__all__ = ["aggregation", "calibration", "estimate", "geometry", "takeoff", "units", "viewport"]
