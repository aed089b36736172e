"""Takeoff geometry primitives in document-pixel space.

Each shape is a frozen dataclass built from an ordered point list. Constructors
refuse degenerate input (too few points, non-finite coordinates) so every
instance that exists can be measured.
"""

import math
from dataclasses import dataclass
from typing import ClassVar, Iterable

from shapely.geometry import LineString
from shapely.geometry import Point as ShapelyPoint
from shapely.geometry import Polygon as ShapelyPolygon

from genitakeoff.constants import POINT_MIN_POINTS, POLYGON_MIN_POINTS, POLYLINE_MIN_POINTS
from genitakeoff.errors import ValidationError

GEOM_POINT = "point"
GEOM_POLYLINE = "polyline"
GEOM_POLYGON = "polygon"


def _coerce_point(raw) -> tuple[float, float]:
    if isinstance(raw, dict):
        x, y = raw.get("x"), raw.get("y")
    else:
        try:
            x, y = raw
        except (TypeError, ValueError):
            raise ValidationError(f"Invalid point: {raw!r}") from None
    try:
        fx, fy = float(x), float(y)
    except (TypeError, ValueError):
        raise ValidationError(f"Invalid point: {raw!r}") from None
    if not (math.isfinite(fx) and math.isfinite(fy)):
        raise ValidationError(f"Point coordinates must be finite: {raw!r}")
    return fx, fy


def distance(a: tuple[float, float], b: tuple[float, float]) -> float:
    return math.hypot(b[0] - a[0], b[1] - a[1])


@dataclass(frozen=True)
class _Geometry:
    points: tuple[tuple[float, float], ...]

    geom_type: ClassVar[str] = ""
    min_points: ClassVar[int] = 1
    max_points: ClassVar[int | None] = None

    def __post_init__(self):
        points = tuple(_coerce_point(p) for p in (self.points or ()))
        if len(points) < self.min_points:
            raise ValidationError(
                f"{self.geom_type} needs at least {self.min_points} point(s), got {len(points)}."
            )
        if self.max_points is not None and len(points) > self.max_points:
            raise ValidationError(
                f"{self.geom_type} takes at most {self.max_points} point(s), got {len(points)}."
            )
        object.__setattr__(self, "points", points)

    def to_shapely(self):
        raise NotImplementedError

    @property
    def bbox(self) -> tuple[float, float, float, float]:
        """(min_x, min_y, max_x, max_y) of the shape."""
        return tuple(float(v) for v in self.to_shapely().bounds)

    def contains_point(self, x: float, y: float, tolerance: float = 0.0) -> bool:
        """Hit test in document space; polygons match anywhere inside the ring."""
        return self.to_shapely().distance(ShapelyPoint(float(x), float(y))) <= max(0.0, float(tolerance))

    def to_payload(self) -> dict:
        return {
            "geom_type": self.geom_type,
            "points": [{"x": x, "y": y} for x, y in self.points],
        }


@dataclass(frozen=True)
class PointGeometry(_Geometry):
    """A single count mark."""

    geom_type: ClassVar[str] = GEOM_POINT
    min_points: ClassVar[int] = POINT_MIN_POINTS
    max_points: ClassVar[int | None] = POINT_MIN_POINTS

    @property
    def location(self) -> tuple[float, float]:
        return self.points[0]

    def to_shapely(self):
        return ShapelyPoint(self.points[0])


@dataclass(frozen=True)
class Polyline(_Geometry):
    geom_type: ClassVar[str] = GEOM_POLYLINE
    min_points: ClassVar[int] = POLYLINE_MIN_POINTS

    @property
    def pixel_length(self) -> float:
        return sum(distance(self.points[i], self.points[i + 1]) for i in range(len(self.points) - 1))

    def to_shapely(self):
        return LineString(self.points)


@dataclass(frozen=True)
class Polygon(_Geometry):
    """Implicitly closed ring; the last point connects back to the first."""

    geom_type: ClassVar[str] = GEOM_POLYGON
    min_points: ClassVar[int] = POLYGON_MIN_POINTS

    @property
    def pixel_area(self) -> float:
        # Shoelace formula.
        pts = self.points
        n = len(pts)
        total = 0.0
        for i in range(n):
            x0, y0 = pts[i]
            x1, y1 = pts[(i + 1) % n]
            total += x0 * y1 - x1 * y0
        return abs(total) / 2.0

    @property
    def pixel_perimeter(self) -> float:
        pts = self.points
        return sum(distance(pts[i], pts[(i + 1) % len(pts)]) for i in range(len(pts)))

    @property
    def centroid(self) -> tuple[float, float]:
        c = self.to_shapely().centroid
        return float(c.x), float(c.y)

    def to_shapely(self):
        return ShapelyPolygon(self.points)


Geometry = PointGeometry | Polyline | Polygon

_GEOMETRY_TYPES = {cls.geom_type: cls for cls in (PointGeometry, Polyline, Polygon)}


def geometry_from_payload(geom_type: str, points: Iterable) -> Geometry:
    cls = _GEOMETRY_TYPES.get((geom_type or "").strip().lower())
    if cls is None:
        raise ValidationError(f"Unknown geometry type: {geom_type!r}")
    return cls(tuple(points or ()))


__all__ = [
    "GEOM_POINT",
    "GEOM_POLYGON",
    "GEOM_POLYLINE",
    "Geometry",
    "PointGeometry",
    "Polygon",
    "Polyline",
    "distance",
    "geometry_from_payload",
]
