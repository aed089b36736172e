import math
from dataclasses import dataclass, field, replace
from enum import Enum

from genitakeoff.constants import DEFAULT_LAYER_UOM
from genitakeoff.domain.geometry import GEOM_POINT, GEOM_POLYGON, GEOM_POLYLINE, Geometry
from genitakeoff.errors import ValidationError


class TakeoffKind(str, Enum):
    COUNT = "count"
    LINE = "line"
    MEASURE = "measure"
    AREA = "area"
    AUTO_COUNT = "auto_count"
    AUTO_LINE = "auto_line"
    AUTO_AREA = "auto_area"

    @classmethod
    def parse(cls, value) -> "TakeoffKind":
        if isinstance(value, cls):
            return value
        try:
            return cls((value or "").strip().lower())
        except ValueError:
            raise ValidationError(f"Unknown takeoff kind: {value!r}") from None

    @property
    def geom_type(self) -> str:
        return KIND_GEOMETRY[self]


COUNT_KINDS = frozenset({TakeoffKind.COUNT, TakeoffKind.AUTO_COUNT})
LENGTH_KINDS = frozenset({TakeoffKind.LINE, TakeoffKind.MEASURE, TakeoffKind.AUTO_LINE})
AREA_KINDS = frozenset({TakeoffKind.AREA, TakeoffKind.AUTO_AREA})

KIND_GEOMETRY = {
    **{kind: GEOM_POINT for kind in COUNT_KINDS},
    **{kind: GEOM_POLYLINE for kind in LENGTH_KINDS},
    **{kind: GEOM_POLYGON for kind in AREA_KINDS},
}


def ensure_geometry_matches(kind: TakeoffKind, geometry: Geometry) -> None:
    expected = KIND_GEOMETRY[kind]
    actual = getattr(geometry, "geom_type", None)
    if actual != expected:
        raise ValidationError(f"A {kind.value} item needs {expected} geometry, got {actual or type(geometry).__name__}.")


@dataclass(frozen=True)
class TakeoffLayer:
    id: str
    project_id: str
    name: str
    default_uom: str = DEFAULT_LAYER_UOM
    kind_constraint: TakeoffKind | None = None

    def accepts(self, kind: TakeoffKind) -> bool:
        return self.kind_constraint is None or self.kind_constraint == kind


@dataclass(frozen=True)
class TakeoffItem:
    id: str
    project_id: str
    document_id: str
    page_number: int
    kind: TakeoffKind
    geometry: Geometry
    layer_id: str | None = None
    name: str | None = None
    quantity: float | None = None
    uom: str | None = None
    meta: dict = field(default_factory=dict)
    created_at: int = 0
    updated_at: int = 0

    def with_geometry(self, geometry: Geometry, updated_at: int) -> "TakeoffItem":
        return replace(self, geometry=geometry, updated_at=updated_at)


def validate_page_number(page_number) -> int:
    try:
        page = int(page_number)
    except (TypeError, ValueError):
        raise ValidationError(f"Invalid page number: {page_number!r}") from None
    if page < 1:
        raise ValidationError(f"Page numbers start at 1, got {page_number}.")
    return page


def validate_quantity(quantity) -> float | None:
    if quantity is None:
        return None
    try:
        value = float(quantity)
    except (TypeError, ValueError):
        raise ValidationError(f"Invalid quantity: {quantity!r}") from None
    if not math.isfinite(value) or value < 0:
        raise ValidationError("Quantity must be a finite, non-negative number.")
    return value


__all__ = [
    "AREA_KINDS",
    "COUNT_KINDS",
    "KIND_GEOMETRY",
    "LENGTH_KINDS",
    "TakeoffItem",
    "TakeoffKind",
    "TakeoffLayer",
    "ensure_geometry_matches",
    "validate_page_number",
    "validate_quantity",
]
