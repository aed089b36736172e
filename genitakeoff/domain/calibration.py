"""Calibration model: real-world metres per document pixel."""

import math
from dataclasses import dataclass
from typing import Callable, Iterable, NamedTuple

from genitakeoff.constants import DEFAULT_DISPLAY_UNIT
from genitakeoff.domain.geometry import distance
from genitakeoff.domain.units import format_area, format_length, normalize_unit
from genitakeoff.errors import ValidationError


class CalibrationScope(NamedTuple):
    """Whole document when ``page_number`` is None, else a single page."""

    document_id: str
    page_number: int | None = None

    @property
    def is_document_wide(self) -> bool:
        return self.page_number is None


def _require_positive(value, label: str) -> float:
    try:
        number = float(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{label} must be a number.") from None
    if not math.isfinite(number) or number <= 0:
        raise ValidationError(f"{label} must be greater than zero.")
    return number


def ratio_from_known_length(known_real_length: float, pixel_length: float) -> float:
    pixels = _require_positive(pixel_length, "Pixel length")
    known = _require_positive(known_real_length, "Known length")
    ratio = known / pixels
    if not math.isfinite(ratio) or ratio <= 0:
        raise ValidationError("Calibration ratio must be greater than zero.")
    return ratio


def ratio_from_points(start, end, known_real_length: float) -> float:
    """Derive a ratio from a line drawn between two document points."""
    return ratio_from_known_length(known_real_length, distance(tuple(start), tuple(end)))


@dataclass(frozen=True)
class Calibration:
    scope: CalibrationScope
    ratio: float
    display_unit: str = DEFAULT_DISPLAY_UNIT
    project_id: str | None = None
    label: str | None = None
    id: str | None = None

    def __post_init__(self):
        object.__setattr__(self, "ratio", _require_positive(self.ratio, "Calibration ratio"))
        object.__setattr__(self, "display_unit", normalize_unit(self.display_unit))
        if not isinstance(self.scope, CalibrationScope):
            object.__setattr__(self, "scope", CalibrationScope(*self.scope))

    def to_real_length(self, pixel_length: float) -> float:
        return float(pixel_length) * self.ratio

    def to_real_area(self, pixel_area: float) -> float:
        return float(pixel_area) * self.ratio * self.ratio

    def describe_length(self, pixel_length: float) -> str:
        return format_length(self.to_real_length(pixel_length), self.display_unit)

    def describe_area(self, pixel_area: float) -> str:
        return format_area(self.to_real_area(pixel_area), self.display_unit)


CalibrationResolver = Callable[[str, int], "Calibration | None"]


def build_resolver(calibrations: Iterable[Calibration]) -> CalibrationResolver:
    """Page calibrations win over the document default; no match gives None."""
    by_scope = {cal.scope: cal for cal in calibrations or []}

    def resolve(document_id: str, page_number: int) -> Calibration | None:
        page_cal = by_scope.get(CalibrationScope(document_id, page_number))
        if page_cal is not None:
            return page_cal
        return by_scope.get(CalibrationScope(document_id, None))

    return resolve


__all__ = [
    "Calibration",
    "CalibrationResolver",
    "CalibrationScope",
    "build_resolver",
    "ratio_from_known_length",
    "ratio_from_points",
]
