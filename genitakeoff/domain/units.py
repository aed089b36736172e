import re

from genitakeoff.constants import DEFAULT_DISPLAY_UNIT, INCHES_PER_FOOT, METERS_PER_UNIT
from genitakeoff.errors import ValidationError

UNIT_CHOICES = tuple(METERS_PER_UNIT)

_UNIT_VALUE_RE = re.compile(r"([+-]?(?:\d+(?:\.\d+)?|\.\d+))\s*(mm|cm|ft|in|m)")


def normalize_unit(unit: str | None, default: str = DEFAULT_DISPLAY_UNIT) -> str:
    value = (unit or "").strip().lower()
    if not value:
        return default
    if value not in METERS_PER_UNIT:
        raise ValidationError(f"Unsupported unit: {unit}")
    return value


def unit_to_meters_factor(unit: str) -> float:
    return METERS_PER_UNIT[normalize_unit(unit)]


def to_display_unit(value: float, from_unit: str, to_unit: str, dimension: int = 1) -> float:
    """Convert a length (dimension=1) or area (dimension=2) between units."""
    if dimension not in (1, 2):
        raise ValidationError(f"Unsupported dimension: {dimension}")
    factor = unit_to_meters_factor(from_unit) / unit_to_meters_factor(to_unit)
    return float(value) * (factor**dimension)


def _to_float(text: str, raw: str) -> float:
    try:
        return float(text)
    except ValueError:
        raise ValidationError(f"Could not parse length: {raw}") from None


def parse_length_to_meters(raw: str, default_unit: str = DEFAULT_DISPLAY_UNIT) -> float:
    """Parse user-entered lengths (10ft, 10' 6", 3.5m, 120 in) into metres."""
    if raw is None:
        raise ValidationError("Missing length.")
    s = raw.strip().lower()
    if not s:
        raise ValidationError("Missing length.")

    s = s.replace("feet", "ft").replace("foot", "ft").replace("inches", "in").replace("inch", "in")
    s = s.replace("millimeters", "mm").replace("millimeter", "mm")
    s = s.replace("centimeters", "cm").replace("centimeter", "cm")
    s = s.replace("meters", "m").replace("meter", "m")
    s = s.replace("metres", "m").replace("metre", "m")
    s = s.replace("”", "\"").replace("“", "\"").replace("′", "'").replace("″", "\"")
    s = " ".join(s.split())

    inch = METERS_PER_UNIT["in"]

    if "'" in s:
        left, right = s.split("'", 1)
        feet = _to_float(left.strip() or "0", raw)
        right = right.replace('"', "").replace("in", "").replace("-", " ").strip()
        inches = _to_float(right, raw) if right else 0.0
        return (feet * INCHES_PER_FOOT + inches) * inch

    if "ft" in s:
        left, rest = s.split("ft", 1)
        feet = _to_float(left.strip() or "0", raw)
        rest = rest.replace("in", "").replace('"', "").strip()
        inches = _to_float(rest, raw) if rest else 0.0
        return (feet * INCHES_PER_FOOT + inches) * inch

    matches = list(_UNIT_VALUE_RE.finditer(s))
    if matches:
        leftover = _UNIT_VALUE_RE.sub("", s).replace(",", " ").strip()
        if leftover:
            raise ValidationError(f"Could not parse length: {raw}")
        return sum(float(m.group(1)) * METERS_PER_UNIT[m.group(2)] for m in matches)

    return _to_float(s, raw) * unit_to_meters_factor(default_unit)


def _format_value(value: float, unit: str, suffix: str) -> str:
    if unit == "mm":
        return f"{round(value)} {suffix}"
    if unit in ("cm", "in"):
        return f"{value:.1f} {suffix}"
    return f"{value:.2f} {suffix}"


def format_length(meters: float, unit: str = DEFAULT_DISPLAY_UNIT) -> str:
    unit = normalize_unit(unit)
    return _format_value(to_display_unit(meters, "m", unit), unit, unit)


def format_area(square_meters: float, unit: str = DEFAULT_DISPLAY_UNIT) -> str:
    unit = normalize_unit(unit)
    return _format_value(to_display_unit(square_meters, "m", unit, dimension=2), unit, f"{unit}²")


__all__ = [
    "UNIT_CHOICES",
    "format_area",
    "format_length",
    "normalize_unit",
    "parse_length_to_meters",
    "to_display_unit",
    "unit_to_meters_factor",
]
