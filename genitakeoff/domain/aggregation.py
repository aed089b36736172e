"""Roll takeoff items up into per-(kind, layer) real-world quantities.

The reduction is a pure function of the items and calibrations handed in, so
calling it twice on the same input gives the same result and there is no cache
that could drift from the stored items.
"""

from dataclasses import dataclass
from typing import Iterable, NamedTuple

from genitakeoff.domain.calibration import Calibration, CalibrationResolver
from genitakeoff.domain.takeoff import AREA_KINDS, COUNT_KINDS, LENGTH_KINDS, TakeoffItem, TakeoffKind

UNIT_EACH = "ea"
UNIT_LENGTH = "m"
UNIT_AREA = "m2"


class AggregateKey(NamedTuple):
    kind: TakeoffKind
    layer_id: str | None = None

    @classmethod
    def of(cls, kind, layer_id=None) -> "AggregateKey":
        return cls(TakeoffKind.parse(kind), layer_id or None)


@dataclass(frozen=True)
class AggregateQuantity:
    key: AggregateKey
    quantity: float
    item_count: int
    uncalibrated_count: int = 0

    @property
    def calibrated(self) -> bool:
        return self.uncalibrated_count == 0

    @property
    def unit(self) -> str:
        return unit_for_kind(self.key.kind)


def unit_for_kind(kind: TakeoffKind) -> str:
    if kind in COUNT_KINDS:
        return UNIT_EACH
    if kind in AREA_KINDS:
        return UNIT_AREA
    return UNIT_LENGTH


def item_contribution(item: TakeoffItem, calibration: Calibration | None) -> float | None:
    """Real-world quantity for one item, or None when it needs a missing calibration."""
    if item.quantity is not None:
        return float(item.quantity)
    if item.kind in COUNT_KINDS:
        return 1.0
    if calibration is None:
        return None
    if item.kind in LENGTH_KINDS:
        return calibration.to_real_length(item.geometry.pixel_length)
    if item.kind in AREA_KINDS:
        return calibration.to_real_area(item.geometry.pixel_area)
    return None


def aggregate_items(
    items: Iterable[TakeoffItem],
    resolve_calibration: CalibrationResolver,
) -> dict[AggregateKey, AggregateQuantity]:
    totals: dict[AggregateKey, list] = {}
    for item in items or []:
        key = AggregateKey.of(item.kind, item.layer_id)
        bucket = totals.setdefault(key, [0.0, 0, 0])
        bucket[1] += 1
        calibration = None
        if item.kind not in COUNT_KINDS and item.quantity is None:
            calibration = resolve_calibration(item.document_id, item.page_number)
        value = item_contribution(item, calibration)
        if value is None:
            bucket[2] += 1
            continue
        bucket[0] += value

    return {
        key: AggregateQuantity(key=key, quantity=total, item_count=count, uncalibrated_count=missing)
        for key, (total, count, missing) in totals.items()
    }


def uncalibrated_keys(aggregates: dict[AggregateKey, AggregateQuantity]) -> list[AggregateKey]:
    return [key for key, agg in aggregates.items() if not agg.calibrated]


__all__ = [
    "AggregateKey",
    "AggregateQuantity",
    "UNIT_AREA",
    "UNIT_EACH",
    "UNIT_LENGTH",
    "aggregate_items",
    "item_contribution",
    "uncalibrated_keys",
    "unit_for_kind",
]
