import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Iterable, Mapping

from genitakeoff.constants import DEFAULT_ROW_UOM
from genitakeoff.domain.aggregation import AggregateKey, AggregateQuantity
from genitakeoff.domain.takeoff import TakeoffKind, TakeoffLayer
from genitakeoff.errors import ValidationError


class QtySource(str, Enum):
    MANUAL = "manual"
    TAKEOFF = "takeoff"

    @classmethod
    def parse(cls, value) -> "QtySource":
        if isinstance(value, cls):
            return value
        try:
            return cls((value or "").strip().lower())
        except ValueError:
            raise ValidationError(f"Unknown quantity source: {value!r}") from None


@dataclass(frozen=True)
class EstimateLink:
    kind: TakeoffKind
    layer_id: str | None = None

    def __post_init__(self):
        object.__setattr__(self, "kind", TakeoffKind.parse(self.kind))
        object.__setattr__(self, "layer_id", self.layer_id or None)

    @property
    def key(self) -> AggregateKey:
        return AggregateKey.of(self.kind, self.layer_id)


def _finite(value, label: str, minimum: float | None = None) -> float:
    try:
        number = float(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{label} must be a number.") from None
    if not math.isfinite(number):
        raise ValidationError(f"{label} must be finite.")
    if minimum is not None and number < minimum:
        raise ValidationError(f"{label} must be at least {minimum:g}.")
    return number


@dataclass(frozen=True)
class EstimateRow:
    code: str | None = None
    description: str = ""
    uom: str = DEFAULT_ROW_UOM
    qty_source: QtySource = QtySource.MANUAL
    qty_manual: float | None = None
    link: EstimateLink | None = None
    unit_cost: float = 0.0
    markup_pct: float = 0.0
    id: str | None = None
    sheet_id: str | None = None
    row_index: int = 0

    def __post_init__(self):
        source = QtySource.parse(self.qty_source)
        object.__setattr__(self, "qty_source", source)
        if source is QtySource.TAKEOFF and self.link is None:
            raise ValidationError("A takeoff-sourced row needs a link to a kind and layer.")
        if self.qty_manual is not None:
            object.__setattr__(self, "qty_manual", _finite(self.qty_manual, "Manual quantity", 0.0))
        object.__setattr__(self, "unit_cost", _finite(self.unit_cost, "Unit cost"))
        object.__setattr__(self, "markup_pct", _finite(self.markup_pct, "Markup", -100.0))


@dataclass(frozen=True)
class RowTotals:
    row: EstimateRow
    quantity: float
    subtotal: float
    total: float
    uncalibrated: bool = False


@dataclass(frozen=True)
class SheetTotals:
    rows: list[RowTotals] = field(default_factory=list)

    @property
    def subtotal(self) -> float:
        return sum(r.subtotal for r in self.rows)

    @property
    def grand_total(self) -> float:
        return sum(r.total for r in self.rows)

    @property
    def has_uncalibrated_rows(self) -> bool:
        return any(r.uncalibrated for r in self.rows)


def row_quantity(row: EstimateRow, aggregates: Mapping[AggregateKey, AggregateQuantity]) -> float:
    if row.qty_source is QtySource.MANUAL:
        return float(row.qty_manual or 0.0)
    agg = aggregates.get(row.link.key)
    return float(agg.quantity) if agg is not None else 0.0


def row_subtotal(quantity: float, unit_cost: float) -> float:
    return quantity * unit_cost


def row_total(subtotal: float, markup_pct: float) -> float:
    return subtotal * (1 + markup_pct / 100.0)


def compute_row(row: EstimateRow, aggregates: Mapping[AggregateKey, AggregateQuantity]) -> RowTotals:
    qty = row_quantity(row, aggregates)
    subtotal = row_subtotal(qty, row.unit_cost)
    uncalibrated = False
    if row.qty_source is QtySource.TAKEOFF:
        agg = aggregates.get(row.link.key)
        uncalibrated = agg is not None and not agg.calibrated
    return RowTotals(
        row=row,
        quantity=qty,
        subtotal=subtotal,
        total=row_total(subtotal, row.markup_pct),
        uncalibrated=uncalibrated,
    )


def compute_sheet(
    rows: Iterable[EstimateRow],
    aggregates: Mapping[AggregateKey, AggregateQuantity],
) -> SheetTotals:
    ordered = sorted(rows or [], key=lambda r: r.row_index)
    return SheetTotals(rows=[compute_row(row, aggregates) for row in ordered])


def grand_total(rows: Iterable[EstimateRow], aggregates: Mapping[AggregateKey, AggregateQuantity]) -> float:
    return compute_sheet(rows, aggregates).grand_total


def seed_rows_from_aggregates(
    aggregates: Mapping[AggregateKey, AggregateQuantity],
    layers: Iterable[TakeoffLayer] = (),
) -> list[EstimateRow]:
    """Draft one takeoff-linked row per aggregate, named after its layer."""
    by_id = {layer.id: layer for layer in layers or []}
    drafts = []
    ordered = sorted(aggregates, key=lambda k: (k.kind.value, k.layer_id or ""))
    for index, key in enumerate(ordered):
        layer = by_id.get(key.layer_id)
        kind_label = key.kind.value.replace("_", " ")
        description = f"{layer.name} ({kind_label})" if layer else kind_label.capitalize()
        drafts.append(
            EstimateRow(
                description=description,
                uom=layer.default_uom if layer else aggregates[key].unit,
                qty_source=QtySource.TAKEOFF,
                link=EstimateLink(kind=key.kind, layer_id=key.layer_id),
                row_index=index,
            )
        )
    return drafts


__all__ = [
    "EstimateLink",
    "EstimateRow",
    "QtySource",
    "RowTotals",
    "SheetTotals",
    "compute_row",
    "compute_sheet",
    "grand_total",
    "row_quantity",
    "row_subtotal",
    "row_total",
    "seed_rows_from_aggregates",
]
