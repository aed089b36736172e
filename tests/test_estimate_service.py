import asyncio

import pytest

from genitakeoff.domain.calibration import CalibrationScope
from genitakeoff.domain.estimate import EstimateLink, EstimateRow, QtySource
from genitakeoff.domain.geometry import PointGeometry, Polyline
from genitakeoff.errors import ValidationError
from genitakeoff.infra.takeoff_db import TakeoffDatabase
from genitakeoff.services.calibration_service import CalibrationService
from genitakeoff.services.estimate_service import EstimateService
from genitakeoff.services.quantity_engine import QuantityEngine
from genitakeoff.services.takeoff_store import TakeoffItemStore


def _services(tmp_path):
    db = TakeoffDatabase(str(tmp_path / "takeoff.db"))
    items = TakeoffItemStore(db)
    calibrations = CalibrationService(db)
    quantities = QuantityEngine(items, calibrations)
    return items, calibrations, quantities, EstimateService(db, quantities, items)


def _add_counts(items, n, layer_id=None):
    async def _run():
        for i in range(n):
            await items.create("proj", "doc-1", 1, "count", PointGeometry([(i, i)]), layer_id=layer_id)

    asyncio.run(_run())


def test_takeoff_row_follows_current_items(tmp_path):
    items, _cal, _q, estimates = _services(tmp_path)
    layer = asyncio.run(items.create_layer("proj", "Doors"))
    _add_counts(items, 10, layer.id)
    sheet = asyncio.run(estimates.create_sheet("proj"))
    asyncio.run(
        estimates.add_row(
            sheet["id"],
            EstimateRow(
                description="Doors",
                qty_source=QtySource.TAKEOFF,
                link=EstimateLink("count", layer.id),
                unit_cost=250,
                markup_pct=10,
            ),
        )
    )

    totals = asyncio.run(estimates.sheet_totals(sheet["id"]))
    assert totals.rows[0].quantity == 10
    assert totals.rows[0].subtotal == 2500
    assert totals.grand_total == pytest.approx(2750)

    _add_counts(items, 2, layer.id)
    assert asyncio.run(estimates.sheet_totals(sheet["id"])).rows[0].quantity == 12


def test_manual_rows_and_ordering(tmp_path):
    _items, _cal, _q, estimates = _services(tmp_path)
    sheet = asyncio.run(estimates.create_sheet("proj", "  "))
    assert sheet["name"] == "Estimate"
    first = asyncio.run(estimates.add_row(sheet["id"], EstimateRow(description="Labour", qty_manual=5, unit_cost=20)))
    second = asyncio.run(estimates.add_row(sheet["id"], EstimateRow(description="Skip", qty_manual=1, unit_cost=300)))

    assert (first.row_index, second.row_index) == (0, 1)
    totals = asyncio.run(estimates.sheet_totals(sheet["id"]))
    assert [r.row.description for r in totals.rows] == ["Labour", "Skip"]
    assert totals.subtotal == 400
    assert totals.grand_total == 400


def test_update_row_validates_changes(tmp_path):
    _items, _cal, _q, estimates = _services(tmp_path)
    sheet = asyncio.run(estimates.create_sheet("proj"))
    row = asyncio.run(estimates.add_row(sheet["id"], EstimateRow(description="Labour", qty_manual=5)))

    updated = asyncio.run(estimates.update_row(row.id, unit_cost=12.5, markup_pct=20))
    assert (updated.unit_cost, updated.markup_pct) == (12.5, 20)

    with pytest.raises(ValidationError):
        asyncio.run(estimates.update_row(row.id, unit_cost=float("nan")))
    with pytest.raises(ValidationError):
        asyncio.run(estimates.update_row(row.id, qty_source="takeoff"))
    with pytest.raises(ValidationError):
        asyncio.run(estimates.update_row(row.id, colour="blue"))
    with pytest.raises(ValidationError):
        asyncio.run(estimates.update_row("missing", unit_cost=1))

    assert asyncio.run(estimates.list_rows(sheet["id"]))[0].unit_cost == 12.5


def test_import_from_takeoff_adds_each_group_once(tmp_path):
    items, calibrations, _q, estimates = _services(tmp_path)
    layer = asyncio.run(items.create_layer("proj", "Walls", default_uom="m"))
    asyncio.run(calibrations.set_calibration("proj", CalibrationScope("doc-1"), 0.01))
    asyncio.run(items.create("proj", "doc-1", 1, "line", Polyline([(0, 0), (300, 0)]), layer_id=layer.id))
    _add_counts(items, 3)
    sheet = asyncio.run(estimates.open_default_sheet("proj"))

    added = asyncio.run(estimates.import_from_takeoff(sheet["id"]))
    assert sorted(row.description for row in added) == ["Count", "Walls (line)"]
    assert asyncio.run(estimates.import_from_takeoff(sheet["id"])) == []

    totals = asyncio.run(estimates.sheet_totals(sheet["id"]))
    by_description = {r.row.description: r for r in totals.rows}
    assert by_description["Walls (line)"].quantity == pytest.approx(3.0)
    assert by_description["Walls (line)"].row.uom == "m"
    assert by_description["Count"].quantity == 3


def test_uncalibrated_groups_are_flagged(tmp_path):
    items, _cal, _q, estimates = _services(tmp_path)
    asyncio.run(items.create("proj", "doc-1", 1, "line", Polyline([(0, 0), (300, 0)])))
    sheet = asyncio.run(estimates.open_default_sheet("proj"))
    asyncio.run(estimates.import_from_takeoff(sheet["id"]))

    totals = asyncio.run(estimates.sheet_totals(sheet["id"]))
    assert totals.has_uncalibrated_rows
    assert totals.rows[0].quantity == 0


def test_open_default_sheet_reuses_the_first_sheet(tmp_path):
    _items, _cal, _q, estimates = _services(tmp_path)
    first = asyncio.run(estimates.open_default_sheet("proj"))
    again = asyncio.run(estimates.open_default_sheet("proj"))
    assert first["id"] == again["id"]
    assert len(asyncio.run(estimates.list_sheets("proj"))) == 1


def test_unknown_sheet_is_rejected(tmp_path):
    _items, _cal, _q, estimates = _services(tmp_path)
    with pytest.raises(ValidationError):
        asyncio.run(estimates.sheet_totals("missing"))
    with pytest.raises(ValidationError):
        asyncio.run(estimates.add_row("missing", EstimateRow(description="x")))


def test_deleted_row_leaves_the_sheet(tmp_path):
    _items, _cal, _q, estimates = _services(tmp_path)
    sheet = asyncio.run(estimates.create_sheet("proj"))
    row = asyncio.run(estimates.add_row(sheet["id"], EstimateRow(description="x", qty_manual=1, unit_cost=1)))
    assert asyncio.run(estimates.delete_row(row.id))
    assert asyncio.run(estimates.sheet_totals(sheet["id"])).grand_total == 0


def test_drawing_calibration_is_shared_across_projects(tmp_path):
    items, calibrations, quantities, _estimates = _services(tmp_path)
    asyncio.run(calibrations.set_calibration("proj-a", CalibrationScope("plan.pdf"), 0.01))

    async def _draw():
        for project in ("proj-a", "proj-b"):
            await items.create(project, "plan.pdf", 1, "line", Polyline([(0, 0), (300, 0)]))

    asyncio.run(_draw())
    for project in ("proj-a", "proj-b"):
        totals = list(asyncio.run(quantities.aggregate(project)).values())
        assert [agg.calibrated for agg in totals] == [True]
        assert totals[0].quantity == pytest.approx(3.0)

    asyncio.run(
        calibrations.set_calibration("proj-b", CalibrationScope("plan.pdf"), 0.02, confirm_replace=True)
    )
    totals = list(asyncio.run(quantities.aggregate("proj-a")).values())
    assert [agg.calibrated for agg in totals] == [True]
    assert totals[0].quantity == pytest.approx(6.0)


def test_rows_follow_items_when_their_layer_is_deleted(tmp_path):
    items, _cal, _q, estimates = _services(tmp_path)
    layer = asyncio.run(items.create_layer("proj", "Doors"))
    _add_counts(items, 4, layer.id)
    sheet = asyncio.run(estimates.create_sheet("proj"))
    asyncio.run(
        estimates.add_row(
            sheet["id"],
            EstimateRow(description="Doors", qty_source=QtySource.TAKEOFF, link=EstimateLink("count", layer.id)),
        )
    )

    assert asyncio.run(items.delete_layer(layer.id))

    totals = asyncio.run(estimates.sheet_totals(sheet["id"]))
    assert totals.rows[0].row.link == EstimateLink("count", None)
    assert totals.rows[0].quantity == 4
