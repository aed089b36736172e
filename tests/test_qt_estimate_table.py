import asyncio
import inspect
import traceback

import pytest

import genitakeoff_qt.mixins.estimate as estimate_module
from genitakeoff.domain.aggregation import AggregateKey, AggregateQuantity
from genitakeoff.domain.estimate import EstimateLink, EstimateRow, QtySource, compute_sheet
from genitakeoff.infra.takeoff_db import TakeoffDatabase
from genitakeoff.services.calibration_service import CalibrationService
from genitakeoff.services.estimate_service import EstimateService
from genitakeoff.services.quantity_engine import QuantityEngine
from genitakeoff.services.takeoff_store import TakeoffItemStore
from genitakeoff_qt.mixins.estimate import EstimateMixin, parse_cell_value, row_cells, sheet_clipboard_text


class _FakeCell:
    def __init__(self, text):
        self._text = text

    def text(self):
        return self._text


class _FakeTable:
    def __init__(self):
        self.cells = {}
        self.current_row = -1

    def item(self, row, col):
        return self.cells.get((row, col))

    def currentRow(self):
        return self.current_row


class _FakeClipboard:
    def __init__(self):
        self.text = ""

    def setText(self, text):
        self.text = text


class _InlineWorkers:
    def submit(self, fn, on_result, on_error=None):
        try:
            result = fn()
            if inspect.iscoroutine(result):
                result = asyncio.run(result)
        except Exception:
            if on_error is None:
                raise
            on_error(traceback.format_exc())
            return
        on_result(result)


class _Window(EstimateMixin):
    def __init__(self, tmp_path):
        db = TakeoffDatabase(str(tmp_path / "takeoff.db"))
        items = TakeoffItemStore(db)
        self.project_id = "proj"
        self.estimates = EstimateService(db, QuantityEngine(items, CalibrationService(db)), items)
        self.workers = _InlineWorkers()
        self._estimate_table = _FakeTable()
        self.status = ""
        self.loads = 0

    def _set_status(self, text):
        self.status = text

    def _on_estimate_loaded(self, sheet_totals):
        self._sheet_totals = sheet_totals
        self.loads += 1

    def open_sheet(self):
        sheet = asyncio.run(self.estimates.open_default_sheet(self.project_id))
        self._sheet_id = sheet["id"]
        self._refresh_estimate()


def test_add_row_then_edit_unit_cost(tmp_path):
    window = _Window(tmp_path)
    window.open_sheet()
    window._on_add_estimate_row()
    assert window._sheet_totals.rows[0].row.description == "New item"

    window._estimate_table.cells[(0, 4)] = _FakeCell("4")
    window._on_estimate_cell_changed(0, 4)
    window._estimate_table.cells[(0, 5)] = _FakeCell("1,250.50")
    window._on_estimate_cell_changed(0, 5)

    totals = window._sheet_totals
    assert totals.rows[0].row.unit_cost == 1250.5
    assert totals.grand_total == pytest.approx(5002.0)


def test_non_numeric_cell_is_reported(tmp_path):
    window = _Window(tmp_path)
    window.open_sheet()
    window._on_add_estimate_row()
    loads = window.loads

    window._estimate_table.cells[(0, 5)] = _FakeCell("abc")
    window._on_estimate_cell_changed(0, 5)

    assert window.status == "Not a number: abc"
    assert window.loads == loads + 1
    assert window._sheet_totals.rows[0].row.unit_cost == 0.0


def test_rejected_edit_shows_reason(tmp_path):
    window = _Window(tmp_path)
    window.open_sheet()
    window._on_add_estimate_row()

    window._estimate_table.cells[(0, 6)] = _FakeCell("-150")
    window._on_estimate_cell_changed(0, 6)

    assert "Markup must be at least -100" in window.status
    assert window._sheet_totals.rows[0].row.markup_pct == 0.0


def test_edits_during_load_are_ignored(tmp_path):
    window = _Window(tmp_path)
    window.open_sheet()
    window._on_add_estimate_row()
    window._estimate_loading = True
    loads = window.loads

    window._on_estimate_cell_changed(0, 5)

    assert window.loads == loads


def test_delete_selected_row(tmp_path):
    window = _Window(tmp_path)
    window.open_sheet()
    window._on_add_estimate_row()
    window._on_add_estimate_row()
    window._estimate_table.current_row = 1

    window._on_delete_estimate_row()

    assert len(window._sheet_totals.rows) == 1


def test_copy_puts_sheet_on_clipboard(monkeypatch, tmp_path):
    window = _Window(tmp_path)
    window.open_sheet()
    window._on_add_estimate_row()
    fake_clipboard = _FakeClipboard()
    monkeypatch.setattr(estimate_module.QApplication, "clipboard", lambda: fake_clipboard)

    window._on_copy_estimate()

    assert fake_clipboard.text.startswith("Code\tDescription")
    assert "New item" in fake_clipboard.text
    assert window.status == "Estimate copied to clipboard"


@pytest.mark.parametrize(
    "field_name, text, expected",
    [
        ("unit_cost", "1,250.50", 1250.5),
        ("markup_pct", "15%", 15.0),
        ("qty_manual", "", 0.0),
        ("code", "  ", None),
        ("description", " Doors ", "Doors"),
    ],
)
def test_parse_cell_value(field_name, text, expected):
    assert parse_cell_value(field_name, text) == expected


def test_parse_cell_value_rejects_text_in_numeric_columns():
    with pytest.raises(ValueError):
        parse_cell_value("unit_cost", "abc")


def test_row_cells_and_clipboard_text():
    key = AggregateKey.of("line")
    aggregates = {key: AggregateQuantity(key=key, quantity=0.0, item_count=1, uncalibrated_count=1)}
    rows = [
        EstimateRow(code="A1", description="Labour", qty_manual=5, unit_cost=20, markup_pct=10),
        EstimateRow(
            description="Walls",
            uom="m",
            qty_source=QtySource.TAKEOFF,
            link=EstimateLink("line"),
            unit_cost=3,
            row_index=1,
        ),
    ]
    sheet = compute_sheet(rows, aggregates)

    assert row_cells(sheet.rows[0]) == ["A1", "Labour", "ea", "manual", "5.00", "20.00", "10", "100.00", "110.00"]
    assert row_cells(sheet.rows[1])[4] == "0.00 *"

    text = sheet_clipboard_text(sheet)
    lines = text.splitlines()
    assert lines[1] == "A1\tLabour\t5.00\tea\t20.00\t10\t110.00"
    assert lines[-2] == "\t\t\t\t\tSubtotal\t100.00"
    assert lines[-1] == "\t\t\t\t\tTotal\t110.00"
