import asyncio
import logging

from PySide6.QtWidgets import QInputDialog, QMessageBox

from genitakeoff.domain.calibration import CalibrationScope
from genitakeoff.domain.geometry import PointGeometry, Polygon, Polyline, distance
from genitakeoff.domain.takeoff import AREA_KINDS, COUNT_KINDS, TakeoffKind
from genitakeoff.domain.units import parse_length_to_meters
from genitakeoff.errors import ValidationError
from genitakeoff_qt.constants import (
    MIN_CALIBRATION_PIXELS,
    TOOL_AREA,
    TOOL_CALIBRATE,
    TOOL_COUNT,
    TOOL_LINE,
    TOOL_NAVIGATE,
)

logger = logging.getLogger(__name__)

_SHAPE_TOOLS = {
    TOOL_LINE: (TakeoffKind.LINE, Polyline, 2),
    TOOL_AREA: (TakeoffKind.AREA, Polygon, 3),
}


async def load_page_snapshot(item_store, calibration_service, document_id, page_number):
    items, calibration = await asyncio.gather(
        item_store.list_by_page(document_id, page_number),
        calibration_service.resolve(document_id, page_number),
    )
    return items, calibration


def item_label(item, calibration) -> str:
    name = item.name or item.kind.value.replace("_", " ").capitalize()
    if item.quantity is not None:
        return f"{name}: {item.quantity:g} (override)"
    if item.kind in COUNT_KINDS:
        return f"{name}: 1 ea"
    if item.kind in AREA_KINDS:
        if calibration is None:
            return f"{name}: {item.geometry.pixel_area:.0f} px² (uncalibrated)"
        return f"{name}: {calibration.describe_area(item.geometry.pixel_area)}"
    if calibration is None:
        return f"{name}: {item.geometry.pixel_length:.0f} px (uncalibrated)"
    return f"{name}: {calibration.describe_length(item.geometry.pixel_length)}"


def aggregate_label(aggregate, layer_names) -> str:
    layer = layer_names.get(aggregate.key.layer_id) if aggregate.key.layer_id else None
    kind = aggregate.key.kind.value.replace("_", " ")
    text = f"{layer or 'No layer'} / {kind}: {aggregate.quantity:,.2f} {aggregate.unit} ({aggregate.item_count} items)"
    if not aggregate.calibrated:
        text += f" - {aggregate.uncalibrated_count} uncalibrated"
    return text


def calibration_status(calibration) -> str:
    if calibration is None:
        return "Not calibrated"
    scope = "page" if calibration.scope.page_number is not None else "document"
    return f"1 px = {calibration.ratio * 1000:.3g} mm ({scope})"


class TakeoffMixin:
    _pending_points = None
    _page_items = None
    _page_calibration = None
    _layer_names = None

    def _init_takeoff_state(self):
        self._pending_points = []
        self._page_items = []
        self._page_calibration = None
        self._layer_names = {}

    # ── Tool mode switching ──────────────────────────────────────

    def _current_tool(self):
        return self._tool_group.checkedId()

    def _on_tool_changed(self, tool_id, checked):
        if not checked:
            return
        self.canvas.set_click_enabled(tool_id != TOOL_NAVIGATE)
        self._cancel_pending_shape()
        if tool_id == TOOL_CALIBRATE:
            self._set_status("Click two points on a dimension of known length")
        elif tool_id in _SHAPE_TOOLS and self._page_calibration is None:
            self._set_status("Warning: this page is not calibrated")

    # ── Point click routing ──────────────────────────────────────

    def _on_document_point_clicked(self, x, y):
        if self.session.document_id is None:
            return
        tool_id = self._current_tool()
        if tool_id == TOOL_COUNT:
            self._save_item(TakeoffKind.COUNT, PointGeometry([(x, y)]))
        elif tool_id in _SHAPE_TOOLS:
            self._pending_points.append((x, y))
            self._show_pending(closed=tool_id == TOOL_AREA)
        elif tool_id == TOOL_CALIBRATE:
            self._pending_points.append((x, y))
            self._show_pending(kind="calibrate")
            if len(self._pending_points) == 2:
                self._finish_calibration()

    def _show_pending(self, kind="pending", closed=False):
        self.canvas.set_pending(self._pending_points, kind=kind, closed=closed)
        self._points_label.setText(f"Points: {len(self._pending_points)}")

    def _cancel_pending_shape(self):
        self._pending_points = []
        self._show_pending()

    def _on_undo_point(self):
        if not self._pending_points:
            return
        self._pending_points.pop()
        self._show_pending(closed=self._current_tool() == TOOL_AREA)

    def _on_finish_shape(self):
        shape_tool = _SHAPE_TOOLS.get(self._current_tool())
        if shape_tool is None:
            return
        kind, geometry_cls, min_points = shape_tool
        if len(self._pending_points) < min_points:
            self._set_status(f"Need at least {min_points} points to finish the {kind.value}.")
            return
        try:
            geometry = geometry_cls(list(self._pending_points))
        except ValidationError as exc:
            self._set_status(f"Invalid shape: {exc}")
            return
        self._cancel_pending_shape()
        self._save_item(kind, geometry)

    # ── Items ────────────────────────────────────────────────────

    def _current_layer_id(self):
        return self._layer_combo.currentData()

    def _save_item(self, kind, geometry):
        document_id = self.session.document_id
        page_number = self.session.page_number
        layer_id = self._current_layer_id()
        self.workers.submit(
            lambda: self.item_store.create(
                self.project_id,
                document_id,
                page_number,
                kind,
                geometry,
                layer_id=layer_id,
            ),
            self._on_item_saved,
        )

    def _on_item_saved(self, item):
        if item.document_id == self.session.document_id and item.page_number == self.session.page_number:
            self._page_items.append(item)
            self._rebuild_page_overlays()
        self._set_status(item_label(item, self._page_calibration))
        self._refresh_totals()

    def _on_delete_item(self):
        row = self._items_list.currentRow()
        if row < 0 or row >= len(self._page_items):
            return
        item = self._page_items[row]
        self.workers.submit(lambda: self.item_store.delete(item.id), lambda _deleted: self._on_item_deleted(item))

    def _on_item_deleted(self, item):
        self._page_items = [existing for existing in self._page_items if existing.id != item.id]
        self._rebuild_page_overlays()
        self._refresh_totals()

    def _refresh_page_items(self):
        document_id = self.session.document_id
        if document_id is None:
            return
        page_number = self.session.page_number
        self.workers.submit(
            lambda: load_page_snapshot(self.item_store, self.calibrations, document_id, page_number),
            lambda snapshot: self._on_page_items_loaded(document_id, page_number, snapshot),
        )

    def _on_page_items_loaded(self, document_id, page_number, snapshot):
        if document_id != self.session.document_id or page_number != self.session.page_number:
            return
        items, calibration = snapshot
        self._page_items = list(items)
        self._page_calibration = calibration
        self._cal_status_label.setText(calibration_status(calibration))
        self._rebuild_page_overlays()

    def _rebuild_page_overlays(self):
        self.canvas.set_overlays(
            [(item.kind.value, item.geometry.geom_type, item.geometry.points) for item in self._page_items]
        )
        self._items_list.clear()
        for item in self._page_items:
            self._items_list.addItem(item_label(item, self._page_calibration))

    # ── Calibration ──────────────────────────────────────────────

    def _finish_calibration(self):
        start, end = self._pending_points[:2]
        if distance(start, end) < MIN_CALIBRATION_PIXELS:
            self._set_status("Points too close. Try again.")
            self._cancel_pending_shape()
            return
        text, ok = QInputDialog.getText(
            self, "Calibrate", "Enter the real-world length of this line\n(e.g. 3m, 2500mm, 10ft, 10' 6\"):"
        )
        self._cancel_pending_shape()
        if not ok or not text.strip():
            self._set_status("Calibration cancelled.")
            return
        try:
            meters = parse_length_to_meters(text.strip(), default_unit=self._display_unit())
        except ValidationError as exc:
            self._set_status(f"Error: {exc}")
            return
        page_number = self.session.page_number if self._cal_page_scope_check.isChecked() else None
        scope = CalibrationScope(self.session.document_id, page_number)
        self.workers.submit(
            lambda: self.calibrations.get(scope),
            lambda existing: self._on_calibration_scope_checked(scope, start, end, meters, existing),
        )

    def _on_calibration_scope_checked(self, scope, start, end, meters, existing):
        if existing is not None:
            answer = QMessageBox.question(
                self,
                "Replace Calibration",
                f"{self.calibrations.describe_scope(scope)} is already calibrated.\nReplace the existing calibration?",
            )
            if answer != QMessageBox.Yes:
                self._set_status("Calibration kept.")
                return
        self.workers.submit(
            lambda: self.calibrations.calibrate_from_line(
                self.project_id,
                scope,
                start,
                end,
                meters,
                unit="m",
                display_unit=self._display_unit(),
                confirm_replace=existing is not None,
            ),
            self._on_calibrated,
        )

    def _on_calibrated(self, calibration):
        logger.info("Calibrated %s at %.6g m/px", self.calibrations.describe_scope(calibration.scope), calibration.ratio)
        self._set_status(f"Calibrated: {calibration_status(calibration)}")
        self._refresh_page_items()
        self._refresh_totals()

    def _on_clear_calibration(self):
        if self.session.document_id is None:
            return
        page_number = self.session.page_number if self._cal_page_scope_check.isChecked() else None
        scope = CalibrationScope(self.session.document_id, page_number)
        self.workers.submit(lambda: self.calibrations.clear(scope), lambda _cleared: self._on_calibrated_cleared())

    def _on_calibrated_cleared(self):
        self._refresh_page_items()
        self._refresh_totals()

    def _display_unit(self):
        return self._unit_combo.currentText() or str(self.config.get("display_unit") or "m")

    # ── Layers ───────────────────────────────────────────────────

    def _refresh_layers(self):
        self.workers.submit(lambda: self.item_store.list_layers(self.project_id), self._on_layers_loaded)

    def _on_layers_loaded(self, layers):
        selected = self._layer_combo.currentData()
        self._layer_names = {layer.id: layer.name for layer in layers}
        self._layer_combo.blockSignals(True)
        self._layer_combo.clear()
        self._layer_combo.addItem("No layer", None)
        for layer in layers:
            self._layer_combo.addItem(layer.name, layer.id)
        index = self._layer_combo.findData(selected)
        self._layer_combo.setCurrentIndex(index if index >= 0 else 0)
        self._layer_combo.blockSignals(False)

    def _on_add_layer(self):
        name, ok = QInputDialog.getText(self, "New Layer", "Layer name:")
        if not ok or not name.strip():
            return
        self.workers.submit(lambda: self.item_store.create_layer(self.project_id, name), lambda _layer: self._refresh_layers())

    # ── Totals ───────────────────────────────────────────────────

    def _refresh_totals(self):
        self.workers.submit(lambda: self.quantities.aggregate(self.project_id), self._on_totals_loaded)

    def _on_totals_loaded(self, aggregates):
        self._totals_list.clear()
        for key in sorted(aggregates, key=lambda k: (k.kind.value, k.layer_id or "")):
            self._totals_list.addItem(aggregate_label(aggregates[key], self._layer_names or {}))
        if hasattr(self, "_refresh_estimate"):
            self._refresh_estimate()


__all__ = ["TakeoffMixin", "aggregate_label", "calibration_status", "item_label", "load_page_snapshot"]
