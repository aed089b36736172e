import logging

from PySide6.QtCore import Qt
from PySide6.QtWidgets import QApplication, QTableWidgetItem

from genitakeoff.constants import DEFAULT_ROW_UOM
from genitakeoff.domain.estimate import EstimateRow, QtySource

logger = logging.getLogger(__name__)

# column -> EstimateRow field for editable cells
_EDITABLE_COLUMNS = {
    0: "code",
    1: "description",
    2: "uom",
    4: "qty_manual",
    5: "unit_cost",
    6: "markup_pct",
}
_NUMERIC_FIELDS = {"qty_manual", "unit_cost", "markup_pct"}


def parse_cell_value(field_name, text):
    text = (text or "").strip()
    if field_name not in _NUMERIC_FIELDS:
        return text or None
    if not text:
        return 0.0
    return float(text.replace(",", "").rstrip("%"))


def row_cells(totals) -> list[str]:
    row = totals.row
    quantity = f"{totals.quantity:,.2f}"
    if totals.uncalibrated:
        quantity += " *"
    return [
        row.code or "",
        row.description,
        row.uom,
        row.qty_source.value,
        quantity,
        f"{row.unit_cost:,.2f}",
        f"{row.markup_pct:g}",
        f"{totals.subtotal:,.2f}",
        f"{totals.total:,.2f}",
    ]


def sheet_clipboard_text(sheet_totals) -> str:
    lines = ["Code\tDescription\tQty\tUoM\tUnit Cost\tMarkup %\tTotal"]
    for totals in sheet_totals.rows:
        row = totals.row
        lines.append(
            f"{row.code or ''}\t{row.description}\t{totals.quantity:.2f}\t{row.uom}\t"
            f"{row.unit_cost:.2f}\t{row.markup_pct:g}\t{totals.total:.2f}"
        )
    lines.append(f"\t\t\t\t\tSubtotal\t{sheet_totals.subtotal:.2f}")
    lines.append(f"\t\t\t\t\tTotal\t{sheet_totals.grand_total:.2f}")
    return "\n".join(lines)


class EstimateMixin:
    _sheet_id = None
    _sheet_totals = None
    _estimate_loading = False

    def _open_estimate_sheet(self):
        self.workers.submit(lambda: self.estimates.open_default_sheet(self.project_id), self._on_sheet_opened)

    def _on_sheet_opened(self, sheet):
        self._sheet_id = sheet["id"]
        self._estimate_title.setText(sheet.get("name") or "Estimate")
        self._refresh_estimate()

    def _refresh_estimate(self):
        if self._sheet_id is None:
            return
        self.workers.submit(lambda: self.estimates.sheet_totals(self._sheet_id), self._on_estimate_loaded)

    def _on_estimate_loaded(self, sheet_totals):
        self._sheet_totals = sheet_totals
        self._estimate_loading = True
        try:
            table = self._estimate_table
            table.setRowCount(len(sheet_totals.rows))
            for row_idx, totals in enumerate(sheet_totals.rows):
                for col_idx, text in enumerate(row_cells(totals)):
                    cell = QTableWidgetItem(text)
                    editable = col_idx in _EDITABLE_COLUMNS
                    if col_idx == 4 and totals.row.qty_source is QtySource.TAKEOFF:
                        editable = False
                    if not editable:
                        cell.setFlags(cell.flags() & ~Qt.ItemIsEditable)
                    if col_idx >= 4:
                        cell.setTextAlignment(Qt.AlignRight | Qt.AlignVCenter)
                    table.setItem(row_idx, col_idx, cell)
        finally:
            self._estimate_loading = False
        self._grand_total_label.setText(f"Total: {sheet_totals.grand_total:,.2f}")
        if sheet_totals.has_uncalibrated_rows:
            self._estimate_warning_label.setText("* includes uncalibrated takeoff quantities")
        else:
            self._estimate_warning_label.setText("")

    def _row_at(self, row_idx):
        if self._sheet_totals is None or row_idx < 0 or row_idx >= len(self._sheet_totals.rows):
            return None
        return self._sheet_totals.rows[row_idx].row

    def _on_estimate_cell_changed(self, row_idx, col_idx):
        if self._estimate_loading:
            return
        field_name = _EDITABLE_COLUMNS.get(col_idx)
        row = self._row_at(row_idx)
        if field_name is None or row is None:
            return
        cell = self._estimate_table.item(row_idx, col_idx)
        try:
            value = parse_cell_value(field_name, cell.text() if cell else "")
        except ValueError:
            self._set_status(f"Not a number: {cell.text()}")
            self._refresh_estimate()
            return
        if field_name == "description":
            value = value or ""
        elif field_name == "uom":
            value = value or DEFAULT_ROW_UOM
        self.workers.submit(
            lambda: self.estimates.update_row(row.id, **{field_name: value}),
            lambda _updated: self._refresh_estimate(),
            on_error=self._on_estimate_edit_error,
        )

    def _on_estimate_edit_error(self, trace_text):
        last_line = trace_text.strip().splitlines()[-1] if trace_text.strip() else "Edit failed"
        logger.warning("Estimate edit rejected: %s", last_line)
        self._set_status(last_line)
        self._refresh_estimate()

    def _on_add_estimate_row(self):
        if self._sheet_id is None:
            return
        draft = EstimateRow(description="New item", qty_manual=0.0)
        self.workers.submit(lambda: self.estimates.add_row(self._sheet_id, draft), lambda _row: self._refresh_estimate())

    def _on_delete_estimate_row(self):
        row = self._row_at(self._estimate_table.currentRow())
        if row is None:
            return
        self.workers.submit(lambda: self.estimates.delete_row(row.id), lambda _deleted: self._refresh_estimate())

    def _on_import_takeoff_rows(self):
        if self._sheet_id is None:
            return
        self.workers.submit(lambda: self.estimates.import_from_takeoff(self._sheet_id), self._on_takeoff_rows_imported)

    def _on_takeoff_rows_imported(self, added):
        self._set_status(f"Imported {len(added)} takeoff row(s)" if added else "Estimate already lists every takeoff group")
        self._refresh_estimate()

    def _on_copy_estimate(self):
        if not self._sheet_totals or not self._sheet_totals.rows:
            return
        QApplication.clipboard().setText(sheet_clipboard_text(self._sheet_totals))
        self._set_status("Estimate copied to clipboard")


__all__ = ["EstimateMixin", "parse_cell_value", "row_cells", "sheet_clipboard_text"]
