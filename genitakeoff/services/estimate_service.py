import asyncio
import logging
from dataclasses import replace

from genitakeoff.constants import DEFAULT_ROW_UOM, DEFAULT_SHEET_NAME
from genitakeoff.domain.estimate import (
    EstimateLink,
    EstimateRow,
    QtySource,
    SheetTotals,
    compute_sheet,
    seed_rows_from_aggregates,
)
from genitakeoff.errors import ValidationError
from genitakeoff.services.persistence import run_db

logger = logging.getLogger(__name__)


def _row_from_db(row) -> EstimateRow:
    link = None
    if row.get("link_kind"):
        link = EstimateLink(kind=row["link_kind"], layer_id=row.get("link_layer_id"))
    return EstimateRow(
        id=row["id"],
        sheet_id=row["sheet_id"],
        row_index=int(row.get("row_index") or 0),
        code=row.get("code"),
        description=row.get("description") or "",
        uom=row.get("uom") or DEFAULT_ROW_UOM,
        qty_source=row.get("qty_source") or QtySource.MANUAL,
        qty_manual=row.get("qty_manual"),
        link=link,
        unit_cost=row.get("unit_cost") or 0.0,
        markup_pct=row.get("markup_pct") or 0.0,
    )


def _row_columns(row: EstimateRow) -> dict:
    return {
        "row_index": row.row_index,
        "code": row.code,
        "description": row.description,
        "uom": row.uom,
        "qty_source": row.qty_source.value,
        "qty_manual": row.qty_manual,
        "link_kind": row.link.kind.value if row.link else None,
        "link_layer_id": row.link.layer_id if row.link else None,
        "unit_cost": row.unit_cost,
        "markup_pct": row.markup_pct,
    }


class EstimateService:
    """Estimate sheets whose quantities and totals are derived on every read."""

    def __init__(self, db, quantity_engine, item_store=None):
        self.db = db
        self.quantities = quantity_engine
        self.item_store = item_store

    async def create_sheet(self, project_id, name=DEFAULT_SHEET_NAME) -> dict:
        return await run_db(self.db.insert_sheet, project_id, (name or "").strip() or DEFAULT_SHEET_NAME)

    async def list_sheets(self, project_id) -> list[dict]:
        return await run_db(self.db.list_sheets, project_id)

    async def open_default_sheet(self, project_id) -> dict:
        """First sheet of the project, created on demand."""
        sheets = await self.list_sheets(project_id)
        if sheets:
            return sheets[0]
        return await self.create_sheet(project_id)

    async def _require_sheet(self, sheet_id) -> dict:
        sheet = await run_db(self.db.get_sheet, sheet_id)
        if sheet is None:
            raise ValidationError(f"Unknown estimate sheet: {sheet_id}")
        return sheet

    async def list_rows(self, sheet_id) -> list[EstimateRow]:
        rows = await run_db(self.db.list_rows, sheet_id)
        return [_row_from_db(row) for row in rows]

    async def add_row(self, sheet_id, row: EstimateRow) -> EstimateRow:
        await self._require_sheet(sheet_id)
        columns = _row_columns(row)
        if not row.row_index:
            columns["row_index"] = None
        stored = await run_db(self.db.insert_row, sheet_id, **columns)
        return _row_from_db(stored)

    async def update_row(self, row_id, **changes) -> EstimateRow:
        current = await run_db(self.db.get_row, row_id)
        if current is None:
            raise ValidationError(f"Unknown estimate row: {row_id}")
        try:
            updated = replace(_row_from_db(current), **changes)
        except TypeError as exc:
            raise ValidationError(str(exc)) from exc
        stored = await run_db(self.db.update_row, row_id, **_row_columns(updated))
        return _row_from_db(stored)

    async def delete_row(self, row_id) -> bool:
        return await run_db(self.db.delete_row, row_id)

    async def sheet_totals(self, sheet_id) -> SheetTotals:
        sheet = await self._require_sheet(sheet_id)
        rows, aggregates = await asyncio.gather(
            self.list_rows(sheet_id),
            self.quantities.aggregate(sheet["project_id"]),
        )
        totals = compute_sheet(rows, aggregates)
        if totals.has_uncalibrated_rows:
            logger.warning("Estimate sheet %s uses uncalibrated takeoff quantities", sheet_id)
        return totals

    async def import_from_takeoff(self, sheet_id) -> list[EstimateRow]:
        """Add a takeoff-linked row for each aggregate the sheet does not link yet."""
        sheet = await self._require_sheet(sheet_id)
        project_id = sheet["project_id"]
        aggregates = await self.quantities.aggregate(project_id)
        layers = await self.item_store.list_layers(project_id) if self.item_store else []
        existing = await self.list_rows(sheet_id)
        linked = {row.link.key for row in existing if row.link is not None}
        added = []
        for draft in seed_rows_from_aggregates(aggregates, layers):
            if draft.link.key in linked:
                continue
            added.append(await self.add_row(sheet_id, replace(draft, row_index=0)))
        logger.info("Imported %d takeoff row(s) into sheet %s", len(added), sheet_id)
        return added


__all__ = ["EstimateService"]
