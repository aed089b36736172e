import logging

from genitakeoff.constants import DEFAULT_LAYER_UOM
from genitakeoff.domain.geometry import Geometry, geometry_from_payload
from genitakeoff.domain.takeoff import (
    TakeoffItem,
    TakeoffKind,
    TakeoffLayer,
    ensure_geometry_matches,
    validate_page_number,
    validate_quantity,
)
from genitakeoff.errors import AtomicWriteError, ProjectError, ValidationError
from genitakeoff.services.persistence import run_db

logger = logging.getLogger(__name__)


def _layer_from_row(row) -> TakeoffLayer:
    constraint = row.get("kind_constraint")
    return TakeoffLayer(
        id=row["id"],
        project_id=row["project_id"],
        name=row["name"],
        default_uom=row.get("default_uom") or DEFAULT_LAYER_UOM,
        kind_constraint=TakeoffKind.parse(constraint) if constraint else None,
    )


def _item_from_row(row) -> TakeoffItem | None:
    geom = row.get("geometry")
    if not geom:
        logger.warning("Takeoff item %s has no geometry; skipping it", row.get("id"))
        return None
    try:
        geometry = geometry_from_payload(geom.get("geom_type"), geom.get("points"))
        kind = TakeoffKind.parse(row.get("kind"))
    except ValidationError as exc:
        logger.warning("Takeoff item %s has unreadable geometry: %s", row.get("id"), exc)
        return None
    return TakeoffItem(
        id=row["id"],
        project_id=row["project_id"],
        document_id=row["document_id"],
        page_number=int(row["page_number"]),
        kind=kind,
        geometry=geometry,
        layer_id=row.get("layer_id"),
        name=row.get("name"),
        quantity=row.get("quantity"),
        uom=row.get("uom"),
        meta=dict(row.get("meta") or {}),
        created_at=int(row.get("created_at") or 0),
        updated_at=int(row.get("updated_at") or 0),
    )


def _items_from_rows(rows) -> list[TakeoffItem]:
    items = []
    for row in rows or []:
        item = _item_from_row(row)
        if item is not None:
            items.append(item)
    return items


def _geometry_columns(geometry: Geometry):
    payload = geometry.to_payload()
    return payload["geom_type"], payload["points"], list(geometry.bbox)


class TakeoffItemStore:
    """Create, edit, list and delete takeoff items with their geometry.

    An item and its geometry are written as two separate rows. If the geometry
    write fails the item row is removed again, so readers never see an item that
    cannot be measured.
    """

    def __init__(self, db):
        self.db = db

    # -- layers -----------------------------------------------------------

    async def create_layer(self, project_id, name, default_uom=DEFAULT_LAYER_UOM, kind_constraint=None):
        clean_name = (name or "").strip()
        if not clean_name:
            raise ValidationError("Layer name is required.")
        constraint = TakeoffKind.parse(kind_constraint).value if kind_constraint else None
        row = await run_db(self.db.insert_layer, project_id, clean_name, default_uom, constraint)
        return _layer_from_row(row)

    async def get_layer(self, layer_id) -> TakeoffLayer | None:
        row = await run_db(self.db.get_layer, layer_id)
        return _layer_from_row(row) if row else None

    async def list_layers(self, project_id) -> list[TakeoffLayer]:
        rows = await run_db(self.db.list_layers, project_id)
        return [_layer_from_row(row) for row in rows]

    async def delete_layer(self, layer_id) -> bool:
        """Remove a layer; its items stay, unlayered, and linked estimate rows follow them."""
        return await run_db(self.db.delete_layer, layer_id)

    # -- items ------------------------------------------------------------

    async def _check_layer(self, project_id, layer_id, kind: TakeoffKind):
        if not layer_id:
            return
        layer = await self.get_layer(layer_id)
        if layer is None or layer.project_id != project_id:
            raise ValidationError(f"Unknown layer: {layer_id}")
        if not layer.accepts(kind):
            raise ValidationError(
                f"Layer '{layer.name}' only accepts {layer.kind_constraint.value} items, not {kind.value}."
            )

    async def create(
        self,
        project_id,
        document_id,
        page_number,
        kind,
        geometry: Geometry,
        layer_id=None,
        name=None,
        quantity=None,
        uom=None,
        meta=None,
    ) -> TakeoffItem:
        kind = TakeoffKind.parse(kind)
        ensure_geometry_matches(kind, geometry)
        page = validate_page_number(page_number)
        override = validate_quantity(quantity)
        if not document_id:
            raise ValidationError("A document is required.")
        await self._check_layer(project_id, layer_id, kind)

        row = await run_db(
            self.db.insert_item,
            project_id,
            document_id,
            page,
            kind.value,
            layer_id=layer_id or None,
            name=name,
            quantity=override,
            uom=uom,
            meta=meta,
        )
        item_id = row["id"]
        geom_type, points, bbox = _geometry_columns(geometry)
        try:
            await run_db(self.db.insert_geometry, item_id, geom_type, points, bbox)
        except Exception as exc:
            await self._discard_orphan(item_id)
            raise AtomicWriteError(f"Could not save geometry for new {kind.value} item: {exc}") from exc

        return TakeoffItem(
            id=item_id,
            project_id=project_id,
            document_id=document_id,
            page_number=page,
            kind=kind,
            geometry=geometry,
            layer_id=row.get("layer_id"),
            name=row.get("name"),
            quantity=row.get("quantity"),
            uom=row.get("uom"),
            meta=dict(row.get("meta") or {}),
            created_at=int(row.get("created_at") or 0),
            updated_at=int(row.get("updated_at") or 0),
        )

    async def _discard_orphan(self, item_id):
        try:
            await run_db(self.db.delete_item, item_id)
        except ProjectError as exc:
            logger.error("Could not remove takeoff item %s after a failed geometry write: %s", item_id, exc)
            raise AtomicWriteError(f"Takeoff item {item_id} was left without geometry: {exc}") from exc
        logger.warning("Removed takeoff item %s after its geometry write failed", item_id)

    async def get(self, item_id) -> TakeoffItem | None:
        row = await run_db(self.db.get_item, item_id)
        return _item_from_row(row) if row else None

    async def replace_geometry(self, item_id, geometry: Geometry) -> TakeoffItem:
        current = await self.get(item_id)
        if current is None:
            raise ValidationError(f"Unknown takeoff item: {item_id}")
        ensure_geometry_matches(current.kind, geometry)
        geom_type, points, bbox = _geometry_columns(geometry)
        updated = await run_db(self.db.update_geometry, item_id, geom_type, points, bbox)
        if not updated:
            await run_db(self.db.insert_geometry, item_id, geom_type, points, bbox)
        refreshed = await self.get(item_id)
        return refreshed or current.with_geometry(geometry, current.updated_at)

    async def delete(self, item_id) -> bool:
        return await run_db(self.db.delete_item, item_id)

    async def list_by_page(self, document_id, page_number) -> list[TakeoffItem]:
        rows = await run_db(self.db.list_items_by_page, document_id, validate_page_number(page_number))
        return _items_from_rows(rows)

    async def list_by_project(self, project_id) -> list[TakeoffItem]:
        rows = await run_db(self.db.list_items_by_project, project_id)
        return _items_from_rows(rows)


__all__ = ["TakeoffItemStore"]
