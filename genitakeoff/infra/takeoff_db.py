import json
import logging
import os
import sqlite3
import threading
import time
import uuid

from genitakeoff.constants import DEFAULT_LAYER_UOM, DEFAULT_ROW_UOM, DEFAULT_SHEET_NAME
from genitakeoff.paths import TAKEOFF_DB_FILE

logger = logging.getLogger(__name__)


def _new_id():
    return uuid.uuid4().hex


def _now():
    return int(time.time())


class TakeoffDatabase:
    """SQLite persistence for calibrations, takeoff items and estimate sheets.

    Every public write commits on its own, like a remote row API would. Callers
    that need several writes to succeed together (item + geometry) compensate
    themselves; see ``genitakeoff.services.takeoff_store``.

    Connections are thread-local, so ``db_path`` must be a file when the
    database is used from worker threads.
    """

    SCHEMA_VERSION = 2

    _ROW_FIELDS = (
        "row_index",
        "code",
        "description",
        "uom",
        "qty_source",
        "qty_manual",
        "link_kind",
        "link_layer_id",
        "unit_cost",
        "markup_pct",
    )

    def __init__(self, db_path=None):
        self.db_path = db_path or TAKEOFF_DB_FILE
        self._local = threading.local()
        db_dir = os.path.dirname(self.db_path)
        if db_dir:
            os.makedirs(db_dir, exist_ok=True)
        self._init_schema()

    @property
    def conn(self):
        """Thread-local database connection."""
        if not hasattr(self._local, "conn") or self._local.conn is None:
            self._local.conn = sqlite3.connect(self.db_path, check_same_thread=False)
            self._local.conn.row_factory = sqlite3.Row
            self._local.conn.execute("PRAGMA journal_mode=WAL")
            self._local.conn.execute("PRAGMA foreign_keys=ON")
        return self._local.conn

    def close(self):
        conn = getattr(self._local, "conn", None)
        if conn is not None:
            conn.close()
            self._local.conn = None

    def _init_schema(self):
        conn = self.conn
        conn.executescript(
            """
            CREATE TABLE IF NOT EXISTS schema_version (
                version INTEGER PRIMARY KEY
            );

            CREATE TABLE IF NOT EXISTS takeoff_layers (
                id TEXT PRIMARY KEY,
                project_id TEXT NOT NULL,
                name TEXT NOT NULL,
                default_uom TEXT NOT NULL DEFAULT 'ea',
                kind_constraint TEXT,
                created_at INTEGER NOT NULL,
                updated_at INTEGER NOT NULL
            );

            CREATE TABLE IF NOT EXISTS takeoff_calibrations (
                id TEXT PRIMARY KEY,
                project_id TEXT NOT NULL,
                document_id TEXT NOT NULL,
                page_number INTEGER,
                ratio REAL NOT NULL,
                display_unit TEXT NOT NULL DEFAULT 'm',
                label TEXT,
                created_at INTEGER NOT NULL,
                updated_at INTEGER NOT NULL
            );

            CREATE TABLE IF NOT EXISTS takeoff_items (
                id TEXT PRIMARY KEY,
                project_id TEXT NOT NULL,
                document_id TEXT NOT NULL,
                page_number INTEGER NOT NULL,
                kind TEXT NOT NULL,
                layer_id TEXT REFERENCES takeoff_layers(id) ON DELETE SET NULL,
                name TEXT,
                quantity REAL,
                uom TEXT,
                meta TEXT NOT NULL DEFAULT '{}',
                created_at INTEGER NOT NULL,
                updated_at INTEGER NOT NULL
            );

            CREATE TABLE IF NOT EXISTS takeoff_geometries (
                id TEXT PRIMARY KEY,
                takeoff_item_id TEXT NOT NULL UNIQUE REFERENCES takeoff_items(id) ON DELETE CASCADE,
                geom_type TEXT NOT NULL,
                points TEXT NOT NULL,
                bbox TEXT,
                created_at INTEGER NOT NULL,
                updated_at INTEGER NOT NULL
            );

            CREATE TABLE IF NOT EXISTS estimate_sheets (
                id TEXT PRIMARY KEY,
                project_id TEXT NOT NULL,
                name TEXT NOT NULL DEFAULT 'Estimate',
                created_at INTEGER NOT NULL,
                updated_at INTEGER NOT NULL
            );

            CREATE TABLE IF NOT EXISTS estimate_rows (
                id TEXT PRIMARY KEY,
                sheet_id TEXT NOT NULL REFERENCES estimate_sheets(id) ON DELETE CASCADE,
                row_index INTEGER NOT NULL,
                code TEXT,
                description TEXT NOT NULL DEFAULT '',
                uom TEXT NOT NULL DEFAULT 'ea',
                qty_source TEXT NOT NULL DEFAULT 'manual',
                qty_manual REAL,
                link_kind TEXT,
                link_layer_id TEXT,
                unit_cost REAL NOT NULL DEFAULT 0,
                markup_pct REAL NOT NULL DEFAULT 0,
                created_at INTEGER NOT NULL,
                updated_at INTEGER NOT NULL
            );

            CREATE INDEX IF NOT EXISTS idx_layers_project ON takeoff_layers(project_id);
            CREATE INDEX IF NOT EXISTS idx_calibrations_project ON takeoff_calibrations(project_id);
            CREATE UNIQUE INDEX IF NOT EXISTS idx_calibrations_scope
                ON takeoff_calibrations(document_id, IFNULL(page_number, 0));
            CREATE INDEX IF NOT EXISTS idx_items_project ON takeoff_items(project_id);
            CREATE INDEX IF NOT EXISTS idx_items_document_page ON takeoff_items(document_id, page_number);
            CREATE INDEX IF NOT EXISTS idx_items_layer ON takeoff_items(layer_id);
            CREATE INDEX IF NOT EXISTS idx_sheets_project ON estimate_sheets(project_id);
            CREATE INDEX IF NOT EXISTS idx_rows_sheet ON estimate_rows(sheet_id, row_index);
        """
        )
        current_version = self._current_schema_version(conn)
        if current_version < 1:
            self._migrate_to_v1(conn)
        if current_version < 2:
            self._migrate_to_v2(conn)
        self._set_schema_version(conn, self.SCHEMA_VERSION)
        conn.commit()

    @staticmethod
    def _current_schema_version(conn):
        cur = conn.execute("SELECT version FROM schema_version ORDER BY version DESC LIMIT 1")
        row = cur.fetchone()
        return int(row["version"]) if row else 0

    @staticmethod
    def _set_schema_version(conn, version):
        conn.execute("DELETE FROM schema_version")
        conn.execute("INSERT INTO schema_version (version) VALUES (?)", (int(version),))

    @staticmethod
    def _migrate_to_v1(conn):
        # Baseline schema is created in _init_schema via CREATE TABLE IF NOT EXISTS.
        _ = conn

    @staticmethod
    def _migrate_to_v2(conn):
        conn.executescript(
            """
            CREATE TABLE IF NOT EXISTS viewer_states (
                document_id TEXT PRIMARY KEY,
                project_id TEXT NOT NULL,
                page_number INTEGER NOT NULL DEFAULT 1,
                rotation INTEGER NOT NULL DEFAULT 0,
                zoom REAL NOT NULL DEFAULT 1,
                updated_at INTEGER NOT NULL
            );
            CREATE INDEX IF NOT EXISTS idx_viewer_states_project ON viewer_states(project_id);
            """
        )

    # -- layers -----------------------------------------------------------

    def insert_layer(self, project_id, name, default_uom=DEFAULT_LAYER_UOM, kind_constraint=None):
        now = _now()
        layer_id = _new_id()
        conn = self.conn
        conn.execute(
            """INSERT INTO takeoff_layers
               (id, project_id, name, default_uom, kind_constraint, created_at, updated_at)
               VALUES (?, ?, ?, ?, ?, ?, ?)""",
            (layer_id, project_id, name, default_uom or DEFAULT_LAYER_UOM, kind_constraint, now, now),
        )
        conn.commit()
        return self.get_layer(layer_id)

    def get_layer(self, layer_id):
        row = self.conn.execute("SELECT * FROM takeoff_layers WHERE id = ?", (layer_id,)).fetchone()
        return dict(row) if row else None

    def list_layers(self, project_id):
        cur = self.conn.execute(
            "SELECT * FROM takeoff_layers WHERE project_id = ? ORDER BY created_at, name",
            (project_id,),
        )
        return [dict(row) for row in cur.fetchall()]

    def delete_layer(self, layer_id):
        """Delete a layer. Its items become unlayered and linked estimate rows follow them."""
        conn = self.conn
        conn.execute(
            "UPDATE estimate_rows SET link_layer_id = NULL, updated_at = ? WHERE link_layer_id = ?",
            (_now(), layer_id),
        )
        cur = conn.execute("DELETE FROM takeoff_layers WHERE id = ?", (layer_id,))
        conn.commit()
        return cur.rowcount > 0

    # -- calibrations -----------------------------------------------------

    @staticmethod
    def _scope_clause(page_number):
        if page_number is None:
            return "document_id = ? AND page_number IS NULL", ()
        return "document_id = ? AND page_number = ?", (int(page_number),)

    def get_calibration(self, document_id, page_number=None):
        clause, extra = self._scope_clause(page_number)
        row = self.conn.execute(
            f"SELECT * FROM takeoff_calibrations WHERE {clause}",
            (document_id, *extra),
        ).fetchone()
        return dict(row) if row else None

    def list_calibrations(self, project_id):
        """Calibrations for every drawing the project has set or measured on.

        Calibrations belong to the drawing, so a project sees the ones another
        project set on a shared document. ``project_id`` on the row records who
        set it last.
        """
        cur = self.conn.execute(
            """SELECT * FROM takeoff_calibrations
               WHERE project_id = ?
                  OR document_id IN (SELECT document_id FROM takeoff_items WHERE project_id = ?)
               ORDER BY document_id, page_number""",
            (project_id, project_id),
        )
        return [dict(row) for row in cur.fetchall()]

    def save_calibration(self, project_id, document_id, page_number, ratio, display_unit, label=None):
        """Insert or replace the calibration for one scope."""
        now = _now()
        conn = self.conn
        existing = self.get_calibration(document_id, page_number)
        if existing:
            conn.execute(
                """UPDATE takeoff_calibrations
                   SET project_id = ?, ratio = ?, display_unit = ?, label = ?, updated_at = ?
                   WHERE id = ?""",
                (project_id, float(ratio), display_unit, label, now, existing["id"]),
            )
            cal_id = existing["id"]
        else:
            cal_id = _new_id()
            conn.execute(
                """INSERT INTO takeoff_calibrations
                   (id, project_id, document_id, page_number, ratio, display_unit, label, created_at, updated_at)
                   VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)""",
                (cal_id, project_id, document_id, page_number, float(ratio), display_unit, label, now, now),
            )
        conn.commit()
        return dict(conn.execute("SELECT * FROM takeoff_calibrations WHERE id = ?", (cal_id,)).fetchone())

    def delete_calibration(self, document_id, page_number=None):
        clause, extra = self._scope_clause(page_number)
        conn = self.conn
        cur = conn.execute(f"DELETE FROM takeoff_calibrations WHERE {clause}", (document_id, *extra))
        conn.commit()
        return cur.rowcount > 0

    # -- items and geometry -----------------------------------------------

    _ITEM_SELECT = (
        "SELECT i.*, g.geom_type AS geom_type, g.points AS geom_points, g.bbox AS geom_bbox "
        "FROM takeoff_items i LEFT JOIN takeoff_geometries g ON g.takeoff_item_id = i.id"
    )

    @staticmethod
    def _row_to_item(row):
        item = dict(row)
        item["meta"] = json.loads(item.get("meta") or "{}")
        points = item.pop("geom_points", None)
        bbox = item.pop("geom_bbox", None)
        geom_type = item.pop("geom_type", None)
        item["geometry"] = None
        if geom_type is not None:
            item["geometry"] = {
                "geom_type": geom_type,
                "points": json.loads(points or "[]"),
                "bbox": json.loads(bbox) if bbox else None,
            }
        return item

    def insert_item(
        self,
        project_id,
        document_id,
        page_number,
        kind,
        layer_id=None,
        name=None,
        quantity=None,
        uom=None,
        meta=None,
    ):
        now = _now()
        item_id = _new_id()
        conn = self.conn
        conn.execute(
            """INSERT INTO takeoff_items
               (id, project_id, document_id, page_number, kind, layer_id, name,
                quantity, uom, meta, created_at, updated_at)
               VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
            (
                item_id,
                project_id,
                document_id,
                int(page_number),
                kind,
                layer_id,
                name,
                quantity,
                uom,
                json.dumps(meta or {}),
                now,
                now,
            ),
        )
        conn.commit()
        row = conn.execute("SELECT * FROM takeoff_items WHERE id = ?", (item_id,)).fetchone()
        item = dict(row)
        item["meta"] = json.loads(item.get("meta") or "{}")
        return item

    def insert_geometry(self, item_id, geom_type, points, bbox=None):
        now = _now()
        conn = self.conn
        conn.execute(
            """INSERT INTO takeoff_geometries
               (id, takeoff_item_id, geom_type, points, bbox, created_at, updated_at)
               VALUES (?, ?, ?, ?, ?, ?, ?)""",
            (_new_id(), item_id, geom_type, json.dumps(points), json.dumps(bbox) if bbox else None, now, now),
        )
        conn.commit()

    def update_geometry(self, item_id, geom_type, points, bbox=None):
        now = _now()
        conn = self.conn
        cur = conn.execute(
            """UPDATE takeoff_geometries
               SET geom_type = ?, points = ?, bbox = ?, updated_at = ?
               WHERE takeoff_item_id = ?""",
            (geom_type, json.dumps(points), json.dumps(bbox) if bbox else None, now, item_id),
        )
        if cur.rowcount:
            conn.execute("UPDATE takeoff_items SET updated_at = ? WHERE id = ?", (now, item_id))
        conn.commit()
        return cur.rowcount > 0

    def delete_item(self, item_id):
        conn = self.conn
        conn.execute("DELETE FROM takeoff_geometries WHERE takeoff_item_id = ?", (item_id,))
        cur = conn.execute("DELETE FROM takeoff_items WHERE id = ?", (item_id,))
        conn.commit()
        return cur.rowcount > 0

    def get_item(self, item_id):
        row = self.conn.execute(f"{self._ITEM_SELECT} WHERE i.id = ?", (item_id,)).fetchone()
        return self._row_to_item(row) if row else None

    def list_items_by_page(self, document_id, page_number):
        cur = self.conn.execute(
            f"{self._ITEM_SELECT} WHERE i.document_id = ? AND i.page_number = ? ORDER BY i.created_at, i.rowid",
            (document_id, int(page_number)),
        )
        return [self._row_to_item(row) for row in cur.fetchall()]

    def list_items_by_project(self, project_id):
        cur = self.conn.execute(
            f"{self._ITEM_SELECT} WHERE i.project_id = ? ORDER BY i.created_at, i.rowid",
            (project_id,),
        )
        return [self._row_to_item(row) for row in cur.fetchall()]

    def count_items(self, project_id=None):
        if project_id:
            cur = self.conn.execute("SELECT COUNT(*) AS count FROM takeoff_items WHERE project_id = ?", (project_id,))
        else:
            cur = self.conn.execute("SELECT COUNT(*) AS count FROM takeoff_items")
        return cur.fetchone()["count"]

    # -- estimate sheets --------------------------------------------------

    def insert_sheet(self, project_id, name=DEFAULT_SHEET_NAME):
        now = _now()
        sheet_id = _new_id()
        conn = self.conn
        conn.execute(
            "INSERT INTO estimate_sheets (id, project_id, name, created_at, updated_at) VALUES (?, ?, ?, ?, ?)",
            (sheet_id, project_id, name or DEFAULT_SHEET_NAME, now, now),
        )
        conn.commit()
        return self.get_sheet(sheet_id)

    def get_sheet(self, sheet_id):
        row = self.conn.execute("SELECT * FROM estimate_sheets WHERE id = ?", (sheet_id,)).fetchone()
        return dict(row) if row else None

    def list_sheets(self, project_id):
        cur = self.conn.execute(
            "SELECT * FROM estimate_sheets WHERE project_id = ? ORDER BY created_at, rowid",
            (project_id,),
        )
        return [dict(row) for row in cur.fetchall()]

    def next_row_index(self, sheet_id):
        row = self.conn.execute(
            "SELECT COALESCE(MAX(row_index) + 1, 0) AS next_index FROM estimate_rows WHERE sheet_id = ?",
            (sheet_id,),
        ).fetchone()
        return int(row["next_index"])

    def insert_row(self, sheet_id, **fields):
        now = _now()
        row_id = _new_id()
        values = {name: fields.get(name) for name in self._ROW_FIELDS}
        if values["row_index"] is None:
            values["row_index"] = self.next_row_index(sheet_id)
        values["description"] = values["description"] or ""
        values["uom"] = values["uom"] or DEFAULT_ROW_UOM
        values["qty_source"] = values["qty_source"] or "manual"
        values["unit_cost"] = values["unit_cost"] or 0.0
        values["markup_pct"] = values["markup_pct"] or 0.0
        columns = ", ".join(self._ROW_FIELDS)
        placeholders = ", ".join("?" * len(self._ROW_FIELDS))
        conn = self.conn
        conn.execute(
            f"""INSERT INTO estimate_rows (id, sheet_id, {columns}, created_at, updated_at)
                VALUES (?, ?, {placeholders}, ?, ?)""",
            (row_id, sheet_id, *[values[name] for name in self._ROW_FIELDS], now, now),
        )
        conn.commit()
        return self.get_row(row_id)

    def get_row(self, row_id):
        row = self.conn.execute("SELECT * FROM estimate_rows WHERE id = ?", (row_id,)).fetchone()
        return dict(row) if row else None

    def update_row(self, row_id, **fields):
        updates = {name: value for name, value in fields.items() if name in self._ROW_FIELDS}
        unknown = set(fields) - set(self._ROW_FIELDS)
        if unknown:
            raise ValueError(f"Unknown estimate row fields: {', '.join(sorted(unknown))}")
        if not updates:
            return self.get_row(row_id)
        assignments = ", ".join(f"{name} = ?" for name in updates)
        conn = self.conn
        conn.execute(
            f"UPDATE estimate_rows SET {assignments}, updated_at = ? WHERE id = ?",
            (*updates.values(), _now(), row_id),
        )
        conn.commit()
        return self.get_row(row_id)

    def delete_row(self, row_id):
        conn = self.conn
        cur = conn.execute("DELETE FROM estimate_rows WHERE id = ?", (row_id,))
        conn.commit()
        return cur.rowcount > 0

    def list_rows(self, sheet_id):
        cur = self.conn.execute(
            "SELECT * FROM estimate_rows WHERE sheet_id = ? ORDER BY row_index, rowid",
            (sheet_id,),
        )
        return [dict(row) for row in cur.fetchall()]

    # -- viewer state -----------------------------------------------------

    def get_viewer_state(self, document_id):
        row = self.conn.execute("SELECT * FROM viewer_states WHERE document_id = ?", (document_id,)).fetchone()
        return dict(row) if row else None

    def save_viewer_state(self, project_id, document_id, page_number, rotation, zoom):
        conn = self.conn
        conn.execute(
            """INSERT OR REPLACE INTO viewer_states
               (document_id, project_id, page_number, rotation, zoom, updated_at)
               VALUES (?, ?, ?, ?, ?, ?)""",
            (document_id, project_id, int(page_number), int(rotation), float(zoom), _now()),
        )
        conn.commit()


__all__ = ["TakeoffDatabase"]
