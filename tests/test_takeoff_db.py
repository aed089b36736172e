import sqlite3

import pytest

from genitakeoff.infra.takeoff_db import TakeoffDatabase


def _db(tmp_path):
    return TakeoffDatabase(str(tmp_path / "takeoff.db"))


def test_schema_is_created_and_versioned(tmp_path):
    db = _db(tmp_path)
    tables = {row["name"] for row in db.conn.execute("SELECT name FROM sqlite_master WHERE type = 'table'")}
    assert {
        "takeoff_layers",
        "takeoff_calibrations",
        "takeoff_items",
        "takeoff_geometries",
        "estimate_sheets",
        "estimate_rows",
        "viewer_states",
    } <= tables
    assert db._current_schema_version(db.conn) == TakeoffDatabase.SCHEMA_VERSION
    db.close()


def test_reopening_a_v1_database_adds_viewer_states(tmp_path):
    path = str(tmp_path / "takeoff.db")
    db = TakeoffDatabase(path)
    db.conn.execute("DROP TABLE viewer_states")
    db._set_schema_version(db.conn, 1)
    db.conn.commit()
    db.close()

    reopened = TakeoffDatabase(path)
    reopened.save_viewer_state("proj", "doc-1", 3, 90, 1.5)
    assert reopened.get_viewer_state("doc-1")["rotation"] == 90
    assert reopened._current_schema_version(reopened.conn) == 2


def test_one_calibration_per_scope(tmp_path):
    db = _db(tmp_path)
    first = db.save_calibration("proj", "doc-1", None, 0.01, "m")
    second = db.save_calibration("proj", "doc-1", None, 0.02, "ft")
    db.save_calibration("proj", "doc-1", 2, 0.03, "m")

    assert first["id"] == second["id"]
    assert db.get_calibration("doc-1")["ratio"] == 0.02
    assert db.get_calibration("doc-1", 2)["ratio"] == 0.03
    assert len(db.list_calibrations("proj")) == 2

    with pytest.raises(sqlite3.IntegrityError):
        db.conn.execute(
            "INSERT INTO takeoff_calibrations (id, project_id, document_id, page_number, ratio, created_at, updated_at)"
            " VALUES ('x', 'proj', 'doc-1', NULL, 1.0, 0, 0)"
        )

    assert db.delete_calibration("doc-1", 2)
    assert db.get_calibration("doc-1", 2) is None


def test_item_rows_carry_their_geometry(tmp_path):
    db = _db(tmp_path)
    item = db.insert_item("proj", "doc-1", 1, "line", meta={"color": "red"})
    db.insert_geometry(item["id"], "polyline", [{"x": 0, "y": 0}, {"x": 3, "y": 4}], [0, 0, 3, 4])

    stored = db.get_item(item["id"])
    assert stored["meta"] == {"color": "red"}
    assert stored["geometry"]["geom_type"] == "polyline"
    assert stored["geometry"]["points"][1] == {"x": 3, "y": 4}
    assert stored["geometry"]["bbox"] == [0, 0, 3, 4]
    assert [row["id"] for row in db.list_items_by_page("doc-1", 1)] == [item["id"]]
    assert db.list_items_by_page("doc-1", 2) == []


def test_deleting_an_item_removes_its_geometry(tmp_path):
    db = _db(tmp_path)
    item = db.insert_item("proj", "doc-1", 1, "count")
    db.insert_geometry(item["id"], "point", [{"x": 1, "y": 1}])

    assert db.delete_item(item["id"])
    assert db.count_items("proj") == 0
    remaining = db.conn.execute("SELECT COUNT(*) AS count FROM takeoff_geometries").fetchone()["count"]
    assert remaining == 0


def test_geometry_requires_an_existing_item(tmp_path):
    db = _db(tmp_path)
    with pytest.raises(sqlite3.IntegrityError):
        db.insert_geometry("missing", "point", [{"x": 1, "y": 1}])


def test_deleting_a_layer_unassigns_its_items(tmp_path):
    db = _db(tmp_path)
    layer = db.insert_layer("proj", "Windows")
    item = db.insert_item("proj", "doc-1", 1, "count", layer_id=layer["id"])

    assert db.delete_layer(layer["id"])
    assert db.get_item(item["id"])["layer_id"] is None


def test_rows_append_and_update(tmp_path):
    db = _db(tmp_path)
    sheet = db.insert_sheet("proj")
    first = db.insert_row(sheet["id"], description="a")
    second = db.insert_row(sheet["id"], description="b", row_index=None)
    assert (first["row_index"], second["row_index"]) == (0, 1)
    assert first["uom"] == "ea"
    assert first["qty_source"] == "manual"

    updated = db.update_row(first["id"], unit_cost=12.5)
    assert updated["unit_cost"] == 12.5
    with pytest.raises(ValueError):
        db.update_row(first["id"], colour="blue")

    assert [row["description"] for row in db.list_rows(sheet["id"])] == ["a", "b"]
    assert db.delete_row(second["id"])
    assert len(db.list_rows(sheet["id"])) == 1
