import itertools

import pytest

from genitakeoff.domain.aggregation import AggregateKey, aggregate_items, uncalibrated_keys
from genitakeoff.domain.calibration import Calibration, CalibrationScope, build_resolver
from genitakeoff.domain.geometry import PointGeometry, Polygon, Polyline
from genitakeoff.domain.takeoff import TakeoffItem, TakeoffKind

_ids = itertools.count(1)


def _item(kind, geometry, layer_id=None, page=1, quantity=None, document_id="doc-1"):
    return TakeoffItem(
        id=f"item-{next(_ids)}",
        project_id="proj",
        document_id=document_id,
        page_number=page,
        kind=TakeoffKind.parse(kind),
        geometry=geometry,
        layer_id=layer_id,
        quantity=quantity,
    )


def _mark(x=1.0, y=1.0):
    return PointGeometry([(x, y)])


def _line(length=200.0):
    return Polyline([(0.0, 0.0), (length, 0.0)])


SQUARE = Polygon([(0.0, 0.0), (10.0, 0.0), (10.0, 10.0), (0.0, 10.0)])
DOC_CAL = Calibration(scope=CalibrationScope("doc-1"), ratio=0.01)


def test_counts_need_no_calibration():
    items = [_item("count", _mark(), layer_id="windows") for _ in range(3)]
    result = aggregate_items(items, build_resolver([]))
    agg = result[AggregateKey.of("count", "windows")]
    assert agg.quantity == 3.0
    assert agg.item_count == 3
    assert agg.calibrated
    assert agg.unit == "ea"


def test_lengths_and_areas_use_the_calibration_ratio():
    items = [_item("line", _line(200.0)), _item("area", SQUARE)]
    result = aggregate_items(items, build_resolver([DOC_CAL]))
    assert result[AggregateKey.of("line")].quantity == pytest.approx(2.0)
    assert result[AggregateKey.of("line")].unit == "m"
    assert result[AggregateKey.of("area")].quantity == pytest.approx(0.01)
    assert result[AggregateKey.of("area")].unit == "m2"


def test_uncalibrated_items_are_flagged_not_guessed():
    items = [_item("line", _line()), _item("line", _line(), document_id="doc-2")]
    result = aggregate_items(items, build_resolver([DOC_CAL]))
    agg = result[AggregateKey.of("line")]
    assert agg.quantity == pytest.approx(2.0)
    assert agg.item_count == 2
    assert agg.uncalibrated_count == 1
    assert not agg.calibrated
    assert uncalibrated_keys(result) == [AggregateKey.of("line")]


def test_quantity_override_replaces_geometry():
    items = [_item("line", _line(), quantity=7.5)]
    result = aggregate_items(items, build_resolver([]))
    agg = result[AggregateKey.of("line")]
    assert agg.quantity == 7.5
    assert agg.calibrated


def test_page_calibration_overrides_document_default():
    page_cal = Calibration(scope=CalibrationScope("doc-1", 2), ratio=0.02)
    items = [_item("line", _line(100.0), page=1), _item("line", _line(100.0), page=2)]
    result = aggregate_items(items, build_resolver([DOC_CAL, page_cal]))
    assert result[AggregateKey.of("line")].quantity == pytest.approx(3.0)


def test_groups_by_kind_and_layer():
    items = [
        _item("count", _mark(), layer_id="doors"),
        _item("count", _mark(), layer_id="windows"),
        _item("count", _mark()),
        _item("measure", _line()),
    ]
    result = aggregate_items(items, build_resolver([DOC_CAL]))
    assert set(result) == {
        AggregateKey.of("count", "doors"),
        AggregateKey.of("count", "windows"),
        AggregateKey.of("count"),
        AggregateKey.of("measure"),
    }


def test_aggregation_is_repeatable():
    items = [_item("count", _mark()), _item("area", SQUARE), _item("line", _line())]
    resolve = build_resolver([DOC_CAL])
    assert aggregate_items(items, resolve) == aggregate_items(items, resolve)


def test_empty_input_gives_empty_result():
    assert aggregate_items([], build_resolver([])) == {}
