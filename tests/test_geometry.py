import math

import pytest

from genitakeoff.domain.geometry import PointGeometry, Polygon, Polyline, geometry_from_payload
from genitakeoff.errors import ValidationError

SQUARE = [(0.0, 0.0), (10.0, 0.0), (10.0, 10.0), (0.0, 10.0)]


def test_polygon_area_ignores_winding_order():
    assert Polygon(SQUARE).pixel_area == 100.0
    assert Polygon(list(reversed(SQUARE))).pixel_area == 100.0


def test_polygon_perimeter_closes_the_ring():
    assert Polygon(SQUARE).pixel_perimeter == 40.0


def test_polyline_length_sums_segments():
    line = Polyline([(0.0, 0.0), (3.0, 4.0), (3.0, 10.0)])
    assert line.pixel_length == 11.0


def test_polygon_centroid_and_bbox():
    square = Polygon(SQUARE)
    assert square.centroid == pytest.approx((5.0, 5.0))
    assert square.bbox == (0.0, 0.0, 10.0, 10.0)


@pytest.mark.parametrize(
    "factory, points",
    [
        (PointGeometry, []),
        (PointGeometry, [(0, 0), (1, 1)]),
        (Polyline, [(0, 0)]),
        (Polygon, [(0, 0), (1, 1)]),
    ],
)
def test_point_count_is_enforced(factory, points):
    with pytest.raises(ValidationError):
        factory(points)


@pytest.mark.parametrize("bad", [math.nan, math.inf, "abc", None])
def test_non_finite_coordinates_are_rejected(bad):
    with pytest.raises(ValidationError):
        Polyline([(0.0, 0.0), (bad, 1.0)])


def test_payload_points_may_be_dicts():
    payload = Polygon(SQUARE).to_payload()
    assert payload["geom_type"] == "polygon"
    assert payload["points"][1] == {"x": 10.0, "y": 0.0}
    assert geometry_from_payload(payload["geom_type"], payload["points"]) == Polygon(SQUARE)


def test_unknown_geometry_type_is_rejected():
    with pytest.raises(ValidationError):
        geometry_from_payload("circle", [(0, 0)])


def test_hit_testing_uses_tolerance():
    square = Polygon(SQUARE)
    assert square.contains_point(5.0, 5.0)
    assert not square.contains_point(12.0, 5.0)
    assert square.contains_point(12.0, 5.0, tolerance=2.5)

    line = Polyline([(0.0, 0.0), (10.0, 0.0)])
    assert line.contains_point(5.0, 1.0, tolerance=1.0)
    assert not line.contains_point(5.0, 3.0, tolerance=1.0)

    mark = PointGeometry([(4.0, 4.0)])
    assert mark.location == (4.0, 4.0)
    assert mark.contains_point(5.0, 4.0, tolerance=1.0)
