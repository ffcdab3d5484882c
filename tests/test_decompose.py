"""
Tests for geometry variants, linearization and ring decomposition.
"""

import math

import pytest
from shapely.geometry import (
    GeometryCollection, LineString, MultiPolygon, Point, Polygon
)

from geometry_input.decompose import (
    classify_rings, decompose_geometry, normalize_ring, signed_area
)
from geometry_input.geometry_types import (
    CircularString, CompoundCurve, CurvePolygon, GeometryKind, geometry_kind, linearize
)

CCW_OUTER = [(0, 0), (10, 0), (10, 10), (0, 10), (0, 0)]
CW_HOLE = [(4, 4), (4, 6), (6, 6), (6, 4), (4, 4)]


def test_signed_area_sign_follows_winding():
    assert signed_area(CCW_OUTER) == pytest.approx(100.0)
    assert signed_area(list(reversed(CCW_OUTER))) == pytest.approx(-100.0)


@pytest.mark.parametrize('outer_reversed', [False, True])
@pytest.mark.parametrize('hole_reversed', [False, True])
@pytest.mark.parametrize('hole_first', [False, True])
def test_ring_roles_do_not_depend_on_winding_or_order(outer_reversed, hole_reversed, hole_first):
    outer = list(reversed(CCW_OUTER)) if outer_reversed else CCW_OUTER
    hole = list(reversed(CW_HOLE)) if hole_reversed else CW_HOLE
    rings = [hole, outer] if hole_first else [outer, hole]

    polygons, n_malformed = classify_rings(rings)

    assert n_malformed == 0
    assert len(polygons) == 1
    polygon = polygons[0]
    assert polygon.outer.signed_area == pytest.approx(100.0)
    assert len(polygon.holes) == 1
    assert polygon.holes[0].is_hole
    assert polygon.holes[0].signed_area == pytest.approx(-4.0)
    assert polygon.area == pytest.approx(96.0)


def test_ring_outside_outer_becomes_separate_polygon():
    far_ring = [(20, 20), (21, 20), (21, 21), (20, 21), (20, 20)]
    polygons, _ = classify_rings([CCW_OUTER, far_ring])
    assert len(polygons) == 2
    assert all(not p.holes for p in polygons)


def test_degenerate_rings_are_skipped_and_counted():
    assert normalize_ring([(0, 0), (1, 1), (2, 2), (0, 0)]) is None
    assert normalize_ring([(0, 0), (1, 0), (0, 0)]) is None
    assert normalize_ring([(0, 0), (float('nan'), 0), (1, 1)]) is None

    polygons, n_malformed = classify_rings([CCW_OUTER, [(0, 0), (1, 0), (0, 0)]])
    assert len(polygons) == 1
    assert n_malformed == 1


def test_open_ring_is_closed():
    ring = normalize_ring([(0, 0), (1, 0), (1, 1)])
    assert ring[0] == ring[-1]
    assert len(ring) == 4


def test_decompose_collection():
    geom = GeometryCollection([
        Point(1, 2),
        LineString([(0, 0), (1, 1)]),
        MultiPolygon([Polygon(CCW_OUTER, [CW_HOLE]), Polygon([(20, 20), (21, 20), (21, 21)])]),
    ])
    decomposed = decompose_geometry(geom)

    assert decomposed.points == [(1.0, 2.0)]
    assert len(decomposed.lines) == 1
    assert len(decomposed.polygons) == 2
    assert decomposed.n_polygon_boundaries == 3
    assert not decomposed.has_z


def test_decompose_none_and_empty():
    assert decompose_geometry(None).is_empty
    assert decompose_geometry(Polygon()).is_empty


def test_decompose_detects_z():
    decomposed = decompose_geometry(Point(1, 2, 3))
    assert decomposed.has_z
    assert decomposed.points == [(1.0, 2.0, 3.0)]


def test_circular_string_is_linearized_on_the_circle():
    arc = CircularString(((0.0, 0.0), (1.0, 1.0), (2.0, 0.0)))
    coords = arc.linear_coords()

    assert coords[0] == (0.0, 0.0)
    assert coords[-1] == (2.0, 0.0)
    assert len(coords) > 10
    for x, y in coords:
        assert math.hypot(x - 1.0, y) == pytest.approx(1.0)
    assert max(y for _, y in coords) == pytest.approx(1.0, abs=1e-2)


def test_circular_string_needs_odd_point_count():
    with pytest.raises(ValueError):
        CircularString(((0, 0), (1, 1)))


def test_collinear_arc_degrades_to_polyline():
    arc = CircularString(((0.0, 0.0), (1.0, 0.0), (2.0, 0.0)))
    assert arc.linear_coords() == [(0.0, 0.0), (1.0, 0.0), (2.0, 0.0)]


def test_curve_polygon_decomposes_to_linear_ring():
    circle = CircularString(((0.0, 0.0), (2.0, 0.0), (0.0, 0.0)))
    geom = CurvePolygon((circle,))

    assert geometry_kind(geom) == GeometryKind.CURVEPOLYGON
    assert geometry_kind(geom).is_curved

    decomposed = decompose_geometry(geom)
    assert decomposed.had_curves
    assert len(decomposed.polygons) == 1
    assert decomposed.polygons[0].area == pytest.approx(math.pi, rel=1e-2)


def test_compound_curve_joins_segments():
    curve = CompoundCurve((
        LineString([(-1.0, 0.0), (0.0, 0.0)]),
        CircularString(((0.0, 0.0), (1.0, 1.0), (2.0, 0.0))),
    ))
    line = linearize(curve)
    coords = list(line.coords)
    assert coords[0] == (-1.0, 0.0)
    assert coords[-1] == (2.0, 0.0)
    # the shared vertex is not repeated
    assert coords.count((0.0, 0.0)) == 1


def test_unsupported_value_raises():
    with pytest.raises(ValueError):
        geometry_kind("POINT (1 2)")
