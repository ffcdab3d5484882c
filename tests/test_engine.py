"""
Tests for the working topology and its cleaning primitives.
"""

import pytest
from shapely.geometry import Point

from topology.engine import CHANGE_TO_LINE, REMOVE, TopologyEngine


def ring(geom):
    return list(geom.exterior.coords)


def test_write_boundary_rejects_degenerate_input():
    engine = TopologyEngine()
    assert engine.write_boundary([(0, 0), (0, 0)], layer_tag=0) is None
    first = engine.write_boundary([(0, 0), (1, 0)], layer_tag=0)
    second = engine.write_boundary([(0, 0, 5), (1, 1, 5)], layer_tag=1, split=True)
    assert (first, second) == (1, 2)
    assert engine.boundary_count() == 2
    # the working topology is planar
    assert engine.boundaries()[1].coords == [(0.0, 0.0), (1.0, 1.0)]
    assert engine.extent() == (0.0, 0.0, 1.0, 1.0)


def test_snap_moves_vertices_to_the_first_vertex_of_a_cluster():
    engine = TopologyEngine()
    engine.write_boundary([(0, 0), (1, 0)], layer_tag=0)
    engine.write_boundary([(0.0001, 0), (1, 1)], layer_tag=0)

    assert engine.snap(-1.0) == 0
    assert engine.snap(0.001) == 1
    assert engine.boundaries()[1].coords[0] == (0.0, 0.0)


def test_snap_removes_collapsed_boundaries():
    engine = TopologyEngine()
    engine.write_boundary([(0, 0), (0.0001, 0)], layer_tag=0)
    engine.write_boundary([(5, 5), (6, 6)], layer_tag=0)
    engine.snap(0.001)
    assert engine.boundary_count() == 1


def test_break_lines_at_crossing():
    engine = TopologyEngine()
    engine.write_boundary([(0, 0), (2, 2)], layer_tag=0)
    engine.write_boundary([(0, 2), (2, 0)], layer_tag=0)

    assert engine.break_lines() == 2
    assert engine.boundary_count() == 4
    for record in engine.boundaries():
        assert (1.0, 1.0) in (record.coords[0], record.coords[-1])
    # already broken
    assert engine.break_lines() == 0


def test_pieces_keep_layer_tag_and_split_flag():
    engine = TopologyEngine()
    engine.write_boundary([(0, 0), (2, 2)], layer_tag=3, split=True)
    engine.write_boundary([(0, 2), (2, 0)], layer_tag=0)
    engine.break_lines()
    tagged = [r for r in engine.boundaries() if r.layer_tag == 3]
    assert len(tagged) == 2
    assert all(r.split for r in tagged)


def test_remove_duplicates_ignores_direction():
    engine = TopologyEngine()
    engine.write_boundary([(0, 0), (1, 0)], layer_tag=0)
    engine.write_boundary([(1, 0), (0, 0)], layer_tag=1)
    engine.write_boundary([(0, 0), (0, 1)], layer_tag=0)

    assert engine.remove_duplicates() == 1
    assert engine.boundary_count() == 2
    assert engine.remove_duplicates() == 0


def test_collapse_small_angles_shares_the_first_segment():
    engine = TopologyEngine()
    engine.write_boundary([(0, 0), (2, 0)], layer_tag=0)
    engine.write_boundary([(0, 0), (1, 0), (1, 1)], layer_tag=0)

    assert engine.collapse_small_angles() == 1
    assert engine.boundaries()[0].coords == [(0.0, 0.0), (1.0, 0.0), (2.0, 0.0)]
    assert engine.collapse_small_angles() == 0


def test_merge_lines_through_two_way_nodes():
    engine = TopologyEngine()
    engine.write_boundary([(0, 0), (1, 0)], layer_tag=1)
    engine.write_boundary([(1, 0), (2, 0)], layer_tag=0)
    engine.write_boundary([(2, 0), (2, 1)], layer_tag=0)

    assert engine.merge_lines() == 2
    records = engine.boundaries()
    assert len(records) == 1
    assert records[0].geometry.length == pytest.approx(3.0)
    assert records[0].layer_tag == 0


def _triangle_with_tree(engine):
    engine.write_boundary([(0, 0), (-2, 0), (-1, 2), (0, 0)], layer_tag=0)
    engine.write_boundary([(0, 0), (1, 0)], layer_tag=0)
    engine.write_boundary([(1, 0), (2, 1)], layer_tag=0)
    engine.write_boundary([(1, 0), (2, -1)], layer_tag=0)


def test_dangles_are_removed_until_none_remain():
    engine = TopologyEngine()
    _triangle_with_tree(engine)

    assert engine.convert_or_remove_dangles(REMOVE) == 3
    assert engine.boundary_count() == 1
    assert engine.lines() == []


def test_dangles_can_become_lines():
    engine = TopologyEngine()
    _triangle_with_tree(engine)

    assert engine.convert_or_remove_dangles(CHANGE_TO_LINE) == 3
    assert engine.boundary_count() == 1
    assert len(engine.lines()) == 3


def test_areas_of_nested_rings_get_islands():
    engine = TopologyEngine()
    engine.write_boundary([(0, 0), (10, 0), (10, 10), (0, 10), (0, 0)], layer_tag=0)
    engine.write_boundary([(4, 4), (6, 4), (6, 6), (4, 6), (4, 4)], layer_tag=0)

    assert engine.build_areas() == 2
    assert engine.attach_islands() == 1
    assert engine.n_isles == 2

    sizes = sorted(engine.area_geometric_size(a) for a in engine.area_ids())
    assert sizes == [pytest.approx(4.0), pytest.approx(96.0)]

    outer = max(engine.area_ids(), key=engine.area_geometric_size)
    x, y = engine.representative_point(outer)
    assert not (4 <= x <= 6 and 4 <= y <= 6)
    assert engine.area_polygon(outer).contains(Point(x, y))


def test_bridges_are_removed():
    engine = TopologyEngine()
    engine.write_boundary([(0, 0), (1, 0), (1, 1), (0, 1), (0, 0)], layer_tag=0)
    engine.write_boundary([(3, 0), (4, 0), (4, 1), (3, 1), (3, 0)], layer_tag=0)
    engine.write_boundary([(1, 0.5), (3, 0.5)], layer_tag=0)
    engine.break_lines()

    assert engine.convert_or_remove_bridges(REMOVE) == 1
    assert engine.build_areas() == 2
    assert engine.lines() == []


def test_bridges_can_become_lines():
    engine = TopologyEngine()
    engine.write_boundary([(0, 0), (1, 0), (1, 1), (0, 1), (0, 0)], layer_tag=0)
    engine.write_boundary([(3, 0), (4, 0), (4, 1), (3, 1), (3, 0)], layer_tag=0)
    engine.write_boundary([(1, 0.5), (3, 0.5)], layer_tag=0)
    engine.break_lines()

    assert engine.convert_or_remove_bridges(CHANGE_TO_LINE) == 1
    assert len(engine.lines()) == 1
    assert engine.lines()[0].geometry.length == pytest.approx(2.0)
