"""
End-to-end tests of the import pipeline on in-memory data sources.
"""

import math

import pytest
from shapely.geometry import LineString, Point, Polygon

from conftest import make_source, square
from core.consistency import estimate_snap_range
from core.import_pipeline import check_key_column, run_import, select_layers
from core.reattachment import CategoryAssigner
from source.feature_source import Feature


def centroid_cats(result):
    return sorted(sorted(p.cats) for p in result.vector_map.primitives['centroid'])


class TestDisjointPolygons:

    def test_one_area_and_centroid_per_polygon(self, disjoint_squares, settings):
        result = run_import(make_source({'parcels': disjoint_squares}), settings, 'parcels')
        stats = result.statistics

        assert result.traversals == 3
        assert stats.n_areas == 4
        assert stats.n_centroids == 4
        assert stats.n_overlaps == 0
        assert stats.n_nocat == 0
        assert stats.total_area == pytest.approx(4.0)
        assert centroid_cats(result) == [[(1, 1)], [(1, 2)], [(1, 3)], [(1, 4)]]
        assert result.vector_map.count('boundary') == 4
        assert result.vector_map.count('area') == 4

        assert result.consistency.checked
        assert result.consistency.consistent
        assert result.consistency.messages == []

    def test_areas_carry_centroid_categories(self, disjoint_squares, settings):
        result = run_import(make_source({'parcels': disjoint_squares}), settings, 'parcels')
        for area in result.vector_map.primitives['area']:
            assert len(area.cats) == 1
            assert area.cats[0][0] == 1

    def test_centroids_lie_inside_their_polygon(self, disjoint_squares, settings):
        result = run_import(make_source({'parcels': disjoint_squares}), settings, 'parcels')
        for centroid in result.vector_map.primitives['centroid']:
            (_, cat), = centroid.cats
            assert disjoint_squares[cat - 1].contains(centroid.geometry)


class TestOverlappingPolygons:

    def test_overlap_area_gets_all_categories(self, overlapping_squares, settings):
        result = run_import(make_source({'zones': overlapping_squares}), settings, 'zones')
        stats = result.statistics

        assert stats.n_areas == 3
        assert stats.n_centroids == 3
        assert stats.n_overlaps == 1
        assert stats.overlap_area == pytest.approx(1.0)
        assert stats.total_area == pytest.approx(7.0)
        assert centroid_cats(result) == [[(1, 1)], [(1, 1), (1, 2), (2, 2)], [(1, 2)]]

    def test_overlap_is_reported(self, overlapping_squares, settings):
        result = run_import(make_source({'zones': overlapping_squares}), settings, 'zones')
        report = result.consistency
        min_snap, max_snap = estimate_snap_range(3.0)

        assert report.checked
        assert not report.consistent
        assert (report.min_snap, report.max_snap) == (min_snap, max_snap)
        assert "Some input polygons are overlapping each other." in report.messages
        assert (f"Try to import again, snapping with at least {min_snap:g}: "
                f"'snap={min_snap:g}'") in report.messages
        assert "Some input polygons are overlapping each other." in result.context.warnings

    def test_overlap_count_uses_field_after_last_layer(self, settings):
        source = make_source({'a': [square(0, 0, 2)], 'b': [square(1, 1, 2)]})
        result = run_import(source, settings, 'ab')

        assert result.context.overlap_field == 3
        assert [(1, 1), (2, 1), (3, 2)] in centroid_cats(result)
        # not comparable with several layers
        assert not result.consistency.checked

    def test_identical_polygons_share_one_area(self, settings):
        result = run_import(make_source({'a': [square(0, 0), square(0, 0)]}), settings, 'a')
        assert result.statistics.n_areas == 1
        assert centroid_cats(result) == [[(1, 1), (1, 2), (2, 2)]]


class TestHolesAndIslands:

    def test_hole_area_has_no_category(self, donut, settings):
        result = run_import(make_source({'a': [donut]}), settings, 'donut')
        stats = result.statistics

        assert stats.n_areas == 2
        assert stats.n_centroids == 1
        assert stats.n_nocat == 1
        assert stats.nocat_area == pytest.approx(4.0)
        assert result.consistency.consistent

        areas = sorted((round(area.geometry.area, 6), sorted(area.cats))
                       for area in result.vector_map.primitives['area'])
        assert areas == [(4.0, []), (96.0, [(1, 1)])]

    def test_island_inside_a_hole_gets_its_own_category(self, donut, settings):
        source = make_source({'a': [donut, square(4.5, 4.5)]})
        result = run_import(source, settings, 'islands')

        assert result.statistics.n_areas == 3
        assert [(1, 2)] in centroid_cats(result)
        assert result.statistics.n_nocat == 1

    def test_small_holes_are_ignored(self, make_settings):
        polygon = Polygon([(0, 0), (10, 0), (10, 10), (0, 10)],
                          [[(5, 5), (5, 5.001), (5.001, 5.001), (5.001, 5)]])
        result = run_import(make_source({'a': [polygon]}), make_settings(), 'a')

        assert result.statistics.n_areas == 1
        assert result.context.n_small_areas == 1
        assert centroid_cats(result) == [[(1, 1)]]


class TestSettings:

    def test_without_cleaning(self, make_settings):
        source = make_source({'a': [square(0, 0), square(0.5, 0)]})
        result = run_import(source, make_settings(no_clean=True), 'raw')

        assert result.traversals == 2
        assert result.cleaning is None
        assert result.statistics is None
        assert result.vector_map.count('boundary') == 2
        assert result.vector_map.count('centroid') == 2
        assert result.vector_map.count('area') == 0
        assert result.consistency.consistent

    def test_small_polygons_are_skipped(self, make_settings):
        source = make_source({'a': [square(0, 0), square(5, 5, 0.001)]})
        result = run_import(source, make_settings(), 'a')

        assert result.context.n_polygons == 1
        assert result.context.n_small_areas == 1
        assert result.statistics.n_areas == 1

    def test_unconverged_cleaning_is_reported(self, make_settings):
        source = make_source({'a': [Polygon([(0, 0), (10, 10), (10, 0)]),
                                    Polygon([(0, 0), (5, 5.00000001), (0, 10)])]})
        result = run_import(source, make_settings(max_clean_iterations=1), 'slivers')

        assert not result.cleaning.converged
        assert result.cleaning.iterations == 1
        assert "Cleaning small angles stopped after 1 iterations" in result.context.warnings

    def test_key_column_gives_categories(self, disjoint_squares, make_settings):
        source = make_source({'a': disjoint_squares},
                             attributes={'a': {'id': [10, 20, 30, 40]}})
        result = run_import(source, make_settings(key_column='id'), 'keyed')
        assert centroid_cats(result) == [[(1, 10)], [(1, 20)], [(1, 30)], [(1, 40)]]

    def test_missing_key_values_fall_back_to_sequence(self, disjoint_squares, make_settings):
        source = make_source({'a': disjoint_squares},
                             attributes={'a': {'id': [10.0, math.nan, 30.0, 40.0]}})
        result = run_import(source, make_settings(key_column='id'), 'keyed')

        assert centroid_cats(result) == [[(1, 2)], [(1, 10)], [(1, 30)], [(1, 40)]]
        assert result.context.n_key_fallbacks == 1

    def test_key_column_must_exist_and_hold_integers(self, disjoint_squares):
        source = make_source({'a': disjoint_squares},
                             attributes={'a': {'name': ['w', 'x', 'y', 'z'],
                                               'ratio': [0.5, 1.0, 1.5, 2.0]}})
        with pytest.raises(ValueError, match="not found"):
            check_key_column(source, [0], 'id')
        with pytest.raises(ValueError, match="not an integer column"):
            check_key_column(source, [0], 'name')
        with pytest.raises(ValueError, match="not an integer column"):
            check_key_column(source, [0], 'ratio')

    def test_unknown_layer(self, disjoint_squares, make_settings):
        source = make_source({'a': disjoint_squares})
        assert select_layers(source) == [0]
        with pytest.raises(ValueError, match="not available"):
            run_import(source, make_settings(layers=['nope']), 'x')

    def test_spatial_subregion(self, disjoint_squares, make_settings):
        source = make_source({'a': disjoint_squares})
        result = run_import(source, make_settings(spatial=[0, 0, 3, 1]), 'part')
        assert result.statistics.n_areas == 2
        assert result.context.extent == (0.0, 0.0, 3.0, 1.0)

    def test_attribute_filter(self, disjoint_squares, make_settings):
        source = make_source({'a': disjoint_squares}, attributes={'a': {'v': [1, 2, 3, 4]}})
        result = run_import(source, make_settings(where='v > 2'), 'filtered')
        assert result.statistics.n_areas == 2

    def test_points_and_lines(self, settings):
        source = make_source({'a': [Point(1, 1), LineString([(0, 0), (2, 2)])]})
        result = run_import(source, settings, 'misc')

        assert result.traversals == 2
        assert result.vector_map.count('point') == 1
        assert result.vector_map.count('line') == 1
        assert result.vector_map.primitives['line'][0].cats == [(1, 2)]
        assert not result.consistency.checked

    def test_centroids_written_as_points(self, disjoint_squares, make_settings):
        result = run_import(make_source({'a': disjoint_squares}),
                            make_settings(type_overrides=['point']), 'points')
        assert result.vector_map.count('point') == 4
        assert result.vector_map.count('centroid') == 0

    def test_3d_input(self, make_settings):
        source = make_source({'a': [Point(1, 2, 3)]})

        result = run_import(source, make_settings(), 'z')
        assert result.context.with_z
        assert result.vector_map.primitives['point'][0].geometry.has_z

        result = run_import(source, make_settings(force_2d=True), 'flat')
        assert not result.context.with_z
        assert not result.vector_map.primitives['point'][0].geometry.has_z
        assert any('3D' in w for w in result.context.warnings)

    def test_features_without_geometry_are_reported(self, two_layer_data, settings):
        result = run_import(make_source(two_layer_data), settings, 'ab')
        assert result.context.n_without_geometry == 1
        assert any('without geometry' in w for w in result.context.warnings)
        # the feature without geometry still uses up category 4 of layer a
        assert [(1, 5)] in centroid_cats(result)


class TestReadingModes:

    def test_interleaved_reading_gives_the_same_map(self, two_layer_data, settings):
        independent = run_import(make_source(two_layer_data), settings, 'ab')
        interleaved = run_import(make_source(two_layer_data, interleaved=True), settings, 'ab')

        assert independent.vector_map.summary() == interleaved.vector_map.summary()
        assert centroid_cats(independent) == centroid_cats(interleaved)
        assert interleaved.traversals == 3


class TestCategoryAssigner:

    def test_sequence_restarts_per_layer(self):
        assigner = CategoryAssigner()
        assert [assigner.category(Feature(i, None)) for i in range(3)] == [1, 2, 3]
        assigner.start_layer()
        assert assigner.category(Feature(0, None)) == 1

    def test_key_values(self):
        assigner = CategoryAssigner('id')
        assert assigner.category(Feature(0, None, {'id': 7})) == 7
        assert assigner.category(Feature(1, None, {'id': 'abc'})) == 2
        assert assigner.category(Feature(2, None, {'id': None})) == 3
        assert assigner.category(Feature(3, None, {'id': 4.0})) == 4
        assert assigner.category(Feature(4, None, {'other': 9})) == 5
        assert assigner.n_fallbacks == 3
