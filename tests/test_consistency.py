"""
Tests for the snapping threshold estimate and the consistency check.
"""

import pytest

from core.consistency import check_consistency, estimate_snap_range

EXTENT = (0.0, 0.0, 1000.0, 1000.0)


@pytest.mark.parametrize('magnitude, expected', [
    (1000.0, (1e-12, 1e-3)),
    (1e6, (1e-9, 1.0)),
    (-1000.0, (1e-12, 1e-3)),
])
def test_snap_range(magnitude, expected):
    assert estimate_snap_range(magnitude) == pytest.approx(expected)


@pytest.mark.parametrize('magnitude', [0.0, float('inf'), float('nan')])
def test_snap_range_of_unusable_magnitude(magnitude):
    assert estimate_snap_range(magnitude) == estimate_snap_range(1.0)


def test_snap_range_bounds_are_ordered():
    for magnitude in (0.5, 3.0, 1e3, 1e5, 1e7):
        low, high = estimate_snap_range(magnitude)
        assert 0 < low < high


def test_matching_counts_are_consistent():
    report = check_consistency(n_polygons=5, n_centroids=5, n_overlaps=0,
                               snap=-1.0, extent=EXTENT, n_layers=1)
    assert report.checked
    assert report.consistent
    assert report.messages == []


def test_not_checked_for_several_layers_or_no_polygons():
    assert not check_consistency(5, 3, 0, -1.0, EXTENT, n_layers=2).checked
    assert not check_consistency(0, 3, 0, -1.0, EXTENT, n_layers=1).checked


def test_lost_polygons():
    report = check_consistency(3, 2, 0, -1.0, EXTENT, 1)
    assert not report.consistent
    assert report.messages == [
        "1 input polygons got lost during import.",
        "The input could be cleaned by snapping vertices to each other.",
        "Estimated range of snapping threshold: [1e-12, 0.001]",
    ]


def test_additional_areas_with_large_snap():
    report = check_consistency(2, 3, 0, 0.01, EXTENT, 1)
    assert report.messages == [
        "1 additional areas where created during import.",
        "The snapping threshold 0.01 might be too large.",
        "Estimated range of snapping threshold: [1e-12, 0.001]",
        "Manual cleaning may be needed.",
    ]


def test_overlaps_without_snapping():
    report = check_consistency(2, 3, 1, -1.0, EXTENT, 1)
    assert report.messages[0] == "Some input polygons are overlapping each other."
    assert report.messages[-1] == "Try to import again, snapping with at least 1e-12: 'snap=1e-12'"
    assert (report.min_snap, report.max_snap) == pytest.approx((1e-12, 1e-3))


def test_overlaps_with_small_snap_suggest_a_larger_one():
    report = check_consistency(2, 3, 1, 1e-6, EXTENT, 1)
    assert report.messages[-1] == "Try to import again, snapping with 1e-05: 'snap=1e-05'"


def test_overlaps_with_large_snap_need_manual_cleaning():
    report = check_consistency(2, 3, 1, 0.01, EXTENT, 1)
    assert report.messages == [
        "Some input polygons are overlapping each other.",
        "If overlapping is not desired, the data need to be cleaned.",
        "Manual cleaning may be needed.",
    ]
