"""
Census Pass Module

First traversal of the feature stream. Counts what the import pass will
produce before anything is written, so the boundary split distance and the
2D/3D decision can be made up front.

Functions:
    run_census: Traverse all layers once and collect counts
    extent_area: Area of an extent box, or -1 for an unusable extent
    compute_split_distance: Calibrate the boundary split distance
"""

import math
from dataclasses import dataclass, field
from typing import Dict, Optional, Sequence, Tuple

from geometry_input.decompose import decompose_geometry
from source.feature_stream import FeatureStreamIterator
from source.spatial_filter import extent_is_valid
from utils.logger import get_logger

logger = get_logger(__name__)

Extent = Tuple[float, float, float, float]


@dataclass
class Census:
    """Counts collected by the census pass."""

    n_polygons: int = 0
    n_polygon_boundaries: int = 0
    input_3d: bool = False
    features_per_layer: Dict[int, int] = field(default_factory=dict)
    n_without_geometry: int = 0
    n_malformed: int = 0
    n_curved: int = 0

    @property
    def n_features(self) -> int:
        return sum(self.features_per_layer.values())

    def to_dict(self) -> Dict:
        return {
            'n_features': self.n_features,
            'features_per_layer': {str(k): v for k, v in self.features_per_layer.items()},
            'n_polygons': self.n_polygons,
            'n_polygon_boundaries': self.n_polygon_boundaries,
            'input_3d': self.input_3d,
            'n_without_geometry': self.n_without_geometry,
            'n_malformed': self.n_malformed,
            'n_curved': self.n_curved,
        }


def run_census(stream: FeatureStreamIterator, layer_indices: Sequence[int],
               settings: Dict) -> Census:
    """
    Count features, polygons and polygon boundaries of all imported layers.

    Parameters:
    -----------
    stream : FeatureStreamIterator
        Feature stream, rewound before the traversal
    layer_indices : Sequence[int]
        Layers to traverse, in import order
    settings : Dict
        Import settings ('no_clean', 'type_overrides', 'arc_step_degrees')

    Returns:
    --------
    Census
        Counts for the selection. Polygon counts stay 0 with 'no_clean' since
        no boundary is ever split or cleaned in that mode.
    """
    census = Census()
    count_polygons = not settings['no_clean']
    lines_as_boundaries = 'boundary' in settings['type_overrides']

    stream.reset()
    for layer_index in layer_indices:
        layer = stream.source.get_layer(layer_index)
        logger.info(f"Check if layer <{layer.name}> contains polygons...")

        n_features = 0
        for feature in stream.features(layer_index):
            n_features += 1
            if feature.geometry is None:
                census.n_without_geometry += 1
                continue

            try:
                decomposed = decompose_geometry(feature.geometry, settings['arc_step_degrees'])
            except ValueError as e:
                logger.warning(f"Feature {feature.fid} of layer <{layer.name}>: {e}")
                census.n_malformed += 1
                continue

            if decomposed.n_malformed:
                census.n_malformed += 1
            if decomposed.had_curves:
                census.n_curved += 1
            if decomposed.has_z:
                census.input_3d = True

            if count_polygons:
                census.n_polygons += len(decomposed.polygons)
                census.n_polygon_boundaries += decomposed.n_polygon_boundaries
                if lines_as_boundaries:
                    census.n_polygon_boundaries += len(decomposed.lines)

        census.features_per_layer[layer_index] = n_features
        logger.debug(f"  - Layer <{layer.name}>: {n_features} feature(s)")

    if len(layer_indices) > 1:
        logger.info(f"Importing {census.n_features} features")
    logger.debug(f"n polygon boundaries: {census.n_polygon_boundaries}")
    logger.debug(f"Input is 3D ? {'yes' if census.input_3d else 'no'}")

    return census


def extent_area(extent: Optional[Extent]) -> float:
    if not extent_is_valid(extent):
        return -1.0
    xmin, ymin, xmax, ymax = extent
    return (xmax - xmin) * (ymax - ymin)


def compute_split_distance(extent: Optional[Extent], n_polygon_boundaries: int,
                           divisor: float = 16.0, min_boundaries: int = 50) -> float:
    """
    Calibrate the maximum boundary fragment length.

    split_distance = sqrt(extent area) / log(n_polygon_boundaries) / divisor

    Splitting is disabled (-1) for an unusable extent or when there are not
    more than `min_boundaries` polygon boundaries. Increase the divisor to
    decrease the split distance.

    Args:
        extent: Selection extent (xmin, ymin, xmax, ymax)
        n_polygon_boundaries: Outer rings + holes counted by the census
        divisor: Damping factor
        min_boundaries: Boundary count at or below which splitting is disabled

    Returns:
        Split distance in map units, or -1.0 for no splitting
    """
    area = extent_area(extent)
    if area <= 0 or n_polygon_boundaries <= min_boundaries:
        return -1.0

    area_size = math.sqrt(area)
    split_distance = area_size / math.log(n_polygon_boundaries) / divisor
    logger.debug(f"root of area size: {area_size}")
    logger.info(f"Boundary splitting distance in map units: {split_distance:G}")
    return split_distance
