"""
Centroid reattachment module.

After cleaning, areas no longer know which input polygons they came from.
This module gives every area one representative point, indexes those points
and replays the feature stream: every input polygon containing a point adds
its (field, category) pair to that area. Areas end up with no category
(not covered by any input polygon), one category, or several (overlapping
input polygons).

Classes:
    CentroidRecord: Representative point and categories of one area
    CentroidIndex: Spatial index over centroid records
    CategoryAssigner: Category of each feature, from a key column or a sequence
    AreaStatistics: Totals reported after writing centroids

Functions:
    build_centroid_records: One record per area of the working topology
    reattach_centroids: Replay the feature stream and collect categories
    materialize_centroids: Write centroids and compute area statistics
"""

import math
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Tuple

import numpy as np
import shapely
from shapely import STRtree
from shapely.geometry import Polygon, box

from core.run_context import RunContext
from core.vector_map import VectorMap
from geometry_input.decompose import PolygonRings, decompose_geometry
from source.feature_source import DataLayer, Feature
from source.feature_stream import FeatureStreamIterator
from topology.engine import TopologyEngine
from utils.logger import get_logger, SEPARATOR

logger = get_logger(__name__)

Category = Tuple[int, int]


@dataclass
class CentroidRecord:
    area_id: int
    x: float = 0.0
    y: float = 0.0
    valid: bool = False
    cats: List[Category] = field(default_factory=list)

    @property
    def n_cats(self) -> int:
        return len(self.cats)

    def add_category(self, field_number: int, cat: int) -> None:
        if (field_number, cat) not in self.cats:
            self.cats.append((field_number, cat))


class CentroidIndex:
    """STRtree over the points of valid centroid records."""

    def __init__(self, records: Sequence[CentroidRecord]):
        self.records = [r for r in records if r.valid]
        self._xs = np.array([r.x for r in self.records], dtype=float)
        self._ys = np.array([r.y for r in self.records], dtype=float)
        self._tree = STRtree(shapely.points(self._xs, self._ys)) if self.records else None

    def __len__(self) -> int:
        return len(self.records)

    def query_box(self, bounds: Tuple[float, float, float, float]) -> np.ndarray:
        """Positions of records whose point lies in the box."""
        if self._tree is None:
            return np.empty(0, dtype=int)
        return self._tree.query(box(*bounds))

    def query_polygon(self, polygon: PolygonRings,
                      min_area: float = 0.0) -> List[CentroidRecord]:
        """
        Records whose point lies inside the outer ring and outside every hole.

        Points on the outer ring count as inside; points on a hole ring count as
        inside the hole. Holes smaller than `min_area` are ignored.
        """
        candidates = self.query_box(polygon.outer.bounds)
        if len(candidates) == 0:
            return []

        xs = self._xs[candidates]
        ys = self._ys[candidates]
        inside = shapely.intersects_xy(Polygon(polygon.outer.coords), xs, ys)
        for hole in polygon.holes:
            if hole.area < min_area:
                continue
            inside &= ~shapely.intersects_xy(Polygon(hole.coords), xs, ys)

        return [self.records[i] for i, hit in zip(candidates, inside) if hit]


class CategoryAssigner:
    """
    Category of each feature of a layer, in stream order.

    With a key column the category is the feature's integer key value.
    Otherwise (and for features whose key value is missing or not an integer)
    categories count features from 1 within each layer.
    """

    def __init__(self, key_column: Optional[str] = None):
        self.key_column = key_column
        self.sequence = 0
        self.n_fallbacks = 0

    def start_layer(self) -> None:
        self.sequence = 0

    def category(self, feature: Feature, layer_name: str = '') -> int:
        self.sequence += 1
        if not self.key_column:
            return self.sequence

        try:
            value = feature.field_value(self.key_column)
        except KeyError:
            value = None
        try:
            number = float(value)
            if not math.isfinite(number) or number != int(number):
                raise ValueError(value)
            return int(number)
        except (TypeError, ValueError):
            self.n_fallbacks += 1
            logger.warning(
                f"Feature {feature.fid} of layer <{layer_name}>: key value "
                f"'{value}' is not an integer, using category {self.sequence}"
            )
            return self.sequence


@dataclass
class AreaStatistics:
    n_areas: int = 0
    n_centroids: int = 0
    n_invalid: int = 0
    total_area: float = 0.0
    overlap_area: float = 0.0
    n_overlaps: int = 0
    nocat_area: float = 0.0
    n_nocat: int = 0

    def to_dict(self) -> Dict:
        return {
            'n_areas': self.n_areas,
            'n_centroids': self.n_centroids,
            'n_invalid': self.n_invalid,
            'total_area': self.total_area,
            'overlap_area': self.overlap_area,
            'n_overlaps': self.n_overlaps,
            'nocat_area': self.nocat_area,
            'n_nocat': self.n_nocat,
        }


def build_centroid_records(engine: TopologyEngine) -> List[CentroidRecord]:
    """Create one record per area; areas without interior point stay invalid."""
    records = []
    for area_id in engine.area_ids():
        record = CentroidRecord(area_id)
        point = engine.representative_point(area_id)
        if point is None:
            logger.warning(f"Unable to calculate area centroid for area {area_id}")
        else:
            record.x, record.y = point
            record.valid = True
        records.append(record)
    logger.debug(f"{len(records)} centroids/areas")
    return records


def reattach_centroids(engine: TopologyEngine, stream: FeatureStreamIterator,
                       context: RunContext) -> List[CentroidRecord]:
    """
    Collect the categories of every area from the input polygons.

    Parameters:
    -----------
    engine : TopologyEngine
        Cleaned working topology with areas and attached islands
    stream : FeatureStreamIterator
        Feature stream; it is rewound and traversed once more
    context : RunContext
        Run settings (key column, min_area, layer order)

    Returns:
    --------
    List[CentroidRecord]
        One record per area, in area id order
    """
    records = build_centroid_records(engine)
    index = CentroidIndex(records)
    min_area = context.settings['min_area']
    arc_step = context.settings['arc_step_degrees']
    assigner = CategoryAssigner(context.settings.get('key_column'))

    stream.reset()
    for position, layer_index in enumerate(context.layer_indices):
        layer: DataLayer = stream.source.get_layer(layer_index)
        field_number = context.layer_field(position)
        logger.info(SEPARATOR)
        logger.info(f"Finding centroids for layer <{layer.name}>...")

        assigner.start_layer()
        for feature in stream.features(layer_index):
            cat = assigner.category(feature, layer.name)
            if feature.geometry is None:
                continue
            try:
                decomposed = decompose_geometry(feature.geometry, arc_step)
            except ValueError:
                continue
            for polygon in decomposed.polygons:
                if polygon.outer.area < min_area:
                    continue
                for record in index.query_polygon(polygon, min_area):
                    record.add_category(field_number, cat)

    return records


def materialize_centroids(engine: TopologyEngine, records: Sequence[CentroidRecord],
                          vector_map: VectorMap, context: RunContext) -> AreaStatistics:
    """
    Write one centroid per categorised area and sum up area statistics.

    Areas covered by more than one input polygon get an extra category
    (overlap field, number of categories). Areas without category get no
    centroid and are only counted.
    """
    logger.info(SEPARATOR)
    logger.info("Writing centroids...")

    stats = AreaStatistics(n_areas=len(records))
    as_points = 'point' in context.type_overrides
    overlap_field = context.overlap_field

    for record in records:
        area = engine.area_geometric_size(record.area_id)
        stats.total_area += area

        if not record.valid:
            stats.n_invalid += 1
            continue

        if record.n_cats == 0:
            stats.nocat_area += area
            stats.n_nocat += 1
            continue

        if record.n_cats > 1:
            record.add_category(overlap_field, record.n_cats)
            stats.overlap_area += area
            stats.n_overlaps += 1

        vector_map.add_point((record.x, record.y), record.cats, centroid=not as_points)
        vector_map.set_area_categories(record.area_id, record.cats)
        stats.n_centroids += 1

    if stats.n_overlaps > 0:
        logger.warning(
            f"{stats.n_overlaps} areas represent more (overlapping) features, because "
            f"polygons overlap in input layer(s). The number of features for those "
            f"areas is stored as category in layer {overlap_field}"
        )

    logger.info(SEPARATOR)
    logger.info(f"{context.n_polygons} input polygons")
    logger.info(f"Total area: {stats.total_area:G} ({stats.n_areas} areas)")
    if stats.n_overlaps:
        logger.info(f"Overlapping area: {stats.overlap_area:G} ({stats.n_overlaps} areas)")
    if stats.n_nocat:
        logger.info(f"Area without category: {stats.nocat_area:G} ({stats.n_nocat} areas)")

    return stats
