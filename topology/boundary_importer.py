"""
Boundary Importer Module

Writes decomposed feature geometries into the output map or, for polygon rings
that are going to be cleaned, into the working topology.

Functions:
    split_ring: Chop a ring into fragments no longer than the split distance

Classes:
    FeatureWriter: Route points, lines and polygon rings of one feature
"""

import math
from typing import List, Optional, Sequence, Tuple

from shapely.geometry import Polygon

from core.run_context import RunContext
from core.vector_map import VectorMap
from geometry_input.decompose import DecomposedGeometry, PolygonRings
from topology.engine import TopologyEngine
from utils.logger import get_logger

logger = get_logger(__name__)

Coordinate = Tuple[float, ...]


def split_ring(coords: Sequence[Coordinate], split_distance: float) -> List[List[Coordinate]]:
    """
    Chop a ring (or line) into fragments at its vertices.

    Fragments are cut as soon as the next segment would make them longer than
    `split_distance`. A single segment longer than the split distance is kept
    whole. Consecutive fragments share their end / start vertex.

    Args:
        coords: Vertex sequence
        split_distance: Maximum fragment length; <= 0 disables splitting

    Returns:
        List of fragments (a single fragment when nothing was split)
    """
    coords = [tuple(c) for c in coords]
    if split_distance <= 0 or len(coords) < 3:
        return [coords]

    fragments = []
    current = [coords[0]]
    length = 0.0
    for prev, c in zip(coords[:-1], coords[1:]):
        segment = math.hypot(c[0] - prev[0], c[1] - prev[1])
        if len(current) > 1 and length + segment > split_distance:
            fragments.append(current)
            current = [prev]
            length = 0.0
        current.append(c)
        length += segment
    fragments.append(current)
    return fragments


class FeatureWriter:
    """
    Write decomposed geometries of the import pass.

    Parameters:
    -----------
    context : RunContext
        Run settings and counters (split distance, min_area, type overrides)
    vector_map : VectorMap
        Output map receiving points, lines and, without cleaning, boundaries
        and centroids
    engine : Optional[TopologyEngine]
        Working topology receiving polygon boundaries to be cleaned
    """

    def __init__(self, context: RunContext, vector_map: VectorMap,
                 engine: Optional[TopologyEngine] = None):
        self.context = context
        self.vector_map = vector_map
        self.engine = engine
        self.min_area = context.settings['min_area']
        overrides = context.type_overrides
        self.points_as_centroids = 'centroid' in overrides
        self.lines_as_boundaries = 'boundary' in overrides
        self.rings_as_lines = 'line' in overrides
        self.centroids_as_points = 'point' in overrides

    def _write_boundary(self, coords: Sequence[Coordinate], field: int) -> None:
        fragments = split_ring(coords, self.context.split_distance)
        split = len(fragments) > 1
        for fragment in fragments:
            if self.engine.write_boundary(fragment, layer_tag=field - 1, split=split) is not None:
                self.context.n_boundaries_written += 1
        if split:
            self.context.n_split_fragments += len(fragments)

    def write(self, decomposed: DecomposedGeometry, field: int, cat: int) -> int:
        """
        Write one feature's geometry.

        Args:
            decomposed: Result of decompose_geometry()
            field: Layer field number (layer position + 1)
            cat: Category of the feature

        Returns:
            Number of polygons imported from this feature
        """
        cats = [(field, cat)]

        for point in decomposed.points:
            self.vector_map.add_point(point, cats, centroid=self.points_as_centroids)

        for line in decomposed.lines:
            if self.lines_as_boundaries and self.engine is not None:
                self._write_boundary(line, field)
            else:
                self.vector_map.add_line(line, cats, boundary=self.lines_as_boundaries)

        n_polygons = 0
        for polygon in decomposed.polygons:
            if self._write_polygon(polygon, field, cats):
                n_polygons += 1
        self.context.n_polygons += n_polygons
        return n_polygons

    def _write_polygon(self, polygon: PolygonRings, field: int, cats) -> bool:
        if polygon.outer.area < self.min_area:
            self.context.n_small_areas += 1
            return False

        rings = [polygon.outer]
        for hole in polygon.holes:
            if hole.area < self.min_area:
                self.context.n_small_areas += 1
                continue
            rings.append(hole)

        if self.rings_as_lines:
            for ring in rings:
                self.vector_map.add_line(ring.coords, cats)
        elif self.engine is not None:
            for ring in rings:
                self._write_boundary(ring.coords, field)
        else:
            for ring in rings:
                self.vector_map.add_line(ring.coords, boundary=True)
            self._write_centroid(rings, cats)

        return True

    def _write_centroid(self, rings, cats) -> None:
        shape = Polygon(rings[0].coords, [r.coords for r in rings[1:]])
        point = shape.representative_point()
        if point.is_empty or not shape.contains(point):
            logger.warning("Unable to calculate centroid for a polygon, no centroid written")
            return
        self.vector_map.add_point((point.x, point.y), cats, centroid=not self.centroids_as_points)
