"""
Geometry Decomposition Module

Flattens one feature geometry (possibly multi-part, possibly curved) into
simple points, lines and polygon rings.

Ring roles are never taken from ring order or source winding. Every ring is
re-oriented and classified with a fixed signed-area convention:
    - outer rings are counter-clockwise (positive signed area)
    - holes are clockwise (negative signed area)
The largest ring of a polygon is its outer ring; rings it does not enclose are
promoted to outer rings of separate polygons.
"""

import math
from dataclasses import dataclass, field
from typing import List, Optional, Sequence, Tuple

import shapely
from shapely.geometry import Polygon
from shapely.geometry.base import BaseGeometry

from geometry_input.geometry_types import (
    AnyGeometry, GeometryKind, DEFAULT_ARC_STEP_DEGREES, geometry_kind, linearize
)
from utils.logger import get_logger

logger = get_logger(__name__)

Coordinate = Tuple[float, ...]


def signed_area(coords: Sequence[Coordinate]) -> float:
    """
    Shoelace signed area of a ring, positive for counter-clockwise rings.

    The ring may be given open or closed.
    """
    n = len(coords)
    if n < 3:
        return 0.0
    # shift to the first vertex to keep precision for large coordinates
    x0, y0 = coords[0][0], coords[0][1]
    total = 0.0
    for i in range(n):
        xa, ya = coords[i][0] - x0, coords[i][1] - y0
        xb, yb = coords[(i + 1) % n][0] - x0, coords[(i + 1) % n][1] - y0
        total += xa * yb - xb * ya
    return total / 2.0


@dataclass
class Ring:
    """Closed coordinate sequence (first == last) with its role."""

    coords: List[Coordinate]
    is_hole: bool = False

    @property
    def n_points(self) -> int:
        return len(self.coords)

    @property
    def signed_area(self) -> float:
        return signed_area(self.coords)

    @property
    def area(self) -> float:
        return abs(self.signed_area)

    @property
    def bounds(self) -> Tuple[float, float, float, float]:
        xs = [c[0] for c in self.coords]
        ys = [c[1] for c in self.coords]
        return min(xs), min(ys), max(xs), max(ys)


@dataclass
class PolygonRings:
    outer: Ring
    holes: List[Ring] = field(default_factory=list)

    @property
    def n_boundaries(self) -> int:
        return 1 + len(self.holes)

    @property
    def area(self) -> float:
        return self.outer.area - sum(h.area for h in self.holes)

    @property
    def rings(self) -> List[Ring]:
        return [self.outer] + self.holes


@dataclass
class DecomposedGeometry:
    """Flattened content of one feature geometry."""

    points: List[Coordinate] = field(default_factory=list)
    lines: List[List[Coordinate]] = field(default_factory=list)
    polygons: List[PolygonRings] = field(default_factory=list)
    has_z: bool = False
    n_malformed: int = 0
    had_curves: bool = False

    @property
    def n_polygon_boundaries(self) -> int:
        return sum(p.n_boundaries for p in self.polygons)

    @property
    def is_empty(self) -> bool:
        return not (self.points or self.lines or self.polygons)

    def extend(self, other: 'DecomposedGeometry') -> None:
        self.points.extend(other.points)
        self.lines.extend(other.lines)
        self.polygons.extend(other.polygons)
        self.has_z = self.has_z or other.has_z
        self.n_malformed += other.n_malformed
        self.had_curves = self.had_curves or other.had_curves


def _is_finite(coord: Coordinate) -> bool:
    return all(math.isfinite(v) for v in coord[:2])


def _drop_repeated(coords: Sequence[Coordinate]) -> List[Coordinate]:
    out = []
    for c in coords:
        if not out or (c[0], c[1]) != (out[-1][0], out[-1][1]):
            out.append(tuple(c))
    return out


def normalize_ring(coords: Sequence[Coordinate]) -> Optional[List[Coordinate]]:
    """
    Close a ring and drop repeated vertices.

    Returns None for rings that cannot bound an area: non-finite coordinates,
    fewer than 3 distinct vertices, or zero area.
    """
    if not coords or not all(_is_finite(c) for c in coords):
        return None
    ring = _drop_repeated(coords)
    if len(ring) > 1 and (ring[0][0], ring[0][1]) == (ring[-1][0], ring[-1][1]):
        ring = ring[:-1]
    if len({(c[0], c[1]) for c in ring}) < 3:
        return None
    ring.append(ring[0])
    if signed_area(ring) == 0.0:
        return None
    return ring


def orient_ring(coords: List[Coordinate], counter_clockwise: bool = True) -> List[Coordinate]:
    if (signed_area(coords) > 0) != counter_clockwise:
        return list(reversed(coords))
    return coords


def _encloses(outer: List[Coordinate], ring: List[Coordinate]) -> bool:
    """True when most vertices of `ring` lie inside or on `outer`."""
    outer_poly = Polygon(outer)
    xs = [c[0] for c in ring[:-1]]
    ys = [c[1] for c in ring[:-1]]
    inside = shapely.intersects_xy(outer_poly, xs, ys)
    return int(inside.sum()) * 2 > len(xs)


def classify_rings(rings: Sequence[Sequence[Coordinate]]) -> Tuple[List[PolygonRings], int]:
    """
    Classify the rings of one polygon into outer rings and holes.

    Parameters:
    -----------
    rings : Sequence[Sequence[Coordinate]]
        Ring coordinate sequences in any order and any winding

    Returns:
    --------
    Tuple[List[PolygonRings], int]
        Polygons with normalized orientation, and the number of rings skipped
        as malformed
    """
    n_malformed = 0
    valid = []
    for coords in rings:
        ring = normalize_ring(coords)
        if ring is None:
            n_malformed += 1
            continue
        valid.append(ring)

    # largest first: an enclosing ring always precedes the rings it encloses
    valid.sort(key=lambda r: abs(signed_area(r)), reverse=True)

    polygons = []
    while valid:
        outer = valid.pop(0)
        holes = []
        remaining = []
        for ring in valid:
            if _encloses(outer, ring):
                holes.append(ring)
            else:
                remaining.append(ring)
        valid = remaining
        polygons.append(PolygonRings(
            outer=Ring(orient_ring(outer, counter_clockwise=True), is_hole=False),
            holes=[Ring(orient_ring(h, counter_clockwise=False), is_hole=True) for h in holes],
        ))

    return polygons, n_malformed


def _decompose_flat(geom: BaseGeometry) -> DecomposedGeometry:
    result = DecomposedGeometry(has_z=bool(geom.has_z))
    if geom.is_empty:
        return result

    kind = geometry_kind(geom)

    if kind == GeometryKind.POINT:
        coord = tuple(geom.coords[0])
        if _is_finite(coord):
            result.points.append(coord)
        else:
            result.n_malformed += 1

    elif kind == GeometryKind.LINESTRING:
        coords = list(geom.coords)
        line = _drop_repeated(coords) if all(_is_finite(c) for c in coords) else []
        if len(line) >= 2:
            result.lines.append(line)
        else:
            result.n_malformed += 1

    elif kind == GeometryKind.POLYGON:
        rings = [list(geom.exterior.coords)] + [list(r.coords) for r in geom.interiors]
        polygons, n_malformed = classify_rings(rings)
        result.polygons.extend(polygons)
        result.n_malformed += n_malformed

    else:
        # MULTI* and COLLECTION
        for part in geom.geoms:
            result.extend(_decompose_flat(part))

    return result


def decompose_geometry(geom: Optional[AnyGeometry],
                       arc_step_degrees: float = DEFAULT_ARC_STEP_DEGREES) -> DecomposedGeometry:
    """
    Decompose a feature geometry into points, lines and classified polygon rings.

    Curved geometries are linearized first, then collections are flattened
    recursively.

    Args:
        geom: Shapely geometry, curved geometry variant, or None
        arc_step_degrees: Angular step used to approximate arcs

    Returns:
        DecomposedGeometry; empty for None or empty input

    Raises:
        ValueError: If the value is not a supported geometry
    """
    if geom is None:
        return DecomposedGeometry()

    curved = geometry_kind(geom).is_curved
    if curved:
        logger.debug(f"Approximating curves in a '{geometry_kind(geom).value}'")
    flat = linearize(geom, arc_step_degrees)

    result = _decompose_flat(flat)
    result.had_curves = curved
    return result
