"""
Geometry Variant Module

Closed set of geometry variants handled by the importer. Flat variants are
plain Shapely geometries; curved variants (circular arcs and the containers
built from them) are small dataclasses that know how to linearize themselves
into the corresponding flat Shapely geometry.

Linearization uses a fixed angular step so the result does not depend on the
driver the data came from.
"""

import math
from dataclasses import dataclass
from enum import Enum
from typing import Tuple, Union

from shapely.geometry import (
    LineString, MultiLineString, LinearRing, Polygon, MultiPolygon
)
from shapely.geometry.base import BaseGeometry

# Default angular step between linearized arc vertices
DEFAULT_ARC_STEP_DEGREES = 4.0

Coordinate = Tuple[float, ...]


class GeometryKind(Enum):
    POINT = 'Point'
    LINESTRING = 'LineString'
    POLYGON = 'Polygon'
    MULTIPOINT = 'MultiPoint'
    MULTILINESTRING = 'MultiLineString'
    MULTIPOLYGON = 'MultiPolygon'
    COLLECTION = 'GeometryCollection'
    CIRCULARSTRING = 'CircularString'
    COMPOUNDCURVE = 'CompoundCurve'
    CURVEPOLYGON = 'CurvePolygon'
    MULTICURVE = 'MultiCurve'
    MULTISURFACE = 'MultiSurface'

    @property
    def is_curved(self) -> bool:
        return self in CURVED_KINDS


CURVED_KINDS = frozenset({
    GeometryKind.CIRCULARSTRING,
    GeometryKind.COMPOUNDCURVE,
    GeometryKind.CURVEPOLYGON,
    GeometryKind.MULTICURVE,
    GeometryKind.MULTISURFACE,
})

_SHAPELY_KINDS = {
    'Point': GeometryKind.POINT,
    'LineString': GeometryKind.LINESTRING,
    'LinearRing': GeometryKind.LINESTRING,
    'Polygon': GeometryKind.POLYGON,
    'MultiPoint': GeometryKind.MULTIPOINT,
    'MultiLineString': GeometryKind.MULTILINESTRING,
    'MultiPolygon': GeometryKind.MULTIPOLYGON,
    'GeometryCollection': GeometryKind.COLLECTION,
}


def _arc_points(p0: Coordinate, p1: Coordinate, p2: Coordinate,
                step_radians: float) -> list:
    """
    Linearize one circular arc given by start, intermediate and end point.

    Returns the vertex list from p0 to p2 inclusive. Collinear control points
    degrade to a straight polyline through all three points.
    """
    x0, y0 = p0[0], p0[1]
    x1, y1 = p1[0], p1[1]
    x2, y2 = p2[0], p2[1]
    has_z = len(p0) > 2 and len(p1) > 2 and len(p2) > 2

    full_circle = x0 == x2 and y0 == y2
    if full_circle:
        if x0 == x1 and y0 == y1:
            return [tuple(p0), tuple(p2)]
        cx, cy = (x0 + x1) / 2.0, (y0 + y1) / 2.0
        sweep = 2.0 * math.pi
    else:
        d = 2.0 * (x0 * (y1 - y2) + x1 * (y2 - y0) + x2 * (y0 - y1))
        scale = max(abs(x2 - x0), abs(y2 - y0), abs(x1 - x0), abs(y1 - y0), 1e-300)
        if abs(d) <= 1e-12 * scale * scale:
            return [tuple(p0), tuple(p1), tuple(p2)]

        s0 = x0 * x0 + y0 * y0
        s1 = x1 * x1 + y1 * y1
        s2 = x2 * x2 + y2 * y2
        cx = (s0 * (y1 - y2) + s1 * (y2 - y0) + s2 * (y0 - y1)) / d
        cy = (s0 * (x2 - x1) + s1 * (x0 - x2) + s2 * (x1 - x0)) / d

        a0 = math.atan2(y0 - cy, x0 - cx)
        a2 = math.atan2(y2 - cy, x2 - cx)
        cross = (x1 - x0) * (y2 - y0) - (y1 - y0) * (x2 - x0)
        if cross > 0:
            sweep = (a2 - a0) % (2.0 * math.pi)
        else:
            sweep = -((a0 - a2) % (2.0 * math.pi))

    radius = math.hypot(x0 - cx, y0 - cy)
    start = math.atan2(y0 - cy, x0 - cx)
    n_steps = max(2, int(math.ceil(abs(sweep) / step_radians)))

    points = [tuple(p0)]
    for i in range(1, n_steps):
        t = i / n_steps
        angle = start + sweep * t
        x = cx + radius * math.cos(angle)
        y = cy + radius * math.sin(angle)
        if has_z:
            points.append((x, y, p0[2] + (p2[2] - p0[2]) * t))
        else:
            points.append((x, y))
    points.append(tuple(p2))
    return points


@dataclass(frozen=True)
class CircularString:
    """Sequence of circular arcs sharing end points: p0 p1 p2 [p3 p4 ...]."""

    coords: Tuple[Coordinate, ...]

    def __post_init__(self):
        if len(self.coords) < 3 or len(self.coords) % 2 == 0:
            raise ValueError(
                f"CircularString needs an odd number (>= 3) of points, got {len(self.coords)}"
            )

    @property
    def kind(self) -> GeometryKind:
        return GeometryKind.CIRCULARSTRING

    def linear_coords(self, arc_step_degrees: float = DEFAULT_ARC_STEP_DEGREES) -> list:
        step = math.radians(arc_step_degrees)
        out = []
        for i in range(0, len(self.coords) - 2, 2):
            arc = _arc_points(self.coords[i], self.coords[i + 1], self.coords[i + 2], step)
            out.extend(arc if not out else arc[1:])
        return out

    def linearize(self, arc_step_degrees: float = DEFAULT_ARC_STEP_DEGREES) -> LineString:
        return LineString(self.linear_coords(arc_step_degrees))


@dataclass(frozen=True)
class CompoundCurve:
    """Chain of LineString and CircularString segments."""

    segments: Tuple[Union[LineString, CircularString], ...]

    @property
    def kind(self) -> GeometryKind:
        return GeometryKind.COMPOUNDCURVE

    def linear_coords(self, arc_step_degrees: float = DEFAULT_ARC_STEP_DEGREES) -> list:
        out = []
        for segment in self.segments:
            coords = _curve_coords(segment, arc_step_degrees)
            if out and coords and tuple(out[-1]) == tuple(coords[0]):
                coords = coords[1:]
            out.extend(coords)
        return out

    def linearize(self, arc_step_degrees: float = DEFAULT_ARC_STEP_DEGREES) -> LineString:
        return LineString(self.linear_coords(arc_step_degrees))


@dataclass(frozen=True)
class CurvePolygon:
    """Polygon whose rings may be curves. The first ring is the exterior."""

    rings: Tuple[Union[LineString, LinearRing, CircularString, CompoundCurve], ...]

    @property
    def kind(self) -> GeometryKind:
        return GeometryKind.CURVEPOLYGON

    def linearize(self, arc_step_degrees: float = DEFAULT_ARC_STEP_DEGREES) -> Polygon:
        if not self.rings:
            return Polygon()
        rings = [_curve_coords(r, arc_step_degrees) for r in self.rings]
        return Polygon(rings[0], rings[1:])


@dataclass(frozen=True)
class MultiCurve:
    curves: Tuple[Union[LineString, CircularString, CompoundCurve], ...]

    @property
    def kind(self) -> GeometryKind:
        return GeometryKind.MULTICURVE

    def linearize(self, arc_step_degrees: float = DEFAULT_ARC_STEP_DEGREES) -> MultiLineString:
        return MultiLineString([_curve_coords(c, arc_step_degrees) for c in self.curves])


@dataclass(frozen=True)
class MultiSurface:
    surfaces: Tuple[Union[Polygon, CurvePolygon], ...]

    @property
    def kind(self) -> GeometryKind:
        return GeometryKind.MULTISURFACE

    def linearize(self, arc_step_degrees: float = DEFAULT_ARC_STEP_DEGREES) -> MultiPolygon:
        polygons = [
            s.linearize(arc_step_degrees) if isinstance(s, CurvePolygon) else s
            for s in self.surfaces
        ]
        return MultiPolygon([p for p in polygons if not p.is_empty])


CurvedGeometry = Union[CircularString, CompoundCurve, CurvePolygon, MultiCurve, MultiSurface]
AnyGeometry = Union[BaseGeometry, CurvedGeometry]


def _curve_coords(curve, arc_step_degrees: float) -> list:
    if isinstance(curve, (CircularString, CompoundCurve)):
        return curve.linear_coords(arc_step_degrees)
    return list(curve.coords)


def geometry_kind(geom: AnyGeometry) -> GeometryKind:
    """
    Return the variant tag of a geometry value.

    Raises:
        ValueError: If the value is not a supported geometry
    """
    if isinstance(geom, (CircularString, CompoundCurve, CurvePolygon, MultiCurve, MultiSurface)):
        return geom.kind
    if isinstance(geom, BaseGeometry):
        try:
            return _SHAPELY_KINDS[geom.geom_type]
        except KeyError:
            raise ValueError(f"Unsupported geometry type: {geom.geom_type}")
    raise ValueError(f"Unsupported geometry value: {type(geom).__name__}")


def linearize(geom: AnyGeometry,
              arc_step_degrees: float = DEFAULT_ARC_STEP_DEGREES) -> BaseGeometry:
    """
    Normalize any supported geometry into a flat Shapely geometry.

    Curved variants are approximated with vertices every `arc_step_degrees`
    along each arc; flat geometries are returned unchanged.
    """
    kind = geometry_kind(geom)
    if kind.is_curved:
        return geom.linearize(arc_step_degrees)
    return geom


__all__ = [
    'GeometryKind', 'CircularString', 'CompoundCurve', 'CurvePolygon',
    'MultiCurve', 'MultiSurface', 'geometry_kind', 'linearize',
    'DEFAULT_ARC_STEP_DEGREES',
]
