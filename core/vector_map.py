"""
Output vector map module.

In-memory result of an import: points, lines, boundaries, centroids and areas,
each primitive carrying its (field, category) pairs. The map is filled by the
boundary importer (directly, or by adopting the cleaned working topology) and
by the centroid reattachment engine, and is committed to disk only once the
whole import succeeded.

Classes:
    Primitive: One geometry with its categories
    VectorMap: Collection of primitives by kind
"""

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Tuple

import geopandas as gpd
import shapely
from pyproj import CRS
from shapely.geometry import LineString, Point, Polygon
from shapely.geometry.base import BaseGeometry

from utils.logger import get_logger

logger = get_logger(__name__)

POINT = 'point'
LINE = 'line'
BOUNDARY = 'boundary'
CENTROID = 'centroid'
AREA = 'area'

PRIMITIVE_KINDS = (POINT, LINE, BOUNDARY, CENTROID, AREA)

Category = Tuple[int, int]


@dataclass
class Primitive:
    kind: str
    geometry: BaseGeometry
    cats: List[Category] = field(default_factory=list)
    area_id: Optional[int] = None

    def cats_text(self) -> str:
        return ';'.join(f"{f}:{c}" for f, c in self.cats)


class VectorMap:
    """
    Output vector map.

    Parameters:
    -----------
    name : str
        Map name, used for the committed file name
    with_z : bool
        Keep z coordinates of points and lines
    crs : Optional[CRS]
        CRS of the imported layers, stored with the committed layers
    """

    def __init__(self, name: str, with_z: bool = False, crs: Optional[CRS] = None):
        self.name = name
        self.with_z = with_z
        self.crs = crs
        self.primitives: Dict[str, List[Primitive]] = {kind: [] for kind in PRIMITIVE_KINDS}
        self._areas_by_id: Dict[int, Primitive] = {}

    def _coords(self, coords: Sequence[Sequence[float]]) -> List[Tuple[float, ...]]:
        if self.with_z:
            return [tuple(c[:3]) for c in coords]
        return [(c[0], c[1]) for c in coords]

    def add_point(self, coord: Sequence[float], cats: Sequence[Category] = (),
                  centroid: bool = False) -> Primitive:
        kind = CENTROID if centroid else POINT
        primitive = Primitive(kind, Point(self._coords([coord])[0]), list(cats))
        self.primitives[kind].append(primitive)
        return primitive

    def add_line(self, coords: Sequence[Sequence[float]], cats: Sequence[Category] = (),
                 boundary: bool = False) -> Primitive:
        kind = BOUNDARY if boundary else LINE
        primitive = Primitive(kind, LineString(self._coords(coords)), list(cats))
        self.primitives[kind].append(primitive)
        return primitive

    def add_area(self, area_id: int, polygon: Polygon) -> Primitive:
        primitive = Primitive(AREA, polygon, area_id=area_id)
        self.primitives[AREA].append(primitive)
        self._areas_by_id[area_id] = primitive
        return primitive

    def adopt_topology(self, engine) -> None:
        """
        Copy the cleaned working topology into the map.

        Alive boundaries become boundaries, boundaries demoted to lines become
        lines, and every area is added with its island-aware polygon.
        """
        for record in engine.boundaries():
            self.add_line(record.coords, boundary=True)
        for record in engine.lines():
            self.add_line(record.coords)
        for area_id in engine.area_ids():
            self.add_area(area_id, engine.area_polygon(area_id))
        logger.debug(
            f"Adopted {len(self.primitives[BOUNDARY])} boundaries and "
            f"{len(self.primitives[AREA])} areas from the working topology"
        )

    def set_area_categories(self, area_id: int, cats: Sequence[Category]) -> None:
        primitive = self._areas_by_id.get(area_id)
        if primitive is not None:
            primitive.cats = list(cats)

    def extent(self) -> Optional[Tuple[float, float, float, float]]:
        geometries = [p.geometry for items in self.primitives.values() for p in items]
        if not geometries:
            return None
        return tuple(float(v) for v in shapely.total_bounds(geometries))

    def count(self, kind: str) -> int:
        return len(self.primitives[kind])

    def summary(self) -> Dict[str, int]:
        return {f"{kind}s": len(items) for kind, items in self.primitives.items()}

    def to_geodataframes(self) -> Dict[str, gpd.GeoDataFrame]:
        """One GeoDataFrame per non-empty primitive kind, categories as 'field:cat' text."""
        frames = {}
        for kind, items in self.primitives.items():
            if not items:
                continue
            data = {
                'cats': [p.cats_text() for p in items],
                'n_cats': [len(p.cats) for p in items],
            }
            if kind == AREA:
                data['area_id'] = [p.area_id for p in items]
            frames[kind] = gpd.GeoDataFrame(
                data, geometry=[p.geometry for p in items], crs=self.crs
            )
        return frames
