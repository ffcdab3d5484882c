"""
Topology Engine Module

Working planar topology built with Shapely. Holds boundary records and turns
them into areas with the usual cleaning primitives: snap, break, remove
duplicates, collapse small angles at nodes, merge, dangle and bridge handling,
area building and island attachment.

Boundaries are stored in 2D; intersections are computed by GEOS noding and
nodes are inserted with the exact same coordinates into every boundary passing
through them, so pieces shared by two boundaries compare equal afterwards.

Classes:
    BoundaryRecord: One boundary (or demoted line) of the working topology
    TopologyEngine: Working topology with cleaning operations
"""

import math
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

import numpy as np
import shapely
from shapely import STRtree
from shapely.geometry import LineString, Polygon, box
from shapely.ops import linemerge

from utils.logger import get_logger

logger = get_logger(__name__)

Coordinate = Tuple[float, float]

BOUNDARY = 'boundary'
LINE = 'line'

# modes for dangles and bridges
REMOVE = 'remove'
CHANGE_TO_LINE = 'line'


@dataclass
class BoundaryRecord:
    id: int
    geometry: LineString
    layer_tag: int
    split: bool = False
    kind: str = BOUNDARY
    alive: bool = True

    @property
    def coords(self) -> List[Coordinate]:
        return [(c[0], c[1]) for c in self.geometry.coords]


def _dedupe(coords: Iterable[Coordinate]) -> List[Coordinate]:
    out: List[Coordinate] = []
    for c in coords:
        if not out or c != out[-1]:
            out.append(c)
    return out


def _node_tolerance(bounds: Tuple[float, float, float, float]) -> float:
    magnitude = max(abs(v) for v in bounds) if bounds else 0.0
    return max(magnitude, 1.0) * 1e-9


class TopologyEngine:
    """
    Working topology for polygon boundaries.

    Boundary ids are never reused; removed boundaries stay in the record table
    with alive=False. Areas are numbered from 1 each time they are built.
    """

    def __init__(self):
        self._records: Dict[int, BoundaryRecord] = {}
        self._next_id = 1
        self._shells: Dict[int, Polygon] = {}
        self._shell_component: Dict[int, int] = {}
        self._areas: Dict[int, Polygon] = {}
        self._islands_attached = False
        self.n_isles = 0

    # ------------------------------------------------------------------
    # records
    # ------------------------------------------------------------------

    def write_boundary(self, coords: Sequence[Sequence[float]], layer_tag: int,
                       split: bool = False, kind: str = BOUNDARY) -> Optional[int]:
        """
        Add one boundary. Returns its id, or None if it has less than 2 distinct points.
        """
        flat = _dedupe((float(c[0]), float(c[1])) for c in coords)
        if len(flat) < 2:
            return None
        return self._add(LineString(flat), layer_tag, split, kind)

    def _add(self, geometry: LineString, layer_tag: int, split: bool, kind: str) -> int:
        record = BoundaryRecord(self._next_id, geometry, layer_tag, split, kind)
        self._records[record.id] = record
        self._next_id += 1
        return record.id

    def _kill(self, record: BoundaryRecord) -> None:
        record.alive = False

    def boundaries(self) -> List[BoundaryRecord]:
        return [r for r in self._records.values() if r.alive and r.kind == BOUNDARY]

    def lines(self) -> List[BoundaryRecord]:
        return [r for r in self._records.values() if r.alive and r.kind == LINE]

    def boundary_count(self) -> int:
        return len(self.boundaries())

    def extent(self) -> Optional[Tuple[float, float, float, float]]:
        alive = [r.geometry for r in self._records.values() if r.alive]
        if not alive:
            return None
        return tuple(shapely.total_bounds(alive))

    # ------------------------------------------------------------------
    # cleaning primitives
    # ------------------------------------------------------------------

    def snap(self, tolerance: float) -> int:
        """
        Snap boundary vertices to each other within `tolerance`.

        Vertices are visited in boundary order; the first unassigned vertex of a
        cluster becomes the anchor every other vertex within `tolerance` moves to.
        Boundaries collapsing to a single point are removed.

        Returns:
            Number of vertices moved
        """
        records = self.boundaries()
        if tolerance < 0 or not records:
            return 0

        coords = [c for r in records for c in r.coords]
        points = shapely.points(np.asarray(coords, dtype=float))
        tree = STRtree(points)
        anchor = [-1] * len(coords)

        for i in range(len(coords)):
            if anchor[i] >= 0:
                continue
            anchor[i] = i
            for j in tree.query(points[i], predicate='dwithin', distance=tolerance):
                if anchor[j] < 0:
                    anchor[j] = i

        moved = 0
        offset = 0
        for record in records:
            n = len(record.geometry.coords)
            new_coords = []
            for k in range(offset, offset + n):
                target = coords[anchor[k]]
                if target != coords[k]:
                    moved += 1
                new_coords.append(target)
            offset += n
            new_coords = _dedupe(new_coords)
            if len(new_coords) < 2:
                self._kill(record)
            else:
                record.geometry = LineString(new_coords)

        logger.debug(f"Snapping moved {moved} vertices")
        return moved

    def _node_points(self, records: Sequence[BoundaryRecord]) -> np.ndarray:
        noded = shapely.unary_union([r.geometry for r in records])
        parts = shapely.get_parts(noded)
        parts = parts[shapely.get_type_id(parts) == 1]
        if len(parts) == 0:
            return np.empty((0, 2))
        ends = np.vstack([
            shapely.get_coordinates(shapely.get_point(parts, 0)),
            shapely.get_coordinates(shapely.get_point(parts, -1)),
        ])
        return np.unique(ends, axis=0)

    def break_lines(self) -> int:
        """
        Break boundaries at every intersection.

        Node points are the end points of the GEOS-noded union of all
        boundaries. Each node lying on a boundary segment is inserted into that
        boundary, which is then cut at all of its nodes.

        Returns:
            Number of new boundary pieces created
        """
        records = self.boundaries()
        if not records:
            return 0

        nodes = self._node_points(records)
        if len(nodes) == 0:
            return 0
        node_set = {(float(x), float(y)) for x, y in nodes}
        node_geoms = shapely.points(nodes)
        tree = STRtree(node_geoms)
        tolerance = _node_tolerance(tuple(shapely.total_bounds([r.geometry for r in records])))

        created = 0
        for record in records:
            xmin, ymin, xmax, ymax = record.geometry.bounds
            candidates = tree.query(box(xmin - tolerance, ymin - tolerance,
                                        xmax + tolerance, ymax + tolerance))
            candidate_xy = [(float(nodes[i][0]), float(nodes[i][1])) for i in candidates]
            coords = self._insert_nodes(record.coords, candidate_xy, tolerance)
            pieces = self._cut_at_nodes(coords, node_set)
            if len(pieces) <= 1:
                if len(coords) != len(record.geometry.coords):
                    record.geometry = LineString(coords)
                continue
            self._kill(record)
            for piece in pieces:
                self._add(LineString(piece), record.layer_tag, record.split, record.kind)
            created += len(pieces) - 1

        logger.debug(f"Breaking created {created} new boundaries")
        return created

    @staticmethod
    def _insert_nodes(coords: List[Coordinate], nodes: List[Coordinate],
                      tolerance: float) -> List[Coordinate]:
        if not nodes:
            return coords
        out = [coords[0]]
        for (ax, ay), (bx, by) in zip(coords[:-1], coords[1:]):
            dx, dy = bx - ax, by - ay
            length2 = dx * dx + dy * dy
            on_segment = []
            for nx, ny in nodes:
                if (nx, ny) in ((ax, ay), (bx, by)):
                    continue
                t = ((nx - ax) * dx + (ny - ay) * dy) / length2
                if t <= 0.0 or t >= 1.0:
                    continue
                if math.hypot(ax + t * dx - nx, ay + t * dy - ny) <= tolerance:
                    on_segment.append((t, (nx, ny)))
            for _, node in sorted(on_segment):
                out.append(node)
            out.append((bx, by))
        return _dedupe(out)

    @staticmethod
    def _cut_at_nodes(coords: List[Coordinate], node_set: set) -> List[List[Coordinate]]:
        pieces = []
        current = [coords[0]]
        for c in coords[1:]:
            current.append(c)
            if c in node_set and len(current) >= 2:
                pieces.append(current)
                current = [c]
        if len(current) >= 2:
            pieces.append(current)
        return pieces

    def break_polygons(self) -> int:
        """Break closed boundaries at shared vertices and crossings."""
        return self.break_lines()

    def remove_duplicates(self) -> int:
        """
        Remove boundaries geometrically equal to an earlier boundary.

        Returns:
            Number of boundaries removed
        """
        records = self.boundaries()
        if len(records) < 2:
            return 0

        geoms = [r.geometry for r in records]
        tree = STRtree(geoms)
        removed = 0
        for i, record in enumerate(records):
            if not record.alive:
                continue
            for j in tree.query(record.geometry):
                if j <= i or not records[j].alive:
                    continue
                if shapely.equals(record.geometry, records[j].geometry):
                    self._kill(records[j])
                    removed += 1

        logger.debug(f"Removed {removed} duplicate boundaries")
        return removed

    def _node_ends(self) -> Dict[Coordinate, List[Tuple[BoundaryRecord, bool]]]:
        """Map node coordinate -> [(boundary, leaves_from_start)]."""
        ends: Dict[Coordinate, List[Tuple[BoundaryRecord, bool]]] = {}
        for record in self.boundaries():
            coords = record.coords
            ends.setdefault(coords[0], []).append((record, True))
            ends.setdefault(coords[-1], []).append((record, False))
        return ends

    def collapse_small_angles(self) -> int:
        """
        Collapse boundaries leaving a node at the same angle.

        Angles of first segments are compared in single precision. For each
        pair of such boundaries, the end vertex of the shorter first segment is
        inserted into the longer boundary right after the node, so both share
        that segment; the next break and duplicate removal then merge it.

        Returns:
            Number of boundaries modified
        """
        modified_ids = set()

        for node, ends in self._node_ends().items():
            if len(ends) < 2:
                continue
            groups: Dict[np.float32, List[Tuple[BoundaryRecord, bool, Coordinate, float]]] = {}
            for record, from_start in ends:
                coords = record.coords
                nxt = coords[1] if from_start else coords[-2]
                angle = np.float32(math.atan2(nxt[1] - node[1], nxt[0] - node[0]))
                length = math.hypot(nxt[0] - node[0], nxt[1] - node[1])
                groups.setdefault(angle, []).append((record, from_start, nxt, length))

            for members in groups.values():
                if len(members) < 2:
                    continue
                members.sort(key=lambda m: m[3])
                short_record, _, vertex, _ = members[0]
                if short_record.id in modified_ids:
                    continue
                for record, from_start, nxt, _ in members[1:]:
                    if record.id == short_record.id or record.id in modified_ids:
                        continue
                    if not record.alive or nxt == vertex:
                        continue
                    coords = record.coords
                    if from_start:
                        coords.insert(1, vertex)
                    else:
                        coords.insert(len(coords) - 1, vertex)
                    record.geometry = LineString(_dedupe(coords))
                    modified_ids.add(record.id)

        return len(modified_ids)

    def merge_lines(self) -> int:
        """
        Merge boundaries chained through nodes with exactly two boundaries.

        Returns:
            Number of boundaries removed by merging
        """
        records = self.boundaries()
        if len(records) < 2:
            return 0

        merged = linemerge([r.geometry for r in records])
        parts = list(getattr(merged, 'geoms', [merged]))
        if len(parts) >= len(records):
            return 0

        tree = STRtree([r.geometry for r in records])
        for record in records:
            self._kill(record)
        for part in parts:
            sources = [records[i] for i in tree.query(part, predicate='covers')]
            layer_tag = min((r.layer_tag for r in sources), default=0)
            split = any(r.split for r in sources)
            self._add(part, layer_tag, split, BOUNDARY)

        removed = len(records) - len(parts)
        logger.debug(f"Merged boundaries: {len(records)} -> {len(parts)}")
        return removed

    def convert_or_remove_dangles(self, mode: str = REMOVE) -> int:
        """
        Remove dangles, or change them to lines, until none are left.

        A dangle is a boundary with an end node no other boundary ends at.

        Returns:
            Number of boundaries modified
        """
        modified = 0
        while True:
            dangles = []
            for node, ends in self._node_ends().items():
                if len(ends) == 1:
                    dangles.append(ends[0][0])
            if not dangles:
                return modified
            for record in {r.id: r for r in dangles}.values():
                self._demote(record, mode)
                modified += 1

    def _demote(self, record: BoundaryRecord, mode: str) -> None:
        if mode == CHANGE_TO_LINE:
            record.kind = LINE
        else:
            self._kill(record)

    # ------------------------------------------------------------------
    # areas
    # ------------------------------------------------------------------

    def _components(self, records: Sequence[BoundaryRecord]) -> List[List[BoundaryRecord]]:
        parent = list(range(len(records)))

        def find(i):
            while parent[i] != i:
                parent[i] = parent[parent[i]]
                i = parent[i]
            return i

        first_at: Dict[Coordinate, int] = {}
        for i, record in enumerate(records):
            coords = record.coords
            for end in (coords[0], coords[-1]):
                if end in first_at:
                    parent[find(i)] = find(first_at[end])
                else:
                    first_at[end] = i

        groups: Dict[int, List[BoundaryRecord]] = {}
        for i, record in enumerate(records):
            groups.setdefault(find(i), []).append(record)
        return list(groups.values())

    def build_areas(self) -> int:
        """
        Build areas from the current boundaries.

        Every connected set of boundaries is polygonized on its own; each face
        becomes an area bounded by its outer ring. Islands are added by
        attach_islands().

        Returns:
            Number of areas
        """
        self._shells = {}
        self._shell_component = {}
        self._areas = {}
        self._islands_attached = False
        self.n_isles = 0

        area_id = 1
        for component_id, component in enumerate(self._components(self.boundaries())):
            faces = shapely.polygonize([r.geometry for r in component])
            for face in faces.geoms:
                shell = Polygon(face.exterior)
                if shell.area <= 0:
                    continue
                self._shells[area_id] = shell
                self._shell_component[area_id] = component_id
                area_id += 1

        logger.debug(f"Built {len(self._shells)} areas")
        return len(self._shells)

    def convert_or_remove_bridges(self, mode: str = REMOVE) -> int:
        """
        Remove bridges, or change them to lines.

        Bridges are boundaries with the same area on both sides (GEOS cut edges).

        Returns:
            Number of boundaries modified
        """
        records = self.boundaries()
        if not records:
            return 0

        _, cuts, _, _ = shapely.polygonize_full([r.geometry for r in records])
        cut_edges = list(shapely.get_parts(cuts))
        if not cut_edges:
            return 0

        tree = STRtree([r.geometry for r in records])
        modified = 0
        for edge in cut_edges:
            for i in tree.query(edge):
                record = records[i]
                if record.alive and record.kind == BOUNDARY and shapely.equals(record.geometry, edge):
                    self._demote(record, mode)
                    modified += 1
        logger.debug(f"Modified {modified} bridges")
        return modified

    def attach_islands(self) -> int:
        """
        Attach islands to the areas enclosing them.

        An island is the outer ring of a connected set of boundaries. It becomes
        a hole of the area of another set that most tightly encloses it.

        Returns:
            Number of islands attached
        """
        isles_by_component: Dict[int, List[Polygon]] = {}
        for area_id, shell in self._shells.items():
            isles_by_component.setdefault(self._shell_component[area_id], []).append(shell)

        isles = []
        for component_id, shells in isles_by_component.items():
            outline = shapely.unary_union(shells)
            for part in shapely.get_parts(outline):
                isles.append((component_id, Polygon(part.exterior)))
        isles.sort(key=lambda item: item[1].area, reverse=True)

        self._areas = {}
        attached = 0
        for area_id, shell in self._shells.items():
            component_id = self._shell_component[area_id]
            holes: List[Polygon] = []
            for isle_component, isle in isles:
                if isle_component == component_id or not shell.contains(isle):
                    continue
                if any(h.contains(isle) for h in holes):
                    continue
                holes.append(isle)
            self._areas[area_id] = Polygon(shell.exterior, [h.exterior for h in holes])
            attached += len(holes)

        self._islands_attached = True
        self.n_isles = len(isles)
        logger.debug(f"Attached {attached} islands")
        return attached

    def area_count(self) -> int:
        return len(self._shells)

    def area_ids(self) -> List[int]:
        return list(self._shells.keys())

    def area_polygon(self, area_id: int) -> Polygon:
        if self._islands_attached:
            return self._areas[area_id]
        return self._shells[area_id]

    def representative_point(self, area_id: int) -> Optional[Coordinate]:
        """Point strictly inside the area, or None if none could be found."""
        polygon = self.area_polygon(area_id)
        if polygon.is_empty:
            return None
        point = polygon.representative_point()
        if point.is_empty or not polygon.contains(point):
            return None
        return point.x, point.y

    def area_geometric_size(self, area_id: int) -> float:
        return self.area_polygon(area_id).area
