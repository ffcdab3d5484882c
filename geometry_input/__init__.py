"""
Geometry Input Package

Turns feature geometries into the simple points, lines and classified polygon
rings the importer writes, and counts them ahead of the import.

Modules:
    geometry_types: Closed set of flat and curved geometry variants, linearization
    decompose: Flatten a geometry, normalize and classify polygon rings
    census: First traversal counts and split-distance calibration

Usage:
    from geometry_input.decompose import decompose_geometry

    decomposed = decompose_geometry(feature.geometry)
    for polygon in decomposed.polygons:
        print(polygon.outer.area, len(polygon.holes))
"""

from geometry_input.decompose import decompose_geometry

__all__ = [
    'decompose_geometry',
]
