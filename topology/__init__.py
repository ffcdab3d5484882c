"""
Topology package for the vector topology importer.

Modules:
    engine: Shapely-based working topology and cleaning primitives
    boundary_importer: Route decomposed geometries to the map or the working topology
    cleaning: Ordered boundary cleaning pipeline
"""
