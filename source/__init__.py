"""
Feature source package for the vector topology importer.

Modules:
    feature_source: Dataset / layer / feature model and GeoPandas loader
    feature_stream: Layer-by-layer feature iteration over one or many cursors
    spatial_filter: Per-layer spatial filters, selection extent, CRS check
"""
