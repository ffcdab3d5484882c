"""
Core modules for the vector topology importer.

This package contains the run orchestration and the output side of an import.

Modules:
    run_context: Run-scoped settings and counters
    vector_map: In-memory output vector map
    reattachment: Centroid reattachment to cleaned areas
    consistency: Polygon / centroid count check and snapping suggestions
    import_pipeline: Census, import, cleaning and reattachment passes
    output_generator: Commit the vector map and save summary files
"""

__version__ = '1.0.0'
