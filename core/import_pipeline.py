"""
Import pipeline module.

Orchestrates one import of a data source into a VectorMap:

    1. layer selection, CRS check, spatial / attribute filters, key column check
    2. census pass (first traversal): counts, split distance, 2D/3D decision
    3. import pass (second traversal): points, lines and polygon boundaries
    4. boundary cleaning on the working topology
    5. centroid reattachment (third traversal, only after cleaning)
    6. consistency check

Nothing is written to disk here; a failure anywhere discards the working
topology and the partially built map.

Classes:
    ImportResult: Everything produced by one import

Functions:
    select_layers: Resolve layer names to layer indices
    check_key_column: Validate the key column on all imported layers
    run_import: Run the whole pipeline
"""

from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence

import pandas as pd

from core.consistency import ConsistencyReport, check_consistency
from core.reattachment import (
    AreaStatistics, CategoryAssigner, materialize_centroids, reattach_centroids
)
from core.run_context import RunContext
from core.vector_map import CENTROID, VectorMap
from geometry_input.census import Census, compute_split_distance, run_census
from geometry_input.decompose import decompose_geometry
from source.feature_source import DataSource
from source.feature_stream import FeatureStreamIterator
from source.spatial_filter import check_layer_crs, create_spatial_filters
from topology.boundary_importer import FeatureWriter
from topology.cleaning import CleaningReport, clean_boundaries
from topology.engine import TopologyEngine
from utils.logger import get_logger, SEPARATOR

logger = get_logger(__name__)


@dataclass
class ImportResult:
    source_name: str
    vector_map: VectorMap
    context: RunContext
    census: Census
    cleaning: Optional[CleaningReport]
    statistics: Optional[AreaStatistics]
    consistency: ConsistencyReport
    traversals: int

    def to_dict(self) -> Dict:
        context = self.context
        return {
            'source': self.source_name,
            'output': self.vector_map.name,
            'layers': context.layer_names,
            'settings': context.settings,
            'split_distance': context.split_distance,
            'with_z': context.with_z,
            'traversals': self.traversals,
            'census': self.census.to_dict(),
            'import': {
                'n_polygons': context.n_polygons,
                'n_small_areas': context.n_small_areas,
                'n_boundaries_written': context.n_boundaries_written,
                'n_split_fragments': context.n_split_fragments,
                'n_without_geometry': context.n_without_geometry,
                'n_malformed': context.n_malformed,
                'n_key_fallbacks': context.n_key_fallbacks,
            },
            'cleaning': self.cleaning.to_dict() if self.cleaning else None,
            'area_statistics': self.statistics.to_dict() if self.statistics else None,
            'consistency': self.consistency.to_dict(),
            'map': self.vector_map.summary(),
            'warnings': list(context.warnings),
        }


def select_layers(source: DataSource, names: Optional[Sequence[str]] = None) -> List[int]:
    """
    Resolve requested layer names; all layers when none are requested.

    Raises:
        ValueError: If a requested layer does not exist
    """
    if not names:
        return list(range(source.layer_count()))
    return [source.find_layer(name) for name in names]


def check_key_column(source: DataSource, layer_indices: Sequence[int],
                     key_column: Optional[str]) -> None:
    """
    Make sure the key column exists and holds integers in every imported layer.

    Raises:
        ValueError: If the column is missing or not an integer column
    """
    if not key_column:
        return
    for layer_index in layer_indices:
        layer = source.get_layer(layer_index)
        if key_column not in layer.field_names:
            raise ValueError(f"Key column <{key_column}> not found in layer <{layer.name}>")
        values = layer.attribute_table[key_column]
        if pd.api.types.is_integer_dtype(values):
            continue
        present = values.dropna()
        if pd.api.types.is_float_dtype(values) and (present == present.round()).all():
            continue
        raise ValueError(
            f"Key column <{key_column}> in layer <{layer.name}> is not an integer column"
        )


def _import_pass(stream: FeatureStreamIterator, context: RunContext,
                 writer: FeatureWriter) -> None:
    settings = context.settings
    assigner = CategoryAssigner(settings.get('key_column'))

    stream.reset()
    for position, layer_index in enumerate(context.layer_indices):
        layer = stream.source.get_layer(layer_index)
        field_number = context.layer_field(position)
        logger.info(SEPARATOR)
        logger.info(f"Importing layer <{layer.name}>...")

        assigner.start_layer()
        n_without_geometry = 0
        n_features = 0
        for feature in stream.features(layer_index):
            n_features += 1
            cat = assigner.category(feature, layer.name)

            if feature.geometry is None:
                n_without_geometry += 1
                continue

            try:
                decomposed = decompose_geometry(feature.geometry, settings['arc_step_degrees'])
            except ValueError as e:
                logger.warning(f"Feature {feature.fid} of layer <{layer.name}> skipped: {e}")
                context.n_malformed += 1
                continue

            if decomposed.n_malformed:
                logger.warning(
                    f"Feature {feature.fid} of layer <{layer.name}>: "
                    f"{decomposed.n_malformed} malformed part(s) skipped"
                )
                context.n_malformed += 1

            writer.write(decomposed, field_number, cat)

        logger.debug(f"  - {n_features} feature(s) read from <{layer.name}>")
        if n_without_geometry:
            message = (f"{n_without_geometry} "
                       f"{'feature' if n_without_geometry == 1 else 'features'} "
                       f"without geometry in input layer <{layer.name}> skipped")
            logger.warning(message)
            context.warnings.append(message)
            context.n_without_geometry += n_without_geometry

    context.n_key_fallbacks = assigner.n_fallbacks


def run_import(source: DataSource, settings: Dict, output_name: str) -> ImportResult:
    """
    Import a data source into a new VectorMap.

    Parameters:
    -----------
    source : DataSource
        Opened data source
    settings : Dict
        Merged import settings (see config.config_loader)
    output_name : str
        Name of the output map

    Returns:
    --------
    ImportResult
        Output map plus census, cleaning report, area statistics and
        consistency report

    Raises:
    -------
    ValueError
        Unknown layer, mixed CRS, invalid attribute filter or key column
    """
    logger.info("=" * 80)
    logger.info(f"Importing data source <{source.name}>")
    logger.info("=" * 80)

    # Fatal checks, before any traversal
    layer_indices = select_layers(source, settings.get('layers'))
    layer_names = [source.get_layer(i).name for i in layer_indices]
    check_layer_crs(source, layer_indices)
    filters, extent = create_spatial_filters(source, layer_indices, settings.get('spatial'))
    check_key_column(source, layer_indices, settings.get('key_column'))

    stream = FeatureStreamIterator(
        source, layer_indices,
        spatial_filters=filters if settings.get('spatial') is not None else None,
        attribute_filter=settings.get('where'),
    )

    context = RunContext(layer_indices=layer_indices, layer_names=layer_names,
                         settings=settings, extent=extent)

    # Census pass
    census = run_census(stream, layer_indices, settings)
    traversals = 1
    context.n_polygon_boundaries = census.n_polygon_boundaries
    context.input_3d = census.input_3d
    context.with_z = census.input_3d and not settings['force_2d']
    if context.cleaning:
        context.split_distance = compute_split_distance(
            extent, census.n_polygon_boundaries,
            divisor=settings['split_divisor'],
            min_boundaries=settings['split_min_boundaries'],
        )

    crs = source.get_layer(layer_indices[0]).crs if layer_indices else None
    vector_map = VectorMap(output_name, with_z=context.with_z, crs=crs)

    # Boundaries are only collected in a working topology when they get cleaned
    engine = None
    if context.cleaning and census.n_polygon_boundaries > 0:
        engine = TopologyEngine()
        logger.debug("Using a working topology for polygon boundaries")

    # Import pass
    writer = FeatureWriter(context, vector_map, engine)
    _import_pass(stream, context, writer)
    traversals += 1
    logger.info(f"✓ {context.n_polygons} polygons imported")
    if context.n_small_areas:
        logger.info(f"  - {context.n_small_areas} areas smaller than min_area skipped")

    cleaning = None
    statistics = None
    if engine is not None and engine.boundary_count() > 0:
        logger.info("=" * 80)
        logger.info("Cleaning polygons")
        logger.info("=" * 80)
        cleaning = clean_boundaries(
            engine,
            snap=settings['snap'],
            line_to_boundary='boundary' in context.type_overrides,
            max_iterations=settings['max_clean_iterations'],
        )
        if not cleaning.converged:
            context.warnings.append(
                f"Cleaning small angles stopped after {cleaning.iterations} iterations"
            )

        records = reattach_centroids(engine, stream, context)
        traversals += 1

        vector_map.adopt_topology(engine)
        statistics = materialize_centroids(engine, records, vector_map, context)

    consistency = check_consistency(
        n_polygons=context.n_polygons,
        n_centroids=vector_map.count(CENTROID),
        n_overlaps=statistics.n_overlaps if statistics else 0,
        snap=settings['snap'],
        extent=vector_map.extent(),
        n_layers=context.n_layers,
    )
    context.warnings.extend(consistency.messages)

    if census.input_3d and settings['force_2d']:
        message = ("Input data contains 3D features. Created vector is 2D only, "
                   "disable force_2d to import 3D vector.")
        logger.warning(message)
        context.warnings.append(message)

    logger.info("=" * 80)
    logger.info(f"✓ Import complete ({traversals} traversals)")
    for kind, count in vector_map.summary().items():
        logger.info(f"  - {kind}: {count}")
    logger.info("=" * 80)

    return ImportResult(
        source_name=source.name,
        vector_map=vector_map,
        context=context,
        census=census,
        cleaning=cleaning,
        statistics=statistics,
        consistency=consistency,
        traversals=traversals,
    )
