#!/usr/bin/env python
"""
Vector Topology Import
======================
Imports points, lines and polygons from a GDAL-readable vector data source
into a topologically clean vector map: polygons become shared boundaries plus
one centroid per area, carrying the categories of the input features.
"""

import argparse
import time
from pathlib import Path
from typing import Optional

# Import logging first
from utils.logger import setup_logging, get_logger

from config.config_loader import VALID_TYPE_OVERRIDES, load_config, load_import_settings
from core.import_pipeline import run_import
from core.output_generator import generate_output
from source.feature_source import open_datasource


def main(input_path: str, output_name: Optional[str] = None,
         config_path: Optional[Path] = None, output_dir: Optional[Path] = None,
         interleaved: Optional[bool] = None, **overrides) -> Optional[Path]:
    """
    Main execution workflow of the importer.

    Workflow Steps:
    1. Setup logging to console and file
    2. Load settings (file settings, then explicit overrides)
    3. Open the data source
    4. Run the import pipeline (census, import, cleaning, centroids)
    5. Commit the vector map and write the summary files

    Parameters:
    -----------
    input_path : str
        Path to the input data source
    output_name : Optional[str]
        Name of the output map (defaults to the input file name)
    config_path : Optional[Path]
        Settings file (defaults to config/import_settings.json)
    output_dir : Optional[Path]
        Parent directory of the output (defaults to outputs/)
    interleaved : Optional[bool]
        True forces interleaved reading, False independent cursors
    **overrides
        Import settings overriding the settings file (e.g. snap=1e-7)

    Returns:
    --------
    Optional[Path]
        Path to output directory if successful, None if failed

    Example:
        >>> output_path = main('parcels.gpkg', snap=1e-7)
        >>> print(f"Map saved to: {output_path}")
    """
    workflow_start_time = time.time()

    log_file = setup_logging()
    logger = get_logger(__name__)

    logger.info("=" * 80)
    logger.info("VECTOR TOPOLOGY IMPORT")
    logger.info("=" * 80)
    logger.info(f"Log file: {log_file}")
    logger.info("")

    try:
        config = load_config(config_path)
        settings = load_import_settings(config, overrides)
        logger.debug(f"Import settings: {settings}")

        source = open_datasource(input_path, interleaved=interleaved)

        if output_name is None:
            output_name = Path(input_path).stem

        result = run_import(source, settings, output_name)
        output_path, _ = generate_output(result, output_dir)

        total_execution_time = time.time() - workflow_start_time
        logger.info("")
        logger.info("✓ IMPORT COMPLETE")
        logger.info(f"✓ Total execution time: {total_execution_time:.2f} seconds")
        logger.info(f"✓ Output directory: {output_path}")
        logger.info(f"✓ Log file: {log_file}")
        logger.info("")

        return output_path

    except Exception as e:
        elapsed_time = time.time() - workflow_start_time

        logger.error("")
        logger.error("=" * 80)
        logger.error("✗ IMPORT FAILED")
        logger.error("=" * 80)
        logger.error(f"Error: {str(e)}", exc_info=True)
        logger.error(f"Import failed after {elapsed_time:.2f} seconds")
        logger.error(f"See log file for details: {log_file}")
        logger.error("=" * 80)
        return None


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Import vector data into a topologically clean vector map"
    )
    parser.add_argument('input', help="Input data source")
    parser.add_argument('-o', '--output', dest='output_name', help="Output map name")
    parser.add_argument('--config', dest='config_path', type=Path, help="Settings file")
    parser.add_argument('--output-dir', type=Path, help="Parent directory of the output")
    parser.add_argument('--layer', dest='layers', action='append',
                        help="Layer to import (repeatable, default: all layers)")
    parser.add_argument('--where', help="Attribute filter, e.g. \"population > 1000\"")
    parser.add_argument('--spatial', nargs=4, type=float,
                        metavar=('XMIN', 'YMIN', 'XMAX', 'YMAX'), help="Import subregion only")
    parser.add_argument('--key', dest='key_column', help="Integer column used as category")
    parser.add_argument('--min-area', type=float, help="Minimum size of areas to be imported")
    parser.add_argument('--snap', type=float, help="Snapping threshold for boundaries")
    parser.add_argument('--type', dest='type_overrides', action='append',
                        choices=VALID_TYPE_OVERRIDES, help="Optionally change default input type")
    parser.add_argument('--no-clean', action='store_true', default=None,
                        help="Do not clean polygons")
    parser.add_argument('--force-2d', action='store_true', default=None,
                        help="Force 2D output even if input is 3D")
    parser.add_argument('--interleaved', action=argparse.BooleanOptionalAction,
                        default=None, help="Read all layers through one shared cursor")
    return parser.parse_args(argv)


if __name__ == "__main__":
    args = vars(parse_args())
    input_path = args.pop('input')

    output_dir = main(input_path, **args)

    if output_dir:
        print(f"\n✓ Success! Output written to {output_dir}")
    else:
        print("\n✗ Import failed. Check log file for details.")
