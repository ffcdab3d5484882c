"""
Output generation module for the vector topology importer.

This module commits the imported vector map to disk and writes the summary
files next to it:
    - <name>.gpkg: one GeoPackage layer per primitive kind
    - metadata.json: settings, census, cleaning report, area statistics and
      consistency messages
    - <name>_summary.xlsx: import summary workbook (optional)

Functions:
    commit_vector_map: Write a VectorMap to a GeoPackage, atomically
    generate_output: Save map, metadata and report to the output directory
"""

import json
import os
from datetime import datetime
from pathlib import Path
from typing import Optional, Tuple

from config.config_loader import OUTPUT_DIR
from core.vector_map import VectorMap
from utils.logger import get_logger
from utils.xlsx_generator import generate_xlsx_report

logger = get_logger(__name__)


def commit_vector_map(vector_map: VectorMap, output_path: Path) -> Path:
    """
    Write the vector map to a GeoPackage.

    Layers are written to a temporary file in the target directory, which is
    moved into place only after every layer was written. On failure the
    temporary file is removed and no output is left behind.

    Parameters:
    -----------
    vector_map : VectorMap
        Map to commit
    output_path : Path
        Target .gpkg file; replaced if it exists

    Returns:
    --------
    Path
        Path of the committed GeoPackage

    Raises:
    -------
    ValueError
        If the map holds no primitives at all
    """
    output_path = Path(output_path)
    frames = vector_map.to_geodataframes()
    if not frames:
        raise ValueError(f"Vector map <{vector_map.name}> is empty, nothing to commit")

    output_path.parent.mkdir(parents=True, exist_ok=True)
    tmp_path = output_path.with_name(f".{output_path.stem}.tmp{output_path.suffix}")
    if tmp_path.exists():
        tmp_path.unlink()

    try:
        for kind, gdf in frames.items():
            logger.debug(f"  - Writing {len(gdf)} {kind}(s)")
            gdf.to_file(tmp_path, layer=kind, driver='GPKG')
        os.replace(tmp_path, output_path)
    except Exception:
        if tmp_path.exists():
            tmp_path.unlink()
        raise

    logger.info(f"✓ Vector map <{vector_map.name}> written to {output_path}")
    return output_path


def generate_output(result, output_dir: Optional[Path] = None) -> Tuple[Path, Optional[str]]:
    """
    Generate the output directory for an import result.

    Parameters:
    -----------
    result : ImportResult
        Result of core.import_pipeline.run_import
    output_dir : Optional[Path]
        Parent directory (defaults to OUTPUT_DIR)

    Returns:
    --------
    Tuple[Path, Optional[str]]
        Output directory and the XLSX file name (None if no report was written)

    Example:
        >>> output_path, xlsx_file = generate_output(result)
        >>> output_path
        Path('outputs/parcels')
    """
    logger.info("=" * 80)
    logger.info("Generating Output Files")
    logger.info("=" * 80)

    if output_dir is None:
        output_dir = OUTPUT_DIR
    vector_map = result.vector_map
    output_path = Path(output_dir) / vector_map.name
    output_path.mkdir(parents=True, exist_ok=True)
    logger.info(f"Output directory: {output_path}")

    logger.info("  - Saving vector map...")
    commit_vector_map(vector_map, output_path / f"{vector_map.name}.gpkg")

    logger.info("  - Saving metadata...")
    summary = {'generated_at': datetime.now().isoformat(), **result.to_dict()}
    with open(output_path / 'metadata.json', 'w', encoding='utf-8') as f:
        json.dump(summary, f, indent=2, default=str)

    xlsx_relative_path = None
    if result.context.settings.get('write_xlsx_report', True):
        logger.info("  - Generating XLSX report...")
        xlsx_path = generate_xlsx_report(result, output_path)
        if xlsx_path:
            xlsx_relative_path = xlsx_path.name

    logger.info("")
    logger.info("=" * 80)
    logger.info("✓ Output Generation Complete")
    logger.info("=" * 80)
    logger.info(f"Files saved to: {output_path}")
    logger.info(f"  - {vector_map.name}.gpkg (vector map)")
    logger.info("  - metadata.json (import summary)")
    if xlsx_relative_path:
        logger.info(f"  - {xlsx_relative_path} (import summary - XLSX)")
    logger.info("=" * 80)

    return output_path, xlsx_relative_path
