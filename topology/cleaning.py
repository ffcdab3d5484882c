"""
Boundary Cleaning Pipeline Module

Turns the raw polygon boundaries of the working topology into a valid planar
subdivision, one area per enclosed region.

Stages, in order:
    1. snap vertices (only for a snapping threshold >= 0)
    2. break polygons
    3. remove duplicates
    4. repeat {break, remove duplicates, collapse small angles} until no
       angle was collapsed (bounded by max_iterations)
    5. merge boundaries
    6. change dangles to lines (lines imported as boundaries) or remove them
    7. build areas
    8. change bridges to lines or remove them, rebuild areas if needed
    9. attach islands

Functions:
    clean_boundaries: Run the pipeline on a TopologyEngine
"""

from dataclasses import dataclass, field
from typing import Dict, List

from topology.engine import CHANGE_TO_LINE, REMOVE, TopologyEngine
from utils.logger import get_logger, SEPARATOR

logger = get_logger(__name__)


@dataclass
class CleaningReport:
    """What the cleaning pipeline did."""

    snapped_vertices: int = 0
    break_pieces: int = 0
    duplicates_removed: int = 0
    collapse_counts: List[int] = field(default_factory=list)
    converged: bool = True
    merged: int = 0
    dangles_modified: int = 0
    bridges_modified: int = 0
    n_areas: int = 0
    n_isles: int = 0

    @property
    def iterations(self) -> int:
        return len(self.collapse_counts)

    def to_dict(self) -> Dict:
        return {
            'snapped_vertices': self.snapped_vertices,
            'break_pieces': self.break_pieces,
            'duplicates_removed': self.duplicates_removed,
            'collapse_counts': list(self.collapse_counts),
            'iterations': self.iterations,
            'converged': self.converged,
            'merged': self.merged,
            'dangles_modified': self.dangles_modified,
            'bridges_modified': self.bridges_modified,
            'n_areas': self.n_areas,
            'n_isles': self.n_isles,
        }


def clean_boundaries(engine: TopologyEngine, snap: float = -1.0,
                     line_to_boundary: bool = False,
                     max_iterations: int = 100) -> CleaningReport:
    """
    Clean the boundaries of the working topology and build areas.

    Parameters:
    -----------
    engine : TopologyEngine
        Working topology holding all imported boundaries
    snap : float
        Snapping threshold; < 0 disables snapping
    line_to_boundary : bool
        True if lines were imported as boundaries. Dangles and bridges are then
        changed back to lines instead of being removed
    max_iterations : int
        Upper bound of the break / remove duplicates / collapse loop

    Returns:
    --------
    CleaningReport
        Counts of every stage. `converged` is False when the loop hit
        max_iterations with angles still being collapsed
    """
    report = CleaningReport()
    mode = CHANGE_TO_LINE if line_to_boundary else REMOVE

    logger.info(SEPARATOR)
    if snap >= 0:
        logger.info(f"Snapping boundaries (threshold = {snap:.3e})...")
        report.snapped_vertices = engine.snap(snap)

    logger.info(SEPARATOR)
    logger.info("Breaking polygons...")
    report.break_pieces += engine.break_polygons()

    logger.info(SEPARATOR)
    logger.info("Removing duplicates...")
    report.duplicates_removed += engine.remove_duplicates()

    logger.info(SEPARATOR)
    logger.info("Breaking boundaries...")
    while True:
        report.break_pieces += engine.break_lines()
        report.duplicates_removed += engine.remove_duplicates()
        collapsed = engine.collapse_small_angles()
        report.collapse_counts.append(collapsed)
        logger.debug(f"Iteration {report.iterations}: {collapsed} small angles collapsed")

        if collapsed == 0:
            break
        if report.iterations >= max_iterations:
            report.converged = False
            logger.warning(
                f"Cleaning small angles did not converge after {max_iterations} "
                f"iterations ({collapsed} boundaries still modified), continuing"
            )
            # leave the topology broken and free of duplicates
            report.break_pieces += engine.break_lines()
            report.duplicates_removed += engine.remove_duplicates()
            break

    logger.info(SEPARATOR)
    logger.info("Merging boundaries...")
    report.merged = engine.merge_lines()

    logger.info(SEPARATOR)
    if line_to_boundary:
        logger.info("Changing boundary dangles to lines...")
    else:
        logger.info("Removing dangles...")
    report.dangles_modified = engine.convert_or_remove_dangles(mode)

    logger.info(SEPARATOR)
    logger.info("Building areas...")
    engine.build_areas()

    logger.info(SEPARATOR)
    if line_to_boundary:
        logger.info("Changing boundary bridges to lines...")
    else:
        logger.info("Removing bridges...")
    report.bridges_modified = engine.convert_or_remove_bridges(mode)
    if report.bridges_modified:
        logger.info(SEPARATOR)
        logger.info("Re-building areas...")
        engine.build_areas()

    logger.info(SEPARATOR)
    logger.info("Attaching islands...")
    engine.attach_islands()

    report.n_areas = engine.area_count()
    report.n_isles = engine.n_isles
    logger.info(f"✓ Cleaning complete: {report.n_areas} areas, "
                f"{report.duplicates_removed} duplicates removed, "
                f"{report.iterations} iteration(s)")
    return report
