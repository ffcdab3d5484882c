"""
Consistency estimation module.

Advisory check run once at the end of an import: compares the number of
centroids in the output with the number of imported polygons and, if they
differ or polygons overlap, suggests a snapping threshold range derived from
the floating point precision available at the magnitude of the coordinates.

Functions:
    estimate_snap_range: Snapping threshold range for a coordinate magnitude
    check_consistency: Compare counts and build guidance messages
"""

import math
from dataclasses import dataclass, field
from typing import List, Optional, Tuple

from utils.logger import get_logger, SEPARATOR

logger = get_logger(__name__)

Extent = Tuple[float, float, float, float]

# mantissa bits of double and single precision floats, minus the implicit bit
DOUBLE_ULP_BITS = 52
SINGLE_ULP_BITS = 23


def _ulp_power_of_ten(magnitude: float, mantissa_bits: int) -> float:
    mantissa, exponent = math.frexp(magnitude)
    ulp = math.ldexp(mantissa, exponent - mantissa_bits)
    exponent10 = math.log10(ulp)
    # truncate toward zero for negative exponents, round up otherwise
    if exponent10 < 0:
        exponent10 = int(exponent10)
    else:
        exponent10 = int(exponent10) + 1
    return math.pow(10, exponent10)


def estimate_snap_range(max_abs_coord: float) -> Tuple[float, float]:
    """
    Estimate a snapping threshold range for coordinates of a given magnitude.

    The lower bound is the unit in the last place of a double at that
    magnitude, the upper bound the one of a single precision float, both
    rounded to a power of ten.

    Args:
        max_abs_coord: Largest absolute coordinate value of the map

    Returns:
        (min_snap, max_snap)
    """
    magnitude = abs(max_abs_coord)
    if magnitude == 0 or not math.isfinite(magnitude):
        magnitude = 1.0
    return (_ulp_power_of_ten(magnitude, DOUBLE_ULP_BITS),
            _ulp_power_of_ten(magnitude, SINGLE_ULP_BITS))


@dataclass
class ConsistencyReport:
    checked: bool = False
    consistent: bool = True
    min_snap: Optional[float] = None
    max_snap: Optional[float] = None
    messages: List[str] = field(default_factory=list)

    def to_dict(self):
        return {
            'checked': self.checked,
            'consistent': self.consistent,
            'min_snap': self.min_snap,
            'max_snap': self.max_snap,
            'messages': list(self.messages),
        }


def check_consistency(n_polygons: int, n_centroids: int, n_overlaps: int,
                      snap: float, extent: Optional[Extent],
                      n_layers: int) -> ConsistencyReport:
    """
    Compare imported polygons with output centroids and suggest a snapping threshold.

    Only evaluated for polygons imported from a single layer; with several
    layers the counts are not comparable. The small gaps of areas without
    centroid are not detected by this test, and may be true gaps anyway.

    Parameters:
    -----------
    n_polygons : int
        Polygons imported
    n_centroids : int
        Centroids written to the output map
    n_overlaps : int
        Areas covered by more than one input polygon
    snap : float
        Snapping threshold used for the import (< 0: no snapping)
    extent : Optional[Extent]
        Extent of the output map
    n_layers : int
        Number of imported layers

    Returns:
    --------
    ConsistencyReport
        Messages are also logged as warnings
    """
    report = ConsistencyReport()
    if not n_polygons or n_layers != 1:
        return report

    report.checked = True
    if n_centroids == n_polygons and not n_overlaps:
        return report

    report.consistent = False
    max_abs = max(abs(v) for v in extent) if extent is not None else 0.0
    min_snap, max_snap = estimate_snap_range(max_abs)
    report.min_snap, report.max_snap = min_snap, max_snap
    messages = report.messages

    if n_overlaps:
        messages.append("Some input polygons are overlapping each other.")
        messages.append("If overlapping is not desired, the data need to be cleaned.")
        if snap < max_snap:
            messages.append("The input could be cleaned by snapping vertices to each other.")
            messages.append(f"Estimated range of snapping threshold: [{min_snap:g}, {max_snap:g}]")

        if snap < min_snap:
            messages.append(
                f"Try to import again, snapping with at least {min_snap:g}: 'snap={min_snap:g}'"
            )
        elif snap < max_snap:
            suggestion = snap * 10
            messages.append(
                f"Try to import again, snapping with {suggestion:g}: 'snap={suggestion:g}'"
            )
        else:
            messages.append("Manual cleaning may be needed.")
    else:
        if n_centroids < n_polygons:
            messages.append(f"{n_polygons - n_centroids} input polygons got lost during import.")
        if n_centroids > n_polygons:
            messages.append(f"{n_centroids - n_polygons} additional areas where created during import.")
        if snap > 0:
            messages.append(f"The snapping threshold {snap:g} might be too large.")
            messages.append(f"Estimated range of snapping threshold: [{min_snap:g}, {max_snap:g}]")
            messages.append("Manual cleaning may be needed.")
        else:
            messages.append("The input could be cleaned by snapping vertices to each other.")
            messages.append(f"Estimated range of snapping threshold: [{min_snap:g}, {max_snap:g}]")

    logger.warning(SEPARATOR)
    for message in messages:
        logger.warning(message)

    return report
