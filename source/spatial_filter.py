"""
Spatial Selection Module

Builds per-layer spatial filters and the extent of the imported selection,
and checks that all imported layers share one coordinate reference system.

Functions:
    create_spatial_filters: Per-layer filters and the selection extent
    extent_is_valid: Whether an extent spans a non-empty area
    check_layer_crs: Reject imports mixing layers with different CRS
"""

from typing import Dict, Optional, Sequence, Tuple

from source.feature_source import DataSource
from utils.logger import get_logger

logger = get_logger(__name__)

Extent = Tuple[float, float, float, float]


def extent_is_valid(extent: Optional[Extent]) -> bool:
    if extent is None:
        return False
    xmin, ymin, xmax, ymax = extent
    return xmin < xmax and ymin < ymax


def create_spatial_filters(source: DataSource, layer_indices: Sequence[int],
                           spatial: Optional[Sequence[float]] = None
                           ) -> Tuple[Dict[int, Optional[Extent]], Optional[Extent]]:
    """
    Compute per-layer spatial filters and the extent of the selection.

    Each layer's extent is shrunk to the user box when one is given. Layers that
    do not overlap the user box get a warning. The selection extent is the
    union of the (shrunk) layer extents.

    Parameters:
    -----------
    source : DataSource
        Opened data source
    layer_indices : Sequence[int]
        Layers taking part in the import
    spatial : Optional[Sequence[float]]
        User box (xmin, ymin, xmax, ymax)

    Returns:
    --------
    Tuple[Dict[int, Optional[Extent]], Optional[Extent]]
        Filter per layer (None = no filter) and the selection extent
        (None when no layer has a usable extent)
    """
    user_box = tuple(float(v) for v in spatial) if spatial is not None else None
    filters: Dict[int, Optional[Extent]] = {}
    selection: Optional[Extent] = None

    for layer_index in layer_indices:
        layer = source.get_layer(layer_index)
        extent = layer.extent()
        filters[layer_index] = None

        if user_box is not None:
            filters[layer_index] = user_box
            if extent is None:
                continue
            shrunk = (
                max(extent[0], user_box[0]), max(extent[1], user_box[1]),
                min(extent[2], user_box[2]), min(extent[3], user_box[3]),
            )
            if shrunk[0] > shrunk[2] or shrunk[1] > shrunk[3]:
                logger.warning(
                    f"Layer <{layer.name}> does not overlap the spatial filter "
                    f"({user_box[0]}, {user_box[1]}, {user_box[2]}, {user_box[3]})"
                )
                continue
            extent = shrunk

        if extent is None:
            continue

        if selection is None:
            selection = extent
        else:
            selection = (
                min(selection[0], extent[0]), min(selection[1], extent[1]),
                max(selection[2], extent[2]), max(selection[3], extent[3]),
            )

    if selection is not None:
        logger.debug(f"Selection extent: {selection}")

    return filters, selection


def check_layer_crs(source: DataSource, layer_indices: Sequence[int]) -> None:
    """
    Make sure all imported layers use the same CRS.

    Layers without a CRS are compared as "unknown" and only match each other.

    Raises:
        ValueError: If two imported layers have different CRS
    """
    reference = None
    reference_name = None
    for position, layer_index in enumerate(layer_indices):
        layer = source.get_layer(layer_index)
        if position == 0:
            reference, reference_name = layer.crs, layer.name
            continue
        if (reference is None) != (layer.crs is None) or (
                reference is not None and not reference.equals(layer.crs)):
            raise ValueError(
                f"Layer <{layer.name}> has a different CRS than layer <{reference_name}>. "
                f"Import the layers separately or reproject them first."
            )
