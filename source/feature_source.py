"""
Feature Source Module

Dataset / layer / feature model read by the importer.

A DataSource exposes one or more DataLayers. Each layer owns an ordered list of
Features, a cursor, an optional spatial filter and an optional attribute filter.
Sources either allow one cursor per layer (DataSource) or multiplex all layers
through one shared cursor (InterleavedDataSource); callers ask once through
supports_independent_layer_cursors() and pick their reading strategy.

Classes:
    Feature: One geometry plus a source id and named attribute values
    DataLayer: Filterable, rewindable feature sequence
    DataSource: Collection of layers with independent cursors
    InterleavedDataSource: Collection of layers read through one shared cursor

Functions:
    open_datasource: Open a file dataset with GeoPandas
"""

import numbers
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union

import geopandas as gpd
import pandas as pd
from pyproj import CRS
from shapely.geometry import box
from shapely.geometry.base import BaseGeometry

from geometry_input.geometry_types import AnyGeometry, linearize
from utils.logger import get_logger

logger = get_logger(__name__)

# File types whose GDAL driver can only read all layers through one cursor
INTERLEAVED_SUFFIXES = ('.osm', '.pbf')

SpatialFilter = Union[Tuple[float, float, float, float], BaseGeometry]


@dataclass
class Feature:
    """One input feature: geometry, source-assigned id and attribute values."""

    fid: int
    geometry: Optional[AnyGeometry]
    attributes: Dict[str, Any] = field(default_factory=dict)

    def field_count(self) -> int:
        return len(self.attributes)

    def field_value(self, key: Union[str, int]) -> Any:
        """Return an attribute value by field name or field position."""
        if isinstance(key, int):
            return list(self.attributes.values())[key]
        return self.attributes[key]


class DataLayer:
    """
    Ordered, rewindable sequence of features with optional filters.

    The spatial filter keeps features whose geometry envelope intersects the
    filter geometry (features without geometry are dropped while a spatial
    filter is active). The attribute filter is a pandas query expression
    evaluated against the layer's attribute table.
    """

    def __init__(self, index: int, name: str, features: Sequence[Feature],
                 crs: Optional[CRS] = None):
        self.index = index
        self.name = name
        self.crs = crs
        self._features = list(features)
        self._attributes = pd.DataFrame(
            [f.attributes for f in self._features],
            index=range(len(self._features))
        )
        self._bounds: List[Optional[Tuple[float, float, float, float]]] = [None] * len(self._features)
        self._bounds_ready = False
        self._spatial_filter: Optional[BaseGeometry] = None
        self._filter_is_box = False
        self._attribute_filter: Optional[str] = None
        self._attribute_mask: Optional[set] = None
        self._position = 0

    @classmethod
    def from_geodataframe(cls, index: int, name: str, gdf: gpd.GeoDataFrame) -> 'DataLayer':
        """Build a layer from a GeoDataFrame, using the frame index as feature id."""
        geometry_column = gdf.geometry.name
        features = []
        for position, (label, row) in enumerate(gdf.iterrows()):
            geom = row[geometry_column]
            if geom is not None and not isinstance(geom, BaseGeometry):
                geom = None
            attributes = {k: v for k, v in row.items() if k != geometry_column}
            fid = int(label) if isinstance(label, numbers.Integral) else position
            features.append(Feature(fid=fid, geometry=geom, attributes=attributes))
        crs = CRS.from_user_input(gdf.crs) if gdf.crs is not None else None
        return cls(index, name, features, crs=crs)

    @property
    def field_names(self) -> List[str]:
        return [str(c) for c in self._attributes.columns]

    @property
    def attribute_table(self) -> pd.DataFrame:
        """Attribute values of all features, ignoring filters."""
        return self._attributes

    def _ensure_bounds(self) -> None:
        if self._bounds_ready:
            return
        for i, feature in enumerate(self._features):
            if feature.geometry is None:
                continue
            flat = linearize(feature.geometry)
            if not flat.is_empty:
                self._bounds[i] = tuple(flat.bounds)
        self._bounds_ready = True

    def set_spatial_filter(self, spatial_filter: Optional[SpatialFilter]) -> None:
        """Set (or clear with None) the spatial filter: a box tuple or a polygon."""
        if spatial_filter is None:
            self._spatial_filter = None
        elif isinstance(spatial_filter, BaseGeometry):
            self._spatial_filter = spatial_filter
        else:
            self._spatial_filter = box(*spatial_filter)
        self._filter_is_box = (
            self._spatial_filter is not None
            and self._spatial_filter.equals(box(*self._spatial_filter.bounds))
        )

    def set_attribute_filter(self, expression: Optional[str]) -> None:
        """
        Set (or clear with None) the attribute filter.

        Raises:
            ValueError: If the expression cannot be evaluated on this layer
        """
        if not expression:
            self._attribute_filter = None
            self._attribute_mask = None
            return
        try:
            selected = self._attributes.query(expression)
        except Exception as e:
            raise ValueError(f"Error setting attribute filter '{expression}': {e}") from e
        self._attribute_filter = expression
        self._attribute_mask = set(selected.index)

    @property
    def spatial_filter(self) -> Optional[BaseGeometry]:
        return self._spatial_filter

    @property
    def attribute_filter(self) -> Optional[str]:
        return self._attribute_filter

    def accepts(self, position: int) -> bool:
        """Whether the feature at `position` passes the current filters."""
        if self._attribute_mask is not None and position not in self._attribute_mask:
            return False
        if self._spatial_filter is not None:
            self._ensure_bounds()
            bounds = self._bounds[position]
            if bounds is None:
                return False
            fxmin, fymin, fxmax, fymax = self._spatial_filter.bounds
            if bounds[0] > fxmax or bounds[2] < fxmin or bounds[1] > fymax or bounds[3] < fymin:
                return False
            if not self._filter_is_box:
                geometry = linearize(self._features[position].geometry)
                if not self._spatial_filter.intersects(geometry.envelope):
                    return False
        return True

    def feature_at(self, position: int) -> Feature:
        return self._features[position]

    def __len__(self) -> int:
        return len(self._features)

    def reset_reading(self) -> None:
        self._position = 0

    def next_feature(self) -> Optional[Feature]:
        while self._position < len(self._features):
            position = self._position
            self._position += 1
            if self.accepts(position):
                return self._features[position]
        return None

    def feature_count(self, force_exact: bool = False) -> Optional[int]:
        """
        Number of features passing the filters.

        Returns None when filters are active and an exact count was not forced.
        """
        if self._spatial_filter is None and self._attribute_mask is None:
            return len(self._features)
        if not force_exact:
            return None
        return sum(1 for i in range(len(self._features)) if self.accepts(i))

    def extent(self) -> Optional[Tuple[float, float, float, float]]:
        """Bounding box of all feature geometries, ignoring filters."""
        self._ensure_bounds()
        boxes = [b for b in self._bounds if b is not None]
        if not boxes:
            return None
        return (min(b[0] for b in boxes), min(b[1] for b in boxes),
                max(b[2] for b in boxes), max(b[3] for b in boxes))


class DataSource:
    """Collection of layers, each read through its own cursor."""

    def __init__(self, name: str, layers: Sequence[DataLayer]):
        self.name = name
        self._layers = list(layers)

    def supports_independent_layer_cursors(self) -> bool:
        return True

    def layer_count(self) -> int:
        return len(self._layers)

    def get_layer(self, index: int) -> DataLayer:
        return self._layers[index]

    def layer_names(self) -> List[str]:
        return [layer.name for layer in self._layers]

    def find_layer(self, name: str) -> int:
        """
        Return the index of the layer called `name`.

        Raises:
            ValueError: If no such layer exists
        """
        for layer in self._layers:
            if layer.name == name:
                return layer.index
        raise ValueError(f"Layer <{name}> not available")

    def reset_reading(self) -> None:
        for layer in self._layers:
            layer.reset_reading()


class InterleavedDataSource(DataSource):
    """
    Layers multiplexed through one shared cursor.

    The shared cursor walks the layers round-robin, `chunk_size` features at a
    time, the way streaming formats (e.g. OSM) emit them. Each returned feature
    is paired with the index of the layer that owns it; features rejected by
    their layer's current filters are skipped by the cursor.
    """

    def __init__(self, name: str, layers: Sequence[DataLayer], chunk_size: int = 2):
        super().__init__(name, layers)
        if chunk_size < 1:
            raise ValueError("chunk_size must be at least 1")
        self._order = self._interleave(chunk_size)
        self._cursor = 0
        self.rewind_count = 0

    def _interleave(self, chunk_size: int) -> List[Tuple[int, int]]:
        order = []
        offsets = [0] * len(self._layers)
        while True:
            emitted = False
            for i, layer in enumerate(self._layers):
                start = offsets[i]
                stop = min(start + chunk_size, len(layer))
                for position in range(start, stop):
                    order.append((i, position))
                    emitted = True
                offsets[i] = stop
            # a full pass over all layers without features ends the stream
            if not emitted:
                return order

    def supports_independent_layer_cursors(self) -> bool:
        return False

    def reset_reading(self) -> None:
        self._cursor = 0
        self.rewind_count += 1

    def next_feature(self) -> Optional[Tuple[int, Feature]]:
        while self._cursor < len(self._order):
            layer_index, position = self._order[self._cursor]
            self._cursor += 1
            layer = self._layers[layer_index]
            if layer.accepts(position):
                return layer_index, layer.feature_at(position)
        return None


def open_datasource(path: Union[str, Path], interleaved: Optional[bool] = None) -> DataSource:
    """
    Open a vector dataset and load all of its layers.

    Args:
        path: Path to a GDAL-readable vector dataset
        interleaved: Force (or disable) shared-cursor reading; by default it is
                     used for formats that require it

    Returns:
        DataSource (or InterleavedDataSource)

    Raises:
        FileNotFoundError: If the path doesn't exist
        ValueError: If the dataset cannot be read or has no layers
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Input data source not found: {path}")

    logger.info(f"Opening data source: {path}")

    try:
        listing = gpd.list_layers(path)
    except Exception as e:
        raise ValueError(f"Unable to open data source <{path}>: {e}") from e

    if listing.empty:
        raise ValueError("No layers available")

    layers = []
    for index, name in enumerate(listing['name']):
        try:
            gdf = gpd.read_file(path, layer=name)
        except Exception as e:
            raise ValueError(f"Unable to read layer <{name}> of <{path}>: {e}") from e
        layers.append(DataLayer.from_geodataframe(index, str(name), gdf))
        logger.debug(f"  - Layer <{name}>: {len(gdf)} feature(s), CRS {gdf.crs}")

    if interleaved is None:
        interleaved = path.suffix.lower() in INTERLEAVED_SUFFIXES

    logger.info(f"  - {len(layers)} layer(s) available")
    if interleaved:
        logger.info("  - Using interleaved reading mode")
        return InterleavedDataSource(path.name, layers)
    return DataSource(path.name, layers)
