# tests/conftest.py

from typing import Dict, List, Optional, Sequence

import geopandas as gpd
import pytest
from shapely.geometry import Polygon, box

from config.config_loader import load_import_settings
from source.feature_source import DataLayer, DataSource, InterleavedDataSource


def square(x: float, y: float, size: float = 1.0) -> Polygon:
    return box(x, y, x + size, y + size)


def make_layer(index: int, name: str, geometries: Sequence,
               attributes: Optional[Dict[str, List]] = None, crs=None) -> DataLayer:
    """GeoDataFrame-backed layer with the given geometries and attribute columns."""
    data = dict(attributes or {})
    gdf = gpd.GeoDataFrame(data, geometry=list(geometries), crs=crs)
    return DataLayer.from_geodataframe(index, name, gdf)


def make_source(layers: Dict[str, Sequence], interleaved: bool = False,
                attributes: Optional[Dict[str, Dict[str, List]]] = None) -> DataSource:
    built = [
        make_layer(i, name, geoms, (attributes or {}).get(name))
        for i, (name, geoms) in enumerate(layers.items())
    ]
    if interleaved:
        return InterleavedDataSource('memory', built)
    return DataSource('memory', built)


@pytest.fixture
def settings():
    """Default import settings, without reading the settings file."""
    return load_import_settings(config={'settings': {}})


@pytest.fixture
def make_settings():
    def _make(**overrides):
        return load_import_settings(config={'settings': {}}, overrides=overrides)
    return _make


@pytest.fixture
def disjoint_squares():
    return [square(2.0 * i, 0.0) for i in range(4)]


@pytest.fixture
def overlapping_squares():
    return [square(0, 0, 2), square(1, 1, 2)]


@pytest.fixture
def donut():
    return Polygon(
        [(0, 0), (10, 0), (10, 10), (0, 10)],
        [[(4, 4), (4, 6), (6, 6), (6, 4)]],
    )


@pytest.fixture
def two_layer_data():
    return {
        'a': [square(0, 0), square(2, 0), square(4, 0), None, square(6, 0)],
        'b': [square(10, 0), square(12, 0), square(14, 0)],
    }
