"""
Feature Stream Module

Single "next feature of layer L" interface over a DataSource, whatever its
physical cursor layout.

Two reading strategies, picked once from the source's capabilities:
    - IndependentCursorStrategy: every layer has its own cursor, filters are set
      once and `next` pulls from the requested layer.
    - InterleavedCursorStrategy: all layers share one cursor. Filters cannot be
      kept on every layer at once, so switching the requested layer clears all
      filters, installs the requested layer's filters and rewinds the shared
      cursor; features owned by other layers are discarded.

Callers drain one layer completely before asking for the next one; switching
layers mid-stream is allowed but pays for a rewind in interleaved mode.
"""

from typing import Dict, Iterator, Optional, Sequence

from source.feature_source import DataSource, Feature, SpatialFilter
from utils.logger import get_logger

logger = get_logger(__name__)


class IndependentCursorStrategy:
    """Per-layer cursors; filters stay installed for the whole run."""

    def __init__(self, source: DataSource):
        self.source = source
        self.requested_layer = -1
        self.done = False
        self.rewind_count = 0

    def reset(self) -> None:
        self.source.reset_reading()
        self.requested_layer = -1
        self.done = False

    def next(self, layer_index: int) -> Optional[Feature]:
        layer = self.source.get_layer(layer_index)
        if self.requested_layer != layer_index:
            layer.reset_reading()
            self.rewind_count += 1
            self.requested_layer = layer_index
            self.done = False

        if self.done:
            return None

        feature = layer.next_feature()
        if feature is None:
            self.done = True
        return feature


class InterleavedCursorStrategy:
    """One shared cursor; layer switches reset filters and rewind."""

    def __init__(self, source: DataSource,
                 spatial_filters: Dict[int, Optional[SpatialFilter]],
                 attribute_filter: Optional[str]):
        self.source = source
        self.spatial_filters = spatial_filters
        self.attribute_filter = attribute_filter
        self.requested_layer = -1
        self.done = False
        self.rewind_count = 0

    def reset(self) -> None:
        self.source.reset_reading()
        self.requested_layer = -1
        self.done = False

    def _switch_to(self, layer_index: int) -> None:
        for i in range(self.source.layer_count()):
            layer = self.source.get_layer(i)
            layer.set_spatial_filter(None)
            layer.set_attribute_filter(None)

        self.source.reset_reading()
        self.rewind_count += 1

        layer = self.source.get_layer(layer_index)
        layer.set_spatial_filter(self.spatial_filters.get(layer_index))
        layer.set_attribute_filter(self.attribute_filter)

        self.requested_layer = layer_index
        self.done = False
        logger.debug(f"Interleaved reading rewound for layer <{layer.name}>")

    def next(self, layer_index: int) -> Optional[Feature]:
        if self.requested_layer != layer_index:
            self._switch_to(layer_index)

        if self.done:
            return None

        while True:
            item = self.source.next_feature()
            if item is None:
                self.done = True
                return None
            owner, feature = item
            if owner == layer_index:
                return feature


class FeatureStreamIterator:
    """
    Read features layer by layer from a DataSource.

    Parameters:
    -----------
    source : DataSource
        Dataset to read
    layer_indices : Sequence[int]
        Layers taking part in the import
    spatial_filters : Optional[Dict[int, SpatialFilter]]
        Per-layer spatial filter (box tuple or polygon)
    attribute_filter : Optional[str]
        Attribute filter expression applied to every imported layer

    Raises:
    -------
    ValueError
        If the attribute filter cannot be evaluated on one of the layers
    """

    def __init__(self, source: DataSource, layer_indices: Sequence[int],
                 spatial_filters: Optional[Dict[int, Optional[SpatialFilter]]] = None,
                 attribute_filter: Optional[str] = None):
        self.source = source
        self.layer_indices = list(layer_indices)
        self.spatial_filters = dict(spatial_filters or {})
        self.attribute_filter = attribute_filter

        # install (and validate) filters before any traversal starts
        for layer_index in self.layer_indices:
            layer = source.get_layer(layer_index)
            layer.set_spatial_filter(self.spatial_filters.get(layer_index))
            layer.set_attribute_filter(attribute_filter)

        if source.supports_independent_layer_cursors():
            self.strategy = IndependentCursorStrategy(source)
        else:
            logger.info("Using interleaved reading mode")
            self.strategy = InterleavedCursorStrategy(
                source, self.spatial_filters, attribute_filter
            )

    @property
    def interleaved(self) -> bool:
        return isinstance(self.strategy, InterleavedCursorStrategy)

    @property
    def rewind_count(self) -> int:
        return self.strategy.rewind_count

    def reset(self) -> None:
        """Rewind all layers to their first feature."""
        self.strategy.reset()

    def next(self, layer_index: int) -> Optional[Feature]:
        """Next feature of `layer_index`, or None once that layer is exhausted."""
        return self.strategy.next(layer_index)

    def features(self, layer_index: int) -> Iterator[Feature]:
        """Drain the remaining features of one layer."""
        while True:
            feature = self.next(layer_index)
            if feature is None:
                return
            yield feature
