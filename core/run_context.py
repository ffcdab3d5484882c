"""
Run context for one import.

Holds the run-scoped values shared by the census, import, cleaning and
reattachment stages, passed explicitly from stage to stage.
"""

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple


@dataclass
class RunContext:
    """Run-scoped settings and counters of one import."""

    layer_indices: List[int]
    layer_names: List[str]
    settings: Dict
    extent: Optional[Tuple[float, float, float, float]] = None
    split_distance: float = -1.0
    with_z: bool = False

    # filled by the census pass
    n_polygon_boundaries: int = 0
    input_3d: bool = False

    # filled by the import pass
    n_polygons: int = 0
    n_small_areas: int = 0
    n_boundaries_written: int = 0
    n_split_fragments: int = 0
    n_without_geometry: int = 0
    n_malformed: int = 0
    n_key_fallbacks: int = 0
    warnings: List[str] = field(default_factory=list)

    @property
    def n_layers(self) -> int:
        return len(self.layer_indices)

    @property
    def overlap_field(self) -> int:
        """Field holding the overlap count: one past the last layer field."""
        return self.n_layers + 1

    def layer_field(self, position: int) -> int:
        """Field number of the layer at `position` in the import order."""
        return position + 1

    @property
    def type_overrides(self) -> List[str]:
        return self.settings['type_overrides']

    @property
    def cleaning(self) -> bool:
        return not self.settings['no_clean']
