"""
Configuration loading for the vector topology importer.

This module handles loading and validation of the import settings JSON file.

Constants:
    PROJECT_ROOT: Root directory of the project
    CONFIG_DIR: Configuration files directory
    OUTPUT_DIR: Output files directory
    VALID_TYPE_OVERRIDES: Accepted values of the 'type_overrides' setting

Functions:
    load_config: Load and validate the settings file from JSON
    load_import_settings: Merge defaults, file settings and explicit overrides
    validate_import_settings: Check merged settings for inconsistent values
"""

import json
from pathlib import Path
from typing import Dict, Optional

# Project paths
PROJECT_ROOT = Path(__file__).parent.parent
CONFIG_DIR = PROJECT_ROOT / 'config'
OUTPUT_DIR = PROJECT_ROOT / 'outputs'

# point: area centroids as points, line: area boundaries as lines,
# boundary: lines as area boundaries, centroid: points as centroids
VALID_TYPE_OVERRIDES = ('point', 'line', 'boundary', 'centroid')

DEFAULT_IMPORT_SETTINGS = {
    'min_area': 0.0001,
    'snap': -1.0,
    'no_clean': False,
    'force_2d': False,
    'type_overrides': [],
    'key_column': None,
    'where': None,
    'spatial': None,
    'layers': None,
    'split_divisor': 16.0,
    'split_min_boundaries': 50,
    'max_clean_iterations': 100,
    'arc_step_degrees': 4.0,
    'write_xlsx_report': True,
}


def load_config(config_path: Optional[Path] = None) -> Dict:
    """
    Load import configuration from JSON file.

    Reads the import_settings.json file and validates basic structure.

    Parameters:
    -----------
    config_path : Optional[Path]
        Settings file to read. Defaults to CONFIG_DIR/import_settings.json

    Returns:
    --------
    Dict
        Configuration dictionary with a 'settings' key

    Raises:
    -------
    FileNotFoundError
        If configuration file doesn't exist
    json.JSONDecodeError
        If configuration file contains invalid JSON
    KeyError
        If required configuration keys are missing
    """
    if config_path is None:
        config_path = CONFIG_DIR / 'import_settings.json'
    config_path = Path(config_path)

    if not config_path.exists():
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    with open(config_path, 'r', encoding='utf-8') as f:
        config = json.load(f)

    if 'settings' not in config:
        raise KeyError("Configuration missing required 'settings' key")

    return config


def load_import_settings(config: Optional[Dict] = None,
                         overrides: Optional[Dict] = None) -> Dict:
    """
    Load import settings from configuration.

    Args:
        config: Configuration dictionary (optional, will load if not provided)
        overrides: Explicit values (e.g. from the command line), None values are ignored

    Returns:
        Dictionary with import settings

    Defaults:
        - min_area: 0.0001 (smaller areas and islands are ignored)
        - snap: -1 (no snapping)
        - no_clean: False
        - force_2d: False
        - type_overrides: []
        - key_column: None (categories generated as 1..n per layer)
        - split_divisor: 16.0, split_min_boundaries: 50
        - max_clean_iterations: 100
        - arc_step_degrees: 4.0

    Note:
        Missing keys fall back to defaults so older settings files keep working.
    """
    if config is None:
        config = load_config()

    settings = {**DEFAULT_IMPORT_SETTINGS, **config.get('settings', {})}

    if overrides:
        settings.update({k: v for k, v in overrides.items() if v is not None})

    settings['type_overrides'] = list(settings.get('type_overrides') or [])
    validate_import_settings(settings)

    return settings


def validate_import_settings(settings: Dict) -> None:
    """
    Validate merged import settings.

    Raises:
        ValueError: If a setting has an unusable value
    """
    unknown = set(settings['type_overrides']) - set(VALID_TYPE_OVERRIDES)
    if unknown:
        raise ValueError(f"Unknown type override(s): {sorted(unknown)}")

    if settings['min_area'] < 0:
        raise ValueError(f"min_area must not be negative, got {settings['min_area']}")

    if settings['split_divisor'] <= 0:
        raise ValueError(f"split_divisor must be positive, got {settings['split_divisor']}")

    if settings['max_clean_iterations'] < 1:
        raise ValueError("max_clean_iterations must be at least 1")

    spatial = settings.get('spatial')
    if spatial is not None:
        if len(spatial) != 4:
            raise ValueError("4 parameters required for 'spatial' setting (xmin, ymin, xmax, ymax)")
        xmin, ymin, xmax, ymax = (float(v) for v in spatial)
        if xmin > xmax:
            raise ValueError("xmin is larger than xmax in 'spatial' setting")
        if ymin > ymax:
            raise ValueError("ymin is larger than ymax in 'spatial' setting")
