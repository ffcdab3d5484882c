"""
Configuration package for the vector topology importer.

This package contains settings loading and validation.

Modules:
    config_loader: Load and validate import settings from JSON
"""

__version__ = '1.0.0'
