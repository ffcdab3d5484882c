"""
Utility modules for the vector topology importer.

This package contains utility functions and helpers used throughout the application.

Modules:
    logger: Logging configuration and setup
    xlsx_generator: Import summary workbook
"""

__version__ = '1.0.0'
