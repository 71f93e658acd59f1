"""
Utility modules for the map selection core.

This package contains utility functions and helpers used throughout the application.

Modules:
    logger: Logging configuration and setup
    geometry_converters: ESRI JSON to GeoJSON conversion
"""

__version__ = '1.0.0'
