"""
Configuration package for the map selection core.

This package contains configuration loading and validation.

Modules:
    config_loader: Load layer descriptors and query/interaction settings from JSON
"""

__version__ = '1.0.0'
