"""
Configuration loading for the map selection core.

This module handles loading and validation of the layer configuration JSON file,
and turns the raw layer entries into LayerDescriptor objects.

Constants:
    PROJECT_ROOT: Root directory of the project
    CONFIG_DIR: Configuration files directory
    DEFAULT_CONFIG_PATH: Bundled layers_config.json

Functions:
    load_config: Load and validate layer configuration from JSON
    load_query_settings: Orchestrator settings merged with defaults
    load_interaction_settings: Draw/measure tool settings merged with defaults
    load_layer_descriptors: Build LayerDescriptor objects from the config
"""

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional, Union

# Project paths
PROJECT_ROOT = Path(__file__).parent.parent
CONFIG_DIR = PROJECT_ROOT / 'config'
DEFAULT_CONFIG_PATH = CONFIG_DIR / 'layers_config.json'

QUERY_SETTING_DEFAULTS = {
    'page_size': 100,
    'broad_fetch_limit': 1000,
    'fallback_limit': 500,
    'very_low_zoom': 8,
    'low_zoom': 10,
    'low_zoom_expansion_fraction': 0.1,
    'normal_zoom_margin_meters': 100.0,
    'primary_timeout': 15.0,
    'fallback_timeout': 10.0,
    'count_timeout': 2.0,
    'cache_ttl_seconds': 300.0,
    'cache_max_entries': 256,
}

INTERACTION_SETTING_DEFAULTS = {
    'min_drag_pixels': 10,
    'double_click_guard_seconds': 0.1,
}


@dataclass(frozen=True)
class LayerDescriptor:
    """
    Read-only description of one remote feature layer.

    `max_features_per_request` caps single-shot attribute fetches (fallback, broad
    and field sampling) for this layer. Spatial pages always use the global page size.
    """

    id: str
    name: str
    url: str
    layer_id: int
    zoom_visibility_threshold: int = 0
    max_features_per_request: int = 1000
    enabled: bool = True
    geometry_type: Optional[str] = None

    @property
    def endpoint(self) -> str:
        """Full REST endpoint of the layer (service URL + layer index)."""
        return f"{self.url.rstrip('/')}/{self.layer_id}"

    def visible_at(self, zoom: float) -> bool:
        return zoom >= self.zoom_visibility_threshold


def load_config(config_path: Optional[Union[str, Path]] = None) -> Dict:
    """
    Load layer configuration from JSON file.

    Reads layers_config.json (or the given path) and validates basic structure.

    Parameters:
    -----------
    config_path : Optional[Union[str, Path]]
        Path to a configuration file. Defaults to config/layers_config.json

    Returns:
    --------
    Dict
        Configuration dictionary with 'layers' and 'settings' keys

    Raises:
    -------
    FileNotFoundError
        If configuration file doesn't exist
    json.JSONDecodeError
        If configuration file contains invalid JSON
    KeyError
        If required configuration keys are missing
    """
    config_path = Path(config_path) if config_path else DEFAULT_CONFIG_PATH

    if not config_path.exists():
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    with open(config_path, 'r', encoding='utf-8') as f:
        config = json.load(f)

    # Validate required keys
    if 'layers' not in config:
        raise KeyError("Configuration missing required 'layers' key")
    if 'settings' not in config:
        raise KeyError("Configuration missing required 'settings' key")

    return config


def load_query_settings(config: Dict = None) -> Dict:
    """
    Load spatial query settings from configuration.

    Args:
        config: Configuration dictionary (optional, will load if not provided)

    Returns:
        Dictionary with query settings, config values overriding QUERY_SETTING_DEFAULTS

    Note:
        Unknown keys in 'settings' are passed through untouched.
    """
    if config is None:
        config = load_config()

    return {**QUERY_SETTING_DEFAULTS, **config.get('settings', {})}


def load_interaction_settings(config: Dict = None) -> Dict:
    """
    Load draw-select and measurement settings from configuration.

    Returns defaults if the 'interaction_settings' section is missing.
    """
    if config is None:
        config = load_config()

    return {**INTERACTION_SETTING_DEFAULTS, **config.get('interaction_settings', {})}


def load_layer_descriptors(config: Dict = None) -> List[LayerDescriptor]:
    """
    Build LayerDescriptor objects from the 'layers' section.

    Parameters:
    -----------
    config : Dict
        Configuration dictionary (optional, will load if not provided)

    Returns:
    --------
    List[LayerDescriptor]
        One descriptor per configured layer, in config order

    Raises:
    -------
    KeyError
        If a layer entry is missing 'id', 'url' or 'layer_id'
    ValueError
        If two layers share the same id
    """
    if config is None:
        config = load_config()

    descriptors = []
    seen = set()
    for entry in config['layers']:
        for key in ('id', 'url', 'layer_id'):
            if key not in entry:
                raise KeyError(f"Layer entry missing required '{key}' key: {entry}")

        layer_id = str(entry['id'])
        if layer_id in seen:
            raise ValueError(f"Duplicate layer id in configuration: {layer_id}")
        seen.add(layer_id)

        descriptors.append(LayerDescriptor(
            id=layer_id,
            name=entry.get('name', layer_id),
            url=entry['url'],
            layer_id=int(entry['layer_id']),
            zoom_visibility_threshold=int(entry.get('zoom_visibility_threshold', 0)),
            max_features_per_request=int(entry.get('max_features_per_request', 1000)),
            enabled=bool(entry.get('enabled', True)),
            geometry_type=entry.get('geometry_type'),
        ))

    return descriptors
