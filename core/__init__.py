"""
Core modules for the map selection core.

This package contains the layer query orchestration and the interactive tools
that sit between a web map and remote ArcGIS feature layers.

Modules:
    arcgis_query: Query ArcGIS FeatureServers/MapServers
    query_cache: TTL + LRU cache of layer query results
    layer_processor: Query multiple layers for one selection
    field_catalog: Field discovery and attribute filtering
    display: Display sink protocol and logging sink
    session: Map session shared by the tools
    draw_select: Rectangle selection tool
    measurement: Line/area measurement tool
"""

__version__ = '1.0.0'
