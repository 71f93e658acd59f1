"""
Geometry package for the map selection core.

Value types, rectangle intersection predicates and spherical distance/area helpers
shared by the query orchestrator and the interactive tools.

Modules:
    types: GeoPoint, BoundingBox, Geometry union, Feature
    intersection: Does a geometry overlap a user-drawn rectangle?
    measure: Distance/area primitives and unit conversions

Usage:
    from geometry import BoundingBox, GeoPoint, geometry_intersects_rectangle

    bbox = BoundingBox(west=-83.0, south=39.9, east=-82.9, north=40.0).validate()
"""

from geometry.types import (
    GeoPoint,
    BoundingBox,
    InvalidBoundingBoxError,
    Point,
    LineString,
    Polygon,
    MultiLineString,
    MultiPolygon,
    Geometry,
    Feature,
    parse_geometry
)
from geometry.intersection import (
    point_in_rectangle,
    point_in_polygon,
    segments_intersect,
    line_intersects_rectangle,
    polygon_intersects_rectangle,
    geometry_intersects_rectangle
)

__all__ = [
    'GeoPoint',
    'BoundingBox',
    'InvalidBoundingBoxError',
    'Point',
    'LineString',
    'Polygon',
    'MultiLineString',
    'MultiPolygon',
    'Geometry',
    'Feature',
    'parse_geometry',
    'point_in_rectangle',
    'point_in_polygon',
    'segments_intersect',
    'line_intersects_rectangle',
    'polygon_intersects_rectangle',
    'geometry_intersects_rectangle'
]
