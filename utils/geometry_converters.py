"""
Geometry conversion utilities for the map selection core.

ArcGIS FeatureServers/MapServers answer `f=json` queries in ESRI JSON, while the rest
of the core works on GeoJSON-shaped features (nested [lon, lat] coordinates). This
module converts ESRI responses into that shape and builds the ESRI envelope used for
spatial queries.

Functions:
    convert_esri_point: Convert ESRI point geometry to GeoJSON
    convert_esri_paths: Convert ESRI paths to GeoJSON LineString/MultiLineString
    convert_esri_rings: Convert ESRI rings to GeoJSON Polygon/MultiPolygon
    convert_esri_to_geojson: Main dispatcher for ESRI feature → GeoJSON feature
    bbox_to_esri_envelope: BoundingBox → ESRI envelope dict (EPSG:4326)
"""

from typing import Dict, List, Optional

from geometry.types import BoundingBox
from utils.logger import get_logger

logger = get_logger(__name__)

WGS84_SPATIAL_REFERENCE = {'wkid': 4326}


def convert_esri_point(geom: Dict) -> Optional[Dict]:
    """
    Convert ESRI point geometry to a GeoJSON Point.

    Example:
        >>> convert_esri_point({'x': -82.99, 'y': 39.96})
        {'type': 'Point', 'coordinates': [-82.99, 39.96]}
    """
    if geom.get('x') is None or geom.get('y') is None:
        return None

    return {'type': 'Point', 'coordinates': [geom['x'], geom['y']]}


def convert_esri_paths(geom: Dict) -> Optional[Dict]:
    """
    Convert ESRI paths to GeoJSON LineString or MultiLineString.

    A single path becomes a LineString, several paths become a MultiLineString.
    """
    paths = geom.get('paths')
    if not paths:
        return None

    if len(paths) == 1:
        return {'type': 'LineString', 'coordinates': paths[0]}

    return {'type': 'MultiLineString', 'coordinates': paths}


def _signed_ring_area(ring: List[List[float]]) -> float:
    total = 0.0
    for (x1, y1), (x2, y2) in zip((pt[:2] for pt in ring), (pt[:2] for pt in ring[1:])):
        total += x1 * y2 - x2 * y1
    return total / 2.0


def convert_esri_rings(geom: Dict) -> Optional[Dict]:
    """
    Convert ESRI rings to GeoJSON Polygon or MultiPolygon.

    ESRI stores every ring of a polygon in one flat list. Outer rings are clockwise
    (negative signed area), holes counter-clockwise; each hole belongs to the outer
    ring that precedes it. One outer ring gives a Polygon, several give a
    MultiPolygon.

    Notes:
    ------
    - A leading hole with no outer ring before it is promoted to an outer ring
    - Degenerate rings (fewer than 4 points) are dropped
    """
    rings = geom.get('rings')
    if not rings:
        return None

    polygons: List[List[List[List[float]]]] = []
    for ring in rings:
        if not ring or len(ring) < 4:
            logger.debug(f"Dropping degenerate ESRI ring with {len(ring or [])} points")
            continue
        is_outer = _signed_ring_area(ring) < 0
        if is_outer or not polygons:
            polygons.append([ring])
        else:
            polygons[-1].append(ring)

    if not polygons:
        return None

    if len(polygons) == 1:
        return {'type': 'Polygon', 'coordinates': polygons[0]}

    return {'type': 'MultiPolygon', 'coordinates': polygons}


def convert_esri_to_geojson(esri_feature: Dict) -> Optional[Dict]:
    """
    Main converter dispatcher for ESRI JSON to GeoJSON.

    Detects the geometry type by structure and calls the matching converter.

    Parameters:
    -----------
    esri_feature : Dict
        ESRI JSON feature with 'geometry' and 'attributes' keys

    Returns:
    --------
    Optional[Dict]
        GeoJSON Feature dict, or None if the geometry is missing or unsupported
        (multipoints included)

    Example:
        >>> convert_esri_to_geojson({
        ...     'geometry': {'x': -82.99, 'y': 39.96},
        ...     'attributes': {'SFN': '2500123'}
        ... })
        {'type': 'Feature', 'geometry': {...}, 'properties': {'SFN': '2500123'}}
    """
    geom = esri_feature.get('geometry')
    props = esri_feature.get('attributes') or {}

    if not geom or not isinstance(geom, dict):
        return None

    if 'x' in geom and 'y' in geom:
        geojson_geom = convert_esri_point(geom)
    elif 'paths' in geom:
        geojson_geom = convert_esri_paths(geom)
    elif 'rings' in geom:
        geojson_geom = convert_esri_rings(geom)
    else:
        geojson_geom = None

    if geojson_geom is None:
        return None

    return {'type': 'Feature', 'geometry': geojson_geom, 'properties': props}


def bbox_to_esri_envelope(bbox: BoundingBox) -> Dict:
    """Build the ESRI envelope geometry for an esriGeometryEnvelope query."""
    return {
        'xmin': bbox.west,
        'ymin': bbox.south,
        'xmax': bbox.east,
        'ymax': bbox.north,
        'spatialReference': WGS84_SPATIAL_REFERENCE
    }
