"""
Distance and area primitives on a spherical Earth.

Distance uses pyproj's geodesic solver on a sphere of the mean Earth radius, which is
the same model the web map's point-to-point distance uses. Area uses the planar
shoelace formula on raw longitude/latitude degrees scaled by (pi/180)^2 * R^2, a
small-polygon approximation that is fine for project-sized areas but drifts for
shapes spanning large latitude ranges.

Constants:
    EARTH_RADIUS_M, METERS_TO_MILES, METERS_TO_FEET,
    SQ_METERS_TO_ACRES, SQ_METERS_TO_SQ_MILES

Functions:
    distance_meters: Great-circle distance between two points
    path_length_meters: Sum of consecutive segment distances
    polygon_area_sq_meters: Shoelace area of a vertex ring
    meters_to_miles_feet / sq_meters_to_acres_sq_miles: Unit conversions
    expand_bbox_meters: Grow a BoundingBox by a distance margin
"""

import math
from typing import Sequence, Tuple

from pyproj import Geod

from geometry.types import BoundingBox, GeoPoint

EARTH_RADIUS_M = 6371000.0
METERS_TO_MILES = 0.000621371
METERS_TO_FEET = 3.28084
SQ_METERS_TO_ACRES = 0.000247105
SQ_METERS_TO_SQ_MILES = 3.86102e-7

# Pole-adjacent boxes would need a near-infinite longitude margin
_MAX_REFERENCE_LATITUDE = 89.0

_SPHERE = Geod(a=EARTH_RADIUS_M, f=0.0)


def distance_meters(a: GeoPoint, b: GeoPoint) -> float:
    """Great-circle distance in meters on the mean-radius sphere."""
    _, _, dist = _SPHERE.inv(a.longitude, a.latitude, b.longitude, b.latitude)
    return float(dist)


def path_length_meters(points: Sequence[GeoPoint]) -> float:
    """Sum of the distances between consecutive points (0 for fewer than 2)."""
    return sum(distance_meters(p1, p2) for p1, p2 in zip(points, points[1:]))


def polygon_area_sq_meters(points: Sequence[GeoPoint]) -> float:
    """
    Approximate area of the polygon formed by `points`.

    The ring is closed implicitly; fewer than 3 points gives 0. Collinear vertices
    give 0.
    """
    n = len(points)
    if n < 3:
        return 0.0

    twice_area = 0.0
    for i in range(n):
        j = (i + 1) % n
        twice_area += points[i].longitude * points[j].latitude
        twice_area -= points[j].longitude * points[i].latitude

    area_deg2 = abs(twice_area) / 2.0
    return area_deg2 * (math.pi / 180.0) ** 2 * EARTH_RADIUS_M ** 2


def meters_to_miles_feet(meters: float) -> Tuple[float, float]:
    return meters * METERS_TO_MILES, meters * METERS_TO_FEET


def sq_meters_to_acres_sq_miles(sq_meters: float) -> Tuple[float, float]:
    return sq_meters * SQ_METERS_TO_ACRES, sq_meters * SQ_METERS_TO_SQ_MILES


def expand_bbox_meters(bbox: BoundingBox, meters: float) -> BoundingBox:
    """
    Grow a box by roughly `meters` on every side.

    The longitude margin is measured at the box's most poleward latitude, where a
    degree of longitude is shortest, so the margin is never smaller than requested.

    Parameters:
    -----------
    bbox : BoundingBox
        Box to expand
    meters : float
        Margin in meters (0 or negative returns the box unchanged)

    Returns:
    --------
    BoundingBox
        Expanded box, clamped to [-180, 180] / [-90, 90]
    """
    if meters <= 0:
        return bbox

    reference_lat = min(max(abs(bbox.south), abs(bbox.north)), _MAX_REFERENCE_LATITUDE)
    _, d_lat, _ = _SPHERE.fwd(0.0, 0.0, 0.0, meters)
    d_lon, _, _ = _SPHERE.fwd(0.0, reference_lat, 90.0, meters)

    return bbox.expand_degrees(abs(d_lon), abs(d_lat))
