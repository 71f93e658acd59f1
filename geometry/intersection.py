"""
Rectangle intersection predicates.

Pure functions deciding whether a geometry overlaps a user-drawn BoundingBox. They are
used to re-filter every feature a remote layer returns, because the server's own
spatial filter may be looser (expanded query boxes, attribute fallback) than the
rectangle the user drew.

Boundary policy:
    - The rectangle is a closed set: a vertex on any rectangle edge is inside.
    - Segment crossing uses the orientation (ccw) sign test. Exactly collinear
      segments never "cross", so a segment that only runs along or grazes a
      rectangle edge without a vertex inside it is not a hit.
    - Point-in-polygon is a half-open ray cast; points exactly on a polygon edge
      may land on either side.

Malformed input (too few points) returns False. Nothing here raises.

Functions:
    point_in_rectangle, point_in_polygon, segments_intersect,
    segment_intersects_rectangle, line_intersects_rectangle,
    polygon_intersects_rectangle, geometry_intersects_rectangle
"""

from typing import Sequence, Tuple

from geometry.types import (
    BoundingBox, GeoPoint, Geometry,
    Point, LineString, Polygon, MultiLineString, MultiPolygon
)


def point_in_rectangle(p: GeoPoint, b: BoundingBox) -> bool:
    """Inclusive on all four edges."""
    return (b.west <= p.longitude <= b.east) and (b.south <= p.latitude <= b.north)


def point_in_polygon(p: GeoPoint, ring: Sequence[GeoPoint]) -> bool:
    """
    Ray-casting parity test.

    The ring may be closed or open; fewer than 3 vertices is never "inside".
    """
    n = len(ring)
    if n < 3:
        return False

    x, y = p.longitude, p.latitude
    inside = False
    j = n - 1
    for i in range(n):
        xi, yi = ring[i].longitude, ring[i].latitude
        xj, yj = ring[j].longitude, ring[j].latitude
        if (yi > y) != (yj > y):
            x_cross = (xj - xi) * (y - yi) / (yj - yi) + xi
            if x < x_cross:
                inside = not inside
        j = i
    return inside


def _ccw(a: GeoPoint, b: GeoPoint, c: GeoPoint) -> bool:
    return ((c.latitude - a.latitude) * (b.longitude - a.longitude)
            > (b.latitude - a.latitude) * (c.longitude - a.longitude))


def segments_intersect(a1: GeoPoint, a2: GeoPoint, b1: GeoPoint, b2: GeoPoint) -> bool:
    """
    True if segment a1-a2 crosses segment b1-b2.

    Strict orientation test: collinear, non-crossing pairs return False.
    """
    return (_ccw(a1, b1, b2) != _ccw(a2, b1, b2)) and (_ccw(a1, a2, b1) != _ccw(a1, a2, b2))


def segment_intersects_rectangle(p1: GeoPoint, p2: GeoPoint, b: BoundingBox) -> bool:
    """Either endpoint inside the rectangle, or the segment crosses one of its edges."""
    if point_in_rectangle(p1, b) or point_in_rectangle(p2, b):
        return True
    return any(segments_intersect(p1, p2, e1, e2) for e1, e2 in b.edges())


def line_intersects_rectangle(line: Sequence[GeoPoint], b: BoundingBox) -> bool:
    """
    True if any vertex lies in the rectangle or any segment crosses a rectangle edge.

    A line needs at least 2 points.
    """
    if len(line) < 2:
        return False

    if any(point_in_rectangle(p, b) for p in line):
        return True

    for p1, p2 in zip(line, line[1:]):
        if any(segments_intersect(p1, p2, e1, e2) for e1, e2 in b.edges()):
            return True
    return False


def _ring_edges(ring: Sequence[GeoPoint]) -> Sequence[Tuple[GeoPoint, GeoPoint]]:
    edges = list(zip(ring, ring[1:]))
    if ring[0] != ring[-1]:
        edges.append((ring[-1], ring[0]))
    return edges


def polygon_intersects_rectangle(ring: Sequence[GeoPoint], b: BoundingBox) -> bool:
    """
    True if any ring edge touches/crosses the rectangle, or the rectangle lies wholly
    inside the ring (all 4 corners test inside).

    Parameters:
    -----------
    ring : Sequence[GeoPoint]
        Outer ring, closed (first == last) or open; needs at least 3 distinct vertices
    b : BoundingBox
        Selection rectangle

    Returns:
    --------
    bool
        False for rings with fewer than 3 points
    """
    if len(ring) < 3:
        return False

    for p1, p2 in _ring_edges(ring):
        if segment_intersects_rectangle(p1, p2, b):
            return True

    return all(point_in_polygon(corner, ring) for corner in b.corners())


def geometry_intersects_rectangle(geometry: Geometry, b: BoundingBox) -> bool:
    """
    Dispatch over the Geometry union.

    Points use exact inclusion; lines and polygons use the predicates above; multi
    geometries intersect when any member does. Polygons are tested on their outer ring.
    """
    if isinstance(geometry, Point):
        return point_in_rectangle(geometry.position, b)
    if isinstance(geometry, LineString):
        return line_intersects_rectangle(geometry.points, b)
    if isinstance(geometry, Polygon):
        return polygon_intersects_rectangle(geometry.exterior, b)
    if isinstance(geometry, MultiLineString):
        return any(line_intersects_rectangle(line.points, b) for line in geometry.lines)
    if isinstance(geometry, MultiPolygon):
        return any(polygon_intersects_rectangle(poly.exterior, b) for poly in geometry.polygons)
    return False
