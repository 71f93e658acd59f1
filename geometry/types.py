"""
Geometry value types for the map selection core.

All coordinates are geographic (EPSG:4326) in [longitude, latitude] order, matching
GeoJSON. The types are immutable; features returned by the orchestrator are shared
by reference with display and export collaborators.

Classes:
    GeoPoint: A single longitude/latitude pair
    BoundingBox: Axis-aligned rectangle (west, south, east, north)
    Point, LineString, Polygon, MultiLineString, MultiPolygon: Geometry union
    Feature: Geometry + properties + originating layer id

Functions:
    parse_geometry: Build a Geometry from a GeoJSON geometry dict
"""

import math
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, ClassVar, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple, Union

from shapely.geometry import box, shape
from shapely.geometry.base import BaseGeometry


class InvalidBoundingBoxError(ValueError):
    """Raised when a bounding box has non-finite, out-of-range or inverted coordinates."""


@dataclass(frozen=True)
class GeoPoint:
    longitude: float
    latitude: float

    def as_list(self) -> List[float]:
        return [self.longitude, self.latitude]


@dataclass(frozen=True)
class BoundingBox:
    """
    Axis-aligned rectangle in degrees.

    Invariant (checked by validate()): west <= east, south <= north, all values finite
    and inside [-180, 180] / [-90, 90]. Boxes never wrap the antimeridian.
    """

    west: float
    south: float
    east: float
    north: float

    @classmethod
    def from_corners(cls, a: GeoPoint, b: GeoPoint) -> 'BoundingBox':
        """Normalise two opposite corners (e.g. drag anchor and pointer) into a box."""
        return cls(
            west=min(a.longitude, b.longitude),
            south=min(a.latitude, b.latitude),
            east=max(a.longitude, b.longitude),
            north=max(a.latitude, b.latitude),
        )

    def validate(self) -> 'BoundingBox':
        """
        Check the box invariants.

        Returns:
        --------
        BoundingBox
            self, so the call can be chained

        Raises:
        -------
        InvalidBoundingBoxError
            If any coordinate is not a finite number, is out of range, or the box is inverted
        """
        values = (self.west, self.south, self.east, self.north)
        for value in values:
            if isinstance(value, bool) or not isinstance(value, (int, float)) or not math.isfinite(value):
                raise InvalidBoundingBoxError(f"Bounding box has non-finite coordinate: {values}")

        if not (-180.0 <= self.west <= 180.0 and -180.0 <= self.east <= 180.0):
            raise InvalidBoundingBoxError(f"Longitude out of range [-180, 180]: {values}")
        if not (-90.0 <= self.south <= 90.0 and -90.0 <= self.north <= 90.0):
            raise InvalidBoundingBoxError(f"Latitude out of range [-90, 90]: {values}")
        if self.west > self.east or self.south > self.north:
            raise InvalidBoundingBoxError(f"Bounding box is inverted: {values}")

        return self

    @property
    def width(self) -> float:
        return self.east - self.west

    @property
    def height(self) -> float:
        return self.north - self.south

    def corners(self) -> Tuple[GeoPoint, GeoPoint, GeoPoint, GeoPoint]:
        """Corners in SW, SE, NE, NW order."""
        return (
            GeoPoint(self.west, self.south),
            GeoPoint(self.east, self.south),
            GeoPoint(self.east, self.north),
            GeoPoint(self.west, self.north),
        )

    def edges(self) -> Tuple[Tuple[GeoPoint, GeoPoint], ...]:
        """The four rectangle edges: bottom, right, top, left."""
        sw, se, ne, nw = self.corners()
        return ((sw, se), (se, ne), (ne, nw), (nw, sw))

    def expand_degrees(self, d_lon: float, d_lat: float) -> 'BoundingBox':
        """Grow the box on every side, clamped to the valid coordinate range."""
        return BoundingBox(
            west=max(-180.0, self.west - d_lon),
            south=max(-90.0, self.south - d_lat),
            east=min(180.0, self.east + d_lon),
            north=min(90.0, self.north + d_lat),
        )

    def expand_fraction(self, fraction: float) -> 'BoundingBox':
        """Grow each side by `fraction` of the box's own width/height."""
        return self.expand_degrees(self.width * fraction, self.height * fraction)

    def cache_key(self, decimals: int = 6) -> Tuple[float, float, float, float]:
        # 6 decimals is ~0.1 m, so only genuinely identical boxes share a key
        return (
            round(self.west, decimals),
            round(self.south, decimals),
            round(self.east, decimals),
            round(self.north, decimals),
        )

    def to_shapely(self) -> BaseGeometry:
        return box(self.west, self.south, self.east, self.north)


def _coords(points: Iterable[GeoPoint]) -> List[List[float]]:
    return [p.as_list() for p in points]


class _GeometryMixin:
    geom_type: ClassVar[str] = ''

    @property
    def __geo_interface__(self) -> Dict[str, Any]:
        return {'type': self.geom_type, 'coordinates': self.coordinates_list()}

    def coordinates_list(self) -> Any:
        raise NotImplementedError

    def to_shapely(self) -> BaseGeometry:
        """Convert to a Shapely geometry for rendering/export collaborators."""
        return shape(self.__geo_interface__)


@dataclass(frozen=True)
class Point(_GeometryMixin):
    geom_type: ClassVar[str] = 'Point'

    position: GeoPoint

    def coordinates_list(self) -> List[float]:
        return self.position.as_list()


@dataclass(frozen=True)
class LineString(_GeometryMixin):
    geom_type: ClassVar[str] = 'LineString'

    points: Tuple[GeoPoint, ...]

    def coordinates_list(self) -> List[List[float]]:
        return _coords(self.points)


@dataclass(frozen=True)
class Polygon(_GeometryMixin):
    """Polygon as a sequence of rings; the first ring is the outer boundary."""

    geom_type: ClassVar[str] = 'Polygon'

    rings: Tuple[Tuple[GeoPoint, ...], ...]

    @property
    def exterior(self) -> Tuple[GeoPoint, ...]:
        return self.rings[0] if self.rings else ()

    def coordinates_list(self) -> List[List[List[float]]]:
        return [_coords(ring) for ring in self.rings]


@dataclass(frozen=True)
class MultiLineString(_GeometryMixin):
    geom_type: ClassVar[str] = 'MultiLineString'

    lines: Tuple[LineString, ...]

    def coordinates_list(self) -> List[List[List[float]]]:
        return [line.coordinates_list() for line in self.lines]


@dataclass(frozen=True)
class MultiPolygon(_GeometryMixin):
    geom_type: ClassVar[str] = 'MultiPolygon'

    polygons: Tuple[Polygon, ...]

    def coordinates_list(self) -> List[List[List[List[float]]]]:
        return [polygon.coordinates_list() for polygon in self.polygons]


Geometry = Union[Point, LineString, Polygon, MultiLineString, MultiPolygon]


def _to_point(pair: Any) -> GeoPoint:
    # Extra ordinates (z, m) are ignored
    if not isinstance(pair, (list, tuple)) or len(pair) < 2:
        raise ValueError(f"Invalid coordinate pair: {pair!r}")
    lon, lat = pair[0], pair[1]
    if isinstance(lon, bool) or isinstance(lat, bool):
        raise ValueError(f"Invalid coordinate pair: {pair!r}")
    lon, lat = float(lon), float(lat)
    if not (math.isfinite(lon) and math.isfinite(lat)):
        raise ValueError(f"Non-finite coordinate pair: {pair!r}")
    return GeoPoint(lon, lat)


def _to_path(coords: Any) -> Tuple[GeoPoint, ...]:
    if not isinstance(coords, (list, tuple)):
        raise ValueError(f"Invalid coordinate sequence: {coords!r}")
    return tuple(_to_point(pair) for pair in coords)


def _to_polygon(coords: Any) -> Polygon:
    if not isinstance(coords, (list, tuple)) or not coords:
        raise ValueError(f"Invalid polygon rings: {coords!r}")
    return Polygon(rings=tuple(_to_path(ring) for ring in coords))


def parse_geometry(raw: Optional[Mapping[str, Any]]) -> Optional[Geometry]:
    """
    Build a Geometry from a GeoJSON-style geometry dict.

    Parameters:
    -----------
    raw : Optional[Mapping]
        Dict with 'type' and nested 'coordinates' (Point → [lon, lat],
        LineString → [[lon, lat], ...], Polygon → [ring, ...], and the Multi forms)

    Returns:
    --------
    Optional[Geometry]
        Parsed geometry, or None if the dict is missing, has an unsupported type,
        or contains non-numeric coordinates

    Notes:
    ------
    Point counts and ring closure are not enforced here; the intersection
    predicates treat under-sized geometries as non-intersecting.
    """
    if not raw or not isinstance(raw, Mapping):
        return None

    geom_type = raw.get('type')
    coords = raw.get('coordinates')
    if coords is None:
        return None

    try:
        if geom_type == 'Point':
            return Point(_to_point(coords))
        if geom_type == 'LineString':
            return LineString(_to_path(coords))
        if geom_type == 'Polygon':
            return _to_polygon(coords)
        if geom_type == 'MultiLineString':
            return MultiLineString(tuple(LineString(_to_path(line)) for line in coords))
        if geom_type == 'MultiPolygon':
            return MultiPolygon(tuple(_to_polygon(polygon) for polygon in coords))
    except (TypeError, ValueError):
        return None

    return None


@dataclass(frozen=True)
class Feature:
    """A remote feature tagged with the layer it came from."""

    geometry: Geometry
    properties: Mapping[str, Any] = field(default_factory=dict, compare=False, hash=False)
    layer_id: str = ''

    def __post_init__(self):
        # Freeze the attribute mapping so display collaborators can't mutate it
        object.__setattr__(self, 'properties', MappingProxyType(dict(self.properties)))

    @classmethod
    def from_raw(cls, raw: Mapping[str, Any], layer_id: str) -> Optional['Feature']:
        """
        Build a Feature from a raw GeoJSON feature dict.

        Returns None when the geometry is missing or unusable so the caller can skip
        the record without aborting its siblings.
        """
        if not isinstance(raw, Mapping):
            return None

        geometry = parse_geometry(raw.get('geometry'))
        if geometry is None:
            return None

        properties = raw.get('properties') or {}
        if not isinstance(properties, Mapping):
            properties = {}

        return cls(geometry=geometry, properties=properties, layer_id=layer_id)

    @property
    def __geo_interface__(self) -> Dict[str, Any]:
        return {
            'type': 'Feature',
            'geometry': self.geometry.__geo_interface__,
            'properties': {**self.properties, 'layer_id': self.layer_id},
        }


def ring_of(points: Sequence[GeoPoint]) -> Tuple[GeoPoint, ...]:
    """Return `points` as a closed ring (first point repeated at the end if needed)."""
    points = tuple(points)
    if points and points[0] != points[-1]:
        points = points + (points[0],)
    return points
