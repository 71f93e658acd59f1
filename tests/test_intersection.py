"""Tests for the rectangle intersection predicates."""
import pytest

from geometry.intersection import (
    geometry_intersects_rectangle,
    line_intersects_rectangle,
    point_in_polygon,
    point_in_rectangle,
    polygon_intersects_rectangle,
    segments_intersect,
)
from geometry.types import BoundingBox, GeoPoint, LineString, MultiLineString, MultiPolygon, Point, Polygon

BOX = BoundingBox(west=-83.0, south=39.9, east=-82.9, north=40.0)
EPS = 1e-6


def pts(*coords):
    return [GeoPoint(lon, lat) for lon, lat in coords]


class TestPointInRectangle:
    @pytest.mark.parametrize("lon,lat", [
        (-82.95, 39.95), (-82.999, 39.901), (-82.901, 39.999),
    ])
    def test_strictly_inside(self, lon, lat):
        assert point_in_rectangle(GeoPoint(lon, lat), BOX)

    @pytest.mark.parametrize("lon,lat", [
        (-83.0 - EPS, 39.95), (-82.9 + EPS, 39.95), (-82.95, 39.9 - EPS), (-82.95, 40.0 + EPS),
        (-84.0, 41.0),
    ])
    def test_outside_by_epsilon(self, lon, lat):
        assert not point_in_rectangle(GeoPoint(lon, lat), BOX)

    def test_edges_and_corners_are_inside(self):
        for corner in BOX.corners():
            assert point_in_rectangle(corner, BOX)
        assert point_in_rectangle(GeoPoint(-83.0, 39.95), BOX)


class TestPointInPolygon:
    SQUARE = pts((0, 0), (10, 0), (10, 10), (0, 10), (0, 0))

    def test_inside_and_outside(self):
        assert point_in_polygon(GeoPoint(5, 5), self.SQUARE)
        assert not point_in_polygon(GeoPoint(15, 5), self.SQUARE)

    def test_open_ring(self):
        assert point_in_polygon(GeoPoint(5, 5), self.SQUARE[:-1])

    def test_concave(self):
        # U shape opening upwards
        ring = pts((0, 0), (10, 0), (10, 10), (7, 10), (7, 3), (3, 3), (3, 10), (0, 10))
        assert not point_in_polygon(GeoPoint(5, 8), ring)
        assert point_in_polygon(GeoPoint(1, 8), ring)

    def test_too_few_points(self):
        assert not point_in_polygon(GeoPoint(0, 0), pts((0, 0), (1, 1)))


class TestSegmentsIntersect:
    def test_crossing(self):
        assert segments_intersect(*pts((0, 0), (2, 2), (0, 2), (2, 0)))

    def test_disjoint(self):
        assert not segments_intersect(*pts((0, 0), (1, 1), (2, 0), (3, 1)))

    def test_collinear_is_not_crossing(self):
        assert not segments_intersect(*pts((0, 0), (2, 0), (1, 0), (3, 0)))


class TestLineIntersectsRectangle:
    def test_segment_outside_not_crossing(self):
        line = pts((-83.2, 40.1), (-82.8, 40.2))
        assert not line_intersects_rectangle(line, BOX)

    def test_moving_endpoint_inside_makes_it_true(self):
        assert line_intersects_rectangle(pts((-82.95, 39.95), (-82.8, 40.2)), BOX)
        assert line_intersects_rectangle(pts((-83.2, 40.1), (-82.95, 39.95)), BOX)

    def test_crossing_without_vertices_inside(self):
        line = pts((-83.1, 39.95), (-82.8, 39.95))
        assert line_intersects_rectangle(line, BOX)

    def test_too_few_points(self):
        assert not line_intersects_rectangle(pts((-82.95, 39.95)), BOX)
        assert not line_intersects_rectangle([], BOX)


class TestPolygonIntersectsRectangle:
    def test_rectangle_entirely_inside_polygon(self):
        ring = pts((-84, 39), (-82, 39), (-82, 41), (-84, 41), (-84, 39))
        assert polygon_intersects_rectangle(ring, BOX)

    def test_polygon_with_one_vertex_inside(self):
        ring = pts((-82.95, 39.95), (-82.5, 39.95), (-82.5, 39.5), (-82.95, 39.5), (-82.95, 39.95))
        assert polygon_intersects_rectangle(ring, BOX)

    def test_polygon_edge_crossing(self):
        # Thin sliver crossing the box with all vertices outside
        ring = pts((-83.1, 39.94), (-82.8, 39.94), (-82.8, 39.96), (-83.1, 39.96), (-83.1, 39.94))
        assert polygon_intersects_rectangle(ring, BOX)

    def test_disjoint_polygon(self):
        ring = pts((-81, 39), (-80, 39), (-80, 40), (-81, 40), (-81, 39))
        assert not polygon_intersects_rectangle(ring, BOX)

    def test_too_few_points(self):
        assert not polygon_intersects_rectangle(pts((-82.95, 39.95), (-82.94, 39.94)), BOX)


class TestGeometryDispatch:
    def test_each_geometry_type(self):
        inside = GeoPoint(-82.95, 39.95)
        outside = GeoPoint(-80.0, 35.0)
        far = GeoPoint(-79.0, 34.0)

        assert geometry_intersects_rectangle(Point(inside), BOX)
        assert not geometry_intersects_rectangle(Point(outside), BOX)
        assert geometry_intersects_rectangle(LineString((inside, outside)), BOX)
        assert not geometry_intersects_rectangle(LineString((outside, far)), BOX)

        big = Polygon((tuple(pts((-84, 39), (-82, 39), (-82, 41), (-84, 41), (-84, 39))),))
        small = Polygon((tuple(pts((-81, 39), (-80, 39), (-80, 40), (-81, 39))),))
        assert geometry_intersects_rectangle(big, BOX)
        assert not geometry_intersects_rectangle(small, BOX)

        assert geometry_intersects_rectangle(
            MultiLineString((LineString((outside, far)), LineString((inside, far)))), BOX
        )
        assert geometry_intersects_rectangle(MultiPolygon((small, big)), BOX)
        assert not geometry_intersects_rectangle(MultiPolygon((small,)), BOX)
