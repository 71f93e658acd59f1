"""Tests for ESRI JSON → GeoJSON conversion."""
from geometry.types import BoundingBox
from utils.geometry_converters import (
    bbox_to_esri_envelope,
    convert_esri_paths,
    convert_esri_point,
    convert_esri_rings,
    convert_esri_to_geojson,
)

OUTER_CW = [[0, 0], [0, 1], [1, 1], [1, 0], [0, 0]]
HOLE_CCW = [[0.2, 0.2], [0.8, 0.2], [0.8, 0.8], [0.2, 0.8], [0.2, 0.2]]
OUTER_CW_2 = [[5, 5], [5, 6], [6, 6], [6, 5], [5, 5]]


def test_point():
    assert convert_esri_point({"x": -82.95, "y": 39.95}) == {"type": "Point", "coordinates": [-82.95, 39.95]}
    assert convert_esri_point({"x": None, "y": 39.95}) is None


def test_paths():
    single = convert_esri_paths({"paths": [[[0, 0], [1, 1]]]})
    assert single == {"type": "LineString", "coordinates": [[0, 0], [1, 1]]}

    multi = convert_esri_paths({"paths": [[[0, 0], [1, 1]], [[2, 2], [3, 3]]]})
    assert multi["type"] == "MultiLineString"
    assert len(multi["coordinates"]) == 2

    assert convert_esri_paths({"paths": []}) is None


def test_rings_with_hole():
    polygon = convert_esri_rings({"rings": [OUTER_CW, HOLE_CCW]})
    assert polygon == {"type": "Polygon", "coordinates": [OUTER_CW, HOLE_CCW]}


def test_rings_with_two_outers():
    geometry = convert_esri_rings({"rings": [OUTER_CW, HOLE_CCW, OUTER_CW_2]})
    assert geometry["type"] == "MultiPolygon"
    assert geometry["coordinates"] == [[OUTER_CW, HOLE_CCW], [OUTER_CW_2]]


def test_degenerate_rings_dropped():
    assert convert_esri_rings({"rings": [[[0, 0], [1, 1], [0, 0]]]}) is None


def test_feature_dispatch():
    feature = convert_esri_to_geojson({"geometry": {"x": 1, "y": 2}, "attributes": {"SFN": "2500123"}})
    assert feature == {
        "type": "Feature",
        "geometry": {"type": "Point", "coordinates": [1, 2]},
        "properties": {"SFN": "2500123"},
    }


def test_feature_without_geometry():
    assert convert_esri_to_geojson({"attributes": {"SFN": "1"}}) is None
    assert convert_esri_to_geojson({"geometry": {"points": [[0, 0]]}, "attributes": {}}) is None


def test_envelope():
    envelope = bbox_to_esri_envelope(BoundingBox(-83.0, 39.9, -82.9, 40.0))
    assert envelope == {
        "xmin": -83.0, "ymin": 39.9, "xmax": -82.9, "ymax": 40.0,
        "spatialReference": {"wkid": 4326},
    }
