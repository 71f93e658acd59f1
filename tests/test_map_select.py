"""Tests for the headless map_select workflow."""
import json

import httpx
import pytest

from geometry.types import GeoPoint
from map_select import StaticMapView, main


@pytest.fixture
def config_path(tmp_path):
    config = {
        "layers": [
            {
                "id": "bridges",
                "name": "Bridge Inventory",
                "url": "https://gis.example.test/arcgis/rest/services/Assets/MapServer",
                "layer_id": 5,
                "zoom_visibility_threshold": 8,
                "enabled": True,
            }
        ],
        "settings": {"page_size": 100},
    }
    path = tmp_path / "layers_config.json"
    path.write_text(json.dumps(config))
    return path


def arcgis_handler(request: httpx.Request) -> httpx.Response:
    if request.method == "GET":
        return httpx.Response(200, json={"fields": [{"name": "OBJECTID", "type": "esriFieldTypeOID"}]})
    if b"returnCountOnly=true" in request.content:
        return httpx.Response(200, json={"count": 2})
    return httpx.Response(200, json={"features": [
        {"geometry": {"x": -82.95, "y": 39.95}, "attributes": {"OBJECTID": 1}},
        {"geometry": {"x": -82.50, "y": 39.50}, "attributes": {"OBJECTID": 2}},
    ]})


def test_main_selects_features(config_path, tmp_path):
    result = main(
        (-83.0, 39.9, -82.9, 40.0),
        zoom=12,
        config_path=config_path,
        log_dir=tmp_path / "logs",
        transport=httpx.MockTransport(arcgis_handler),
    )

    assert result is not None
    assert result.feature_count == 1
    assert result.features[0].properties["OBJECTID"] == 1
    assert list((tmp_path / "logs").glob("mapselect_*.log"))


def test_main_reports_failure(tmp_path):
    result = main((-83.0, 39.9, -82.9, 40.0), config_path=tmp_path / "missing.json", log_dir=tmp_path)
    assert result is None


def test_main_rejects_invalid_bbox(config_path, tmp_path):
    assert main((-82.9, 39.9, -83.0, 40.0), config_path=config_path, log_dir=tmp_path) is None


def test_static_map_view_projection():
    view = StaticMapView(zoom=0)

    assert view.project(GeoPoint(0.0, 0.0)) == pytest.approx((128.0, 128.0))
    assert view.project(GeoPoint(-180.0, 0.0))[0] == pytest.approx(0.0)

    x1, y1 = StaticMapView(zoom=1).project(GeoPoint(90.0, 0.0))
    assert (x1, y1) == pytest.approx((384.0, 256.0))

    view.disable_dragging()
    assert view.dragging_enabled() is False
