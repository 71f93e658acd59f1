"""Tests for configuration loading."""
import json

import pytest

from config.config_loader import (
    DEFAULT_CONFIG_PATH,
    INTERACTION_SETTING_DEFAULTS,
    QUERY_SETTING_DEFAULTS,
    LayerDescriptor,
    load_config,
    load_interaction_settings,
    load_layer_descriptors,
    load_query_settings,
)


def test_bundled_config_loads():
    config = load_config()

    assert DEFAULT_CONFIG_PATH.exists()
    assert len(config["layers"]) == 5


def test_bundled_descriptors():
    descriptors = {d.id: d for d in load_layer_descriptors(load_config())}

    assert set(descriptors) == {"bridges", "conduits", "roads", "boundaries", "lighting"}
    bridges = descriptors["bridges"]
    assert bridges.enabled is True
    assert bridges.zoom_visibility_threshold == 8
    assert bridges.endpoint.endswith("/MapServer/5")
    assert not descriptors["lighting"].enabled
    assert [descriptors[k].zoom_visibility_threshold for k in ("conduits", "roads", "boundaries", "lighting")] == [9, 7, 6, 10]


def test_missing_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_config(tmp_path / "nope.json")


@pytest.mark.parametrize("missing", ["layers", "settings"])
def test_missing_required_key(tmp_path, missing):
    data = {"layers": [], "settings": {}}
    del data[missing]
    path = tmp_path / "config.json"
    path.write_text(json.dumps(data))

    with pytest.raises(KeyError):
        load_config(path)


def test_settings_merge_with_defaults():
    settings = load_query_settings({"layers": [], "settings": {"page_size": 25}})

    assert settings["page_size"] == 25
    assert settings["primary_timeout"] == QUERY_SETTING_DEFAULTS["primary_timeout"]
    assert settings["count_timeout"] == 2.0

    interaction = load_interaction_settings({"layers": [], "settings": {}})
    assert interaction == INTERACTION_SETTING_DEFAULTS


def test_descriptor_validation():
    with pytest.raises(KeyError):
        load_layer_descriptors({"layers": [{"id": "a", "url": "https://x"}]})

    duplicate = {"id": "a", "url": "https://x", "layer_id": 0}
    with pytest.raises(ValueError):
        load_layer_descriptors({"layers": [duplicate, dict(duplicate)]})


def test_descriptor_defaults_and_visibility():
    (descriptor,) = load_layer_descriptors({"layers": [{"id": "a", "url": "https://x/MapServer/", "layer_id": "3"}]})

    assert descriptor == LayerDescriptor(id="a", name="a", url="https://x/MapServer/", layer_id=3)
    assert descriptor.endpoint == "https://x/MapServer/3"
    assert descriptor.visible_at(0)

    threshold = LayerDescriptor(id="b", name="b", url="u", layer_id=0, zoom_visibility_threshold=10)
    assert not threshold.visible_at(9.9)
    assert threshold.visible_at(10)
