"""Tests for the TTL + LRU query cache."""
import pytest

from core.query_cache import QueryCache, make_cache_key
from geometry.types import BoundingBox, Feature, GeoPoint, Point

BBOX = BoundingBox(-83.0, 39.9, -82.9, 40.0)
FEATURE = Feature(Point(GeoPoint(-82.95, 39.95)), {}, "bridges")


def test_key_includes_layer_box_page_and_limit():
    key = make_cache_key("bridges", BBOX, 1, 100)
    assert key == ("bridges", BBOX.cache_key(), 1, 100)
    assert key != make_cache_key("bridges", BBOX, 2, 100)
    assert key != make_cache_key("lighting", BBOX, 1, 100)


def test_entry_lives_until_ttl(cache, clock):
    key = make_cache_key("bridges", BBOX, 1, 100)
    cache.put(key, [FEATURE], total_count=1, has_more=False, query_method="spatial")

    clock.advance(299)
    entry = cache.get(key)
    assert entry is not None
    assert entry.features == (FEATURE,)
    assert entry.total_count == 1

    clock.advance(1)
    assert cache.get(key) is None
    assert len(cache) == 0


def test_put_replaces_entry(cache, clock):
    key = make_cache_key("bridges", BBOX, 1, 100)
    first = cache.put(key, [FEATURE])
    clock.advance(200)
    second = cache.put(key, [])

    assert cache.get(key) is second
    assert second.expires_at > first.expires_at
    assert len(cache) == 1


def test_lru_eviction(clock):
    cache = QueryCache(ttl_seconds=300, max_entries=2, clock=clock)
    cache.put("a", [])
    cache.put("b", [])
    cache.get("a")
    cache.put("c", [])

    assert cache.get("b") is None
    assert cache.get("a") is not None
    assert cache.get("c") is not None
    assert cache.evictions == 1


def test_hit_and_miss_counters(cache):
    cache.put("a", [])
    cache.get("a")
    cache.get("missing")

    assert (cache.hits, cache.misses) == (1, 1)


def test_clear(cache):
    cache.put("a", [])
    cache.clear()
    assert len(cache) == 0


def test_capacity_must_be_positive():
    with pytest.raises(ValueError):
        QueryCache(max_entries=0)
