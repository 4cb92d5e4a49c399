import asyncio

import pytest

from content_catalog.application.json_cache import JsonCache
from content_catalog.core.exceptions import StoreUnavailableError
from fakes import InMemoryKeyValueStore


def test_corrupt_payload_is_deleted_and_reported_as_miss():
    store = InMemoryKeyValueStore()
    store.raw_set("catalog:v1:feed:abc", "{not json")
    cache = JsonCache(store)

    assert asyncio.run(cache.get_cached_json("catalog:v1:feed:abc")) is None
    assert "catalog:v1:feed:abc" not in store


def test_roundtrip_with_ttl_expires():
    store = InMemoryKeyValueStore()
    cache = JsonCache(store)

    asyncio.run(cache.set_cached_json("k", {"items": [1, 2]}, 60))
    assert asyncio.run(cache.get_cached_json("k")) == {"items": [1, 2]}

    store.clock.advance(60)
    assert asyncio.run(cache.get_cached_json("k")) is None


def test_non_positive_ttl_never_expires():
    store = InMemoryKeyValueStore()
    cache = JsonCache(store)

    asyncio.run(cache.set_cached_json("ratings", {"sum": 4}, 0))
    store.clock.advance(10 ** 7)

    assert asyncio.run(cache.get_cached_json("ratings")) == {"sum": 4}


def test_store_outage_is_not_hidden():
    """The cache surfaces outages; the orchestrator decides to degrade."""
    store = InMemoryKeyValueStore()
    store.available = False

    with pytest.raises(StoreUnavailableError):
        asyncio.run(JsonCache(store).get_cached_json("k"))
