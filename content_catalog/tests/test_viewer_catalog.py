import asyncio
import json
from datetime import timedelta
from unittest.mock import AsyncMock, patch

import pytest

from content_catalog.application.cache_keys import CacheKeyBuilder
from content_catalog.application.data_quality import DataQualityMonitor, QualityIssueKind
from content_catalog.application.json_cache import JsonCache
from content_catalog.application.models import (
    Category,
    CategoryQuery,
    FeedQuery,
    RelatedCandidate,
    Season,
)
from content_catalog.application.trending import TrendingAggregator
from content_catalog.application.viewer_catalog import CacheTtls, ViewerCatalog
from content_catalog.core.exceptions import CatalogConsistencyError
from content_catalog.core.results import NotFound
from fakes import (
    NOW,
    FakeCatalogService,
    FakeClock,
    InMemoryKeyValueStore,
    InMemoryTrendingStore,
    make_item,
    make_series,
    make_series_detail,
)


class Harness:
    def __init__(self, feed_ttl=60):
        self.clock = FakeClock()
        self.store = InMemoryKeyValueStore(self.clock)
        self.trending_store = InMemoryTrendingStore()
        self.catalog = FakeCatalogService()
        self.keys = CacheKeyBuilder()
        self.trending = TrendingAggregator(
            self.trending_store,
            trending_key="trending",
            ratings_key="ratings",
            updated_key="trending:updated",
            half_life_hours=0,
            clock=self.clock,
        )
        self.viewer = ViewerCatalog(
            self.catalog,
            JsonCache(self.store),
            self.trending,
            DataQualityMonitor(clock=self.clock),
            CacheTtls(feed=feed_ttl, series=300, related=300, categories=600),
            keys=self.keys,
            cache_timeout_sec=0.5,
        )

    def run(self, coro):
        return asyncio.run(coro)


def _with_show_a(h):
    h.catalog.add_series(
        make_series_detail(
            "series-a",
            "show-a",
            seasons=[Season(id="s1", sequence_number=1, episodes=(make_item("ep-1"), make_item("ep-2")))],
        )
    )


def test_feed_ttl_scenario():
    h = Harness(feed_ttl=60)
    _with_show_a(h)
    h.catalog.feed_items = [make_item("ep-1"), make_item("ep-2")]

    first = h.run(h.viewer.get_feed(FeedQuery(limit=10)))
    h.clock.advance(30)
    second = h.run(h.viewer.get_feed(FeedQuery(limit=10)))
    h.clock.advance(31)
    third = h.run(h.viewer.get_feed(FeedQuery(limit=10)))

    assert (first.from_cache, second.from_cache, third.from_cache) == (False, True, False)
    assert second.items == first.items
    assert h.catalog.calls["list_feed"] == 2


def test_identical_queries_on_cold_caches_produce_identical_payloads():
    dumps, stored_keys = [], []
    for _ in range(2):
        h = Harness()
        _with_show_a(h)
        h.catalog.feed_items = [make_item("ep-1"), make_item("ep-2")]
        h.trending_store.zsets["trending"] = {"ep-2": 3.5}
        result = h.run(h.viewer.get_feed(FeedQuery(limit=10, tag="Drama")))
        dumps.append(json.dumps(result.model_dump(mode="json"), sort_keys=True))
        stored_keys.append(h.store.keys())

    assert dumps[0] == dumps[1]
    assert stored_keys[0] == stored_keys[1] == [CacheKeyBuilder().feed(FeedQuery(limit=10, tag="drama"))]


def test_feed_is_enriched_with_trending_and_ratings():
    h = Harness()
    _with_show_a(h)
    h.catalog.feed_items = [make_item("ep-1"), make_item("ep-2")]
    h.trending_store.zsets["trending"] = {"ep-1": 12.0}
    h.trending_store.hashes["ratings"] = {"ep-1:sum": "9.0", "ep-1:count": "2.0"}

    result = h.run(h.viewer.get_feed(FeedQuery(limit=10)))

    by_id = {item.id: item for item in result.items}
    assert by_id["ep-1"].trending_score == 12.0
    assert by_id["ep-1"].rating.count == 2
    assert by_id["ep-2"].trending_score == 0.0
    assert [item.id for item in result.items] == ["ep-1", "ep-2"]


def test_feed_with_unresolved_series_fails_fast_and_is_not_cached():
    h = Harness()
    _with_show_a(h)
    h.catalog.feed_items = [make_item("ep-1"), make_item("ep-9", series_id="series-missing")]

    with pytest.raises(CatalogConsistencyError) as info:
        h.run(h.viewer.get_feed(FeedQuery(limit=10)))

    assert info.value.issue.kind is QualityIssueKind.FEED_ITEM_UNKNOWN_SERIES
    assert info.value.issue.content_id == "ep-9"
    assert h.store.keys() == []


def test_cached_feed_is_revalidated_on_hit():
    h = Harness()
    _with_show_a(h)
    h.catalog.feed_items = [make_item("ep-1")]
    h.run(h.viewer.get_feed(FeedQuery(limit=10)))

    key = h.keys.feed(FeedQuery(limit=10))
    payload = json.loads(h.run(h.store.get(key)))
    payload["items"][0]["playback"] = None
    h.run(h.store.set(key, json.dumps(payload), 60))

    with pytest.raises(CatalogConsistencyError) as info:
        h.run(h.viewer.get_feed(FeedQuery(limit=10)))
    assert info.value.issue.kind is QualityIssueKind.EPISODE_MISSING_FINALIZED_ASSET


def test_cached_payload_with_stale_shape_is_dropped():
    h = Harness()
    _with_show_a(h)
    h.catalog.feed_items = [make_item("ep-1")]
    key = h.keys.feed(FeedQuery(limit=10))
    h.run(h.store.set(key, json.dumps({"items": [{"legacy": True}]}), 60))

    result = h.run(h.viewer.get_feed(FeedQuery(limit=10)))

    assert result.from_cache is False
    assert [item.id for item in result.items] == ["ep-1"]


def test_cache_outage_falls_through_to_catalog():
    h = Harness()
    _with_show_a(h)
    h.catalog.feed_items = [make_item("ep-1")]
    h.store.available = False

    result = h.run(h.viewer.get_feed(FeedQuery(limit=10)))

    assert result.from_cache is False
    assert [item.id for item in result.items] == ["ep-1"]


def test_slow_cache_read_is_treated_as_miss():
    h = Harness()
    _with_show_a(h)
    h.catalog.feed_items = [make_item("ep-1")]

    async def never(_key):
        await asyncio.sleep(5)

    with patch.object(JsonCache, "get_cached_json", side_effect=never), patch.object(
        JsonCache, "set_cached_json", new=AsyncMock()
    ):
        result = h.run(h.viewer.get_feed(FeedQuery(limit=10)))

    assert result.from_cache is False


def test_catalog_failure_propagates():
    h = Harness()
    h.catalog.fail_with = RuntimeError("mongo down")

    with pytest.raises(RuntimeError):
        h.run(h.viewer.get_feed(FeedQuery(limit=10)))


def test_missing_series_returns_not_found():
    h = Harness()

    result = h.run(h.viewer.get_series_detail("missing-slug"))

    assert isinstance(result, NotFound)
    assert result.key == "missing-slug"


def test_series_detail_orders_episodes_and_caches():
    h = Harness()
    late = make_item("ep-b", episode_number=2, published_at=NOW - timedelta(days=1))
    early = make_item("ep-a", episode_number=1, published_at=NOW - timedelta(days=2))
    unnumbered = make_item("ep-c", published_at=NOW - timedelta(days=3))
    h.catalog.add_series(
        make_series_detail(
            "series-a",
            "show-a",
            seasons=[
                Season(id="s2", sequence_number=2, episodes=(make_item("ep-d", episode_number=1),)),
                Season(id="s1", sequence_number=1, episodes=(unnumbered, late, early)),
            ],
            standalone=[make_item("ep-x", published_at=NOW - timedelta(hours=1)), make_item("ep-w", published_at=NOW - timedelta(hours=5))],
        )
    )

    first = h.run(h.viewer.get_series_detail("Show-A"))
    second = h.run(h.viewer.get_series_detail("show-a"))

    assert [season.id for season in first.seasons] == ["s1", "s2"]
    assert [episode.id for episode in first.seasons[0].episodes] == ["ep-a", "ep-b", "ep-c"]
    assert [episode.id for episode in first.standalone_episodes] == ["ep-w", "ep-x"]
    assert first.from_cache is False and second.from_cache is True
    assert second.seasons == first.seasons


def test_empty_series_is_a_quality_issue_not_a_not_found():
    h = Harness()
    h.catalog.add_series(make_series_detail("series-a", "show-a"))

    with pytest.raises(CatalogConsistencyError) as info:
        h.run(h.viewer.get_series_detail("show-a"))

    assert info.value.issue.kind is QualityIssueKind.SERIES_WITHOUT_PLAYABLE_EPISODES


def test_related_series_is_capped_at_limit():
    h = Harness()
    _with_show_a(h)
    h.catalog.related["series-a"] = [
        RelatedCandidate(series=make_series(f"series-{n:02d}", f"show-{n:02d}"), relatedness=1) for n in range(12)
    ]

    result = h.run(h.viewer.get_related_series("show-a", 5))
    cached = h.run(h.viewer.get_related_series("show-a", 5))

    assert len(result.items) == 5
    assert len(cached.items) == 5 and cached.from_cache is True


def test_related_series_uses_trending_as_tie_break():
    h = Harness()
    _with_show_a(h)
    h.catalog.related["series-a"] = [
        RelatedCandidate(series=make_series("series-a", "show-a"), relatedness=9),
        RelatedCandidate(series=make_series("series-c", "show-c"), relatedness=2),
        RelatedCandidate(series=make_series("series-b", "show-b"), relatedness=2),
        RelatedCandidate(series=make_series("series-d", "show-d"), relatedness=3),
        RelatedCandidate(series=make_series("series-e", "show-e"), relatedness=2),
    ]
    h.trending_store.zsets["trending"] = {"series-c": 8.0}

    result = h.run(h.viewer.get_related_series("show-a", 3))

    assert [item.id for item in result.items] == ["series-d", "series-c", "series-b"]


def test_related_for_missing_slug_returns_not_found():
    h = Harness()

    assert isinstance(h.run(h.viewer.get_related_series("nope", 5)), NotFound)


def test_categories_are_cached():
    h = Harness()
    h.catalog.categories = [Category(id="cat-1", slug="drama", name="Drama")]

    first = h.run(h.viewer.list_categories(CategoryQuery(limit=10)))
    second = h.run(h.viewer.list_categories(CategoryQuery(limit=10)))

    assert first.from_cache is False and second.from_cache is True
    assert second.items == first.items
    assert h.catalog.calls["list_categories"] == 1


def test_episode_metadata():
    h = Harness()
    _with_show_a(h)
    h.catalog.feed_items = [make_item("ep-1")]

    found = h.run(h.viewer.get_episode_metadata("ep-1"))
    missing = h.run(h.viewer.get_episode_metadata("ep-404"))

    assert found.item.id == "ep-1" and found.from_cache is False
    assert isinstance(missing, NotFound)


def test_trending_feed_follows_trending_order():
    h = Harness()
    _with_show_a(h)
    h.catalog.feed_items = [make_item("ep-1"), make_item("ep-2"), make_item("ep-3")]
    h.trending_store.zsets["trending"] = {"ep-3": 10.0, "ep-1": 4.0, "ep-2": 4.0, "series-a": 50.0}

    result = h.run(h.viewer.get_trending_feed(3))

    assert [item.id for item in result.items] == ["ep-3", "ep-1"]
    assert result.items[0].trending_score == 10.0
