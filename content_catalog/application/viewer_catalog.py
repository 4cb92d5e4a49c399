import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Optional, Sequence, Type, TypeVar, Union

from pydantic import BaseModel, ValidationError

from content_catalog.application.cache_keys import CacheKeyBuilder, normalize_slug
from content_catalog.application.data_quality import DataQualityMonitor
from content_catalog.application.json_cache import JsonCache
from content_catalog.application.models import (
    CatalogModel,
    CategoryListResult,
    CategoryPage,
    CategoryQuery,
    EpisodeResult,
    FeedItem,
    FeedPage,
    FeedQuery,
    FeedResult,
    RelatedCandidate,
    RelatedSeriesResult,
    Season,
    SeriesDetail,
    SeriesDetailResult,
    SeriesSummary,
)
from content_catalog.application.ports.catalog_service import CatalogService
from content_catalog.application.trending import TrendingAggregator
from content_catalog.core.exceptions import StoreUnavailableError
from content_catalog.core.results import NotFound

log = logging.getLogger("content_catalog.viewer_catalog")

# related candidates fetched per requested slot, so trending can break relatedness ties
RELATED_CANDIDATE_FACTOR = 3

M = TypeVar("M", bound=BaseModel)


@dataclass(frozen=True)
class CacheTtls:
    feed: int
    series: int
    related: int
    categories: int


class RelatedPayload(CatalogModel):
    series_id: str
    items: tuple[SeriesSummary, ...] = ()


def _episode_sort_key(item: FeedItem):
    return (item.episode_number is None, item.episode_number or 0, item.published_at, item.id)


def _published_sort_key(item: FeedItem):
    return (item.published_at, item.id)


class ViewerCatalog:
    """Read-through cache in front of the catalog for viewer-facing queries.

    Per request: key -> cache lookup -> hit: validate and return, or
    miss: fetch -> enrich with trending -> validate -> cache write -> return.
    Cache trouble degrades to a miss; catalog failures and data-quality
    violations propagate.
    """

    def __init__(
        self,
        catalog: CatalogService,
        cache: JsonCache,
        trending: TrendingAggregator,
        monitor: DataQualityMonitor,
        ttls: CacheTtls,
        keys: Optional[CacheKeyBuilder] = None,
        cache_timeout_sec: float = 0.25,
    ) -> None:
        self._catalog = catalog
        self._cache = cache
        self._trending = trending
        self._monitor = monitor
        self._ttls = ttls
        self._keys = keys or CacheKeyBuilder()
        self._cache_timeout = cache_timeout_sec or None

    async def get_feed(self, query: FeedQuery) -> FeedResult:
        key = self._keys.feed(query)
        cached = await self._load_cached(key, FeedPage)
        if cached is not None:
            self._monitor.validate_feed_items(cached.items)
            return FeedResult(items=cached.items, next_cursor=cached.next_cursor, from_cache=True)

        page = await self._catalog.list_feed(query)
        items = await self._enrich_items(page.items)
        await self._validate_feed(items)

        fresh = FeedPage(items=tuple(items), next_cursor=page.next_cursor)
        await self._store(key, fresh, self._ttls.feed)
        return FeedResult(items=fresh.items, next_cursor=fresh.next_cursor, from_cache=False)

    async def get_trending_feed(self, limit: int = 20) -> FeedResult:
        key = self._keys.trending(limit)
        cached = await self._load_cached(key, FeedPage)
        if cached is not None:
            self._monitor.validate_feed_items(cached.items)
            return FeedResult(items=cached.items, from_cache=True)

        entries = await self._trending.top_trending(limit)
        scores = {entry.content_id: entry.score for entry in entries}
        found = {item.id: item for item in await self._catalog.get_feed_items(list(scores))}
        # ids without a published feed item (series ids, unpublished episodes) are skipped
        ordered = [found[entry.content_id] for entry in entries if entry.content_id in found]
        ratings = await self._trending.ratings_for([item.id for item in ordered])
        items = [item.with_engagement(scores[item.id], ratings[item.id]) for item in ordered]
        await self._validate_feed(items)

        fresh = FeedPage(items=tuple(items))
        if entries:
            # an empty ranking may just mean the trending store is down
            await self._store(key, fresh, self._ttls.feed)
        return FeedResult(items=fresh.items, from_cache=False)

    async def get_episode_metadata(self, episode_id: str) -> Union[EpisodeResult, NotFound]:
        key = self._keys.episode(episode_id)
        cached = await self._load_cached(key, FeedItem)
        if cached is not None:
            self._monitor.validate_episode(cached)
            return EpisodeResult(item=cached, from_cache=True)

        item = await self._catalog.get_episode(episode_id)
        if item is None:
            return NotFound("episode", episode_id)
        enriched = await self._enrich_items([item])
        await self._validate_feed(enriched)

        await self._store(key, enriched[0], self._ttls.feed)
        return EpisodeResult(item=enriched[0], from_cache=False)

    async def get_series_detail(self, slug: str) -> Union[SeriesDetailResult, NotFound]:
        slug = normalize_slug(slug)
        key = self._keys.series(slug)
        cached = await self._load_cached(key, SeriesDetail)
        if cached is not None:
            self._monitor.validate_series_detail(cached)
            return self._series_result(cached, from_cache=True)

        record = await self._catalog.get_series_by_slug(slug)
        if record is None:
            return NotFound("series", slug)
        self._monitor.validate_series_detail(record)

        detail = await self._enrich_series_detail(self._order_series_detail(record))
        await self._store(key, detail, self._ttls.series)
        return self._series_result(detail, from_cache=False)

    async def get_related_series(self, slug: str, limit: int = 10) -> Union[RelatedSeriesResult, NotFound]:
        slug = normalize_slug(slug)
        key = self._keys.related(slug, limit)
        cached = await self._load_cached(key, RelatedPayload)
        if cached is not None:
            self._monitor.validate_related(cached.series_id, cached.items)
            return RelatedSeriesResult(items=cached.items[:limit], from_cache=True)

        source = await self._catalog.find_series_by_slug(slug)
        if source is None:
            return NotFound("series", slug)

        candidates = await self._catalog.list_related_series(source.id, limit * RELATED_CANDIDATE_FACTOR)
        ranked = await self._rank_related(source.id, candidates)
        items = tuple(ranked[:limit])
        self._monitor.validate_related(source.id, items)

        await self._store(key, RelatedPayload(series_id=source.id, items=items), self._ttls.related)
        return RelatedSeriesResult(items=items, from_cache=False)

    async def list_categories(self, query: CategoryQuery) -> CategoryListResult:
        key = self._keys.categories(query)
        cached = await self._load_cached(key, CategoryPage)
        if cached is not None:
            return CategoryListResult(items=cached.items, next_cursor=cached.next_cursor, from_cache=True)

        page = await self._catalog.list_categories(query)
        await self._store(key, page, self._ttls.categories)
        return CategoryListResult(items=page.items, next_cursor=page.next_cursor, from_cache=False)

    async def _validate_feed(self, items: Sequence[FeedItem]) -> None:
        series_ids = {item.series_id for item in items if item.series_id}
        known = await self._catalog.find_existing_series_ids(series_ids) if series_ids else set()
        self._monitor.validate_feed_items(items, known_series_ids=known)

    async def _enrich_items(self, items: Sequence[FeedItem]) -> list[FeedItem]:
        ids = [item.id for item in items]
        scores, ratings = await asyncio.gather(self._trending.scores_for(ids), self._trending.ratings_for(ids))
        return [item.with_engagement(scores[item.id], ratings[item.id]) for item in items]

    @staticmethod
    def _order_series_detail(detail: SeriesDetail) -> SeriesDetail:
        seasons = tuple(
            season.model_copy(update={"episodes": tuple(sorted(season.episodes, key=_episode_sort_key))})
            for season in sorted(detail.seasons, key=lambda season: (season.sequence_number, season.id))
        )
        standalone = tuple(sorted(detail.standalone_episodes, key=_published_sort_key))
        return detail.model_copy(update={"seasons": seasons, "standalone_episodes": standalone})

    async def _enrich_series_detail(self, detail: SeriesDetail) -> SeriesDetail:
        ids = [detail.series.id] + [episode.id for episode in detail.all_episodes()]
        scores, ratings = await asyncio.gather(self._trending.scores_for(ids), self._trending.ratings_for(ids))

        def enrich(episodes: Sequence[FeedItem]) -> tuple[FeedItem, ...]:
            return tuple(episode.with_engagement(scores[episode.id], ratings[episode.id]) for episode in episodes)

        series = detail.series.with_engagement(scores[detail.series.id], ratings[detail.series.id])
        seasons = tuple(
            Season(id=season.id, title=season.title, sequence_number=season.sequence_number, episodes=enrich(season.episodes))
            for season in detail.seasons
        )
        return SeriesDetail(series=series, seasons=seasons, standalone_episodes=enrich(detail.standalone_episodes))

    async def _rank_related(self, source_id: str, candidates: Sequence[RelatedCandidate]) -> list[SeriesSummary]:
        unique: dict[str, RelatedCandidate] = {}
        for candidate in candidates:
            if candidate.series.id == source_id:
                continue
            current = unique.get(candidate.series.id)
            if current is None or candidate.relatedness > current.relatedness:
                unique[candidate.series.id] = candidate

        ids = list(unique)
        scores, ratings = await asyncio.gather(self._trending.scores_for(ids), self._trending.ratings_for(ids))
        ranked = sorted(unique.values(), key=lambda c: (-c.relatedness, -scores[c.series.id], c.series.id))
        return [c.series.with_engagement(scores[c.series.id], ratings[c.series.id]) for c in ranked]

    @staticmethod
    def _series_result(detail: SeriesDetail, from_cache: bool) -> SeriesDetailResult:
        return SeriesDetailResult(
            series=detail.series,
            seasons=detail.seasons,
            standalone_episodes=detail.standalone_episodes,
            from_cache=from_cache,
        )

    async def _load_cached(self, key: str, model: Type[M]) -> Optional[M]:
        try:
            payload = await asyncio.wait_for(self._cache.get_cached_json(key), self._cache_timeout)
        except (StoreUnavailableError, asyncio.TimeoutError):
            log.warning("Cache read failed key=%s; treating as miss", key, exc_info=True)
            return None
        if payload is None:
            return None
        try:
            return model.model_validate(payload)
        except ValidationError:
            log.warning("Cached payload does not match %s key=%s; dropping", model.__name__, key)
            await self._drop(key)
            return None

    async def _store(self, key: str, value: BaseModel, ttl_seconds: int) -> None:
        payload: Any = value.model_dump(mode="json")
        try:
            await asyncio.wait_for(self._cache.set_cached_json(key, payload, ttl_seconds), self._cache_timeout)
        except (StoreUnavailableError, asyncio.TimeoutError):
            log.warning("Cache write failed key=%s", key, exc_info=True)

    async def _drop(self, key: str) -> None:
        try:
            await asyncio.wait_for(self._cache.delete(key), self._cache_timeout)
        except (StoreUnavailableError, asyncio.TimeoutError):
            log.warning("Cache delete failed key=%s", key, exc_info=True)
