from dataclasses import dataclass
from datetime import timedelta

from motor.motor_asyncio import AsyncIOMotorDatabase
from redis.asyncio import Redis

from content_catalog.application.cache_keys import CacheKeyBuilder
from content_catalog.application.data_quality import DataQualityMonitor
from content_catalog.application.json_cache import JsonCache
from content_catalog.application.mutations import ApplyEngagementMetricsUseCase, RegisterEpisodeAssetUseCase
from content_catalog.application.ports.catalog_service import CatalogService
from content_catalog.application.ports.event_publisher import CatalogEventPublisher
from content_catalog.application.ports.key_value_store import KeyValueStore
from content_catalog.application.ports.trending_store import TrendingStore
from content_catalog.application.trending import TrendingAggregator
from content_catalog.application.viewer_catalog import CacheTtls, ViewerCatalog
from content_catalog.config import Settings
from content_catalog.infrastructure.cache.redis_store import RedisKeyValueStore
from content_catalog.infrastructure.cache.redis_trending_store import RedisTrendingStore
from content_catalog.infrastructure.db.mongo_catalog_repository import MongoCatalogRepository
from content_catalog.infrastructure.events.redis_stream_publisher import RedisStreamEventPublisher


@dataclass(frozen=True)
class CatalogComponents:
    settings: Settings
    catalog: CatalogService
    viewer_catalog: ViewerCatalog
    register_asset: RegisterEpisodeAssetUseCase
    apply_metrics: ApplyEngagementMetricsUseCase


def build_components(
    settings: Settings,
    catalog: CatalogService,
    store: KeyValueStore,
    trending_store: TrendingStore,
    publisher: CatalogEventPublisher,
) -> CatalogComponents:
    keys = CacheKeyBuilder(prefix=settings.cache_key_prefix, schema_version=settings.cache_schema_version)
    trending = TrendingAggregator(
        trending_store,
        trending_key=settings.trending_sorted_set_key,
        ratings_key=settings.ratings_hash_key,
        updated_key=settings.trending_updated_hash_key,
        half_life_hours=settings.trending_half_life_hours,
    )
    viewer_catalog = ViewerCatalog(
        catalog,
        JsonCache(store),
        trending,
        DataQualityMonitor(future_tolerance=timedelta(days=1)),
        CacheTtls(
            feed=settings.feed_cache_ttl_seconds,
            series=settings.series_cache_ttl_seconds,
            related=settings.related_cache_ttl_seconds,
            categories=settings.categories_cache_ttl_seconds,
        ),
        keys=keys,
        cache_timeout_sec=settings.cache_timeout_sec,
    )
    return CatalogComponents(
        settings=settings,
        catalog=catalog,
        viewer_catalog=viewer_catalog,
        register_asset=RegisterEpisodeAssetUseCase(catalog, publisher),
        apply_metrics=ApplyEngagementMetricsUseCase(
            trending,
            publisher,
            store,
            dedup_prefix=keys.namespaced("metrics-dedup"),
            dedup_ttl_sec=settings.metrics_dedup_ttl_seconds,
        ),
    )


def build_redis_components(settings: Settings, redis: Redis, db: AsyncIOMotorDatabase) -> CatalogComponents:
    return build_components(
        settings,
        catalog=MongoCatalogRepository(db),
        store=RedisKeyValueStore(redis),
        trending_store=RedisTrendingStore(redis),
        publisher=RedisStreamEventPublisher(
            redis,
            settings.catalog_event_stream_key,
            maxlen=settings.catalog_event_stream_maxlen,
        ),
    )
