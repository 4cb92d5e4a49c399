from content_catalog.infrastructure.cache.redis_client import get_redis_client
from content_catalog.infrastructure.cache.redis_store import RedisKeyValueStore
from content_catalog.infrastructure.cache.redis_trending_store import RedisTrendingStore

__all__ = ["get_redis_client", "RedisKeyValueStore", "RedisTrendingStore"]
