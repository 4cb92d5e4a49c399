from typing import Optional

from redis.asyncio import Redis
from redis.exceptions import RedisError

from content_catalog.application.ports.key_value_store import KeyValueStore
from content_catalog.core.exceptions import StoreUnavailableError


class RedisKeyValueStore(KeyValueStore):
    def __init__(self, redis: Redis) -> None:
        self._redis = redis

    async def get(self, key: str) -> Optional[str]:
        try:
            return await self._redis.get(key)
        except RedisError as exc:
            raise StoreUnavailableError("get", exc) from exc

    async def set(self, key: str, value: str, ttl_seconds: int) -> None:
        try:
            if ttl_seconds > 0:
                await self._redis.set(key, value, ex=ttl_seconds)
                return
            await self._redis.set(key, value)
        except RedisError as exc:
            raise StoreUnavailableError("set", exc) from exc

    async def delete(self, key: str) -> None:
        try:
            await self._redis.delete(key)
        except RedisError as exc:
            raise StoreUnavailableError("delete", exc) from exc

    async def set_if_absent(self, key: str, value: str, ttl_seconds: int) -> bool:
        try:
            created = await self._redis.set(key, value, ex=ttl_seconds if ttl_seconds > 0 else None, nx=True)
        except RedisError as exc:
            raise StoreUnavailableError("set_if_absent", exc) from exc
        return bool(created)
