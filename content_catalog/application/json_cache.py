import json
import logging
from typing import Any, Optional

from content_catalog.application.ports.key_value_store import KeyValueStore

log = logging.getLogger("content_catalog.json_cache")


class JsonCache:
    """Get/set JSON documents with an optional expiry.

    Knows nothing about what the keys mean. Store outages are raised as
    StoreUnavailableError; callers decide whether to degrade.
    """

    def __init__(self, store: KeyValueStore) -> None:
        self._store = store

    async def get_cached_json(self, key: str) -> Optional[Any]:
        cached = await self._store.get(key)
        if not cached:
            return None
        if isinstance(cached, bytes):
            cached = cached.decode("utf-8", errors="replace")
        try:
            return json.loads(cached)
        except ValueError:
            log.warning("Dropping corrupt cache entry key=%s", key)
            await self._store.delete(key)
            return None

    async def set_cached_json(self, key: str, value: Any, ttl_seconds: int) -> None:
        payload = json.dumps(value, ensure_ascii=False)
        await self._store.set(key, payload, ttl_seconds)

    async def delete(self, key: str) -> None:
        await self._store.delete(key)
