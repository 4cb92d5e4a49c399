import json
import logging

from redis.asyncio import Redis
from redis.exceptions import RedisError

from content_catalog.application.ports.event_publisher import CatalogEvent, CatalogEventPublisher
from content_catalog.core.exceptions import EventPublishError

log = logging.getLogger("content_catalog.events")


class RedisStreamEventPublisher(CatalogEventPublisher):
    """Appends catalog events to one Redis stream.

    All partitions share the stream, so append order is also per-partition order.
    """

    def __init__(self, redis: Redis, stream_key: str, maxlen: int = 0) -> None:
        self._redis = redis
        self._stream_key = stream_key
        self._maxlen = maxlen

    async def publish(self, partition_key: str, event: CatalogEvent) -> str:
        fields = {
            "event_id": event.event_id,
            "type": event.type,
            "partition_key": partition_key,
            "occurred_at": event.occurred_at.isoformat(),
            "payload": json.dumps(event.payload, ensure_ascii=False, default=str),
        }
        try:
            entry_id = await self._redis.xadd(
                self._stream_key,
                fields,
                maxlen=self._maxlen or None,
                approximate=True,
            )
        except RedisError as exc:
            raise EventPublishError(self._stream_key, partition_key, exc) from exc
        log.info("[EVENT] %s partition=%s entry=%s", event.type, partition_key, entry_id)
        return entry_id
