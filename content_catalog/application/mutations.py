import logging
from typing import Dict, List, Sequence, Tuple, Union

from content_catalog.application.models import EngagementMetric, EpisodeAsset, RegisterEpisodeAsset
from content_catalog.application.ports.catalog_service import CatalogService
from content_catalog.application.ports.event_publisher import (
    ASSET_REGISTERED,
    METRICS_APPLIED,
    CatalogEvent,
    CatalogEventPublisher,
)
from content_catalog.application.ports.key_value_store import KeyValueStore
from content_catalog.application.trending import TrendingAggregator
from content_catalog.core.results import NotFound, PreconditionFailed

log = logging.getLogger("content_catalog.mutations")


class RegisterEpisodeAssetUseCase:
    def __init__(self, catalog: CatalogService, publisher: CatalogEventPublisher) -> None:
        self._catalog = catalog
        self._publisher = publisher

    async def execute(
        self, actor_id: str, payload: RegisterEpisodeAsset
    ) -> Union[EpisodeAsset, NotFound, PreconditionFailed]:
        result = await self._catalog.register_episode_asset(actor_id, payload)
        if isinstance(result, (NotFound, PreconditionFailed)):
            return result

        # publish failures propagate so the caller can retry the mutation
        await self._publisher.publish(
            result.episode_id,
            CatalogEvent(
                type=ASSET_REGISTERED,
                partition_key=result.episode_id,
                payload={"actor_id": actor_id, **result.model_dump(mode="json")},
            ),
        )
        log.info("[ASSET] registered episode_id=%s status=%s", result.episode_id, result.status)
        return result


class ApplyEngagementMetricsUseCase:
    """Dedups by event id, then feeds the trending aggregator.

    The aggregator itself never dedups; this is the caller-side guard.
    """

    def __init__(
        self,
        trending: TrendingAggregator,
        publisher: CatalogEventPublisher,
        dedup_store: KeyValueStore,
        dedup_prefix: str = "catalog:metrics-dedup",
        dedup_ttl_sec: int = 86_400,
    ) -> None:
        self._trending = trending
        self._publisher = publisher
        self._dedup_store = dedup_store
        self._dedup_prefix = dedup_prefix
        self._dedup_ttl_sec = dedup_ttl_sec

    async def execute(self, events: Sequence[EngagementMetric]) -> Tuple[int, int]:
        fresh: List[EngagementMetric] = []
        for event in events:
            if event.event_id is None:
                fresh.append(event)
                continue
            claimed = await self._dedup_store.set_if_absent(
                f"{self._dedup_prefix}:{event.event_id}", "1", self._dedup_ttl_sec
            )
            if claimed:
                fresh.append(event)
            else:
                log.info("[METRICS] skipping duplicate event_id=%s", event.event_id)

        scores: Dict[str, float] = {}
        for index, event in enumerate(fresh):
            try:
                scores[event.content_id] = await self._trending.apply_metric(event)
            except Exception:
                # events before this one are in the store and keep their claims;
                # the rest are released so a retry of the batch applies them
                await self._release(fresh[index:])
                raise

        grouped: Dict[str, List[EngagementMetric]] = {}
        for event in fresh:
            grouped.setdefault(event.content_id, []).append(event)
        for content_id, content_events in grouped.items():
            await self._publisher.publish(
                content_id,
                CatalogEvent(
                    type=METRICS_APPLIED,
                    partition_key=content_id,
                    payload={
                        "content_id": content_id,
                        "events": len(content_events),
                        "event_ids": [e.event_id for e in content_events if e.event_id],
                        "score": scores.get(content_id),
                    },
                ),
            )

        skipped = len(events) - len(fresh)
        log.info("[METRICS] applied=%d skipped=%d", len(fresh), skipped)
        return len(fresh), skipped

    async def _release(self, events: Sequence[EngagementMetric]) -> None:
        for event in events:
            if event.event_id is not None:
                await self._dedup_store.delete(f"{self._dedup_prefix}:{event.event_id}")
