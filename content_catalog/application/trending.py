import logging
import math
from datetime import datetime, timezone
from typing import Callable, Dict, Iterable, List, Optional, Sequence

from content_catalog.application.models import EngagementMetric, RatingAggregate, TrendingEntry
from content_catalog.application.ports.trending_store import ScoreUpdate, TrendingKeys, TrendingStore
from content_catalog.core.exceptions import StoreUnavailableError

log = logging.getLogger("content_catalog.trending")

VIEW_WEIGHT = 1.0
LIKE_WEIGHT = 5.0
COMPLETION_WEIGHT = 3.0
RATING_WEIGHT = 2.0
RATING_MIDPOINT = 3.0

# scores are rescaled once the epoch is this many half-lives old,
# so a fresh event never weighs more than 2 ** 8
RESCALE_AFTER_HALF_LIVES = 8.0
# bound for clock skew between instances
MAX_DECAY_EXPONENT = 64.0
EPOCH_RETRIES = 5


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def engagement_delta(event: EngagementMetric) -> float:
    """Undecayed score contribution of one metrics event."""
    delta = (
        event.views * VIEW_WEIGHT
        + event.likes * LIKE_WEIGHT
        + event.completions * COMPLETION_WEIGHT
    )
    if event.rating is not None:
        delta += (event.rating - RATING_MIDPOINT) * RATING_WEIGHT
    return delta


class TrendingAggregator:
    """Ranked trending scores and rating aggregates kept in the shared store.

    Scores only ever change by ZINCRBY-style deltas. Each delta is scaled by
    forward exponential decay, 2 ** ((occurred_at - epoch) / half_life), so
    a newer event outweighs an older one while the sum stays commutative and
    the order in which events arrive does not matter. The epoch lives in the
    store next to the scores. Once it is RESCALE_AFTER_HALF_LIVES old, every
    score is multiplied down by the same factor and the epoch moves to now,
    which keeps the ranking and bounds the stored values.

    Events are not deduplicated here: applying the same event twice adds its
    delta twice.
    """

    def __init__(
        self,
        store: TrendingStore,
        trending_key: str,
        ratings_key: str,
        updated_key: str,
        half_life_hours: float = 168.0,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._store = store
        self._keys = TrendingKeys(
            scores=trending_key,
            ratings=ratings_key,
            updated=updated_key,
            epoch=f"{trending_key}:epoch",
        )
        self._half_life_sec = half_life_hours * 3600.0
        self._clock = clock

    async def apply_metrics(self, events: Iterable[EngagementMetric]) -> Dict[str, float]:
        """Apply each event in turn. Store errors propagate to the caller."""
        applied: Dict[str, float] = {}
        for event in events:
            applied[event.content_id] = await self.apply_metric(event)
        return applied

    async def apply_metric(self, event: EngagementMetric) -> float:
        """Apply one event as a single store transaction and return the new score.

        Either all of the event's writes land or none do.
        """
        received_at = _as_utc(self._clock())
        # future-dated events count as received now
        occurred_at = min(_as_utc(event.occurred_at or received_at), received_at)
        base = engagement_delta(event)

        for _ in range(EPOCH_RETRIES):
            epoch = await self._current_epoch(received_at)
            update = ScoreUpdate(
                member=event.content_id,
                score_delta=base * self._decay(occurred_at, epoch),
                updated_at=received_at.isoformat(),
                rating=event.rating,
            )
            score = await self._store.apply_update(self._keys, update, epoch)
            if score is not None:
                return score
            log.info("[TRENDING] decay epoch moved; retrying content_id=%s", event.content_id)
        raise StoreUnavailableError("apply_update")

    def _decay(self, occurred_at: datetime, epoch: Optional[float]) -> float:
        if epoch is None:
            return 1.0
        exponent = (occurred_at.timestamp() - epoch) / self._half_life_sec
        return 2.0 ** min(exponent, MAX_DECAY_EXPONENT)

    async def _current_epoch(self, now: datetime) -> Optional[float]:
        if self._half_life_sec <= 0:
            return None
        now_ts = float(math.floor(now.timestamp()))
        epoch = await self._store.ensure_epoch(self._keys.epoch, now_ts)
        elapsed = (now_ts - epoch) / self._half_life_sec
        if elapsed < RESCALE_AFTER_HALF_LIVES:
            return epoch

        factor = 2.0 ** -elapsed
        if await self._store.rescale(self._keys, epoch, now_ts, factor):
            log.info("[TRENDING] rescaled scores factor=%.3g epoch=%.0f->%.0f", factor, epoch, now_ts)
            return now_ts
        # another instance moved the epoch first
        return await self._store.ensure_epoch(self._keys.epoch, now_ts)

    async def top_trending(self, limit: int) -> List[TrendingEntry]:
        if limit <= 0:
            return []
        try:
            rows = await self._store.top(self._keys.scores, limit)
            if len(rows) == limit:
                # members tied with the last score may sit past the cut
                boundary = rows[-1][1]
                above = [row for row in rows if row[1] > boundary]
                tied = await self._store.members_with_score(self._keys.scores, boundary, limit - len(above))
                rows = above + [(member, boundary) for member in tied]
            rows = sorted(rows, key=lambda row: (-row[1], row[0]))[:limit]
            updated = await self._store.get_fields(self._keys.updated, [member for member, _ in rows])
        except StoreUnavailableError:
            log.exception("Trending lookup failed; serving without trending")
            return []

        return [
            TrendingEntry(content_id=member, score=score, updated_at=_parse_time(stamp))
            for (member, score), stamp in zip(rows, updated)
        ]

    async def scores_for(self, content_ids: Sequence[str]) -> Dict[str, float]:
        ids = list(dict.fromkeys(content_ids))
        if not ids:
            return {}
        try:
            scores = await self._store.scores(self._keys.scores, ids)
        except StoreUnavailableError:
            log.exception("Trending score lookup failed ids=%d", len(ids))
            return {content_id: 0.0 for content_id in ids}
        return {content_id: score or 0.0 for content_id, score in zip(ids, scores)}

    async def score_for(self, content_id: str) -> float:
        scores = await self.scores_for([content_id])
        return scores[content_id]

    async def ratings_for(self, content_ids: Sequence[str]) -> Dict[str, RatingAggregate]:
        ids = list(dict.fromkeys(content_ids))
        if not ids:
            return {}
        fields = []
        for content_id in ids:
            fields.extend((f"{content_id}:sum", f"{content_id}:count"))
        try:
            values = await self._store.get_fields(self._keys.ratings, fields)
        except StoreUnavailableError:
            log.exception("Rating lookup failed ids=%d", len(ids))
            return {content_id: RatingAggregate() for content_id in ids}

        ratings: Dict[str, RatingAggregate] = {}
        for index, content_id in enumerate(ids):
            raw_sum, raw_count = values[2 * index], values[2 * index + 1]
            ratings[content_id] = RatingAggregate(
                sum=float(raw_sum) if raw_sum else 0.0,
                count=int(float(raw_count)) if raw_count else 0,
            )
        return ratings

    async def rating_for(self, content_id: str) -> RatingAggregate:
        ratings = await self.ratings_for([content_id])
        return ratings[content_id]


def _parse_time(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    try:
        return datetime.fromisoformat(value)
    except ValueError:
        return None
