import asyncio
import math
from datetime import datetime, timedelta, timezone

import pytest

from content_catalog.application.models import EngagementMetric, RatingAggregate
from content_catalog.application.trending import RESCALE_AFTER_HALF_LIVES, TrendingAggregator, engagement_delta
from content_catalog.core.exceptions import StoreUnavailableError
from fakes import NOW, FakeClock, InMemoryTrendingStore


def _aggregator(store=None, half_life_hours=0.0, clock=None):
    return TrendingAggregator(
        store or InMemoryTrendingStore(),
        trending_key="trending",
        ratings_key="ratings",
        updated_key="trending:updated",
        half_life_hours=half_life_hours,
        clock=clock or FakeClock(),
    )


def test_delta_weights():
    event = EngagementMetric(content_id="ep-1", views=10, likes=2, completions=1, rating=5)
    assert engagement_delta(event) == 10 * 1.0 + 2 * 5.0 + 1 * 3.0 + (5 - 3) * 2.0


def test_reapplying_identical_event_doubles_the_score():
    """No dedup inside the aggregator: callers guard retries by event id."""
    aggregator = _aggregator()
    event = EngagementMetric(content_id="ep-1", views=3, likes=1, event_id="evt-1", occurred_at=NOW)

    asyncio.run(aggregator.apply_metrics([event]))
    once = asyncio.run(aggregator.score_for("ep-1"))
    asyncio.run(aggregator.apply_metrics([event]))

    assert asyncio.run(aggregator.score_for("ep-1")) == 2 * once


def test_application_order_does_not_change_scores():
    a = EngagementMetric(content_id="ep-a", views=7, likes=1, occurred_at=NOW)
    b = EngagementMetric(content_id="ep-b", views=2, completions=4, occurred_at=NOW - timedelta(hours=30))

    forward = _aggregator(half_life_hours=24)
    backward = _aggregator(half_life_hours=24)
    asyncio.run(forward.apply_metrics([a, b]))
    asyncio.run(backward.apply_metrics([b, a]))

    for content_id in ("ep-a", "ep-b"):
        assert asyncio.run(forward.score_for(content_id)) == asyncio.run(backward.score_for(content_id))


def test_newer_events_outweigh_older_ones_with_decay():
    aggregator = _aggregator(half_life_hours=24)
    asyncio.run(
        aggregator.apply_metrics(
            [
                EngagementMetric(content_id="old", views=10, occurred_at=NOW - timedelta(days=2)),
                EngagementMetric(content_id="new", views=10, occurred_at=NOW),
            ]
        )
    )

    old = asyncio.run(aggregator.score_for("old"))
    new = asyncio.run(aggregator.score_for("new"))
    assert new == pytest.approx(old * 4)


def test_top_trending_breaks_ties_by_ascending_id():
    store = InMemoryTrendingStore()
    store.zsets["trending"] = {"ep-c": 5.0, "ep-b": 5.0, "ep-a": 5.0, "ep-z": 9.0, "ep-y": 1.0}
    aggregator = _aggregator(store)

    for _ in range(3):
        top = asyncio.run(aggregator.top_trending(3))
        assert [entry.content_id for entry in top] == ["ep-z", "ep-a", "ep-b"]


def test_top_trending_with_fewer_entries_than_limit():
    store = InMemoryTrendingStore()
    store.zsets["trending"] = {"ep-b": 2.0, "ep-a": 2.0}

    top = asyncio.run(_aggregator(store).top_trending(10))

    assert [(entry.content_id, entry.score) for entry in top] == [("ep-a", 2.0), ("ep-b", 2.0)]


def test_absent_entries_resolve_to_zero():
    aggregator = _aggregator()

    assert asyncio.run(aggregator.score_for("nobody")) == 0.0
    assert asyncio.run(aggregator.rating_for("nobody")) == RatingAggregate(sum=0.0, count=0)


def test_ratings_accumulate():
    aggregator = _aggregator()
    asyncio.run(
        aggregator.apply_metrics(
            [
                EngagementMetric(content_id="ep-1", rating=5, occurred_at=NOW),
                EngagementMetric(content_id="ep-1", rating=2, occurred_at=NOW),
            ]
        )
    )

    rating = asyncio.run(aggregator.rating_for("ep-1"))
    assert rating == RatingAggregate(sum=7.0, count=2)
    assert rating.average == 3.5
    # (5 - 3) * 2 + (2 - 3) * 2
    assert asyncio.run(aggregator.score_for("ep-1")) == 2.0


def test_apply_metrics_fails_loudly_when_store_is_down():
    store = InMemoryTrendingStore()
    store.available = False

    with pytest.raises(StoreUnavailableError):
        asyncio.run(_aggregator(store).apply_metrics([EngagementMetric(content_id="ep-1", views=1)]))


def test_read_paths_degrade_when_store_is_down():
    store = InMemoryTrendingStore()
    store.zsets["trending"] = {"ep-1": 4.0}
    store.available = False
    aggregator = _aggregator(store)

    assert asyncio.run(aggregator.top_trending(5)) == []
    assert asyncio.run(aggregator.scores_for(["ep-1"])) == {"ep-1": 0.0}
    assert asyncio.run(aggregator.ratings_for(["ep-1"])) == {"ep-1": RatingAggregate()}


def test_last_updated_is_recorded():
    store = InMemoryTrendingStore()
    aggregator = _aggregator(store)
    asyncio.run(aggregator.apply_metrics([EngagementMetric(content_id="ep-1", views=1, occurred_at=NOW)]))

    top = asyncio.run(aggregator.top_trending(1))
    assert top[0].updated_at == NOW


def test_future_dated_events_count_as_received_now():
    aggregator = _aggregator(half_life_hours=24)
    asyncio.run(aggregator.apply_metrics([EngagementMetric(content_id="ep-1", views=1, occurred_at=NOW + timedelta(days=10))]))

    assert asyncio.run(aggregator.score_for("ep-1")) == 1.0


def test_short_half_life_on_real_dates_rescales_instead_of_overflowing():
    clock = FakeClock(datetime(2026, 10, 17, 9, 30, tzinfo=timezone.utc))
    store = InMemoryTrendingStore()
    aggregator = _aggregator(store, half_life_hours=12, clock=clock)
    view = EngagementMetric(content_id="ep-1", views=1)

    assert asyncio.run(aggregator.apply_metric(view)) == 1.0
    clock.advance(3 * 12 * 3600)
    assert asyncio.run(aggregator.apply_metric(view)) == 9.0

    clock.advance(30 * 24 * 3600)
    assert asyncio.run(aggregator.apply_metric(view)) == pytest.approx(1.0)
    assert store.strings["trending:epoch"] == str(float(math.floor(clock.now.timestamp())))


def test_scores_stay_bounded_under_steady_traffic():
    clock = FakeClock(datetime(2026, 10, 17, tzinfo=timezone.utc))
    aggregator = _aggregator(half_life_hours=1, clock=clock)

    async def hourly_views():
        seen = []
        for _ in range(24 * 60):
            seen.append(await aggregator.apply_metric(EngagementMetric(content_id="ep-1", views=1)))
            clock.advance(3600)
        return seen

    seen = asyncio.run(hourly_views())

    assert max(seen) < 2 ** (RESCALE_AFTER_HALF_LIVES + 1)


def test_rescale_keeps_the_ranking():
    clock = FakeClock()
    store = InMemoryTrendingStore()
    aggregator = _aggregator(store, half_life_hours=24, clock=clock)
    asyncio.run(
        aggregator.apply_metrics(
            [EngagementMetric(content_id="ep-a", views=10), EngagementMetric(content_id="ep-b", views=5)]
        )
    )

    clock.advance(20 * 24 * 3600)
    asyncio.run(aggregator.apply_metric(EngagementMetric(content_id="ep-c", views=1)))

    top = asyncio.run(aggregator.top_trending(3))
    assert [entry.content_id for entry in top] == ["ep-c", "ep-a", "ep-b"]
    assert top[1].score == pytest.approx(2 * top[2].score)


class _RacedStore(InMemoryTrendingStore):
    """Another instance moves the epoch just before the first write lands."""

    def __init__(self) -> None:
        super().__init__()
        self.raced = False

    async def apply_update(self, keys, update, epoch):
        if not self.raced:
            self.raced = True
            await self.rescale(keys, epoch, epoch + 24 * 3600, 0.5)
        return await super().apply_update(keys, update, epoch)


def test_write_is_retried_on_the_new_epoch_after_a_concurrent_rescale():
    store = _RacedStore()
    aggregator = _aggregator(store, half_life_hours=24)

    score = asyncio.run(aggregator.apply_metric(EngagementMetric(content_id="ep-1", views=1, occurred_at=NOW)))

    # one half-life before the moved epoch
    assert score == 0.5
    assert asyncio.run(aggregator.score_for("ep-1")) == 0.5


def test_failed_transaction_leaves_no_partial_rating():
    store = InMemoryTrendingStore()
    store.fail_at = ("ep-1", "hincrbyfloat:count")
    aggregator = _aggregator(store)

    with pytest.raises(StoreUnavailableError):
        asyncio.run(aggregator.apply_metric(EngagementMetric(content_id="ep-1", views=1, rating=5, occurred_at=NOW)))

    assert asyncio.run(aggregator.rating_for("ep-1")) == RatingAggregate()
    assert asyncio.run(aggregator.score_for("ep-1")) == 0.0
    assert asyncio.run(aggregator.top_trending(1)) == []


def test_tie_lookup_only_fetches_the_missing_slots():
    store = InMemoryTrendingStore()
    store.zsets["trending"] = {f"ep-{index:03d}": 1.0 for index in range(500)}
    store.zsets["trending"]["ep-top"] = 9.0

    top = asyncio.run(_aggregator(store).top_trending(3))

    assert [entry.content_id for entry in top] == ["ep-top", "ep-000", "ep-001"]
    assert store.tie_lookups == [2]
