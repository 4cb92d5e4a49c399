from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Callable, Collection, Dict, Iterable, Optional

from content_catalog.application.models import FeedItem, SeriesDetail, SeriesSummary
from content_catalog.core.exceptions import CatalogConsistencyError


class QualityIssueKind(str, Enum):
    EPISODE_MISSING_FINALIZED_ASSET = "EPISODE_MISSING_FINALIZED_ASSET"
    SERIES_WITHOUT_PLAYABLE_EPISODES = "SERIES_WITHOUT_PLAYABLE_EPISODES"
    FEED_ITEM_UNKNOWN_SERIES = "FEED_ITEM_UNKNOWN_SERIES"
    EPISODE_SERIES_MISMATCH = "EPISODE_SERIES_MISMATCH"
    INVALID_TIMESTAMP = "INVALID_TIMESTAMP"
    FUTURE_TIMESTAMP = "FUTURE_TIMESTAMP"
    RELATED_SELF_REFERENCE = "RELATED_SELF_REFERENCE"


@dataclass(frozen=True)
class QualityIssue:
    kind: QualityIssueKind
    content_id: str
    attributes: Dict[str, Any] = field(default_factory=dict)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class DataQualityMonitor:
    """Structural and referential checks on composed catalog payloads.

    Runs right before a payload is returned to a viewer or written to the
    cache. Holds no state besides its clock, so one instance can be shared by
    concurrent requests. The first violation raises CatalogConsistencyError.
    """

    def __init__(
        self,
        clock: Callable[[], datetime] = _utcnow,
        future_tolerance: timedelta = timedelta(days=1),
    ) -> None:
        self._clock = clock
        self._future_tolerance = future_tolerance

    def validate_feed_items(
        self,
        items: Iterable[FeedItem],
        known_series_ids: Optional[Collection[str]] = None,
    ) -> None:
        """``known_series_ids`` is only given on a cache miss; hits skip the lookup."""
        for item in items:
            self.validate_episode(item)
            if known_series_ids is not None and item.series_id and item.series_id not in known_series_ids:
                self._fail(
                    QualityIssueKind.FEED_ITEM_UNKNOWN_SERIES,
                    item.id,
                    episode_id=item.id,
                    series_id=item.series_id,
                )

    def validate_episode(self, item: FeedItem) -> None:
        playback = item.playback
        if playback is None or not playback.is_finalized:
            self._fail(
                QualityIssueKind.EPISODE_MISSING_FINALIZED_ASSET,
                item.id,
                episode_id=item.id,
                series_id=item.series_id,
                asset_status=playback.status if playback else None,
            )
        self._check_timestamp(item.id, "published_at", item.published_at)

    def validate_series_detail(self, detail: SeriesDetail) -> None:
        series = detail.series
        if series.updated_at is not None:
            self._check_timestamp(series.id, "updated_at", series.updated_at)

        episodes = detail.all_episodes()
        if not episodes:
            self._fail(
                QualityIssueKind.SERIES_WITHOUT_PLAYABLE_EPISODES,
                series.id,
                series_id=series.id,
                slug=series.slug,
            )
        for episode in episodes:
            if episode.series_id != series.id:
                self._fail(
                    QualityIssueKind.EPISODE_SERIES_MISMATCH,
                    episode.id,
                    episode_id=episode.id,
                    series_id=series.id,
                    episode_series_id=episode.series_id,
                )
            self.validate_episode(episode)

    def validate_related(self, source_series_id: str, items: Iterable[SeriesSummary]) -> None:
        for summary in items:
            if summary.id == source_series_id:
                self._fail(QualityIssueKind.RELATED_SELF_REFERENCE, summary.id, series_id=source_series_id)
            if summary.updated_at is not None:
                self._check_timestamp(summary.id, "updated_at", summary.updated_at)

    def _check_timestamp(self, content_id: str, field_name: str, value: datetime) -> None:
        if value.tzinfo is None or value.utcoffset() is None:
            self._fail(QualityIssueKind.INVALID_TIMESTAMP, content_id, field=field_name, value=value.isoformat())
        if value > self._clock() + self._future_tolerance:
            self._fail(QualityIssueKind.FUTURE_TIMESTAMP, content_id, field=field_name, value=value.isoformat())

    @staticmethod
    def _fail(kind: QualityIssueKind, content_id: str, **attributes: Any) -> None:
        raise CatalogConsistencyError(QualityIssue(kind=kind, content_id=content_id, attributes=attributes))
