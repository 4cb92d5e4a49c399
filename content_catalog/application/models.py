from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

ASSET_READY = "READY"


class CatalogModel(BaseModel):
    model_config = ConfigDict(frozen=True)


class Thumbnail(CatalogModel):
    url: str
    width: Optional[int] = None
    height: Optional[int] = None


class PlaybackAsset(CatalogModel):
    status: str
    streaming_asset_id: Optional[str] = None
    manifest_url: Optional[str] = None

    @property
    def is_finalized(self) -> bool:
        return self.status == ASSET_READY and bool(self.streaming_asset_id) and bool(self.manifest_url)


class RatingAggregate(CatalogModel):
    sum: float = 0.0
    count: int = 0

    @property
    def average(self) -> Optional[float]:
        if self.count <= 0:
            return None
        return self.sum / self.count


class FeedItem(CatalogModel):
    """One playable unit (an episode, or a standalone video when series_id is None)."""

    id: str
    series_id: Optional[str] = None
    series_slug: Optional[str] = None
    series_title: Optional[str] = None
    season_id: Optional[str] = None
    episode_number: Optional[int] = None
    category_id: Optional[str] = None
    title: str
    synopsis: Optional[str] = None
    thumbnails: tuple[Thumbnail, ...] = ()
    duration_seconds: Optional[int] = None
    published_at: datetime
    visibility: str = "PUBLIC"
    tags: tuple[str, ...] = ()
    playback: Optional[PlaybackAsset] = None
    trending_score: Optional[float] = None
    rating: RatingAggregate = RatingAggregate()

    def with_engagement(self, score: float, rating: RatingAggregate) -> "FeedItem":
        return self.model_copy(update={"trending_score": score, "rating": rating})


class SeriesSummary(CatalogModel):
    id: str
    slug: str
    title: str
    synopsis: Optional[str] = None
    category_id: Optional[str] = None
    tags: tuple[str, ...] = ()
    thumbnails: tuple[Thumbnail, ...] = ()
    updated_at: Optional[datetime] = None
    trending_score: Optional[float] = None
    rating: RatingAggregate = RatingAggregate()

    def with_engagement(self, score: float, rating: RatingAggregate) -> "SeriesSummary":
        return self.model_copy(update={"trending_score": score, "rating": rating})


class Season(CatalogModel):
    id: str
    title: Optional[str] = None
    sequence_number: int = 0
    episodes: tuple[FeedItem, ...] = ()


class SeriesDetail(CatalogModel):
    series: SeriesSummary
    seasons: tuple[Season, ...] = ()
    standalone_episodes: tuple[FeedItem, ...] = ()

    def all_episodes(self) -> list[FeedItem]:
        episodes = [episode for season in self.seasons for episode in season.episodes]
        episodes.extend(self.standalone_episodes)
        return episodes


class RelatedCandidate(CatalogModel):
    series: SeriesSummary
    relatedness: float = 0.0


class Category(CatalogModel):
    id: str
    slug: str
    name: str
    description: Optional[str] = None
    display_order: Optional[int] = None
    updated_at: Optional[datetime] = None


class FeedQuery(CatalogModel):
    limit: int = Field(default=20, ge=1, le=100)
    cursor: Optional[str] = None
    category_id: Optional[str] = None
    tag: Optional[str] = None


class CategoryQuery(CatalogModel):
    limit: int = Field(default=50, ge=1, le=200)
    cursor: Optional[str] = None


class FeedPage(CatalogModel):
    items: tuple[FeedItem, ...] = ()
    next_cursor: Optional[str] = None


class CategoryPage(CatalogModel):
    items: tuple[Category, ...] = ()
    next_cursor: Optional[str] = None


class FeedResult(FeedPage):
    from_cache: bool = False


class CategoryListResult(CategoryPage):
    from_cache: bool = False


class SeriesDetailResult(SeriesDetail):
    from_cache: bool = False


class RelatedSeriesResult(CatalogModel):
    items: tuple[SeriesSummary, ...] = ()
    from_cache: bool = False


class EpisodeResult(CatalogModel):
    item: FeedItem
    from_cache: bool = False


class AssetVariant(CatalogModel):
    label: str
    width: Optional[int] = None
    height: Optional[int] = None
    bitrate_kbps: Optional[int] = None
    codec: Optional[str] = None


class RegisterEpisodeAsset(CatalogModel):
    episode_id: str
    status: str
    source_upload_id: Optional[str] = None
    streaming_asset_id: Optional[str] = None
    manifest_url: Optional[str] = None
    default_thumbnail_url: Optional[str] = None
    variants: tuple[AssetVariant, ...] = ()


class EpisodeAsset(CatalogModel):
    episode_id: str
    status: str
    streaming_asset_id: Optional[str] = None
    manifest_url: Optional[str] = None
    default_thumbnail_url: Optional[str] = None
    variants: tuple[AssetVariant, ...] = ()
    updated_at: Optional[datetime] = None


class EngagementMetric(CatalogModel):
    content_id: str
    views: int = Field(default=0, ge=0)
    likes: int = Field(default=0, ge=0)
    completions: int = Field(default=0, ge=0)
    rating: Optional[float] = Field(default=None, ge=1, le=5)
    occurred_at: Optional[datetime] = None
    event_id: Optional[str] = None


class TrendingEntry(CatalogModel):
    content_id: str
    score: float
    updated_at: Optional[datetime] = None
