from typing import Iterable, List, Optional, Protocol, Set, Union

from content_catalog.application.models import (
    Category,
    CategoryPage,
    CategoryQuery,
    EpisodeAsset,
    FeedItem,
    FeedPage,
    FeedQuery,
    RegisterEpisodeAsset,
    RelatedCandidate,
    SeriesDetail,
    SeriesSummary,
)
from content_catalog.core.results import NotFound, PreconditionFailed


class CatalogService(Protocol):
    """System-of-record queries. Only published, viewer-visible records are returned."""

    async def list_feed(self, query: FeedQuery) -> FeedPage:
        ...

    async def get_feed_items(self, ids: Iterable[str]) -> List[FeedItem]:
        ...

    async def get_episode(self, episode_id: str) -> Optional[FeedItem]:
        ...

    async def find_existing_series_ids(self, ids: Iterable[str]) -> Set[str]:
        ...

    async def find_series_by_slug(self, slug: str) -> Optional[SeriesSummary]:
        ...

    async def get_series_by_slug(self, slug: str) -> Optional[SeriesDetail]:
        ...

    async def list_related_series(self, series_id: str, limit: int) -> List[RelatedCandidate]:
        ...

    async def list_categories(self, query: CategoryQuery) -> CategoryPage:
        ...

    async def get_category_by_id(self, category_id: str) -> Union[Category, NotFound]:
        ...

    async def register_episode_asset(
        self, actor_id: str, payload: RegisterEpisodeAsset
    ) -> Union[EpisodeAsset, NotFound, PreconditionFailed]:
        ...
