import logging
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional, Set, Tuple, Union

from motor.motor_asyncio import AsyncIOMotorDatabase

from content_catalog.application.models import (
    ASSET_READY,
    Category,
    CategoryPage,
    CategoryQuery,
    EpisodeAsset,
    FeedItem,
    FeedPage,
    FeedQuery,
    RegisterEpisodeAsset,
    RelatedCandidate,
    Season,
    SeriesDetail,
    SeriesSummary,
)
from content_catalog.application.ports.catalog_service import CatalogService
from content_catalog.application.serializers import decode_cursor, encode_cursor, normalize_mongo_doc
from content_catalog.core.results import NotFound, PreconditionFailed

log = logging.getLogger("content_catalog.catalog_repo")

PUBLISHED = "PUBLISHED"
ARCHIVED = "ARCHIVED"
PUBLIC = "PUBLIC"


def _visible(now: datetime) -> Dict[str, Any]:
    return {"status": PUBLISHED, "visibility": PUBLIC, "published_at": {"$lte": now}}


def _feed_position(cursor: Optional[str]) -> Optional[Tuple[datetime, str]]:
    """Keyset position from a feed cursor; anything unreadable starts from the top."""
    position = decode_cursor(cursor)
    if not position or not position.get("published_at") or not position.get("id"):
        return None
    try:
        published_at = datetime.fromisoformat(position["published_at"])
    except (TypeError, ValueError):
        log.info("Ignoring unreadable feed cursor")
        return None
    return published_at, str(position["id"])


def _page_offset(cursor: Optional[str]) -> int:
    position = decode_cursor(cursor) or {}
    try:
        offset = int(position.get("offset") or 0)
    except (TypeError, ValueError):
        log.info("Ignoring unreadable category cursor")
        return 0
    return max(offset, 0)



def _summary(doc: Dict[str, Any]) -> SeriesSummary:
    doc = normalize_mongo_doc(doc)
    return SeriesSummary(
        id=doc["id"],
        slug=doc["slug"],
        title=doc["title"],
        synopsis=doc.get("synopsis"),
        category_id=doc.get("category_id"),
        tags=tuple(doc.get("tags") or ()),
        thumbnails=tuple(doc.get("thumbnails") or ()),
        updated_at=doc.get("updated_at"),
    )


def _feed_item(doc: Dict[str, Any], series: Optional[Dict[str, Any]]) -> FeedItem:
    doc = normalize_mongo_doc(doc)
    return FeedItem(
        id=doc["id"],
        series_id=doc.get("series_id"),
        series_slug=series.get("slug") if series else None,
        series_title=series.get("title") if series else None,
        season_id=doc.get("season_id"),
        episode_number=doc.get("episode_number"),
        category_id=doc.get("category_id") or (series.get("category_id") if series else None),
        title=doc["title"],
        synopsis=doc.get("synopsis"),
        thumbnails=tuple(doc.get("thumbnails") or ()),
        duration_seconds=doc.get("duration_seconds"),
        published_at=doc["published_at"],
        visibility=doc.get("visibility") or PUBLIC,
        tags=tuple(doc.get("tags") or ()),
        playback=doc.get("playback"),
    )


class MongoCatalogRepository(CatalogService):
    """Catalog system of record backed by the ``series``, ``seasons``,
    ``episodes`` and ``categories`` collections."""

    def __init__(self, db: AsyncIOMotorDatabase) -> None:
        self._db = db

    async def list_feed(self, query: FeedQuery) -> FeedPage:
        filter_doc = _visible(datetime.now(timezone.utc))
        if query.category_id:
            filter_doc["category_id"] = query.category_id
        if query.tag:
            filter_doc["tags"] = query.tag.strip().lower()

        position = _feed_position(query.cursor)
        if position is not None:
            published_at, last_id = position
            filter_doc["$or"] = [
                {"published_at": {"$lt": published_at}},
                {"published_at": published_at, "_id": {"$lt": last_id}},
            ]

        cursor = self._db.episodes.find(filter_doc).sort([("published_at", -1), ("_id", -1)]).limit(query.limit + 1)
        docs = await cursor.to_list(length=query.limit + 1)
        has_more = len(docs) > query.limit
        docs = docs[: query.limit]

        items = await self._compose_items(docs)
        next_cursor = None
        if has_more and docs:
            last = docs[-1]
            next_cursor = encode_cursor({"published_at": last["published_at"], "id": last["_id"]})
        return FeedPage(items=tuple(items), next_cursor=next_cursor)

    async def get_feed_items(self, ids: Iterable[str]) -> List[FeedItem]:
        ids = list(ids)
        if not ids:
            return []
        filter_doc = _visible(datetime.now(timezone.utc))
        filter_doc["_id"] = {"$in": ids}
        docs = await self._db.episodes.find(filter_doc).to_list(length=len(ids))
        return await self._compose_items(docs)

    async def get_episode(self, episode_id: str) -> Optional[FeedItem]:
        filter_doc = _visible(datetime.now(timezone.utc))
        filter_doc["_id"] = episode_id
        doc = await self._db.episodes.find_one(filter_doc)
        if doc is None:
            return None
        items = await self._compose_items([doc])
        return items[0]

    async def find_existing_series_ids(self, ids: Iterable[str]) -> Set[str]:
        ids = list(set(ids))
        if not ids:
            return set()
        docs = await self._db.series.find({"_id": {"$in": ids}}, {"_id": 1}).to_list(length=len(ids))
        return {str(doc["_id"]) for doc in docs}

    async def find_series_by_slug(self, slug: str) -> Optional[SeriesSummary]:
        doc = await self._db.series.find_one({"slug": slug, "status": PUBLISHED})
        return _summary(doc) if doc else None

    async def get_series_by_slug(self, slug: str) -> Optional[SeriesDetail]:
        series_doc = await self._db.series.find_one({"slug": slug, "status": PUBLISHED})
        if series_doc is None:
            return None
        series_id = series_doc["_id"]

        season_docs = await self._db.seasons.find({"series_id": series_id}).to_list(length=None)
        filter_doc = _visible(datetime.now(timezone.utc))
        filter_doc["series_id"] = series_id
        episode_docs = await self._db.episodes.find(filter_doc).to_list(length=None)

        by_season: Dict[Any, List[FeedItem]] = {}
        standalone: List[FeedItem] = []
        season_ids = {doc["_id"] for doc in season_docs}
        for doc in episode_docs:
            item = _feed_item(doc, series_doc)
            if doc.get("season_id") in season_ids:
                by_season.setdefault(doc["season_id"], []).append(item)
            else:
                standalone.append(item)

        seasons = tuple(
            Season(
                id=str(doc["_id"]),
                title=doc.get("title"),
                sequence_number=doc.get("sequence_number") or 0,
                episodes=tuple(by_season.get(doc["_id"], ())),
            )
            for doc in season_docs
        )
        return SeriesDetail(series=_summary(series_doc), seasons=seasons, standalone_episodes=tuple(standalone))

    async def list_related_series(self, series_id: str, limit: int) -> List[RelatedCandidate]:
        source = await self._db.series.find_one({"_id": series_id})
        if source is None:
            return []
        tags = source.get("tags") or []
        pipeline = [
            {
                "$match": {
                    "_id": {"$ne": series_id},
                    "status": PUBLISHED,
                    "$or": [{"category_id": source.get("category_id")}, {"tags": {"$in": tags}}],
                }
            },
            {
                "$addFields": {
                    "relatedness": {
                        "$add": [
                            {"$cond": [{"$eq": ["$category_id", source.get("category_id")]}, 1, 0]},
                            {"$size": {"$setIntersection": [{"$ifNull": ["$tags", []]}, tags]}},
                        ]
                    }
                }
            },
            {"$sort": {"relatedness": -1, "_id": 1}},
            {"$limit": limit},
        ]
        docs = await self._db.series.aggregate(pipeline).to_list(length=limit)
        return [RelatedCandidate(series=_summary(doc), relatedness=doc.get("relatedness", 0)) for doc in docs]

    async def list_categories(self, query: CategoryQuery) -> CategoryPage:
        offset = _page_offset(query.cursor)
        cursor = (
            self._db.categories.find({})
            .sort([("display_order", 1), ("_id", 1)])
            .skip(offset)
            .limit(query.limit + 1)
        )
        docs = await cursor.to_list(length=query.limit + 1)
        has_more = len(docs) > query.limit
        items = tuple(Category(**normalize_mongo_doc(doc)) for doc in docs[: query.limit])
        next_cursor = encode_cursor({"offset": offset + query.limit}) if has_more else None
        return CategoryPage(items=items, next_cursor=next_cursor)

    async def get_category_by_id(self, category_id: str) -> Union[Category, NotFound]:
        doc = await self._db.categories.find_one({"_id": category_id})
        if doc is None:
            return NotFound("category", category_id)
        return Category(**normalize_mongo_doc(doc))

    async def register_episode_asset(
        self, actor_id: str, payload: RegisterEpisodeAsset
    ) -> Union[EpisodeAsset, NotFound, PreconditionFailed]:
        episode = await self._db.episodes.find_one({"_id": payload.episode_id}, {"status": 1})
        if episode is None:
            return NotFound("episode", payload.episode_id)
        if episode.get("status") == ARCHIVED:
            return PreconditionFailed("Episode is archived")
        if payload.status == ASSET_READY and not (payload.streaming_asset_id and payload.manifest_url):
            return PreconditionFailed("A READY asset requires streaming_asset_id and manifest_url")

        now = datetime.now(timezone.utc)
        variants = [variant.model_dump() for variant in payload.variants]
        set_doc: Dict[str, Any] = {
            "playback": {
                "status": payload.status,
                "streaming_asset_id": payload.streaming_asset_id,
                "manifest_url": payload.manifest_url,
            },
            "media_asset": {
                "source_upload_id": payload.source_upload_id,
                "default_thumbnail_url": payload.default_thumbnail_url,
                "variants": variants,
                "updated_by": actor_id,
                "updated_at": now,
            },
            "updated_at": now,
        }
        if payload.default_thumbnail_url:
            set_doc["thumbnails"] = [{"url": payload.default_thumbnail_url}]

        await self._db.episodes.update_one({"_id": payload.episode_id}, {"$set": set_doc})
        log.info("Episode asset stored episode_id=%s status=%s actor=%s", payload.episode_id, payload.status, actor_id)
        return EpisodeAsset(
            episode_id=payload.episode_id,
            status=payload.status,
            streaming_asset_id=payload.streaming_asset_id,
            manifest_url=payload.manifest_url,
            default_thumbnail_url=payload.default_thumbnail_url,
            variants=payload.variants,
            updated_at=now,
        )

    async def _compose_items(self, docs: List[Dict[str, Any]]) -> List[FeedItem]:
        series_ids = list({doc["series_id"] for doc in docs if doc.get("series_id")})
        series_by_id: Dict[Any, Dict[str, Any]] = {}
        if series_ids:
            series_docs = await self._db.series.find(
                {"_id": {"$in": series_ids}}, {"slug": 1, "title": 1, "category_id": 1}
            ).to_list(length=len(series_ids))
            series_by_id = {doc["_id"]: doc for doc in series_docs}
        return [_feed_item(doc, series_by_id.get(doc.get("series_id"))) for doc in docs]
