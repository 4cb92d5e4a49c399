import logging

from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo.errors import OperationFailure

log = logging.getLogger("content_catalog.db.indexes")


async def _safe_create_index(collection, keys, **kwargs) -> None:
    """Create index if possible; ignore idempotent name/options conflicts."""
    try:
        await collection.create_index(keys, **kwargs)
    except OperationFailure as exc:
        # 85 IndexOptionsConflict, 86 IndexKeySpecsConflict
        if getattr(exc, "code", None) in (85, 86):
            log.warning("Skipping index creation due to existing equivalent/conflicting index: %s", exc)
            return
        raise


async def ensure_indexes(db: AsyncIOMotorDatabase) -> None:
    await _safe_create_index(
        db.episodes,
        [("status", 1), ("visibility", 1), ("published_at", -1), ("_id", -1)],
        name="episodes_feed",
    )
    await _safe_create_index(db.episodes, [("series_id", 1), ("season_id", 1)], name="episodes_series_season")
    await _safe_create_index(db.series, [("slug", 1)], name="series_slug_unique", unique=True)
    await _safe_create_index(db.series, [("category_id", 1), ("tags", 1)], name="series_related")
    await _safe_create_index(db.seasons, [("series_id", 1), ("sequence_number", 1)], name="seasons_series_sequence")
    await _safe_create_index(db.categories, [("display_order", 1), ("_id", 1)], name="categories_display_order")
