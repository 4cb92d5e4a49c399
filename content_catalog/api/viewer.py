import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query
from fastapi.responses import JSONResponse

from content_catalog.api.dependencies import get_components, verify_service_request
from content_catalog.application.models import CategoryQuery, FeedQuery
from content_catalog.core.exceptions import CatalogConsistencyError
from content_catalog.core.results import NotFound
from content_catalog.infrastructure.catalog import CatalogComponents

router = APIRouter(prefix="/catalog", dependencies=[Depends(verify_service_request)])
log = logging.getLogger("content_catalog.api.viewer")


def _cached_response(content: dict, ttl_seconds: int, from_cache: Optional[bool] = None) -> JSONResponse:
    headers = {"cache-control": f"public, max-age={ttl_seconds}"}
    if from_cache is not None:
        headers["x-cache"] = "hit" if from_cache else "miss"
    return JSONResponse(status_code=200, content=content, headers=headers)


def _quality_failure(exc: CatalogConsistencyError, surface: str) -> JSONResponse:
    log.error(
        "Catalog data quality failure on %s issue=%s content_id=%s attributes=%s",
        surface,
        exc.issue.kind.value,
        exc.issue.content_id,
        exc.issue.attributes,
    )
    return JSONResponse(
        status_code=500,
        content={"message": "Catalog data quality issue", "issue": exc.issue.kind.value},
    )


def _not_found(result: NotFound) -> JSONResponse:
    return JSONResponse(status_code=404, content={"message": f"{result.resource.capitalize()} not found"})


@router.get("/feed")
async def get_feed(
    limit: int = Query(default=20, ge=1, le=100),
    cursor: Optional[str] = None,
    category_id: Optional[str] = None,
    tag: Optional[str] = None,
    components: CatalogComponents = Depends(get_components),
) -> JSONResponse:
    query = FeedQuery(limit=limit, cursor=cursor, category_id=category_id, tag=tag)
    try:
        result = await components.viewer_catalog.get_feed(query)
    except CatalogConsistencyError as exc:
        return _quality_failure(exc, "viewer feed")
    return _cached_response(
        result.model_dump(mode="json", include={"items", "next_cursor"}),
        components.settings.feed_cache_ttl_seconds,
        result.from_cache,
    )


@router.get("/trending")
async def get_trending(
    limit: int = Query(default=20, ge=1, le=100),
    components: CatalogComponents = Depends(get_components),
) -> JSONResponse:
    try:
        result = await components.viewer_catalog.get_trending_feed(limit)
    except CatalogConsistencyError as exc:
        return _quality_failure(exc, "trending feed")
    return _cached_response(
        result.model_dump(mode="json", include={"items"}),
        components.settings.feed_cache_ttl_seconds,
        result.from_cache,
    )


@router.get("/series/{slug}")
async def get_series_detail(slug: str, components: CatalogComponents = Depends(get_components)) -> JSONResponse:
    try:
        result = await components.viewer_catalog.get_series_detail(slug)
    except CatalogConsistencyError as exc:
        return _quality_failure(exc, "series detail")
    if isinstance(result, NotFound):
        return _not_found(result)
    return _cached_response(
        result.model_dump(mode="json", include={"series", "seasons", "standalone_episodes"}),
        components.settings.series_cache_ttl_seconds,
        result.from_cache,
    )


@router.get("/series/{slug}/related")
async def get_related_series(
    slug: str,
    limit: int = Query(default=10, ge=1, le=50),
    components: CatalogComponents = Depends(get_components),
) -> JSONResponse:
    try:
        result = await components.viewer_catalog.get_related_series(slug, limit)
    except CatalogConsistencyError as exc:
        return _quality_failure(exc, "related series")
    if isinstance(result, NotFound):
        return _not_found(result)
    return _cached_response(
        result.model_dump(mode="json", include={"items"}),
        components.settings.related_cache_ttl_seconds,
        result.from_cache,
    )


@router.get("/categories")
async def list_categories(
    limit: int = Query(default=50, ge=1, le=200),
    cursor: Optional[str] = None,
    components: CatalogComponents = Depends(get_components),
) -> JSONResponse:
    result = await components.viewer_catalog.list_categories(CategoryQuery(limit=limit, cursor=cursor))
    return _cached_response(
        result.model_dump(mode="json", include={"items", "next_cursor"}),
        components.settings.categories_cache_ttl_seconds,
        result.from_cache,
    )
