import logging

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from content_catalog.api.dependencies import get_components, verify_service_request
from content_catalog.api.schemas import AssetRegistrationBody, EngagementMetricsEvent, MediaProcessedEvent
from content_catalog.application.models import RegisterEpisodeAsset
from content_catalog.core.exceptions import CatalogConsistencyError, EventPublishError, StoreUnavailableError
from content_catalog.core.results import NotFound, PreconditionFailed
from content_catalog.infrastructure.catalog import CatalogComponents

router = APIRouter(prefix="/internal", dependencies=[Depends(verify_service_request)])
log = logging.getLogger("content_catalog.api.internal")

SYSTEM_ACTOR_ID = "SYSTEM"


@router.get("/catalog/media/{episode_id}")
async def get_media_metadata(episode_id: str, components: CatalogComponents = Depends(get_components)) -> JSONResponse:
    try:
        result = await components.viewer_catalog.get_episode_metadata(episode_id)
    except CatalogConsistencyError as exc:
        log.error("Catalog data quality failure on media metadata issue=%s content_id=%s", exc.issue.kind.value, exc.issue.content_id)
        return JSONResponse(status_code=500, content={"message": "Catalog data quality issue", "issue": exc.issue.kind.value})
    if isinstance(result, NotFound):
        return JSONResponse(status_code=404, content={"message": "Media not found"})
    return JSONResponse(status_code=200, content=result.item.model_dump(mode="json"))


@router.get("/catalog/categories/{category_id}")
async def get_category(category_id: str, components: CatalogComponents = Depends(get_components)) -> JSONResponse:
    try:
        result = await components.catalog.get_category_by_id(category_id)
    except Exception:
        log.exception("Failed to fetch category category_id=%s", category_id)
        return JSONResponse(status_code=500, content={"message": "Unable to fetch category"})
    if isinstance(result, NotFound):
        return JSONResponse(status_code=404, content={"message": "Category not found"})
    return JSONResponse(status_code=200, content=result.model_dump(mode="json"))


async def _register_asset(
    components: CatalogComponents, payload: RegisterEpisodeAsset, accepted: bool = False
) -> JSONResponse:
    try:
        result = await components.register_asset.execute(SYSTEM_ACTOR_ID, payload)
    except EventPublishError:
        log.exception("Asset stored but event publish failed episode_id=%s", payload.episode_id)
        return JSONResponse(status_code=503, content={"message": "Unable to publish catalog event"})
    except Exception:
        log.exception("Failed to register episode asset episode_id=%s", payload.episode_id)
        return JSONResponse(status_code=500, content={"message": "Unable to register episode asset"})

    if isinstance(result, NotFound):
        return JSONResponse(status_code=404, content={"message": result.message})
    if isinstance(result, PreconditionFailed):
        return JSONResponse(status_code=412, content={"message": result.message})
    if accepted:
        return JSONResponse(status_code=202, content={"accepted": True})
    return JSONResponse(status_code=200, content=result.model_dump(mode="json"))


@router.post("/catalog/episodes/{episode_id}/assets")
async def register_episode_asset(
    episode_id: str,
    body: AssetRegistrationBody,
    components: CatalogComponents = Depends(get_components),
) -> JSONResponse:
    return await _register_asset(components, body.for_episode(episode_id))


@router.post("/events/media-processed")
async def media_processed(
    body: MediaProcessedEvent,
    components: CatalogComponents = Depends(get_components),
) -> JSONResponse:
    return await _register_asset(components, body.to_registration(), accepted=True)


@router.post("/events/engagement/metrics")
async def engagement_metrics(
    body: EngagementMetricsEvent,
    components: CatalogComponents = Depends(get_components),
) -> JSONResponse:
    try:
        applied, skipped = await components.apply_metrics.execute(body.metrics)
    except (StoreUnavailableError, EventPublishError):
        log.exception("Engagement metrics store unavailable")
        return JSONResponse(status_code=503, content={"message": "Unable to persist engagement metrics"})
    except Exception:
        log.exception("Failed to apply engagement metrics")
        return JSONResponse(status_code=500, content={"message": "Unable to persist engagement metrics"})
    return JSONResponse(status_code=202, content={"accepted": True, "applied": applied, "skipped": skipped})
