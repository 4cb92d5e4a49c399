import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI

from content_catalog.api.internal import router as internal_router
from content_catalog.api.viewer import router as viewer_router
from content_catalog.config import Settings, load_settings
from content_catalog.infrastructure.cache.redis_client import get_redis_client
from content_catalog.infrastructure.catalog import build_redis_components
from content_catalog.infrastructure.db.indexes import ensure_indexes
from content_catalog.infrastructure.db.mongo_client import get_mongo_client, get_mongo_db

log = logging.getLogger("content_catalog.main")


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    settings = settings or load_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        redis = get_redis_client(settings)
        mongo = get_mongo_client(settings)
        db = get_mongo_db(mongo, settings)
        try:
            await ensure_indexes(db)
        except Exception:
            log.exception("Index creation failed; continuing without it")
        app.state.components = build_redis_components(settings, redis, db)
        log.info("Catalog service ready redis=%s:%s db=%s", settings.redis_host, settings.redis_port, settings.mongo_db)
        try:
            yield
        finally:
            await redis.aclose()
            mongo.close()

    app = FastAPI(title="Viewer Catalog Service", lifespan=lifespan)
    app.include_router(viewer_router)
    app.include_router(internal_router)

    @app.get("/health")
    def health():
        return {"ok": True, "service": "content_catalog"}

    return app
