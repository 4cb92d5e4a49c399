import hashlib
import json
from typing import Any, Mapping, Optional

from content_catalog.application.models import CategoryQuery, FeedQuery


def normalize_slug(slug: str) -> str:
    return slug.strip().lower()


def _normalize_text(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    value = value.strip()
    return value or None


class CacheKeyBuilder:
    """Deterministic cache keys: ``<prefix>:v<version>:<endpoint>:<md5 of params>``.

    The schema version is part of the namespace, so bumping it orphans every
    entry written with the old payload shape.
    """

    def __init__(self, prefix: str = "catalog", schema_version: int = 1) -> None:
        self._prefix = prefix
        self._schema_version = schema_version

    def build(self, endpoint: str, params: Mapping[str, Any]) -> str:
        normalized = {k: v for k, v in params.items() if v is not None}
        canonical = json.dumps(normalized, sort_keys=True, separators=(",", ":"), ensure_ascii=False)
        digest = hashlib.md5(canonical.encode("utf-8")).hexdigest()
        return f"{self._prefix}:v{self._schema_version}:{endpoint}:{digest}"

    def namespaced(self, suffix: str) -> str:
        return f"{self._prefix}:{suffix}"

    def feed(self, query: FeedQuery) -> str:
        tag = _normalize_text(query.tag)
        return self.build(
            "feed",
            {
                "limit": query.limit,
                "cursor": _normalize_text(query.cursor),
                "category_id": _normalize_text(query.category_id),
                "tag": tag.lower() if tag else None,
            },
        )

    def trending(self, limit: int) -> str:
        return self.build("trending", {"limit": limit})

    def series(self, slug: str) -> str:
        return self.build("series", {"slug": normalize_slug(slug)})

    def related(self, slug: str, limit: int) -> str:
        return self.build("related", {"slug": normalize_slug(slug), "limit": limit})

    def categories(self, query: CategoryQuery) -> str:
        return self.build("categories", {"limit": query.limit, "cursor": _normalize_text(query.cursor)})

    def episode(self, episode_id: str) -> str:
        return self.build("episode", {"id": episode_id.strip()})
