import os
from dataclasses import dataclass
from typing import Mapping, Optional

from dotenv import load_dotenv

from content_catalog.core.exceptions import ConfigError

_LOG_LEVELS = ("critical", "error", "warning", "info", "debug", "trace")


@dataclass(frozen=True)
class Settings:
    redis_host: str = "localhost"
    redis_port: int = 6379
    redis_db: int = 0
    redis_socket_timeout_sec: float = 2.0

    mongo_uri: str = "mongodb://localhost:27017"
    mongo_db: str = "content"

    feed_cache_ttl_seconds: int = 60
    series_cache_ttl_seconds: int = 300
    related_cache_ttl_seconds: int = 300
    categories_cache_ttl_seconds: int = 600
    cache_key_prefix: str = "catalog"
    cache_schema_version: int = 1
    cache_timeout_sec: float = 0.25

    trending_sorted_set_key: str = "catalog:trending"
    trending_updated_hash_key: str = "catalog:trending:updated"
    ratings_hash_key: str = "catalog:ratings"
    trending_half_life_hours: float = 168.0

    catalog_event_stream_key: str = "catalog:events"
    catalog_event_stream_maxlen: int = 100_000
    metrics_dedup_ttl_seconds: int = 86_400

    service_auth_token: Optional[str] = None

    host: str = "0.0.0.0"
    port: int = 4600
    reload: bool = False
    log_level: str = "info"


class _Reader:
    def __init__(self, environ: Mapping[str, str]) -> None:
        self._environ = environ
        self.errors: list[str] = []

    def text(self, name: str, default: str) -> str:
        value = self._environ.get(name)
        if value is None or not value.strip():
            return default
        return value.strip()

    def integer(self, name: str, default: int, minimum: Optional[int] = None) -> int:
        raw = self._environ.get(name)
        if raw is None or not raw.strip():
            return default
        try:
            value = int(raw)
        except ValueError:
            self.errors.append(f"{name}: expected an integer, got {raw!r}")
            return default
        if minimum is not None and value < minimum:
            self.errors.append(f"{name}: must be >= {minimum}, got {value}")
        return value

    def number(self, name: str, default: float, minimum: Optional[float] = None) -> float:
        raw = self._environ.get(name)
        if raw is None or not raw.strip():
            return default
        try:
            value = float(raw)
        except ValueError:
            self.errors.append(f"{name}: expected a number, got {raw!r}")
            return default
        if minimum is not None and value < minimum:
            self.errors.append(f"{name}: must be >= {minimum}, got {value}")
        return value

    def flag(self, name: str, default: bool) -> bool:
        raw = self._environ.get(name)
        if raw is None or not raw.strip():
            return default
        return raw.strip().lower() in ("1", "true", "yes", "on")


def load_settings(environ: Optional[Mapping[str, str]] = None) -> Settings:
    """Build a Settings value from the environment.

    When ``environ`` is omitted the process environment is used, after
    ``.env`` has been loaded. Every invalid key is reported in one ConfigError.
    """
    if environ is None:
        load_dotenv()
        environ = os.environ

    env = _Reader(environ)
    token = environ.get("SERVICE_AUTH_TOKEN")
    log_level = env.text("LOG_LEVEL", "info").lower()
    if log_level not in _LOG_LEVELS:
        env.errors.append(f"LOG_LEVEL: must be one of {', '.join(_LOG_LEVELS)}, got {log_level!r}")

    settings = Settings(
        redis_host=env.text("REDIS_HOST", "localhost"),
        redis_port=env.integer("REDIS_PORT", 6379, minimum=1),
        redis_db=env.integer("REDIS_DB", 0, minimum=0),
        redis_socket_timeout_sec=env.number("REDIS_SOCKET_TIMEOUT_SEC", 2.0, minimum=0),
        mongo_uri=env.text("MONGO_URI", "mongodb://localhost:27017"),
        mongo_db=env.text("MONGO_DB", "content"),
        feed_cache_ttl_seconds=env.integer("FEED_CACHE_TTL_SECONDS", 60, minimum=1),
        series_cache_ttl_seconds=env.integer("SERIES_CACHE_TTL_SECONDS", 300, minimum=1),
        related_cache_ttl_seconds=env.integer("RELATED_CACHE_TTL_SECONDS", 300, minimum=1),
        categories_cache_ttl_seconds=env.integer("CATEGORIES_CACHE_TTL_SECONDS", 600, minimum=1),
        cache_key_prefix=env.text("CACHE_KEY_PREFIX", "catalog"),
        cache_schema_version=env.integer("CACHE_SCHEMA_VERSION", 1, minimum=1),
        cache_timeout_sec=env.number("CACHE_TIMEOUT_SEC", 0.25, minimum=0),
        trending_sorted_set_key=env.text("TRENDING_SORTED_SET_KEY", "catalog:trending"),
        trending_updated_hash_key=env.text("TRENDING_UPDATED_HASH_KEY", "catalog:trending:updated"),
        ratings_hash_key=env.text("RATINGS_HASH_KEY", "catalog:ratings"),
        trending_half_life_hours=env.number("TRENDING_HALF_LIFE_HOURS", 168.0, minimum=0),
        catalog_event_stream_key=env.text("CATALOG_EVENT_STREAM_KEY", "catalog:events"),
        catalog_event_stream_maxlen=env.integer("CATALOG_EVENT_STREAM_MAXLEN", 100_000, minimum=0),
        metrics_dedup_ttl_seconds=env.integer("METRICS_DEDUP_TTL_SECONDS", 86_400, minimum=1),
        service_auth_token=token.strip() if token and token.strip() else None,
        host=env.text("HOST", "0.0.0.0"),
        port=env.integer("PORT", 4600, minimum=1),
        reload=env.flag("RELOAD", False),
        log_level=log_level,
    )

    if env.errors:
        raise ConfigError("Catalog service configuration invalid: " + "; ".join(env.errors))
    return settings
