import pytest

from content_catalog.config import load_settings
from content_catalog.core.exceptions import ConfigError


def test_defaults():
    settings = load_settings({})

    assert settings.feed_cache_ttl_seconds == 60
    assert settings.trending_sorted_set_key == "catalog:trending"
    assert settings.service_auth_token is None


def test_values_are_read_from_environment():
    settings = load_settings(
        {
            "FEED_CACHE_TTL_SECONDS": "15",
            "RELATED_CACHE_TTL_SECONDS": "1",
            "SERVICE_AUTH_TOKEN": "  secret ",
            "RELOAD": "true",
            "LOG_LEVEL": "DEBUG",
        }
    )

    assert settings.feed_cache_ttl_seconds == 15
    assert settings.related_cache_ttl_seconds == 1
    assert settings.service_auth_token == "secret"
    assert settings.reload is True
    assert settings.log_level == "debug"


def test_every_invalid_key_is_reported():
    with pytest.raises(ConfigError) as info:
        load_settings({"FEED_CACHE_TTL_SECONDS": "soon", "SERIES_CACHE_TTL_SECONDS": "-5", "LOG_LEVEL": "loud"})

    message = str(info.value)
    assert "FEED_CACHE_TTL_SECONDS" in message
    assert "SERIES_CACHE_TTL_SECONDS" in message
    assert "LOG_LEVEL" in message


@pytest.mark.parametrize(
    "name",
    ["FEED_CACHE_TTL_SECONDS", "SERIES_CACHE_TTL_SECONDS", "RELATED_CACHE_TTL_SECONDS", "CATEGORIES_CACHE_TTL_SECONDS"],
)
def test_zero_endpoint_ttl_is_rejected(name):
    """0 means "never expire" at the cache adapter, so it cannot be used to turn caching off."""
    with pytest.raises(ConfigError) as info:
        load_settings({name: "0"})

    assert f"{name}: must be >= 1" in str(info.value)
