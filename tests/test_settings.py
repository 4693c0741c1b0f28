"""Tests for environment-driven settings."""

import pytest
from pydantic import ValidationError

from beststories.settings import Settings, load_settings


def test_defaults():
    settings = load_settings({})

    assert settings.base_url == "https://hacker-news.firebaseio.com/v0"
    assert settings.best_stories_cache_seconds == 120
    assert settings.item_cache_seconds == 600
    assert settings.max_concurrency == 10
    assert settings.max_items == 500
    assert settings.max_retries == 3
    assert settings.circuit_breaker_failures == 5
    assert settings.circuit_breaker_break_seconds == 30


def test_reads_environment_aliases():
    settings = load_settings(
        {
            "HN_BASE_URL": "http://localhost:9000/v0",
            "HN_MAX_CONCURRENCY": "4",
            "HN_RETRY_BASE_DELAY_SECONDS": "0.25",
            "HN_COALESCE_REQUESTS": "false",
            "UNRELATED": "ignored",
        }
    )

    assert settings.base_url == "http://localhost:9000/v0"
    assert settings.max_concurrency == 4
    assert settings.retry_base_delay_seconds == 0.25
    assert settings.coalesce_requests is False


@pytest.mark.parametrize(
    "name",
    [
        "HN_MAX_CONCURRENCY",
        "HN_BEST_STORIES_CACHE_SECONDS",
        "HN_ITEM_CACHE_SECONDS",
        "HN_HTTP_TIMEOUT_SECONDS",
        "HN_CIRCUIT_BREAKER_FAILURES",
        "HN_CIRCUIT_BREAKER_BREAK_SECONDS",
        "HN_MAX_ITEMS",
    ],
)
def test_rejects_non_positive_values(name):
    with pytest.raises(ValidationError):
        load_settings({name: "0"})


def test_field_names_work_in_code():
    settings = Settings(max_concurrency=2, log_level="debug")

    assert settings.max_concurrency == 2
    assert settings.debug is True


def test_cors_origins_are_split():
    settings = load_settings({"CORS_ORIGINS": "http://a.test, http://b.test,"})

    assert settings.cors_origin_list == ["http://a.test", "http://b.test"]
