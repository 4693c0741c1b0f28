import os
from typing import Mapping

from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, Field

load_dotenv()


class Settings(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    # Upstream feed
    base_url: str = Field(
        default="https://hacker-news.firebaseio.com/v0", alias="HN_BASE_URL"
    )
    http_timeout_seconds: float = Field(
        default=5, gt=0, alias="HN_HTTP_TIMEOUT_SECONDS"
    )

    # Caching
    best_stories_cache_seconds: float = Field(
        default=120, gt=0, alias="HN_BEST_STORIES_CACHE_SECONDS"
    )
    item_cache_seconds: float = Field(default=600, gt=0, alias="HN_ITEM_CACHE_SECONDS")
    cache_max_size: int = Field(default=10_000, gt=0, alias="HN_CACHE_MAX_SIZE")
    coalesce_requests: bool = Field(default=True, alias="HN_COALESCE_REQUESTS")

    # Fan-out
    max_concurrency: int = Field(default=10, gt=0, alias="HN_MAX_CONCURRENCY")
    max_items: int = Field(default=500, gt=0, alias="HN_MAX_ITEMS")

    # Retry
    max_retries: int = Field(default=3, ge=0, alias="HN_MAX_RETRIES")
    retry_base_delay_seconds: float = Field(
        default=0.5, ge=0, alias="HN_RETRY_BASE_DELAY_SECONDS"
    )
    retry_jitter_max_milliseconds: int = Field(
        default=250, ge=0, alias="HN_RETRY_JITTER_MAX_MILLISECONDS"
    )

    # Circuit breaker
    circuit_breaker_failures: int = Field(
        default=5, gt=0, alias="HN_CIRCUIT_BREAKER_FAILURES"
    )
    circuit_breaker_break_seconds: float = Field(
        default=30, gt=0, alias="HN_CIRCUIT_BREAKER_BREAK_SECONDS"
    )

    # API server
    api_host: str = Field(default="0.0.0.0", alias="API_HOST")
    api_port: int = Field(default=8000, gt=0, alias="API_PORT")
    cors_origins: str = Field(
        default="https://localhost:7241,http://localhost:5266,http://localhost:5000",
        alias="CORS_ORIGINS",
    )

    # Logging
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    @property
    def cors_origin_list(self) -> list[str]:
        return [o.strip() for o in self.cors_origins.split(",") if o.strip()]

    @property
    def debug(self) -> bool:
        return self.log_level.upper() == "DEBUG"


def load_settings(environ: Mapping[str, str] | None = None) -> Settings:
    """Build settings from environment variables (including a loaded .env)."""
    return Settings.model_validate(dict(os.environ if environ is None else environ))


global_settings = load_settings()
