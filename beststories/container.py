"""
Explicit wiring of the best-stories pipeline.

breaker -> resilience policy -> feed client -> caches -> aggregator.
The breaker is created here once and shared by every request.
"""

from dataclasses import dataclass
from datetime import timedelta
from typing import Any

import httpx
from loguru import logger

from beststories.services.best_stories import BestStoriesService
from beststories.services.cache import CacheManager
from beststories.services.cached_client import CachedFeedClient
from beststories.services.circuit_breaker import CircuitBreaker, CircuitBreakerConfig
from beststories.services.client import FeedClient
from beststories.services.deduplicator import RequestDeduplicator
from beststories.services.retry import ResiliencePolicy, RetryConfig
from beststories.settings import Settings


@dataclass
class Container:
    """Everything one process needs to serve best stories."""

    settings: Settings
    breaker: CircuitBreaker
    policy: ResiliencePolicy
    feed_client: FeedClient
    list_cache: CacheManager
    item_cache: CacheManager
    deduplicator: RequestDeduplicator | None
    cached_client: CachedFeedClient
    service: BestStoriesService

    def get_health_status(self) -> dict[str, Any]:
        return {
            "circuit_breaker": self.breaker.get_status(),
            "cache": {
                "best_stories": self.list_cache.get_stats().to_dict(),
                "items": self.item_cache.get_stats().to_dict(),
            },
            "deduplicator": (
                self.deduplicator.get_stats().to_dict() if self.deduplicator else None
            ),
        }

    async def close(self) -> None:
        if self.deduplicator:
            await self.deduplicator.cancel_all()
        await self.feed_client.close()


def build_container(
    settings: Settings,
    http_client: httpx.AsyncClient | None = None,
) -> Container:
    """
    Build the pipeline from settings.

    Args:
        settings: Application settings
        http_client: Pre-built httpx client (tests pass one with a mock transport)
    """
    breaker = CircuitBreaker(
        FeedClient.SERVICE_ID,
        CircuitBreakerConfig(
            failure_threshold=settings.circuit_breaker_failures,
            reset_timeout=timedelta(seconds=settings.circuit_breaker_break_seconds),
        ),
    )
    policy = ResiliencePolicy(
        breaker,
        RetryConfig(
            max_retries=settings.max_retries,
            base_delay_seconds=settings.retry_base_delay_seconds,
            jitter_max_milliseconds=settings.retry_jitter_max_milliseconds,
        ),
    )
    feed_client = FeedClient(
        policy,
        base_url=settings.base_url,
        timeout=settings.http_timeout_seconds,
        http_client=http_client,
    )

    deduplicator = (
        RequestDeduplicator(debug=settings.debug) if settings.coalesce_requests else None
    )
    list_cache = CacheManager(
        name="best_stories",
        max_size=1,
        default_ttl=timedelta(seconds=settings.best_stories_cache_seconds),
        deduplicator=deduplicator,
        debug=settings.debug,
    )
    item_cache = CacheManager(
        name="items",
        max_size=settings.cache_max_size,
        default_ttl=timedelta(seconds=settings.item_cache_seconds),
        deduplicator=deduplicator,
        debug=settings.debug,
    )
    cached_client = CachedFeedClient(
        feed_client,
        list_cache,
        item_cache,
        list_ttl=timedelta(seconds=settings.best_stories_cache_seconds),
        item_ttl=timedelta(seconds=settings.item_cache_seconds),
    )
    service = BestStoriesService(cached_client, max_concurrency=settings.max_concurrency)

    logger.info(
        f"Best stories pipeline ready: upstream={settings.base_url}, "
        f"max_concurrency={settings.max_concurrency}, "
        f"max_retries={settings.max_retries}, "
        f"breaker={settings.circuit_breaker_failures} failures/"
        f"{settings.circuit_breaker_break_seconds}s"
    )

    return Container(
        settings=settings,
        breaker=breaker,
        policy=policy,
        feed_client=feed_client,
        list_cache=list_cache,
        item_cache=item_cache,
        deduplicator=deduplicator,
        cached_client=cached_client,
        service=service,
    )
