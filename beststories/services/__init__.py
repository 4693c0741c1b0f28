"""
Service layer - fetching, caching and ranking stories from the upstream feed.

Provides:
- FeedClient: Raw upstream client, failures become "no data"
- ResiliencePolicy: Retry with backoff and jitter around a CircuitBreaker
- CacheManager: TTL cache with lazy expiry
- RequestDeduplicator: Coalesces concurrent misses on the same key
- CachedFeedClient: Read-through cache for the id list and items
- BestStoriesService: Bounded fan-out and ranking
"""

from beststories.services.errors import (
    ServiceError,
    TransientUpstreamError,
    PermanentUpstreamError,
    CircuitOpenError,
    RequestTimeoutError,
    RateLimitError,
    ServiceUnavailableError,
)
from beststories.services.models import FeedItem, RankedStory
from beststories.services.cache import CacheManager, CacheEntry, CacheResult
from beststories.services.circuit_breaker import (
    CircuitBreaker,
    CircuitBreakerConfig,
    CircuitState,
)
from beststories.services.retry import ResiliencePolicy, RetryConfig
from beststories.services.deduplicator import RequestDeduplicator
from beststories.services.client import FeedClient
from beststories.services.cached_client import CachedFeedClient
from beststories.services.best_stories import BestStoriesService

__all__ = [
    # Errors
    "ServiceError",
    "TransientUpstreamError",
    "PermanentUpstreamError",
    "CircuitOpenError",
    "RequestTimeoutError",
    "RateLimitError",
    "ServiceUnavailableError",
    # Models
    "FeedItem",
    "RankedStory",
    # Cache
    "CacheManager",
    "CacheEntry",
    "CacheResult",
    # Resilience
    "CircuitBreaker",
    "CircuitBreakerConfig",
    "CircuitState",
    "ResiliencePolicy",
    "RetryConfig",
    # Deduplicator
    "RequestDeduplicator",
    # Clients
    "FeedClient",
    "CachedFeedClient",
    # Aggregator
    "BestStoriesService",
]
