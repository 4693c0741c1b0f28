"""
CachedFeedClient - Read-through caching in front of FeedClient.

The id list and the individual items live in two separate caches with their
own TTLs. Items are reused across overlapping requests far more than the list
itself, so they are usually kept longer.
"""

from datetime import timedelta

from loguru import logger

from beststories.services.cache import CacheManager
from beststories.services.client import FeedClient
from beststories.services.models import FeedItem

BEST_STORIES_CACHE_KEY = "beststories"


def item_cache_key(item_id: int) -> str:
    return f"item:{item_id}"


class CachedFeedClient:
    """
    Same interface as FeedClient, answered from cache when possible.

    Empty id lists and missing items are passed through without being cached.
    """

    def __init__(
        self,
        inner: FeedClient,
        list_cache: CacheManager,
        item_cache: CacheManager,
        list_ttl: timedelta = timedelta(seconds=120),
        item_ttl: timedelta = timedelta(seconds=600),
    ):
        self._inner = inner
        self.list_cache = list_cache
        self.item_cache = item_cache
        self._list_ttl = list_ttl
        self._item_ttl = item_ttl

    async def fetch_id_list(self) -> list[int]:
        async def fetch() -> list[int]:
            ids = await self._inner.fetch_id_list()
            if ids:
                logger.debug(f"Caching {len(ids)} best story ids")
            return ids

        return await self.list_cache.get_or_populate(
            BEST_STORIES_CACHE_KEY,
            fetch,
            ttl=self._list_ttl,
            should_cache=lambda ids: len(ids) > 0,
        )

    async def fetch_item(self, item_id: int) -> FeedItem | None:
        return await self.item_cache.get_or_populate(
            item_cache_key(item_id),
            lambda: self._inner.fetch_item(item_id),
            ttl=self._item_ttl,
            should_cache=lambda item: item is not None,
        )

    async def close(self) -> None:
        await self._inner.close()
