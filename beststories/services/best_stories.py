"""
Best stories aggregation: top-N ids, bounded concurrent item fetch, rank by score.
"""

import asyncio

from loguru import logger

from beststories.services.cached_client import CachedFeedClient
from beststories.services.client import FeedClient
from beststories.services.models import FeedItem, RankedStory


class BestStoriesService:
    """
    Builds the ranked best-stories list.

    Usage:
        service = BestStoriesService(cached_client, max_concurrency=10)
        stories = await service.get_best_stories(20)

    Upstream failures never surface here: the client hands back an empty
    list or a missing item, and those are simply left out. Cancelling the
    calling task cancels every outstanding item fetch.
    """

    def __init__(
        self,
        client: CachedFeedClient | FeedClient,
        max_concurrency: int = 10,
    ):
        if max_concurrency < 1:
            raise ValueError("max_concurrency must be at least 1")
        self._client = client
        self.max_concurrency = max_concurrency

    async def get_best_stories(self, count: int) -> list[RankedStory]:
        """
        Return up to ``count`` stories sorted by score, highest first.

        Stories with equal scores keep their upstream order. The result can
        be shorter than ``count`` when items are missing or are not stories.

        Raises:
            ValueError: If count is not positive
        """
        if count < 1:
            raise ValueError("count must be greater than 0")

        ids = await self._client.fetch_id_list()
        if not ids:
            logger.warning("No best story ids returned from upstream")
            return []

        selected_ids = ids[:count]
        items = await self._fetch_items(selected_ids)

        stories = [
            RankedStory.from_item(item, item_id)
            for item_id, item in zip(selected_ids, items)
            if item is not None and item.is_story
        ]

        # sorted() is stable, so ties stay in upstream order
        stories = sorted(stories, key=lambda story: story.score, reverse=True)

        if len(stories) < len(selected_ids):
            logger.debug(
                f"Resolved {len(stories)} stories out of {len(selected_ids)} ids"
            )
        return stories

    async def _fetch_items(self, item_ids: list[int]) -> list[FeedItem | None]:
        """Fetch items concurrently; result i always belongs to item_ids[i]."""
        semaphore = asyncio.Semaphore(self.max_concurrency)
        slots: list[FeedItem | None] = [None] * len(item_ids)

        async def fetch_into_slot(index: int, item_id: int) -> None:
            async with semaphore:
                slots[index] = await self._client.fetch_item(item_id)

        tasks = [
            asyncio.ensure_future(fetch_into_slot(index, item_id))
            for index, item_id in enumerate(item_ids)
        ]
        try:
            await asyncio.gather(*tasks)
        except BaseException:
            for task in tasks:
                task.cancel()
            raise

        return slots
