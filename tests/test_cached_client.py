"""Tests for read-through caching of the id list and items."""

from datetime import timedelta
from unittest.mock import AsyncMock

import pytest

from beststories.services.cache import CacheManager
from beststories.services.cached_client import CachedFeedClient, item_cache_key
from beststories.services.client import FeedClient
from beststories.services.models import FeedItem


def story(item_id: int, title: str = "t", score: int = 10) -> FeedItem:
    return FeedItem(id=item_id, title=title, score=score, type="story")


@pytest.fixture
def inner() -> AsyncMock:
    mock = AsyncMock(spec=FeedClient)
    mock.fetch_id_list.return_value = [1, 2, 3]
    mock.fetch_item.side_effect = lambda item_id: story(item_id)
    return mock


@pytest.fixture
def cached(inner, clock) -> CachedFeedClient:
    return CachedFeedClient(
        inner,
        list_cache=CacheManager(name="best_stories", clock=clock),
        item_cache=CacheManager(name="items", clock=clock),
        list_ttl=timedelta(seconds=120),
        item_ttl=timedelta(seconds=600),
    )


class TestIdListCache:
    @pytest.mark.asyncio
    async def test_caches_ids(self, cached, inner):
        first = await cached.fetch_id_list()
        second = await cached.fetch_id_list()

        assert first == second == [1, 2, 3]
        inner.fetch_id_list.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_empty_list_is_not_cached(self, cached, inner):
        inner.fetch_id_list.return_value = []

        assert await cached.fetch_id_list() == []
        assert await cached.fetch_id_list() == []

        assert inner.fetch_id_list.await_count == 2

    @pytest.mark.asyncio
    async def test_list_expires_before_items(self, cached, inner, clock):
        await cached.fetch_id_list()
        await cached.fetch_item(1)

        clock.advance(121)
        await cached.fetch_id_list()
        await cached.fetch_item(1)

        assert inner.fetch_id_list.await_count == 2
        inner.fetch_item.assert_awaited_once_with(1)


class TestItemCache:
    @pytest.mark.asyncio
    async def test_caches_item(self, cached, inner):
        first = await cached.fetch_item(1)
        second = await cached.fetch_item(1)

        assert first is not None
        assert first.title == second.title
        inner.fetch_item.assert_awaited_once_with(1)

    @pytest.mark.asyncio
    async def test_items_are_keyed_by_id(self, cached, inner):
        await cached.fetch_item(1)
        await cached.fetch_item(2)

        assert inner.fetch_item.await_count == 2

    @pytest.mark.asyncio
    async def test_missing_item_is_not_cached(self, cached, inner):
        inner.fetch_item.side_effect = None
        inner.fetch_item.return_value = None

        assert await cached.fetch_item(5) is None
        assert await cached.fetch_item(5) is None

        assert inner.fetch_item.await_count == 2

    @pytest.mark.asyncio
    async def test_uses_cache_when_available(self, cached, inner):
        await cached.item_cache.set(item_cache_key(42), story(42, title="cached", score=99))

        result = await cached.fetch_item(42)

        assert result.title == "cached"
        inner.fetch_item.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_item_refetched_after_ttl(self, cached, inner, clock):
        await cached.fetch_item(1)
        clock.advance(601)
        await cached.fetch_item(1)

        assert inner.fetch_item.await_count == 2
