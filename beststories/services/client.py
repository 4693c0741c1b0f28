"""
FeedClient - Async HTTP client for the upstream best-stories feed.

Every HTTP attempt runs through the ResiliencePolicy (retry + circuit breaker).
Whatever still fails after that is logged and turned into "no data": an empty
id list or a missing item. Nothing but cancellation escapes this class.
"""

import json
from typing import Any

import httpx
from loguru import logger
from pydantic import ValidationError

from beststories.services.errors import (
    PermanentUpstreamError,
    RateLimitError,
    RequestTimeoutError,
    ServiceError,
    ServiceUnavailableError,
)
from beststories.services.models import FeedItem
from beststories.services.retry import ResiliencePolicy

DEFAULT_BASE_URL = "https://hacker-news.firebaseio.com/v0"


class FeedClient:
    """
    Raw client for the upstream feed API.

    Usage:
        policy = ResiliencePolicy(CircuitBreaker("hacker_news"))
        async with FeedClient(policy=policy) as client:
            ids = await client.fetch_id_list()
            item = await client.fetch_item(ids[0])
    """

    SERVICE_ID = "hacker_news"

    def __init__(
        self,
        policy: ResiliencePolicy,
        base_url: str = DEFAULT_BASE_URL,
        timeout: float = 5.0,
        http_client: httpx.AsyncClient | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self._policy = policy
        self._timeout = timeout

        # HTTP client (lazy initialization unless one is injected)
        self._http_client = http_client
        self._owns_http_client = http_client is None

    @property
    def service_id(self) -> str:
        return self.SERVICE_ID

    async def _get_http_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(
                timeout=httpx.Timeout(self._timeout),
                follow_redirects=True,
            )
        return self._http_client

    async def fetch_id_list(self) -> list[int]:
        """
        Fetch the ids of the current best stories, in upstream order.

        Returns:
            List of item ids, empty if the feed could not be read
        """
        try:
            data = await self._policy.execute(lambda: self._get_json("beststories.json"))
        except ServiceError as e:
            logger.warning(f"Failed to fetch best story ids: {e}")
            return []

        if data is None:
            return []

        if not isinstance(data, list) or not all(
            isinstance(i, int) and not isinstance(i, bool) for i in data
        ):
            logger.warning("Best story ids payload is not a list of integers")
            return []

        return data

    async def fetch_item(self, item_id: int) -> FeedItem | None:
        """
        Fetch a single item.

        Args:
            item_id: Upstream item id

        Returns:
            FeedItem, or None if it does not exist or could not be fetched
        """
        try:
            data = await self._policy.execute(
                lambda: self._get_json(f"item/{item_id}.json")
            )
        except ServiceError as e:
            logger.warning(f"Failed to fetch item {item_id}: {e}")
            return None

        if data is None:
            return None

        try:
            return FeedItem.model_validate(data)
        except ValidationError as e:
            logger.warning(f"Malformed payload for item {item_id}: {e}")
            return None

    async def _get_json(self, path: str) -> Any:
        """
        Execute one GET attempt and decode the JSON body.

        Returns None for 404. Raises a TransientUpstreamError subclass for
        timeouts, transport failures, 5xx and 429, PermanentUpstreamError
        for any other error status or an undecodable body.
        """
        client = await self._get_http_client()
        url = f"{self.base_url}/{path}"

        try:
            response = await client.get(url, timeout=self._timeout)
        except httpx.TimeoutException as e:
            raise RequestTimeoutError(self.service_id, self._timeout) from e
        except httpx.RequestError as e:
            raise ServiceUnavailableError(
                f"{type(e).__name__}: {e}", service_id=self.service_id
            ) from e

        status = response.status_code
        if status == 404:
            return None
        if status == 429:
            raise RateLimitError(self.service_id, _retry_after(response))
        if status >= 500:
            raise ServiceUnavailableError(
                f"HTTP {status}: {response.text[:200]}", service_id=self.service_id
            )
        if status >= 400:
            raise PermanentUpstreamError(
                f"HTTP {status}: {response.text[:200]}", service_id=self.service_id
            )

        try:
            return response.json()
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise PermanentUpstreamError(
                f"Invalid JSON from {url}: {e}", service_id=self.service_id
            ) from e

    async def close(self) -> None:
        """Close the HTTP client if this instance created it."""
        if self._http_client and self._owns_http_client:
            await self._http_client.aclose()
            self._http_client = None
        logger.debug("FeedClient closed")

    async def __aenter__(self) -> "FeedClient":
        """Async context manager entry."""
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        """Async context manager exit."""
        await self.close()


def _retry_after(response: httpx.Response) -> float | None:
    value = response.headers.get("Retry-After")
    if value is None:
        return None
    try:
        return float(value)
    except ValueError:
        return None
