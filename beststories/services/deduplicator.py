"""
RequestDeduplicator - Coalesces concurrent requests for the same key.

When multiple callers request the same resource simultaneously,
only one actual request is made and the result is shared.
"""

import asyncio
from typing import Any, Awaitable, Callable, TypeVar

from loguru import logger

T = TypeVar("T")


class _Flight:
    """An in-flight request and the number of callers waiting on it."""

    def __init__(self, task: "asyncio.Task[Any]"):
        self.task = task
        self.waiters = 0
        self.closed = False


class RequestDeduplicator:
    """
    Deduplicates concurrent async requests.

    When multiple coroutines request the same key simultaneously,
    only one actual request is made. All callers await the same result.

    A caller that is cancelled stops waiting without cancelling the shared
    request, unless it was the last one waiting; then the request is
    cancelled too and removed at once, so a later caller for the same key
    starts a fresh request. A caller whose shared request is cancelled
    while the caller itself is not being cancelled starts over.

    Usage:
        dedup = RequestDeduplicator()

        async def fetch_item(item_id: int):
            return await dedup.dedupe(
                key=f"item:{item_id}",
                request_fn=lambda: client.fetch_item(item_id),
            )
    """

    def __init__(self, debug: bool = False):
        self._in_flight: dict[str, _Flight] = {}
        self._debug = debug
        self._stats = DeduplicatorStats()

    async def dedupe(
        self,
        key: str,
        request_fn: Callable[[], Awaitable[T]],
    ) -> T:
        """
        Execute request with deduplication.

        If a request with the same key is already in flight,
        wait for and return its result instead of making a new request.

        Args:
            key: Unique identifier for this request
            request_fn: Async function to execute if no duplicate exists

        Returns:
            Result from request_fn (either fresh or from in-flight request)
        """
        while True:
            flight = self._in_flight.get(key)
            if flight is not None:
                self._stats.deduplicated += 1
                self._log(f"DEDUPE: Waiting for in-flight request: {key}")
            else:
                flight = self._start(key, request_fn)

            flight.waiters += 1
            try:
                return await asyncio.shield(flight.task)
            except asyncio.CancelledError:
                current = asyncio.current_task()
                if flight.closed or (current is not None and current.cancelling()):
                    if flight.waiters == 1 and not flight.task.done():
                        # Unpublish first so later callers start a fresh request
                        self._forget(key, flight)
                        flight.task.cancel()
                        self._log(f"CANCEL: Last waiter left, request cancelled: {key}")
                    raise
                # The shared request was cancelled under us, not this caller
                self._log(f"RETRY: Shared request was cancelled: {key}")
            finally:
                flight.waiters -= 1

    def _start(self, key: str, request_fn: Callable[[], Awaitable[T]]) -> _Flight:
        self._stats.total += 1
        self._log(f"NEW: Starting request: {key}")
        flight = _Flight(asyncio.ensure_future(request_fn()))
        self._in_flight[key] = flight
        flight.task.add_done_callback(lambda _: self._forget(key, flight))
        return flight

    def _forget(self, key: str, flight: _Flight) -> None:
        if self._in_flight.get(key) is flight:
            del self._in_flight[key]
            self._log(f"DONE: Request finished: {key}")

    async def cancel_all(self) -> int:
        """Cancel all in-flight requests. Their waiters are cancelled too."""
        flights = list(self._in_flight.values())
        for flight in flights:
            flight.closed = True
            flight.task.cancel()
        self._in_flight.clear()
        if flights:
            self._log(f"CANCEL_ALL: {len(flights)} requests cancelled")
        return len(flights)

    def get_in_flight_count(self) -> int:
        """Get number of in-flight requests."""
        return len(self._in_flight)

    def get_stats(self) -> "DeduplicatorStats":
        """Get deduplication statistics."""
        self._stats.in_flight = len(self._in_flight)
        return self._stats

    def _log(self, message: str) -> None:
        """Log debug message if debug mode is enabled."""
        if self._debug:
            logger.debug(f"[Deduplicator] {message}")


class DeduplicatorStats:
    """Statistics for request deduplication."""

    def __init__(self):
        self.total: int = 0  # Total unique requests made
        self.deduplicated: int = 0  # Requests that were deduplicated
        self.in_flight: int = 0  # Current in-flight requests

    @property
    def dedup_rate(self) -> float:
        """Calculate deduplication rate."""
        total = self.total + self.deduplicated
        if total == 0:
            return 0.0
        return self.deduplicated / total

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "total_requests": self.total,
            "deduplicated": self.deduplicated,
            "in_flight": self.in_flight,
            "dedup_rate": f"{self.dedup_rate:.2%}",
        }
