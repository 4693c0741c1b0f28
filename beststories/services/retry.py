"""
ResiliencePolicy - Retry with exponential backoff and jitter around a circuit breaker.

Retry is the outer layer and the breaker the inner one: every single attempt
goes through the breaker, so the circuit can open halfway through a retry
sequence. When that happens the remaining retries are skipped and the caller
gets CircuitOpenError.
"""

import asyncio
import random
from dataclasses import dataclass
from typing import Awaitable, Callable, TypeVar

from loguru import logger

from beststories.services.circuit_breaker import CircuitBreaker
from beststories.services.errors import TransientUpstreamError

T = TypeVar("T")


@dataclass
class RetryConfig:
    """Configuration for retry backoff."""

    max_retries: int = 3  # Retries after the first attempt
    base_delay_seconds: float = 0.5
    jitter_max_milliseconds: int = 250


class ResiliencePolicy:
    """
    Runs an upstream attempt with retries, each attempt guarded by the breaker.

    Usage:
        policy = ResiliencePolicy(CircuitBreaker("hacker_news"), RetryConfig())
        data = await policy.execute(lambda: send_request(url))

    Only TransientUpstreamError is retried. After attempt k fails the policy
    sleeps ``base_delay * 2**(k-1)`` seconds plus a uniform jitter of up to
    ``jitter_max_milliseconds``.
    """

    def __init__(
        self,
        breaker: CircuitBreaker,
        config: RetryConfig | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        rng: random.Random | None = None,
    ):
        self.breaker = breaker
        self.config = config or RetryConfig()
        self._sleep = sleep
        self._rng = rng or random.Random()

    @property
    def max_attempts(self) -> int:
        return self.config.max_retries + 1

    def delay_for(self, attempt: int) -> float:
        """Seconds to wait after the given (1-based) attempt has failed."""
        exponential = self.config.base_delay_seconds * 2 ** (attempt - 1)
        jitter_ms = self._rng.randint(0, self.config.jitter_max_milliseconds)
        return exponential + jitter_ms / 1000

    async def execute(self, request_fn: Callable[[], Awaitable[T]]) -> T:
        """
        Execute request_fn under the retry and circuit breaker policy.

        Raises:
            CircuitOpenError: If the breaker is (or becomes) open
            TransientUpstreamError: If every attempt failed transiently
            ServiceError: Non-transient failures, raised on the first attempt
        """
        attempt = 1
        while True:
            try:
                return await self.breaker.call(request_fn)
            except TransientUpstreamError as e:
                if attempt >= self.max_attempts:
                    logger.warning(
                        f"Giving up on {self.breaker.service_id} after "
                        f"{attempt} attempts: {e}"
                    )
                    raise

                delay = self.delay_for(attempt)
                logger.debug(
                    f"Transient failure from {self.breaker.service_id} "
                    f"(attempt {attempt}/{self.max_attempts}), "
                    f"retrying in {delay:.3f}s: {e}"
                )
                await self._sleep(delay)
                attempt += 1
