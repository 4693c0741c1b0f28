"""Shared fixtures for the best stories tests."""

from datetime import datetime, timedelta

import pytest

from beststories.services.circuit_breaker import CircuitBreaker, CircuitBreakerConfig
from beststories.services.retry import ResiliencePolicy, RetryConfig


class FakeClock:
    """Manually advanced replacement for datetime.now."""

    def __init__(self, start: datetime | None = None):
        self.now = start or datetime(2024, 1, 1, 12, 0, 0)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


class RecordingSleep:
    """Async sleep stand-in that records requested delays and returns at once."""

    def __init__(self):
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def recording_sleep() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture
def make_policy(clock, recording_sleep):
    """Build a ResiliencePolicy with a fake clock and no real waiting."""

    def _make(
        max_retries: int = 3,
        failure_threshold: int = 10,
        break_seconds: float = 30,
        base_delay: float = 0.0,
        jitter_ms: int = 0,
    ) -> ResiliencePolicy:
        breaker = CircuitBreaker(
            "test_feed",
            CircuitBreakerConfig(
                failure_threshold=failure_threshold,
                reset_timeout=timedelta(seconds=break_seconds),
            ),
            clock=clock,
        )
        return ResiliencePolicy(
            breaker,
            RetryConfig(
                max_retries=max_retries,
                base_delay_seconds=base_delay,
                jitter_max_milliseconds=jitter_ms,
            ),
            sleep=recording_sleep,
        )

    return _make
