"""
CircuitBreaker - Stops calling the upstream feed while it keeps failing.

States:
- CLOSED: Normal operation, requests pass through
- OPEN: Upstream is failing, requests are blocked
- HALF_OPEN: A single trial request is testing recovery

Transitions:
- CLOSED → OPEN: When failure_threshold consecutive failures are recorded
- OPEN → HALF_OPEN: After reset_timeout expires
- HALF_OPEN → CLOSED: On a successful trial
- HALF_OPEN → OPEN: On a failed trial

One breaker is shared by every caller in the process. All state changes
happen in synchronous methods, so on a single event loop each transition
is atomic with respect to other coroutines.
"""

import asyncio
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Awaitable, Callable, TypeVar

from loguru import logger

from beststories.services.errors import CircuitOpenError, TransientUpstreamError

T = TypeVar("T")


class CircuitState(str, Enum):
    """Circuit breaker states."""

    CLOSED = "CLOSED"  # Normal operation
    OPEN = "OPEN"  # Blocking requests
    HALF_OPEN = "HALF_OPEN"  # Testing recovery


@dataclass
class CircuitBreakerConfig:
    """Configuration for circuit breaker."""

    failure_threshold: int = 5  # Consecutive failures before opening
    reset_timeout: timedelta = timedelta(seconds=30)  # Time before half-open


class CircuitBreaker:
    """
    Circuit breaker guarding every upstream attempt.

    Usage:
        cb = CircuitBreaker("hacker_news")

        result = await cb.call(lambda: send_request())

    ``call`` raises CircuitOpenError without running the request while the
    circuit is open. Only TransientUpstreamError counts as a failure; any
    other outcome means upstream answered and counts as a success.
    """

    def __init__(
        self,
        service_id: str,
        config: CircuitBreakerConfig | None = None,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.service_id = service_id
        self.config = config or CircuitBreakerConfig()
        self._clock = clock

        self._state = CircuitState.CLOSED
        self._failure_count = 0
        self._last_failure_time: datetime | None = None
        self._opened_at: datetime | None = None
        self._half_open_requests = 0

    @property
    def state(self) -> CircuitState:
        """Get current state, checking for automatic transitions."""
        if self._state == CircuitState.OPEN:
            # Check if we should transition to half-open
            if (
                self._opened_at
                and self._clock() >= self._opened_at + self.config.reset_timeout
            ):
                self._state = CircuitState.HALF_OPEN
                self._half_open_requests = 0
                logger.info(
                    f"Circuit breaker '{self.service_id}' transitioned to HALF_OPEN"
                )
        return self._state

    @property
    def failure_count(self) -> int:
        return self._failure_count

    def can_request(self) -> bool:
        """Check if a request would be allowed right now."""
        current_state = self.state

        if current_state == CircuitState.CLOSED:
            return True

        if current_state == CircuitState.OPEN:
            return False

        return self._half_open_requests == 0

    def try_acquire(self) -> bool:
        """Claim permission for one request, reserving a half-open trial slot."""
        if not self.can_request():
            return False
        if self._state == CircuitState.HALF_OPEN:
            self._half_open_requests += 1
        return True

    async def call(self, request_fn: Callable[[], Awaitable[T]]) -> T:
        """
        Run one upstream attempt through the breaker.

        Raises:
            CircuitOpenError: If the circuit is open or the half-open trial
                is already taken
        """
        if not self.try_acquire():
            raise CircuitOpenError(self.service_id, self.get_time_until_reset() or 0)

        try:
            result = await request_fn()
        except TransientUpstreamError:
            self.record_failure()
            raise
        except asyncio.CancelledError:
            self.release()
            raise
        except Exception:
            self.record_success()
            raise

        self.record_success()
        return result

    def record_success(self) -> None:
        """Record a successful request."""
        if self._state == CircuitState.HALF_OPEN:
            self._close()
        elif self._state == CircuitState.CLOSED:
            # Reset failure count on success
            self._failure_count = 0

    def record_failure(self) -> None:
        """Record a failed request."""
        self._failure_count += 1
        self._last_failure_time = self._clock()

        if self._state == CircuitState.HALF_OPEN:
            # Any failure in half-open reopens the circuit
            self._open()
        elif self._state == CircuitState.CLOSED:
            if self._failure_count >= self.config.failure_threshold:
                self._open()

    def release(self) -> None:
        """Give back a half-open trial slot for an attempt that never finished."""
        if self._state == CircuitState.HALF_OPEN and self._half_open_requests > 0:
            self._half_open_requests -= 1

    def _open(self) -> None:
        """Transition to OPEN state."""
        self._state = CircuitState.OPEN
        self._opened_at = self._clock()
        self._half_open_requests = 0
        logger.warning(
            f"Circuit breaker '{self.service_id}' OPENED after {self._failure_count} failures"
        )

    def _close(self) -> None:
        """Transition to CLOSED state."""
        self._state = CircuitState.CLOSED
        self._failure_count = 0
        self._opened_at = None
        self._half_open_requests = 0
        logger.info(f"Circuit breaker '{self.service_id}' CLOSED (recovered)")

    def reset(self) -> None:
        """Manually reset the circuit breaker."""
        self._state = CircuitState.CLOSED
        self._failure_count = 0
        self._opened_at = None
        self._half_open_requests = 0
        self._last_failure_time = None
        logger.info(f"Circuit breaker '{self.service_id}' manually reset")

    def get_time_until_reset(self) -> float | None:
        """Get seconds until circuit transitions to half-open."""
        if self._state != CircuitState.OPEN or not self._opened_at:
            return None

        reset_at = self._opened_at + self.config.reset_timeout
        remaining = (reset_at - self._clock()).total_seconds()
        return max(0, remaining)

    def get_status(self) -> dict[str, Any]:
        """Get current status as dictionary."""
        return {
            "service_id": self.service_id,
            "state": self.state.value,
            "failure_count": self._failure_count,
            "last_failure": (
                self._last_failure_time.isoformat() if self._last_failure_time else None
            ),
            "opened_at": (self._opened_at.isoformat() if self._opened_at else None),
            "time_until_reset": self.get_time_until_reset(),
        }
