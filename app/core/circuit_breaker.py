"""
Circuit Breaker Pattern Implementation

Protects outbound calls to the Fulfillment Service so that a dead upstream
fails fast instead of holding every webhook delivery for the full timeout.
Each client owns its own breaker; nothing is shared between processes.
Rejections that prove the upstream is alive (a 4xx answer to a bad payload)
can be excluded from the failure count with ``counts_as_failure``.
"""
import asyncio
import time
from enum import Enum
from typing import Awaitable, Callable, TypeVar
from dataclasses import dataclass

from app.core.logging import get_logger
from app.core.exceptions import CircuitBreakerOpenError

logger = get_logger(__name__)

T = TypeVar("T")


class CircuitState(Enum):
    """Circuit breaker states"""
    CLOSED = "closed"      # Normal operation, requests pass through
    OPEN = "open"          # Failing, requests blocked
    HALF_OPEN = "half_open"  # Testing if service recovered


@dataclass
class CircuitBreakerConfig:
    """Configuration for circuit breaker"""
    failure_threshold: int = 5         # Failures before opening
    success_threshold: int = 2          # Successes in half-open to close
    timeout_seconds: float = 30.0       # Time before trying half-open
    half_open_max_calls: int = 3        # Max calls in half-open state


@dataclass
class CircuitBreakerState:
    """State tracking for circuit breaker"""
    state: CircuitState = CircuitState.CLOSED
    failure_count: int = 0
    success_count: int = 0
    last_failure_time: float = 0.0
    half_open_calls: int = 0


class CircuitBreaker:
    """
    Circuit breaker for external service protection.

    States:
    - CLOSED: Normal operation, tracking failures
    - OPEN: Service is failing, block all requests
    - HALF_OPEN: Testing if service recovered
    """

    def __init__(
        self,
        service_name: str,
        config: CircuitBreakerConfig | None = None,
        counts_as_failure: Callable[[Exception], bool] | None = None,
    ):
        self.service_name = service_name
        self.config = config or CircuitBreakerConfig()
        self._counts_as_failure = counts_as_failure or (lambda exc: True)
        self._state = CircuitBreakerState()

    @property
    def state(self) -> CircuitState:
        return self._state.state

    def _should_attempt_reset(self) -> bool:
        """Check if enough time passed to try half-open"""
        if self._state.state != CircuitState.OPEN:
            return False
        time_since_failure = time.monotonic() - self._state.last_failure_time
        return time_since_failure >= self.config.timeout_seconds

    def _transition_to(self, new_state: CircuitState) -> None:
        old_state = self._state.state
        self._state.state = new_state

        if new_state == CircuitState.HALF_OPEN:
            self._state.half_open_calls = 0
            self._state.success_count = 0

        if new_state == CircuitState.CLOSED:
            self._state.failure_count = 0
            self._state.success_count = 0

        logger.info(
            f"Circuit breaker '{self.service_name}' transitioned",
            extra_data={
                "service": self.service_name,
                "old_state": old_state.value,
                "new_state": new_state.value
            }
        )

    def record_success(self) -> None:
        if self._state.state == CircuitState.HALF_OPEN:
            self._state.success_count += 1
            if self._state.success_count >= self.config.success_threshold:
                self._transition_to(CircuitState.CLOSED)
        elif self._state.state == CircuitState.CLOSED:
            self._state.failure_count = 0

    def record_failure(self, error: Exception | None = None) -> None:
        self._state.failure_count += 1
        self._state.last_failure_time = time.monotonic()

        logger.warning(
            f"Circuit breaker '{self.service_name}' recorded failure",
            extra_data={
                "service": self.service_name,
                "failure_count": self._state.failure_count,
                "threshold": self.config.failure_threshold,
                "error": str(error) if error else None
            }
        )

        if self._state.state == CircuitState.HALF_OPEN:
            # Any failure in half-open goes back to open
            self._transition_to(CircuitState.OPEN)
        elif self._state.failure_count >= self.config.failure_threshold:
            self._transition_to(CircuitState.OPEN)

    def can_execute(self) -> bool:
        """Check if a request can be executed"""
        if self._state.state == CircuitState.CLOSED:
            return True

        if self._state.state == CircuitState.OPEN:
            if self._should_attempt_reset():
                self._transition_to(CircuitState.HALF_OPEN)
                self._state.half_open_calls += 1
                return True
            return False

        if self._state.half_open_calls < self.config.half_open_max_calls:
            self._state.half_open_calls += 1
            return True
        return False

    def get_retry_after(self) -> float:
        """Get seconds until circuit might close"""
        if self._state.state != CircuitState.OPEN:
            return 0.0
        time_since_failure = time.monotonic() - self._state.last_failure_time
        return max(0.0, self.config.timeout_seconds - time_since_failure)

    async def execute(self, func: Callable[[], Awaitable[T]]) -> T:
        """
        Run an async call with circuit breaker protection.

        Raises:
            CircuitBreakerOpenError: If circuit is open
        """
        if not self.can_execute():
            raise CircuitBreakerOpenError(self.service_name, self.get_retry_after())

        try:
            result = await func()
        except asyncio.CancelledError:
            raise
        except Exception as e:
            if self._counts_as_failure(e):
                self.record_failure(e)
            else:
                self.record_success()
            raise

        self.record_success()
        return result
