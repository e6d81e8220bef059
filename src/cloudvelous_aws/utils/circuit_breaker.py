"""Circuit breaker for AWS API calls.

This module provides a closed/open/half-open circuit breaker driven by a
``CircuitBreakerPolicy``. Failures are counted inside a sliding sampling
window; once the count reaches the threshold the circuit opens and calls are
rejected until the open duration has elapsed. The first call after that is a
trial: success closes the circuit, failure opens it again.
"""

import asyncio
import logging
import time
from collections import deque
from collections.abc import AsyncGenerator, Callable
from contextlib import asynccontextmanager
from enum import Enum
from typing import Any, Final

from cloudvelous_aws.config.settings import CircuitBreakerPolicy

logger: Final = logging.getLogger(__name__)


class CircuitBreakerOpenError(Exception):
    """Raised when the circuit breaker is open and blocking requests.

    Attributes:
        name: Name of the breaker that rejected the call.
        retry_after: Seconds until a trial call will be allowed.
    """

    def __init__(self, name: str, retry_after: float) -> None:
        super().__init__(f"Circuit breaker '{name}' open for {retry_after:.1f}s more")
        self.name = name
        self.retry_after = retry_after


class CircuitState(str, Enum):
    """States of the circuit breaker."""

    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


class CircuitBreaker:
    """Closed/open/half-open circuit breaker.

    Only failures accepted by ``should_trip`` count towards the threshold, so
    a caller can ignore, say, "not found" answers that say nothing about the
    health of the service.

    Example:
        >>> breaker = CircuitBreaker(CircuitBreakerPolicy(failure_threshold=3), name="sqs")
        >>> async with breaker.guard("sqs:send_message"):
        ...     await send()
    """

    def __init__(
        self,
        policy: CircuitBreakerPolicy | None = None,
        name: str = "aws",
        should_trip: Callable[[BaseException], bool] | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """Initialize the circuit breaker.

        Args:
            policy: Thresholds to apply. Defaults to CircuitBreakerPolicy().
            name: Name used in logs and errors. Defaults to "aws".
            should_trip: Predicate deciding whether a failure counts. Defaults to
                counting every failure.
            clock: Monotonic time source in seconds. Defaults to time.monotonic.
        """
        self.policy = policy or CircuitBreakerPolicy()
        self.name = name
        self._should_trip = should_trip or (lambda _error: True)
        self._clock = clock

        self._state = CircuitState.CLOSED
        self._failures: deque[float] = deque()
        self._opened_at = 0.0
        self._trial_in_flight = False
        self._lock = asyncio.Lock()

        self._trips = 0
        self._rejected = 0

    @property
    def state(self) -> CircuitState:
        """Current state, moving from OPEN to HALF_OPEN once the open duration elapsed."""
        if (
            self._state is CircuitState.OPEN
            and self._clock() - self._opened_at >= self.policy.open_duration
        ):
            return CircuitState.HALF_OPEN
        return self._state

    async def before_call(self) -> None:
        """Admit or reject a call.

        Raises:
            CircuitBreakerOpenError: If the circuit is open, or half-open with a
                trial call already in flight.
        """
        async with self._lock:
            state = self.state

            if state is CircuitState.OPEN:
                self._rejected += 1
                remaining = self.policy.open_duration - (self._clock() - self._opened_at)
                raise CircuitBreakerOpenError(self.name, max(0.0, remaining))

            if state is CircuitState.HALF_OPEN:
                if self._trial_in_flight:
                    self._rejected += 1
                    raise CircuitBreakerOpenError(self.name, 0.0)
                self._state = CircuitState.HALF_OPEN
                self._trial_in_flight = True
                logger.info(f"Circuit breaker '{self.name}' half-open - allowing trial call")

    async def record_success(self) -> None:
        """Record a successful call, closing the circuit after a trial."""
        async with self._lock:
            if self._state is CircuitState.HALF_OPEN:
                logger.info(f"Circuit breaker '{self.name}' closed after successful trial")
            self._state = CircuitState.CLOSED
            self._failures.clear()
            self._trial_in_flight = False

    async def record_failure(self, error: BaseException) -> None:
        """Record a failed call and open the circuit if the threshold is reached.

        Args:
            error: The failure. Ignored unless ``should_trip`` accepts it.
        """
        async with self._lock:
            counts = self._should_trip(error)

            if self._state is CircuitState.HALF_OPEN:
                self._trial_in_flight = False
                if counts:
                    self._open(reason="trial call failed")
                else:
                    self._state = CircuitState.CLOSED
                    self._failures.clear()
                return

            if not counts:
                return

            now = self._clock()
            self._failures.append(now)
            self._prune(now)

            if len(self._failures) >= self.policy.failure_threshold:
                self._open(reason=f"{len(self._failures)} failures")

    @asynccontextmanager
    async def guard(self, operation_name: str = "aws_api_call") -> AsyncGenerator[None, None]:
        """Run a block under the circuit breaker.

        Args:
            operation_name: Name of the operation for logging purposes.

        Yields:
            None. Outcome of the block is recorded on exit.

        Raises:
            CircuitBreakerOpenError: If the call is rejected.
        """
        if not self.policy.enabled:
            yield
            return

        await self.before_call()
        try:
            yield
        except asyncio.CancelledError:
            async with self._lock:
                self._trial_in_flight = False
            raise
        except Exception as e:
            logger.debug(f"Circuit breaker '{self.name}': {operation_name} failed: {e}")
            await self.record_failure(e)
            raise
        else:
            await self.record_success()

    async def reset(self) -> None:
        """Manually close the circuit and forget recorded failures."""
        async with self._lock:
            self._state = CircuitState.CLOSED
            self._failures.clear()
            self._trial_in_flight = False
            logger.info(f"Circuit breaker '{self.name}' manually reset")

    def get_stats(self) -> dict[str, Any]:
        """Get circuit breaker statistics for monitoring.

        Returns:
            Dictionary with the state, recent failure count, trips and rejections.
        """
        return {
            "name": self.name,
            "state": self.state.value,
            "recent_failures": len(self._failures),
            "trips": self._trips,
            "rejected_calls": self._rejected,
        }

    def _open(self, reason: str) -> None:
        self._state = CircuitState.OPEN
        self._opened_at = self._clock()
        self._failures.clear()
        self._trips += 1
        logger.warning(
            f"Circuit breaker '{self.name}' TRIPPED ({reason}). "
            f"Blocking requests for {self.policy.open_duration}s"
        )

    def _prune(self, now: float) -> None:
        horizon = now - self.policy.sampling_window
        while self._failures and self._failures[0] < horizon:
            self._failures.popleft()
