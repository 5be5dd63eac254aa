"""Per-provider circuit breaker for the analysis chain.

Same CLOSED → OPEN → HALF_OPEN → CLOSED state machine as a classic breaker,
but driven by provider outcomes instead of exceptions: providers never raise,
they return a ProviderResult. The chain asks ``allow_request()`` before an
attempt and reports the outcome afterwards.

Usage:
    breaker = ProviderCircuitBreaker(failure_threshold=5, recovery_timeout=60.0)
    if breaker.allow_request():
        result = await provider.analyze(story)
        breaker.record(result.ok)
"""

import enum
import logging
import time

logger = logging.getLogger(__name__)


class CircuitState(enum.Enum):
    """Circuit breaker states."""

    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


class ProviderCircuitBreaker:
    """Skips a provider after repeated failures.

    - CLOSED: Attempts pass through. Consecutive failures tracked.
    - OPEN: Attempts rejected. After recovery_timeout, moves to HALF_OPEN.
    - HALF_OPEN: Single trial call allowed. Success → CLOSED, failure → OPEN.

    Args:
        failure_threshold: Consecutive failures before opening circuit.
        recovery_timeout: Seconds before attempting a recovery trial call.
        name: Provider name for logging.
    """

    def __init__(
        self,
        failure_threshold: int = 5,
        recovery_timeout: float = 60.0,
        name: str = "provider",
    ) -> None:
        self._failure_threshold = failure_threshold
        self._recovery_timeout = recovery_timeout
        self._name = name
        self._state = CircuitState.CLOSED
        self._consecutive_failures = 0
        self._last_failure_time: float = 0.0

    @property
    def state(self) -> CircuitState:
        """Current circuit state."""
        return self._state

    @property
    def consecutive_failures(self) -> int:
        """Number of consecutive failures."""
        return self._consecutive_failures

    def allow_request(self) -> bool:
        """Decide whether the next attempt may go through."""
        if self._state != CircuitState.OPEN:
            return True

        if time.monotonic() - self._last_failure_time >= self._recovery_timeout:
            self._state = CircuitState.HALF_OPEN
            logger.info(
                "Circuit breaker %s: OPEN → HALF_OPEN (recovery trial)",
                self._name,
            )
            return True
        return False

    def record(self, succeeded: bool) -> None:
        """Report the outcome of an allowed attempt."""
        if succeeded:
            self.record_success()
        else:
            self.record_failure()

    def record_success(self) -> None:
        if self._state == CircuitState.HALF_OPEN:
            logger.info(
                "Circuit breaker %s: HALF_OPEN → CLOSED (trial succeeded)",
                self._name,
            )
        self._state = CircuitState.CLOSED
        self._consecutive_failures = 0

    def record_failure(self) -> None:
        self._consecutive_failures += 1
        self._last_failure_time = time.monotonic()

        if self._state == CircuitState.HALF_OPEN:
            self._state = CircuitState.OPEN
            logger.warning(
                "Circuit breaker %s: HALF_OPEN → OPEN (trial failed)",
                self._name,
            )
        elif (
            self._state == CircuitState.CLOSED
            and self._consecutive_failures >= self._failure_threshold
        ):
            self._state = CircuitState.OPEN
            logger.warning(
                "Circuit breaker %s: CLOSED → OPEN after %d failures",
                self._name,
                self._consecutive_failures,
            )
