"""Circuit breaker pattern for fault tolerance."""

import threading
import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable

from smartflash_llm.errors import CircuitOpenError, ConfigurationError
from smartflash_llm.utils import get_logger

logger = get_logger(__name__)


class CircuitState(Enum):
    """Circuit breaker states."""

    CLOSED = "CLOSED"  # Normal operation
    OPEN = "OPEN"  # Failing, reject requests
    HALF_OPEN = "HALF_OPEN"  # Probing recovery


@dataclass
class CircuitBreakerConfig:
    """Circuit breaker configuration.

    `recovery_timeout` is the cooldown in seconds before an open circuit
    lets a probe through.
    """

    failure_threshold: int = 5
    success_threshold: int = 2
    recovery_timeout: float = 60.0

    def __post_init__(self) -> None:
        if self.failure_threshold < 1 or self.success_threshold < 1:
            raise ConfigurationError("Circuit breaker thresholds must be at least 1")
        if self.recovery_timeout < 0:
            raise ConfigurationError("Circuit breaker recovery_timeout cannot be negative")


@dataclass
class CircuitBreakerStats:
    """Circuit breaker statistics."""

    state: CircuitState
    failure_count: int = 0
    success_count: int = 0
    next_attempt_time: float = 0.0
    total_failures: int = 0
    total_successes: int = 0
    state_changes: int = 0


class CircuitBreaker:
    """Circuit breaker for the upstream completion endpoint.

    Outcomes are recorded once per logical request, so a request that
    needed several validation retries counts as a single success or
    failure. State is guarded by a lock so a breaker shared between
    threads never loses a transition.
    """

    def __init__(
        self,
        name: str,
        config: CircuitBreakerConfig | None = None,
        on_state_change: Callable[[CircuitState, CircuitState], None] | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """Initialize circuit breaker.

        Args:
            name: Circuit breaker name (for logging)
            config: Configuration parameters
            on_state_change: Callback when state changes
            clock: Monotonic time source in seconds
        """
        self.name = name
        self.config = config or CircuitBreakerConfig()
        self._on_state_change = on_state_change
        self._clock = clock
        self._lock = threading.RLock()
        self._state = CircuitState.CLOSED
        self._stats = CircuitBreakerStats(state=CircuitState.CLOSED)

    @property
    def state(self) -> CircuitState:
        """Current circuit state."""
        return self._state

    @property
    def failure_count(self) -> int:
        return self._stats.failure_count

    @property
    def success_count(self) -> int:
        return self._stats.success_count

    @property
    def next_attempt_time(self) -> float:
        """Clock reading at which an open circuit admits a probe."""
        return self._stats.next_attempt_time

    @property
    def stats(self) -> CircuitBreakerStats:
        """Snapshot of current statistics."""
        with self._lock:
            return CircuitBreakerStats(
                state=self._state,
                failure_count=self._stats.failure_count,
                success_count=self._stats.success_count,
                next_attempt_time=self._stats.next_attempt_time,
                total_failures=self._stats.total_failures,
                total_successes=self._stats.total_successes,
                state_changes=self._stats.state_changes,
            )

    def check_before_call(self) -> None:
        """Gate an outbound call.

        Raises:
            CircuitOpenError: circuit is open and the cooldown has not elapsed
        """
        with self._lock:
            if self._state is not CircuitState.OPEN:
                return

            now = self._clock()
            if now >= self._stats.next_attempt_time:
                self._transition_to(CircuitState.HALF_OPEN)
                return

            remaining = self._stats.next_attempt_time - now
            logger.debug("circuit.rejected", name=self.name, retry_after=round(remaining, 3))
            raise CircuitOpenError(remaining)

    def record_success(self) -> None:
        """Record a successful logical request."""
        with self._lock:
            self._stats.total_successes += 1
            self._stats.failure_count = 0

            if self._state is CircuitState.HALF_OPEN:
                self._stats.success_count += 1
                if self._stats.success_count >= self.config.success_threshold:
                    successes = self._stats.success_count
                    self._transition_to(CircuitState.CLOSED)
                    logger.info("circuit.recovered", name=self.name, successes=successes)

    def record_failure(self) -> None:
        """Record a failed logical request."""
        with self._lock:
            self._stats.total_failures += 1
            self._stats.failure_count += 1

            if self._state is CircuitState.HALF_OPEN:
                self._transition_to(CircuitState.OPEN)
                logger.warning("circuit.reopened", name=self.name)

            elif self._state is CircuitState.CLOSED:
                if self._stats.failure_count >= self.config.failure_threshold:
                    failures = self._stats.failure_count
                    self._transition_to(CircuitState.OPEN)
                    logger.error(
                        "circuit.opened",
                        name=self.name,
                        threshold=self.config.failure_threshold,
                        failures=failures,
                    )

    def reset(self) -> None:
        """Force the circuit back to CLOSED with cleared counters."""
        with self._lock:
            self._transition_to(CircuitState.CLOSED)
            self._stats.failure_count = 0
            self._stats.success_count = 0

    def _transition_to(self, new_state: CircuitState) -> None:
        """Transition to new state. Caller holds the lock.

        Args:
            new_state: Target state
        """
        old_state = self._state
        if old_state == new_state:
            return

        self._state = new_state
        self._stats.state = new_state
        self._stats.state_changes += 1

        if new_state is CircuitState.OPEN:
            self._stats.next_attempt_time = self._clock() + self.config.recovery_timeout
            self._stats.failure_count = 0
            self._stats.success_count = 0
        elif new_state is CircuitState.HALF_OPEN:
            self._stats.success_count = 0
        elif new_state is CircuitState.CLOSED:
            self._stats.failure_count = 0
            self._stats.success_count = 0
            self._stats.next_attempt_time = 0.0

        logger.info(
            "circuit.state_changed",
            name=self.name,
            from_state=old_state.value,
            to_state=new_state.value,
        )

        if self._on_state_change:
            try:
                self._on_state_change(old_state, new_state)
            except Exception as e:
                logger.error("circuit.callback_error", name=self.name, error=str(e))

    def get_stats_dict(self) -> dict:
        """Get statistics as dictionary.

        Returns:
            Statistics dictionary
        """
        stats = self.stats
        retry_after = 0.0
        if stats.state is CircuitState.OPEN:
            retry_after = max(0.0, stats.next_attempt_time - self._clock())
        return {
            "name": self.name,
            "state": stats.state.value,
            "failure_count": stats.failure_count,
            "success_count": stats.success_count,
            "total_failures": stats.total_failures,
            "total_successes": stats.total_successes,
            "state_changes": stats.state_changes,
            "retry_after": round(retry_after, 3),
            "config": {
                "failure_threshold": self.config.failure_threshold,
                "success_threshold": self.config.success_threshold,
                "recovery_timeout": self.config.recovery_timeout,
            },
        }
