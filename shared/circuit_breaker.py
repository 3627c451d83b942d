"""
Circuit breaker pattern implementation for resilient service calls.
"""

import threading
import time
from collections import deque
from enum import Enum
from typing import Deque, Dict, Any, Callable

from shared.logging import get_logger


class CircuitBreakerState(Enum):
    """Circuit breaker states."""
    CLOSED = "closed"      # Normal operation
    OPEN = "open"          # Failing, requests blocked
    HALF_OPEN = "half_open"  # Testing if service recovered


class CircuitBreaker:
    """Thread-safe circuit breaker shared by every caller of one dependency.

    Failures are counted inside a sliding window; reaching the threshold
    opens the breaker for ``recovery_timeout`` seconds. After the cool-down
    a single probe is admitted: success closes the breaker, failure opens it
    again.
    """

    def __init__(self,
                 failure_threshold: int = 5,
                 recovery_timeout: float = 60.0,
                 failure_window: float = 60.0,
                 name: str = "default",
                 clock: Callable[[], float] = time.monotonic):
        self.failure_threshold = max(1, failure_threshold)
        self.recovery_timeout = max(0.0, recovery_timeout)
        self.failure_window = failure_window
        self.name = name
        self.logger = get_logger(f"circuit_breaker.{name}")

        self._clock = clock
        self._lock = threading.Lock()
        self._state = CircuitBreakerState.CLOSED
        self._failures: Deque[float] = deque()
        self._opened_at = 0.0
        self._last_failure_time = 0.0
        self._probe_in_flight = False

    @property
    def state(self) -> CircuitBreakerState:
        with self._lock:
            return self._state

    def allow_request(self) -> bool:
        """Decide whether a call may go out, moving OPEN to HALF_OPEN after cool-down."""
        with self._lock:
            if self._state == CircuitBreakerState.CLOSED:
                return True

            if self._state == CircuitBreakerState.OPEN:
                if self._clock() - self._opened_at < self.recovery_timeout:
                    return False
                self._state = CircuitBreakerState.HALF_OPEN
                self._probe_in_flight = True
                self.logger.info("Circuit breaker transitioning to half-open")
                return True

            # HALF_OPEN: one probe at a time
            if self._probe_in_flight:
                return False
            self._probe_in_flight = True
            return True

    def record_success(self) -> None:
        with self._lock:
            if self._state == CircuitBreakerState.HALF_OPEN:
                self.logger.info("Circuit breaker reset to CLOSED after successful call")
            self._state = CircuitBreakerState.CLOSED
            self._failures.clear()
            self._probe_in_flight = False

    def record_failure(self) -> None:
        with self._lock:
            now = self._clock()
            self._last_failure_time = now

            if self._state == CircuitBreakerState.HALF_OPEN:
                self._open(now)
                return

            self._failures.append(now)
            while self._failures and now - self._failures[0] > self.failure_window:
                self._failures.popleft()

            if self._state == CircuitBreakerState.CLOSED and len(self._failures) >= self.failure_threshold:
                self._open(now)

    def release_probe(self) -> None:
        """Give back a half-open probe slot whose call ended without an outcome."""
        with self._lock:
            self._probe_in_flight = False

    def _open(self, now: float) -> None:
        self._state = CircuitBreakerState.OPEN
        self._opened_at = now
        self._probe_in_flight = False
        self.logger.warning(
            "Circuit breaker opened due to failures",
            failure_count=len(self._failures),
            threshold=self.failure_threshold
        )

    def get_state(self) -> Dict[str, Any]:
        """Get current circuit breaker state."""
        with self._lock:
            return {
                "name": self.name,
                "state": self._state.value,
                "failure_count": len(self._failures),
                "last_failure_time": self._last_failure_time,
                "failure_threshold": self.failure_threshold,
                "failure_window": self.failure_window,
                "recovery_timeout": self.recovery_timeout
            }

    def is_open(self) -> bool:
        """Check if circuit breaker is in OPEN state."""
        return self.state == CircuitBreakerState.OPEN


class CircuitBreakerManager:
    """Registry of process-wide circuit breakers keyed by name."""

    def __init__(self):
        self.circuit_breakers: Dict[str, CircuitBreaker] = {}
        self._lock = threading.Lock()
        self.logger = get_logger("circuit_breaker_manager")

    def get_circuit_breaker(self,
                            name: str,
                            failure_threshold: int = 5,
                            recovery_timeout: float = 60.0,
                            failure_window: float = 60.0) -> CircuitBreaker:
        """Get or create a circuit breaker."""
        with self._lock:
            if name not in self.circuit_breakers:
                self.circuit_breakers[name] = CircuitBreaker(
                    failure_threshold=failure_threshold,
                    recovery_timeout=recovery_timeout,
                    failure_window=failure_window,
                    name=name
                )
                self.logger.info("Created circuit breaker", name=name)

            return self.circuit_breakers[name]

    def reset(self) -> None:
        """Drop every registered breaker."""
        with self._lock:
            self.circuit_breakers.clear()


# Global circuit breaker manager instance
circuit_breaker_manager = CircuitBreakerManager()


def get_circuit_breaker(name: str, **kwargs) -> CircuitBreaker:
    """Get a circuit breaker from the global manager."""
    return circuit_breaker_manager.get_circuit_breaker(name, **kwargs)
