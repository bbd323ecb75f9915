"""
Circuit breaker pattern for failing hosts.
"""
from __future__ import annotations
import logging
import time
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Optional

from .errors import CircuitOpenError

logger = logging.getLogger(__name__)


class CircuitState(Enum):
    CLOSED = "CLOSED"        # Normal operation
    OPEN = "OPEN"            # Failing, reject requests
    HALF_OPEN = "HALF_OPEN"  # Testing recovery with a single trial request


class CircuitBreaker:
    def __init__(self, failure_threshold: int = 5, recovery_timeout: float = 60.0,
                 name: str = "", clock: Callable[[], float] = time.monotonic):
        self.failure_threshold = failure_threshold
        self.recovery_timeout = recovery_timeout
        self.name = name
        self._clock = clock

        self._failures = 0
        self._state = CircuitState.CLOSED
        self._opened_at: Optional[float] = None
        self._trial_in_flight = False

    @property
    def state(self) -> CircuitState:
        # Check if we should transition from OPEN to HALF_OPEN
        if self._state == CircuitState.OPEN and self.retry_after() <= 0:
            self._state = CircuitState.HALF_OPEN
            self._trial_in_flight = False
            logger.info("Circuit %s half-open, allowing a trial request", self.name or "breaker")
        return self._state

    @property
    def failures(self) -> int:
        return self._failures

    @property
    def opened_at(self) -> Optional[float]:
        return self._opened_at

    def retry_after(self) -> float:
        """Seconds until an open circuit will admit a trial request; 0 when not open."""
        if self._state != CircuitState.OPEN or self._opened_at is None:
            return 0.0
        return max(0.0, self._opened_at + self.recovery_timeout - self._clock())

    def allow_request(self) -> bool:
        """Check if a request should be allowed. In HALF_OPEN only the first caller gets through."""
        state = self.state
        if state == CircuitState.CLOSED:
            return True
        if state == CircuitState.HALF_OPEN and not self._trial_in_flight:
            self._trial_in_flight = True
            return True
        return False

    def record_success(self):
        """Record a successful request."""
        if self._state == CircuitState.OPEN:
            # A call admitted before the circuit opened; the open period still stands
            return
        if self._state == CircuitState.HALF_OPEN:
            logger.info("Circuit %s closed after a successful trial request", self.name or "breaker")
        self._state = CircuitState.CLOSED
        self._failures = 0
        self._opened_at = None
        self._trial_in_flight = False

    def record_failure(self):
        """Record a failed request."""
        self._failures += 1

        if self._state == CircuitState.HALF_OPEN:
            self._open()
        elif self._state == CircuitState.CLOSED and self._failures >= self.failure_threshold:
            self._open()

    def _open(self):
        self._state = CircuitState.OPEN
        self._opened_at = self._clock()
        self._trial_in_flight = False
        logger.warning("Circuit %s opened after %d consecutive failures", self.name or "breaker", self._failures)

    def reset(self):
        self._state = CircuitState.CLOSED
        self._failures = 0
        self._opened_at = None
        self._trial_in_flight = False

    async def call(self, fn: Callable[[], Awaitable[Any]],
                   is_failure: Optional[Callable[[BaseException], bool]] = None) -> Any:
        """Run `fn` through the breaker, raising CircuitOpenError when it is not admitted.

        Exceptions for which `is_failure` returns False still propagate, but they
        count as a healthy response from the host.
        """
        if not self.allow_request():
            raise CircuitOpenError(self.name or "breaker", retry_after=self.retry_after())
        try:
            result = await fn()
        except Exception as e:
            if is_failure is None or is_failure(e):
                self.record_failure()
            else:
                self.record_success()
            raise
        except BaseException:
            # A cancelled trial request frees the slot for the next caller
            self._trial_in_flight = False
            raise
        self.record_success()
        return result

    def snapshot(self) -> Dict[str, Any]:
        return {
            "state": self.state.value,
            "failures": self._failures,
            "opened_at": self._opened_at,
            "retry_after": round(self.retry_after(), 3),
        }


class CircuitBreakerRegistry:
    """Registry to manage circuit breakers for multiple hosts."""
    def __init__(self, failure_threshold: int = 5, recovery_timeout: float = 60.0,
                 clock: Callable[[], float] = time.monotonic):
        self.failure_threshold = failure_threshold
        self.recovery_timeout = recovery_timeout
        self._clock = clock
        self._breakers: Dict[str, CircuitBreaker] = {}

    def get_breaker(self, host: str) -> CircuitBreaker:
        if host not in self._breakers:
            self._breakers[host] = CircuitBreaker(
                failure_threshold=self.failure_threshold,
                recovery_timeout=self.recovery_timeout,
                name=host,
                clock=self._clock,
            )
        return self._breakers[host]

    def states(self) -> Dict[str, str]:
        return {host: breaker.state.value for host, breaker in self._breakers.items()}

    def reset(self, host: Optional[str] = None):
        if host is None:
            self._breakers.clear()
        else:
            self._breakers.pop(host, None)
