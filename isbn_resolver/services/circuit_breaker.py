"""Circuit breaker guarding calls to the upstream metadata service.

CLOSED lets calls through and counts consecutive failures. Reaching the
threshold opens the circuit; while OPEN calls are refused until the recovery
timeout has elapsed since the last failure. The breaker then goes HALF_OPEN
and lets a limited number of probes through: a probe success closes it, a
probe failure opens it again and restarts the cool-down.
"""

import logging
import threading
import time
from dataclasses import asdict, dataclass
from enum import Enum
from typing import Any, Callable, Dict, Optional

logger = logging.getLogger("isbn_resolver.circuit_breaker")


class CircuitState(Enum):
    CLOSED = "CLOSED"
    OPEN = "OPEN"
    HALF_OPEN = "HALF_OPEN"


@dataclass(frozen=True)
class CircuitSnapshot:
    state: CircuitState
    consecutive_failures: int
    last_failure_at: Optional[float]
    half_open_probes_remaining: int

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["state"] = self.state.value
        return data


class CircuitBreaker:
    def __init__(
        self,
        failure_threshold: int = 5,
        recovery_timeout: float = 60.0,
        half_open_max_calls: int = 1,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.failure_threshold = failure_threshold
        self.recovery_timeout = recovery_timeout
        self.half_open_max_calls = half_open_max_calls
        self._clock = clock
        self._lock = threading.Lock()
        self._state = CircuitState.CLOSED
        self._consecutive_failures = 0
        self._last_failure_at: Optional[float] = None
        self._probes_remaining = 0

    @property
    def state(self) -> CircuitState:
        with self._lock:
            return self._state

    def allow_request(self) -> bool:
        """Return True if a call to the upstream may be made now."""
        with self._lock:
            if self._state is CircuitState.CLOSED:
                return True

            if self._state is CircuitState.OPEN:
                elapsed = self._clock() - (self._last_failure_at or 0.0)
                if elapsed < self.recovery_timeout:
                    return False
                self._transition(CircuitState.HALF_OPEN)
                self._probes_remaining = self.half_open_max_calls

            if self._probes_remaining > 0:
                self._probes_remaining -= 1
                return True
            return False

    def record_success(self) -> None:
        with self._lock:
            self._consecutive_failures = 0
            if self._state is not CircuitState.CLOSED:
                self._transition(CircuitState.CLOSED)
                self._probes_remaining = 0

    def record_failure(self) -> None:
        """Count a failed call.

        Late failures from calls admitted before the circuit opened are
        ignored while OPEN, so they do not extend the cool-down.
        """
        with self._lock:
            if self._state is CircuitState.OPEN:
                return
            self._consecutive_failures += 1
            self._last_failure_at = self._clock()
            if self._state is CircuitState.HALF_OPEN:
                self._transition(CircuitState.OPEN)
                self._probes_remaining = 0
            elif (
                self._state is CircuitState.CLOSED
                and self._consecutive_failures >= self.failure_threshold
            ):
                self._transition(CircuitState.OPEN)

    def snapshot(self) -> CircuitSnapshot:
        with self._lock:
            return CircuitSnapshot(
                state=self._state,
                consecutive_failures=self._consecutive_failures,
                last_failure_at=self._last_failure_at,
                half_open_probes_remaining=self._probes_remaining,
            )

    def reset(self) -> None:
        """Force the breaker CLOSED and zero its counters."""
        with self._lock:
            self._state = CircuitState.CLOSED
            self._consecutive_failures = 0
            self._last_failure_at = None
            self._probes_remaining = 0
        logger.info("Circuit breaker reset to CLOSED")

    def _transition(self, new_state: CircuitState) -> None:
        # Caller holds the lock
        if new_state is CircuitState.OPEN:
            logger.warning(
                f"Circuit breaker {self._state.value} -> OPEN after "
                f"{self._consecutive_failures} consecutive failure(s)"
            )
        else:
            logger.info(f"Circuit breaker {self._state.value} -> {new_state.value}")
        self._state = new_state
