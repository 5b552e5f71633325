"""Per-provider circuit breaker shared across concurrent evaluations."""

import hashlib
import threading
import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, Optional, Tuple

from ..config import config
from ..logging_config import get_logger

logger = get_logger(__name__)


class BreakerState(str, Enum):
    CLOSED = "CLOSED"
    OPEN = "OPEN"
    HALF_OPEN = "HALF_OPEN"


@dataclass(frozen=True)
class CircuitBreakerState:
    """Point-in-time copy of a breaker."""

    state: BreakerState
    failure_count: int
    last_failure_time: Optional[float]
    failure_threshold: int
    reset_timeout: float


class CircuitBreaker:
    """
    Stops calling a provider after repeated failures.

    CLOSED -> OPEN once failure_threshold failures accumulate. OPEN fails fast
    until reset_timeout has elapsed, then lets exactly one trial request
    through (HALF_OPEN). The trial's success closes the breaker, its failure
    reopens it. Failures older than failure_window stop counting.

    Thread-safe: every state change happens under the breaker's own lock.
    """

    def __init__(
        self,
        name: str = "default",
        failure_threshold: int = 5,
        reset_timeout: float = 60.0,
        failure_window: Optional[float] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.name = name
        self.failure_threshold = failure_threshold
        self.reset_timeout = reset_timeout
        self.failure_window = failure_window if failure_window is not None else reset_timeout * 2
        self._clock = clock
        self._lock = threading.Lock()
        self._state = BreakerState.CLOSED
        self._failure_count = 0
        self._last_failure_time: Optional[float] = None
        self._opened_at: Optional[float] = None
        self._trial_in_flight = False

    @property
    def state(self) -> BreakerState:
        with self._lock:
            self._refresh()
            return self._state

    def _refresh(self) -> None:
        """Apply time-based transitions. Caller holds the lock."""
        now = self._clock()
        if self._state == BreakerState.OPEN and now - self._opened_at >= self.reset_timeout:
            self._state = BreakerState.HALF_OPEN
            self._trial_in_flight = False
            logger.info(f"Circuit breaker '{self.name}' half-open, allowing a trial request")
        elif (
            self._state == BreakerState.CLOSED
            and self._last_failure_time is not None
            and now - self._last_failure_time >= self.failure_window
        ):
            self._failure_count = 0

    def allow_request(self) -> bool:
        """Whether a call may go out now. In HALF_OPEN only one caller gets True."""
        with self._lock:
            self._refresh()
            if self._state == BreakerState.CLOSED:
                return True
            if self._state == BreakerState.HALF_OPEN and not self._trial_in_flight:
                self._trial_in_flight = True
                return True
            return False

    def is_open(self) -> bool:
        return self.state == BreakerState.OPEN

    def record_success(self) -> None:
        with self._lock:
            if self._state != BreakerState.CLOSED:
                logger.info(f"Circuit breaker '{self.name}' closed after successful trial")
            self._state = BreakerState.CLOSED
            self._failure_count = 0
            self._trial_in_flight = False
            self._opened_at = None

    def record_failure(self) -> None:
        with self._lock:
            self._refresh()
            now = self._clock()
            self._failure_count += 1
            self._last_failure_time = now

            if self._state == BreakerState.HALF_OPEN:
                self._open(now)
                logger.warning(f"Circuit breaker '{self.name}' trial failed, reopening")
            elif self._state == BreakerState.CLOSED and self._failure_count >= self.failure_threshold:
                self._open(now)
                logger.warning(
                    f"Circuit breaker '{self.name}' opened after {self._failure_count} failures"
                )

    def _open(self, now: float) -> None:
        self._state = BreakerState.OPEN
        self._opened_at = now
        self._trial_in_flight = False

    def remaining_open_time(self) -> float:
        """Seconds until an open breaker admits a trial, 0 otherwise."""
        with self._lock:
            self._refresh()
            if self._state != BreakerState.OPEN:
                return 0.0
            return max(0.0, self.reset_timeout - (self._clock() - self._opened_at))

    def failure_count(self) -> int:
        with self._lock:
            self._refresh()
            return self._failure_count

    def snapshot(self) -> CircuitBreakerState:
        with self._lock:
            self._refresh()
            return CircuitBreakerState(
                state=self._state,
                failure_count=self._failure_count,
                last_failure_time=self._last_failure_time,
                failure_threshold=self.failure_threshold,
                reset_timeout=self.reset_timeout,
            )

    def reset(self) -> None:
        with self._lock:
            self._state = BreakerState.CLOSED
            self._failure_count = 0
            self._last_failure_time = None
            self._opened_at = None
            self._trial_in_flight = False


class CircuitBreakerRegistry:
    """Owns one breaker per (provider, credential) pair."""

    def __init__(
        self,
        failure_threshold: Optional[int] = None,
        reset_timeout: Optional[float] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.failure_threshold = failure_threshold or config.breaker_failure_threshold
        self.reset_timeout = reset_timeout or config.breaker_reset_timeout
        self._clock = clock
        self._breakers: Dict[Tuple[str, str], CircuitBreaker] = {}
        self._lock = threading.Lock()

    @staticmethod
    def _credential_digest(credential: Optional[str]) -> str:
        # Never keep the raw credential as a dict key
        return hashlib.sha256((credential or "").encode("utf-8")).hexdigest()[:12]

    def get(self, provider: str, credential: Optional[str] = None) -> CircuitBreaker:
        key = (provider, self._credential_digest(credential))
        with self._lock:
            breaker = self._breakers.get(key)
            if breaker is None:
                breaker = CircuitBreaker(
                    name=f"{provider}:{key[1]}",
                    failure_threshold=self.failure_threshold,
                    reset_timeout=self.reset_timeout,
                    clock=self._clock,
                )
                self._breakers[key] = breaker
            return breaker

    def reset_all(self) -> None:
        with self._lock:
            breakers = list(self._breakers.values())
        for breaker in breakers:
            breaker.reset()

    def snapshots(self) -> Dict[str, CircuitBreakerState]:
        with self._lock:
            breakers = list(self._breakers.values())
        return {b.name: b.snapshot() for b in breakers}


# Process-wide registry
breaker_registry = CircuitBreakerRegistry()
