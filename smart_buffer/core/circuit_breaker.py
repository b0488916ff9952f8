"""
Circuit breaker guarding calls to the backing store and the ML service.

CLOSED passes calls through and counts consecutive failures. Reaching the
threshold opens the circuit; while OPEN the wrapped function is never invoked.
Once the timeout has elapsed the breaker goes HALF_OPEN and admits exactly one
probe call whose outcome closes or re-opens the circuit. A call admitted before
the circuit last opened or closed only updates the counters when it finishes.
"""
import threading
import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional, Tuple, TypeVar

from smart_buffer.models import BreakerSettings
from smart_buffer.utils import setup_logger, CircuitOpenError


logger = setup_logger(__name__)

T = TypeVar('T')


class CircuitStatus(str, Enum):
    CLOSED = 'closed'
    OPEN = 'open'
    HALF_OPEN = 'half_open'


@dataclass
class CircuitState:
    """Point-in-time view of a breaker."""
    name: str
    status: CircuitStatus
    failure_count: int
    opened_at: Optional[float]
    total_calls: int = 0
    total_failures: int = 0
    rejected_calls: int = 0

    def to_dict(self) -> dict:
        return {
            'name': self.name,
            'status': self.status.value,
            'failure_count': self.failure_count,
            'opened_at': self.opened_at,
            'total_calls': self.total_calls,
            'total_failures': self.total_failures,
            'rejected_calls': self.rejected_calls,
        }


class CircuitBreaker:
    """Thread-safe three-state circuit breaker."""

    def __init__(self,
                 name: str,
                 settings: BreakerSettings,
                 clock: Callable[[], float] = time.monotonic):
        self.name = name
        self.threshold = settings.threshold
        self.timeout = settings.timeout_ms / 1000.0
        self.reset_timeout = settings.reset_timeout_ms / 1000.0 if settings.reset_timeout_ms else None
        self._clock = clock

        # All fields below are guarded by _lock
        self._lock = threading.Lock()
        self._status = CircuitStatus.CLOSED
        self._failure_count = 0
        self._opened_at: Optional[float] = None
        self._last_failure_at: Optional[float] = None
        self._probe_in_flight = False
        # Bumped on every trip and close; outcomes of calls admitted under an older
        # generation only update the counters
        self._generation = 0
        self._total_calls = 0
        self._total_failures = 0
        self._rejected_calls = 0

    def execute(self, fn: Callable[..., T], *args, **kwargs) -> T:
        """
        Run fn through the breaker.

        Args:
            fn: Dependency call; any exception it raises counts as a failure

        Returns:
            Whatever fn returns

        Raises:
            CircuitOpenError: Circuit is open (or a probe is already running); fn was not called
        """
        generation, is_probe = self._before_call()

        succeeded = False
        try:
            result = fn(*args, **kwargs)
            succeeded = True
            return result
        finally:
            if succeeded:
                self._on_success(generation, is_probe)
            else:
                self._on_failure(generation, is_probe)

    @property
    def status(self) -> CircuitStatus:
        with self._lock:
            self._refresh()
            return self._status

    @property
    def is_open(self) -> bool:
        return self.status is CircuitStatus.OPEN

    def snapshot(self) -> CircuitState:
        with self._lock:
            self._refresh()
            return CircuitState(
                name=self.name,
                status=self._status,
                failure_count=self._failure_count,
                opened_at=self._opened_at,
                total_calls=self._total_calls,
                total_failures=self._total_failures,
                rejected_calls=self._rejected_calls,
            )

    def seconds_until_retry(self) -> float:
        with self._lock:
            self._refresh()
            if self._status is not CircuitStatus.OPEN:
                return 0.0
            return max(0.0, self.timeout - (self._clock() - self._opened_at))

    def reset(self) -> None:
        """Force the circuit closed."""
        with self._lock:
            self._close()
        logger.info(f"Circuit '{self.name}' manually reset")

    def _refresh(self) -> None:
        # Caller holds _lock
        if self._status is CircuitStatus.OPEN and self._clock() - self._opened_at >= self.timeout:
            self._status = CircuitStatus.HALF_OPEN
            self._probe_in_flight = False
            logger.info(f"Circuit '{self.name}' half-open, next call is a probe")

    def _before_call(self) -> Tuple[int, bool]:
        """Admit or reject a call; returns (generation, is_probe) for the admitted call."""
        with self._lock:
            self._refresh()

            if self._status is CircuitStatus.OPEN:
                self._rejected_calls += 1
                raise CircuitOpenError(
                    f"Circuit '{self.name}' is open",
                    details={'retry_in': round(self.timeout - (self._clock() - self._opened_at), 3)},
                )

            is_probe = False
            if self._status is CircuitStatus.HALF_OPEN:
                if self._probe_in_flight:
                    self._rejected_calls += 1
                    raise CircuitOpenError(f"Circuit '{self.name}' is half-open and probing")
                self._probe_in_flight = True
                is_probe = True

            self._total_calls += 1
            return self._generation, is_probe

    def _on_success(self, generation: int, is_probe: bool) -> None:
        with self._lock:
            if generation != self._generation:
                return

            if self._status is CircuitStatus.HALF_OPEN:
                if is_probe:
                    self._close()
                    logger.info(f"Circuit '{self.name}' closed after successful probe")
            elif self._status is CircuitStatus.CLOSED:
                self._failure_count = 0
                self._last_failure_at = None

    def _on_failure(self, generation: int, is_probe: bool) -> None:
        with self._lock:
            now = self._clock()
            self._total_failures += 1

            if generation != self._generation:
                return

            if self._status is CircuitStatus.HALF_OPEN:
                if is_probe:
                    self._failure_count += 1
                    self._trip(now)
                    logger.warning(f"Circuit '{self.name}' probe failed, re-opened")
                return

            if self._status is not CircuitStatus.CLOSED:
                return

            if (self.reset_timeout is not None and self._last_failure_at is not None
                    and now - self._last_failure_at > self.reset_timeout):
                self._failure_count = 0

            self._failure_count += 1
            self._last_failure_at = now

            if self._failure_count >= self.threshold:
                self._trip(now)
                logger.warning(
                    f"Circuit '{self.name}' opened after {self._failure_count} consecutive failures"
                )

    def _trip(self, now: float) -> None:
        self._status = CircuitStatus.OPEN
        self._opened_at = now
        self._probe_in_flight = False
        self._generation += 1

    def _close(self) -> None:
        self._status = CircuitStatus.CLOSED
        self._failure_count = 0
        self._opened_at = None
        self._last_failure_at = None
        self._probe_in_flight = False
        self._generation += 1
