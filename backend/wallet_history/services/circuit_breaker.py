# backend/wallet_history/services/circuit_breaker.py
"""
Circuit breaker for upstream price and ledger calls.

Stops calling a provider after repeated failures so a dead upstream costs
one fast rejection instead of a full timeout per lookup. A replay may issue
dozens of price lookups; once a provider's circuit opens the fallback chain
moves on immediately.

States:
    CLOSED    - Normal operation, calls pass through
    OPEN      - Too many failures, calls rejected immediately
    HALF_OPEN - Recovery probe, a limited number of calls allowed

State Transitions:
    CLOSED -> OPEN: failure count reaches threshold (within window, if set)
    OPEN -> HALF_OPEN: recovery timeout expires
    HALF_OPEN -> CLOSED: a probe call succeeds
    HALF_OPEN -> OPEN: a probe call fails

Usage:
    breaker = CircuitBreaker(name="coingecko", failure_threshold=5)

    async with breaker:
        payload = await client.get(url)

    @breaker
    async def fetch_price():
        ...

The internal lock is only held while state is read or updated, never across
an await, so a slow upstream call cannot block other tasks.
"""

import logging
import threading
import time
from dataclasses import dataclass, field
from enum import Enum
from functools import wraps
from typing import Any, Awaitable, Callable, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class CircuitState(Enum):
    """Circuit breaker states."""
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


class CircuitBreakerOpen(Exception):
    """
    Raised when a call is rejected because the circuit is open.

    Attributes:
        breaker_name: Name of the circuit breaker
        time_remaining: Seconds until the next recovery probe is allowed
    """

    def __init__(self, breaker_name: str, time_remaining: float) -> None:
        self.breaker_name = breaker_name
        self.time_remaining = time_remaining
        super().__init__(
            f"Circuit breaker '{breaker_name}' is open. "
            f"Retry in {time_remaining:.1f} seconds."
        )


@dataclass
class CircuitBreakerStats:
    """Counters for monitoring a breaker (exposed on /health)."""
    total_calls: int = 0
    successful_calls: int = 0
    failed_calls: int = 0
    rejected_calls: int = 0
    state_changes: int = 0
    last_failure_time: float | None = None
    last_success_time: float | None = None


@dataclass
class CircuitBreaker:
    """
    Async-friendly circuit breaker.

    Attributes:
        name: Identifier used in logs and errors
        failure_threshold: Failures before the circuit opens
        recovery_timeout: Seconds before an open circuit allows a probe
        half_open_max_calls: Probe calls allowed while half-open
        failure_window: Sliding window (seconds) for counting failures (0 = none)
        excluded_exceptions: Exception types that are not upstream failures
        clock: Monotonic time source (injectable for tests)
    """

    name: str
    failure_threshold: int = 5
    recovery_timeout: float = 60.0
    half_open_max_calls: int = 3
    failure_window: float = 0.0
    excluded_exceptions: tuple[type[BaseException], ...] = field(default_factory=tuple)
    clock: Callable[[], float] = time.monotonic

    _state: CircuitState = field(default=CircuitState.CLOSED, init=False)
    _failure_timestamps: list[float] = field(default_factory=list, init=False)
    _failure_count: int = field(default=0, init=False)
    _opened_at: float = field(default=0.0, init=False)
    _half_open_calls: int = field(default=0, init=False)
    _lock: threading.Lock = field(default_factory=threading.Lock, init=False, repr=False)
    _stats: CircuitBreakerStats = field(default_factory=CircuitBreakerStats, init=False)

    def __post_init__(self) -> None:
        if self.failure_threshold < 1:
            raise ValueError("failure_threshold must be at least 1")
        if self.recovery_timeout < 0:
            raise ValueError("recovery_timeout cannot be negative")
        if self.half_open_max_calls < 1:
            raise ValueError("half_open_max_calls must be at least 1")

        logger.debug(
            f"CircuitBreaker '{self.name}' initialized: "
            f"threshold={self.failure_threshold}, "
            f"recovery_timeout={self.recovery_timeout}s"
        )

    # =========================================================================
    # PUBLIC STATE
    # =========================================================================

    @property
    def state(self) -> CircuitState:
        with self._lock:
            self._refresh_state()
            return self._state

    @property
    def stats(self) -> CircuitBreakerStats:
        """Copy of the current counters."""
        with self._lock:
            return CircuitBreakerStats(**vars(self._stats))

    @property
    def is_closed(self) -> bool:
        return self.state == CircuitState.CLOSED

    @property
    def is_open(self) -> bool:
        return self.state == CircuitState.OPEN

    # =========================================================================
    # CALL GUARD
    # =========================================================================

    def before_call(self) -> None:
        """
        Admit or reject a call.

        Raises:
            CircuitBreakerOpen: If the circuit is open or the half-open probe
                budget is spent
        """
        with self._lock:
            self._stats.total_calls += 1
            if not self._admit():
                self._stats.rejected_calls += 1
                raise CircuitBreakerOpen(self.name, self._time_until_recovery())

    def after_call(self, exc: BaseException | None) -> None:
        """Record the outcome of an admitted call."""
        with self._lock:
            if exc is None or isinstance(exc, self.excluded_exceptions):
                self._record_success()
            else:
                self._record_failure()

    async def __aenter__(self) -> "CircuitBreaker":
        self.before_call()
        return self

    async def __aexit__(self, exc_type: type | None, exc_val: BaseException | None, exc_tb: Any) -> bool:
        # Cancellation says nothing about upstream health
        if isinstance(exc_val, BaseException) and not isinstance(exc_val, Exception):
            with self._lock:
                if self._state == CircuitState.HALF_OPEN:
                    self._half_open_calls = max(0, self._half_open_calls - 1)
            return False
        self.after_call(exc_val)
        return False

    def __call__(self, func: Callable[..., Awaitable[T]]) -> Callable[..., Awaitable[T]]:
        """Decorate a coroutine function so every call goes through the breaker."""
        @wraps(func)
        async def wrapper(*args: Any, **kwargs: Any) -> T:
            async with self:
                return await func(*args, **kwargs)
        return wrapper

    # =========================================================================
    # MANUAL CONTROL
    # =========================================================================

    def reset(self) -> None:
        """Force the circuit closed (administrative override)."""
        with self._lock:
            self._transition_to(CircuitState.CLOSED)
        logger.info(f"CircuitBreaker '{self.name}' manually reset")

    def force_open(self) -> None:
        """Force the circuit open, e.g. while a provider is known to be down."""
        with self._lock:
            self._opened_at = self.clock()
            self._transition_to(CircuitState.OPEN)
        logger.warning(f"CircuitBreaker '{self.name}' manually opened")

    # =========================================================================
    # INTERNALS (lock must be held)
    # =========================================================================

    def _refresh_state(self) -> None:
        if self._state == CircuitState.OPEN:
            if self.clock() - self._opened_at >= self.recovery_timeout:
                self._transition_to(CircuitState.HALF_OPEN)

    def _admit(self) -> bool:
        self._refresh_state()

        if self._state == CircuitState.CLOSED:
            return True

        if self._state == CircuitState.HALF_OPEN:
            if self._half_open_calls < self.half_open_max_calls:
                self._half_open_calls += 1
                return True

        return False

    def _transition_to(self, new_state: CircuitState) -> None:
        old_state = self._state
        self._state = new_state
        self._stats.state_changes += 1

        if new_state == CircuitState.HALF_OPEN:
            self._half_open_calls = 0
        elif new_state == CircuitState.CLOSED:
            self._failure_count = 0
            self._failure_timestamps.clear()

        logger.info(
            f"CircuitBreaker '{self.name}' state change: "
            f"{old_state.value} -> {new_state.value}"
        )

    def _record_success(self) -> None:
        self._stats.successful_calls += 1
        self._stats.last_success_time = self.clock()

        if self._state == CircuitState.HALF_OPEN:
            self._transition_to(CircuitState.CLOSED)

    def _record_failure(self) -> None:
        now = self.clock()
        self._stats.failed_calls += 1
        self._stats.last_failure_time = now

        if self._state == CircuitState.HALF_OPEN:
            self._opened_at = now
            self._transition_to(CircuitState.OPEN)
            return

        if self._state != CircuitState.CLOSED:
            return

        if self.failure_window > 0:
            self._failure_timestamps.append(now)
            horizon = now - self.failure_window
            self._failure_timestamps = [t for t in self._failure_timestamps if t > horizon]
            self._failure_count = len(self._failure_timestamps)
        else:
            self._failure_count += 1

        if self._failure_count >= self.failure_threshold:
            self._opened_at = now
            self._transition_to(CircuitState.OPEN)

    def _time_until_recovery(self) -> float:
        return max(0.0, self.recovery_timeout - (self.clock() - self._opened_at))
