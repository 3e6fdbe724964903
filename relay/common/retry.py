"""
Poll-loop resilience: jittered exponential backoff + a consecutive-failure circuit breaker.

The breaker assumes single-threaded use by the queue consumer:
- CLOSED: calls allowed; consecutive failures are counted.
- OPEN: after `failure_threshold` consecutive failures; calls refused until `cooldown_s` elapses.
- HALF_OPEN: one trial call allowed; success closes, failure re-opens.
"""

from __future__ import annotations

import random
import time
from enum import Enum
from typing import Callable, Optional


class ExponentialBackoff:
    def __init__(
        self,
        *,
        initial_s: float,
        max_s: float,
        jitter: tuple[float, float] = (0.5, 1.5),
        rand: Optional[Callable[[float, float], float]] = None,
    ) -> None:
        self.initial_s = max(0.0, float(initial_s))
        self.max_s = max(self.initial_s, float(max_s))
        self._jitter = jitter
        self._uniform = rand or random.uniform
        self.attempt = 0

    def next_delay(self) -> float:
        """
        Record one more failure and return how long to wait before retrying.
        """
        self.attempt += 1
        base = self.initial_s * (2 ** max(0, self.attempt - 1))
        backoff = min(self.max_s, base)
        return max(0.0, backoff * self._uniform(*self._jitter))

    def reset(self) -> None:
        self.attempt = 0


class CircuitState(Enum):
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


class CircuitBreaker:
    def __init__(
        self,
        *,
        failure_threshold: int,
        cooldown_s: float,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.failure_threshold = max(1, int(failure_threshold))
        self.cooldown_s = max(0.0, float(cooldown_s))
        self._clock = clock
        self._state = CircuitState.CLOSED
        self._consecutive_failures = 0
        self._opened_at: Optional[float] = None

    @property
    def state(self) -> CircuitState:
        if self._state is CircuitState.OPEN and self.remaining_cooldown_s() <= 0.0:
            self._state = CircuitState.HALF_OPEN
        return self._state

    @property
    def consecutive_failures(self) -> int:
        return self._consecutive_failures

    def remaining_cooldown_s(self) -> float:
        if self._opened_at is None:
            return 0.0
        return max(0.0, self.cooldown_s - (self._clock() - self._opened_at))

    def allow_request(self) -> bool:
        return self.state is not CircuitState.OPEN

    def record_success(self) -> None:
        self._state = CircuitState.CLOSED
        self._consecutive_failures = 0
        self._opened_at = None

    def record_failure(self) -> bool:
        """
        Count a failure. Returns True when this failure opened (or re-opened) the circuit.
        """
        self._consecutive_failures += 1
        if self.state is CircuitState.HALF_OPEN or self._consecutive_failures >= self.failure_threshold:
            was_open = self._state is CircuitState.OPEN
            self._state = CircuitState.OPEN
            self._opened_at = self._clock()
            return not was_open
        return False
