"""Circuit breaker del sink de persistencia.

    CLOSED --(failure_threshold fallos seguidos)--> OPEN
    OPEN --(recovery_timeout_seconds)--> HALF_OPEN
    HALF_OPEN --(success_threshold éxitos)--> CLOSED
    HALF_OPEN --(un fallo)--> OPEN

Mientras está OPEN las escrituras se descartan sin tocar el backend.
"""

from __future__ import annotations

import logging
import threading
import time
from typing import Callable, Optional, TypeVar

from .config import CircuitBreakerConfig, CircuitBreakerOpen, CircuitState

logger = logging.getLogger(__name__)

T = TypeVar("T")


class CircuitBreaker:
    """Uso:
        breaker = CircuitBreaker("sink:JsonLinesSink")
        breaker.call(lambda: sink.write(record))  # CircuitBreakerOpen si está abierto
    """

    def __init__(
        self,
        name: str,
        config: Optional[CircuitBreakerConfig] = None,
        time_fn: Callable[[], float] = time.monotonic,
    ):
        self.name = name
        self._config = config or CircuitBreakerConfig.from_env()
        self._time = time_fn
        self._lock = threading.Lock()

        self._state = CircuitState.CLOSED
        self._consecutive_failures = 0
        self._half_open_successes = 0
        self._opened_at: Optional[float] = None

        # Stats
        self._rejected = 0
        self._times_opened = 0

    @property
    def state(self) -> CircuitState:
        with self._lock:
            self._maybe_half_open()
            return self._state

    def allow(self) -> None:
        """Raises CircuitBreakerOpen si el backend no debe usarse ahora."""
        with self._lock:
            self._maybe_half_open()
            if self._state != CircuitState.OPEN:
                return
            self._rejected += 1
            elapsed = self._time() - (self._opened_at or 0.0)
            raise CircuitBreakerOpen(self.name, max(0.0, self._config.recovery_timeout_seconds - elapsed))

    def record_success(self) -> None:
        with self._lock:
            self._consecutive_failures = 0
            if self._state != CircuitState.HALF_OPEN:
                return
            self._half_open_successes += 1
            if self._half_open_successes >= self._config.success_threshold:
                self._transition(CircuitState.CLOSED, "backend recovered")

    def record_failure(self, error: Exception) -> None:
        with self._lock:
            self._consecutive_failures += 1
            if self._state == CircuitState.HALF_OPEN:
                self._transition(CircuitState.OPEN, f"probe failed: {str(error)[:100]}")
            elif (
                self._state == CircuitState.CLOSED
                and self._consecutive_failures >= self._config.failure_threshold
            ):
                self._transition(
                    CircuitState.OPEN,
                    f"{self._consecutive_failures} consecutive failures: {str(error)[:100]}",
                )

    def call(self, func: Callable[[], T]) -> T:
        self.allow()
        try:
            result = func()
        except Exception as e:
            self.record_failure(e)
            raise
        self.record_success()
        return result

    def _maybe_half_open(self) -> None:
        # caller holds the lock
        if self._state != CircuitState.OPEN or self._opened_at is None:
            return
        if self._time() - self._opened_at >= self._config.recovery_timeout_seconds:
            self._transition(CircuitState.HALF_OPEN, "recovery timeout elapsed")

    def _transition(self, new_state: CircuitState, reason: str) -> None:
        # caller holds the lock
        old_state = self._state
        self._state = new_state
        if new_state == CircuitState.OPEN:
            self._opened_at = self._time()
            self._times_opened += 1
        elif new_state == CircuitState.HALF_OPEN:
            self._half_open_successes = 0
        else:
            self._opened_at = None
            self._consecutive_failures = 0

        log = logger.warning if new_state == CircuitState.OPEN else logger.info
        log("[BREAKER] %s %s -> %s (%s)", self.name, old_state.value, new_state.value, reason)

    def reset(self) -> None:
        with self._lock:
            self._transition(CircuitState.CLOSED, "manual reset")
            self._half_open_successes = 0

    def get_stats(self) -> dict:
        with self._lock:
            return {
                "name": self.name,
                "state": self._state.value,
                "consecutive_failures": self._consecutive_failures,
                "times_opened": self._times_opened,
                "rejected": self._rejected,
            }
