"""Configuración del writer de persistencia y de su circuit breaker."""

from __future__ import annotations

import os
from dataclasses import dataclass
from enum import Enum


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


@dataclass
class PersistenceConfig:
    """Cola del writer asíncrono.

    Con la cola llena: drop_oldest=True descarta el más antiguo encolado,
    False rechaza el nuevo.
    """
    max_queue_size: int = 10000
    drop_oldest: bool = True
    poll_timeout_s: float = 0.5

    @classmethod
    def from_env(cls) -> "PersistenceConfig":
        return cls(
            max_queue_size=int(os.getenv("FOOTPRINT_PERSIST_QUEUE_MAX_SIZE", "10000")),
            drop_oldest=_env_bool("FOOTPRINT_PERSIST_DROP_OLDEST", True),
        )


class CircuitState(str, Enum):
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


@dataclass(frozen=True)
class CircuitBreakerConfig:
    """Umbrales del breaker (variables FOOTPRINT_SINK_CB_*)."""
    failure_threshold: int = 5
    recovery_timeout_seconds: float = 30.0
    success_threshold: int = 2

    @classmethod
    def from_env(cls, prefix: str = "FOOTPRINT_SINK_CB_") -> "CircuitBreakerConfig":
        defaults = cls()
        return cls(
            failure_threshold=int(os.getenv(f"{prefix}FAILURE_THRESHOLD", defaults.failure_threshold)),
            recovery_timeout_seconds=float(os.getenv(f"{prefix}RECOVERY_TIMEOUT", defaults.recovery_timeout_seconds)),
            success_threshold=int(os.getenv(f"{prefix}SUCCESS_THRESHOLD", defaults.success_threshold)),
        )


class CircuitBreakerOpen(Exception):
    """Escritura descartada: el breaker del sink está abierto."""

    def __init__(self, breaker: str, retry_in_s: float):
        self.breaker = breaker
        self.retry_in_s = retry_in_s
        super().__init__(f"{breaker}: circuit open, next probe in {retry_in_s:.1f}s")
