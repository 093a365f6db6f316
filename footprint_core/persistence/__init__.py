"""Persistencia best-effort (colaborador externo, fuera de la sección crítica)."""

from .circuit_breaker import CircuitBreaker
from .config import CircuitBreakerConfig, CircuitBreakerOpen, CircuitState, PersistenceConfig
from .jsonl_sink import JsonLinesSink
from .writer import AsyncPersistenceWriter, PersistenceSink

__all__ = [
    "CircuitBreaker",
    "CircuitBreakerConfig",
    "CircuitBreakerOpen",
    "CircuitState",
    "PersistenceConfig",
    "JsonLinesSink",
    "AsyncPersistenceWriter",
    "PersistenceSink",
]
