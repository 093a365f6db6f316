"""Writer asíncrono best-effort hacia un sink de persistencia.

La ingesta solo encola (fuera de la sección crítica del coordinator); un
thread de fondo escribe al sink. Los fallos del sink se loguean y se
descartan: nunca bloquean ni hacen fallar la ingesta.

Características:
- Cola acotada con drop oldest/newest cuando se llena
- Sink protegido por circuit breaker
- Flush de pendientes al detener
"""

from __future__ import annotations

import logging
import threading
from collections import deque
from typing import Deque, Optional, Protocol

from ..domain.visit_record import VisitRecord
from ..metrics import PERSISTENCE_FAILURES
from .circuit_breaker import CircuitBreaker
from .config import CircuitBreakerOpen, PersistenceConfig

logger = logging.getLogger(__name__)


class PersistenceSink(Protocol):
    """Backend de almacenamiento (colaborador externo)."""

    def write(self, record: VisitRecord) -> None: ...


class AsyncPersistenceWriter:
    """Cola + thread de escritura hacia un PersistenceSink.

    Uso:
        writer = AsyncPersistenceWriter(JsonLinesSink("visits.jsonl"))
        writer.start()
        writer.submit(record)   # nunca bloquea
        writer.stop()
    """

    def __init__(
        self,
        sink: PersistenceSink,
        config: Optional[PersistenceConfig] = None,
        breaker: Optional[CircuitBreaker] = None,
    ):
        self._sink = sink
        self._config = config or PersistenceConfig.from_env()
        self._breaker = breaker or CircuitBreaker(f"sink:{type(sink).__name__}")

        self._queue: Deque[VisitRecord] = deque()
        self._lock = threading.Lock()
        self._not_empty = threading.Condition(self._lock)
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

        # Métricas
        self._submitted = 0
        self._written = 0
        self._failed = 0
        self._dropped = 0

    def start(self) -> None:
        if self._thread is not None and self._thread.is_alive():
            return
        self._stop_event.clear()
        self._thread = threading.Thread(target=self._write_loop, daemon=True, name="persistence-writer")
        self._thread.start()
        logger.info(
            "[PERSIST] writer started max_queue=%d drop_oldest=%s",
            self._config.max_queue_size, self._config.drop_oldest,
        )

    def stop(self, flush_remaining: bool = True, timeout: float = 5.0) -> None:
        """Detiene el writer.

        Args:
            flush_remaining: Si True, escribe los pendientes antes de parar
        """
        self._stop_event.set()
        with self._not_empty:
            self._not_empty.notify_all()
        if self._thread is not None:
            self._thread.join(timeout=timeout)
            self._thread = None

        if flush_remaining:
            while True:
                record = self._pop()
                if record is None:
                    break
                self._write(record)

        logger.info("[PERSIST] writer stopped. %s", self.stats)

    def submit(self, record: VisitRecord) -> bool:
        """Encola un registro sin bloquear.

        Returns:
            True si se encoló, False si se descartó (cola llena, drop newest)
        """
        with self._not_empty:
            if len(self._queue) >= self._config.max_queue_size:
                self._dropped += 1
                PERSISTENCE_FAILURES.labels(reason="dropped").inc()
                if not self._config.drop_oldest:
                    logger.debug("[PERSIST] queue full, dropped newest id=%s", record.id)
                    return False
                dropped = self._queue.popleft()
                logger.debug("[PERSIST] queue full, dropped oldest id=%s", dropped.id)

            self._queue.append(record)
            self._submitted += 1
            self._not_empty.notify()
            return True

    def _pop(self) -> Optional[VisitRecord]:
        with self._lock:
            return self._queue.popleft() if self._queue else None

    def _write_loop(self) -> None:
        while not self._stop_event.is_set():
            with self._not_empty:
                if not self._queue:
                    self._not_empty.wait(self._config.poll_timeout_s)
                if not self._queue or self._stop_event.is_set():
                    continue
                record = self._queue.popleft()
            self._write(record)

    def _write(self, record: VisitRecord) -> None:
        try:
            self._breaker.call(lambda: self._sink.write(record))
            self._written += 1
        except CircuitBreakerOpen as e:
            self._failed += 1
            PERSISTENCE_FAILURES.labels(reason="circuit_open").inc()
            logger.debug("[PERSIST] skipped id=%s: %s", record.id, e)
        except Exception as e:
            self._failed += 1
            PERSISTENCE_FAILURES.labels(reason="error").inc()
            logger.warning("[PERSIST] sink write failed id=%s err=%s", record.id, e)

    @property
    def stats(self) -> dict:
        with self._lock:
            pending = len(self._queue)
        return {
            "pending": pending,
            "submitted": self._submitted,
            "written": self._written,
            "failed": self._failed,
            "dropped": self._dropped,
            "breaker": self._breaker.get_stats(),
        }
