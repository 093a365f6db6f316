"""Tareas periódicas con handle de cancelación explícito.

Cada contexto de navegación abierto posee dos tickers:
- actividad (1 Hz): muestrea si el contexto está visible y con foco
- evaluación (cada check_interval_s): corre el tick de alertas del origen

Al cerrar el contexto ambos se detienen (sin timers colgados).
"""

from __future__ import annotations

import logging
import threading
from typing import Callable, Optional

logger = logging.getLogger(__name__)


class PeriodicTask:
    """Ejecuta `fn` cada `interval_s` segundos en un thread daemon.

    Uso:
        task = PeriodicTask("eval:a.test", 10.0, fn)
        task.start()
        ...
        task.stop()
    """

    def __init__(self, name: str, interval_s: float, fn: Callable[[], object]):
        if interval_s <= 0:
            raise ValueError("interval_s must be > 0")
        self.name = name
        self._interval_s = float(interval_s)
        self._fn = fn
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

        # Métricas
        self._runs = 0
        self._errors = 0

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    @property
    def interval_s(self) -> float:
        return self._interval_s

    def start(self) -> None:
        """Inicia el thread del ticker (idempotente)."""
        if self.running:
            return
        self._stop_event.clear()
        self._thread = threading.Thread(target=self._loop, daemon=True, name=self.name)
        self._thread.start()
        logger.debug("[TICKER] %s started interval=%.1fs", self.name, self._interval_s)

    def stop(self, timeout: float = 5.0) -> None:
        """Detiene el ticker y espera al thread."""
        self._stop_event.set()
        thread = self._thread
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout=timeout)
        self._thread = None
        logger.debug("[TICKER] %s stopped runs=%d errors=%d", self.name, self._runs, self._errors)

    def run_once(self) -> None:
        try:
            self._fn()
            self._runs += 1
        except Exception as e:
            self._errors += 1
            logger.error("[TICKER] %s error: %s", self.name, e)

    def _loop(self) -> None:
        # wait() returns True as soon as stop() is called
        while not self._stop_event.wait(self._interval_s):
            self.run_once()

    @property
    def stats(self) -> dict:
        return {
            "name": self.name,
            "interval_s": self._interval_s,
            "running": self.running,
            "runs": self._runs,
            "errors": self._errors,
        }


class ContextHandle:
    """Handle de un contexto de navegación con sus tickers.

    `close()` cancela ambos tickers; es idempotente.
    """

    ACTIVITY_INTERVAL_S = 1.0

    def __init__(
        self,
        origin: str,
        evaluation: PeriodicTask,
        activity: Optional[PeriodicTask] = None,
        on_close: Optional[Callable[["ContextHandle"], None]] = None,
    ):
        self.origin = origin
        self._evaluation = evaluation
        self._activity = activity
        self._on_close = on_close
        self._closed = False
        self._lock = threading.Lock()

    @property
    def closed(self) -> bool:
        return self._closed

    def start(self) -> "ContextHandle":
        if self._activity is not None:
            self._activity.start()
        self._evaluation.start()
        return self

    def close(self) -> None:
        with self._lock:
            if self._closed:
                return
            self._closed = True
        if self._activity is not None:
            self._activity.stop()
        self._evaluation.stop()
        if self._on_close is not None:
            self._on_close(self)
        logger.info("[CONTEXT] closed origin=%s", self.origin)

    def __enter__(self) -> "ContextHandle":
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    @property
    def stats(self) -> dict:
        return {
            "origin": self.origin,
            "closed": self._closed,
            "evaluation": self._evaluation.stats,
            "activity": self._activity.stats if self._activity else None,
        }
