"""Coordinador de ingesta.

Serializa todas las mutaciones de Event Log + Aggregate Index bajo un
único lock, de modo que un append confirmado siempre es visible junto a
su actualización de agregados (sin lecturas parciales). El estado de
alertas por origen tiene su propio lock por origen.

Flujo:
    colector -> ingest(record) -> dedup -> EventLog.append
             -> AggregateIndex.update -> AlertEngine.on_record
             (fuera del lock) -> persistencia best-effort -> listeners

La evaluación de alertas NO ocurre en ingest; corre en su propio ticker.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Any, Callable, Iterable, List, Mapping, Optional, Set, Tuple, Union

from footprint_common.clock import Clock, SystemClock
from footprint_common.config import Settings
from .aggregates import Aggregate, AggregateIndex, DayTotal, OriginTotal
from .alerts import AlertEngine, AlertState, EvaluationResult
from .alerts.notification_service import Notifier
from .domain.validators import ValidationResult, normalize_visit_record, validate_visit_record
from .domain.visit_record import VisitRecord
from .event_log import EventLog
from .metrics import EVENT_LOG_SIZE, LOG_EVICTIONS, VISITS_INGESTED
from .persistence import AsyncPersistenceWriter
from .scheduling import ContextHandle, PeriodicTask

logger = logging.getLogger(__name__)


class IngestStatus(str, Enum):
    ACCEPTED = "accepted"
    DUPLICATE = "duplicate"
    INVALID = "invalid"


@dataclass(frozen=True)
class IngestResult:
    """Resultado de una ingesta. Un registro inválido nunca lanza."""

    status: IngestStatus
    record_id: Optional[str] = None
    error: Optional[str] = None
    evicted: int = 0
    warnings: Tuple[str, ...] = ()

    @property
    def accepted(self) -> bool:
        return self.status == IngestStatus.ACCEPTED

    @property
    def duplicate(self) -> bool:
        return self.status == IngestStatus.DUPLICATE


@dataclass
class BulkLoadResult:
    accepted: int = 0
    duplicates: int = 0
    invalid: int = 0
    evicted: int = 0
    errors: List[str] = field(default_factory=list)

    @property
    def total(self) -> int:
        return self.accepted + self.duplicates + self.invalid


@dataclass(frozen=True)
class ChangeNotice:
    """Notificación para lectores suscritos (dashboard/export)."""

    kind: str  # "ingest" | "bulk_load" | "reset"
    record_ids: Tuple[str, ...] = ()


@dataclass(frozen=True)
class DashboardSnapshot:
    """Vista consistente (una sola adquisición del lock)."""

    taken_at: datetime
    log_size: int
    totals: Aggregate
    by_day: List[DayTotal]
    top_origins: List[OriginTotal]
    recent_visits: List[VisitRecord]

    def to_dict(self) -> dict:
        return {
            "taken_at": self.taken_at.isoformat(),
            "log_size": self.log_size,
            "totals": self.totals.to_dict(),
            "by_day": [d.to_dict() for d in self.by_day],
            "top_origins": [o.to_dict() for o in self.top_origins],
            "recent_visits": [v.to_dict() for v in self.recent_visits],
        }


ChangeListener = Callable[[ChangeNotice], None]
RecordInput = Union[VisitRecord, Mapping[str, Any]]


class IngestionCoordinator:
    """Store explícito del núcleo (sin estado global).

    Uso:
        with IngestionCoordinator(settings) as coordinator:
            coordinator.ingest_payload({"id": "...", "ts": "...", "origin": "a.test"})
            coordinator.by_origin_snapshot(top_k=10)
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        clock: Optional[Clock] = None,
        notifier: Optional[Notifier] = None,
        persistence: Optional[AsyncPersistenceWriter] = None,
        on_evict: Optional[Callable[[VisitRecord], None]] = None,
    ):
        self._settings = settings or Settings()
        self._clock = clock or SystemClock()

        self._lock = threading.Lock()
        self._log = EventLog(capacity=self._settings.log_capacity, on_evict=on_evict)
        self._index = AggregateIndex()
        self._alerts = AlertEngine(
            self._settings,
            self._clock,
            window_source=self.window_sum,
            notifier=notifier,
        )

        self._persistence = persistence
        if self._persistence is not None:
            self._persistence.start()

        self._listeners: List[ChangeListener] = []
        self._listeners_lock = threading.Lock()
        self._contexts: Set[ContextHandle] = set()
        self._contexts_lock = threading.Lock()
        self._evaluation_loop: Optional[PeriodicTask] = None
        self._closed = False

        logger.info(
            "[INGEST] coordinator initialized capacity=%d alerts_enabled=%s",
            self._settings.log_capacity, self._settings.alert_enabled,
        )

    # ------------------------------------------------------------------
    # Escritura
    # ------------------------------------------------------------------

    @property
    def settings(self) -> Settings:
        return self._settings

    @property
    def clock(self) -> Clock:
        return self._clock

    def ingest(self, record: VisitRecord, active: Optional[bool] = None) -> IngestResult:
        """Ingesta atómica de un VisitRecord.

        El registro se re-normaliza (timestamp UTC, números finitos no
        negativos); sin id u origin vuelve como INVALID sin lanzar.

        Args:
            record: Registro canónico
            active: Estado de actividad del contexto que lo produjo (opcional)
        """
        checked = normalize_visit_record(record)
        if not checked.valid:
            return self._invalid(checked, getattr(record, "id", None))
        record = checked.record

        result = self._apply(record, active)
        if result.accepted:
            self._persist(record)
            self._notify(ChangeNotice("ingest", (record.id,)))
        return result

    def ingest_payload(
        self,
        data: Mapping[str, Any],
        active: Optional[bool] = None,
    ) -> IngestResult:
        """Valida un payload crudo del colector y lo ingesta."""
        validation = validate_visit_record(data, self._settings)
        if not validation.valid:
            raw_id = data.get("id") if isinstance(data, Mapping) else None
            return self._invalid(validation, raw_id)

        result = self.ingest(validation.record, active)
        if validation.warnings:
            return IngestResult(
                status=result.status,
                record_id=result.record_id,
                evicted=result.evicted,
                warnings=tuple(validation.warnings),
            )
        return result

    def bulk_load(self, items: Iterable[RecordInput], persist: bool = False) -> BulkLoadResult:
        """Siembra/reconcilia desde registros deserializados.

        Preserva dedup, capacidad y agregados exactamente como ingest.
        Por defecto no re-escribe en el sink (los datos ya vienen de ahí).
        """
        summary = BulkLoadResult()
        accepted_ids: List[str] = []

        for item in items:
            if isinstance(item, VisitRecord):
                validation = normalize_visit_record(item)
            else:
                validation = validate_visit_record(item, self._settings)
            if not validation.valid:
                summary.invalid += 1
                summary.errors.append(validation.error or "invalid record")
                VISITS_INGESTED.labels(status=IngestStatus.INVALID.value).inc()
                continue
            record = validation.record

            result = self._apply(record, None)
            if result.accepted:
                summary.accepted += 1
                summary.evicted += result.evicted
                accepted_ids.append(record.id)
                if persist:
                    self._persist(record)
            else:
                summary.duplicates += 1

        logger.info(
            "[INGEST] bulk load accepted=%d duplicates=%d invalid=%d evicted=%d",
            summary.accepted, summary.duplicates, summary.invalid, summary.evicted,
        )
        if accepted_ids:
            self._notify(ChangeNotice("bulk_load", tuple(accepted_ids)))
        return summary

    def _invalid(self, validation: ValidationResult, raw_id: Any) -> IngestResult:
        VISITS_INGESTED.labels(status=IngestStatus.INVALID.value).inc()
        return IngestResult(
            status=IngestStatus.INVALID,
            record_id=str(raw_id) if raw_id is not None else None,
            error=validation.error,
            warnings=tuple(validation.warnings),
        )

    def _apply(self, record: VisitRecord, active: Optional[bool]) -> IngestResult:
        with self._lock:
            outcome = self._log.append(record)
            if outcome.accepted:
                self._index.update(record)
                self._alerts.on_record(record, active)
            log_size = len(self._log)

        EVENT_LOG_SIZE.set(log_size)
        if not outcome.accepted:
            VISITS_INGESTED.labels(status=IngestStatus.DUPLICATE.value).inc()
            return IngestResult(status=IngestStatus.DUPLICATE, record_id=record.id)

        VISITS_INGESTED.labels(status=IngestStatus.ACCEPTED.value).inc()
        if outcome.evicted:
            LOG_EVICTIONS.inc(len(outcome.evicted))
        logger.debug(
            "[INGEST] accepted id=%s origin=%s bytes=%d co2_g=%.6f",
            record.id, record.origin, record.transfer_bytes, record.estimated_co2_g,
        )
        return IngestResult(
            status=IngestStatus.ACCEPTED,
            record_id=record.id,
            evicted=len(outcome.evicted),
        )

    def _persist(self, record: VisitRecord) -> None:
        if self._persistence is None:
            return
        try:
            self._persistence.submit(record)
        except Exception as e:
            logger.warning("[PERSIST] submit failed id=%s err=%s", record.id, e)

    # ------------------------------------------------------------------
    # Lectura
    # ------------------------------------------------------------------

    def window_sum(self, origin: str, start: datetime, end: datetime) -> float:
        """Suma de CO₂ del origen en [start, end] sobre el log retenido."""
        with self._lock:
            return self._log.window_sum(origin, start, end)

    def log_snapshot(self) -> List[VisitRecord]:
        with self._lock:
            return self._log.snapshot()

    def _today(self) -> date:
        return self._clock.now().date()

    def by_day_snapshot(self, last_n_days: int = 7) -> List[DayTotal]:
        today = self._today()
        with self._lock:
            return self._index.by_day_snapshot(last_n_days, today)

    def by_origin_snapshot(self, top_k: int = 10, order_by: str = "bytes") -> List[OriginTotal]:
        with self._lock:
            return self._index.by_origin_snapshot(top_k, order_by)

    def totals(self) -> Aggregate:
        with self._lock:
            return self._index.totals()

    def day_aggregates(self) -> dict:
        with self._lock:
            return self._index.all_days()

    def origin_aggregates(self) -> dict:
        with self._lock:
            return self._index.all_origins()

    def dashboard_snapshot(
        self,
        last_n_days: int = 7,
        top_k: int = 10,
        recent: int = 50,
        order_by: str = "bytes",
    ) -> DashboardSnapshot:
        """Log + ambos mapas leídos bajo una sola adquisición del lock."""
        now = self._clock.now()
        with self._lock:
            records = self._log.snapshot()
            snapshot = DashboardSnapshot(
                taken_at=now,
                log_size=len(records),
                totals=self._index.totals(),
                by_day=self._index.by_day_snapshot(last_n_days, now.date()),
                top_origins=self._index.by_origin_snapshot(top_k, order_by),
                recent_visits=list(reversed(records[-recent:])) if recent > 0 else [],
            )
        return snapshot

    # ------------------------------------------------------------------
    # Alertas
    # ------------------------------------------------------------------

    def record_activity(self, origin: str, active: bool) -> int:
        """Tick de actividad (1 Hz) empujado por el colector."""
        return self._alerts.on_activity_tick(origin, active)

    def evaluate_alerts(self, origin: str) -> EvaluationResult:
        return self._alerts.evaluate(origin)

    def evaluate_all(self) -> List[EvaluationResult]:
        return self._alerts.evaluate_all()

    def alert_state(self, origin: str) -> Optional[AlertState]:
        return self._alerts.get_state(origin)

    def alert_origins(self) -> List[str]:
        return self._alerts.origins()

    def reset_active(self, origin: str) -> None:
        self._alerts.reset_active(origin)

    def open_context(
        self,
        origin: str,
        activity_probe: Optional[Callable[[], bool]] = None,
    ) -> ContextHandle:
        """Abre un contexto de navegación con sus tickers.

        Args:
            origin: Origen del contexto
            activity_probe: Si se da, se muestrea a 1 Hz (visible y con foco)

        Returns:
            ContextHandle ya iniciado; `close()` cancela los tickers
        """
        if self._closed:
            raise RuntimeError("coordinator is closed")

        evaluation = PeriodicTask(
            f"eval:{origin}",
            self._settings.check_interval_s,
            lambda: self._alerts.evaluate(origin),
        )
        activity = None
        if activity_probe is not None:
            activity = PeriodicTask(
                f"activity:{origin}",
                ContextHandle.ACTIVITY_INTERVAL_S,
                lambda: self._alerts.on_activity_tick(origin, bool(activity_probe())),
            )

        handle = ContextHandle(origin, evaluation, activity, on_close=self._forget_context)
        with self._contexts_lock:
            self._contexts.add(handle)
        logger.info("[CONTEXT] opened origin=%s check_interval=%ds", origin, self._settings.check_interval_s)
        return handle.start()

    def start_evaluation_loop(self) -> PeriodicTask:
        """Ticker único que evalúa todos los orígenes conocidos cada check_interval_s.

        Lo usa el servicio HTTP, donde el colector solo empuja ticks de
        actividad y no hay contextos abiertos en proceso. Idempotente.
        """
        if self._closed:
            raise RuntimeError("coordinator is closed")

        with self._contexts_lock:
            if self._evaluation_loop is None:
                self._evaluation_loop = PeriodicTask(
                    "eval:all",
                    self._settings.check_interval_s,
                    self._alerts.evaluate_all,
                )
                self._evaluation_loop.start()
                logger.info(
                    "[CONTEXT] evaluation loop started check_interval=%ds",
                    self._settings.check_interval_s,
                )
            return self._evaluation_loop

    def _forget_context(self, handle: ContextHandle) -> None:
        with self._contexts_lock:
            self._contexts.discard(handle)

    # ------------------------------------------------------------------
    # Suscripciones
    # ------------------------------------------------------------------

    def subscribe(self, listener: ChangeListener) -> Callable[[], None]:
        """Registra un listener de cambios.

        Returns:
            Función para desuscribirse
        """
        with self._listeners_lock:
            self._listeners.append(listener)

        def unsubscribe() -> None:
            with self._listeners_lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return unsubscribe

    def _notify(self, notice: ChangeNotice) -> None:
        with self._listeners_lock:
            listeners = list(self._listeners)
        for listener in listeners:
            try:
                listener(notice)
            except Exception as e:
                logger.warning("[INGEST] change listener failed kind=%s err=%s", notice.kind, e)

    # ------------------------------------------------------------------
    # Administración
    # ------------------------------------------------------------------

    def reset_all(self) -> int:
        """Vacía log, agregados y estado de alertas.

        Returns:
            Número de registros eliminados del log
        """
        with self._lock:
            removed = self._log.clear()
            self._index.reset()
            self._alerts.reset_all()
        EVENT_LOG_SIZE.set(0)
        logger.warning("[INGEST] reset-all removed=%d", removed)
        self._notify(ChangeNotice("reset"))
        return removed

    def update_settings(self, settings: Settings) -> None:
        """Aplica nuevos settings.

        Los tickers ya abiertos conservan su intervalo; los nuevos
        contextos usan el nuevo check_interval_s.
        """
        with self._lock:
            evicted = []
            if settings.log_capacity != self._log.capacity:
                evicted = self._log.resize(settings.log_capacity)
            self._settings = settings
            log_size = len(self._log)
        if evicted:
            LOG_EVICTIONS.inc(len(evicted))
        EVENT_LOG_SIZE.set(log_size)
        self._alerts.update_settings(settings)

    def close(self) -> None:
        """Teardown: detiene todos los tickers y el writer de persistencia."""
        if self._closed:
            return
        self._closed = True

        with self._contexts_lock:
            contexts = list(self._contexts)
            loop, self._evaluation_loop = self._evaluation_loop, None
        for handle in contexts:
            handle.close()
        if loop is not None:
            loop.stop()

        if self._persistence is not None:
            self._persistence.stop(flush_remaining=True)
        logger.info("[INGEST] coordinator closed")

    def __enter__(self) -> "IngestionCoordinator":
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    @property
    def stats(self) -> dict:
        with self._lock:
            log_stats = self._log.stats
        with self._contexts_lock:
            open_contexts = len(self._contexts)
            evaluation_loop = self._evaluation_loop is not None and self._evaluation_loop.running
        return {
            "event_log": log_stats,
            "alerts": self._alerts.stats,
            "open_contexts": open_contexts,
            "evaluation_loop": evaluation_loop,
            "persistence": self._persistence.stats if self._persistence else None,
        }
