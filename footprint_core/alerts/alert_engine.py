"""Motor de alertas de CO₂ por origen.

Máquina de estados por origen:

    IDLE --(active_seconds >= time_threshold_s)--> ARMED
    ARMED --(window_sum >= co2_threshold_g)--> ALERTING (emite AlertEvent)
    ALERTING --> COOLDOWN (durante cooldown_minutes)
    COOLDOWN --> ARMED / IDLE

- Los ticks de actividad (1 Hz) incrementan active_seconds.
- Los ticks de evaluación (cada check_interval_s) calculan la suma de la
  ventana en el momento del chequeo; nunca se precalcula.
- El único efecto además de mutar estado es llamar al notificador.

Lock ordering: la evaluación NUNCA mantiene el lock del origen mientras
consulta la ventana (que toma el lock del coordinator). La ingesta toma
coordinator -> origen; la evaluación toma origen, lo suelta, coordinator,
lo suelta, y de nuevo origen.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Dict, List, Optional

from footprint_common.clock import Clock
from footprint_common.config import Settings
from ..domain.visit_record import VisitRecord
from ..metrics import ALERT_EVALUATIONS, ALERTS_FIRED
from .alert_models import AlertEvent, AlertPhase, AlertState, EvaluationOutcome, EvaluationResult
from .alert_rules import AlertRules
from .notification_service import Notifier, log_notifier

logger = logging.getLogger(__name__)

WindowSource = Callable[[str, datetime, datetime], float]


@dataclass
class _OriginSlot:
    state: AlertState
    lock: threading.Lock = field(default_factory=threading.Lock)


class AlertEngine:
    """Evaluación de alertas con gating por tiempo activo y cooldown.

    Uso:
        engine = AlertEngine(settings, clock, window_source=log.window_sum)
        engine.on_activity_tick("a.test", active=True)
        result = engine.evaluate("a.test")
    """

    def __init__(
        self,
        settings: Settings,
        clock: Clock,
        window_source: WindowSource,
        notifier: Optional[Notifier] = None,
    ):
        self._settings = settings
        self._clock = clock
        self._window_source = window_source
        self._notifier = notifier or log_notifier

        self._slots: Dict[str, _OriginSlot] = {}
        self._slots_lock = threading.Lock()

        # Stats
        self._evaluations = 0
        self._alerts_fired = 0
        self._notifier_failures = 0

    @property
    def settings(self) -> Settings:
        return self._settings

    def update_settings(self, settings: Settings) -> None:
        self._settings = settings
        logger.info(
            "[ALERT] settings updated enabled=%s threshold_g=%.3f time_s=%d window_min=%d cooldown_min=%d",
            settings.alert_enabled, settings.co2_threshold_g, settings.time_threshold_s,
            settings.window_minutes, settings.cooldown_minutes,
        )

    def _slot(self, origin: str) -> _OriginSlot:
        slot = self._slots.get(origin)
        if slot is not None:
            return slot
        with self._slots_lock:
            slot = self._slots.get(origin)
            if slot is None:
                slot = self._slots[origin] = _OriginSlot(AlertState(origin=origin))
            return slot

    def on_record(self, record: VisitRecord, active: Optional[bool] = None) -> None:
        """Actualiza el acumulador del origen con un registro aceptado."""
        slot = self._slot(record.origin)
        with slot.lock:
            state = slot.state
            state.records_seen += 1
            if state.last_record_at is None or record.timestamp > state.last_record_at:
                state.last_record_at = record.timestamp
            if active is not None:
                state.context_active = active

    def on_activity_tick(self, origin: str, active: bool) -> int:
        """Tick de actividad (1 Hz). Suma 1 segundo si el contexto está activo.

        Returns:
            active_seconds acumulado
        """
        slot = self._slot(origin)
        with slot.lock:
            state = slot.state
            state.context_active = active
            if active:
                state.active_seconds += 1
                if state.phase == AlertPhase.IDLE and AlertRules.is_armed(state.active_seconds, self._settings):
                    state.phase = AlertPhase.ARMED
                    logger.debug("[ALERT] origin=%s armed active_seconds=%d", origin, state.active_seconds)
            return state.active_seconds

    def evaluate(self, origin: str) -> EvaluationResult:
        """Tick de evaluación para un origen."""
        settings = self._settings
        now = self._clock.now()
        with self._slots_lock:
            self._evaluations += 1

        if not settings.alert_enabled:
            return self._result(origin, EvaluationOutcome.DISABLED, now)

        slot = self._slot(origin)
        with slot.lock:
            active_seconds = slot.state.active_seconds
            if not AlertRules.is_armed(active_seconds, settings):
                slot.state.phase = AlertPhase.IDLE
                return self._result(origin, EvaluationOutcome.BELOW_TIME_THRESHOLD, now)

        start, end = AlertRules.window_bounds(now, settings)
        window_sum = self._window_source(origin, start, end)

        event: Optional[AlertEvent] = None
        with slot.lock:
            state = slot.state
            state.last_window_sum_g = window_sum
            cooling = AlertRules.in_cooldown(state.last_alert_at, now, settings)

            if not AlertRules.exceeds_threshold(window_sum, settings):
                state.phase = AlertPhase.COOLDOWN if cooling else AlertPhase.ARMED
                outcome = EvaluationOutcome.BELOW_CO2_THRESHOLD
            elif cooling:
                state.phase = AlertPhase.COOLDOWN
                outcome = EvaluationOutcome.COOLDOWN
                logger.debug(
                    "[ALERT] origin=%s suppressed by cooldown window_sum_g=%.4f remaining_s=%.1f",
                    origin, window_sum,
                    AlertRules.cooldown_remaining(state.last_alert_at, now, settings),
                )
            else:
                if state.last_alert_at is None or now > state.last_alert_at:
                    state.last_alert_at = now
                state.phase = AlertPhase.ALERTING
                state.alerts_fired += 1
                outcome = EvaluationOutcome.FIRED
                event = AlertEvent(
                    origin=origin,
                    window_sum_g=window_sum,
                    window_minutes=settings.window_minutes,
                    fired_at=now,
                    threshold_g=settings.co2_threshold_g,
                )

        if event is not None:
            with self._slots_lock:
                self._alerts_fired += 1
            ALERTS_FIRED.inc()
            logger.info(
                "[ALERT] fired origin=%s window_sum_g=%.4f window_min=%d threshold_g=%.4f",
                origin, window_sum, settings.window_minutes, settings.co2_threshold_g,
            )
            self._emit(event)

        return self._result(origin, outcome, now, window_sum, event)

    def evaluate_all(self) -> List[EvaluationResult]:
        return [self.evaluate(origin) for origin in self.origins()]

    def _result(
        self,
        origin: str,
        outcome: EvaluationOutcome,
        now: datetime,
        window_sum: Optional[float] = None,
        event: Optional[AlertEvent] = None,
    ) -> EvaluationResult:
        ALERT_EVALUATIONS.labels(outcome=outcome.value).inc()
        return EvaluationResult(
            origin=origin,
            outcome=outcome,
            evaluated_at=now,
            window_sum_g=window_sum,
            event=event,
        )

    def _emit(self, event: AlertEvent) -> None:
        try:
            self._notifier(event)
        except Exception as e:
            with self._slots_lock:
                self._notifier_failures += 1
            logger.error("[ALERT] notifier failed origin=%s err=%s", event.origin, e)

    def get_state(self, origin: str) -> Optional[AlertState]:
        """Copia del estado de un origen (None si nunca se observó)."""
        slot = self._slots.get(origin)
        if slot is None:
            return None
        with slot.lock:
            return slot.state.copy()

    def origins(self) -> List[str]:
        with self._slots_lock:
            return list(self._slots.keys())

    def reset_active(self, origin: str) -> None:
        """Resetea active_seconds (solo debug/testing)."""
        slot = self._slots.get(origin)
        if slot is None:
            return
        with slot.lock:
            slot.state.active_seconds = 0
            slot.state.phase = AlertPhase.IDLE
        logger.info("[ALERT] active time reset origin=%s", origin)

    def reset_all(self) -> None:
        with self._slots_lock:
            self._slots.clear()

    @property
    def stats(self) -> dict:
        with self._slots_lock:
            return {
                "origins": len(self._slots),
                "evaluations": self._evaluations,
                "alerts_fired": self._alerts_fired,
                "notifier_failures": self._notifier_failures,
            }
