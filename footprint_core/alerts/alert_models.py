"""Modelos del motor de alertas de CO₂ por origen."""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional


class AlertPhase(str, Enum):
    """Fases de la máquina de estados por origen."""
    IDLE = "idle"
    ARMED = "armed"
    ALERTING = "alerting"
    COOLDOWN = "cooldown"


class EvaluationOutcome(str, Enum):
    """Resultado de un tick de evaluación."""
    DISABLED = "disabled"
    BELOW_TIME_THRESHOLD = "below_time_threshold"
    BELOW_CO2_THRESHOLD = "below_co2_threshold"
    COOLDOWN = "cooldown"
    FIRED = "fired"


@dataclass
class AlertState:
    """Estado transitorio de un origen (no se persiste).

    `active_seconds` solo crece; se resetea únicamente vía reset_active.
    `last_alert_at` solo avanza a instantes posteriores.
    """
    origin: str
    active_seconds: int = 0
    last_alert_at: Optional[datetime] = None
    phase: AlertPhase = AlertPhase.IDLE
    context_active: bool = False
    records_seen: int = 0
    last_record_at: Optional[datetime] = None
    last_window_sum_g: float = 0.0
    alerts_fired: int = 0

    def copy(self) -> "AlertState":
        return replace(self)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "origin": self.origin,
            "active_seconds": self.active_seconds,
            "last_alert_at": self.last_alert_at.isoformat() if self.last_alert_at else None,
            "phase": self.phase.value,
            "context_active": self.context_active,
            "records_seen": self.records_seen,
            "last_record_at": self.last_record_at.isoformat() if self.last_record_at else None,
            "last_window_sum_g": self.last_window_sum_g,
            "alerts_fired": self.alerts_fired,
        }


@dataclass(frozen=True)
class AlertEvent:
    """Evento emitido al notificador."""
    origin: str
    window_sum_g: float
    window_minutes: int
    fired_at: datetime
    threshold_g: float

    @property
    def message(self) -> str:
        return (
            f"High CO₂ on {self.origin}: {self.window_sum_g:.2f} g "
            f"in last {self.window_minutes} min"
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "origin": self.origin,
            "window_sum_g": self.window_sum_g,
            "window_minutes": self.window_minutes,
            "fired_at": self.fired_at.isoformat(),
            "threshold_g": self.threshold_g,
            "message": self.message,
        }


@dataclass(frozen=True)
class EvaluationResult:
    origin: str
    outcome: EvaluationOutcome
    evaluated_at: datetime
    window_sum_g: Optional[float] = None
    event: Optional[AlertEvent] = None

    @property
    def fired(self) -> bool:
        return self.event is not None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "origin": self.origin,
            "outcome": self.outcome.value,
            "evaluated_at": self.evaluated_at.isoformat(),
            "window_sum_g": self.window_sum_g,
            "fired": self.fired,
            "event": self.event.to_dict() if self.event else None,
        }
