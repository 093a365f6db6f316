"""Alertas de CO₂ por origen (ventana deslizante + cooldown)."""

from .alert_engine import AlertEngine
from .alert_models import AlertEvent, AlertPhase, AlertState, EvaluationOutcome, EvaluationResult
from .alert_rules import AlertRules
from .notification_service import FanOutNotifier, WebhookNotifier, log_notifier

__all__ = [
    "AlertEngine",
    "AlertEvent",
    "AlertPhase",
    "AlertState",
    "EvaluationOutcome",
    "EvaluationResult",
    "AlertRules",
    "FanOutNotifier",
    "WebhookNotifier",
    "log_notifier",
]
