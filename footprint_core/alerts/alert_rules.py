"""Reglas de negocio para las alertas de CO₂."""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Optional, Tuple

from footprint_common.config import Settings


class AlertRules:
    """Reglas y umbrales del motor de alertas.

    Todos los umbrales son inclusivos (>=). Las duraciones de ventana y
    cooldown son minutos literales.
    """

    @staticmethod
    def is_armed(active_seconds: int, settings: Settings) -> bool:
        """El origen estuvo activo el tiempo mínimo requerido."""
        return active_seconds >= settings.time_threshold_s

    @staticmethod
    def window_bounds(now: datetime, settings: Settings) -> Tuple[datetime, datetime]:
        """Ventana [now - window_minutes, now], inclusiva en ambos extremos."""
        return now - timedelta(minutes=settings.window_minutes), now

    @staticmethod
    def exceeds_threshold(window_sum_g: float, settings: Settings) -> bool:
        return window_sum_g >= settings.co2_threshold_g

    @staticmethod
    def in_cooldown(
        last_alert_at: Optional[datetime],
        now: datetime,
        settings: Settings,
    ) -> bool:
        """Regla: no volver a alertar antes de cooldown_minutes."""
        if last_alert_at is None:
            return False
        return now - last_alert_at < timedelta(minutes=settings.cooldown_minutes)

    @staticmethod
    def cooldown_remaining(
        last_alert_at: Optional[datetime],
        now: datetime,
        settings: Settings,
    ) -> float:
        """Segundos restantes de cooldown (0 si no aplica)."""
        if last_alert_at is None:
            return 0.0
        remaining = timedelta(minutes=settings.cooldown_minutes) - (now - last_alert_at)
        return max(0.0, remaining.total_seconds())
