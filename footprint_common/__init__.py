"""Configuración y fuente de tiempo compartidas."""

from .clock import Clock, ManualClock, SystemClock
from .config import Settings, get_settings

__all__ = [
    "Clock",
    "ManualClock",
    "SystemClock",
    "Settings",
    "get_settings",
]
