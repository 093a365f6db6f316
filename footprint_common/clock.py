"""Fuente de tiempo inyectable.

Única fuente de "ahora" para ventanas deslizantes y cooldown. En
producción se usa SystemClock; en tests, ManualClock para avanzar el
tiempo de forma determinista.
"""

from __future__ import annotations

import threading
from datetime import datetime, timedelta, timezone
from typing import Optional, Protocol, runtime_checkable


@runtime_checkable
class Clock(Protocol):
    """Provee el instante actual (UTC, tz-aware)."""

    def now(self) -> datetime: ...


class SystemClock:
    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class ManualClock:
    """Reloj controlado manualmente. Thread-safe."""

    def __init__(self, start: Optional[datetime] = None) -> None:
        self._now = as_utc(start) if start else datetime.now(timezone.utc)
        self._lock = threading.Lock()

    def now(self) -> datetime:
        with self._lock:
            return self._now

    def advance(
        self,
        *,
        seconds: float = 0,
        minutes: float = 0,
        days: float = 0,
    ) -> datetime:
        with self._lock:
            self._now = self._now + timedelta(days=days, minutes=minutes, seconds=seconds)
            return self._now

    def set(self, instant: datetime) -> None:
        with self._lock:
            self._now = as_utc(instant)


def as_utc(dt: datetime) -> datetime:
    # Naive datetimes are interpreted as UTC.
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)
