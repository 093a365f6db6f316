"""Fixtures compartidas de los tests del núcleo de huella de carbono."""

from datetime import datetime, timedelta, timezone
from typing import Callable, List

import pytest

from footprint_common.clock import ManualClock
from footprint_common.config import Settings
from footprint_core.domain.visit_record import VisitRecord


NOW = datetime(2024, 3, 10, 12, 0, 0, tzinfo=timezone.utc)


@pytest.fixture
def clock() -> ManualClock:
    """Reloj manual fijado en NOW."""
    return ManualClock(NOW)


@pytest.fixture
def settings() -> Settings:
    """Settings con umbrales bajos (ventana 10 min, umbral 5 g, sin gating de tiempo)."""
    return Settings(
        co2_threshold_g=5.0,
        time_threshold_s=0,
        window_minutes=10,
        cooldown_minutes=5,
        log_capacity=100,
    )


@pytest.fixture
def make_record(clock) -> Callable[..., VisitRecord]:
    """Fábrica de VisitRecord con ids secuenciales."""
    counter = {"n": 0}

    def _make(
        origin: str = "a.test",
        co2: float = 1.0,
        transfer_bytes: int = 1000,
        minutes_ago: float = 0,
        record_id: str = None,
        **extra,
    ) -> VisitRecord:
        counter["n"] += 1
        return VisitRecord(
            id=record_id or f"visit-{counter['n']}",
            timestamp=clock.now() - timedelta(minutes=minutes_ago),
            origin=origin,
            transfer_bytes=transfer_bytes,
            estimated_co2_g=co2,
            **extra,
        )

    return _make


@pytest.fixture
def collected_events() -> List:
    """Lista donde un notificador de prueba guarda los AlertEvent."""
    return []


@pytest.fixture
def notifier(collected_events):
    return collected_events.append
