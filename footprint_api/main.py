"""Aplicación FastAPI: adaptador de transporte sobre el coordinator.

El colector (extensión/dashboard) envía visitas y ticks de actividad;
la API solo delega en IngestionCoordinator y no guarda estado propio.
"""

from __future__ import annotations

import logging
import os
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI

from footprint_common.config import get_settings
from footprint_core.alerts import FanOutNotifier, WebhookNotifier, log_notifier
from footprint_core.carbon_intensity import CarbonIntensityProvider
from footprint_core.coordinator import IngestionCoordinator
from footprint_core.persistence import AsyncPersistenceWriter, JsonLinesSink

from .endpoints import (
    aggregates_router,
    alerts_router,
    carbon_router,
    health_router,
    ingest_router,
)

logger = logging.getLogger(__name__)


def build_coordinator() -> IngestionCoordinator:
    """Construye el coordinator desde el entorno.

    - FOOTPRINT_PERSIST_PATH: JSONL para persistir y sembrar al arrancar
    - FOOTPRINT_ALERT_WEBHOOK_URL: push de alertas además del log
    """
    settings = get_settings()

    notifiers = [log_notifier]
    if os.getenv("FOOTPRINT_ALERT_WEBHOOK_URL"):
        notifiers.append(WebhookNotifier())

    sink = None
    writer = None
    persist_path = os.getenv("FOOTPRINT_PERSIST_PATH")
    if persist_path:
        sink = JsonLinesSink(persist_path)
        writer = AsyncPersistenceWriter(sink)

    coordinator = IngestionCoordinator(
        settings,
        notifier=FanOutNotifier(notifiers),
        persistence=writer,
    )

    if sink is not None:
        loaded = coordinator.bulk_load(sink.load())
        logger.info("[PERSIST] seeded from %s accepted=%d", sink.path, loaded.accepted)

    return coordinator


def create_app(
    coordinator: Optional[IngestionCoordinator] = None,
    carbon_provider: Optional[CarbonIntensityProvider] = None,
) -> FastAPI:
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        app.state.coordinator.start_evaluation_loop()
        yield
        app.state.coordinator.close()

    app = FastAPI(title="CO2 Footprint Service", version="0.1.0", lifespan=lifespan)
    app.state.coordinator = coordinator or build_coordinator()
    app.state.carbon_provider = carbon_provider or CarbonIntensityProvider.from_env()

    app.include_router(health_router)
    app.include_router(ingest_router)
    app.include_router(aggregates_router)
    app.include_router(alerts_router)
    app.include_router(carbon_router)
    return app


app = create_app()
