"""Módulo de endpoints HTTP.

Contiene todos los endpoints de la API organizados por función.
"""

from .aggregates import router as aggregates_router
from .alerts import router as alerts_router
from .carbon import router as carbon_router
from .health import router as health_router
from .ingest import router as ingest_router

__all__ = [
    "aggregates_router",
    "alerts_router",
    "carbon_router",
    "health_router",
    "ingest_router",
]
