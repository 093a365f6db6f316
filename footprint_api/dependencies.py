"""Dependencias FastAPI: acceso al coordinator y al proveedor de intensidad."""

from __future__ import annotations

from fastapi import Request

from footprint_core.carbon_intensity import CarbonIntensityProvider
from footprint_core.coordinator import IngestionCoordinator


def get_coordinator(request: Request) -> IngestionCoordinator:
    return request.app.state.coordinator


def get_carbon_provider(request: Request) -> CarbonIntensityProvider:
    return request.app.state.carbon_provider
