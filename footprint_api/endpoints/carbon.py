"""Intensidad de carbono de la red por país."""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends

from footprint_core.carbon_intensity import CarbonIntensityProvider

from ..dependencies import get_carbon_provider
from ..schemas import CarbonIntensityOut

router = APIRouter(tags=["carbon"])


@router.get("/carbon-intensity", response_model=CarbonIntensityOut)
def carbon_intensity(
    country: Optional[str] = None,
    provider: CarbonIntensityProvider = Depends(get_carbon_provider),
):
    return provider.get(country).to_dict()
