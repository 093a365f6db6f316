"""Health, stats y métricas Prometheus."""

from fastapi import APIRouter, Depends, Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from ..dependencies import get_carbon_provider, get_coordinator

router = APIRouter(tags=["health"])


@router.get("/health")
def health():
    """Liveness probe: ok while the process is running."""
    return {"status": "ok"}


@router.get("/stats")
def stats(
    coordinator=Depends(get_coordinator),
    provider=Depends(get_carbon_provider),
):
    """Stats en proceso de cada componente."""
    result = coordinator.stats
    result["carbon_intensity"] = provider.get_stats()
    return result


@router.get("/metrics")
def metrics():
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)
