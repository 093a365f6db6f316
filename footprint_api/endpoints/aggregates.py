"""Endpoints de lectura: log de visitas y agregados."""

from __future__ import annotations

from typing import List

from fastapi import APIRouter, Depends, HTTPException, Query

from footprint_core.aggregates import AggregateIndex
from footprint_core.coordinator import IngestionCoordinator
from footprint_core.domain import detect_issues

from ..auth import require_api_key
from ..dependencies import get_coordinator
from ..schemas import AggregateOut, DayTotalOut, OriginTotalOut, ResetOut

router = APIRouter(tags=["aggregates"])


@router.get("/visits")
def list_visits(
    limit: int = Query(default=50, ge=0),
    coordinator: IngestionCoordinator = Depends(get_coordinator),
):
    """Visitas más recientes primero, con los problemas detectados."""
    records = coordinator.log_snapshot()
    recent = records[-limit:] if limit else []
    return {
        "count": len(records),
        "visits": [
            {**r.to_dict(), "issues": [i.to_dict() for i in detect_issues(r)]}
            for r in reversed(recent)
        ],
    }


@router.get("/aggregates/by-day", response_model=List[DayTotalOut])
def aggregates_by_day(
    days: int = Query(default=7, ge=0, le=AggregateIndex.MAX_DAYS),
    coordinator: IngestionCoordinator = Depends(get_coordinator),
):
    return [d.to_dict() for d in coordinator.by_day_snapshot(days)]


@router.get("/aggregates/by-origin", response_model=List[OriginTotalOut])
def aggregates_by_origin(
    top_k: int = Query(default=10, ge=0),
    order_by: str = Query(default="bytes"),
    coordinator: IngestionCoordinator = Depends(get_coordinator),
):
    try:
        origins = coordinator.by_origin_snapshot(top_k, order_by)
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))
    return [o.to_dict() for o in origins]


@router.get("/totals", response_model=AggregateOut)
def totals(coordinator: IngestionCoordinator = Depends(get_coordinator)):
    return coordinator.totals().to_dict()


@router.get("/dashboard")
def dashboard(
    days: int = Query(default=7, ge=0, le=AggregateIndex.MAX_DAYS),
    top_k: int = Query(default=10, ge=0),
    coordinator: IngestionCoordinator = Depends(get_coordinator),
):
    """Snapshot consistente para el dashboard (una sola lectura)."""
    return coordinator.dashboard_snapshot(last_n_days=days, top_k=top_k).to_dict()


@router.delete(
    "/data",
    response_model=ResetOut,
    dependencies=[Depends(require_api_key)],
)
def reset_data(coordinator: IngestionCoordinator = Depends(get_coordinator)):
    return ResetOut(removed=coordinator.reset_all())
