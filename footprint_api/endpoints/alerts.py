"""Endpoints de actividad y alertas (incluye la API de debug)."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException

from footprint_core.coordinator import IngestionCoordinator

from ..auth import require_api_key
from ..dependencies import get_coordinator
from ..schemas import ActivityTickIn, ActivityTickOut, AlertStateOut, EvaluationOut

router = APIRouter(tags=["alerts"], dependencies=[Depends(require_api_key)])


@router.post("/activity/{origin}", response_model=ActivityTickOut)
def activity_tick(
    origin: str,
    payload: ActivityTickIn,
    coordinator: IngestionCoordinator = Depends(get_coordinator),
):
    """Un tick de actividad (el colector lo envía a 1 Hz)."""
    active_seconds = coordinator.record_activity(origin, payload.active)
    return ActivityTickOut(origin=origin, active_seconds=active_seconds)


@router.get("/alerts/{origin}", response_model=AlertStateOut)
def get_alert_state(
    origin: str,
    coordinator: IngestionCoordinator = Depends(get_coordinator),
):
    state = coordinator.alert_state(origin)
    if state is None:
        raise HTTPException(status_code=404, detail="unknown origin")
    return state.to_dict()


@router.post("/alerts/{origin}/evaluate", response_model=EvaluationOut)
def force_evaluation(
    origin: str,
    coordinator: IngestionCoordinator = Depends(get_coordinator),
):
    """Fuerza una evaluación (normalmente la hace el ticker)."""
    return coordinator.evaluate_alerts(origin).to_dict()


@router.post("/alerts/{origin}/reset-active", response_model=AlertStateOut)
def reset_active(
    origin: str,
    coordinator: IngestionCoordinator = Depends(get_coordinator),
):
    coordinator.reset_active(origin)
    state = coordinator.alert_state(origin)
    if state is None:
        raise HTTPException(status_code=404, detail="unknown origin")
    return state.to_dict()
