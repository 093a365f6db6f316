"""Endpoints de ingesta de visitas."""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Body, Depends, HTTPException

from footprint_core.coordinator import IngestionCoordinator, IngestStatus

from ..auth import require_api_key
from ..dependencies import get_coordinator
from ..schemas import BulkIngestOut, BulkVisitsIn, IngestOut

router = APIRouter(tags=["ingest"])
logger = logging.getLogger(__name__)


@router.post(
    "/ingest",
    response_model=IngestOut,
    dependencies=[Depends(require_api_key)],
)
def ingest_visit(
    payload: Dict[str, Any] = Body(...),
    active: Optional[bool] = None,
    coordinator: IngestionCoordinator = Depends(get_coordinator),
):
    """Ingesta una visita del colector.

    Duplicados responden 200 con status=duplicate (idempotencia).
    """
    result = coordinator.ingest_payload(payload, active=active)
    if result.status == IngestStatus.INVALID:
        raise HTTPException(status_code=422, detail=result.error)
    return IngestOut(
        status=result.status.value,
        record_id=result.record_id,
        evicted=result.evicted,
        warnings=list(result.warnings),
    )


@router.post(
    "/ingest/bulk",
    response_model=BulkIngestOut,
    dependencies=[Depends(require_api_key)],
)
def ingest_bulk(
    payload: BulkVisitsIn,
    coordinator: IngestionCoordinator = Depends(get_coordinator),
):
    """Carga en bloque (siembra/reconciliación)."""
    summary = coordinator.bulk_load(payload.records, persist=True)
    return BulkIngestOut(
        accepted=summary.accepted,
        duplicates=summary.duplicates,
        invalid=summary.invalid,
        evicted=summary.evicted,
        errors=summary.errors,
    )
