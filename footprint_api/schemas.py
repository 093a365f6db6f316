from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


class BulkVisitsIn(BaseModel):
    # Payloads crudos; se normalizan en validate_visit_record
    records: List[Dict[str, Any]] = Field(default_factory=list)


class IngestOut(BaseModel):
    status: str
    record_id: Optional[str] = None
    evicted: int = 0
    warnings: List[str] = Field(default_factory=list)


class BulkIngestOut(BaseModel):
    accepted: int
    duplicates: int
    invalid: int
    evicted: int
    errors: List[str] = Field(default_factory=list)


class ActivityTickIn(BaseModel):
    active: bool = True


class ActivityTickOut(BaseModel):
    origin: str
    active_seconds: int


class AggregateOut(BaseModel):
    visit_count: int
    total_bytes: int
    total_co2_g: float


class DayTotalOut(AggregateOut):
    day: str


class OriginTotalOut(AggregateOut):
    origin: str


class AlertEventOut(BaseModel):
    origin: str
    window_sum_g: float
    window_minutes: int
    threshold_g: float
    fired_at: datetime
    message: str


class EvaluationOut(BaseModel):
    origin: str
    outcome: str
    evaluated_at: datetime
    window_sum_g: Optional[float] = None
    fired: bool = False
    event: Optional[AlertEventOut] = None


class AlertStateOut(BaseModel):
    origin: str
    active_seconds: int
    last_alert_at: Optional[datetime] = None
    phase: str
    context_active: bool
    records_seen: int
    last_record_at: Optional[datetime] = None
    last_window_sum_g: float
    alerts_fired: int


class CarbonIntensityOut(BaseModel):
    country: str
    gCO2_per_kWh: float
    source: str
    lastUpdated: Optional[datetime] = None


class ResetOut(BaseModel):
    removed: int
