"""Núcleo de ingesta y agregación de huella de carbono por visita."""

from .coordinator import (
    BulkLoadResult,
    ChangeNotice,
    DashboardSnapshot,
    IngestionCoordinator,
    IngestResult,
    IngestStatus,
)
from .domain import VisitRecord, validate_visit_record

__all__ = [
    "BulkLoadResult",
    "ChangeNotice",
    "DashboardSnapshot",
    "IngestionCoordinator",
    "IngestResult",
    "IngestStatus",
    "VisitRecord",
    "validate_visit_record",
]
