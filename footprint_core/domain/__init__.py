"""Modelos de dominio y validación del borde de ingesta."""

from .issues import PageIssue, detect_issues
from .validators import (
    ValidationResult,
    VisitRecordPayload,
    normalize_visit_record,
    validate_visit_record,
)
from .visit_record import VisitRecord

__all__ = [
    "PageIssue",
    "detect_issues",
    "ValidationResult",
    "VisitRecordPayload",
    "normalize_visit_record",
    "validate_visit_record",
    "VisitRecord",
]
