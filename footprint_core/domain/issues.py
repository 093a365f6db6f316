"""Detección de problemas de eficiencia de una página.

Reglas derivadas solo de los campos del registro; los chequeos que
requieren DOM (video autoplay) pertenecen al colector.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import List

from .visit_record import VisitRecord


@dataclass(frozen=True)
class PageIssue:
    code: str
    severity: float  # 0..1
    message: str

    def to_dict(self) -> dict:
        return asdict(self)


class IssueRules:
    """Umbrales de detección."""

    PAGE_WEIGHT_BYTES = 5_000_000
    MAX_RESOURCES = 150
    MAX_LONG_TASKS = 3


def detect_issues(record: VisitRecord) -> List[PageIssue]:
    """Retorna los problemas detectados, en orden fijo de evaluación."""
    issues: List[PageIssue] = []

    if record.transfer_bytes > IssueRules.PAGE_WEIGHT_BYTES:
        issues.append(PageIssue(
            code="page_weight",
            severity=0.8,
            message="This page is heavy (>5MB). Optimize large images and assets.",
        ))

    if record.resource_count > IssueRules.MAX_RESOURCES:
        issues.append(PageIssue(
            code="too_many_resources",
            severity=0.6,
            message="Many resources loaded. Consider reducing third-party scripts or bundling.",
        ))

    if record.long_tasks > IssueRules.MAX_LONG_TASKS:
        issues.append(PageIssue(
            code="long_tasks",
            severity=0.7,
            message="Long JavaScript tasks detected. Reduce heavy synchronous work.",
        ))

    return issues
