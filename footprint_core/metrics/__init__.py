"""Metrics module for ingestion observability."""

from .prometheus import (
    ALERT_EVALUATIONS,
    ALERTS_FIRED,
    EVENT_LOG_SIZE,
    LOG_EVICTIONS,
    PERSISTENCE_FAILURES,
    VISITS_INGESTED,
)

__all__ = [
    "ALERT_EVALUATIONS",
    "ALERTS_FIRED",
    "EVENT_LOG_SIZE",
    "LOG_EVICTIONS",
    "PERSISTENCE_FAILURES",
    "VISITS_INGESTED",
]
