"""Prometheus metrics for the ingestion core.

Metrics are process-wide (default registry); every coordinator instance
reports into the same series.
"""

from __future__ import annotations

from prometheus_client import Counter, Gauge

VISITS_INGESTED = Counter(
    "footprint_visits_ingested_total",
    "Visit records submitted to the coordinator",
    ["status"],  # accepted, duplicate, invalid
)

LOG_EVICTIONS = Counter(
    "footprint_event_log_evictions_total",
    "Records evicted from the event log by capacity",
)

EVENT_LOG_SIZE = Gauge(
    "footprint_event_log_size",
    "Current number of records retained in the event log",
)

ALERT_EVALUATIONS = Counter(
    "footprint_alert_evaluations_total",
    "Alert evaluation ticks by outcome",
    ["outcome"],  # disabled, below_time_threshold, below_co2_threshold, cooldown, fired
)

ALERTS_FIRED = Counter(
    "footprint_alerts_fired_total",
    "Alert events emitted",
)

PERSISTENCE_FAILURES = Counter(
    "footprint_persistence_failures_total",
    "Failed or skipped writes to the persistence sink",
    ["reason"],  # error, circuit_open, dropped
)
