"""Tests del coordinador de ingesta.

Propiedades cubiertas:
1. Idempotencia (mismo id dos veces)
2. Capacidad con agregados acumulativos
3. Consistencia de agregados con productores concurrentes
4. Alerta por ventana y cooldown de punta a punta
5. Serie por día de ancho fijo y ranking estable de orígenes
"""

import threading
import time
from datetime import timedelta
from unittest.mock import MagicMock

import pytest

from footprint_core.coordinator import IngestionCoordinator, IngestStatus
from footprint_core.persistence import AsyncPersistenceWriter, CircuitBreaker, CircuitBreakerConfig, PersistenceConfig
from footprint_core.domain.visit_record import VisitRecord


# =============================================================================
# FIXTURES
# =============================================================================

@pytest.fixture
def coordinator(settings, clock, notifier):
    coord = IngestionCoordinator(settings, clock=clock, notifier=notifier)
    yield coord
    coord.close()


def _active_seconds(coordinator, origin):
    state = coordinator.alert_state(origin)
    return state.active_seconds if state else 0


def _wait_until(predicate, timeout=5.0):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.05)
    return predicate()


# =============================================================================
# IDEMPOTENCIA
# =============================================================================

class TestIdempotency:

    def test_same_record_twice(self, coordinator, make_record):
        record = make_record(transfer_bytes=400, co2=0.4)

        first = coordinator.ingest(record)
        second = coordinator.ingest(record)

        assert first.status == IngestStatus.ACCEPTED
        assert second.status == IngestStatus.DUPLICATE
        assert len(coordinator.log_snapshot()) == 1

        totals = coordinator.totals()
        assert totals.visit_count == 1
        assert totals.total_bytes == 400
        assert coordinator.alert_state("a.test").records_seen == 1

    def test_duplicate_payload(self, coordinator):
        payload = {"id": "p-1", "ts": "2024-03-10T11:59:00Z", "origin": "a.test", "transferBytes": 10}
        assert coordinator.ingest_payload(payload).accepted is True
        assert coordinator.ingest_payload(dict(payload)).duplicate is True


# =============================================================================
# CAPACIDAD
# =============================================================================

class TestCapacity:

    def test_capacity_plus_five(self, settings, clock, make_record):
        capacity = 20
        coord = IngestionCoordinator(settings.with_overrides(log_capacity=capacity), clock=clock)
        records = [make_record(transfer_bytes=10) for _ in range(capacity + 5)]

        evicted = sum(coord.ingest(r).evicted for r in records)

        snapshot_ids = {r.id for r in coord.log_snapshot()}
        assert len(snapshot_ids) == capacity
        assert evicted == 5
        assert all(r.id not in snapshot_ids for r in records[:5])

        # agregados acumulativos: la eviction no los descuenta
        assert coord.totals().visit_count == capacity + 5
        assert coord.totals().total_bytes == 10 * (capacity + 5)
        coord.close()

    def test_update_settings_shrinks_log(self, coordinator, make_record, settings):
        for _ in range(10):
            coordinator.ingest(make_record())
        coordinator.update_settings(settings.with_overrides(log_capacity=4))

        assert len(coordinator.log_snapshot()) == 4
        assert coordinator.totals().visit_count == 10


# =============================================================================
# CONSISTENCIA CONCURRENTE
# =============================================================================

class TestConcurrentIngestion:

    def test_aggregates_consistent_under_producers(self, settings, clock, make_record):
        coord = IngestionCoordinator(settings.with_overrides(log_capacity=10000), clock=clock)
        origins = ["a.test", "b.test", "c.test", "d.test"]
        per_producer = 250
        batches = [
            [make_record(origin=origins[(p + i) % len(origins)], minutes_ago=i % 3000)
             for i in range(per_producer)]
            for p in range(8)
        ]
        # cada productor re-envía parte de sus registros (at-least-once)
        for batch in batches:
            batch.extend(batch[:25])

        def produce(batch):
            for record in batch:
                coord.ingest(record)

        threads = [threading.Thread(target=produce, args=(b,)) for b in batches]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        expected = 8 * per_producer
        day_count = sum(a.visit_count for a in coord.day_aggregates().values())
        origin_count = sum(a.visit_count for a in coord.origin_aggregates().values())

        assert day_count == origin_count == expected
        assert len(coord.log_snapshot()) == expected
        coord.close()


# =============================================================================
# ALERTAS DE PUNTA A PUNTA
# =============================================================================

class TestAlertsThroughCoordinator:

    def test_window_alert_and_cooldown(self, coordinator, clock, make_record, collected_events):
        for minutes_ago in (4, 3, 1):
            coordinator.ingest(make_record(co2=2.0, minutes_ago=minutes_ago))

        first = coordinator.evaluate_alerts("a.test")
        assert first.fired is True
        assert first.window_sum_g == pytest.approx(6.0)
        assert len(collected_events) == 1

        clock.advance(minutes=2)
        coordinator.ingest(make_record(co2=2.0))
        assert coordinator.evaluate_alerts("a.test").fired is False
        assert len(collected_events) == 1

        clock.advance(minutes=3)
        assert coordinator.evaluate_alerts("a.test").fired is True
        assert len(collected_events) == 2

    def test_ingest_does_not_evaluate(self, coordinator, make_record, collected_events):
        coordinator.ingest(make_record(co2=50.0))
        assert collected_events == []

    def test_active_flag_updates_context(self, coordinator, make_record):
        coordinator.ingest(make_record(), active=True)
        assert coordinator.alert_state("a.test").context_active is True

    def test_record_activity_and_reset(self, coordinator):
        coordinator.record_activity("a.test", True)
        assert coordinator.record_activity("a.test", True) == 2
        coordinator.reset_active("a.test")
        assert coordinator.alert_state("a.test").active_seconds == 0

    def test_open_context_runs_activity_ticker(self, coordinator):
        handle = coordinator.open_context("ticker.test", activity_probe=lambda: True)
        try:
            assert _wait_until(lambda: _active_seconds(coordinator, "ticker.test") >= 1)
            assert coordinator.stats["open_contexts"] == 1
        finally:
            handle.close()

        assert handle.closed is True
        assert coordinator.stats["open_contexts"] == 0

    def test_evaluation_loop_fires_without_contexts(self, settings, clock, notifier, collected_events, make_record):
        coord = IngestionCoordinator(settings.with_overrides(check_interval_s=1), clock=clock, notifier=notifier)
        try:
            coord.ingest(make_record(co2=6.0))
            loop = coord.start_evaluation_loop()

            assert coord.start_evaluation_loop() is loop
            assert _wait_until(lambda: len(collected_events) == 1)
            assert coord.stats["open_contexts"] == 0
        finally:
            coord.close()

        assert loop.running is False
        with pytest.raises(RuntimeError):
            coord.start_evaluation_loop()

    def test_close_stops_open_contexts(self, settings, clock):
        coord = IngestionCoordinator(settings, clock=clock)
        handle = coord.open_context("x.test")
        coord.close()

        assert handle.closed is True
        with pytest.raises(RuntimeError):
            coord.open_context("y.test")


# =============================================================================
# SNAPSHOTS
# =============================================================================

class TestSnapshots:

    def test_by_day_fixed_width(self, coordinator, make_record):
        coordinator.ingest(make_record(minutes_ago=60 * 24 * 2))
        series = coordinator.by_day_snapshot(7)

        assert len(series) == 7
        assert series[-1].day == "2024-03-10"
        assert series[4].visit_count == 1

    def test_top_origins_stable_ties(self, coordinator, make_record):
        coordinator.ingest(make_record(origin="A", transfer_bytes=300))
        coordinator.ingest(make_record(origin="B", transfer_bytes=300))
        coordinator.ingest(make_record(origin="C", transfer_bytes=100))

        assert [o.origin for o in coordinator.by_origin_snapshot(2)] == ["A", "B"]

    def test_dashboard_snapshot(self, coordinator, make_record):
        for i in range(5):
            coordinator.ingest(make_record(record_id=f"d-{i}", co2=1.0))

        snap = coordinator.dashboard_snapshot(last_n_days=3, top_k=1, recent=2)

        assert snap.log_size == 5
        assert snap.totals.visit_count == 5
        assert len(snap.by_day) == 3
        assert [v.id for v in snap.recent_visits] == ["d-4", "d-3"]
        assert snap.to_dict()["top_origins"][0]["origin"] == "a.test"

    def test_by_day_rejects_oversized_series(self, coordinator):
        with pytest.raises(ValueError):
            coordinator.by_day_snapshot(1_000_000)
        assert len(coordinator.by_day_snapshot(3660)) == 3660


# =============================================================================
# ENTRADAS INVÁLIDAS / CARGA EN BLOQUE
# =============================================================================

class TestInvalidAndBulk:

    def test_invalid_payload_never_raises(self, coordinator):
        result = coordinator.ingest_payload({"ts": "2024-03-10T11:00:00Z", "origin": "a.test"})

        assert result.status == IngestStatus.INVALID
        assert "id" in result.error
        assert coordinator.log_snapshot() == []

    def test_record_without_identity_is_invalid(self, coordinator, clock):
        result = coordinator.ingest(VisitRecord(id="", timestamp=clock.now(), origin="  "))

        assert result.status == IngestStatus.INVALID
        assert "id" in result.error and "origin" in result.error
        assert coordinator.totals().visit_count == 0

    def test_non_finite_numbers_become_zero(self, coordinator, make_record):
        coordinator.ingest(make_record(co2=float("nan"), transfer_bytes=-10))
        coordinator.ingest(make_record(co2=2.0, estimated_energy_mj=float("inf")))

        totals = coordinator.totals()
        assert totals.visit_count == 2
        assert totals.total_co2_g == 2.0
        assert totals.total_bytes == 1000
        assert coordinator.log_snapshot()[1].estimated_energy_mj == 0.0

    def test_naive_timestamp_is_treated_as_utc(self, coordinator, clock, collected_events):
        naive = clock.now().replace(tzinfo=None)
        result = coordinator.ingest(VisitRecord(id="n-1", timestamp=naive, origin="b.test", estimated_co2_g=6.0))

        assert result.accepted
        assert coordinator.log_snapshot()[0].timestamp == clock.now()
        coordinator.evaluate_alerts("b.test")
        assert len(collected_events) == 1

    def test_bulk_load_checks_records(self, coordinator, make_record, clock):
        summary = coordinator.bulk_load([
            VisitRecord(id="", timestamp=clock.now(), origin="a.test"),
            make_record(co2=float("inf")),
        ])

        assert summary.accepted == 1
        assert summary.invalid == 1
        assert coordinator.totals().total_co2_g == 0.0

    def test_bulk_load_mixed(self, coordinator, make_record):
        existing = make_record(record_id="same")
        items = [
            existing,
            existing,
            {"id": "raw-1", "ts": "2024-03-10T10:00:00Z", "host": "b.test", "bytes": 5},
            {"origin": "broken.test"},
        ]

        summary = coordinator.bulk_load(items)

        assert summary.accepted == 2
        assert summary.duplicates == 1
        assert summary.invalid == 1
        assert summary.total == 4
        assert coordinator.totals().visit_count == 2

    def test_reset_all(self, coordinator, make_record):
        coordinator.ingest(make_record())
        assert coordinator.reset_all() == 1

        assert coordinator.log_snapshot() == []
        assert coordinator.totals().visit_count == 0
        assert coordinator.alert_state("a.test") is None


# =============================================================================
# SUSCRIPCIONES Y COLABORADORES EXTERNOS
# =============================================================================

class TestListenersAndPersistence:

    def test_subscribe_and_unsubscribe(self, coordinator, make_record):
        notices = []
        unsubscribe = coordinator.subscribe(notices.append)

        coordinator.ingest(make_record(record_id="n-1"))
        coordinator.ingest(make_record(record_id="n-1"))
        unsubscribe()
        coordinator.ingest(make_record(record_id="n-2"))

        assert [(n.kind, n.record_ids) for n in notices] == [("ingest", ("n-1",))]

    def test_failing_listener_is_isolated(self, coordinator, make_record):
        coordinator.subscribe(MagicMock(side_effect=RuntimeError("listener down")))
        assert coordinator.ingest(make_record()).accepted is True

    def test_persistence_failure_does_not_affect_ingest(self, settings, clock, make_record):
        sink = MagicMock()
        sink.write.side_effect = IOError("disk full")
        writer = AsyncPersistenceWriter(
            sink,
            config=PersistenceConfig(max_queue_size=100, poll_timeout_s=0.05),
            breaker=CircuitBreaker("test-sink", CircuitBreakerConfig(failure_threshold=2)),
        )
        coord = IngestionCoordinator(settings, clock=clock, persistence=writer)

        results = [coord.ingest(make_record()) for _ in range(5)]
        coord.close()

        assert all(r.accepted for r in results)
        assert coord.totals().visit_count == 5
        stats = writer.stats
        assert stats["submitted"] == 5
        assert stats["failed"] == 5
        assert stats["written"] == 0

    def test_persistence_receives_accepted_records(self, settings, clock, make_record):
        sink = MagicMock()
        writer = AsyncPersistenceWriter(sink, config=PersistenceConfig(poll_timeout_s=0.05))
        coord = IngestionCoordinator(settings, clock=clock, persistence=writer)

        record = make_record()
        coord.ingest(record)
        coord.ingest(record)
        coord.close()

        sink.write.assert_called_once_with(record)
