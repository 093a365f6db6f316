"""Tests del log de eventos (dedup, capacidad, ventana)."""

from datetime import timedelta

import pytest

from footprint_core.event_log import EventLog


class TestDeduplication:

    def test_duplicate_id_rejected(self, make_record):
        log = EventLog(capacity=10)
        record = make_record(record_id="dup")

        assert log.append(record).accepted is True
        outcome = log.append(record)

        assert outcome.duplicate is True
        assert len(log) == 1
        assert log.stats["duplicates_found"] == 1

    def test_same_id_different_payload_is_still_duplicate(self, make_record):
        log = EventLog(capacity=10)
        log.append(make_record(record_id="x", co2=1.0))
        assert log.append(make_record(record_id="x", co2=9.0)).accepted is False
        assert log.snapshot()[0].estimated_co2_g == 1.0


class TestCapacity:

    def test_invalid_capacity(self):
        with pytest.raises(ValueError):
            EventLog(capacity=0)

    def test_evicts_oldest_first(self, make_record):
        log = EventLog(capacity=3)
        records = [make_record() for _ in range(5)]
        evicted = []
        for r in records:
            evicted.extend(log.append(r).evicted)

        assert len(log) == 3
        assert [r.id for r in evicted] == [records[0].id, records[1].id]
        assert [r.id for r in log.snapshot()] == [r.id for r in records[2:]]
        assert not log.contains(records[0].id)

    def test_evicted_id_can_be_appended_again(self, make_record):
        log = EventLog(capacity=1)
        first = make_record(record_id="a")
        log.append(first)
        log.append(make_record(record_id="b"))
        assert log.append(first).accepted is True

    def test_on_evict_callback(self, make_record):
        seen = []
        log = EventLog(capacity=1, on_evict=seen.append)
        a, b = make_record(), make_record()
        log.append(a)
        log.append(b)
        assert seen == [a]

    def test_on_evict_failure_is_swallowed(self, make_record):
        def boom(_):
            raise RuntimeError("callback down")

        log = EventLog(capacity=1, on_evict=boom)
        log.append(make_record())
        assert log.append(make_record()).accepted is True
        assert len(log) == 1

    def test_resize_down_evicts(self, make_record):
        log = EventLog(capacity=5)
        for _ in range(5):
            log.append(make_record())
        evicted = log.resize(2)
        assert len(evicted) == 3
        assert len(log) == 2
        assert log.capacity == 2

    def test_origin_index_dropped_when_empty(self, make_record):
        log = EventLog(capacity=1)
        log.append(make_record(origin="a.test"))
        log.append(make_record(origin="b.test"))
        assert log.origins() == ["b.test"]


class TestWindowSum:

    def test_inclusive_bounds(self, clock, make_record):
        log = EventLog()
        now = clock.now()
        log.append(make_record(co2=1.0, minutes_ago=10))  # en el límite inferior
        log.append(make_record(co2=2.0, minutes_ago=0))   # en el límite superior
        log.append(make_record(co2=4.0, minutes_ago=11))  # fuera

        assert log.window_sum("a.test", now - timedelta(minutes=10), now) == pytest.approx(3.0)

    def test_filters_by_origin(self, clock, make_record):
        log = EventLog()
        now = clock.now()
        log.append(make_record(origin="a.test", co2=1.0))
        log.append(make_record(origin="b.test", co2=5.0))
        assert log.window_sum("a.test", now - timedelta(minutes=1), now) == 1.0
        assert log.window_sum("c.test", now - timedelta(minutes=1), now) == 0.0

    def test_evicted_records_leave_the_window(self, clock, make_record):
        log = EventLog(capacity=1)
        now = clock.now()
        log.append(make_record(co2=3.0))
        log.append(make_record(co2=1.0))
        assert log.window_sum("a.test", now - timedelta(minutes=5), now) == 1.0


class TestClear:

    def test_clear_returns_count(self, make_record):
        log = EventLog()
        log.append(make_record())
        log.append(make_record())
        assert log.clear() == 2
        assert len(log) == 0
        assert log.origins() == []
