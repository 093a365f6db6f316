"""Tests de persistencia: circuit breaker, writer asíncrono y sink JSONL."""

import threading
from unittest.mock import MagicMock

import orjson
import pytest

from footprint_core.persistence import (
    AsyncPersistenceWriter,
    CircuitBreaker,
    CircuitBreakerConfig,
    CircuitBreakerOpen,
    CircuitState,
    JsonLinesSink,
    PersistenceConfig,
)


# =============================================================================
# FIXTURES
# =============================================================================

class FakeTime:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


@pytest.fixture
def fake_time():
    return FakeTime()


@pytest.fixture
def breaker(fake_time):
    config = CircuitBreakerConfig(failure_threshold=2, recovery_timeout_seconds=30.0, success_threshold=1)
    return CircuitBreaker("test", config, time_fn=fake_time)


def _fail():
    raise IOError("backend down")


# =============================================================================
# CIRCUIT BREAKER
# =============================================================================

class TestCircuitBreaker:

    def test_opens_after_threshold(self, breaker):
        for _ in range(2):
            with pytest.raises(IOError):
                breaker.call(_fail)

        assert breaker.state == CircuitState.OPEN
        with pytest.raises(CircuitBreakerOpen):
            breaker.call(lambda: "never")

    def test_half_open_then_closed(self, breaker, fake_time):
        for _ in range(2):
            with pytest.raises(IOError):
                breaker.call(_fail)

        fake_time.now += 31
        assert breaker.state == CircuitState.HALF_OPEN
        assert breaker.call(lambda: "ok") == "ok"
        assert breaker.state == CircuitState.CLOSED

    def test_half_open_failure_reopens(self, breaker, fake_time):
        for _ in range(2):
            with pytest.raises(IOError):
                breaker.call(_fail)
        fake_time.now += 31
        with pytest.raises(IOError):
            breaker.call(_fail)
        assert breaker.state == CircuitState.OPEN

    def test_success_resets_failure_count(self, breaker):
        with pytest.raises(IOError):
            breaker.call(_fail)
        breaker.call(lambda: None)
        with pytest.raises(IOError):
            breaker.call(_fail)
        assert breaker.state == CircuitState.CLOSED

    def test_reset(self, breaker):
        for _ in range(2):
            with pytest.raises(IOError):
                breaker.call(_fail)
        breaker.reset()
        assert breaker.get_stats()["state"] == "closed"


# =============================================================================
# WRITER
# =============================================================================

class TestAsyncPersistenceWriter:

    def test_writes_in_background(self, make_record):
        written = threading.Event()
        sink = MagicMock()
        sink.write.side_effect = lambda record: written.set()
        writer = AsyncPersistenceWriter(sink, config=PersistenceConfig(poll_timeout_s=0.05))
        writer.start()

        record = make_record()
        assert writer.submit(record) is True
        assert written.wait(2.0)
        writer.stop()

        sink.write.assert_called_once_with(record)
        assert writer.stats["written"] == 1

    def test_drop_oldest_when_full(self, make_record):
        sink = MagicMock()
        writer = AsyncPersistenceWriter(sink, config=PersistenceConfig(max_queue_size=2, drop_oldest=True))
        records = [make_record() for _ in range(3)]
        for r in records:
            writer.submit(r)

        writer.stop(flush_remaining=True)

        assert [c.args[0] for c in sink.write.call_args_list] == records[1:]
        assert writer.stats["dropped"] == 1

    def test_drop_newest_when_full(self, make_record):
        writer = AsyncPersistenceWriter(MagicMock(), config=PersistenceConfig(max_queue_size=1, drop_oldest=False))
        assert writer.submit(make_record()) is True
        assert writer.submit(make_record()) is False

    def test_stop_without_flush_discards(self, make_record):
        sink = MagicMock()
        writer = AsyncPersistenceWriter(sink, config=PersistenceConfig())
        writer.submit(make_record())
        writer.stop(flush_remaining=False)
        sink.write.assert_not_called()
        assert writer.stats["pending"] == 1


# =============================================================================
# JSONL SINK
# =============================================================================

class TestJsonLinesSink:

    def test_write_then_load(self, tmp_path, make_record):
        sink = JsonLinesSink(tmp_path / "visits.jsonl")
        record = make_record(record_id="j-1", transfer_bytes=123, co2=0.5)
        sink.write(record)

        rows = list(sink.load())
        assert len(rows) == 1
        assert rows[0]["id"] == "j-1"
        assert rows[0]["transferBytes"] == 123
        assert rows[0]["estimatedCO2_g"] == 0.5

    def test_missing_file_loads_nothing(self, tmp_path):
        assert list(JsonLinesSink(tmp_path / "nope.jsonl").load()) == []

    def test_malformed_lines_skipped(self, tmp_path):
        path = tmp_path / "mixed.jsonl"
        path.write_bytes(orjson.dumps({"id": "ok"}) + b"\n{broken\n\n")
        assert list(JsonLinesSink(path).load()) == [{"id": "ok"}]
