"""Tests for LogEmitter."""

import pytest

from faultline.adapters.storage.in_memory import InMemoryLogStorage
from faultline.core.emitter import LogEmitter
from faultline.core.models import RequestOutcome


class TestEmit:
    """Tests for LogEmitter.emit()."""

    @pytest.mark.core
    def test_emit_writes_one_entry(
        self, emitter: LogEmitter, log_storage: InMemoryLogStorage
    ) -> None:
        entry = emitter.emit("WARN", "Memory leak triggered", allocated_kb=10)
        assert list(log_storage.read()) == [entry]
        assert entry.attributes == {"allocated_kb": 10}


class TestRequestRecord:
    """Tests for LogEmitter.request()."""

    @pytest.mark.core
    def test_request_record_has_both_duration_shapes(
        self, emitter: LogEmitter, log_storage: InMemoryLogStorage
    ) -> None:
        """Duration appears as milliseconds and as raw seconds."""
        outcome = RequestOutcome(path="/slow", method="GET", status_code=200, duration=0.25)
        emitter.request(outcome, request_id="abc")

        (entry,) = log_storage.read()
        assert entry.message == "HTTP request"
        assert entry.level == "INFO"
        assert entry.attributes["duration_ms"] == pytest.approx(250.0)
        assert entry.attributes["latency"] == 0.25
        assert entry.attributes["request_id"] == "abc"

    @pytest.mark.core
    def test_request_record_carries_aliases(self, emitter: LogEmitter) -> None:
        outcome = RequestOutcome(path="/cpu", method="GET", status_code=400, duration=0.0)
        entry = emitter.request(outcome)
        assert entry.attributes["path"] == entry.attributes["route"] == "/cpu"
        assert entry.attributes["status"] == entry.attributes["status_code"] == 400
        assert entry.attributes["method"] == "GET"

    @pytest.mark.core
    @pytest.mark.parametrize(("status", "level"), [(201, "INFO"), (400, "WARN"), (503, "ERROR")])
    def test_request_level_follows_status(
        self, emitter: LogEmitter, status: int, level: str
    ) -> None:
        outcome = RequestOutcome(path="/", method="GET", status_code=status, duration=0.0)
        assert emitter.request(outcome).level == level
