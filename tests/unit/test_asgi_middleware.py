"""Tests for InstrumentationMiddleware.

Covers gauge pairing on every exit path, status capture through the response
observer, outcome recording and the cancellation policy.
"""

from __future__ import annotations

import asyncio

import pytest

from faultline.adapters.frameworks.asgi import (
    InstrumentationMiddleware,
    Receive,
    ResponseObserver,
    Scope,
    Send,
    _extract_request_id,
)
from faultline.adapters.storage.in_memory import InMemoryLogStorage
from faultline.core.registry import (
    ACTIVE_CONNECTIONS,
    REQUEST_DURATION,
    REQUESTS_TOTAL,
    MetricsRegistry,
)

pytestmark = [pytest.mark.tier(1), pytest.mark.asgi]


def _requests(registry: MetricsRegistry, path: str, status: str, method: str = "GET"):
    return registry.value(
        REQUESTS_TOTAL, {"endpoint": path, "method": method, "status": status}
    )


@pytest.mark.tier(0)
def test_middleware_init_stores_collaborators(basic_asgi_app, registry, emitter):
    middleware = InstrumentationMiddleware(basic_asgi_app, registry, emitter)
    assert middleware.app is basic_asgi_app
    assert middleware.registry is registry
    assert middleware.emitter is emitter
    assert middleware.exclude_paths == []


async def test_middleware_passes_through_to_wrapped_app(
    instrument, asgi_scope, asgi_receive, asgi_send_capture
):
    """The response is exactly what the wrapped app produced."""

    async def app(scope: Scope, receive: Receive, send: Send) -> None:
        await send(
            {"type": "http.response.start", "status": 201, "headers": [(b"x-custom", b"test")]}
        )
        await send({"type": "http.response.body", "body": b"Created"})

    send, responses = asgi_send_capture
    await instrument(app)(asgi_scope("POST", "/custom"), asgi_receive, send)

    assert responses == [
        {"type": "http.response.start", "status": 201, "headers": [(b"x-custom", b"test")]},
        {"type": "http.response.body", "body": b"Created"},
    ]


async def test_middleware_records_one_outcome_per_request(
    instrument, basic_asgi_app, asgi_scope, asgi_receive, asgi_send_capture,
    registry, log_storage,
):
    send, _ = asgi_send_capture
    middleware = instrument(basic_asgi_app)

    for _ in range(3):
        await middleware(asgi_scope("GET", "/health"), asgi_receive, send)

    assert _requests(registry, "/health", "200") == 3
    assert registry.histogram_count(REQUEST_DURATION, {"endpoint": "/health", "method": "GET"}) == 3
    assert len(list(log_storage.read())) == 3


async def test_middleware_records_actual_status(
    instrument, asgi_scope, asgi_receive, asgi_send_capture, registry, log_storage
):
    async def app(scope: Scope, receive: Receive, send: Send) -> None:
        await send({"type": "http.response.start", "status": 400, "headers": []})
        await send({"type": "http.response.body", "body": b"bad"})

    send, _ = asgi_send_capture
    await instrument(app)(asgi_scope("GET", "/slow"), asgi_receive, send)

    assert _requests(registry, "/slow", "400") == 1
    assert _requests(registry, "/slow", "200") == 0
    (entry,) = log_storage.read()
    assert entry.attributes["status"] == 400
    assert entry.level == "WARN"


async def test_middleware_defaults_to_success_when_status_never_sent(
    instrument, asgi_scope, asgi_receive, asgi_send_capture, registry
):
    """An app that never starts a response is recorded as 200."""

    async def app(scope: Scope, receive: Receive, send: Send) -> None:
        return None

    send, _ = asgi_send_capture
    await instrument(app)(asgi_scope("GET", "/quiet"), asgi_receive, send)

    assert _requests(registry, "/quiet", "200") == 1


async def test_middleware_records_500_and_reraises_on_failure(
    instrument, asgi_scope, asgi_receive, asgi_send_capture, registry, log_storage
):
    async def app(scope: Scope, receive: Receive, send: Send) -> None:
        raise RuntimeError("boom")

    send, _ = asgi_send_capture
    with pytest.raises(RuntimeError, match="boom"):
        await instrument(app)(asgi_scope("GET", "/explode"), asgi_receive, send)

    assert _requests(registry, "/explode", "500") == 1
    assert registry.value(ACTIVE_CONNECTIONS) == 0
    (entry,) = log_storage.read()
    assert entry.level == "ERROR"
    assert entry.attributes["exception"] == "RuntimeError: boom"


async def test_middleware_keeps_sent_status_when_failing_after_start(
    instrument, asgi_scope, asgi_receive, asgi_send_capture, registry
):
    """A failure after the response started keeps the status that was sent."""

    async def app(scope: Scope, receive: Receive, send: Send) -> None:
        await send({"type": "http.response.start", "status": 200, "headers": []})
        raise ValueError("stream broke")

    send, _ = asgi_send_capture
    with pytest.raises(ValueError):
        await instrument(app)(asgi_scope("GET", "/stream"), asgi_receive, send)

    assert _requests(registry, "/stream", "200") == 1


async def test_gauge_counts_requests_inside_middleware(
    instrument, asgi_scope, asgi_receive, asgi_send_capture, registry
):
    """The gauge equals the number of in-flight requests and returns to zero."""
    release = asyncio.Event()
    entered = 0
    all_entered = asyncio.Event()

    async def app(scope: Scope, receive: Receive, send: Send) -> None:
        nonlocal entered
        entered += 1
        if entered == 3:
            all_entered.set()
        await release.wait()
        await send({"type": "http.response.start", "status": 200, "headers": []})
        await send({"type": "http.response.body", "body": b""})

    send, _ = asgi_send_capture
    middleware = instrument(app)
    tasks = [
        asyncio.create_task(middleware(asgi_scope(), asgi_receive, send))
        for _ in range(3)
    ]
    await all_entered.wait()
    assert registry.value(ACTIVE_CONNECTIONS) == 3

    release.set()
    await asyncio.gather(*tasks)
    assert registry.value(ACTIVE_CONNECTIONS) == 0


async def test_cancelled_request_restores_gauge_and_records_nothing(
    instrument, asgi_scope, asgi_receive, asgi_send_capture, registry, log_storage
):
    started = asyncio.Event()

    async def app(scope: Scope, receive: Receive, send: Send) -> None:
        started.set()
        await asyncio.sleep(60)

    send, _ = asgi_send_capture
    task = asyncio.create_task(instrument(app)(asgi_scope("GET", "/slow"), asgi_receive, send))
    await started.wait()
    assert registry.value(ACTIVE_CONNECTIONS) == 1

    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task

    assert registry.value(ACTIVE_CONNECTIONS) == 0
    assert registry.histogram_count(REQUEST_DURATION, {"endpoint": "/slow", "method": "GET"}) == 0
    assert list(log_storage.read()) == []


async def test_duration_includes_time_spent_in_app(
    instrument, asgi_scope, asgi_receive, asgi_send_capture, log_storage
):
    async def app(scope: Scope, receive: Receive, send: Send) -> None:
        await asyncio.sleep(0.05)
        await send({"type": "http.response.start", "status": 200, "headers": []})
        await send({"type": "http.response.body", "body": b""})

    send, _ = asgi_send_capture
    await instrument(app)(asgi_scope(), asgi_receive, send)

    (entry,) = log_storage.read()
    assert entry.attributes["latency"] >= 0.049
    assert entry.attributes["duration_ms"] == pytest.approx(entry.attributes["latency"] * 1000)


async def test_excluded_paths_skip_recording_but_not_gauge(
    instrument, basic_asgi_app, asgi_scope, asgi_receive, asgi_send_capture,
    registry, log_storage,
):
    send, _ = asgi_send_capture
    middleware = instrument(basic_asgi_app, exclude_paths=["/internal/*", "/metrics"])

    await middleware(asgi_scope("GET", "/internal/debug"), asgi_receive, send)
    await middleware(asgi_scope("GET", "/metrics"), asgi_receive, send)
    await middleware(asgi_scope("GET", "/health"), asgi_receive, send)

    assert [e.attributes["path"] for e in log_storage.read()] == ["/health"]
    assert _requests(registry, "/metrics", "200") == 0
    assert registry.value(ACTIVE_CONNECTIONS) == 0


async def test_non_http_scope_passes_through_untouched(
    instrument, asgi_receive, asgi_send_capture, registry, log_storage
):
    seen: list[str] = []

    async def app(scope: Scope, receive: Receive, send: Send) -> None:
        seen.append(scope["type"])

    send, _ = asgi_send_capture
    await instrument(app)({"type": "lifespan"}, asgi_receive, send)

    assert seen == ["lifespan"]
    assert list(log_storage.read()) == []


async def test_log_record_includes_request_metadata(
    instrument, basic_asgi_app, asgi_receive, asgi_send_capture,
    log_storage: InMemoryLogStorage,
):
    scope = {
        "type": "http",
        "method": "GET",
        "path": "/health",
        "query_string": b"",
        "headers": [(b"x-request-id", b"req-42"), (b"user-agent", b"curl/8.5.0")],
        "client": ("10.0.0.5", 51234),
    }
    send, _ = asgi_send_capture
    await instrument(basic_asgi_app)(scope, asgi_receive, send)

    (entry,) = log_storage.read()
    assert entry.attributes["request_id"] == "req-42"
    assert entry.attributes["user_agent"] == "curl/8.5.0"
    assert entry.attributes["remote_addr"] == "10.0.0.5:51234"


async def test_broken_sink_does_not_fail_the_request(
    instrument, basic_asgi_app, asgi_scope, asgi_receive, asgi_send_capture,
    registry, log_storage: InMemoryLogStorage, monkeypatch, caplog,
):
    def broken_write(entry) -> None:
        raise OSError("sink broken")

    monkeypatch.setattr(log_storage, "write", broken_write)
    send, responses = asgi_send_capture
    with caplog.at_level("ERROR", logger="faultline.adapters.frameworks.asgi"):
        await instrument(basic_asgi_app)(asgi_scope("GET", "/health"), asgi_receive, send)

    assert responses[0]["status"] == 200
    assert _requests(registry, "/health", "200") == 1
    assert registry.value(ACTIVE_CONNECTIONS) == 0
    assert "Failed to record outcome for GET /health" in caplog.text


async def test_broken_sink_keeps_the_app_error(
    instrument, asgi_scope, asgi_receive, asgi_send_capture,
    registry, log_storage: InMemoryLogStorage, monkeypatch,
):
    async def app(scope: Scope, receive: Receive, send: Send) -> None:
        raise RuntimeError("boom")

    def broken_write(entry) -> None:
        raise OSError("sink broken")

    monkeypatch.setattr(log_storage, "write", broken_write)
    send, _ = asgi_send_capture
    with pytest.raises(RuntimeError, match="boom"):
        await instrument(app)(asgi_scope("GET", "/explode"), asgi_receive, send)

    assert registry.value(ACTIVE_CONNECTIONS) == 0


class TestResponseObserver:
    """Tests for ResponseObserver."""

    async def test_defaults_to_200_until_start_message(self, asgi_send_capture) -> None:
        send, responses = asgi_send_capture
        observer = ResponseObserver(send)
        assert observer.status == 200
        assert observer.started is False

        await observer({"type": "http.response.start", "status": 503, "headers": []})
        assert observer.status == 503
        assert observer.started is True
        assert responses[0]["status"] == 503


class TestExtractRequestId:
    """Tests for _extract_request_id()."""

    def test_header_lookup_is_case_insensitive(self, asgi_scope) -> None:
        scope = asgi_scope()
        scope["headers"] = [(b"X-Request-Id", b"abc")]
        assert _extract_request_id(scope) == "abc"

    def test_generates_uuid_when_missing(self, asgi_scope) -> None:
        request_id = _extract_request_id(asgi_scope())
        assert len(request_id) == 36
