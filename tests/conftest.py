"""Shared test fixtures for all test modules."""

import httpx
import pytest

from faultline.adapters.frameworks.asgi import (
    InstrumentationMiddleware,
    Receive,
    Scope,
    Send,
)
from faultline.adapters.frameworks.fastapi import create_app
from faultline.adapters.storage.in_memory import InMemoryLogStorage
from faultline.config import Settings
from faultline.core.emitter import LogEmitter
from faultline.core.faults import LeakAccumulator
from faultline.core.registry import MetricsRegistry, create_default_registry


@pytest.fixture
def registry() -> MetricsRegistry:
    """Fresh registry with the service metrics registered."""
    return create_default_registry()


@pytest.fixture
def log_storage() -> InMemoryLogStorage:
    """Empty in-memory log sink."""
    return InMemoryLogStorage()


@pytest.fixture
def emitter(log_storage: InMemoryLogStorage) -> LogEmitter:
    return LogEmitter(log_storage)


@pytest.fixture
def leaks() -> LeakAccumulator:
    return LeakAccumulator()


# === ASGI Test Fixtures ===


@pytest.fixture
def basic_asgi_app():
    """Basic ASGI app fixture that returns 200 OK."""

    async def app(scope: Scope, receive: Receive, send: Send) -> None:
        await send({"type": "http.response.start", "status": 200, "headers": []})
        await send({"type": "http.response.body", "body": b"OK"})

    return app


@pytest.fixture
def asgi_scope():
    """Factory fixture for creating ASGI scope dicts."""

    def _scope(method: str = "GET", path: str = "/test") -> Scope:
        return {
            "type": "http",
            "method": method,
            "path": path,
            "query_string": b"",
            "headers": [],
        }

    return _scope


@pytest.fixture
def asgi_send_capture():
    """Fixture that returns a send callable and a responses list for capture."""

    responses: list[dict[str, object]] = []

    async def send(message: dict[str, object]) -> None:
        """Capture ASGI messages."""
        responses.append(message)

    return send, responses


@pytest.fixture
def asgi_receive():
    """Receive callable delivering an empty request body."""

    async def receive() -> dict[str, object]:
        return {"type": "http.request", "body": b"", "more_body": False}

    return receive


@pytest.fixture
def instrument(registry: MetricsRegistry, emitter: LogEmitter):
    """Factory wrapping an ASGI app in InstrumentationMiddleware."""

    def _wrap(app, **kwargs) -> InstrumentationMiddleware:
        return InstrumentationMiddleware(app, registry, emitter, **kwargs)

    return _wrap


@pytest.fixture
def asgi_test_client():
    """Factory fixture that creates an httpx.AsyncClient for ASGI testing.

    Usage:
        async def test_something(asgi_test_client, app):
            async with asgi_test_client(app) as client:
                response = await client.get("/health")
    """

    def _get_client(app):
        """Return an AsyncClient context manager for the given app."""
        return httpx.AsyncClient(
            transport=httpx.ASGITransport(app=app), base_url="http://test"
        )

    return _get_client


@pytest.fixture
def settings() -> Settings:
    return Settings(log_sink="memory", profiling_url="http://localhost:6060/debug/pprof")


@pytest.fixture
def app(settings, registry, log_storage, leaks):
    """Service application wired to the per-test registry, sink and accumulator."""
    return create_app(
        settings=settings, registry=registry, log_storage=log_storage, leaks=leaks
    )


@pytest.fixture
async def client(app, asgi_test_client):
    """AsyncClient bound to the service application."""
    async with asgi_test_client(app) as client:
        yield client
