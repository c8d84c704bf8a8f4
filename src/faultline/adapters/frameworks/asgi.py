"""ASGI instrumentation middleware.

Wraps any ASGI application (FastAPI, Starlette, plain callables) and records
one outcome per completed HTTP request: a request counter increment, a
latency histogram observation and an access log record. It also keeps the
active connections gauge in step with the requests currently inside it.
"""

import fnmatch
import logging
import time
import uuid
from collections.abc import Callable, Coroutine
from typing import Any

from faultline.core.emitter import LogEmitter
from faultline.core.models import RequestOutcome
from faultline.core.registry import (
    ACTIVE_CONNECTIONS,
    REQUEST_DURATION,
    REQUESTS_TOTAL,
    MetricsRegistry,
)

logger = logging.getLogger(__name__)

# ASGI type aliases
Scope = dict[str, Any]
Receive = Callable[[], Coroutine[Any, Any, dict[str, Any]]]
Send = Callable[[dict[str, Any]], Coroutine[Any, Any, None]]
ASGIApp = Callable[[Scope, Receive, Send], Coroutine[Any, Any, None]]


def _header(scope: Scope, header_name: str) -> str | None:
    """Return the first value of a request header (case-insensitive)."""
    header_bytes = header_name.lower().encode()
    headers: list[tuple[bytes, bytes]] = scope.get("headers", [])
    for name, value in headers:
        if name.lower() == header_bytes:
            return value.decode("utf-8", errors="replace")
    return None


def _extract_request_id(scope: Scope, header_name: str = "X-Request-ID") -> str:
    """Extract the request ID header or generate a new UUID."""
    request_id = _header(scope, header_name)
    if request_id is not None:
        return request_id
    return str(uuid.uuid4())


def _remote_addr(scope: Scope) -> str:
    client = scope.get("client")
    if not client:
        return ""
    host, port = client
    return f"{host}:{port}"


class ResponseObserver:
    """Wraps the ASGI send channel to observe the response status.

    The status starts at 200 so a response that never sets one explicitly is
    recorded as the implicit success code. All reads of the request status go
    through :attr:`status`.
    """

    def __init__(self, send: Send) -> None:
        self._send = send
        self.status = 200
        self.started = False

    async def __call__(self, message: dict[str, Any]) -> None:
        if message["type"] == "http.response.start":
            self.status = message.get("status", 200)
            self.started = True
        await self._send(message)


class InstrumentationMiddleware:
    """ASGI middleware recording request outcomes and in-flight requests.

    Guarantees for every HTTP request:

    - ``active_connections`` is incremented before the wrapped app runs and
      decremented on every exit path.
    - A request that completes (normally or by raising an ``Exception``)
      produces exactly one RequestOutcome, published as one counter
      increment, one histogram observation and one access log record.
    - An exception raised before the response started is recorded as 500
      and re-raised after recording.
    - A cancelled request records nothing; only the gauge is restored.
    """

    def __init__(
        self,
        app: ASGIApp,
        registry: MetricsRegistry,
        emitter: LogEmitter,
        exclude_paths: list[str] | None = None,
        request_id_header: str = "X-Request-ID",
    ) -> None:
        """Initialize the middleware.

        Args:
            app: The ASGI application to wrap.
            registry: Registry holding the request metrics and the gauge.
            emitter: Emitter for access log records.
            exclude_paths: Paths to exclude from outcome recording. Supports
                exact matches and wildcard patterns (e.g., "/internal/*").
                Excluded requests still count as active connections.
            request_id_header: Header carrying the request ID.
        """
        self.app = app
        self.registry = registry
        self.emitter = emitter
        self.exclude_paths = exclude_paths or []
        self.request_id_header = request_id_header

    def _path_excluded(self, path: str) -> bool:
        """Check if path matches any pattern in exclude_paths."""
        return any(fnmatch.fnmatch(path, pattern) for pattern in self.exclude_paths)

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        observer = ResponseObserver(send)
        failure: Exception | None = None

        self.registry.gauge_inc(ACTIVE_CONNECTIONS)
        try:
            start_time = time.perf_counter()
            try:
                await self.app(scope, receive, observer)
            except Exception as e:
                failure = e
            duration = time.perf_counter() - start_time

            status = observer.status
            if failure is not None and not observer.started:
                status = 500
            outcome = RequestOutcome(
                path=scope["path"],
                method=scope["method"],
                status_code=status,
                duration=duration,
            )
            if not self._path_excluded(outcome.path):
                try:
                    self._record(scope, outcome, failure)
                except Exception:
                    # Recording never raises; the app's own error wins.
                    logger.exception(
                        "Failed to record outcome for %s %s",
                        outcome.method,
                        outcome.path,
                    )
        finally:
            self.registry.gauge_dec(ACTIVE_CONNECTIONS)

        if failure is not None:
            raise failure

    def _record(
        self,
        scope: Scope,
        outcome: RequestOutcome,
        failure: Exception | None,
    ) -> None:
        """Publish one outcome to the registry and the log sink."""
        self.registry.inc(
            REQUESTS_TOTAL,
            {
                "endpoint": outcome.path,
                "method": outcome.method,
                "status": str(outcome.status_code),
            },
        )
        self.registry.observe(
            REQUEST_DURATION,
            {"endpoint": outcome.path, "method": outcome.method},
            outcome.duration,
        )
        extra: dict[str, str | int | float | bool] = {
            "request_id": _extract_request_id(scope, self.request_id_header),
            "remote_addr": _remote_addr(scope),
            "user_agent": _header(scope, "user-agent") or "",
        }
        if failure is not None:
            extra["exception"] = f"{type(failure).__name__}: {failure!s}"
        self.emitter.request(outcome, **extra)
