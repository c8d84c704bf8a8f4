"""FastAPI application exposing health, metrics, log ingress and fault endpoints."""

import json
from datetime import datetime, timezone

from fastapi import APIRouter, FastAPI, Request, Response
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ValidationError

from faultline import __version__
from faultline.adapters.frameworks.asgi import InstrumentationMiddleware
from faultline.adapters.frameworks.query_params import (
    _first_values,
    _parse_non_negative_int,
)
from faultline.adapters.storage.in_memory import InMemoryLogStorage, StreamLogStorage
from faultline.config import Settings
from faultline.core.emitter import LogEmitter
from faultline.core.encoding.prometheus import CONTENT_TYPE, encode_metrics
from faultline.core.faults import (
    LeakAccumulator,
    burn_cpu,
    simulate_latency,
    simulate_leak,
)
from faultline.core.logs import DEFAULT_LEVEL, resolve_level
from faultline.core.ports import LogStoragePort
from faultline.core.registry import MetricsRegistry, create_default_registry

DEFAULT_SLOW_MS = 1000
DEFAULT_LEAK_KB = 1024
DEFAULT_CPU_MS = 5000
EMPTY_LOG_MESSAGE = "empty log message"

_MB = 1024 * 1024


class LogRequest(BaseModel):
    """Body accepted by POST /log. Unknown fields are ignored."""

    level: str | None = None
    message: str | None = None


def _bad_request(message: str) -> JSONResponse:
    return JSONResponse({"error": message}, status_code=400)


def _query(request: Request) -> dict[str, str]:
    return _first_values(request.query_params.multi_items())


def _rfc3339_now() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def _parse_log_body(body: bytes) -> LogRequest:
    """Decode a /log body; a JSON null counts as an empty object.

    Raises:
        ValueError: If the body is not JSON or does not match LogRequest.
    """
    data = json.loads(body)
    if data is None:
        data = {}
    return LogRequest.model_validate(data)


def create_service_router(
    settings: Settings,
    registry: MetricsRegistry,
    emitter: LogEmitter,
    leaks: LeakAccumulator,
) -> APIRouter:
    """Create a router with the health, metrics, log and fault endpoints.

    Args:
        settings: Service settings (profiling URLs are derived from them).
        registry: Registry rendered by /metrics and updated by /leak.
        emitter: Emitter used by /log, /leak and /cpu.
        leaks: Accumulator that owns every /leak allocation.

    Returns:
        APIRouter with all service endpoints configured.
    """
    router = APIRouter()
    profiling = settings.profiling_url

    @router.get("/health")
    async def health() -> dict[str, str]:
        """Liveness probe."""
        return {"status": "healthy", "timestamp": _rfc3339_now()}

    @router.get("/metrics")
    async def metrics() -> Response:
        """Return metrics in Prometheus text format."""
        body = encode_metrics(registry.collect())
        return Response(content=body, media_type=CONTENT_TYPE)

    @router.get("/slow")
    async def slow(request: Request) -> Response:
        """Delay the response by ``duration`` milliseconds (default 1000)."""
        duration = _parse_non_negative_int(
            _query(request), "duration", DEFAULT_SLOW_MS
        )
        if duration is None:
            return _bad_request("invalid duration parameter")

        result = await simulate_latency(duration)
        return JSONResponse(
            {
                "message": "slow endpoint completed",
                "duration_ms": result.duration_ms,
                "actual_delay": result.actual_delay_ms,
            }
        )

    # Sync endpoints run in the threadpool: /leak appends from worker threads
    # and /cpu saturates its worker instead of the event loop.
    @router.get("/leak")
    def leak(request: Request) -> Response:
        """Allocate ``size`` kilobytes (default 1024) and never free them."""
        size_kb = _parse_non_negative_int(_query(request), "size", DEFAULT_LEAK_KB)
        if size_kb is None:
            return _bad_request("invalid size parameter")

        result = simulate_leak(leaks, size_kb, registry)
        heap_alloc_mb = result.memory.heap_alloc_bytes // _MB
        heap_sys_mb = result.memory.heap_sys_bytes // _MB
        emitter.emit(
            "WARN",
            "Memory leak triggered",
            allocated_kb=result.allocated_kb,
            total_leaks=result.total_leaks,
            heap_alloc_mb=heap_alloc_mb,
            sys_mb=heap_sys_mb,
        )
        return JSONResponse(
            {
                "message": "memory leak triggered",
                "allocated_kb": result.allocated_kb,
                "total_leaks": result.total_leaks,
                "heap_alloc_mb": heap_alloc_mb,
                "heap_sys_mb": heap_sys_mb,
                "num_gc": result.memory.num_gc,
                "pprof_heap_url": f"{profiling}/heap",
                "pprof_profile_url": f"{profiling}/profile?seconds=30",
            }
        )

    @router.get("/cpu")
    def cpu(request: Request) -> Response:
        """Busy-loop for ``duration`` milliseconds (default 5000)."""
        duration = _parse_non_negative_int(
            _query(request), "duration", DEFAULT_CPU_MS
        )
        if duration is None:
            return _bad_request("invalid duration parameter")

        emitter.emit("INFO", "CPU spike triggered", duration_ms=duration)
        result = burn_cpu(duration)
        return JSONResponse(
            {
                "message": "CPU spike completed",
                "requested_duration": result.requested_ms,
                "actual_duration_ms": result.actual_ms,
                "pprof_cpu_url": f"{profiling}/profile?seconds={duration // 1000}",
            }
        )

    @router.post("/log")
    async def ingest_log(request: Request) -> Response:
        """Emit one structured record at the requested level."""
        try:
            payload = _parse_log_body(await request.body())
        except (ValueError, ValidationError):
            return _bad_request("invalid request body")

        level = payload.level or DEFAULT_LEVEL
        message = payload.message or EMPTY_LOG_MESSAGE
        severity, original_level = resolve_level(level)
        attributes: dict[str, str | int | float | bool] = {
            "source": "api",
            "endpoint": "/log",
        }
        if original_level is not None:
            attributes["original_level"] = original_level
        emitter.emit(severity, message, **attributes)

        return JSONResponse({"status": "logged", "message": message})

    return router


def _default_storage(settings: Settings) -> LogStoragePort:
    if settings.log_sink == "memory":
        return InMemoryLogStorage()
    return StreamLogStorage()


def create_app(
    settings: Settings | None = None,
    registry: MetricsRegistry | None = None,
    log_storage: LogStoragePort | None = None,
    leaks: LeakAccumulator | None = None,
) -> FastAPI:
    """Create the instrumented service application.

    Args:
        settings: Service settings (default: Settings()).
        registry: Metrics registry (default: a new default registry).
        log_storage: Log sink (default: chosen by ``settings.log_sink``).
        leaks: Leak accumulator (default: a new, empty accumulator). It lives
            as long as the application and is never cleared.

    Returns:
        FastAPI application wrapped in InstrumentationMiddleware. The
        collaborators are exposed on ``app.state``.
    """
    settings = settings or Settings()
    registry = registry if registry is not None else create_default_registry()
    if log_storage is None:
        log_storage = _default_storage(settings)
    leaks = leaks if leaks is not None else LeakAccumulator()
    emitter = LogEmitter(log_storage)

    app = FastAPI(title="faultline", version=__version__)
    app.state.settings = settings
    app.state.registry = registry
    app.state.emitter = emitter
    app.state.leaks = leaks
    app.include_router(create_service_router(settings, registry, emitter, leaks))
    app.add_middleware(
        InstrumentationMiddleware,
        registry=registry,
        emitter=emitter,
        exclude_paths=settings.exclude_paths,
    )
    return app
