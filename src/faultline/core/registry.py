"""Process-wide metrics registry.

Holds counters, gauges and histograms keyed by metric name and label set.
Every mutation and every snapshot happens under a single lock, so concurrent
writers from request handlers (event loop or threadpool) never lose an
update and readers never see a half-applied one.
"""

import threading
from bisect import bisect_left
from collections.abc import Callable
from dataclasses import dataclass, field

from faultline.core.metrics import (
    DEFAULT_HISTOGRAM_BUCKETS,
    counter,
    gauge,
    histogram_samples,
)
from faultline.core.models import MetricFamily, MetricSample
from faultline.core.process import collect_process_metrics

COUNTER = "counter"
GAUGE = "gauge"
HISTOGRAM = "histogram"

_KINDS = frozenset({COUNTER, GAUGE, HISTOGRAM})

SeriesKey = tuple[tuple[str, str], ...]
Collector = Callable[[], list[MetricFamily]]


class MetricError(ValueError):
    """Raised on unknown metrics, kind mismatches or invalid updates."""


def _series_key(labels: dict[str, str] | None) -> SeriesKey:
    return tuple(sorted((labels or {}).items()))


@dataclass
class _HistogramSeries:
    bucket_counts: list[int]
    total: float = 0.0
    count: int = 0


@dataclass
class _Family:
    name: str
    kind: str
    help: str
    buckets: list[float] = field(default_factory=list)
    values: dict[SeriesKey, float] = field(default_factory=dict)
    histograms: dict[SeriesKey, _HistogramSeries] = field(default_factory=dict)


class MetricsRegistry:
    """Thread-safe in-process metrics registry."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._families: dict[str, _Family] = {}
        self._collectors: list[Collector] = []

    def add_collector(self, collector: Collector) -> None:
        """Attach a callback whose families are appended to every snapshot.

        Collectors are read at collect time, outside the registry lock.
        Adding the same collector twice is a no-op.
        """
        with self._lock:
            if collector not in self._collectors:
                self._collectors.append(collector)

    def register(
        self,
        name: str,
        kind: str,
        help: str,
        buckets: list[float] | None = None,
    ) -> None:
        """Register a metric.

        Re-registering the same name with the same kind is a no-op.

        Raises:
            MetricError: If the kind is unknown or the name is already
                registered with a different kind.
        """
        if kind not in _KINDS:
            raise MetricError(f"unknown metric kind: {kind}")
        with self._lock:
            existing = self._families.get(name)
            if existing is not None:
                if existing.kind != kind:
                    raise MetricError(
                        f"metric {name} already registered as {existing.kind}"
                    )
                return
            bounds: list[float] = []
            if kind == HISTOGRAM:
                bounds = sorted(buckets or DEFAULT_HISTOGRAM_BUCKETS)
            self._families[name] = _Family(name, kind, help, bounds)

    def _family(self, name: str, kind: str) -> _Family:
        family = self._families.get(name)
        if family is None:
            raise MetricError(f"unknown metric: {name}")
        if family.kind != kind:
            raise MetricError(f"metric {name} is a {family.kind}, not a {kind}")
        return family

    def inc(
        self, name: str, labels: dict[str, str] | None = None, value: float = 1.0
    ) -> None:
        """Add a non-negative value to a counter."""
        if value < 0:
            raise MetricError("counters can only increase")
        key = _series_key(labels)
        with self._lock:
            family = self._family(name, COUNTER)
            family.values[key] = family.values.get(key, 0.0) + value

    def observe(
        self, name: str, labels: dict[str, str] | None, value: float
    ) -> None:
        """Record one observation in a histogram."""
        key = _series_key(labels)
        with self._lock:
            family = self._family(name, HISTOGRAM)
            series = family.histograms.get(key)
            if series is None:
                series = _HistogramSeries(bucket_counts=[0] * len(family.buckets))
                family.histograms[key] = series
            index = bisect_left(family.buckets, value)
            if index < len(family.buckets):
                series.bucket_counts[index] += 1
            series.total += value
            series.count += 1

    def gauge_inc(
        self, name: str, labels: dict[str, str] | None = None, value: float = 1.0
    ) -> None:
        key = _series_key(labels)
        with self._lock:
            family = self._family(name, GAUGE)
            family.values[key] = family.values.get(key, 0.0) + value

    def gauge_dec(
        self, name: str, labels: dict[str, str] | None = None, value: float = 1.0
    ) -> None:
        self.gauge_inc(name, labels, -value)

    def gauge_set(
        self, name: str, value: float, labels: dict[str, str] | None = None
    ) -> None:
        key = _series_key(labels)
        with self._lock:
            self._family(name, GAUGE).values[key] = value

    def value(self, name: str, labels: dict[str, str] | None = None) -> float:
        """Return the current value of a counter or gauge series (0.0 if unseen)."""
        key = _series_key(labels)
        with self._lock:
            family = self._families.get(name)
            if family is None:
                raise MetricError(f"unknown metric: {name}")
            if family.kind == HISTOGRAM:
                raise MetricError(f"metric {name} is a histogram")
            return family.values.get(key, 0.0)

    def histogram_count(self, name: str, labels: dict[str, str] | None = None) -> int:
        """Return the number of observations recorded for a histogram series."""
        key = _series_key(labels)
        with self._lock:
            series = self._family(name, HISTOGRAM).histograms.get(key)
            return series.count if series is not None else 0

    def collect(self) -> list[MetricFamily]:
        """Take a consistent snapshot of every registered metric."""
        families: list[MetricFamily] = []
        with self._lock:
            for family in self._families.values():
                samples: list[MetricSample] = []
                if family.kind == HISTOGRAM:
                    for key, series in family.histograms.items():
                        samples.extend(
                            histogram_samples(
                                family.name,
                                list(series.bucket_counts),
                                series.total,
                                series.count,
                                labels=dict(key),
                                buckets=family.buckets,
                            )
                        )
                elif family.kind == COUNTER:
                    samples = [
                        counter(family.name, v, dict(k))
                        for k, v in family.values.items()
                    ]
                else:
                    samples = [
                        gauge(family.name, v, dict(k))
                        for k, v in family.values.items()
                    ]
                families.append(
                    MetricFamily(family.name, family.kind, family.help, samples)
                )
            collectors = list(self._collectors)
        for collector in collectors:
            families.extend(collector())
        return families


REQUESTS_TOTAL = "http_requests_total"
REQUEST_DURATION = "http_request_duration_seconds"
ACTIVE_CONNECTIONS = "active_connections"
MEMORY_ALLOCATIONS = "memory_allocations_bytes"
LEAK_EVENTS = "memory_leak_events_total"


def create_default_registry() -> MetricsRegistry:
    """Create a registry with the service and process metrics registered."""
    registry = MetricsRegistry()
    registry.register(REQUESTS_TOTAL, COUNTER, "Total number of HTTP requests")
    registry.register(
        REQUEST_DURATION, HISTOGRAM, "HTTP request latency in seconds"
    )
    registry.register(
        ACTIVE_CONNECTIONS, GAUGE, "Current number of active HTTP connections"
    )
    registry.register(
        MEMORY_ALLOCATIONS, GAUGE, "Bytes currently held by the simulated leak"
    )
    registry.register(LEAK_EVENTS, COUNTER, "Total number of simulated leak events")
    # Unlabelled gauges are exposed at zero from the start.
    registry.gauge_set(ACTIVE_CONNECTIONS, 0)
    registry.gauge_set(MEMORY_ALLOCATIONS, 0)
    registry.add_collector(collect_process_metrics)
    return registry
