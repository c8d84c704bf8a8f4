"""Core domain models for request accounting and observability data."""

from dataclasses import dataclass, field


@dataclass(frozen=True)
class LogEntry:
    """A structured log entry.

    Attributes:
        timestamp: Unix timestamp in seconds.
        level: Log level (e.g., INFO, WARN, ERROR, DEBUG).
        message: The log message.
        attributes: Additional structured fields.
    """

    timestamp: float
    level: str
    message: str
    attributes: dict[str, str | int | float | bool] = field(default_factory=dict)


@dataclass(frozen=True)
class MetricSample:
    """A single metric measurement.

    Attributes:
        name: Sample name (e.g., http_requests_total, latency_bucket).
        timestamp: Unix timestamp in seconds.
        value: The metric value.
        labels: Key-value pairs for metric dimensions.
    """

    name: str
    timestamp: float
    value: float
    labels: dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class MetricFamily:
    """A registered metric together with its current samples.

    Attributes:
        name: Metric name as registered.
        kind: One of "counter", "gauge" or "histogram".
        help: Human readable description for the exposition format.
        samples: Samples belonging to this metric.
    """

    name: str
    kind: str
    help: str
    samples: list[MetricSample] = field(default_factory=list)


@dataclass(frozen=True)
class RequestOutcome:
    """Summary of one completed request.

    Attributes:
        path: Request path.
        method: HTTP method.
        status_code: Status code actually sent (200 if never set explicitly).
        duration: Wall-clock time spent in the wrapped app, in seconds.
    """

    path: str
    method: str
    status_code: int
    duration: float
