"""Builders for the MetricSample objects produced by a registry snapshot."""

import time

from faultline.core.models import MetricSample


def _sample(
    name: str, value: float, labels: dict[str, str] | None
) -> MetricSample:
    return MetricSample(
        name=name, timestamp=time.time(), value=value, labels=dict(labels or {})
    )


def counter(
    name: str, value: float, labels: dict[str, str] | None = None
) -> MetricSample:
    """Sample of a counter series.

    Raises:
        ValueError: If ``value`` is negative; counters never go down.
    """
    if value < 0:
        raise ValueError(f"counter {name} cannot be negative: {value}")
    return _sample(name, value, labels)


def gauge(
    name: str, value: float, labels: dict[str, str] | None = None
) -> MetricSample:
    """Sample of a gauge series; any value, including negative, is allowed."""
    return _sample(name, value, labels)


DEFAULT_HISTOGRAM_BUCKETS = [0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1, 2.5, 5, 10]


def histogram_samples(
    name: str,
    bucket_counts: list[int],
    total: float,
    count: int,
    labels: dict[str, str] | None = None,
    buckets: list[float] | None = None,
) -> list[MetricSample]:
    """Create the samples describing one histogram series.

    Args:
        name: Metric name (e.g., "http_request_duration_seconds")
        bucket_counts: Non-cumulative observation counts, one per boundary
        total: Sum of all observed values
        count: Number of observations
        labels: Optional dimension labels
        buckets: Bucket boundaries (default: Prometheus standard buckets)

    Returns:
        List of MetricSample objects (cumulative buckets + sum + count)
    """
    timestamp = time.time()
    base_labels = labels or {}
    bucket_boundaries = buckets if buckets is not None else DEFAULT_HISTOGRAM_BUCKETS

    samples: list[MetricSample] = []

    cumulative = 0
    for boundary, observed in zip(bucket_boundaries, bucket_counts, strict=True):
        cumulative += observed
        samples.append(
            MetricSample(
                name=f"{name}_bucket",
                timestamp=timestamp,
                value=float(cumulative),
                labels={**base_labels, "le": str(boundary)},
            )
        )

    # +Inf always holds every observation
    samples.append(
        MetricSample(
            name=f"{name}_bucket",
            timestamp=timestamp,
            value=float(count),
            labels={**base_labels, "le": "+Inf"},
        )
    )
    samples.append(
        MetricSample(
            name=f"{name}_sum",
            timestamp=timestamp,
            value=total,
            labels=base_labels,
        )
    )
    samples.append(
        MetricSample(
            name=f"{name}_count",
            timestamp=timestamp,
            value=float(count),
            labels=base_labels,
        )
    )

    return samples
