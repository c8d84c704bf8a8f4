"""Process and runtime figures read from psutil and the garbage collector.

These are exported on every scrape alongside the service metrics, so the
effect of the memory and CPU fault endpoints is visible from /metrics.
"""

import gc
from dataclasses import dataclass

import psutil

from faultline.core.metrics import counter, gauge
from faultline.core.models import MetricFamily

PROCESS_RESIDENT_MEMORY = "process_resident_memory_bytes"
PROCESS_VIRTUAL_MEMORY = "process_virtual_memory_bytes"
PROCESS_CPU_SECONDS = "process_cpu_seconds_total"
GC_COLLECTIONS = "python_gc_collections_total"


@dataclass(frozen=True)
class MemoryStats:
    """Process memory figures reported by the memory-growth simulator.

    Attributes:
        heap_alloc_bytes: Resident memory currently in use by the process.
        heap_sys_bytes: Virtual memory reserved from the OS.
        num_gc: Garbage collector runs summed over all generations.
    """

    heap_alloc_bytes: int
    heap_sys_bytes: int
    num_gc: int


def read_memory_stats() -> MemoryStats:
    """Read current process memory usage and garbage collector activity."""
    info = psutil.Process().memory_info()
    num_gc = sum(generation["collections"] for generation in gc.get_stats())
    return MemoryStats(
        heap_alloc_bytes=info.rss,
        heap_sys_bytes=info.vms,
        num_gc=num_gc,
    )


def collect_process_metrics() -> list[MetricFamily]:
    """Snapshot memory, CPU time and per-generation GC collections."""
    stats = read_memory_stats()
    cpu = psutil.Process().cpu_times()
    collections = [
        counter(
            GC_COLLECTIONS,
            float(generation["collections"]),
            {"generation": str(i)},
        )
        for i, generation in enumerate(gc.get_stats())
    ]
    return [
        MetricFamily(
            PROCESS_RESIDENT_MEMORY,
            "gauge",
            "Resident memory size in bytes",
            [gauge(PROCESS_RESIDENT_MEMORY, float(stats.heap_alloc_bytes))],
        ),
        MetricFamily(
            PROCESS_VIRTUAL_MEMORY,
            "gauge",
            "Virtual memory size in bytes",
            [gauge(PROCESS_VIRTUAL_MEMORY, float(stats.heap_sys_bytes))],
        ),
        MetricFamily(
            PROCESS_CPU_SECONDS,
            "counter",
            "Total user and system CPU time spent in seconds",
            [counter(PROCESS_CPU_SECONDS, cpu.user + cpu.system)],
        ),
        MetricFamily(
            GC_COLLECTIONS,
            "counter",
            "Garbage collector runs per generation",
            collections,
        ),
    ]
