"""Fault simulators: artificial latency, memory growth and CPU saturation.

None of the simulators enforce an upper bound on the requested duration or
size. Callers of the HTTP surface are trusted operators running chaos
experiments; very large values will stall or exhaust the process.
"""

import asyncio
import threading
import time
from dataclasses import dataclass

from faultline.core.process import MemoryStats, read_memory_stats
from faultline.core.registry import LEAK_EVENTS, MEMORY_ALLOCATIONS, MetricsRegistry

_BYTES_PER_KB = 1024
# Size of one arithmetic batch between deadline checks in burn_cpu.
_CPU_BATCH = 10_000
# One full 0..255 pattern; a kilobyte is four of them.
_PATTERN = bytes(range(256))


class LeakAccumulator:
    """Append-only store of buffers that are never released.

    One accumulator is created at application start and shared by every
    memory-growth request. Appends are serialized by a lock so concurrent
    requests can neither lose a buffer nor observe a length that does not
    correspond to a completed append.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._buffers: list[bytearray] = []
        self._total_bytes = 0

    def append(self, buffer: bytearray) -> int:
        """Store a buffer and return the number of buffers held afterwards."""
        with self._lock:
            self._buffers.append(buffer)
            self._total_bytes += len(buffer)
            return len(self._buffers)

    def __len__(self) -> int:
        with self._lock:
            return len(self._buffers)

    @property
    def total_bytes(self) -> int:
        with self._lock:
            return self._total_bytes


@dataclass(frozen=True)
class LatencyResult:
    duration_ms: int
    actual_delay_ms: int


@dataclass(frozen=True)
class LeakResult:
    allocated_kb: int
    total_leaks: int
    memory: MemoryStats


@dataclass(frozen=True)
class CpuBurnResult:
    requested_ms: int
    actual_ms: int


def make_leak_buffer(size_kb: int) -> bytearray:
    """Allocate ``size_kb`` kilobytes where byte i holds i mod 256.

    The content is non-zero and position dependent so the allocation is
    really backed by memory pages.
    """
    return bytearray(_PATTERN) * (size_kb * (_BYTES_PER_KB // len(_PATTERN)))


async def simulate_latency(duration_ms: int) -> LatencyResult:
    """Suspend the current request for ``duration_ms`` milliseconds.

    Only the calling task is suspended; other requests keep running. The
    sleep is cancellable, so a server-side timeout aborts it cleanly.
    """
    await asyncio.sleep(duration_ms / 1000)
    return LatencyResult(duration_ms=duration_ms, actual_delay_ms=duration_ms)


def simulate_leak(
    accumulator: LeakAccumulator,
    size_kb: int,
    registry: MetricsRegistry | None = None,
) -> LeakResult:
    """Allocate a buffer, keep it forever and report memory figures.

    Args:
        accumulator: Process-wide accumulator that owns the buffer.
        size_kb: Buffer size in kilobytes.
        registry: If given, leak gauges are updated after the append.
    """
    buffer = make_leak_buffer(size_kb)
    total_leaks = accumulator.append(buffer)
    if registry is not None:
        registry.gauge_inc(MEMORY_ALLOCATIONS, value=len(buffer))
        registry.inc(LEAK_EVENTS)
    return LeakResult(
        allocated_kb=size_kb,
        total_leaks=total_leaks,
        memory=read_memory_stats(),
    )


def burn_cpu(duration_ms: int) -> CpuBurnResult:
    """Keep the calling thread busy for at least ``duration_ms`` milliseconds.

    This is deliberately a non-yielding arithmetic loop rather than a sleep:
    saturating one execution unit is the purpose of the simulator. Run it off
    the event loop (e.g. in a threadpool worker) unless stalling the loop is
    the intended effect.
    """
    start = time.perf_counter()
    elapsed_ms = 0.0
    total = 0
    while elapsed_ms < duration_ms:
        for i in range(_CPU_BATCH):
            total += i
        elapsed_ms = (time.perf_counter() - start) * 1000
    return CpuBurnResult(requested_ms=duration_ms, actual_ms=int(elapsed_ms))
