"""In-memory and stream log sinks."""

import sys
import threading
from collections.abc import Iterable
from typing import TextIO

from faultline.core.encoding.ndjson import encode_log_line
from faultline.core.models import LogEntry


class InMemoryLogStorage:
    """In-memory implementation of LogStoragePort.

    Stores log entries in a list guarded by a lock. Suitable for testing and
    for inspecting emitted records without a log shipper.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._entries: list[LogEntry] = []

    def write(self, entry: LogEntry) -> None:
        """Write a log entry to storage."""
        with self._lock:
            self._entries.append(entry)

    def read(self, since: float = 0, level: str | None = None) -> Iterable[LogEntry]:
        """Read log entries since the given timestamp.

        Returns entries with timestamp > since, ordered by timestamp ascending,
        optionally restricted to one level.
        """
        with self._lock:
            entries = list(self._entries)
        filtered = [
            e
            for e in entries
            if e.timestamp > since and (level is None or e.level == level)
        ]
        return sorted(filtered, key=lambda e: e.timestamp)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()


class StreamLogStorage:
    """Write-only sink that prints one NDJSON line per entry.

    Args:
        stream: Text stream to write to (default: sys.stdout).
    """

    def __init__(self, stream: TextIO | None = None) -> None:
        self._lock = threading.Lock()
        self._stream = stream if stream is not None else sys.stdout

    def write(self, entry: LogEntry) -> None:
        """Write a log entry as a single line and flush."""
        line = encode_log_line(entry) + "\n"
        with self._lock:
            self._stream.write(line)
            self._stream.flush()

    def read(self, since: float = 0, level: str | None = None) -> Iterable[LogEntry]:
        return []
