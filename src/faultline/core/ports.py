"""Port interfaces for log sinks.

The core depends only on this protocol, not on concrete sink adapters.
"""

from collections.abc import Iterable
from typing import Protocol, runtime_checkable

from faultline.core.models import LogEntry


@runtime_checkable
class LogStoragePort(Protocol):
    """Port for log sink operations.

    Adapters implementing this protocol receive every structured record the
    service emits. Examples: InMemoryLogStorage, StreamLogStorage.
    Writes may come from the event loop and from threadpool workers, so
    implementations must be safe to call concurrently.
    """

    def write(self, entry: LogEntry) -> None:
        """Write a log entry to the sink."""
        ...

    def read(self, since: float = 0, level: str | None = None) -> Iterable[LogEntry]:
        """Read log entries since the given timestamp.

        Args:
            since: Unix timestamp. Returns entries with timestamp > since.
                   Default 0 returns all entries.
            level: Optional level filter (e.g. "WARN").

        Returns:
            Iterable of LogEntry objects, ordered by timestamp ascending.
            Write-only sinks return nothing.
        """
        ...
