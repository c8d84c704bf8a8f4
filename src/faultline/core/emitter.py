"""Structured log record construction and emission."""

from faultline.core.logs import level_for_status, log
from faultline.core.models import LogEntry, RequestOutcome
from faultline.core.ports import LogStoragePort


class LogEmitter:
    """Builds LogEntry records and writes them to a log sink.

    Example:
        ```python
        emitter = LogEmitter(InMemoryLogStorage())
        emitter.emit("WARN", "Memory leak triggered", allocated_kb=10)
        ```
    """

    def __init__(self, storage: LogStoragePort) -> None:
        self.storage = storage

    def emit(
        self,
        level: str,
        message: str,
        **attributes: str | int | float | bool,
    ) -> LogEntry:
        """Build one record and write it to the sink.

        Returns:
            The entry that was written.
        """
        entry = log(level, message, **attributes)
        self.storage.write(entry)
        return entry

    def request(
        self,
        outcome: RequestOutcome,
        **extra: str | int | float | bool,
    ) -> LogEntry:
        """Emit the access record for one completed request.

        The duration is written twice: ``duration_ms`` as a millisecond value
        and ``latency`` as raw seconds, so consumers expecting either shape
        can use it. ``route`` and ``status_code`` are aliases of ``path`` and
        ``status``.
        """
        return self.emit(
            level_for_status(outcome.status_code),
            "HTTP request",
            method=outcome.method,
            path=outcome.path,
            route=outcome.path,
            status=outcome.status_code,
            status_code=outcome.status_code,
            duration_ms=outcome.duration * 1000,
            latency=outcome.duration,
            **extra,
        )
