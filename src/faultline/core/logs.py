"""Log helpers for creating LogEntry objects and resolving severities."""

import time

from faultline.core.models import LogEntry

# Closed set of levels accepted by the log ingress, mapped to sink severities.
KNOWN_LEVELS: dict[str, str] = {
    "debug": "DEBUG",
    "info": "INFO",
    "warn": "WARN",
    "error": "ERROR",
}

DEFAULT_LEVEL = "info"


def resolve_level(level: str) -> tuple[str, str | None]:
    """Map a requested level to a sink severity.

    Args:
        level: Level string as supplied by the caller (e.g. "warn").

    Returns:
        Tuple of (severity, original). ``original`` is None for known levels
        and the unmodified input for unrecognized ones, which fall back to
        INFO severity.
    """
    severity = KNOWN_LEVELS.get(level)
    if severity is not None:
        return severity, None
    return KNOWN_LEVELS[DEFAULT_LEVEL], level


def level_for_status(status_code: int) -> str:
    """Determine log level based on HTTP status code.

    Maps status codes to log levels:
    - 400-499 (4xx) → "WARN"
    - 500-599 (5xx) → "ERROR"
    - Other → "INFO"
    """
    if 400 <= status_code < 500:
        return "WARN"
    if 500 <= status_code < 600:
        return "ERROR"
    return "INFO"


def log(
    level: str,
    message: str,
    **attributes: str | int | float | bool,
) -> LogEntry:
    """Create a log entry with automatic timestamp.

    Args:
        level: Log level (e.g., "INFO", "ERROR", "DEBUG")
        message: The log message
        **attributes: Additional structured fields

    Returns:
        LogEntry with current timestamp
    """
    return LogEntry(
        timestamp=time.time(),
        level=level,
        message=message,
        attributes=dict(attributes),
    )
