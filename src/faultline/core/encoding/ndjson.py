"""NDJSON encoder for log entries.

Entries are flattened so that log shippers can index structured attributes
as top-level fields next to the timestamp, level and message.
"""

import json

from faultline.core.models import LogEntry

# Keys owned by the record envelope; attributes never overwrite them.
_RESERVED_KEYS = ("ts", "level", "msg")


def encode_log_line(entry: LogEntry) -> str:
    """Encode a single log entry as one JSON object.

    Args:
        entry: The entry to encode.

    Returns:
        Compact JSON string without a trailing newline. Attributes that
        collide with envelope keys are prefixed with ``attr_``.
    """
    obj: dict[str, object] = {
        "ts": entry.timestamp,
        "level": entry.level.lower(),
        "msg": entry.message,
    }
    for key, value in entry.attributes.items():
        if key in _RESERVED_KEYS:
            key = f"attr_{key}"
        obj[key] = value
    return json.dumps(obj, separators=(",", ":"))
