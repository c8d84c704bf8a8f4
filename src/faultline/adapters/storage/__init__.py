"""Log sink adapters implementing core ports."""

from faultline.adapters.storage.in_memory import InMemoryLogStorage, StreamLogStorage

__all__ = [
    "InMemoryLogStorage",
    "StreamLogStorage",
]
