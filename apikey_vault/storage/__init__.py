"""Storage backends for identities and secrets."""

from .abstract import StorageBackend
from .memory import MemoryBackend

__all__ = [
    "StorageBackend",
    "MemoryBackend",
]
