"""Storage adapters for the optimist query client."""

from contextlib import suppress

from optimist.adapters.base import AsyncStorageAdapter
from optimist.adapters.memory import AsyncMemoryAdapter

# Optional adapters - only available when dependencies are installed
with suppress(ImportError):
    from optimist.adapters.redis import AsyncRedisAdapter

__all__ = [
    "AsyncMemoryAdapter",
    "AsyncRedisAdapter",
    "AsyncStorageAdapter",
]
