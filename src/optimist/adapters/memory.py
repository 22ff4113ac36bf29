"""In-memory storage adapter."""

from collections import OrderedDict

from optimist.types import QueryState


class AsyncMemoryAdapter:
    """Async in-memory storage adapter with optional LRU eviction.

    None of the methods suspend, so a read followed by a write from the
    same coroutine is never interleaved with another coroutine's access.
    """

    def __init__(self, max_items: int | None = None) -> None:
        if max_items is not None and max_items <= 0:
            raise ValueError("max_items must be positive")
        self._states: OrderedDict[str, QueryState[object]] = OrderedDict()
        self._max_items = max_items

    async def get(self, key: str) -> QueryState[object] | None:
        """Get the state stored for a key."""
        state = self._states.get(key)
        if state is not None:
            self._states.move_to_end(key)  # LRU touch
        return state

    async def set(self, key: str, state: QueryState[object]) -> None:
        """Store a query state."""
        self._states[key] = state
        self._states.move_to_end(key)
        if self._max_items and len(self._states) > self._max_items:
            self._states.popitem(last=False)

    async def delete(self, key: str) -> None:
        """Delete the state for a key."""
        self._states.pop(key, None)

    async def keys(self) -> list[str]:
        """List every stored key, least recently used first."""
        return list(self._states)

    async def clear(self) -> None:
        """Clear all stored states."""
        self._states.clear()

    async def disconnect(self) -> None:
        """Disconnect from the storage backend (no-op for memory)."""
        pass
