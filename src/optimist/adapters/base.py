"""Base adapter protocol for storage backends."""

from typing import Protocol, runtime_checkable

from optimist.types import QueryState


@runtime_checkable
class AsyncStorageAdapter(Protocol):
    """Async storage adapter interface.

    Keys are serialized query keys (see ``optimist.keys.serialize_key``).
    """

    async def get(self, key: str) -> QueryState[object] | None:
        """Get the state stored for a key."""
        ...

    async def set(self, key: str, state: QueryState[object]) -> None:
        """Store a query state."""
        ...

    async def delete(self, key: str) -> None:
        """Delete the state for a key."""
        ...

    async def keys(self) -> list[str]:
        """List every stored key."""
        ...

    async def clear(self) -> None:
        """Clear all stored states."""
        ...

    async def disconnect(self) -> None:
        """Disconnect from the storage backend."""
        ...
