"""Redis storage adapter."""

from __future__ import annotations

import json
from collections.abc import Callable
from typing import Any

from optimist.keys import deserialize_key, serialize_key
from optimist.types import QueryState


def _serialize_state(state: QueryState[object], dumps: Callable[[Any], Any]) -> str:
    """Serialize a query state to JSON."""
    return json.dumps(
        {
            "key": serialize_key(state.key),
            "data": dumps(state.data),
            "updated_at": state.updated_at,
            "is_invalidated": state.is_invalidated,
        }
    )


def _deserialize_state(
    data: bytes | str, loads: Callable[[Any], Any]
) -> QueryState[object]:
    """Deserialize JSON to a query state."""
    if isinstance(data, bytes):
        data = data.decode("utf-8")
    obj = json.loads(data)
    return QueryState(
        key=deserialize_key(obj["key"]),
        data=loads(obj["data"]),
        updated_at=obj["updated_at"],
        is_invalidated=obj["is_invalidated"],
    )


def _identity(value: Any) -> Any:
    return value


class AsyncRedisAdapter:
    """Async Redis storage adapter.

    Query data must be JSON-serializable after passing through ``dumps``;
    ``loads`` turns it back into application objects on read.
    """

    def __init__(
        self,
        client: Any,  # redis.asyncio.Redis
        *,
        prefix: str = "optimist",
        dumps: Callable[[Any], Any] = _identity,
        loads: Callable[[Any], Any] = _identity,
    ) -> None:
        self._client = client
        self._prefix = prefix
        self._dumps = dumps
        self._loads = loads

    def _state_key(self, key: str) -> str:
        """Generate full Redis key for a query state."""
        return f"{self._prefix}:query:{key}"

    async def get(self, key: str) -> QueryState[object] | None:
        """Get the state stored for a key."""
        data = await self._client.get(self._state_key(key))
        if data is None:
            return None
        return _deserialize_state(data, self._loads)

    async def set(self, key: str, state: QueryState[object]) -> None:
        """Store a query state."""
        await self._client.set(
            self._state_key(key), _serialize_state(state, self._dumps)
        )

    async def delete(self, key: str) -> None:
        """Delete the state for a key."""
        await self._client.delete(self._state_key(key))

    async def _scan(self) -> list[Any]:
        cursor: int = 0
        found: list[Any] = []
        pattern = f"{self._prefix}:query:*"
        while True:
            result = await self._client.scan(cursor, match=pattern, count=100)
            cursor = result[0]
            found.extend(result[1])
            if cursor == 0:
                break
        return found

    async def keys(self) -> list[str]:
        """List every stored key."""
        offset = len(f"{self._prefix}:query:")
        keys: list[str] = []
        for raw in await self._scan():
            name = raw.decode("utf-8") if isinstance(raw, bytes) else raw
            keys.append(name[offset:])
        return keys

    async def clear(self) -> None:
        """Clear all stored states under this prefix."""
        found = await self._scan()
        if found:
            await self._client.delete(*found)

    async def disconnect(self) -> None:
        """Close the Redis connection."""
        await self._client.aclose()
