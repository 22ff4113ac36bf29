"""Query key construction and matching."""

import json
from collections.abc import Callable
from typing import Any

from optimist.types import QueryKey

_PRIMITIVES = (str, int, float, bool, type(None))


def query_key(*parts: Any) -> QueryKey:
    """Build a QueryKey, rejecting non-primitive parts."""
    for part in parts:
        if not isinstance(part, _PRIMITIVES):
            raise TypeError(
                f"Query key parts must be primitives, got {type(part).__name__}"
            )
    return QueryKey(parts)


def define_keys(
    definitions: dict[str, Callable[..., tuple[Any, ...]]],
) -> dict[str, Callable[..., QueryKey]]:
    """
    Define all query keys of an application in one place.

    Example:
        keys = define_keys({
            "tasks": lambda project_id: ("project-tasks", project_id),
            "project": lambda project_id: ("project", project_id),
        })

        keys["tasks"]("p1")   # QueryKey: ("project-tasks", "p1")
    """
    result: dict[str, Callable[..., QueryKey]] = {}
    for name, fn in definitions.items():

        def make_key(*args: Any, _fn: Callable[..., tuple[Any, ...]] = fn) -> QueryKey:
            return query_key(*_fn(*args))

        result[name] = make_key
    return result


def ensure_key(key: Any) -> QueryKey:
    """Validate that ``key`` is a tuple of primitives."""
    if not isinstance(key, tuple):
        raise TypeError(f"Query key must be a tuple, got {type(key).__name__}")
    return query_key(*key)


def serialize_key(key: QueryKey) -> str:
    """Serialize a query key to a string for storage."""
    return json.dumps(list(key), separators=(",", ":"))


def deserialize_key(serialized: str) -> QueryKey:
    """Inverse of serialize_key."""
    return QueryKey(tuple(json.loads(serialized)))


def is_key_prefix(parent: QueryKey, child: QueryKey) -> bool:
    """Check if parent is a prefix of child (for cancel and invalidate)."""
    if len(parent) > len(child):
        return False
    return child[: len(parent)] == parent
