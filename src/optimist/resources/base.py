"""Shared plumbing for the domain resources."""

from __future__ import annotations

import uuid
from collections.abc import Awaitable, Callable, Iterable, Mapping, Sequence
from dataclasses import dataclass, fields, replace
from datetime import datetime
from typing import Any, TypeVar

from optimist.client import QueryClient
from optimist.notify import LoggingNotifier, Notifier
from optimist.optimistic import OptimisticMutation, create_optimistic_callbacks
from optimist.remote import Backend
from optimist.types import Identified, MutationConfig, MutationOutcome, QueryKey

EntityT = TypeVar("EntityT")
ItemT = TypeVar("ItemT", bound=Identified)
V = TypeVar("V")
R = TypeVar("R")

TEMP_ID_PREFIX = "temp-"


def temp_id() -> str:
    """Placeholder id for an item the server has not stored yet."""
    return f"{TEMP_ID_PREFIX}{uuid.uuid4().hex}"


def is_temporary_id(value: str) -> bool:
    return value.startswith(TEMP_ID_PREFIX)


def now_iso() -> str:
    """Local time with offset, as the backend's timestamp columns expect."""
    return datetime.now().astimezone().isoformat(timespec="seconds")


def from_row(
    cls: type[EntityT],
    row: Mapping[str, Any],
    *,
    renames: Mapping[str, str] | None = None,
) -> EntityT:
    """Build an entity from a backend row, ignoring unknown columns."""
    names = {f.name for f in fields(cls)}  # type: ignore[arg-type]
    values: dict[str, Any] = {}
    for column, value in row.items():
        name = renames.get(column, column) if renames else column
        if name in names:
            values[name] = value
    return cls(**values)


@dataclass(frozen=True, slots=True)
class ItemUpdate:
    """Variables of an update mutation: which item and which fields."""

    id: str
    changes: Mapping[str, Any]


def item_id(variables: ItemUpdate | str) -> str | None:
    """get_id for resources: read the id of update variables or a bare id."""
    if isinstance(variables, str):
        return variables
    return variables.id


def merged(variables: ItemUpdate, items: Sequence[ItemT]) -> ItemT | None:
    """Return the cached item with the requested changes applied."""
    for item in items:
        if item.id == variables.id:
            return replace(item, **variables.changes)  # type: ignore[type-var]
    return None


def check_changes(
    cls: type[Any],
    changes: Mapping[str, Any],
    *,
    protected: Iterable[str] = ("id", "created_at"),
) -> None:
    """Reject changes to unknown or protected fields of ``cls``."""
    if not changes:
        raise ValueError("No changes given")
    names = {f.name for f in fields(cls)}
    blocked = set(protected)
    for name in changes:
        if name not in names:
            raise ValueError(f"{cls.__name__} has no field {name!r}")
        if name in blocked:
            raise ValueError(f"{cls.__name__}.{name} cannot be changed")


def check_saved(kind: str, value: str) -> None:
    """Reject ids of placeholders that only exist in the cache."""
    if not value:
        raise ValueError(f"{kind} id is required")
    if is_temporary_id(value):
        raise ValueError(f"{kind} {value!r} has not been saved yet")


class Resource:
    """Base for domain resources: binds a query client, backend and notifier."""

    def __init__(
        self,
        client: QueryClient,
        backend: Backend,
        *,
        notifier: Notifier | None = None,
    ) -> None:
        self._client = client
        self._backend = backend
        self._notifier = notifier if notifier is not None else LoggingNotifier()

    async def _fetch(self, key: QueryKey, fn: Callable[[], Awaitable[Any]]) -> Any:
        return await self._client.fetch_query(key, fn)

    async def _mutate(
        self,
        config: MutationConfig[Any, V],
        fn: Callable[[V], Awaitable[R]],
        variables: V,
        *,
        success_message: str | None = None,
    ) -> MutationOutcome[R]:
        controller = create_optimistic_callbacks(
            self._client, config, notifier=self._notifier
        )
        mutation = OptimisticMutation(fn, controller, success_message=success_message)
        return await mutation.execute(variables)
