"""Core types for the optimist mutation engine."""

from collections.abc import Callable
from dataclasses import dataclass
from datetime import timedelta
from typing import (
    TYPE_CHECKING,
    Generic,
    NewType,
    Protocol,
    TypeVar,
    runtime_checkable,
)

T = TypeVar("T")
V = TypeVar("V")
R = TypeVar("R")

# Branded key type - compile-time enforcement only
if TYPE_CHECKING:
    QueryKey = NewType("QueryKey", tuple[str | int | float | bool | None, ...])
else:
    QueryKey = tuple


@runtime_checkable
class Identified(Protocol):
    """A record with a stable identity field."""

    @property
    def id(self) -> str: ...


@dataclass(frozen=True, slots=True)
class QueryState(Generic[T]):
    """The value stored for one query key."""

    key: QueryKey
    data: T
    updated_at: int  # Unix timestamp ms
    is_invalidated: bool = False


# ---------------------------------------------------------------------------
# Mutation configs: one dataclass per behaviour
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class SingleUpdate(Generic[T, V]):
    """Replace a single cached object."""

    query_key: QueryKey
    optimistic_data: Callable[[V, T | None], T]
    error_message: str | None = None
    invalidate_keys: tuple[QueryKey, ...] = ()


@dataclass(frozen=True, slots=True)
class ListAdd(Generic[T, V]):
    """Append one or more placeholder items to a cached list."""

    query_key: QueryKey
    optimistic_data: Callable[[V, list[T]], T | list[T] | None] | None = None
    error_message: str | None = None
    invalidate_keys: tuple[QueryKey, ...] = ()


@dataclass(frozen=True, slots=True)
class ListUpdate(Generic[T, V]):
    """Replace items of a cached list by id."""

    query_key: QueryKey
    get_id: Callable[[V], str | None]
    optimistic_data: Callable[[V, list[T]], T | list[T] | None] | None = None
    error_message: str | None = None
    invalidate_keys: tuple[QueryKey, ...] = ()


@dataclass(frozen=True, slots=True)
class ListDelete(Generic[T, V]):
    """Remove an item from a cached list by id."""

    query_key: QueryKey
    get_id: Callable[[V], str | None]
    error_message: str | None = None
    invalidate_keys: tuple[QueryKey, ...] = ()


MutationConfig = (
    SingleUpdate[T, V] | ListAdd[T, V] | ListUpdate[T, V] | ListDelete[T, V]
)


@dataclass(frozen=True, slots=True)
class Snapshot:
    """Capture of a cache slot taken before an optimistic write.

    ``previous`` is None when the slot held nothing.
    """

    key: QueryKey
    previous: QueryState[object] | None


@dataclass(frozen=True, slots=True)
class MutationOutcome(Generic[R]):
    """Result of one tracked mutation: either a result or the absorbed error."""

    result: R | None = None
    error: Exception | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


# Duration type alias
Duration = str | int | timedelta  # "30s", "5m", "2h", "1d", milliseconds or timedelta
