"""Optimistic mutations over a query store.

Provides:
- OptimisticController: on_mutate / on_error / on_settled for one MutationConfig
- MutationContext: per-invocation lifecycle state carrying the rollback snapshot
- OptimisticMutation: harness running a remote call between the callbacks
- create_optimistic_callbacks(), optimistic_mutation(): factory and decorator

Every optimistic write is temporary. Whatever the outcome, on_settled
invalidates the affected keys and the next authoritative fetch replaces it;
a successful response is never merged into the cache directly.
"""

from __future__ import annotations

import asyncio
import functools
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Generic, TypeVar, assert_never

from optimist.client import QueryStore
from optimist.notify import DEFAULT_ERROR_MESSAGE, LoggingNotifier, Notifier
from optimist.types import (
    Identified,
    ListAdd,
    ListDelete,
    ListUpdate,
    MutationConfig,
    MutationOutcome,
    QueryKey,
    SingleUpdate,
    Snapshot,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")
V = TypeVar("V")
R = TypeVar("R")
ItemT = TypeVar("ItemT", bound=Identified)


class InvalidTransitionError(RuntimeError):
    """Raised when a mutation lifecycle step runs out of order."""


class MutationPhase(Enum):
    IDLE = "idle"
    OPTIMISTIC_APPLIED = "optimistic-applied"
    SETTLED_OK = "settled-ok"
    SETTLED_ERROR = "settled-error"
    INVALIDATED = "invalidated"


_TRANSITIONS: dict[MutationPhase, frozenset[MutationPhase]] = {
    MutationPhase.IDLE: frozenset({MutationPhase.OPTIMISTIC_APPLIED}),
    MutationPhase.OPTIMISTIC_APPLIED: frozenset(
        {
            MutationPhase.SETTLED_OK,
            MutationPhase.SETTLED_ERROR,
            MutationPhase.INVALIDATED,
        }
    ),
    MutationPhase.SETTLED_OK: frozenset({MutationPhase.INVALIDATED}),
    MutationPhase.SETTLED_ERROR: frozenset({MutationPhase.INVALIDATED}),
    MutationPhase.INVALIDATED: frozenset(),
}


@dataclass(eq=False, slots=True)
class MutationContext:
    """Lifecycle state of one mutation invocation.

    Only on_mutate produces a context, so a rollback always has a snapshot
    to restore. The snapshot is dropped once the context settles.
    """

    query_key: QueryKey
    snapshot: Snapshot | None = None
    phase: MutationPhase = field(default=MutationPhase.IDLE)

    @property
    def previous_data(self) -> Any | None:
        """Data held by the slot before the optimistic write."""
        if self.snapshot is None or self.snapshot.previous is None:
            return None
        return self.snapshot.previous.data

    def can_advance(self, to: MutationPhase) -> bool:
        return to in _TRANSITIONS[self.phase]

    def advance(self, to: MutationPhase) -> None:
        if not self.can_advance(to):
            raise InvalidTransitionError(
                f"Cannot move mutation on {self.query_key!r} "
                f"from {self.phase.value} to {to.value}"
            )
        self.phase = to
        if to is MutationPhase.INVALIDATED:
            self.snapshot = None


# -----------------------------------------------------------------------------
# List transforms
# -----------------------------------------------------------------------------


def _as_items(result: ItemT | list[ItemT] | None) -> list[ItemT]:
    if result is None:
        return []
    if isinstance(result, list):
        return result
    return [result]


def apply_add(
    config: ListAdd[ItemT, V], variables: V, old: list[ItemT]
) -> list[ItemT]:
    """Append the placeholder item(s) after the existing ones."""
    if config.optimistic_data is None:
        return old
    return [*old, *_as_items(config.optimistic_data(variables, old))]


def apply_update(
    config: ListUpdate[ItemT, V], variables: V, old: list[ItemT]
) -> list[ItemT]:
    """Swap in candidates by id; other items keep their identity and position."""
    item_id = config.get_id(variables)
    if not item_id or config.optimistic_data is None:
        return old
    candidates: dict[str, ItemT] = {}
    for candidate in _as_items(config.optimistic_data(variables, old)):
        candidates.setdefault(candidate.id, candidate)
    return [candidates.get(item.id, item) for item in old]


def apply_delete(
    config: ListDelete[ItemT, V], variables: V, old: list[ItemT]
) -> list[ItemT]:
    """Drop the item with the resolved id; an unknown id changes nothing."""
    item_id = config.get_id(variables)
    if not item_id:
        return old
    return [item for item in old if item.id != item_id]


# -----------------------------------------------------------------------------
# Controller
# -----------------------------------------------------------------------------


class OptimisticController(Generic[T, V]):
    """Lifecycle callbacks applying one MutationConfig to a query store."""

    def __init__(
        self,
        store: QueryStore,
        config: MutationConfig[T, V],
        *,
        notifier: Notifier | None = None,
        error_message: str = DEFAULT_ERROR_MESSAGE,
    ) -> None:
        self._store = store
        self._config = config
        self._notifier = notifier if notifier is not None else LoggingNotifier()
        self._error_message = config.error_message or error_message

    @property
    def config(self) -> MutationConfig[T, V]:
        return self._config

    @property
    def query_key(self) -> QueryKey:
        return self._config.query_key

    @property
    def notifier(self) -> Notifier:
        return self._notifier

    def _transform(self, variables: V, old: Any | None) -> Any:
        config = self._config
        match config:
            case SingleUpdate():
                return config.optimistic_data(variables, old)
            case ListAdd():
                return apply_add(config, variables, list(old or []))
            case ListUpdate():
                return apply_update(config, variables, list(old or []))
            case ListDelete():
                return apply_delete(config, variables, list(old or []))
            case _:
                assert_never(config)

    async def on_mutate(self, variables: V) -> MutationContext:
        """Cancel fetches, snapshot the slot and write the optimistic value."""
        key = self.query_key
        context = MutationContext(query_key=key)

        await self._store.cancel_queries(key)
        previous = await self._store.get_query_state(key)
        old = None if previous is None else previous.data
        await self._store.set_query_data(key, self._transform(variables, old))

        context.snapshot = Snapshot(key=key, previous=previous)
        context.advance(MutationPhase.OPTIMISTIC_APPLIED)
        return context

    async def rollback(self, context: MutationContext) -> None:
        """Restore the snapshot held by ``context``. Never raises."""
        key = self.query_key
        if not context.can_advance(MutationPhase.SETTLED_ERROR):
            logger.warning(
                "Skipping rollback of %r: mutation is %s", key, context.phase.value
            )
            return
        snapshot = context.snapshot
        context.advance(MutationPhase.SETTLED_ERROR)
        if snapshot is None:
            logger.warning("Skipping rollback of %r: no snapshot", key)
            return
        try:
            if snapshot.previous is None:
                await self._store.remove_queries(key)
            else:
                await self._store.set_query_data(key, snapshot.previous.data)
        except Exception:
            logger.exception("Rollback of %r failed", key)
        else:
            logger.info("Rolled back optimistic update of %r", key)

    async def on_error(
        self, error: BaseException, variables: V, context: MutationContext | None
    ) -> None:
        """Roll back and notify the user. Never raises."""
        logger.info("Mutation on %r failed: %r", self.query_key, error)
        if context is None:
            logger.warning("Skipping rollback of %r: no context", self.query_key)
        else:
            await self.rollback(context)
        try:
            self._notifier.error(self._error_message)
        except Exception:
            logger.exception("Error notification for %r failed", self.query_key)

    async def on_settled(self, context: MutationContext | None = None) -> None:
        """Invalidate the query key and every extra key, once each."""
        if context is not None and not context.can_advance(MutationPhase.INVALIDATED):
            raise InvalidTransitionError(
                f"Mutation on {self.query_key!r} is already {context.phase.value}"
            )
        await self._store.invalidate_queries(self.query_key)
        for key in self._config.invalidate_keys:
            await self._store.invalidate_queries(key)
        if context is not None:
            context.advance(MutationPhase.INVALIDATED)


def create_optimistic_callbacks(
    store: QueryStore,
    config: MutationConfig[T, V],
    *,
    notifier: Notifier | None = None,
    error_message: str = DEFAULT_ERROR_MESSAGE,
) -> OptimisticController[T, V]:
    """Create the on_mutate / on_error / on_settled callbacks for ``config``.

    Args:
        store: Query store the optimistic writes go to
        config: SingleUpdate, ListAdd, ListUpdate or ListDelete
        notifier: Receives the failure message (default: LoggingNotifier)
        error_message: Used when the config carries none

    Returns:
        OptimisticController bound to the store and config
    """
    if not error_message:
        raise ValueError("error_message must not be empty")
    return OptimisticController(
        store, config, notifier=notifier, error_message=error_message
    )


# -----------------------------------------------------------------------------
# Harness
# -----------------------------------------------------------------------------


class OptimisticMutation(Generic[T, V, R]):
    """Runs a remote call between the controller's lifecycle callbacks.

    Usage:
        mutation = OptimisticMutation(backend_call, controller)
        outcome = await mutation.execute(variables)
        if not outcome.ok:
            ...  # already rolled back and reported
    """

    def __init__(
        self,
        fn: Callable[[V], Awaitable[R]],
        controller: OptimisticController[T, V],
        *,
        success_message: str | None = None,
    ) -> None:
        self._fn = fn
        self._controller = controller
        self._success_message = success_message

    @property
    def controller(self) -> OptimisticController[T, V]:
        return self._controller

    async def __call__(self, variables: V) -> MutationOutcome[R]:
        return await self.execute(variables)

    async def execute(self, variables: V) -> MutationOutcome[R]:
        """Apply, call, then roll back or confirm, and always settle.

        Errors from the remote call are absorbed into the outcome. Errors
        from the optimistic write itself propagate after a best-effort
        invalidation.
        """
        controller = self._controller
        try:
            context = await controller.on_mutate(variables)
        except Exception:
            logger.exception("Optimistic update of %r failed", controller.query_key)
            try:
                await controller.on_settled()
            except Exception:
                logger.exception(
                    "Invalidation of %r after failed update failed",
                    controller.query_key,
                )
            raise

        try:
            result = await self._fn(variables)
        except asyncio.CancelledError:
            await controller.rollback(context)
            await controller.on_settled(context)
            raise
        except Exception as exc:
            await controller.on_error(exc, variables, context)
            await controller.on_settled(context)
            return MutationOutcome(error=exc)

        context.advance(MutationPhase.SETTLED_OK)
        if self._success_message:
            try:
                controller.notifier.success(self._success_message)
            except Exception:
                logger.exception(
                    "Success notification for %r failed", controller.query_key
                )
        await controller.on_settled(context)
        return MutationOutcome(result=result)


def optimistic_mutation(
    store: QueryStore,
    config: MutationConfig[T, V],
    *,
    notifier: Notifier | None = None,
    error_message: str = DEFAULT_ERROR_MESSAGE,
    success_message: str | None = None,
) -> Callable[[Callable[[V], Awaitable[R]]], OptimisticMutation[T, V, R]]:
    """Decorator turning a remote call into a tracked optimistic mutation.

    Usage:
        @optimistic_mutation(client, ListDelete(("tasks", "p1"), get_id=lambda v: v))
        async def delete_task(task_id: str) -> None:
            await backend.delete("tasks", task_id)

        outcome = await delete_task("t1")
    """
    controller = create_optimistic_callbacks(
        store, config, notifier=notifier, error_message=error_message
    )

    def decorator(fn: Callable[[V], Awaitable[R]]) -> OptimisticMutation[T, V, R]:
        mutation = OptimisticMutation(fn, controller, success_message=success_message)
        functools.update_wrapper(mutation, fn)
        return mutation

    return decorator


__all__ = [
    "InvalidTransitionError",
    "MutationContext",
    "MutationPhase",
    "OptimisticController",
    "OptimisticMutation",
    "apply_add",
    "apply_delete",
    "apply_update",
    "create_optimistic_callbacks",
    "optimistic_mutation",
]
