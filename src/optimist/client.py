"""QueryClient - keyed async cache with cancellation and invalidation.

This module provides the cache store the optimistic engine writes into:
- fetch_query(): Cached fetch with stale time and request coalescing
- get_query_data(), set_query_data(), remove_queries(): Direct slot access
- cancel_queries(): Abort in-flight fetches for a key prefix
- invalidate_queries(): Mark stale and refetch in the background
- clear(), disconnect(), drain(): Lifecycle methods
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable
from typing import Any, Protocol, TypeVar, cast, runtime_checkable

from optimist.adapters.base import AsyncStorageAdapter
from optimist.duration import parse_duration
from optimist.keys import deserialize_key, ensure_key, is_key_prefix, serialize_key
from optimist.types import Duration, QueryKey, QueryState

logger = logging.getLogger(__name__)

T = TypeVar("T")

Fetcher = Callable[[], Awaitable[Any]]


def _now() -> int:
    return int(time.time() * 1000)


@runtime_checkable
class QueryStore(Protocol):
    """The cache operations the optimistic engine relies on."""

    async def cancel_queries(self, key: QueryKey) -> None: ...

    async def get_query_data(self, key: QueryKey) -> Any | None: ...

    async def get_query_state(self, key: QueryKey) -> QueryState[object] | None: ...

    async def set_query_data(self, key: QueryKey, value: Any) -> Any: ...

    async def remove_queries(self, key: QueryKey) -> None: ...

    async def invalidate_queries(self, key: QueryKey) -> None: ...


class QueryClient:
    """Async query cache over a storage adapter."""

    def __init__(
        self,
        adapter: AsyncStorageAdapter,
        *,
        stale_time: Duration = 0,
        refetch_on_invalidate: bool = True,
    ) -> None:
        self._adapter = adapter
        self._stale_time = parse_duration(stale_time)
        self._refetch_on_invalidate = refetch_on_invalidate
        self._fetchers: dict[str, tuple[QueryKey, Fetcher]] = {}
        self._in_flight: dict[str, asyncio.Task[Any]] = {}
        self._background_tasks: set[asyncio.Task[Any]] = set()

    # -------------------------------------------------------------------------
    # Fetching
    # -------------------------------------------------------------------------

    async def fetch_query(
        self,
        key: QueryKey,
        fn: Fetcher | None = None,
        *,
        stale_time: Duration | None = None,
    ) -> Any | None:
        """Return cached data for ``key`` or fetch it.

        ``fn`` is remembered so later invalidations can refetch the key.
        Concurrent calls for the same key share one fetch. If that fetch is
        cancelled through cancel_queries, callers get the data currently
        cached instead of an error. That is None when the key was never
        loaded, so list resources fall back to an empty list.
        """
        key = ensure_key(key)
        skey = serialize_key(key)
        if fn is not None:
            self._fetchers[skey] = (key, fn)
        elif skey not in self._fetchers:
            raise KeyError(f"No fetcher registered for query {key!r}")

        state = await self._adapter.get(skey)
        max_age = (
            parse_duration(stale_time) if stale_time is not None else self._stale_time
        )
        if state is not None and not state.is_invalidated:
            if _now() - state.updated_at < max_age:
                return state.data

        task = self._in_flight.get(skey)
        if task is None:
            task = self._start_fetch(key)
        try:
            return await asyncio.shield(task)
        except asyncio.CancelledError:
            if task.cancelled():
                return await self.get_query_data(key)
            raise

    def _start_fetch(self, key: QueryKey) -> asyncio.Task[Any]:
        skey = serialize_key(key)
        _, fn = self._fetchers[skey]

        async def run() -> Any:
            value = await fn()
            await self._adapter.set(
                skey, QueryState(key=key, data=value, updated_at=_now())
            )
            return value

        task = asyncio.create_task(run())
        self._in_flight[skey] = task

        def done(finished: asyncio.Task[Any]) -> None:
            if self._in_flight.get(skey) is finished:
                del self._in_flight[skey]

        task.add_done_callback(done)
        return task

    # -------------------------------------------------------------------------
    # Direct slot access
    # -------------------------------------------------------------------------

    async def get_query_state(self, key: QueryKey) -> QueryState[object] | None:
        """Get the full state stored for ``key``."""
        return await self._adapter.get(serialize_key(ensure_key(key)))

    async def get_query_data(self, key: QueryKey) -> Any | None:
        """Get the data stored for ``key``, or None if the slot is empty."""
        state = await self.get_query_state(key)
        return None if state is None else state.data

    async def set_query_data(
        self, key: QueryKey, value: T | Callable[[Any | None], T]
    ) -> T:
        """Write data for ``key``.

        A callable is treated as an updater receiving the current data.
        Writing does not clear in-flight fetches; cancel them first.
        """
        key = ensure_key(key)
        skey = serialize_key(key)
        if callable(value):
            current = await self._adapter.get(skey)
            value = cast(Callable[[Any | None], T], value)(
                None if current is None else current.data
            )
        await self._adapter.set(
            skey, QueryState(key=key, data=value, updated_at=_now())
        )
        return cast(T, value)

    async def remove_queries(self, key: QueryKey) -> None:
        """Remove the slot for exactly ``key``."""
        await self._adapter.delete(serialize_key(ensure_key(key)))

    # -------------------------------------------------------------------------
    # Cancellation and invalidation
    # -------------------------------------------------------------------------

    async def cancel_queries(self, key: QueryKey) -> None:
        """Cancel in-flight fetches for every key matching the prefix ``key``."""
        key = ensure_key(key)
        cancelled = [
            task
            for skey, task in list(self._in_flight.items())
            if not task.done() and is_key_prefix(key, deserialize_key(skey))
        ]
        for task in cancelled:
            task.cancel()
        if cancelled:
            # A cancelled fetch never reaches its cache write
            await asyncio.gather(*cancelled, return_exceptions=True)
            logger.debug("Cancelled %d fetch(es) for %r", len(cancelled), key)

    async def invalidate_queries(self, key: QueryKey) -> None:
        """Mark every key matching the prefix ``key`` stale.

        Keys with a registered fetcher are refetched in background tasks;
        this call does not wait for them. A fetcher whose key holds no data
        and has no fetch running is forgotten instead, which covers slots
        the adapter evicted.
        """
        key = ensure_key(key)
        matched: dict[str, QueryKey] = {}
        for skey in await self._adapter.keys():
            stored_key = deserialize_key(skey)
            if is_key_prefix(key, stored_key):
                matched[skey] = stored_key
        for skey, (fetch_key, _) in self._fetchers.items():
            if is_key_prefix(key, fetch_key):
                matched[skey] = fetch_key

        for skey in list(matched):
            state = await self._adapter.get(skey)
            if state is None:
                running = self._in_flight.get(skey)
                if running is None or running.done():
                    # Evicted or removed with no fetch pending
                    self._fetchers.pop(skey, None)
                    del matched[skey]
                continue
            if not state.is_invalidated:
                await self._adapter.set(
                    skey,
                    QueryState(
                        key=state.key,
                        data=state.data,
                        updated_at=state.updated_at,
                        is_invalidated=True,
                    ),
                )

        if not self._refetch_on_invalidate:
            return
        for skey, matched_key in matched.items():
            if skey in self._fetchers:
                self._refetch_in_background(matched_key)

    def _refetch_in_background(self, key: QueryKey) -> None:
        """Restart the fetch for ``key`` in a tracked background task."""
        skey = serialize_key(key)
        previous = self._in_flight.get(skey)
        if previous is not None:
            previous.cancel()
        task = self._start_fetch(key)

        async def refetch() -> None:
            try:
                await task
            except asyncio.CancelledError:
                pass
            except Exception:
                logger.warning("Background refetch of %r failed", key, exc_info=True)

        background = asyncio.create_task(refetch())
        self._background_tasks.add(background)
        background.add_done_callback(self._background_tasks.discard)

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    async def drain(self) -> None:
        """Wait for all scheduled background refetches to finish."""
        while self._background_tasks:
            await asyncio.gather(*list(self._background_tasks))

    async def clear(self) -> None:
        """Cancel pending work and clear all cached data and fetchers."""
        for task in list(self._in_flight.values()):
            task.cancel()
        self._fetchers.clear()
        await self._adapter.clear()

    async def disconnect(self) -> None:
        """Disconnect from the storage backend."""
        await self._adapter.disconnect()


def create_query_client(
    *,
    adapter: AsyncStorageAdapter,
    stale_time: Duration = 0,
    refetch_on_invalidate: bool = True,
) -> QueryClient:
    """Create a query client.

    Args:
        adapter: Storage adapter
        stale_time: How long fetched data counts as fresh
        refetch_on_invalidate: Refetch invalidated keys that have a fetcher

    Returns:
        QueryClient instance
    """
    if not isinstance(adapter, AsyncStorageAdapter):
        raise ValueError("adapter must implement AsyncStorageAdapter")

    return QueryClient(
        adapter,
        stale_time=stale_time,
        refetch_on_invalidate=refetch_on_invalidate,
    )


__all__ = ["QueryClient", "QueryStore", "create_query_client"]
