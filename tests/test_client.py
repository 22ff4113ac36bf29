"""Tests for QueryClient."""

import asyncio
import logging

import pytest

from optimist import AsyncMemoryAdapter, QueryClient, create_query_client


class Counter:
    """Fetcher that counts its calls and returns the call number."""

    def __init__(self, delay: float = 0) -> None:
        self.calls = 0
        self.delay = delay

    async def __call__(self) -> int:
        self.calls += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        return self.calls


class TestFetchQuery:
    """Tests for fetch_query."""

    async def test_fetches_and_caches(self, async_adapter) -> None:
        """Test that fresh data is served from the cache."""
        client = QueryClient(async_adapter, stale_time="1m")
        fetch = Counter()

        assert await client.fetch_query(("user", 1), fetch) == 1
        assert await client.fetch_query(("user", 1), fetch) == 1
        assert fetch.calls == 1
        assert await client.get_query_data(("user", 1)) == 1

    async def test_zero_stale_time_always_refetches(self, client) -> None:
        """Test that stale_time=0 treats cached data as stale."""
        fetch = Counter()

        await client.fetch_query(("user", 1), fetch)
        await client.fetch_query(("user", 1), fetch)

        assert fetch.calls == 2

    async def test_per_call_stale_time(self, client) -> None:
        """Test that stale_time can be overridden per call."""
        fetch = Counter()

        await client.fetch_query(("user", 1), fetch)
        assert await client.fetch_query(("user", 1), fetch, stale_time="1h") == 1
        assert fetch.calls == 1

    async def test_concurrent_calls_share_one_fetch(self, client) -> None:
        """Test request coalescing for the same key."""
        fetch = Counter(delay=0.01)

        results = await asyncio.gather(
            client.fetch_query(("user", 1), fetch),
            client.fetch_query(("user", 1), fetch),
            client.fetch_query(("user", 1), fetch),
        )

        assert results == [1, 1, 1]
        assert fetch.calls == 1

    async def test_fetch_error_propagates(self, client) -> None:
        """Test that a failing fetcher raises and writes nothing."""

        async def failing():
            raise ConnectionError("offline")

        with pytest.raises(ConnectionError):
            await client.fetch_query(("user", 1), failing)
        assert await client.get_query_state(("user", 1)) is None

    async def test_reuses_registered_fetcher(self, client) -> None:
        """Test that fn can be omitted once registered."""
        fetch = Counter()
        await client.fetch_query(("user", 1), fetch)

        assert await client.fetch_query(("user", 1)) == 2

    async def test_unknown_key_without_fetcher(self, client) -> None:
        """Test that fetching without any fetcher raises KeyError."""
        with pytest.raises(KeyError):
            await client.fetch_query(("user", 1))

    async def test_rejects_non_tuple_key(self, client) -> None:
        """Test key validation."""
        with pytest.raises(TypeError):
            await client.fetch_query(["user", 1], Counter())


class TestQueryData:
    """Tests for direct slot access."""

    async def test_get_missing_returns_none(self, client) -> None:
        """Test reading an empty slot."""
        assert await client.get_query_data(("missing",)) is None
        assert await client.get_query_state(("missing",)) is None

    async def test_set_and_get(self, client) -> None:
        """Test writing and reading a value."""
        await client.set_query_data(("user", 1), {"name": "Ada"})

        state = await client.get_query_state(("user", 1))
        assert state is not None
        assert state.data == {"name": "Ada"}
        assert state.key == ("user", 1)
        assert not state.is_invalidated

    async def test_updater_receives_current_value(self, client) -> None:
        """Test the callable form of set_query_data."""
        await client.set_query_data(("items",), [1])

        result = await client.set_query_data(("items",), lambda old: [*old, 2])

        assert result == [1, 2]
        assert await client.get_query_data(("items",)) == [1, 2]

    async def test_updater_on_empty_slot(self, client) -> None:
        """Test that the updater gets None for an empty slot."""
        await client.set_query_data(("items",), lambda old: old or [])
        assert await client.get_query_data(("items",)) == []

    async def test_remove_exact_key_only(self, client) -> None:
        """Test that remove_queries does not match by prefix."""
        await client.set_query_data(("user",), "all")
        await client.set_query_data(("user", 1), "one")

        await client.remove_queries(("user",))

        assert await client.get_query_state(("user",)) is None
        assert await client.get_query_data(("user", 1)) == "one"


class TestCancelQueries:
    """Tests for cancel_queries."""

    async def test_waiting_callers_get_cached_data(self, client) -> None:
        """Test that cancelling returns the cached value instead of raising."""
        await client.set_query_data(("user", 1), "cached")
        fetch = Counter(delay=10)
        pending = asyncio.create_task(client.fetch_query(("user", 1), fetch))
        await asyncio.sleep(0)

        await client.cancel_queries(("user",))

        assert await pending == "cached"
        assert await client.get_query_data(("user", 1)) == "cached"

    async def test_never_loaded_key_returns_none(self, client) -> None:
        """Test that a cancelled first fetch leaves callers with None."""
        pending = asyncio.create_task(client.fetch_query(("user", 1), Counter(10)))
        await asyncio.sleep(0)

        await client.cancel_queries(("user",))

        assert await pending is None

    async def test_other_keys_keep_fetching(self, client) -> None:
        """Test that only keys under the prefix are cancelled."""
        release = asyncio.Event()

        async def fetch():
            await release.wait()
            return "fresh"

        pending = asyncio.create_task(client.fetch_query(("post", 1), fetch))
        await asyncio.sleep(0)

        await client.cancel_queries(("user",))
        release.set()

        assert await pending == "fresh"

    async def test_nothing_in_flight(self, client) -> None:
        """Test that cancelling with no fetches is a no-op."""
        await client.cancel_queries(("user", 1))

    async def test_new_fetch_after_cancel(self, client) -> None:
        """Test that a cancelled key can be fetched again."""
        fetch = Counter(delay=10)
        pending = asyncio.create_task(client.fetch_query(("user", 1), fetch))
        await asyncio.sleep(0)
        await client.cancel_queries(("user", 1))
        await pending

        assert await client.fetch_query(("user", 1), Counter()) == 1


class TestInvalidateQueries:
    """Tests for invalidate_queries."""

    async def test_marks_matching_keys(self, client) -> None:
        """Test prefix invalidation without registered fetchers."""
        await client.set_query_data(("user", 1), "a")
        await client.set_query_data(("user", 2), "b")
        await client.set_query_data(("post", 1), "c")

        await client.invalidate_queries(("user",))

        assert (await client.get_query_state(("user", 1))).is_invalidated
        assert (await client.get_query_state(("user", 2))).is_invalidated
        assert not (await client.get_query_state(("post", 1))).is_invalidated

    async def test_refetches_in_background(self, client) -> None:
        """Test that keys with a fetcher are refetched after invalidation."""
        fetch = Counter()
        await client.fetch_query(("user", 1), fetch)

        await client.invalidate_queries(("user", 1))
        await client.drain()

        assert fetch.calls == 2
        state = await client.get_query_state(("user", 1))
        assert state.data == 2
        assert not state.is_invalidated

    async def test_invalidated_data_is_refetched_on_read(self, async_adapter) -> None:
        """Test that fetch_query ignores stale_time for invalidated data."""
        client = QueryClient(
            async_adapter, stale_time="1h", refetch_on_invalidate=False
        )
        fetch = Counter()
        await client.fetch_query(("user", 1), fetch)

        await client.invalidate_queries(("user", 1))
        assert fetch.calls == 1

        assert await client.fetch_query(("user", 1)) == 2

    async def test_fetcher_without_data_is_forgotten(self, client) -> None:
        """Test that a key with no data and no running fetch loses its fetcher."""
        fetch = Counter(delay=10)
        pending = asyncio.create_task(client.fetch_query(("user", 1), fetch))
        await asyncio.sleep(0)
        await client.cancel_queries(("user", 1))
        await pending

        await client.invalidate_queries(("user",))
        await client.drain()

        assert await client.get_query_state(("user", 1)) is None
        assert fetch.calls == 1
        with pytest.raises(KeyError):
            await client.fetch_query(("user", 1))

    async def test_evicted_key_loses_its_fetcher(self) -> None:
        """Test that LRU eviction followed by invalidation drops the fetcher."""
        client = QueryClient(AsyncMemoryAdapter(max_items=1))
        first = Counter()
        await client.fetch_query(("user", 1), first)
        await client.fetch_query(("user", 2), Counter())

        await client.invalidate_queries(("user",))
        await client.drain()

        assert first.calls == 1
        assert await client.get_query_data(("user", 2)) == 2
        with pytest.raises(KeyError):
            await client.fetch_query(("user", 1))

    async def test_running_fetch_keeps_its_fetcher(self, client) -> None:
        """Test that a key still being fetched is restarted, not forgotten."""
        release = asyncio.Event()

        async def fetch():
            await release.wait()
            return "fresh"

        pending = asyncio.create_task(client.fetch_query(("user", 1), fetch))
        await asyncio.sleep(0)

        await client.invalidate_queries(("user",))
        release.set()
        await client.drain()

        await pending
        assert await client.get_query_data(("user", 1)) == "fresh"

    async def test_background_failure_is_logged(self, client, caplog) -> None:
        """Test that a failing refetch does not raise."""
        calls = []

        async def flaky():
            calls.append(1)
            if len(calls) > 1:
                raise ConnectionError("offline")
            return "first"

        await client.fetch_query(("user", 1), flaky)

        with caplog.at_level(logging.WARNING, logger="optimist.client"):
            await client.invalidate_queries(("user", 1))
            await client.drain()

        assert "Background refetch" in caplog.text
        state = await client.get_query_state(("user", 1))
        assert state.data == "first"
        assert state.is_invalidated


class TestLifecycle:
    """Tests for clear and disconnect."""

    async def test_clear(self, client) -> None:
        """Test that clear empties the cache."""
        await client.set_query_data(("user", 1), "a")
        await client.clear()
        assert await client.get_query_data(("user", 1)) is None

    async def test_clear_forgets_fetchers(self, client) -> None:
        """Test that clear drops registered fetchers too."""
        await client.fetch_query(("user", 1), Counter())

        await client.clear()

        with pytest.raises(KeyError):
            await client.fetch_query(("user", 1))

    async def test_disconnect(self, client) -> None:
        """Test disconnecting the memory adapter."""
        await client.disconnect()


class TestCreateQueryClient:
    """Tests for create_query_client."""

    def test_creates_client(self) -> None:
        """Test creating a client with a memory adapter."""
        client = create_query_client(adapter=AsyncMemoryAdapter(), stale_time="30s")
        assert isinstance(client, QueryClient)

    def test_rejects_invalid_adapter(self) -> None:
        """Test that the adapter must implement AsyncStorageAdapter."""
        with pytest.raises(ValueError, match="AsyncStorageAdapter"):
            create_query_client(adapter=object())

    def test_rejects_invalid_stale_time(self) -> None:
        """Test that stale_time goes through parse_duration."""
        with pytest.raises(ValueError):
            create_query_client(adapter=AsyncMemoryAdapter(), stale_time="soon")
