"""Tests for OptimisticMutation and the optimistic_mutation decorator."""

import asyncio
from dataclasses import dataclass
from unittest.mock import AsyncMock

import pytest

from optimist import (
    ListAdd,
    ListDelete,
    MutationPhase,
    OptimisticMutation,
    SingleUpdate,
    create_optimistic_callbacks,
    optimistic_mutation,
)

KEY = ("project", "p1")
LIST_KEY = ("projects",)


@dataclass(frozen=True)
class Row:
    id: str


class TestExecute:
    """Tests for running a remote call between the callbacks."""

    async def test_success_keeps_value_until_refetch(self, client, notifier) -> None:
        """Test the success path: confirm, notify and invalidate."""
        await client.set_query_data(KEY, {"status": "planning"})
        remote = AsyncMock(return_value={"id": "p1", "status": "in_progress"})
        controller = create_optimistic_callbacks(
            client,
            SingleUpdate(
                KEY,
                optimistic_data=lambda v, old: {**old, "status": v},
                invalidate_keys=(LIST_KEY,),
            ),
            notifier=notifier,
        )
        mutation = OptimisticMutation(
            remote, controller, success_message="Status uppdaterad"
        )

        outcome = await mutation.execute("in_progress")

        assert outcome.ok
        assert outcome.result == {"id": "p1", "status": "in_progress"}
        remote.assert_awaited_once_with("in_progress")
        assert await client.get_query_data(KEY) == {"status": "in_progress"}
        assert notifier.successes == ["Status uppdaterad"]
        assert notifier.errors == []
        assert client.invalidated == [KEY, LIST_KEY]

    async def test_failure_rolls_back_and_reports(self, client, notifier) -> None:
        """Test the failure path: rollback, one message, invalidation."""
        await client.set_query_data(KEY, {"status": "draft"})
        error = RuntimeError("500")
        controller = create_optimistic_callbacks(
            client,
            SingleUpdate(KEY, optimistic_data=lambda v, old: {"status": v}),
            notifier=notifier,
        )
        mutation = OptimisticMutation(
            AsyncMock(side_effect=error), controller, success_message="Sparat"
        )

        outcome = await mutation("published")

        assert not outcome.ok
        assert outcome.error is error
        assert await client.get_query_data(KEY) == {"status": "draft"}
        assert notifier.errors == ["Något gick fel"]
        assert notifier.successes == []
        assert client.invalidated == [KEY]

    async def test_failed_optimistic_write_propagates(
        self, client, notifier, monkeypatch
    ) -> None:
        """Test that an error in on_mutate skips the call but still settles."""
        remote = AsyncMock()
        controller = create_optimistic_callbacks(
            client, ListAdd(KEY, invalidate_keys=(LIST_KEY,)), notifier=notifier
        )
        monkeypatch.setattr(
            client, "cancel_queries", AsyncMock(side_effect=RuntimeError("down"))
        )

        with pytest.raises(RuntimeError, match="down"):
            await OptimisticMutation(remote, controller).execute(None)

        remote.assert_not_awaited()
        assert notifier.errors == []
        assert client.invalidated == [KEY, LIST_KEY]

    async def test_cancelled_call_rolls_back(self, client, notifier) -> None:
        """Test that cancelling the call restores the cache and re-raises."""
        started = asyncio.Event()

        async def remote(variables):
            started.set()
            await asyncio.Event().wait()

        controller = create_optimistic_callbacks(
            client,
            ListDelete(KEY, get_id=lambda v: v),
            notifier=notifier,
        )
        mutation = OptimisticMutation(remote, controller)

        await client.set_query_data(KEY, [Row("a"), Row("b")])
        task = asyncio.create_task(mutation.execute("a"))
        await started.wait()
        assert await client.get_query_data(KEY) == [Row("b")]

        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        assert await client.get_query_data(KEY) == [Row("a"), Row("b")]
        assert notifier.errors == []
        assert client.invalidated == [KEY]

    async def test_concurrent_mutations_on_different_keys(
        self, client, notifier
    ) -> None:
        """Test that rollback of one key leaves another key's update alone."""
        other = ("project", "p2")
        await client.set_query_data(KEY, {"status": "a"})
        await client.set_query_data(other, {"status": "a"})

        def config(key):
            return SingleUpdate(key, optimistic_data=lambda v, old: {"status": v})

        failing = OptimisticMutation(
            AsyncMock(side_effect=RuntimeError("boom")),
            create_optimistic_callbacks(client, config(KEY), notifier=notifier),
        )
        passing = OptimisticMutation(
            AsyncMock(return_value=None),
            create_optimistic_callbacks(client, config(other), notifier=notifier),
        )

        await asyncio.gather(failing.execute("b"), passing.execute("b"))

        assert await client.get_query_data(KEY) == {"status": "a"}
        assert await client.get_query_data(other) == {"status": "b"}
        assert len(notifier.errors) == 1

    async def test_concurrent_mutations_on_same_key(self, client, notifier) -> None:
        """Test that the second write builds on the first and the last rollback wins."""
        await client.set_query_data(KEY, [Row("a")])
        release_failing = asyncio.Event()
        release_passing = asyncio.Event()

        async def rejected(variables):
            await release_failing.wait()
            raise RuntimeError("conflict")

        async def accepted(variables):
            await release_passing.wait()
            return variables

        def mutation(fn):
            config = ListAdd(KEY, optimistic_data=lambda v, old: Row(v))
            return OptimisticMutation(
                fn, create_optimistic_callbacks(client, config, notifier=notifier)
            )

        first = asyncio.create_task(mutation(rejected).execute("b"))
        await asyncio.sleep(0)
        second = asyncio.create_task(mutation(accepted).execute("c"))
        await asyncio.sleep(0)

        cached = await client.get_query_data(KEY)
        assert [row.id for row in cached] == ["a", "b", "c"]

        release_passing.set()
        assert (await second).ok
        release_failing.set()
        assert not (await first).ok

        assert await client.get_query_data(KEY) == [Row("a")]
        assert client.invalidated == [KEY, KEY]
        assert len(notifier.errors) == 1


class TestOptimisticMutationDecorator:
    """Tests for the optimistic_mutation decorator."""

    async def test_wraps_remote_call(self, client, notifier) -> None:
        """Test that the decorated function runs through the lifecycle."""
        await client.set_query_data(("tasks", "p1"), [Row("t1"), Row("t2")])
        deleted = []

        @optimistic_mutation(
            client,
            ListDelete(("tasks", "p1"), get_id=lambda v: v),
            notifier=notifier,
            success_message="Uppgift borttagen",
        )
        async def delete_task(task_id: str) -> None:
            """Delete a task on the server."""
            deleted.append(task_id)

        outcome = await delete_task("t1")

        assert outcome.ok
        assert deleted == ["t1"]
        assert await client.get_query_data(("tasks", "p1")) == [Row("t2")]
        assert notifier.successes == ["Uppgift borttagen"]

    def test_keeps_function_metadata(self, client) -> None:
        """Test that name and docstring are carried over."""

        @optimistic_mutation(client, ListAdd(("tasks",)))
        async def add_task(draft: dict) -> dict:
            """Create a task."""
            return draft

        assert isinstance(add_task, OptimisticMutation)
        assert add_task.__name__ == "add_task"
        assert add_task.__doc__ == "Create a task."
        assert add_task.controller.query_key == ("tasks",)

    async def test_custom_error_message(self, client, notifier) -> None:
        """Test that error_message reaches the notifier on failure."""

        @optimistic_mutation(
            client,
            ListAdd(("tasks",)),
            notifier=notifier,
            error_message="Kunde inte lägga till uppgift",
        )
        async def add_task(draft: dict) -> dict:
            raise RuntimeError("409")

        outcome = await add_task({"title": "x"})

        assert not outcome.ok
        assert notifier.errors == ["Kunde inte lägga till uppgift"]


class TestContextPhases:
    """Tests for the phases a harness run passes through."""

    async def test_success_ends_invalidated(self, client) -> None:
        """Test that on_settled sees a confirmed context."""
        phases = []
        controller = create_optimistic_callbacks(client, ListAdd(KEY))
        original = controller.on_settled

        async def spy(context=None):
            phases.append(context.phase)
            await original(context)
            phases.append(context.phase)

        controller.on_settled = spy
        await OptimisticMutation(AsyncMock(), controller).execute(None)

        assert phases == [MutationPhase.SETTLED_OK, MutationPhase.INVALIDATED]
