"""Task checklists of project and packing jobs."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, replace
from typing import Any

from optimist.client import QueryClient
from optimist.notify import Notifier
from optimist.remote import Backend
from optimist.resources.base import (
    ItemUpdate,
    Resource,
    check_changes,
    check_saved,
    from_row,
    item_id,
    merged,
    now_iso,
    temp_id,
)
from optimist.resources.entities import Task
from optimist.resources.scope import PROJECT, Scope
from optimist.types import (
    ListAdd,
    ListDelete,
    ListUpdate,
    MutationOutcome,
    QueryKey,
    SingleUpdate,
)


@dataclass(frozen=True, slots=True)
class TaskDraft:
    title: str
    description: str | None = None
    assigned_to: str | None = None
    deadline: str | None = None
    is_info_only: bool = False
    sort_order: int | None = None


class TaskBoard(Resource):
    """Tasks of one project or packing job, cached under ("<scope>-tasks", id)."""

    def __init__(
        self,
        client: QueryClient,
        backend: Backend,
        owner_id: str,
        *,
        scope: Scope = PROJECT,
        notifier: Notifier | None = None,
    ) -> None:
        super().__init__(client, backend, notifier=notifier)
        self._owner_id = owner_id
        self._scope = scope

    @property
    def key(self) -> QueryKey:
        return self._scope.key("tasks", self._owner_id)

    @property
    def _table(self) -> str:
        return self._scope.table("tasks")

    async def _load(self) -> list[Task]:
        rows = await self._backend.select(
            self._table, **{self._scope.owner_column: self._owner_id}
        )
        tasks = [from_row(Task, row, renames=self._scope.renames) for row in rows]
        return sorted(tasks, key=lambda task: task.sort_order)

    async def fetch_tasks(self) -> list[Task]:
        return await self._fetch(self.key, self._load) or []

    async def add_task(self, draft: TaskDraft) -> MutationOutcome[dict[str, Any]]:
        if not draft.title.strip():
            raise ValueError("Task title is required")

        def placeholder(variables: TaskDraft, old: list[Task]) -> Task:
            stamp = now_iso()
            return Task(
                id=temp_id(),
                owner_id=self._owner_id,
                title=variables.title,
                description=variables.description,
                assigned_to=variables.assigned_to,
                deadline=variables.deadline,
                is_info_only=variables.is_info_only,
                sort_order=(
                    variables.sort_order
                    if variables.sort_order is not None
                    else len(old)
                ),
                created_at=stamp,
                updated_at=stamp,
            )

        async def create(variables: TaskDraft) -> dict[str, Any]:
            row: dict[str, Any] = {
                self._scope.owner_column: self._owner_id,
                "title": variables.title,
                "description": variables.description,
                "assigned_to": variables.assigned_to,
                "deadline": variables.deadline,
                "is_info_only": variables.is_info_only,
            }
            if variables.sort_order is not None:
                row["sort_order"] = variables.sort_order
            return await self._backend.insert(self._table, row)

        return await self._mutate(
            ListAdd(
                self.key,
                optimistic_data=placeholder,
                error_message="Kunde inte lägga till uppgift",
            ),
            create,
            draft,
            success_message="Uppgift tillagd",
        )

    async def update_task(
        self, task_id: str, **changes: Any
    ) -> MutationOutcome[dict[str, Any]]:
        check_saved("Task", task_id)
        check_changes(Task, changes, protected=("id", "owner_id", "created_at"))

        async def update(variables: ItemUpdate) -> dict[str, Any]:
            return await self._backend.update(
                self._table, variables.id, dict(variables.changes)
            )

        return await self._mutate(
            ListUpdate(
                self.key,
                get_id=item_id,
                optimistic_data=merged,
                error_message="Kunde inte uppdatera uppgift",
            ),
            update,
            ItemUpdate(id=task_id, changes=changes),
        )

    async def toggle_task(
        self, task_id: str, completed: bool
    ) -> MutationOutcome[dict[str, Any]]:
        return await self.update_task(task_id, completed=completed)

    async def reorder_tasks(self, ordered_ids: Sequence[str]) -> MutationOutcome[None]:
        """Persist a new order; ``ordered_ids[i]`` gets sort_order ``i``.

        The tasks must be loaded. All rows go out in a single upsert, so the
        server keeps either the old order or the new one.
        """
        for task_id in ordered_ids:
            check_saved("Task", task_id)
        loaded = {
            task.id: task for task in await self._client.get_query_data(self.key) or []
        }
        for task_id in ordered_ids:
            if task_id not in loaded:
                raise ValueError(f"Task {task_id!r} is not loaded")
        order = tuple(ordered_ids)

        def renumbered(
            variables: tuple[str, ...], old: list[Task] | None
        ) -> list[Task]:
            position = {task_id: index for index, task_id in enumerate(variables)}
            return sorted(
                (
                    replace(task, sort_order=position[task.id])
                    if task.id in position
                    else task
                    for task in old or []
                ),
                key=lambda task: task.sort_order,
            )

        async def persist(variables: tuple[str, ...]) -> None:
            rows = [
                {
                    "id": task_id,
                    self._scope.owner_column: self._owner_id,
                    "title": loaded[task_id].title,
                    "sort_order": index,
                }
                for index, task_id in enumerate(variables)
            ]
            await self._backend.upsert_rows(self._table, rows, on_conflict="id")

        return await self._mutate(
            SingleUpdate(
                self.key,
                optimistic_data=renumbered,
                error_message="Kunde inte ändra ordning",
            ),
            persist,
            order,
        )

    async def delete_task(self, task_id: str) -> MutationOutcome[None]:
        check_saved("Task", task_id)

        async def delete(variables: str) -> None:
            await self._backend.delete(self._table, variables)

        return await self._mutate(
            ListDelete(
                self.key,
                get_id=item_id,
                error_message="Kunde inte ta bort uppgift",
            ),
            delete,
            task_id,
            success_message="Uppgift borttagen",
        )
