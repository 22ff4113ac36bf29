"""Project and packing job records."""

from __future__ import annotations

from dataclasses import replace
from typing import Any

from optimist.client import QueryClient
from optimist.notify import Notifier
from optimist.remote import Backend
from optimist.resources.base import Resource, check_saved, from_row, now_iso
from optimist.resources.entities import Project
from optimist.resources.scope import PROJECT, Scope
from optimist.types import MutationOutcome, QueryKey, SingleUpdate

STATUSES = ("planning", "in_progress", "delivered", "completed")


class ProjectRecord(Resource):
    """One job record cached under ("project", id) or ("packing", id)."""

    def __init__(
        self,
        client: QueryClient,
        backend: Backend,
        record_id: str,
        *,
        scope: Scope = PROJECT,
        notifier: Notifier | None = None,
    ) -> None:
        check_saved("Record", record_id)
        super().__init__(client, backend, notifier=notifier)
        self._record_id = record_id
        self._scope = scope

    @property
    def key(self) -> QueryKey:
        return self._scope.record_key(self._record_id)

    async def fetch(self) -> Project | None:
        async def load() -> Project | None:
            rows = await self._backend.select(
                self._scope.record_table, id=self._record_id
            )
            return from_row(Project, rows[0]) if rows else None

        return await self._fetch(self.key, load)

    async def update_status(self, status: str) -> MutationOutcome[dict[str, Any]]:
        """Change the status; the job list is refreshed as well."""
        if status not in STATUSES:
            raise ValueError(f"Unknown status {status!r}")

        def optimistic(variables: str, old: Project | None) -> Project | None:
            if old is None:
                return None
            return replace(old, status=variables, updated_at=now_iso())

        async def update(variables: str) -> dict[str, Any]:
            return await self._backend.update(
                self._scope.record_table, self._record_id, {"status": variables}
            )

        return await self._mutate(
            SingleUpdate(
                self.key,
                optimistic_data=optimistic,
                error_message="Kunde inte uppdatera status",
                invalidate_keys=(self._scope.list_key,),
            ),
            update,
            status,
            success_message="Status uppdaterad",
        )
