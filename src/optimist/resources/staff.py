"""Staff assigned to a booking on a given day."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from optimist.client import QueryClient
from optimist.keys import query_key
from optimist.notify import Notifier
from optimist.remote import Backend
from optimist.resources.base import Resource, check_saved, from_row, now_iso, temp_id
from optimist.resources.entities import StaffAssignment
from optimist.types import ListAdd, ListDelete, MutationOutcome, QueryKey

TABLE = "booking_staff_assignments"


@dataclass(frozen=True, slots=True)
class AssignmentRequest:
    staff_id: str
    team_id: str
    assignment_date: str


class StaffAssignments(Resource):
    """Assignments of one booking, cached under ("booking-staff", booking_id).

    Changes also refresh staff availability for the affected date.
    """

    def __init__(
        self,
        client: QueryClient,
        backend: Backend,
        booking_id: str,
        *,
        notifier: Notifier | None = None,
    ) -> None:
        super().__init__(client, backend, notifier=notifier)
        self._booking_id = booking_id

    @property
    def key(self) -> QueryKey:
        return query_key("booking-staff", self._booking_id)

    @staticmethod
    def availability_key(assignment_date: str) -> QueryKey:
        return query_key("staff-availability", assignment_date)

    async def fetch_assignments(self) -> list[StaffAssignment]:
        async def load() -> list[StaffAssignment]:
            rows = await self._backend.select(TABLE, booking_id=self._booking_id)
            return [from_row(StaffAssignment, row) for row in rows]

        return await self._fetch(self.key, load) or []

    async def assign_staff(
        self, staff_id: str, team_id: str, assignment_date: str
    ) -> MutationOutcome[dict[str, Any]]:
        current = await self._client.get_query_data(self.key) or []
        if any(
            a.staff_id == staff_id and a.assignment_date == assignment_date
            for a in current
        ):
            raise ValueError(
                f"Staff {staff_id!r} is already assigned on {assignment_date}"
            )

        def placeholder(
            variables: AssignmentRequest, old: list[StaffAssignment]
        ) -> StaffAssignment:
            return StaffAssignment(
                id=temp_id(),
                booking_id=self._booking_id,
                staff_id=variables.staff_id,
                team_id=variables.team_id,
                assignment_date=variables.assignment_date,
                created_at=now_iso(),
            )

        async def create(variables: AssignmentRequest) -> dict[str, Any]:
            return await self._backend.insert(
                TABLE,
                {
                    "booking_id": self._booking_id,
                    "staff_id": variables.staff_id,
                    "team_id": variables.team_id,
                    "assignment_date": variables.assignment_date,
                },
            )

        return await self._mutate(
            ListAdd(
                self.key,
                optimistic_data=placeholder,
                error_message="Kunde inte tilldela personal",
                invalidate_keys=(self.availability_key(assignment_date),),
            ),
            create,
            AssignmentRequest(staff_id, team_id, assignment_date),
        )

    async def unassign_staff(
        self, assignment: StaffAssignment
    ) -> MutationOutcome[None]:
        check_saved("Assignment", assignment.id)

        async def delete(variables: StaffAssignment) -> None:
            await self._backend.delete(TABLE, variables.id)

        return await self._mutate(
            ListDelete(
                self.key,
                get_id=lambda variables: variables.id,
                error_message="Kunde inte ta bort personal",
                invalidate_keys=(self.availability_key(assignment.assignment_date),),
            ),
            delete,
            assignment,
        )
