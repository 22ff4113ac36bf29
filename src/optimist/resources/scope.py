"""Project and packing jobs share task, comment and status tables by scope."""

from dataclasses import dataclass

from optimist.keys import query_key
from optimist.types import QueryKey


@dataclass(frozen=True, slots=True)
class Scope:
    """Naming of one job kind's tables and query keys."""

    name: str
    record_table: str
    owner_column: str

    def key(self, kind: str, owner_id: str) -> QueryKey:
        """E.g. ("project-tasks", id) or ("packing-comments", id)."""
        return query_key(f"{self.name}-{kind}", owner_id)

    def record_key(self, owner_id: str) -> QueryKey:
        return query_key(self.name, owner_id)

    @property
    def list_key(self) -> QueryKey:
        return query_key(f"{self.name}s")

    def table(self, kind: str) -> str:
        return f"{self.name}_{kind}"

    @property
    def renames(self) -> dict[str, str]:
        return {self.owner_column: "owner_id"}


PROJECT = Scope(name="project", record_table="projects", owner_column="project_id")
PACKING = Scope(
    name="packing", record_table="packing_projects", owner_column="packing_id"
)
