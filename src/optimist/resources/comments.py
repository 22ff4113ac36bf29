"""Comment threads of project and packing jobs."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from optimist.client import QueryClient
from optimist.notify import Notifier
from optimist.remote import Backend
from optimist.resources.base import (
    Resource,
    check_saved,
    from_row,
    item_id,
    now_iso,
    temp_id,
)
from optimist.resources.entities import Comment
from optimist.resources.scope import PROJECT, Scope
from optimist.types import ListAdd, ListDelete, MutationOutcome, QueryKey


@dataclass(frozen=True, slots=True)
class CommentDraft:
    author_name: str
    content: str


class CommentThread(Resource):
    """Comments of one job, oldest first."""

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
        return self._scope.key("comments", self._owner_id)

    @property
    def _table(self) -> str:
        return self._scope.table("comments")

    async def _load(self) -> list[Comment]:
        rows = await self._backend.select(
            self._table, **{self._scope.owner_column: self._owner_id}
        )
        comments = [
            from_row(Comment, row, renames=self._scope.renames) for row in rows
        ]
        return sorted(comments, key=lambda comment: comment.created_at or "")

    async def fetch_comments(self) -> list[Comment]:
        return await self._fetch(self.key, self._load) or []

    async def add_comment(
        self, author_name: str, content: str
    ) -> MutationOutcome[dict[str, Any]]:
        if not content.strip():
            raise ValueError("Comment content is required")

        def placeholder(variables: CommentDraft, old: list[Comment]) -> Comment:
            return Comment(
                id=temp_id(),
                owner_id=self._owner_id,
                author_name=variables.author_name,
                content=variables.content,
                created_at=now_iso(),
            )

        async def create(variables: CommentDraft) -> dict[str, Any]:
            return await self._backend.insert(
                self._table,
                {
                    self._scope.owner_column: self._owner_id,
                    "author_name": variables.author_name,
                    "content": variables.content,
                },
            )

        return await self._mutate(
            ListAdd(
                self.key,
                optimistic_data=placeholder,
                error_message="Kunde inte lägga till kommentar",
            ),
            create,
            CommentDraft(author_name=author_name, content=content),
            success_message="Kommentar tillagd",
        )

    async def delete_comment(self, comment_id: str) -> MutationOutcome[None]:
        check_saved("Comment", comment_id)

        async def delete(variables: str) -> None:
            await self._backend.delete(self._table, variables)

        return await self._mutate(
            ListDelete(
                self.key,
                get_id=item_id,
                error_message="Kunde inte ta bort kommentar",
            ),
            delete,
            comment_id,
        )
