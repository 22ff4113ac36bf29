"""HTTP backend for the remote mutation calls.

Speaks the PostgREST dialect (``/rest/v1/<table>`` with ``col=eq.value``
filters), which is what the booking backend exposes.
"""

from __future__ import annotations

import logging
from typing import Any, Protocol, cast, runtime_checkable

logger = logging.getLogger(__name__)


class BackendError(RuntimeError):
    """A backend request failed."""

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


@runtime_checkable
class Backend(Protocol):
    """Table operations the domain resources call."""

    async def select(self, table: str, **filters: Any) -> list[dict[str, Any]]: ...

    async def insert(self, table: str, row: dict[str, Any]) -> dict[str, Any]: ...

    async def update(
        self, table: str, row_id: str, changes: dict[str, Any]
    ) -> dict[str, Any]: ...

    async def upsert(
        self, table: str, row: dict[str, Any], *, on_conflict: str
    ) -> dict[str, Any]: ...

    async def upsert_rows(
        self, table: str, rows: list[dict[str, Any]], *, on_conflict: str
    ) -> list[dict[str, Any]]: ...

    async def delete(self, table: str, row_id: str) -> None: ...


def _eq_filters(filters: dict[str, Any]) -> dict[str, str]:
    params: dict[str, str] = {}
    for column, value in filters.items():
        if value is None:
            params[column] = "is.null"
        elif isinstance(value, bool):
            params[column] = f"eq.{str(value).lower()}"
        else:
            params[column] = f"eq.{value}"
    return params


class RestBackend:
    """Async PostgREST client."""

    def __init__(
        self,
        base_url: str,
        api_key: str,
        *,
        timeout: float = 30.0,
    ) -> None:
        import httpx

        self._client = httpx.AsyncClient(
            base_url=base_url,
            headers={
                "apikey": api_key,
                "Authorization": f"Bearer {api_key}",
                "Content-Type": "application/json",
            },
            timeout=timeout,
        )

    async def _request(
        self,
        method: str,
        table: str,
        *,
        params: dict[str, str] | None = None,
        json: Any = None,
        prefer: str | None = None,
    ) -> Any:
        """Make a request against a table endpoint."""
        headers = {"Prefer": prefer} if prefer else None
        response = await self._client.request(
            method, f"/rest/v1/{table}", params=params, json=json, headers=headers
        )
        if not response.is_success:
            try:
                body = response.json()
                error = body.get("message") or body.get("error") or "Request failed"
            except (ValueError, AttributeError):
                error = f"HTTP {response.status_code}"
            logger.debug("%s %s failed: %s", method, table, error)
            raise BackendError(error, status_code=response.status_code)
        if not response.content:
            return None
        return response.json()

    @staticmethod
    def _single(rows: Any, table: str) -> dict[str, Any]:
        if not rows:
            raise BackendError(f"No row returned from {table}")
        return cast(dict[str, Any], rows[0])

    async def select(self, table: str, **filters: Any) -> list[dict[str, Any]]:
        """Fetch rows matching equality filters."""
        params = {"select": "*", **_eq_filters(filters)}
        rows = await self._request("GET", table, params=params)
        return cast(list[dict[str, Any]], rows or [])

    async def insert(self, table: str, row: dict[str, Any]) -> dict[str, Any]:
        """Insert one row and return it as stored."""
        rows = await self._request(
            "POST", table, json=row, prefer="return=representation"
        )
        return self._single(rows, table)

    async def update(
        self, table: str, row_id: str, changes: dict[str, Any]
    ) -> dict[str, Any]:
        """Patch the row with ``row_id`` and return it."""
        rows = await self._request(
            "PATCH",
            table,
            params=_eq_filters({"id": row_id}),
            json=changes,
            prefer="return=representation",
        )
        return self._single(rows, table)

    async def upsert(
        self, table: str, row: dict[str, Any], *, on_conflict: str
    ) -> dict[str, Any]:
        """Insert or update on ``on_conflict`` and return the row."""
        rows = await self._request(
            "POST",
            table,
            params={"on_conflict": on_conflict},
            json=row,
            prefer="resolution=merge-duplicates,return=representation",
        )
        return self._single(rows, table)

    async def upsert_rows(
        self, table: str, rows: list[dict[str, Any]], *, on_conflict: str
    ) -> list[dict[str, Any]]:
        """Upsert several rows in one request; the batch succeeds or fails whole."""
        if not rows:
            return []
        stored = await self._request(
            "POST",
            table,
            params={"on_conflict": on_conflict},
            json=rows,
            prefer="resolution=merge-duplicates,return=representation",
        )
        return cast(list[dict[str, Any]], stored or [])

    async def delete(self, table: str, row_id: str) -> None:
        """Delete the row with ``row_id``."""
        await self._request("DELETE", table, params=_eq_filters({"id": row_id}))

    async def aclose(self) -> None:
        """Close the HTTP client."""
        await self._client.aclose()


__all__ = ["Backend", "BackendError", "RestBackend"]
