"""Shared pytest fixtures."""

import asyncio
import itertools

import pytest

from optimist import AsyncMemoryAdapter, BackendError, QueryClient, RecordingNotifier
from optimist.types import QueryKey


class SpyClient(QueryClient):
    """QueryClient that records every invalidate_queries call."""

    def __init__(self, *args, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self.invalidated: list[QueryKey] = []

    async def invalidate_queries(self, key: QueryKey) -> None:
        self.invalidated.append(key)
        await super().invalidate_queries(key)


@pytest.fixture
def async_adapter() -> AsyncMemoryAdapter:
    """Create a fresh AsyncMemoryAdapter for each test."""
    return AsyncMemoryAdapter()


@pytest.fixture
def client(async_adapter: AsyncMemoryAdapter) -> SpyClient:
    """Create a query client over the memory adapter."""
    return SpyClient(async_adapter)


@pytest.fixture
def notifier() -> RecordingNotifier:
    """Create a notifier that keeps every message."""
    return RecordingNotifier()


class FakeBackend:
    """In-memory Backend with switchable failures and an optional gate.

    Operations named in ``failing`` raise BackendError. While ``gate`` is
    set, writes wait on it after signalling ``entered``.
    """

    def __init__(self) -> None:
        self.tables: dict[str, list[dict]] = {}
        self.failing: set[str] = set()
        self.gate: asyncio.Event | None = None
        self.entered = asyncio.Event()
        self._ids = itertools.count(1)

    def rows(self, table: str) -> list[dict]:
        return self.tables.setdefault(table, [])

    async def _enter(self, operation: str, table: str) -> None:
        if operation != "select" and self.gate is not None:
            self.entered.set()
            await self.gate.wait()
        if operation in self.failing:
            raise BackendError(f"{operation} on {table} failed", status_code=500)

    def _find(self, table: str, row_id: str) -> dict:
        for row in self.rows(table):
            if row["id"] == row_id:
                return row
        raise BackendError(f"No row {row_id} in {table}", status_code=404)

    async def select(self, table: str, **filters) -> list[dict]:
        await self._enter("select", table)
        return [
            dict(row)
            for row in self.rows(table)
            if all(row.get(column) == value for column, value in filters.items())
        ]

    async def insert(self, table: str, row: dict) -> dict:
        await self._enter("insert", table)
        stored = {
            "id": f"{table}-{next(self._ids)}",
            "created_at": f"2026-01-01T00:00:{next(self._ids):02d}+00:00",
            **row,
        }
        self.rows(table).append(stored)
        return dict(stored)

    async def update(self, table: str, row_id: str, changes: dict) -> dict:
        await self._enter("update", table)
        row = self._find(table, row_id)
        row.update(changes)
        return dict(row)

    async def upsert(self, table: str, row: dict, *, on_conflict: str) -> dict:
        await self._enter("upsert", table)
        for existing in self.rows(table):
            if existing.get(on_conflict) == row.get(on_conflict):
                existing.update(row)
                return dict(existing)
        stored = {"id": f"{table}-{next(self._ids)}", **row}
        self.rows(table).append(stored)
        return dict(stored)

    async def upsert_rows(
        self, table: str, rows: list[dict], *, on_conflict: str
    ) -> list[dict]:
        await self._enter("upsert", table)
        stored = []
        for row in rows:
            for existing in self.rows(table):
                if existing.get(on_conflict) == row.get(on_conflict):
                    existing.update(row)
                    stored.append(dict(existing))
                    break
            else:
                self.rows(table).append(dict(row))
                stored.append(dict(row))
        return stored

    async def delete(self, table: str, row_id: str) -> None:
        await self._enter("delete", table)
        self.rows(table).remove(self._find(table, row_id))


@pytest.fixture
def backend() -> FakeBackend:
    """Create an empty in-memory backend."""
    return FakeBackend()
