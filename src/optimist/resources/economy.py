"""Project economy: budget, purchases, supplier quotes and invoices.

Every mutation here also invalidates the project's economy summary, which
is derived from the four cached lists.
"""

from __future__ import annotations

import asyncio
from dataclasses import asdict, dataclass, fields
from typing import Any, TypeVar

from optimist.client import QueryClient
from optimist.keys import query_key
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
from optimist.resources.entities import (
    Budget,
    EconomySummary,
    Invoice,
    Purchase,
    Quote,
)
from optimist.types import (
    ListAdd,
    ListDelete,
    ListUpdate,
    MutationOutcome,
    QueryKey,
    SingleUpdate,
)

EntityT = TypeVar("EntityT", Purchase, Quote, Invoice)

DEFAULT_HOURLY_RATE = 350.0


@dataclass(frozen=True, slots=True)
class BudgetInput:
    budgeted_hours: float
    hourly_rate: float
    description: str | None = None


@dataclass(frozen=True, slots=True)
class PurchaseDraft:
    description: str
    amount: float
    supplier: str | None = None
    purchase_date: str | None = None
    receipt_url: str | None = None
    category: str | None = None
    created_by: str | None = None


@dataclass(frozen=True, slots=True)
class QuoteDraft:
    supplier: str
    description: str
    quoted_amount: float
    quote_date: str | None = None
    valid_until: str | None = None
    status: str = "pending"
    quote_file_url: str | None = None


@dataclass(frozen=True, slots=True)
class InvoiceDraft:
    supplier: str
    invoiced_amount: float
    quote_id: str | None = None
    invoice_number: str | None = None
    invoice_date: str | None = None
    due_date: str | None = None
    status: str = "unpaid"
    invoice_file_url: str | None = None
    notes: str | None = None


def summarize(
    budget: Budget | None,
    purchases: list[Purchase],
    quotes: list[Quote],
    invoices: list[Invoice],
) -> EconomySummary:
    """Totals and deviations of one project's economy."""
    budgeted_hours = float(budget.budgeted_hours) if budget else 0.0
    hourly_rate = (
        float(budget.hourly_rate)
        if budget and budget.hourly_rate
        else DEFAULT_HOURLY_RATE
    )
    staff_budget = budgeted_hours * hourly_rate

    purchases_total = sum(float(p.amount) for p in purchases)
    quotes_total = sum(float(q.quoted_amount) for q in quotes)
    invoices_total = sum(float(i.invoiced_amount) for i in invoices)

    quoted = {q.id: float(q.quoted_amount) for q in quotes}
    invoice_deviation = sum(
        float(i.invoiced_amount) - quoted[i.quote_id]
        for i in invoices
        if i.quote_id and i.quote_id in quoted
    )

    total_budget = staff_budget + quotes_total
    total_actual = purchases_total + invoices_total
    return EconomySummary(
        budgeted_hours=budgeted_hours,
        hourly_rate=hourly_rate,
        staff_budget=staff_budget,
        purchases_total=purchases_total,
        quotes_total=quotes_total,
        invoices_total=invoices_total,
        invoice_deviation=invoice_deviation,
        total_budget=total_budget,
        total_actual=total_actual,
        total_deviation=total_budget - total_actual,
    )


class ProjectEconomy(Resource):
    """Economy records of one project."""

    def __init__(
        self,
        client: QueryClient,
        backend: Backend,
        project_id: str,
        *,
        notifier: Notifier | None = None,
    ) -> None:
        super().__init__(client, backend, notifier=notifier)
        self._project_id = project_id

    # Keys -------------------------------------------------------------------

    @property
    def budget_key(self) -> QueryKey:
        return query_key("project-budget", self._project_id)

    @property
    def purchases_key(self) -> QueryKey:
        return query_key("project-purchases", self._project_id)

    @property
    def quotes_key(self) -> QueryKey:
        return query_key("project-quotes", self._project_id)

    @property
    def invoices_key(self) -> QueryKey:
        return query_key("project-invoices", self._project_id)

    @property
    def summary_key(self) -> QueryKey:
        return query_key("project-economy-summary", self._project_id)

    # Queries ----------------------------------------------------------------

    async def _rows(self, table: str) -> list[dict[str, Any]]:
        return await self._backend.select(table, project_id=self._project_id)

    async def fetch_budget(self) -> Budget | None:
        async def load() -> Budget | None:
            rows = await self._rows("project_budget")
            return from_row(Budget, rows[0]) if rows else None

        return await self._fetch(self.budget_key, load)

    async def fetch_purchases(self) -> list[Purchase]:
        async def load() -> list[Purchase]:
            rows = await self._rows("project_purchases")
            return [from_row(Purchase, row) for row in rows]

        return await self._fetch(self.purchases_key, load) or []

    async def fetch_quotes(self) -> list[Quote]:
        async def load() -> list[Quote]:
            rows = await self._rows("project_quotes")
            return [from_row(Quote, row) for row in rows]

        return await self._fetch(self.quotes_key, load) or []

    async def fetch_invoices(self) -> list[Invoice]:
        async def load() -> list[Invoice]:
            rows = await self._rows("project_invoices")
            return [from_row(Invoice, row) for row in rows]

        return await self._fetch(self.invoices_key, load) or []

    async def summary(self) -> EconomySummary:
        async def load() -> EconomySummary:
            budget, purchases, quotes, invoices = await asyncio.gather(
                self.fetch_budget(),
                self.fetch_purchases(),
                self.fetch_quotes(),
                self.fetch_invoices(),
            )
            return summarize(budget, purchases, quotes, invoices)

        return await self._fetch(self.summary_key, load) or await load()

    # Budget -----------------------------------------------------------------

    async def save_budget(
        self,
        budgeted_hours: float,
        hourly_rate: float,
        description: str | None = None,
    ) -> MutationOutcome[dict[str, Any]]:
        if budgeted_hours < 0 or hourly_rate < 0:
            raise ValueError("Budgeted hours and hourly rate must not be negative")

        def optimistic(variables: BudgetInput, old: Budget | None) -> Budget:
            stamp = now_iso()
            if old is not None:
                return Budget(
                    id=old.id,
                    project_id=old.project_id,
                    budgeted_hours=variables.budgeted_hours,
                    hourly_rate=variables.hourly_rate,
                    description=variables.description,
                    created_at=old.created_at,
                    updated_at=stamp,
                )
            return Budget(
                id=temp_id(),
                project_id=self._project_id,
                budgeted_hours=variables.budgeted_hours,
                hourly_rate=variables.hourly_rate,
                description=variables.description,
                created_at=stamp,
                updated_at=stamp,
            )

        async def upsert(variables: BudgetInput) -> dict[str, Any]:
            return await self._backend.upsert(
                "project_budget",
                {"project_id": self._project_id, **asdict(variables)},
                on_conflict="project_id",
            )

        return await self._mutate(
            SingleUpdate(
                self.budget_key,
                optimistic_data=optimistic,
                error_message="Kunde inte spara budget",
                invalidate_keys=(self.summary_key,),
            ),
            upsert,
            BudgetInput(budgeted_hours, hourly_rate, description),
            success_message="Budget sparad",
        )

    # Shared list plumbing ---------------------------------------------------

    def _placeholder(self, cls: type[EntityT], draft: Any) -> EntityT:
        stamp = now_iso()
        values: dict[str, Any] = {
            "id": temp_id(),
            "project_id": self._project_id,
            **asdict(draft),
        }
        names = {f.name for f in fields(cls)}
        for stamp_field in ("created_at", "updated_at"):
            if stamp_field in names:
                values[stamp_field] = stamp
        return cls(**values)

    async def _add(
        self,
        key: QueryKey,
        table: str,
        cls: type[EntityT],
        draft: Any,
        *,
        success: str,
        failure: str,
    ) -> MutationOutcome[dict[str, Any]]:
        async def create(variables: Any) -> dict[str, Any]:
            return await self._backend.insert(
                table, {"project_id": self._project_id, **asdict(variables)}
            )

        return await self._mutate(
            ListAdd(
                key,
                optimistic_data=lambda variables, _old: self._placeholder(
                    cls, variables
                ),
                error_message=failure,
                invalidate_keys=(self.summary_key,),
            ),
            create,
            draft,
            success_message=success,
        )

    async def _update(
        self,
        key: QueryKey,
        table: str,
        cls: type[EntityT],
        row_id: str,
        changes: dict[str, Any],
        *,
        success: str,
        failure: str,
    ) -> MutationOutcome[dict[str, Any]]:
        check_saved(cls.__name__, row_id)
        check_changes(cls, changes, protected=("id", "project_id", "created_at"))

        async def update(variables: ItemUpdate) -> dict[str, Any]:
            return await self._backend.update(
                table, variables.id, dict(variables.changes)
            )

        return await self._mutate(
            ListUpdate(
                key,
                get_id=item_id,
                optimistic_data=merged,
                error_message=failure,
                invalidate_keys=(self.summary_key,),
            ),
            update,
            ItemUpdate(id=row_id, changes=changes),
            success_message=success,
        )

    async def _delete(
        self,
        key: QueryKey,
        table: str,
        kind: str,
        row_id: str,
        *,
        success: str,
        failure: str,
    ) -> MutationOutcome[None]:
        check_saved(kind, row_id)

        async def delete(variables: str) -> None:
            await self._backend.delete(table, variables)

        return await self._mutate(
            ListDelete(
                key,
                get_id=item_id,
                error_message=failure,
                invalidate_keys=(self.summary_key,),
            ),
            delete,
            row_id,
            success_message=success,
        )

    # Purchases --------------------------------------------------------------

    async def add_purchase(
        self, draft: PurchaseDraft
    ) -> MutationOutcome[dict[str, Any]]:
        return await self._add(
            self.purchases_key,
            "project_purchases",
            Purchase,
            draft,
            success="Inköp tillagt",
            failure="Kunde inte lägga till inköp",
        )

    async def delete_purchase(self, purchase_id: str) -> MutationOutcome[None]:
        return await self._delete(
            self.purchases_key,
            "project_purchases",
            "Purchase",
            purchase_id,
            success="Inköp borttaget",
            failure="Kunde inte ta bort inköp",
        )

    # Quotes -----------------------------------------------------------------

    async def add_quote(
        self, draft: QuoteDraft
    ) -> MutationOutcome[dict[str, Any]]:
        return await self._add(
            self.quotes_key,
            "project_quotes",
            Quote,
            draft,
            success="Offert tillagd",
            failure="Kunde inte lägga till offert",
        )

    async def update_quote(
        self, quote_id: str, **changes: Any
    ) -> MutationOutcome[dict[str, Any]]:
        return await self._update(
            self.quotes_key,
            "project_quotes",
            Quote,
            quote_id,
            changes,
            success="Offert uppdaterad",
            failure="Kunde inte uppdatera offert",
        )

    async def delete_quote(self, quote_id: str) -> MutationOutcome[None]:
        return await self._delete(
            self.quotes_key,
            "project_quotes",
            "Quote",
            quote_id,
            success="Offert borttagen",
            failure="Kunde inte ta bort offert",
        )

    # Invoices ---------------------------------------------------------------

    async def add_invoice(
        self, draft: InvoiceDraft
    ) -> MutationOutcome[dict[str, Any]]:
        return await self._add(
            self.invoices_key,
            "project_invoices",
            Invoice,
            draft,
            success="Faktura tillagd",
            failure="Kunde inte lägga till faktura",
        )

    async def update_invoice(
        self, invoice_id: str, **changes: Any
    ) -> MutationOutcome[dict[str, Any]]:
        return await self._update(
            self.invoices_key,
            "project_invoices",
            Invoice,
            invoice_id,
            changes,
            success="Faktura uppdaterad",
            failure="Kunde inte uppdatera faktura",
        )

    async def delete_invoice(self, invoice_id: str) -> MutationOutcome[None]:
        return await self._delete(
            self.invoices_key,
            "project_invoices",
            "Invoice",
            invoice_id,
            success="Faktura borttagen",
            failure="Kunde inte ta bort faktura",
        )
