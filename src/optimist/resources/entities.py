"""Records cached by the domain resources, mirroring the backend tables."""

from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class Project:
    id: str
    name: str
    status: str = "planning"
    description: str | None = None
    project_leader: str | None = None
    location: str | None = None
    start_date: str | None = None
    end_date: str | None = None
    created_at: str | None = None
    updated_at: str | None = None


@dataclass(frozen=True, slots=True)
class Task:
    """A checklist task on a project or a packing job.

    ``owner_id`` holds the ``project_id`` or ``packing_id`` column.
    """

    id: str
    owner_id: str
    title: str
    description: str | None = None
    assigned_to: str | None = None
    deadline: str | None = None
    completed: bool = False
    is_info_only: bool = False
    sort_order: int = 0
    created_at: str | None = None
    updated_at: str | None = None


@dataclass(frozen=True, slots=True)
class Comment:
    id: str
    owner_id: str
    author_name: str
    content: str
    created_at: str | None = None


@dataclass(frozen=True, slots=True)
class Budget:
    id: str
    project_id: str
    budgeted_hours: float
    hourly_rate: float
    description: str | None = None
    created_at: str | None = None
    updated_at: str | None = None


@dataclass(frozen=True, slots=True)
class Purchase:
    id: str
    project_id: str
    description: str
    amount: float
    supplier: str | None = None
    purchase_date: str | None = None
    receipt_url: str | None = None
    category: str | None = None
    created_by: str | None = None
    created_at: str | None = None


@dataclass(frozen=True, slots=True)
class Quote:
    id: str
    project_id: str
    supplier: str
    description: str
    quoted_amount: float
    quote_date: str | None = None
    valid_until: str | None = None
    status: str = "pending"  # pending | approved | rejected | invoiced
    quote_file_url: str | None = None
    created_at: str | None = None
    updated_at: str | None = None


@dataclass(frozen=True, slots=True)
class Invoice:
    id: str
    project_id: str
    supplier: str
    invoiced_amount: float
    quote_id: str | None = None
    invoice_number: str | None = None
    invoice_date: str | None = None
    due_date: str | None = None
    status: str = "unpaid"  # unpaid | paid | disputed
    invoice_file_url: str | None = None
    notes: str | None = None
    created_at: str | None = None


@dataclass(frozen=True, slots=True)
class StaffAssignment:
    id: str
    booking_id: str
    staff_id: str
    team_id: str
    assignment_date: str
    created_at: str | None = None


@dataclass(frozen=True, slots=True)
class EconomySummary:
    budgeted_hours: float
    hourly_rate: float
    staff_budget: float
    purchases_total: float
    quotes_total: float
    invoices_total: float
    invoice_deviation: float
    total_budget: float
    total_actual: float
    total_deviation: float
