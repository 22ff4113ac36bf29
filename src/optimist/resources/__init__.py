"""Domain resources: entity types bound to optimistic mutation configs."""

from optimist.resources.base import (
    ItemUpdate,
    Resource,
    is_temporary_id,
    temp_id,
)
from optimist.resources.comments import CommentThread
from optimist.resources.economy import (
    InvoiceDraft,
    ProjectEconomy,
    PurchaseDraft,
    QuoteDraft,
    summarize,
)
from optimist.resources.entities import (
    Budget,
    Comment,
    EconomySummary,
    Invoice,
    Project,
    Purchase,
    Quote,
    StaffAssignment,
    Task,
)
from optimist.resources.project import ProjectRecord
from optimist.resources.scope import PACKING, PROJECT, Scope
from optimist.resources.staff import StaffAssignments
from optimist.resources.tasks import TaskBoard, TaskDraft

__all__ = [
    "PACKING",
    "PROJECT",
    "Budget",
    "Comment",
    "CommentThread",
    "EconomySummary",
    "Invoice",
    "InvoiceDraft",
    "ItemUpdate",
    "Project",
    "ProjectEconomy",
    "ProjectRecord",
    "Purchase",
    "PurchaseDraft",
    "Quote",
    "QuoteDraft",
    "Resource",
    "Scope",
    "StaffAssignment",
    "StaffAssignments",
    "Task",
    "TaskBoard",
    "TaskDraft",
    "is_temporary_id",
    "summarize",
    "temp_id",
]
