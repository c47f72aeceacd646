"""
TaskHub — Core Models

Canonical task record, milestone chain records and the result types passed
between adapters, the reconciliation engine and the workflow engine.
"""

import json
from dataclasses import dataclass, field
from datetime import date, datetime
from enum import StrEnum
from typing import Any

from taskhub import config

# =============================================================================
# ENUMS
# =============================================================================


class TaskStatus(StrEnum):
    """Canonical task status."""

    OPEN = "open"
    IN_PROGRESS = "in_progress"
    DONE = "done"
    DISMISSED = "dismissed"


class MilestoneStatus(StrEnum):
    """Delivery milestone status."""

    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETE = "complete"


MILESTONE_SOURCE = "milestone"

DEFAULT_PRIORITY = 50


def clamp_priority(value: Any, default: int = DEFAULT_PRIORITY) -> int:
    """Priorities are integers in 0..100."""
    try:
        return max(0, min(100, int(value)))
    except (TypeError, ValueError):
        return default


# =============================================================================
# DATE HELPERS
# =============================================================================


def parse_date(value: Any) -> date | None:
    """Coerce a date, datetime or ISO string (date or datetime) to a date."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    text = str(value).strip()
    try:
        return date.fromisoformat(text[:10])
    except ValueError:
        return None


def format_date(value: date | None) -> str | None:
    return value.isoformat() if value else None


def _loads(value: Any, default: Any) -> Any:
    if value is None or value == "":
        return default
    if isinstance(value, list | dict):
        return value
    try:
        return json.loads(value)
    except (TypeError, ValueError):
        return default


# =============================================================================
# CANONICAL TASK
# =============================================================================


@dataclass
class CanonicalTask:
    """
    One work item, whatever system it came from.

    Identity is (source, source_id). Source-owned fields are refreshed on
    every sync; is_pinned, snoozed_until and created_at are local.
    """

    source: str
    source_id: str
    title: str
    description: str | None = None
    status: str = TaskStatus.OPEN
    priority: int = DEFAULT_PRIORITY
    due_date: str | None = None
    sla_breach_at: str | None = None
    category: str | None = None
    source_url: str | None = None
    raw_data: Any = None
    is_pinned: bool = False
    snoozed_until: str | None = None
    transient: bool = False
    last_synced: str | None = None
    created_at: str | None = None
    updated_at: str | None = None

    @property
    def key(self) -> str:
        return f"{self.source}:{self.source_id}"

    def to_row(self) -> dict:
        """Row for the tasks table. raw_data is stored verbatim as JSON."""
        return {
            "id": self.key,
            "source": self.source,
            "source_id": self.source_id,
            "source_url": self.source_url,
            "title": self.title,
            "description": self.description,
            "status": str(self.status),
            "priority": clamp_priority(self.priority),
            "due_date": self.due_date,
            "sla_breach_at": self.sla_breach_at,
            "category": self.category,
            "raw_data": json.dumps(self.raw_data, default=str) if self.raw_data is not None else None,
            "transient": 1 if self.transient else 0,
        }

    @classmethod
    def from_row(cls, row: dict) -> "CanonicalTask":
        return cls(
            source=row["source"],
            source_id=row["source_id"],
            title=row["title"],
            description=row.get("description"),
            status=row.get("status") or TaskStatus.OPEN,
            priority=row.get("priority") if row.get("priority") is not None else DEFAULT_PRIORITY,
            due_date=row.get("due_date"),
            sla_breach_at=row.get("sla_breach_at"),
            category=row.get("category"),
            source_url=row.get("source_url"),
            raw_data=_loads(row.get("raw_data"), None),
            is_pinned=bool(row.get("is_pinned")),
            snoozed_until=row.get("snoozed_until"),
            transient=bool(row.get("transient")),
            last_synced=row.get("last_synced"),
            created_at=row.get("created_at"),
            updated_at=row.get("updated_at"),
        )

    def to_dict(self) -> dict:
        row = self.to_row()
        row.update(
            raw_data=self.raw_data,
            transient=self.transient,
            is_pinned=self.is_pinned,
            snoozed_until=self.snoozed_until,
            last_synced=self.last_synced,
            created_at=self.created_at,
            updated_at=self.updated_at,
        )
        return row


# =============================================================================
# FETCH / SYNC RESULTS
# =============================================================================


@dataclass
class FetchResult:
    """
    What an adapter saw.

    ok=False means the source state is unknown, never "now empty".
    """

    tasks: list[CanonicalTask] = field(default_factory=list)
    ok: bool = True


@dataclass
class SyncResult:
    """Outcome of one source's reconciliation pass."""

    source: str
    count: int = 0
    removed: int = 0
    error: str | None = None
    purge_skipped: bool = False

    @property
    def ok(self) -> bool:
        return self.error is None

    def to_dict(self) -> dict:
        result = {"source": self.source, "count": self.count, "removed": self.removed}
        if self.error is not None:
            result["error"] = self.error
        if self.purge_skipped:
            result["purge_skipped"] = True
        return result


# =============================================================================
# MILESTONE CHAIN
# =============================================================================


@dataclass
class MilestoneTemplate:
    """A reusable step definition, ordered by sort_order."""

    id: int
    name: str
    default_day_offset: int = 0
    sort_order: int = 0
    checklist: list[str] = field(default_factory=list)
    lead_days: int = field(default_factory=lambda: config.DEFAULT_LEAD_DAYS)
    linked_ticket_group_ids: list[int] = field(default_factory=list)
    active: bool = True

    @classmethod
    def from_row(cls, row: dict, group_ids: list[int] | None = None) -> "MilestoneTemplate":
        return cls(
            id=row["id"],
            name=row["name"],
            default_day_offset=row.get("default_day_offset") or 0,
            sort_order=row.get("sort_order") or 0,
            checklist=_loads(row.get("checklist_json"), []),
            lead_days=row["lead_days"] if row.get("lead_days") is not None else config.DEFAULT_LEAD_DAYS,
            linked_ticket_group_ids=list(group_ids or []),
            active=bool(row.get("active", 1)),
        )


@dataclass
class DeliveryMilestone:
    """A template instance attached to one delivery."""

    id: int
    delivery_id: int
    template_id: int
    template_name: str
    target_date: date | None = None
    actual_date: date | None = None
    status: str = MilestoneStatus.PENDING
    checklist_state: list[bool] = field(default_factory=list)
    notes: str | None = None
    workflow_task_created: bool = False
    workflow_tickets_created: bool = False
    workflow_ticket_keys: list[str] = field(default_factory=list)

    @property
    def is_complete(self) -> bool:
        return self.status == MilestoneStatus.COMPLETE

    @classmethod
    def from_row(cls, row: dict) -> "DeliveryMilestone":
        return cls(
            id=row["id"],
            delivery_id=row["delivery_id"],
            template_id=row["template_id"],
            template_name=row["template_name"],
            target_date=parse_date(row.get("target_date")),
            actual_date=parse_date(row.get("actual_date")),
            status=row.get("status") or MilestoneStatus.PENDING,
            checklist_state=[bool(x) for x in _loads(row.get("checklist_state_json"), [])],
            notes=row.get("notes"),
            workflow_task_created=bool(row.get("workflow_task_created")),
            workflow_tickets_created=bool(row.get("workflow_tickets_created")),
            workflow_ticket_keys=_loads(row.get("workflow_ticket_keys_json"), []),
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "delivery_id": self.delivery_id,
            "template_id": self.template_id,
            "template_name": self.template_name,
            "target_date": format_date(self.target_date),
            "actual_date": format_date(self.actual_date),
            "status": str(self.status),
            "checklist_state": self.checklist_state,
            "notes": self.notes,
            "workflow_task_created": self.workflow_task_created,
            "workflow_tickets_created": self.workflow_tickets_created,
            "workflow_ticket_keys": self.workflow_ticket_keys,
        }


@dataclass
class Delivery:
    """The unit of work a milestone chain hangs off."""

    id: int
    account: str
    product: str | None = None
    unit_type_id: int | None = None
    sale_type: str | None = None
    onboarding_id: str | None = None
    order_date: date | None = None
    onboarder: str | None = None
    status: str | None = None

    @property
    def can_create_tickets(self) -> bool:
        return bool(self.sale_type and self.onboarding_id)

    @classmethod
    def from_row(cls, row: dict) -> "Delivery":
        return cls(
            id=row["id"],
            account=row["account"],
            product=row.get("product"),
            unit_type_id=row.get("unit_type_id"),
            sale_type=row.get("sale_type"),
            onboarding_id=row.get("onboarding_id"),
            order_date=parse_date(row.get("order_date")),
            onboarder=row.get("onboarder"),
            status=row.get("status"),
        )


# =============================================================================
# ORCHESTRATOR CONTRACT
# =============================================================================


@dataclass
class WorkOrder:
    """Ticket-creation request handed to the Orchestrator."""

    onboarding_ref: str
    sale_type: str
    customer_name: str
    target_due_date: str | None
    filter_group_ids: list[int] = field(default_factory=list)
    schema_version: int = 1

    def to_payload(self) -> dict:
        return {
            "schemaVersion": self.schema_version,
            "onboardingRef": self.onboarding_ref,
            "saleType": self.sale_type,
            "customer": {"name": self.customer_name},
            "targetDueDate": self.target_due_date,
            "config": {},
        }

    def options(self) -> dict:
        return {"filterGroupIds": list(self.filter_group_ids)}


@dataclass
class OrchestratorResult:
    parent_key: str | None = None
    child_keys: list[str] = field(default_factory=list)
    created_count: int = 0

    @property
    def keys(self) -> list[str]:
        """Parent then children, empties dropped."""
        return [k for k in [self.parent_key, *self.child_keys] if k]
