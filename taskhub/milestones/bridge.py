"""
Milestone <-> Task bridge.

project() turns a delivery milestone into the canonical task that stands for
it in the task list; apply() maps a status change made on that task back
onto the milestone. Both are pure: the same inputs always give the same
output, so re-projecting a milestone upserts over its task instead of
duplicating it.
"""

from datetime import date

from taskhub.models import (
    MILESTONE_SOURCE,
    CanonicalTask,
    DeliveryMilestone,
    MilestoneStatus,
    TaskStatus,
    format_date,
)

MILESTONE_CATEGORY = "project"

MILESTONE_TO_TASK_STATUS = {
    MilestoneStatus.PENDING: TaskStatus.OPEN,
    MilestoneStatus.IN_PROGRESS: TaskStatus.IN_PROGRESS,
    MilestoneStatus.COMPLETE: TaskStatus.DONE,
}

TASK_TO_MILESTONE_STATUS = {
    TaskStatus.OPEN: MilestoneStatus.PENDING,
    TaskStatus.IN_PROGRESS: MilestoneStatus.IN_PROGRESS,
    TaskStatus.DONE: MilestoneStatus.COMPLETE,
}

UNSET = object()


def milestone_source_id(delivery_id: int, template_id: int) -> str:
    return f"milestone:{delivery_id}:{template_id}"


def chain_prefix(delivery_id: int) -> str:
    """source_id prefix shared by every task of one delivery's chain."""
    return f"milestone:{delivery_id}:"


def parse_milestone_source_id(source_id: str) -> tuple[int, int] | None:
    """(delivery_id, template_id) from a milestone task's source_id."""
    parts = source_id.split(":")
    if len(parts) != 3 or parts[0] != "milestone":
        return None
    try:
        return int(parts[1]), int(parts[2])
    except ValueError:
        return None


def calculate_priority(target_date: date | None, status: str, today: date) -> int:
    """
    complete 20; no date 50; overdue 80; due within 3 days 70;
    within 7 days 60; otherwise 50.
    """
    if status == MilestoneStatus.COMPLETE:
        return 20
    if target_date is None:
        return 50
    days_until = (target_date - today).days
    if days_until < 0:
        return 80
    if days_until <= 3:
        return 70
    if days_until <= 7:
        return 60
    return 50


def project(milestone: DeliveryMilestone, unit_label: str, today: date) -> CanonicalTask:
    return CanonicalTask(
        source=MILESTONE_SOURCE,
        source_id=milestone_source_id(milestone.delivery_id, milestone.template_id),
        title=f"{unit_label} — {milestone.template_name}",
        description=f"Delivery milestone for {unit_label}",
        status=MILESTONE_TO_TASK_STATUS.get(milestone.status, TaskStatus.OPEN),
        priority=calculate_priority(milestone.target_date, milestone.status, today),
        due_date=format_date(milestone.target_date),
        category=MILESTONE_CATEGORY,
    )


def transition(
    milestone: DeliveryMilestone,
    new_status: str,
    today: date,
    actual_date=UNSET,
) -> dict:
    """
    Fields to write for a status change, keeping actual_date set exactly
    when the milestone is complete.

    Entering complete stamps today unless *actual_date* is given; a
    milestone that is already complete keeps its date. Leaving complete
    clears it.
    """
    new_status = MilestoneStatus(new_status)
    if new_status != MilestoneStatus.COMPLETE:
        return {"status": new_status, "actual_date": None}

    if actual_date is not UNSET and actual_date is not None:
        stamp = actual_date
    elif milestone.is_complete and milestone.actual_date:
        stamp = milestone.actual_date
    else:
        stamp = today
    return {"status": new_status, "actual_date": stamp}


def apply(task_status: str, milestone: DeliveryMilestone, today: date) -> dict:
    """
    Milestone update for a status change made on its task.

    Statuses with no milestone counterpart (dismissed) change nothing and
    return an empty dict; so does a status the milestone already has.
    """
    try:
        new_status = TASK_TO_MILESTONE_STATUS.get(TaskStatus(task_status))
    except ValueError:
        return {}
    if new_status is None or new_status == milestone.status:
        return {}
    return transition(milestone, new_status, today)
