"""
Milestone Workflow Engine.

Turns ready milestones into downstream work: a task in the task list and,
for templates with linked ticket groups, tracking tickets created through
the Orchestrator.

Two idempotency latches on each milestone guard the side effects:
workflow_task_created and workflow_tickets_created. They are only set after
the side effect succeeds and are never reset by status changes, so a failed
milestone is retried on the next pass and a succeeded one is never repeated.

Entry points:
  evaluate_all()              periodic batch over every ready milestone
  on_milestone_completed(id)  fast path for the next milestone in the chain
"""

import logging
import threading
from collections.abc import Callable
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Protocol

from taskhub.models import DeliveryMilestone, OrchestratorResult, WorkOrder, format_date
from taskhub.observability import RunContext
from taskhub.state_store import StateStore

from . import bridge

logger = logging.getLogger(__name__)


class Orchestrator(Protocol):
    """Creates the tracking tickets for a milestone's linked groups."""

    def execute(self, work_order: WorkOrder) -> OrchestratorResult: ...


@dataclass
class MilestoneOutcome:
    task_created: bool = False
    tickets_created: int = 0


class MilestoneWorkflowEngine:
    def __init__(
        self,
        store: StateStore,
        get_orchestrator: Callable[[], Orchestrator | None] = lambda: None,
        clock: Callable[[], datetime] | None = None,
    ):
        self.store = store
        self.get_orchestrator = get_orchestrator
        self.clock = clock or datetime.now
        # Serializes the batch pass and the fast path within this process
        self._lock = threading.RLock()

    def today(self) -> date:
        return self.clock().date()

    def now(self) -> str:
        return self.clock().isoformat(timespec="seconds")

    def evaluate_all(self) -> dict:
        """
        Process every ready milestone independently.

        A failure on one milestone is logged and the batch moves on.
        Failing to read the candidate list propagates.
        """
        with RunContext("workflow"):
            today = self.today()
            ready = self.store.list_ready_milestones(today)
            if not ready:
                return {"tasks_created": 0, "tickets_created": 0}

            tasks_created = 0
            tickets_created = 0
            for milestone in ready:
                outcome = self._process_safely(milestone, today)
                if outcome is None:
                    continue
                tasks_created += 1 if outcome.task_created else 0
                tickets_created += outcome.tickets_created

            if tasks_created or tickets_created:
                logger.info(
                    "Evaluation complete: %d tasks created, %d tickets created",
                    tasks_created,
                    tickets_created,
                )
            return {"tasks_created": tasks_created, "tickets_created": tickets_created}

    def on_milestone_completed(self, milestone_id: int) -> None:
        """
        When a milestone completes, start the next one in template order
        right away if it is already inside its lead window. Otherwise the
        periodic pass picks it up once the window opens.
        """
        with RunContext("workflow"):
            milestone = self.store.get_milestone(milestone_id)
            if milestone is None:
                logger.debug("Milestone %s not found, nothing to advance", milestone_id)
                return

            next_milestone = self.store.get_next_milestone(milestone)
            if next_milestone is None:
                logger.info(
                    "No next milestone for delivery %s after %s",
                    milestone.delivery_id,
                    milestone.template_name,
                )
                return
            if next_milestone.target_date is None:
                logger.info("Next milestone %r has no target date", next_milestone.template_name)
                return

            template = self.store.get_template(next_milestone.template_id)
            if template is None or not template.active:
                logger.info("Template for %r is inactive or gone, skipping", next_milestone.template_name)
                return

            today = self.today()
            trigger = next_milestone.target_date - timedelta(days=template.lead_days)
            if today >= trigger:
                self._process_safely(next_milestone, today)
            else:
                logger.info(
                    "Next milestone %r not yet within lead time (triggers %s)",
                    next_milestone.template_name,
                    trigger.isoformat(),
                )

    def _process_safely(self, milestone: DeliveryMilestone, today: date) -> MilestoneOutcome | None:
        try:
            return self.process_milestone(milestone, today)
        except Exception as e:
            logger.error(
                "Error processing milestone %s (%s for delivery %s): %s",
                milestone.id,
                milestone.template_name,
                milestone.delivery_id,
                e,
                exc_info=True,
            )
            return None

    def process_milestone(self, milestone: DeliveryMilestone, today: date) -> MilestoneOutcome:
        """
        1. Project to a task and set the task latch, in one transaction.
        2. Create linked tickets if the ticket latch is still unset. A
           ticket failure is logged and does not undo step 1.
        """
        with self._lock:
            delivery = self.store.get_delivery(milestone.delivery_id)
            if delivery is None:
                raise LookupError(f"delivery {milestone.delivery_id} not found")

            now = self.now()
            with self.store.transaction():
                self.store.upsert_task(bridge.project(milestone, delivery.account, today), now)
                task_created = self.store.mark_workflow_task_created(milestone.id, now)
            if task_created:
                logger.info(
                    "Task created: %s — %s (due %s)",
                    delivery.account,
                    milestone.template_name,
                    format_date(milestone.target_date),
                )

            try:
                tickets = self._create_tickets(milestone, delivery, today)
            except Exception as e:
                # Ticket latch stays unset; the next pass retries
                logger.error(
                    "Ticket creation failed for %s — %s: %s",
                    delivery.account,
                    milestone.template_name,
                    e,
                    exc_info=True,
                )
                tickets = 0
            return MilestoneOutcome(task_created=task_created, tickets_created=tickets)

    def _create_tickets(self, milestone: DeliveryMilestone, delivery, today: date) -> int:
        # Re-read: another path may have set the latch since the candidate list was built
        current = self.store.get_milestone(milestone.id)
        if current is None or current.workflow_tickets_created:
            return 0
        if not delivery.can_create_tickets:
            return 0
        group_ids = self.store.get_template_ticket_groups(current.template_id)
        if not group_ids:
            return 0

        orchestrator = self.get_orchestrator()
        if orchestrator is None:
            logger.info(
                "Orchestrator not available, skipping ticket creation for %s — %s",
                delivery.account,
                current.template_name,
            )
            return 0

        work_order = WorkOrder(
            onboarding_ref=delivery.onboarding_id,
            sale_type=delivery.sale_type,
            customer_name=delivery.account,
            target_due_date=format_date(current.target_date or today),
            filter_group_ids=group_ids,
        )
        result = orchestrator.execute(work_order)
        keys = result.keys
        if not self.store.mark_workflow_tickets_created(current.id, keys, self.now()):
            logger.warning("Ticket latch for milestone %s was set concurrently", current.id)
            return 0

        logger.info(
            "Tickets created for %s — %s: %s",
            delivery.account,
            current.template_name,
            ", ".join(keys),
        )
        return result.created_count
