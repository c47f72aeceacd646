"""
Milestone chains: creation, edits and teardown for one delivery's milestones.

A chain is created whole from the active templates, never partially, and
deleted whole together with the tasks that stand for it. Every edit keeps
the milestone's task in step through the bridge.
"""

import logging
from collections.abc import Callable
from datetime import date, datetime, timedelta

from taskhub.models import MILESTONE_SOURCE, DeliveryMilestone, parse_date
from taskhub.state_store import StateStore

from . import bridge
from .workflow import MilestoneWorkflowEngine

logger = logging.getLogger(__name__)

UNSET = bridge.UNSET


class MilestoneChainExists(Exception):
    """The delivery already has milestones. Delete them first to recreate."""


class DeliveryNotFound(LookupError):
    pass


class MilestoneNotFound(LookupError):
    pass


class MilestoneChain:
    def __init__(
        self,
        store: StateStore,
        workflow: MilestoneWorkflowEngine | None = None,
        clock: Callable[[], datetime] | None = None,
    ):
        self.store = store
        self.workflow = workflow
        self.clock = clock or datetime.now

    def today(self) -> date:
        return self.clock().date()

    def now(self) -> str:
        return self.clock().isoformat(timespec="seconds")

    # ------------------------------------------------------------------
    # Create / delete
    # ------------------------------------------------------------------

    def create_chain(self, delivery_id: int, start_date: date | str | None = None) -> list[DeliveryMilestone]:
        """
        Instantiate every active template for a delivery.

        target_date = start + day offset, where the offset comes from the
        unit-type matrix when it has an entry, else the template default.
        Start defaults to the delivery's order date, then today.

        Only the first milestone gets its task now, with its task latch set.
        Later tasks are released by the workflow once their lead window opens.
        """
        today = self.today()
        with self.store.transaction():
            if self.store.has_chain(delivery_id):
                raise MilestoneChainExists(f"delivery {delivery_id} already has milestones")
            delivery = self.store.get_delivery(delivery_id)
            if delivery is None:
                raise DeliveryNotFound(f"delivery {delivery_id} not found")

            start = parse_date(start_date) or delivery.order_date or today
            offsets = (
                self.store.get_unit_type_offsets(delivery.unit_type_id)
                if delivery.unit_type_id is not None
                else {}
            )
            rows = [
                {
                    "template_id": t.id,
                    "template_name": t.name,
                    "target_date": start + timedelta(days=offsets.get(t.id, t.default_day_offset)),
                    "checklist_state": [False] * len(t.checklist),
                }
                for t in self.store.list_templates(active_only=True)
            ]
            self.store.insert_milestones(delivery_id, rows)

            milestones = self.store.get_milestones_for_delivery(delivery_id)
            if milestones:
                first = milestones[0]
                now = self.now()
                self.store.upsert_task(bridge.project(first, delivery.account, today), now)
                self.store.mark_workflow_task_created(first.id, now)
                milestones[0] = self.store.get_milestone(first.id)

        logger.info("Created %d milestones for delivery %s (%s)", len(milestones), delivery_id, delivery.account)
        return milestones

    def backfill_chains(self) -> dict:
        """Create a chain for every delivery that has none."""
        deliveries = self.store.list_deliveries()
        created = 0
        skipped = 0
        results = []
        for delivery in deliveries:
            if self.store.has_chain(delivery.id):
                skipped += 1
                continue
            milestones = self.create_chain(delivery.id)
            created += 1
            results.append({"id": delivery.id, "account": delivery.account, "milestones": len(milestones)})

        logger.info(
            "Backfill: created for %d deliveries, skipped %d (already had milestones)", created, skipped
        )
        return {"created": created, "skipped": skipped, "total": len(deliveries), "results": results}

    def delete_chain(self, delivery_id: int) -> dict:
        """Remove a delivery's milestones and their tasks together."""
        with self.store.transaction():
            deleted = self.store.delete_milestones_for_delivery(delivery_id)
            tasks_removed = self.store.delete_tasks_by_prefix(
                MILESTONE_SOURCE, bridge.chain_prefix(delivery_id)
            )
        logger.info("Deleted %d milestones and %d tasks for delivery %s", deleted, tasks_removed, delivery_id)
        return {"deleted": deleted, "tasks_removed": tasks_removed}

    def delete_delivery(self, delivery_id: int) -> bool:
        with self.store.transaction():
            self.delete_chain(delivery_id)
            return self.store.delete_delivery(delivery_id)

    # ------------------------------------------------------------------
    # Edits
    # ------------------------------------------------------------------

    def update_milestone(
        self,
        milestone_id: int,
        status=UNSET,
        actual_date=UNSET,
        target_date=UNSET,
        notes=UNSET,
        checklist_state=UNSET,
    ) -> DeliveryMilestone:
        """
        Edit a milestone and re-project its task.

        actual_date stays set exactly while the milestone is complete.
        Entering complete fires the fast path for the next milestone.
        """
        milestone = self.store.get_milestone(milestone_id)
        if milestone is None:
            raise MilestoneNotFound(f"milestone {milestone_id} not found")
        today = self.today()

        fields: dict = {}
        if status is not UNSET:
            explicit = parse_date(actual_date) if actual_date is not UNSET else UNSET
            fields.update(bridge.transition(milestone, status, today, explicit))
        elif actual_date is not UNSET:
            stamp = parse_date(actual_date)
            if milestone.is_complete and stamp is None:
                raise ValueError("a complete milestone needs an actual_date")
            if not milestone.is_complete and stamp is not None:
                raise ValueError("actual_date can only be set on a complete milestone")
            fields["actual_date"] = stamp
        if target_date is not UNSET:
            fields["target_date"] = parse_date(target_date)
        if notes is not UNSET:
            fields["notes"] = notes
        if checklist_state is not UNSET:
            fields["checklist_state"] = list(checklist_state)

        updated = self._write(milestone, fields, today)
        if not milestone.is_complete and updated.is_complete:
            self._completed(updated)
        return updated

    def apply_task_status(self, source_id: str, task_status: str) -> DeliveryMilestone | None:
        """Map a status change made on a milestone task back onto its milestone."""
        key = bridge.parse_milestone_source_id(source_id)
        if key is None:
            return None
        milestone = self.store.get_milestone_for_template(*key)
        if milestone is None:
            logger.warning("No milestone behind task %s", source_id)
            return None

        fields = bridge.apply(task_status, milestone, self.today())
        if not fields:
            return milestone
        updated = self._write(milestone, fields, self.today())
        if not milestone.is_complete and updated.is_complete:
            self._completed(updated)
        return updated

    def resync_milestone_tasks(self) -> int:
        """
        Re-project every open milestone whose task has been released, so
        task priorities follow the calendar.
        """
        today = self.today()
        accounts: dict[int, str | None] = {}
        synced = 0
        with self.store.transaction():
            for m in self.store.list_non_complete_milestones():
                if not m.workflow_task_created:
                    continue
                if m.delivery_id not in accounts:
                    delivery = self.store.get_delivery(m.delivery_id)
                    accounts[m.delivery_id] = delivery.account if delivery else None
                account = accounts[m.delivery_id]
                if account is None:
                    continue
                self.store.upsert_task(bridge.project(m, account, today), self.now())
                synced += 1
        logger.info("Re-synced %d active milestone tasks", synced)
        return synced

    def _write(self, milestone: DeliveryMilestone, fields: dict, today: date) -> DeliveryMilestone:
        with self.store.transaction():
            if fields:
                self.store.update_milestone(milestone.id, fields, self.now())
            updated = self.store.get_milestone(milestone.id)
            # Unreleased milestones have no task yet
            if not updated.workflow_task_created:
                return updated
            delivery = self.store.get_delivery(milestone.delivery_id)
            if delivery is not None:
                self.store.upsert_task(bridge.project(updated, delivery.account, today), self.now())
        return updated

    def _completed(self, milestone: DeliveryMilestone) -> None:
        logger.info("Milestone %s (%s) complete", milestone.id, milestone.template_name)
        if self.workflow is not None:
            self.workflow.on_milestone_completed(milestone.id)
