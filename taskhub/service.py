"""
TaskHub service - the library boundary.

Wires the store, settings, adapters, reconciliation engine, live query path
and milestone workflow together and exposes the operations callers use.
Connectors and the ticket Orchestrator are supplied by the deployment.
"""

import logging
from collections.abc import Callable
from datetime import datetime

from taskhub.adapters import Connector, build_adapters
from taskhub.diagnostics import Diagnostics, RawResponse
from taskhub.live import LiveQuery
from taskhub.milestones import MilestoneChain, MilestoneWorkflowEngine, Orchestrator
from taskhub.milestones.bridge import UNSET
from taskhub.models import MILESTONE_SOURCE, CanonicalTask, DeliveryMilestone, TaskStatus
from taskhub.reconcile import ReconciliationEngine
from taskhub.settings import Settings
from taskhub.state_store import StateStore, get_store

logger = logging.getLogger(__name__)


class TaskNotFound(LookupError):
    pass


class TaskHub:
    def __init__(
        self,
        store: StateStore | None = None,
        connectors: dict[str, Connector] | None = None,
        get_orchestrator: Callable[[], Orchestrator | None] | None = None,
        settings: Settings | None = None,
        diagnostics: Diagnostics | None = None,
        clock: Callable[[], datetime] | None = None,
    ):
        self.store = store or get_store()
        self.settings = settings or Settings(self.store)
        self.diagnostics = diagnostics or Diagnostics()
        self.clock = clock or datetime.now
        self.connectors = dict(connectors or {})

        self.adapters = build_adapters(self.connectors, self.settings, self.diagnostics, self.clock)
        self.reconciler = ReconciliationEngine(self.store, self.adapters, self.settings, self.clock)
        self.live = LiveQuery(self.adapters["jira"])
        self.workflow = MilestoneWorkflowEngine(
            self.store, get_orchestrator or (lambda: None), self.clock
        )
        self.milestones = MilestoneChain(self.store, self.workflow, self.clock)

    # ==================== Sync ====================

    def sync_source(self, name: str) -> dict:
        return self.reconciler.sync_source(name).to_dict()

    def sync_all(self) -> list[dict]:
        return [r.to_dict() for r in self.reconciler.sync_all()]

    def fetch_live(self, filter_name: str = "mine", username: str | None = None) -> list[CanonicalTask]:
        return self.live.fetch_live(filter_name, username)

    # ==================== Workflow ====================

    def evaluate_workflow(self) -> dict:
        return self.workflow.evaluate_all()

    def on_milestone_completed(self, milestone_id: int) -> None:
        self.workflow.on_milestone_completed(milestone_id)

    def create_chain(self, delivery_id: int, start_date=None) -> list[DeliveryMilestone]:
        return self.milestones.create_chain(delivery_id, start_date)

    def backfill(self) -> dict:
        return self.milestones.backfill_chains()

    def delete_chain(self, delivery_id: int) -> dict:
        return self.milestones.delete_chain(delivery_id)

    def update_milestone(self, milestone_id: int, **changes) -> DeliveryMilestone:
        return self.milestones.update_milestone(milestone_id, **changes)

    def resync_milestone_tasks(self) -> int:
        return self.milestones.resync_milestone_tasks()

    # ==================== Tasks ====================

    def list_tasks(self, status: str | None = None, source: str | None = None) -> list[CanonicalTask]:
        return self.store.list_tasks(status=status, source=source, now=self.clock().isoformat(timespec="seconds"))

    def update_task(
        self,
        task_id: str,
        status=UNSET,
        is_pinned=UNSET,
        snoozed_until=UNSET,
    ) -> CanonicalTask:
        """
        Local edits. A status change on a milestone task is carried over to
        the milestone itself.
        """
        task = self.store.get_task(task_id)
        if task is None:
            raise TaskNotFound(f"task {task_id} not found")

        fields = {}
        if status is not UNSET:
            fields["status"] = TaskStatus(status)
        if is_pinned is not UNSET:
            fields["is_pinned"] = 1 if is_pinned else 0
        if snoozed_until is not UNSET:
            fields["snoozed_until"] = snoozed_until
        with self.store.transaction():
            self.store.update_task(task_id, fields, self.clock().isoformat(timespec="seconds"))
            if status is not UNSET and task.source == MILESTONE_SOURCE:
                self.milestones.apply_task_status(task.source_id, status)

        return self.store.get_task(task_id)

    # ==================== Status ====================

    def last_raw_response(self, source: str | None = None) -> RawResponse | None:
        return self.diagnostics.last(source)

    def status(self) -> dict:
        """Per-source view: switches, connectivity and the last sync outcome."""
        states = self.store.get_sync_states()
        sources = {}
        for name, adapter in self.adapters.items():
            connector = adapter.connector
            sources[name] = {
                "enabled": self.settings.is_source_enabled(name),
                "transient": self.settings.is_transient(name),
                "connected": bool(connector is not None and connector.is_connected()),
                "tasks": self.store.count_tasks(name),
                **{k: v for k, v in states.get(name, {}).items() if k != "source"},
            }
        return {
            "sources": sources,
            "tasks": self.store.count_tasks(),
            "diagnostics": len(self.diagnostics),
        }
