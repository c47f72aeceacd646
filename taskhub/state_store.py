"""
State Store - the single source of truth for TaskHub.

Tasks, settings, sync state and the delivery milestone chain all live in one
SQLite database. Every component reads and writes through here.
"""

import json
import logging
import sqlite3
import threading
from collections.abc import Iterable, Iterator
from contextlib import contextmanager
from datetime import date, datetime
from pathlib import Path
from typing import Any

from taskhub import config
from taskhub import db as db_module
from taskhub import safe_sql
from taskhub.models import (
    CanonicalTask,
    Delivery,
    DeliveryMilestone,
    MilestoneStatus,
    MilestoneTemplate,
    TaskStatus,
    format_date,
)

logger = logging.getLogger(__name__)

# Columns a sync is allowed to overwrite. Everything else on a task row is local.
TASK_SOURCE_COLUMNS = [
    "source_url",
    "title",
    "description",
    "status",
    "priority",
    "due_date",
    "sla_breach_at",
    "category",
    "raw_data",
    "transient",
    "last_synced",
    "updated_at",
]

TASK_LOCAL_COLUMNS = {"status", "is_pinned", "snoozed_until"}

MILESTONE_COLUMNS = {
    "status",
    "target_date",
    "actual_date",
    "notes",
    "checklist_state",
}

HIDDEN_STATUSES = (TaskStatus.DONE, TaskStatus.DISMISSED)

_DELETE_CHUNK = 500


def _now() -> str:
    return datetime.now().isoformat(timespec="seconds")


def _encode(value: Any) -> Any:
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, list | dict):
        return json.dumps(value)
    if isinstance(value, bool):
        return 1 if value else 0
    return value


class StateStore:
    """
    SQLite-backed store.

    Every public method runs in its own transaction unless called inside
    ``transaction()``, in which case all calls on the same thread share one
    connection and commit (or roll back) together.
    """

    def __init__(self, db_path: str | Path | None = None, converge: bool = True):
        self.db_path = str(db_path or db_module.get_db_path())
        self._local = threading.local()

        if converge:
            db_module.ensure_schema(self.db_path)

        logger.info("StateStore ready, DB path: %s", self.db_path)

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        """Group store calls into one atomic unit. Re-entrant."""
        conn = getattr(self._local, "conn", None)
        if conn is not None:
            yield conn
            return

        conn = db_module.connect(self.db_path)
        self._local.conn = conn
        try:
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            self._local.conn = None
            conn.close()

    def query(self, sql: str, params: list | tuple | None = None) -> list[dict]:
        """Execute raw query. Returns list of dicts."""
        with self.transaction() as conn:
            rows = conn.execute(sql, params or []).fetchall()
            return [dict(row) for row in rows]

    def _one(self, sql: str, params: list | tuple | None = None) -> dict | None:
        with self.transaction() as conn:
            row = conn.execute(sql, params or []).fetchone()
            return dict(row) if row else None

    def _update(self, table: str, row_id: Any, data: dict) -> bool:
        db_module.validate_identifier(table)
        for col in data:
            db_module.validate_identifier(col)
        values = [_encode(v) for v in data.values()]
        values.append(row_id)
        with self.transaction() as conn:
            result = conn.execute(safe_sql.update(table, list(data.keys())), values)
            return result.rowcount > 0

    # ==================== Tasks ====================

    def upsert_task(self, task: CanonicalTask, now: str | None = None) -> None:
        """
        Insert or refresh a task by its (source, source_id) key.

        On conflict only source-owned columns change; is_pinned,
        snoozed_until and created_at keep their stored values.
        """
        now = now or _now()
        row = task.to_row()
        row["last_synced"] = now
        row["updated_at"] = now
        row["created_at"] = now
        columns = list(row.keys())
        sql = safe_sql.upsert("tasks", columns, "id", TASK_SOURCE_COLUMNS)
        with self.transaction() as conn:
            conn.execute(sql, [row[c] for c in columns])

    def get_task(self, task_id: str) -> CanonicalTask | None:
        row = self._one(safe_sql.select("tasks", where="id = ?"), [task_id])
        return CanonicalTask.from_row(row) if row else None

    def task_ids_by_source(self, source: str) -> set[str]:
        rows = self.query(safe_sql.select("tasks", "id", where="source = ?"), [source])
        return {r["id"] for r in rows}

    def delete_stale_by_source(self, source: str, fresh_ids: Iterable[str]) -> int:
        """
        Delete every stored task of *source* whose key is not in *fresh_ids*.

        The caller decides whether an empty fresh set may be trusted.
        Returns the number of rows removed.
        """
        fresh = set(fresh_ids)
        with self.transaction() as conn:
            stored = {
                r["id"]
                for r in conn.execute(safe_sql.select("tasks", "id", where="source = ?"), [source])
            }
            stale = sorted(stored - fresh)
            for start in range(0, len(stale), _DELETE_CHUNK):
                chunk = stale[start : start + _DELETE_CHUNK]
                conn.execute(
                    safe_sql.delete(
                        "tasks", where=f"source = ? AND id IN ({safe_sql.placeholders(len(chunk))})"
                    ),
                    [source, *chunk],
                )
        if stale:
            logger.debug("Purged %d stale %s tasks", len(stale), source)
        return len(stale)

    def delete_tasks_by_prefix(self, source: str, source_id_prefix: str) -> int:
        sql = safe_sql.delete("tasks", where="source = ? AND substr(source_id, 1, ?) = ?")
        with self.transaction() as conn:
            result = conn.execute(sql, [source, len(source_id_prefix), source_id_prefix])
            return result.rowcount

    def update_task(self, task_id: str, fields: dict, now: str | None = None) -> bool:
        """Apply local edits (status, is_pinned, snoozed_until)."""
        unknown = set(fields) - TASK_LOCAL_COLUMNS
        if unknown:
            raise ValueError(f"Cannot update task fields: {sorted(unknown)}")
        if not fields:
            return False
        data = dict(fields)
        if "status" in data:
            data["status"] = str(data["status"])
        data["updated_at"] = now or _now()
        return self._update("tasks", task_id, data)

    def list_tasks(
        self,
        status: str | None = None,
        source: str | None = None,
        now: str | None = None,
    ) -> list[CanonicalTask]:
        """
        Visible tasks: not snoozed, and not done or dismissed unless a
        status is asked for explicitly. Pinned first, then priority, then
        earliest due date.
        """
        now = now or _now()
        clauses = ["(snoozed_until IS NULL OR snoozed_until <= ?)"]
        params: list[Any] = [now]
        if status:
            clauses.append("status = ?")
            params.append(str(status))
        else:
            clauses.append(f"status NOT IN ({safe_sql.placeholders(len(HIDDEN_STATUSES))})")
            params.extend(str(s) for s in HIDDEN_STATUSES)
        if source:
            clauses.append("source = ?")
            params.append(source)

        sql = safe_sql.select(
            "tasks",
            where=" AND ".join(clauses),
            order_by="is_pinned DESC, priority DESC, due_date IS NULL, due_date ASC",
        )
        return [CanonicalTask.from_row(r) for r in self.query(sql, params)]

    def count_tasks(self, source: str | None = None) -> int:
        if source:
            row = self._one(safe_sql.select_count("tasks", where="source = ?"), [source])
        else:
            row = self._one(safe_sql.select_count("tasks"))
        return row["c"] if row else 0

    # ==================== Settings ====================

    def get_setting(self, key: str, default: str | None = None) -> str | None:
        row = self._one(safe_sql.select("settings", "value", where="key = ?"), [key])
        if row is None or row["value"] is None:
            return default
        return row["value"]

    def set_setting(self, key: str, value: Any) -> None:
        sql = safe_sql.upsert("settings", ["key", "value", "updated_at"], "key", ["value", "updated_at"])
        with self.transaction() as conn:
            conn.execute(sql, [key, None if value is None else str(value), _now()])

    def get_all_settings(self) -> dict[str, str | None]:
        return {r["key"]: r["value"] for r in self.query(safe_sql.select("settings"))}

    # ==================== Sync state ====================

    def update_sync_state(
        self,
        source: str,
        success: bool,
        items: int = 0,
        removed: int = 0,
        error: str | None = None,
        now: str | None = None,
    ) -> None:
        """Record the outcome of a sync pass. last_success only moves on success."""
        now = now or _now()
        with self.transaction() as conn:
            previous = conn.execute(
                safe_sql.select("sync_state", "last_success", where="source = ?"), [source]
            ).fetchone()
            last_success = now if success else (previous["last_success"] if previous else None)
            conn.execute(
                safe_sql.insert_or_replace(
                    "sync_state",
                    ["source", "last_sync", "last_success", "items_synced", "items_removed", "error"],
                ),
                [source, now, last_success, items, removed, error],
            )

    def get_sync_states(self) -> dict[str, dict]:
        rows = self.query(safe_sql.select("sync_state", order_by="source"))
        return {row["source"]: row for row in rows}

    # ==================== Deliveries ====================

    def create_delivery(
        self,
        account: str,
        product: str | None = None,
        unit_type_id: int | None = None,
        sale_type: str | None = None,
        onboarding_id: str | None = None,
        order_date: date | str | None = None,
        onboarder: str | None = None,
        status: str | None = None,
    ) -> int:
        data = {
            "account": account,
            "product": product,
            "unit_type_id": unit_type_id,
            "sale_type": sale_type,
            "onboarding_id": onboarding_id,
            "order_date": _encode(order_date),
            "onboarder": onboarder,
            "status": status,
        }
        with self.transaction() as conn:
            cursor = conn.execute(safe_sql.insert("deliveries", list(data)), list(data.values()))
            return cursor.lastrowid

    def get_delivery(self, delivery_id: int) -> Delivery | None:
        row = self._one(safe_sql.select("deliveries", where="id = ?"), [delivery_id])
        return Delivery.from_row(row) if row else None

    def list_deliveries(self) -> list[Delivery]:
        return [Delivery.from_row(r) for r in self.query(safe_sql.select("deliveries", order_by="id"))]

    def delete_delivery(self, delivery_id: int) -> bool:
        with self.transaction() as conn:
            return conn.execute(safe_sql.delete("deliveries"), [delivery_id]).rowcount > 0

    # ==================== Templates ====================

    def create_template(
        self,
        name: str,
        default_day_offset: int = 0,
        sort_order: int = 0,
        checklist: list[str] | None = None,
        lead_days: int | None = None,
        active: bool = True,
        ticket_group_ids: list[int] | None = None,
    ) -> int:
        data = {
            "name": name,
            "default_day_offset": default_day_offset,
            "sort_order": sort_order,
            "checklist_json": json.dumps(checklist or []),
            "lead_days": config.DEFAULT_LEAD_DAYS if lead_days is None else lead_days,
            "active": 1 if active else 0,
        }
        with self.transaction() as conn:
            cursor = conn.execute(safe_sql.insert("milestone_templates", list(data)), list(data.values()))
            template_id = cursor.lastrowid
            if ticket_group_ids:
                self.set_template_ticket_groups(template_id, ticket_group_ids)
        return template_id

    def update_template(self, template_id: int, fields: dict) -> bool:
        data = dict(fields)
        if "checklist" in data:
            data["checklist_json"] = data.pop("checklist")
        data["updated_at"] = _now()
        return self._update("milestone_templates", template_id, data)

    def get_template(self, template_id: int) -> MilestoneTemplate | None:
        row = self._one(safe_sql.select("milestone_templates", where="id = ?"), [template_id])
        if row is None:
            return None
        return MilestoneTemplate.from_row(row, self.get_template_ticket_groups(template_id))

    def list_templates(self, active_only: bool = True) -> list[MilestoneTemplate]:
        sql = safe_sql.select(
            "milestone_templates",
            where="active = 1" if active_only else None,
            order_by="sort_order, id",
        )
        return [
            MilestoneTemplate.from_row(r, self.get_template_ticket_groups(r["id"]))
            for r in self.query(sql)
        ]

    def set_template_ticket_groups(self, template_id: int, group_ids: list[int]) -> None:
        with self.transaction() as conn:
            conn.execute(safe_sql.delete("template_ticket_groups", where="template_id = ?"), [template_id])
            sql = safe_sql.insert("template_ticket_groups", ["template_id", "ticket_group_id"])
            for group_id in dict.fromkeys(group_ids):
                conn.execute(sql, [template_id, group_id])

    def get_template_ticket_groups(self, template_id: int) -> list[int]:
        rows = self.query(
            safe_sql.select(
                "template_ticket_groups",
                "ticket_group_id",
                where="template_id = ?",
                order_by="ticket_group_id",
            ),
            [template_id],
        )
        return [r["ticket_group_id"] for r in rows]

    def set_unit_type_offset(self, unit_type_id: int, template_id: int, day_offset: int) -> None:
        sql = safe_sql.insert_or_replace("unit_type_offsets", ["unit_type_id", "template_id", "day_offset"])
        with self.transaction() as conn:
            conn.execute(sql, [unit_type_id, template_id, day_offset])

    def get_unit_type_offsets(self, unit_type_id: int) -> dict[int, int]:
        rows = self.query(
            safe_sql.select("unit_type_offsets", where="unit_type_id = ?"), [unit_type_id]
        )
        return {r["template_id"]: r["day_offset"] for r in rows}

    # ==================== Milestones ====================

    def insert_milestones(self, delivery_id: int, milestones: list[dict]) -> list[int]:
        """Insert a chain's milestones. Each dict carries template_id,
        template_name, target_date and checklist_state."""
        columns = [
            "delivery_id",
            "template_id",
            "template_name",
            "target_date",
            "status",
            "checklist_state_json",
        ]
        sql = safe_sql.insert("delivery_milestones", columns)
        ids = []
        with self.transaction() as conn:
            for m in milestones:
                cursor = conn.execute(
                    sql,
                    [
                        delivery_id,
                        m["template_id"],
                        m["template_name"],
                        _encode(m.get("target_date")),
                        str(MilestoneStatus.PENDING),
                        json.dumps(m.get("checklist_state") or []),
                    ],
                )
                ids.append(cursor.lastrowid)
        return ids

    def get_milestone(self, milestone_id: int) -> DeliveryMilestone | None:
        row = self._one(safe_sql.select("delivery_milestones", where="id = ?"), [milestone_id])
        return DeliveryMilestone.from_row(row) if row else None

    def get_milestone_for_template(self, delivery_id: int, template_id: int) -> DeliveryMilestone | None:
        row = self._one(
            safe_sql.select("delivery_milestones", where="delivery_id = ? AND template_id = ?"),
            [delivery_id, template_id],
        )
        return DeliveryMilestone.from_row(row) if row else None

    def get_milestones_for_delivery(self, delivery_id: int) -> list[DeliveryMilestone]:
        """Milestones of one delivery in template order."""
        rows = self.query(
            """
            SELECT m.* FROM delivery_milestones m
            LEFT JOIN milestone_templates t ON t.id = m.template_id
            WHERE m.delivery_id = ?
            ORDER BY COALESCE(t.sort_order, 2147483647), m.id
            """,
            [delivery_id],
        )
        return [DeliveryMilestone.from_row(r) for r in rows]

    def has_chain(self, delivery_id: int) -> bool:
        row = self._one(
            safe_sql.select_count("delivery_milestones", where="delivery_id = ?"), [delivery_id]
        )
        return bool(row and row["c"])

    def get_next_milestone(self, milestone: DeliveryMilestone) -> DeliveryMilestone | None:
        """First non-complete milestone after *milestone* in its delivery's template order."""
        chain = self.get_milestones_for_delivery(milestone.delivery_id)
        ids = [m.id for m in chain]
        if milestone.id not in ids:
            return None
        for candidate in chain[ids.index(milestone.id) + 1 :]:
            if not candidate.is_complete:
                return candidate
        return None

    def list_non_complete_milestones(self) -> list[DeliveryMilestone]:
        rows = self.query(
            safe_sql.select("delivery_milestones", where="status != ?", order_by="delivery_id, id"),
            [str(MilestoneStatus.COMPLETE)],
        )
        return [DeliveryMilestone.from_row(r) for r in rows]

    def list_ready_milestones(self, today: date) -> list[DeliveryMilestone]:
        """
        Milestones the workflow engine still has work for.

        Not complete, target date set, inside the template's lead window,
        template active, and at least one latch left to set. The ticket
        latch only counts when the template has linked groups and the
        delivery carries both a sale type and an onboarding reference.
        """
        rows = self.query(
            """
            SELECT m.* FROM delivery_milestones m
            JOIN milestone_templates t ON t.id = m.template_id
            JOIN deliveries d ON d.id = m.delivery_id
            WHERE m.status != ?
              AND m.target_date IS NOT NULL
              AND t.active = 1
              AND julianday(m.target_date) - t.lead_days <= julianday(?)
              AND (
                m.workflow_task_created = 0
                OR (
                  m.workflow_tickets_created = 0
                  AND EXISTS (
                    SELECT 1 FROM template_ticket_groups g WHERE g.template_id = m.template_id
                  )
                  AND COALESCE(d.sale_type, '') != ''
                  AND COALESCE(d.onboarding_id, '') != ''
                )
              )
            ORDER BY m.target_date, m.id
            """,
            [str(MilestoneStatus.COMPLETE), today.isoformat()],
        )
        return [DeliveryMilestone.from_row(r) for r in rows]

    def update_milestone(self, milestone_id: int, fields: dict, now: str | None = None) -> bool:
        """Write milestone fields. Latches are not writable here."""
        unknown = set(fields) - MILESTONE_COLUMNS
        if unknown:
            raise ValueError(f"Cannot update milestone fields: {sorted(unknown)}")
        data = {}
        for key, value in fields.items():
            if key == "checklist_state":
                data["checklist_state_json"] = [bool(x) for x in value]
            elif key in ("target_date", "actual_date"):
                data[key] = format_date(value) if isinstance(value, date) else value
            elif key == "status":
                data[key] = str(value)
            else:
                data[key] = value
        data["updated_at"] = now or _now()
        return self._update("delivery_milestones", milestone_id, data)

    def mark_workflow_task_created(self, milestone_id: int, now: str | None = None) -> bool:
        """Set the task latch. Returns True only if this call set it."""
        sql = safe_sql.update(
            "delivery_milestones",
            ["workflow_task_created", "updated_at"],
            where="id = ? AND workflow_task_created = 0",
        )
        with self.transaction() as conn:
            return conn.execute(sql, [1, now or _now(), milestone_id]).rowcount > 0

    def mark_workflow_tickets_created(self, milestone_id: int, keys: list[str], now: str | None = None) -> bool:
        """Set the ticket latch and record the keys, only if still unset."""
        sql = safe_sql.update(
            "delivery_milestones",
            ["workflow_tickets_created", "workflow_ticket_keys_json", "updated_at"],
            where="id = ? AND workflow_tickets_created = 0",
        )
        with self.transaction() as conn:
            return conn.execute(sql, [1, json.dumps(list(keys)), now or _now(), milestone_id]).rowcount > 0

    def delete_milestones_for_delivery(self, delivery_id: int) -> int:
        with self.transaction() as conn:
            return conn.execute(
                safe_sql.delete("delivery_milestones", where="delivery_id = ?"), [delivery_id]
            ).rowcount


# Accessor for entry points that want one shared store per DB path
_stores: dict[str, StateStore] = {}
_stores_lock = threading.Lock()


def get_store(db_path: str | Path | None = None) -> StateStore:
    """Get the shared state store for *db_path* (default: configured DB)."""
    key = str(db_path or db_module.get_db_path())
    with _stores_lock:
        if key not in _stores:
            _stores[key] = StateStore(key)
        return _stores[key]
