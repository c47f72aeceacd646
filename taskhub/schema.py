"""
Declarative Schema Definition — the single source of truth.

Every table and index for TaskHub lives here. The schema_engine reads this
and converges any database to match.

Adding a column = add one line here. The engine handles the rest.

Column definitions use CREATE TABLE syntax. The schema_engine knows how
to derive ALTER TABLE ADD COLUMN DDL (strips PK, adjusts NOT NULL, etc.).
"""

from collections import OrderedDict

# =============================================================================
# Schema version: bump when you change this file
# =============================================================================
SCHEMA_VERSION = 3

# =============================================================================
# Table Definitions
#
# Format: TABLES[name] = {"columns": [(col_name, col_ddl), ...], "unique": [...]}
# =============================================================================

TABLES: dict[str, dict] = OrderedDict()

# ---------------------------------------------------------------------------
# Canonical tasks: every source normalizes into this table
# ---------------------------------------------------------------------------
TABLES["tasks"] = {
    "columns": [
        ("id", "TEXT PRIMARY KEY"),  # "{source}:{source_id}"
        ("source", "TEXT NOT NULL"),
        ("source_id", "TEXT NOT NULL"),
        ("source_url", "TEXT"),
        ("title", "TEXT NOT NULL"),
        ("description", "TEXT"),
        ("status", "TEXT NOT NULL DEFAULT 'open'"),
        ("priority", "INTEGER NOT NULL DEFAULT 50"),
        ("due_date", "TEXT"),
        ("sla_breach_at", "TEXT"),
        ("category", "TEXT"),
        ("raw_data", "TEXT"),
        # Local state, never touched by a sync
        ("is_pinned", "INTEGER NOT NULL DEFAULT 0"),
        ("snoozed_until", "TEXT"),
        # Durability class of the source at sync time
        ("transient", "INTEGER NOT NULL DEFAULT 0"),
        ("last_synced", "TEXT"),
        ("created_at", "TEXT NOT NULL DEFAULT (datetime('now'))"),
        ("updated_at", "TEXT NOT NULL DEFAULT (datetime('now'))"),
    ],
    "unique": [("source", "source_id")],
}

# ---------------------------------------------------------------------------
# Settings: administrative key/value switches
# ---------------------------------------------------------------------------
TABLES["settings"] = {
    "columns": [
        ("key", "TEXT PRIMARY KEY"),
        ("value", "TEXT"),
        ("updated_at", "TEXT NOT NULL DEFAULT (datetime('now'))"),
    ],
}

# ---------------------------------------------------------------------------
# Sync state: last outcome per source
# ---------------------------------------------------------------------------
TABLES["sync_state"] = {
    "columns": [
        ("source", "TEXT PRIMARY KEY"),
        ("last_sync", "TEXT"),
        ("last_success", "TEXT"),
        ("items_synced", "INTEGER DEFAULT 0"),
        ("items_removed", "INTEGER DEFAULT 0"),
        ("error", "TEXT"),
    ],
}

# ---------------------------------------------------------------------------
# Deliveries: the unit of work a milestone chain hangs off
# ---------------------------------------------------------------------------
TABLES["deliveries"] = {
    "columns": [
        ("id", "INTEGER PRIMARY KEY AUTOINCREMENT"),
        ("account", "TEXT NOT NULL"),
        ("product", "TEXT"),
        ("unit_type_id", "INTEGER"),
        ("sale_type", "TEXT"),
        ("onboarding_id", "TEXT"),
        ("order_date", "TEXT"),
        ("onboarder", "TEXT"),
        ("status", "TEXT"),
        ("created_at", "TEXT NOT NULL DEFAULT (datetime('now'))"),
        ("updated_at", "TEXT NOT NULL DEFAULT (datetime('now'))"),
    ],
}

# ---------------------------------------------------------------------------
# Milestone templates and their per-unit-type offset matrix
# ---------------------------------------------------------------------------
TABLES["milestone_templates"] = {
    "columns": [
        ("id", "INTEGER PRIMARY KEY AUTOINCREMENT"),
        ("name", "TEXT NOT NULL"),
        ("default_day_offset", "INTEGER NOT NULL DEFAULT 0"),
        ("sort_order", "INTEGER NOT NULL DEFAULT 0"),
        ("checklist_json", "TEXT NOT NULL DEFAULT '[]'"),
        ("lead_days", "INTEGER NOT NULL DEFAULT 3"),
        ("active", "INTEGER NOT NULL DEFAULT 1"),
        ("created_at", "TEXT NOT NULL DEFAULT (datetime('now'))"),
        ("updated_at", "TEXT NOT NULL DEFAULT (datetime('now'))"),
    ],
}

TABLES["template_ticket_groups"] = {
    "columns": [
        ("template_id", "INTEGER NOT NULL REFERENCES milestone_templates(id) ON DELETE CASCADE"),
        ("ticket_group_id", "INTEGER NOT NULL"),
    ],
    "unique": [("template_id", "ticket_group_id")],
}

TABLES["unit_type_offsets"] = {
    "columns": [
        ("unit_type_id", "INTEGER NOT NULL"),
        ("template_id", "INTEGER NOT NULL REFERENCES milestone_templates(id) ON DELETE CASCADE"),
        ("day_offset", "INTEGER NOT NULL"),
    ],
    "unique": [("unit_type_id", "template_id")],
}

# ---------------------------------------------------------------------------
# Delivery milestones: template instances attached to one delivery.
# template_id carries no FK: template_name is denormalized so history
# survives template edits and deletions.
# ---------------------------------------------------------------------------
TABLES["delivery_milestones"] = {
    "columns": [
        ("id", "INTEGER PRIMARY KEY AUTOINCREMENT"),
        ("delivery_id", "INTEGER NOT NULL REFERENCES deliveries(id) ON DELETE CASCADE"),
        ("template_id", "INTEGER NOT NULL"),
        ("template_name", "TEXT NOT NULL"),
        ("target_date", "TEXT"),
        ("actual_date", "TEXT"),
        ("status", "TEXT NOT NULL DEFAULT 'pending'"),
        ("checklist_state_json", "TEXT NOT NULL DEFAULT '[]'"),
        ("notes", "TEXT"),
        # Idempotency latches: never reset by status changes
        ("workflow_task_created", "INTEGER NOT NULL DEFAULT 0"),
        ("workflow_tickets_created", "INTEGER NOT NULL DEFAULT 0"),
        ("workflow_ticket_keys_json", "TEXT NOT NULL DEFAULT '[]'"),
        ("created_at", "TEXT NOT NULL DEFAULT (datetime('now'))"),
        ("updated_at", "TEXT NOT NULL DEFAULT (datetime('now'))"),
    ],
    "unique": [("delivery_id", "template_id")],
}

# =============================================================================
# Indexes: (name, table, columns, partial WHERE or None)
# =============================================================================

INDEXES: list[tuple[str, str, str, str | None]] = [
    # Tasks
    ("idx_tasks_source", "tasks", "source", None),
    ("idx_tasks_status", "tasks", "status", None),
    ("idx_tasks_priority", "tasks", "priority DESC", None),
    ("idx_tasks_due", "tasks", "due_date", None),
    # Milestones
    ("idx_milestones_delivery", "delivery_milestones", "delivery_id", None),
    (
        "idx_milestones_workflow_pending",
        "delivery_milestones",
        "target_date",
        "status != 'complete'",
    ),
    ("idx_templates_sort", "milestone_templates", "sort_order", None),
]
