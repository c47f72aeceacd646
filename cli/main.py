#!/usr/bin/env python3
"""
TaskHub CLI - direct control of sync, tasks and the milestone workflow.

Connectors are registered by the deployment. Run bare, sources without a
connector report "fetch failed" on sync.
"""

import argparse
import json
import sys

from taskhub.db import ensure_schema, get_db_info
from taskhub.live import LIVE_FILTERS, SourceUnavailable
from taskhub.models import TaskStatus
from taskhub.observability import configure_logging
from taskhub.service import TaskHub


def print_header(text: str):
    """Print a section header."""
    print(f"\n{'═' * 50}")
    print(f"  {text}")
    print(f"{'═' * 50}")


def print_table(headers: list, rows: list, widths: list = None):
    """Print a simple table."""
    if not widths:
        widths = [max(len(str(row[i])) for row in [headers] + rows) for i in range(len(headers))]

    header_str = " │ ".join(str(h).ljust(w) for h, w in zip(headers, widths))
    print(header_str)
    print("─" * len(header_str))

    for row in rows:
        print(" │ ".join(str(c)[:w].ljust(w) for c, w in zip(row, widths)))


def task_rows(tasks) -> list:
    return [
        [
            "📌" if t.is_pinned else "",
            t.priority,
            t.source,
            t.status,
            t.due_date[:10] if t.due_date else "-",
            t.title,
        ]
        for t in tasks
    ]


def cmd_init(args):
    """Create or converge the database."""
    results = ensure_schema()
    info = get_db_info()
    print(f"Database: {info['resolved_db_path']}")
    print(f"Schema version: {info['user_version']}")
    if results.get("tables_created"):
        print(f"Tables created: {', '.join(results['tables_created'])}")
    if results.get("columns_added"):
        print(f"Columns added: {', '.join(results['columns_added'])}")


def cmd_sync(args):
    """Sync one source, or all of them."""
    hub = TaskHub()
    results = [hub.sync_source(args.source)] if args.source else hub.sync_all()

    if args.json:
        print(json.dumps(results, indent=2))
        return

    print_header("SYNC")
    for r in results:
        if "error" in r:
            print(f"  ✗ {r['source']}: {r['error']}")
        else:
            note = " (purge skipped)" if r.get("purge_skipped") else ""
            print(f"  ✓ {r['source']}: {r['count']} items, {r['removed']} removed{note}")


def cmd_status(args):
    """Per-source status."""
    hub = TaskHub()
    status = hub.status()

    if args.json:
        print(json.dumps(status, indent=2, default=str))
        return

    print_header("STATUS")
    rows = []
    for name, s in status["sources"].items():
        rows.append(
            [
                name,
                "on" if s["enabled"] else "off",
                "yes" if s["connected"] else "no",
                s["tasks"],
                (s.get("last_success") or "-")[:19],
                (s.get("error") or "")[:40],
            ]
        )
    print_table(["Source", "Sync", "Connected", "Tasks", "Last success", "Error"], rows)
    print(f"\nTotal tasks: {status['tasks']}")


def cmd_tasks(args):
    """List visible tasks."""
    hub = TaskHub()
    tasks = hub.list_tasks(status=args.status, source=args.source)
    if not tasks:
        print("No tasks")
        return

    print_header(f"TASKS ({len(tasks)})")
    print_table(["", "Pri", "Source", "Status", "Due", "Title"], task_rows(tasks[: args.limit]))


def cmd_live(args):
    """Run a live tracker query."""
    hub = TaskHub()
    try:
        tasks = hub.fetch_live(args.filter, args.user)
    except SourceUnavailable as e:
        print(f"✗ {e}")
        sys.exit(1)

    print_header(f"LIVE: {args.filter} ({len(tasks)})")
    if tasks:
        print_table(["", "Pri", "Source", "Status", "Due", "Title"], task_rows(tasks))


def cmd_evaluate(args):
    """Run one milestone workflow pass."""
    hub = TaskHub()
    result = hub.evaluate_workflow()
    synced = hub.resync_milestone_tasks() if args.resync else None

    print(f"Tasks created: {result['tasks_created']}")
    print(f"Tickets created: {result['tickets_created']}")
    if synced is not None:
        print(f"Milestone tasks re-synced: {synced}")


def cmd_backfill(args):
    """Create milestone chains for deliveries without one."""
    hub = TaskHub()
    result = hub.backfill()
    print(f"Created: {result['created']}, skipped: {result['skipped']}, total: {result['total']}")
    for r in result["results"]:
        print(f"  • {r['account']} (#{r['id']}): {r['milestones']} milestones")


def main():
    parser = argparse.ArgumentParser(description="TaskHub - unified task list and delivery milestones")
    parser.add_argument("--verbose", "-v", action="store_true", help="Verbose output")

    subparsers = parser.add_subparsers(dest="command", help="Commands")

    subparsers.add_parser("init", help="Initialize database")

    p = subparsers.add_parser("sync", help="Sync sources into the task list")
    p.add_argument("source", nargs="?", help="One source (default: all)")
    p.add_argument("--json", action="store_true", help="Output JSON")

    p = subparsers.add_parser("status", help="Show per-source status")
    p.add_argument("--json", action="store_true", help="Output JSON")

    p = subparsers.add_parser("tasks", help="List tasks")
    p.add_argument("--status", "-s", choices=[s.value for s in TaskStatus])
    p.add_argument("--source")
    p.add_argument("--limit", "-l", type=int, default=50)

    p = subparsers.add_parser("live", help="Live issue tracker query")
    p.add_argument("filter", choices=LIVE_FILTERS)
    p.add_argument("--user", "-u", help="Assignee for the 'mine' filter")

    p = subparsers.add_parser("evaluate", help="Run the milestone workflow")
    p.add_argument("--resync", action="store_true", help="Also refresh milestone task priorities")

    subparsers.add_parser("backfill", help="Create missing milestone chains")

    args = parser.parse_args()
    configure_logging("DEBUG" if args.verbose else "WARNING")

    if not args.command:
        parser.print_help()
        return

    commands = {
        "init": cmd_init,
        "sync": cmd_sync,
        "status": cmd_status,
        "tasks": cmd_tasks,
        "live": cmd_live,
        "evaluate": cmd_evaluate,
        "backfill": cmd_backfill,
    }
    commands[args.command](args)


if __name__ == "__main__":
    main()
