"""Smoke tests for the command line entry point."""

import json
import sys
from unittest.mock import MagicMock

import pytest

from cli import main as cli_main
from taskhub.state_store import get_store
from tests.fixtures import seed_delivery, seed_templates


@pytest.fixture
def run(monkeypatch, capsys):
    """Invoke the CLI with argv and return stdout."""
    monkeypatch.setattr(cli_main, "configure_logging", MagicMock())

    def _run(*argv):
        monkeypatch.setattr(sys, "argv", ["taskhub", *argv])
        cli_main.main()
        return capsys.readouterr().out

    return _run


def test_init(run):
    out = run("init")
    assert "Schema version:" in out
    assert "Tables created: tasks" in out


def test_sync_without_connectors_reports_failures(run):
    results = json.loads(run("sync", "jira", "--json"))
    assert results == [{"source": "jira", "count": 0, "removed": 0, "error": "fetch failed: source state unknown"}]


def test_status_table(run):
    out = run("status")
    assert "Source" in out
    assert "calendar" in out
    assert "Total tasks: 0" in out


def test_tasks_empty(run):
    assert run("tasks").strip() == "No tasks"


def test_live_unavailable_exits(run):
    with pytest.raises(SystemExit) as exc:
        run("live", "mine")
    assert exc.value.code == 1


def test_backfill_and_evaluate(run):
    store = get_store()
    seed_templates(store)
    seed_delivery(store, "Acme Corp")

    out = run("backfill")
    assert "Created: 1, skipped: 0, total: 1" in out
    assert "Acme Corp" in out

    out = run("evaluate", "--resync")
    assert "Tickets created: 0" in out
    assert "Milestone tasks re-synced: 3" in out


def test_no_command_prints_help(run):
    assert "usage:" in run()
