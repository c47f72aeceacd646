"""
Tests for source adapters.

Tests cover:
- Structured and text payloads for every adapter
- ok=False on connector errors, timeouts, disconnects and garbage
- Explicit empty markers as trustworthy empty results
- Multi-call adapters (todo, monday) and their ok rule
"""

import json
from datetime import UTC, datetime, timedelta

import pytest

from taskhub import config
from taskhub.adapters import (
    CalendarAdapter,
    ConnectorError,
    EmailAdapter,
    JiraAdapter,
    MondayAdapter,
    PlannerAdapter,
    TodoAdapter,
    build_adapters,
    payload_text,
)
from taskhub.adapters.email import build_odata_filter
from taskhub.adapters.jira import DEFAULT_JQL
from taskhub.models import TaskStatus
from tests.fixtures import FakeConnector, envelope


def _by_id(tasks):
    return {t.source_id: t for t in tasks}


class TestPayloadText:
    def test_envelope_unwrapped(self):
        assert payload_text(envelope("hello")) == "hello"

    def test_empty_envelope(self):
        assert payload_text({"content": []}) is None

    def test_blank_text(self):
        assert payload_text("   ") is None

    def test_plain_structures_pass_through(self):
        assert payload_text({"issues": []}) == {"issues": []}
        assert payload_text([1]) == [1]


class TestBaseFetch:
    def test_no_connector(self, settings):
        result = JiraAdapter(None, settings).fetch()
        assert result.ok is False
        assert result.tasks == []

    def test_disconnected(self, settings):
        connector = FakeConnector({"jira_search": {"issues": []}}, connected=False)
        result = JiraAdapter(connector, settings).fetch()
        assert result.ok is False
        assert connector.calls == []

    @pytest.mark.parametrize("error", [ConnectorError("502"), TimeoutError("slow")])
    def test_connector_failures(self, settings, error):
        result = JiraAdapter(FakeConnector({"jira_search": error}), settings).fetch()
        assert result.ok is False

    def test_unparseable_text(self, settings):
        connector = FakeConnector({"jira_search": envelope("Internal error, please retry later")})
        assert JiraAdapter(connector, settings).fetch().ok is False

    def test_null_payload_is_unknown(self, settings):
        connector = FakeConnector({"jira_search": {"content": []}})
        assert JiraAdapter(connector, settings).fetch().ok is False


class TestJiraAdapter:
    ISSUE = {
        "key": "PROJ-1",
        "summary": "Fix login",
        "status": {"name": "In Progress"},
        "priority": {"name": "High"},
        "assignee": {"displayName": "Dana"},
        "created": "2026-03-01T10:00:00.000+0000",
        "duedate": "2026-03-12",
    }

    def test_structured(self, settings):
        settings.set("jira_url", "https://example.atlassian.net/")
        connector = FakeConnector({"jira_search": envelope(json.dumps({"issues": [self.ISSUE]}))})

        result = JiraAdapter(connector, settings).fetch()

        assert result.ok is True
        task = result.tasks[0]
        assert task.key == "jira:PROJ-1"
        assert task.title == "Fix login"
        assert task.status == TaskStatus.IN_PROGRESS
        assert task.priority == 80
        assert task.due_date == "2026-03-12"
        assert task.category == "project"
        assert task.source_url == "https://example.atlassian.net/browse/PROJ-1"
        assert task.description.splitlines()[:4] == [
            "Assignee: Dana",
            "Status: In Progress",
            "Priority: High",
            "Created: 2026-03-01",
        ]
        assert task.raw_data == self.ISSUE

    def test_issues_without_identity_are_dropped(self, settings):
        issues = [{"summary": "Ghost one"}, {"summary": "Ghost two", "key": ""}, {"id": 10042, "summary": "By id"}]
        connector = FakeConnector({"jira_search": {"issues": issues}})

        result = JiraAdapter(connector, settings).fetch()

        assert [t.key for t in result.tasks] == ["jira:10042"]

    def test_search_params(self, settings):
        connector = FakeConnector({"jira_search": {"issues": []}})
        JiraAdapter(connector, settings).fetch()
        operation, params = connector.calls[0]
        assert operation == "jira_search"
        assert params["jql"] == DEFAULT_JQL
        assert params["limit"] == config.JIRA_SEARCH_LIMIT

    def test_markdown_fallback(self, settings):
        text = (
            "Found 2 issues:\n"
            "[PROJ-2](https://jira.example.com/browse/PROJ-2) - Update docs\n"
            "[PROJ-3](https://jira.example.com/browse/PROJ-3): Rotate keys\n"
        )
        result = JiraAdapter(FakeConnector({"jira_search": envelope(text)}), settings).fetch()

        assert result.ok is True
        tasks = _by_id(result.tasks)
        assert tasks["PROJ-2"].title == "Update docs"
        assert tasks["PROJ-2"].source_url == "https://jira.example.com/browse/PROJ-2"
        assert tasks["PROJ-3"].title == "Rotate keys"

    def test_empty_marker(self, settings):
        result = JiraAdapter(FakeConnector({"jira_search": envelope("No issues found.")}), settings).fetch()
        assert result.ok is True
        assert result.tasks == []

    def test_records_diagnostics(self, settings, diagnostics):
        connector = FakeConnector({"jira_search": envelope('{"issues": [], "access_token": "abc"}')})
        JiraAdapter(connector, settings, diagnostics).fetch()

        entry = diagnostics.last("jira")
        assert entry.operation == "jira_search"
        assert "abc" not in entry.text


class TestPlannerAdapter:
    def test_skips_complete_and_maps_ratio(self, settings):
        payload = {
            "value": [
                {"id": "p1", "title": "Draft plan", "percentComplete": 50, "priority": 1},
                {"id": "p2", "title": "Old", "percentComplete": 100, "priority": 5},
                {"id": "p3", "title": "New", "percentComplete": 0, "priority": 9},
            ]
        }
        result = PlannerAdapter(FakeConnector({"list-planner-tasks": payload}), settings).fetch()

        tasks = _by_id(result.tasks)
        assert set(tasks) == {"p1", "p3"}
        assert tasks["p1"].status == TaskStatus.IN_PROGRESS
        assert tasks["p1"].priority == 90
        assert tasks["p3"].status == TaskStatus.OPEN
        assert tasks["p3"].priority == 20

    def test_bullet_fallback(self, settings):
        connector = FakeConnector({"list-planner-tasks": envelope("- Draft plan (id: p1)")})
        result = PlannerAdapter(connector, settings).fetch()
        assert result.ok is True
        assert result.tasks[0].source_id == "p1"
        assert result.tasks[0].title == "Draft plan"


class TestTodoAdapter:
    LISTS = {"value": [{"id": "L1", "displayName": "Work"}, {"id": "L2", "displayName": "Home"}]}
    L1_TASKS = {
        "value": [
            {
                "id": "t1",
                "title": "Pay invoice",
                "importance": "high",
                "status": "notStarted",
                "body": {"content": "Before Friday"},
                "dueDateTime": {"dateTime": "2026-03-11T00:00:00"},
            },
            {"id": "t2", "title": "Done already", "status": "completed"},
        ]
    }

    def _connector(self, l2):
        return FakeConnector(
            {
                "list-todo-task-lists": self.LISTS,
                "list-todo-tasks": lambda params: self.L1_TASKS if params["taskListId"] == "L1" else l2,
            }
        )

    def test_all_lists_read(self, settings):
        result = TodoAdapter(self._connector({"value": [{"id": "t3", "title": "Milk", "status": "inProgress"}]}), settings).fetch()

        assert result.ok is True
        tasks = _by_id(result.tasks)
        assert set(tasks) == {"t1", "t3"}
        assert tasks["t1"].priority == 80
        assert tasks["t1"].description == "Before Friday"
        assert tasks["t1"].due_date == "2026-03-11T00:00:00"
        assert tasks["t1"].category == "personal"
        assert tasks["t3"].status == TaskStatus.IN_PROGRESS
        assert tasks["t3"].priority == 50

    def test_one_list_failing_makes_result_unknown(self, settings):
        result = TodoAdapter(self._connector(ConnectorError("list gone")), settings).fetch()

        assert result.ok is False
        assert [t.source_id for t in result.tasks] == ["t1"]

    def test_no_lists_is_unknown(self, settings):
        result = TodoAdapter(FakeConnector({"list-todo-task-lists": {"value": []}}), settings).fetch()
        assert result.ok is False


class TestCalendarAdapter:
    def test_window_and_mapping(self, settings, clock):
        payload = {
            "value": [
                {
                    "id": "e1",
                    "subject": "Standup",
                    "start": {"dateTime": "2026-03-11T09:00:00"},
                    "webLink": "https://outlook.example.com/e1",
                    "bodyPreview": "Daily",
                }
            ]
        }
        connector = FakeConnector({"get-calendar-view": payload})
        result = CalendarAdapter(connector, settings, clock=clock).fetch()

        _, params = connector.calls[0]
        start = datetime.fromisoformat(params["startDateTime"])
        end = datetime.fromisoformat(params["endDateTime"])
        assert end - start == timedelta(days=7)

        task = result.tasks[0]
        assert task.priority == 40
        assert task.status == TaskStatus.OPEN
        assert task.due_date == "2026-03-11T09:00:00"
        assert task.category == "admin"

    def test_empty_week_is_ok(self, settings, clock):
        result = CalendarAdapter(FakeConnector({"get-calendar-view": {"value": []}}), settings, clock=clock).fetch()
        assert result.ok is True
        assert result.tasks == []


class TestEmailAdapter:
    NOW = datetime(2026, 3, 10, 9, 0, tzinfo=UTC)

    def test_odata_filters(self):
        assert build_odata_filter("flagged", 7, self.NOW) == (
            "flag/flagStatus eq 'flagged' and receivedDateTime ge 2026-03-03T09:00:00Z"
        )
        assert build_odata_filter("unread_and_flagged", 0, self.NOW) == (
            "(isRead eq false or flag/flagStatus eq 'flagged')"
        )
        assert build_odata_filter("all", 0, self.NOW) == ""

    def test_settings_drive_params(self, settings, clock):
        settings.set("email_filter", "unread")
        settings.set("email_limit", "10")
        connector = FakeConnector({"list-mail-messages": {"value": []}})

        EmailAdapter(connector, settings, clock=clock).fetch()

        _, params = connector.calls[0]
        assert params["top"] == 10
        assert params["filter"].startswith("isRead eq false and receivedDateTime ge ")

    def test_message_mapping(self, settings, clock):
        payload = {
            "value": [
                {"id": "m1", "subject": None, "importance": "high", "from": {"emailAddress": {"name": "Sam"}}},
                {"id": "m2", "subject": "FYI", "importance": "normal", "flag": {"dueDateTime": {"dateTime": "2026-03-12T00:00:00"}}},
            ]
        }
        result = EmailAdapter(FakeConnector({"list-mail-messages": payload}), settings, clock=clock).fetch()

        tasks = _by_id(result.tasks)
        assert tasks["m1"].title == "No Subject"
        assert tasks["m1"].priority == 75
        assert tasks["m1"].description == "From: Sam"
        assert tasks["m2"].priority == 45
        assert tasks["m2"].due_date == "2026-03-12T00:00:00"


class TestMondayAdapter:
    GROUPS = {"groups": [{"id": "g1", "title": "Active"}, {"id": "g2", "title": "Done"}]}
    ITEMS = {
        "items": [
            {
                "id": "9",
                "name": "Launch site",
                "column_values": [
                    {"id": "status", "title": "Status", "text": "Working on it"},
                    {"id": "priority", "title": "Priority", "text": "Critical"},
                    {"id": "date4", "title": "Due date", "text": "2026-03-15"},
                ],
            },
            {"id": "10", "name": "Plain item", "column_values": []},
        ]
    }

    def test_configured_boards(self, settings):
        settings.set("monday_board_ids", "101")
        connector = FakeConnector(
            {"monday-get-board-groups": self.GROUPS, "monday-list-items-in-groups": self.ITEMS}
        )

        result = MondayAdapter(connector, settings).fetch()

        assert result.ok is True
        assert "monday-list-boards" not in connector.operations()
        _, params = connector.calls[-1]
        assert params == {"boardId": "101", "groupIds": ["g1"]}

        tasks = _by_id(result.tasks)
        assert tasks["9"].status == TaskStatus.IN_PROGRESS
        assert tasks["9"].priority == 95
        assert tasks["9"].due_date == "2026-03-15T00:00:00"
        assert tasks["9"].source_url == "https://monday.com/boards/101/pulses/9"
        assert tasks["10"].priority == 55
        assert tasks["10"].status == TaskStatus.OPEN

    def test_boards_from_connector(self, settings, monkeypatch):
        monkeypatch.setattr(config, "MONDAY_BOARD_IDS", "")
        connector = FakeConnector(
            {
                "monday-list-boards": {"boards": [{"id": 5, "name": "Ops"}]},
                "monday-get-board-groups": self.GROUPS,
                "monday-list-items-in-groups": self.ITEMS,
            }
        )
        result = MondayAdapter(connector, settings).fetch()

        assert result.ok is True
        assert result.tasks[0].description == "Board: Ops"

    def test_failing_board_makes_result_unknown(self, settings):
        settings.set("monday_board_ids", "101,202")
        connector = FakeConnector(
            {
                "monday-get-board-groups": lambda p: self.GROUPS if p["boardId"] == "101" else ConnectorError("404"),
                "monday-list-items-in-groups": self.ITEMS,
            }
        )
        result = MondayAdapter(connector, settings).fetch()

        assert result.ok is False
        assert len(result.tasks) == 2

    def test_only_done_groups_is_unknown(self, settings):
        settings.set("monday_board_ids", "101")
        connector = FakeConnector({"monday-get-board-groups": {"groups": [{"id": "g2", "title": "Completed"}]}})
        result = MondayAdapter(connector, settings).fetch()
        assert result.ok is False
        assert result.tasks == []


def test_build_adapters_wires_by_server_name(settings):
    jira = FakeConnector()
    graph = FakeConnector()
    adapters = build_adapters({"jira": jira, "msgraph": graph}, settings)

    assert list(adapters) == ["jira", "planner", "todo", "calendar", "email", "monday"]
    assert adapters["jira"].connector is jira
    assert all(adapters[name].connector is graph for name in ("planner", "todo", "calendar", "email"))
    assert adapters["monday"].connector is None
