"""
To-Do adapter - open tasks across every task list.

One call for the lists, then one per list. The result is only trustworthy
when at least one list was read and none failed.
"""

from taskhub.models import FetchResult, TaskStatus

from .base import ConnectorError, SourceAdapter, keyed
from .normalize import BULLET_LINE, ParseError, extract_list, parse_payload

IMPORTANCE_PRIORITY = {"high": 80, "normal": 50, "low": 30}


def todo_status(status: str | None) -> TaskStatus:
    if status == "completed":
        return TaskStatus.DONE
    if status == "inProgress":
        return TaskStatus.IN_PROGRESS
    return TaskStatus.OPEN


class TodoAdapter(SourceAdapter):
    source_name = "todo"
    server_name = "msgraph"
    category = "personal"

    def collect(self) -> FetchResult:
        payload = self.call("list-todo-task-lists")
        if payload is None:
            return FetchResult([], ok=False)
        lists = parse_payload(
            payload,
            lambda data: extract_list(data, "value", "lists"),
            BULLET_LINE,
            lambda m: {"id": m.group(2), "displayName": m.group(1)},
        )

        tasks = []
        fetched_any = False
        had_error = False
        for task_list in lists:
            list_name = task_list.get("displayName") or task_list.get("id")
            try:
                items_payload = self.call("list-todo-tasks", {"taskListId": str(task_list.get("id"))})
                if items_payload is None:
                    continue
                items = parse_payload(
                    items_payload,
                    lambda data: extract_list(data, "value", "tasks"),
                    BULLET_LINE,
                    lambda m: {"id": m.group(2), "title": m.group(1)},
                )
            except (ConnectorError, TimeoutError, ParseError) as e:
                had_error = True
                self.logger.warning(f"todo: error fetching list {list_name}: {e}")
                continue

            fetched_any = True
            tasks.extend(self.transform(t) for t in keyed(items, "id") if t.get("status") != "completed")

        return FetchResult(tasks, ok=fetched_any and not had_error)

    def transform(self, item: dict):
        body = item.get("body") if isinstance(item.get("body"), dict) else {}
        due = item.get("dueDateTime") if isinstance(item.get("dueDateTime"), dict) else {}
        return self.task(
            item.get("id"),
            item.get("title"),
            description=body.get("content") or None,
            status=todo_status(item.get("status")),
            priority=IMPORTANCE_PRIORITY.get(item.get("importance"), 50),
            due_date=due.get("dateTime"),
            raw_data=item,
        )
