"""
Planner adapter - plan tasks not yet 100% complete.
"""

from taskhub.models import FetchResult

from .base import SourceAdapter, keyed
from .normalize import (
    BULLET_LINE,
    extract_list,
    parse_payload,
    priority_from_bucket,
    status_from_ratio,
)


class PlannerAdapter(SourceAdapter):
    source_name = "planner"
    server_name = "msgraph"
    category = "project"

    def collect(self) -> FetchResult:
        payload = self.call("list-planner-tasks")
        if payload is None:
            return FetchResult([], ok=False)

        tasks = parse_payload(
            payload,
            self.transform_all,
            BULLET_LINE,
            lambda m: self.task(m.group(2), m.group(1)),
        )
        return FetchResult(tasks, ok=True)

    def transform_all(self, data) -> list:
        items = keyed(extract_list(data, "value", "tasks"), "id")
        return [self.transform(t) for t in items if t.get("percentComplete") != 100]

    def transform(self, item: dict):
        return self.task(
            item.get("id"),
            item.get("title"),
            description=item.get("details") or item.get("description"),
            status=status_from_ratio(item.get("percentComplete")),
            # Planner priority: 0-10, lower is more urgent
            priority=priority_from_bucket(item.get("priority")),
            due_date=item.get("dueDateTime"),
            raw_data=item,
        )
