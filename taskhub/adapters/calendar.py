"""
Calendar adapter - events in the coming week.

Calendar views are transient: an empty week is a real answer.
"""

from datetime import UTC, timedelta

from taskhub import config
from taskhub.models import FetchResult, TaskStatus

from .base import SourceAdapter, keyed
from .normalize import BULLET_LINE, extract_list, parse_payload

EVENT_PRIORITY = 40


class CalendarAdapter(SourceAdapter):
    source_name = "calendar"
    server_name = "msgraph"
    category = "admin"

    def collect(self) -> FetchResult:
        now = self.clock().astimezone(UTC)
        end = now + timedelta(days=config.CALENDAR_WINDOW_DAYS)

        payload = self.call(
            "get-calendar-view",
            {"startDateTime": now.isoformat(), "endDateTime": end.isoformat()},
        )
        if payload is None:
            return FetchResult([], ok=False)

        tasks = parse_payload(
            payload,
            lambda data: [self.transform(e) for e in keyed(extract_list(data, "value", "events"), "id")],
            BULLET_LINE,
            lambda m: self.task(m.group(2), m.group(1), status=TaskStatus.OPEN, priority=EVENT_PRIORITY),
        )
        return FetchResult(tasks, ok=True)

    def transform(self, event: dict):
        start = event.get("start") if isinstance(event.get("start"), dict) else {}
        return self.task(
            event.get("id"),
            event.get("subject") or "Untitled Event",
            source_url=event.get("webLink"),
            description=event.get("bodyPreview"),
            status=TaskStatus.OPEN,
            priority=EVENT_PRIORITY,
            due_date=start.get("dateTime"),
            raw_data=event,
        )
