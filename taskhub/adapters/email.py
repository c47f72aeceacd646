"""
Email adapter - flagged and/or unread mail, per the email_filter setting.
"""

from datetime import UTC, datetime, timedelta

from taskhub import config
from taskhub.models import FetchResult, TaskStatus

from .base import SourceAdapter, keyed
from .normalize import BULLET_LINE, extract_list, parse_payload

FLAGGED = "flag/flagStatus eq 'flagged'"
UNREAD = "isRead eq false"

STATUS_FILTERS = {
    "flagged": FLAGGED,
    "unread": UNREAD,
    "unread_and_flagged": f"({UNREAD} or {FLAGGED})",
    "all": None,
}


def build_odata_filter(filter_type: str, days: int, now: datetime) -> str:
    """OData $filter for list-mail-messages. Empty string means no filter."""
    parts = []
    status_filter = STATUS_FILTERS.get(filter_type)
    if status_filter:
        parts.append(status_filter)
    if days > 0:
        since = now - timedelta(days=days)
        parts.append(f"receivedDateTime ge {since.strftime('%Y-%m-%dT%H:%M:%SZ')}")
    return " and ".join(parts)


class EmailAdapter(SourceAdapter):
    source_name = "email"
    server_name = "msgraph"
    category = "admin"

    def collect(self) -> FetchResult:
        if self.settings is not None:
            filter_type = self.settings.email_filter
            days = self.settings.email_days
            limit = self.settings.email_limit
        else:
            filter_type = config.DEFAULT_EMAIL_FILTER
            days = config.DEFAULT_EMAIL_DAYS
            limit = config.DEFAULT_EMAIL_LIMIT

        now = self.clock().astimezone(UTC)

        params = {"top": limit}
        odata = build_odata_filter(filter_type, days, now)
        if odata:
            params["filter"] = odata

        payload = self.call("list-mail-messages", params)
        if payload is None:
            return FetchResult([], ok=False)

        tasks = parse_payload(
            payload,
            lambda data: [self.transform(m) for m in keyed(extract_list(data, "value", "messages"), "id")],
            BULLET_LINE,
            lambda m: self.task(m.group(2), m.group(1), status=TaskStatus.OPEN, priority=45),
        )
        return FetchResult(tasks, ok=True)

    def transform(self, message: dict):
        sender = (message.get("from") or {}).get("emailAddress") or {}
        flag = message.get("flag") or {}
        flag_due = flag.get("dueDateTime") or {}
        return self.task(
            message.get("id"),
            message.get("subject") or "No Subject",
            source_url=message.get("webLink"),
            description=f"From: {sender['name']}" if sender.get("name") else None,
            status=TaskStatus.OPEN,
            priority=75 if message.get("importance") == "high" else 45,
            due_date=flag_due.get("dateTime"),
            raw_data=message,
        )
