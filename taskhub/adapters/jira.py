"""
Jira adapter - open issues assigned to the current user.

The connector's jira_search tool returns JSON (a list, or {"issues": [...]})
or a markdown rendering with one "[KEY-1](url) - summary" line per issue.
"""

import re

from taskhub import config
from taskhub.models import FetchResult, TaskStatus, parse_date

from .base import SourceAdapter, keyed
from .normalize import (
    JIRA_LINK_LINE,
    extract_list,
    parse_payload,
    priority_from_keywords,
    status_from_keywords,
)

OPEN_ISSUES_CLAUSE = "status NOT IN (Done, Closed, Resolved)"
ORDERING = "ORDER BY priority DESC, updated DESC"
DEFAULT_JQL = f"assignee = currentUser() AND {OPEN_ISSUES_CLAUSE} {ORDERING}"

SEARCH_FIELDS = (
    "summary,status,priority,description,assignee,created,duedate,"
    'requestType,queue,"Agent Next Update","Last Agent Public Comment"'
)


def _name(value) -> str | None:
    """Jira fields come as plain strings or objects with a name."""
    if value is None:
        return None
    if isinstance(value, str):
        return value
    if isinstance(value, dict):
        return value.get("displayName") or value.get("name")
    return str(value)


class JiraAdapter(SourceAdapter):
    source_name = "jira"
    server_name = "jira"
    category = "project"

    @property
    def base_url(self) -> str:
        return self.settings.jira_url if self.settings is not None else ""

    def collect(self) -> FetchResult:
        return self.search(DEFAULT_JQL)

    def search(self, jql: str, limit: int | None = None) -> FetchResult:
        """Run one JQL search. Also backs the live query path."""
        payload = self.call(
            "jira_search",
            {
                "jql": jql,
                "limit": limit or config.JIRA_SEARCH_LIMIT,
                "fields": SEARCH_FIELDS,
                "expand": "sla",
            },
        )
        if payload is None:
            return FetchResult([], ok=False)

        tasks = parse_payload(
            payload,
            lambda data: [self.transform(issue) for issue in keyed(extract_list(data, "issues"), "key", "id")],
            JIRA_LINK_LINE,
            self._from_line,
        )
        return FetchResult(tasks, ok=True)

    def _from_line(self, match: re.Match):
        return self.task(
            match.group(1),
            match.group(3).strip(),
            source_url=match.group(2),
            status=TaskStatus.OPEN,
            priority=50,
        )

    def transform(self, issue: dict):
        key = issue.get("key") or issue["id"]
        status = _name(issue.get("status"))
        priority = _name(issue.get("priority"))
        assignee = _name(issue.get("assignee")) or "Unassigned"
        created = parse_date(issue.get("created") or issue.get("created_at"))

        if self.base_url:
            url = f"{self.base_url}/browse/{key}"
        else:
            url = issue.get("url") or issue.get("self")

        lines = [
            f"Assignee: {assignee}",
            f"Status: {status or 'unknown'}",
            f"Priority: {priority or 'unknown'}",
            f"Created: {created.isoformat() if created else 'unknown'}",
        ]
        description = issue.get("description")
        if isinstance(description, str) and description.strip():
            lines.append(description)

        return self.task(
            key,
            issue.get("summary") or issue.get("title"),
            source_url=url,
            description="\n".join(lines),
            status=status_from_keywords(status),
            priority=priority_from_keywords(priority),
            due_date=issue.get("duedate") or issue.get("due_date"),
            sla_breach_at=issue.get("sla_breach_at"),
            raw_data=issue,
        )
