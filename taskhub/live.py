"""
Live query path - interactive, filtered issue-tracker views.

Read-only: results go straight back to the caller and are never persisted.
"""

import logging

from taskhub.adapters.jira import OPEN_ISSUES_CLAUSE, ORDERING, JiraAdapter
from taskhub.models import CanonicalTask

logger = logging.getLogger(__name__)

LIVE_FILTERS = ("mine", "unassigned", "all")


class SourceUnavailable(Exception):
    """The live source could not be read; the result is unknown, not empty."""


def build_jql(filter_name: str, username: str | None = None) -> str:
    if filter_name not in LIVE_FILTERS:
        raise ValueError(f"filter must be one of {', '.join(LIVE_FILTERS)}, got {filter_name!r}")

    clauses = []
    if filter_name == "mine":
        if username:
            escaped = username.replace("\\", "\\\\").replace('"', '\\"')
            clauses.append(f'assignee = "{escaped}"')
        else:
            clauses.append("assignee = currentUser()")
    elif filter_name == "unassigned":
        clauses.append("assignee is EMPTY")
    clauses.append(OPEN_ISSUES_CLAUSE)
    return f"{' AND '.join(clauses)} {ORDERING}"


class LiveQuery:
    def __init__(self, jira: JiraAdapter):
        self.jira = jira

    def fetch_live(self, filter_name: str = "mine", username: str | None = None) -> list[CanonicalTask]:
        """
        Run a filtered search now.

        Raises ValueError for an unknown filter and SourceUnavailable when
        the tracker could not be read.
        """
        jql = build_jql(filter_name, username)
        result = self.jira.fetch_with(lambda: self.jira.search(jql))
        if not result.ok:
            raise SourceUnavailable(f"jira search failed for filter {filter_name!r}")

        logger.debug("Live %s query returned %d issues", filter_name, len(result.tasks))
        return result.tasks
