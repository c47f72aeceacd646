"""
Normalization tables shared by the source adapters.

External systems use incompatible status and priority vocabularies. Each
mapping here is an explicit lookup or threshold table so it stays stable and
testable; adapters pick the one that matches their source's native scale.
"""

import json
import re
from collections.abc import Callable, Iterable
from datetime import datetime
from typing import Any

from taskhub.models import DEFAULT_PRIORITY, TaskStatus

# =============================================================================
# STATUS
# =============================================================================

DONE_KEYWORDS = ("done", "closed", "resolved")
IN_PROGRESS_KEYWORDS = ("progress", "review")


def status_from_keywords(
    value: str | None,
    done: Iterable[str] = DONE_KEYWORDS,
    in_progress: Iterable[str] = IN_PROGRESS_KEYWORDS,
) -> TaskStatus:
    """Case-insensitive substring match. Anything unrecognized is open."""
    if not value:
        return TaskStatus.OPEN
    lower = str(value).lower()
    if any(kw in lower for kw in done):
        return TaskStatus.DONE
    if any(kw in lower for kw in in_progress):
        return TaskStatus.IN_PROGRESS
    return TaskStatus.OPEN


def status_from_ratio(percent_complete: Any) -> TaskStatus:
    """100 is done, anything above 0 is in progress."""
    if percent_complete is None:
        return TaskStatus.OPEN
    try:
        pct = float(percent_complete)
    except (TypeError, ValueError):
        return TaskStatus.OPEN
    if pct >= 100:
        return TaskStatus.DONE
    if pct > 0:
        return TaskStatus.IN_PROGRESS
    return TaskStatus.OPEN


# =============================================================================
# PRIORITY
# =============================================================================

# Checked in order: "highest" before "high", "lowest" before "low".
KEYWORD_PRIORITY_LADDER: list[tuple[str, int]] = [
    ("highest", 95),
    ("critical", 95),
    ("lowest", 15),
    ("high", 80),
    ("medium", 50),
    ("low", 30),
]

# Upper bound of each bucket -> priority. Values above the last bound get 20.
BUCKET_PRIORITY_LADDER: list[tuple[float, int]] = [
    (1, 90),
    (3, 70),
    (5, 50),
    (7, 30),
]
BUCKET_PRIORITY_FLOOR = 20


def priority_from_keywords(
    value: str | None,
    ladder: list[tuple[str, int]] = KEYWORD_PRIORITY_LADDER,
    default: int = DEFAULT_PRIORITY,
) -> int:
    if not value:
        return default
    lower = str(value).lower()
    for keyword, priority in ladder:
        if keyword in lower:
            return priority
    return default


def priority_from_bucket(value: Any, default: int = DEFAULT_PRIORITY) -> int:
    """Numeric scales where a smaller number means more urgent."""
    if value is None:
        return default
    try:
        bucket = float(value)
    except (TypeError, ValueError):
        return default
    for upper, priority in BUCKET_PRIORITY_LADDER:
        if bucket <= upper:
            return priority
    return BUCKET_PRIORITY_FLOOR


# =============================================================================
# FIELD DISCOVERY
# =============================================================================


class FieldResolver:
    """
    Locate values in a board item's column list by keyword.

    Board schemas are user-configurable, so a column is found by a keyword
    in its id or title rather than by position. The first matching column
    wins.
    """

    def __init__(self, columns: list[dict] | None):
        self.columns = [c for c in (columns or []) if isinstance(c, dict)]

    def find(self, *keywords: str) -> str | None:
        for col in self.columns:
            col_id = str(col.get("id") or "").lower()
            title = str(col.get("title") or "").lower()
            if any(kw in col_id or kw in title for kw in keywords):
                return _column_text(col)
        return None

    def status(self) -> str | None:
        return self.find("status")

    def priority(self) -> str | None:
        return self.find("priority")

    def date(self) -> str | None:
        return self.find("date", "due", "deadline", "timeline")


def _column_text(col: dict) -> str | None:
    text = col.get("text")
    if text not in (None, ""):
        return str(text)
    value = col.get("value")
    if value in (None, ""):
        return None
    if isinstance(value, str):
        try:
            decoded = json.loads(value)
        except ValueError:
            return value
        value = decoded
    if isinstance(value, dict):
        for key in ("date", "to", "from", "label", "text"):
            if value.get(key):
                return str(value[key])
        return None
    return str(value)


# =============================================================================
# DATES
# =============================================================================


def normalize_datetime(value: Any) -> str | None:
    """ISO-8601 text for anything datetime-like, else None."""
    if value in (None, ""):
        return None
    if isinstance(value, datetime):
        return value.isoformat()
    text = str(value).strip()
    try:
        return datetime.fromisoformat(text.replace("Z", "+00:00")).isoformat()
    except ValueError:
        return None


# =============================================================================
# PAYLOAD SHAPES
# =============================================================================


class ParseError(ValueError):
    """Neither the structured parse nor the text fallback understood a payload."""


def extract_list(data: Any, *keys: str) -> list:
    """
    Pull the item list out of a structured payload.

    Accepts a bare list, or a dict holding the list under one of *keys*,
    optionally nested under "data".
    """
    if isinstance(data, list):
        return data
    if not isinstance(data, dict):
        raise ParseError(f"unexpected payload type {type(data).__name__}")
    for container in (data, data.get("data")):
        if not isinstance(container, dict):
            continue
        for key in keys:
            if isinstance(container.get(key), list):
                return container[key]
    if data.get("error") or data.get("errors"):
        raise ParseError(f"error payload: {data.get('error') or data.get('errors')}")
    return []


JIRA_LINK_LINE = re.compile(r"\[([A-Z][A-Z0-9]*-\d+)\]\((https?://[^)]+)\)\s*[-:]\s*(.+)")

# "- Title (id: abc123)" as rendered by list-style tools
BULLET_LINE = re.compile(r"^\s*(?:[-*]|\d+\.)\s+(.+?)\s*\((?:id|ID|Id):\s*([^)\s]+)\)\s*$")

EMPTY_MARKER = re.compile(
    r"^\s*(?:no|0|zero)\s+(?:[\w-]+\s+){0,3}?"
    r"(?:found|items?|tasks?|issues?|events?|messages?|emails?|results?|boards?|lists?)\b",
    re.IGNORECASE,
)


def is_empty_marker(text: str) -> bool:
    """True for an explicit "nothing here" rendering such as "No issues found."."""
    stripped = (text or "").strip()
    return bool(stripped) and len(stripped) <= 200 and bool(EMPTY_MARKER.match(stripped))


def decode_payload(payload: Any) -> Any:
    """Structured data as-is, JSON text decoded. Raises ValueError otherwise."""
    if isinstance(payload, list | dict):
        return payload
    return json.loads(payload)


def parse_payload(
    payload: Any,
    structured: Callable[[Any], list],
    line_pattern: re.Pattern | None = None,
    from_line: Callable[[re.Match], Any] | None = None,
) -> list:
    """
    Parse a connector payload into mapped items.

    Structured data goes through *structured*. Text that is not JSON is
    matched line by line against *line_pattern*. An explicit empty marker
    is a trustworthy empty result. Anything else raises ParseError.
    """
    try:
        data = decode_payload(payload)
    except (TypeError, ValueError):
        data = None
    else:
        return structured(data)

    text = payload if isinstance(payload, str) else ""
    if line_pattern is not None and from_line is not None:
        items = [from_line(m) for m in (line_pattern.search(line) for line in text.splitlines()) if m]
        if items:
            return items
    if is_empty_marker(text):
        return []
    raise ParseError(f"unparseable payload: {text[:80]!r}")
