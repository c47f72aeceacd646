"""
Monday adapter - items in the active groups of each board.

Boards come from the monday_board_ids setting, or from the connector when
none are configured. Groups whose title says they hold finished work are
skipped. Column positions vary per board, so fields are found by keyword
through FieldResolver.
"""

from taskhub.models import FetchResult, TaskStatus

from .base import ConnectorError, SourceAdapter, keyed
from .normalize import (
    BULLET_LINE,
    FieldResolver,
    ParseError,
    extract_list,
    normalize_datetime,
    parse_payload,
    priority_from_keywords,
    status_from_keywords,
)

DONE_GROUP_KEYWORDS = ("done", "completed", "closed")

MONDAY_PRIORITY_LADDER = [
    ("critical", 95),
    ("high", 80),
    ("medium", 55),
    ("low", 30),
]
MONDAY_DEFAULT_PRIORITY = 55


def monday_status(value: str | None) -> TaskStatus:
    return status_from_keywords(value, done=DONE_GROUP_KEYWORDS, in_progress=("progress", "working"))


def is_active_group(group: dict) -> bool:
    title = str(group.get("title") or "").lower()
    return not any(kw in title for kw in DONE_GROUP_KEYWORDS)


class MondayAdapter(SourceAdapter):
    source_name = "monday"
    server_name = "monday"
    category = "project"

    def boards(self) -> list[dict]:
        configured = self.settings.monday_board_ids if self.settings is not None else []
        if configured:
            return [{"id": board_id} for board_id in configured]

        payload = self.call("monday-list-boards")
        if payload is None:
            raise ConnectorError("monday-list-boards returned nothing")
        return parse_payload(
            payload,
            lambda data: extract_list(data, "boards"),
            BULLET_LINE,
            lambda m: {"id": m.group(2), "name": m.group(1)},
        )

    def collect(self) -> FetchResult:
        tasks = []
        fetched_any = False
        had_error = False

        for board in self.boards():
            board_id = str(board.get("id"))
            board_name = board.get("name") or ""
            try:
                items = self._board_items(board_id)
            except (ConnectorError, TimeoutError, ParseError) as e:
                had_error = True
                self.logger.warning(f"monday: error fetching board {board_id}: {e}")
                continue
            if items is None:
                continue

            fetched_any = True
            tasks.extend(self.transform(item, board_id, board_name) for item in keyed(items, "id"))

        return FetchResult(tasks, ok=fetched_any and not had_error)

    def _board_items(self, board_id: str) -> list[dict] | None:
        """Items of a board's active groups. None when the board has none."""
        groups_payload = self.call("monday-get-board-groups", {"boardId": board_id})
        if groups_payload is None:
            raise ConnectorError(f"no groups payload for board {board_id}")
        groups = parse_payload(groups_payload, lambda data: extract_list(data, "groups"))

        group_ids = [str(g.get("id")) for g in groups if is_active_group(g)]
        if not group_ids:
            return None

        items_payload = self.call(
            "monday-list-items-in-groups", {"boardId": board_id, "groupIds": group_ids}
        )
        if items_payload is None:
            raise ConnectorError(f"no items payload for board {board_id}")
        return parse_payload(
            items_payload,
            lambda data: extract_list(data, "items"),
            BULLET_LINE,
            lambda m: {"id": m.group(2), "name": m.group(1)},
        )

    def transform(self, item: dict, board_id: str, board_name: str = ""):
        fields = FieldResolver(item.get("column_values"))
        return self.task(
            item.get("id"),
            item.get("name"),
            source_url=f"https://monday.com/boards/{board_id}/pulses/{item.get('id')}",
            description=f"Board: {board_name}" if board_name else None,
            status=monday_status(fields.status()),
            priority=priority_from_keywords(
                fields.priority(), MONDAY_PRIORITY_LADDER, MONDAY_DEFAULT_PRIORITY
            ),
            due_date=normalize_datetime(fields.date()),
            raw_data=item,
        )
