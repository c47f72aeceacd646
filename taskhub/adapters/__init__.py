"""
Source adapters - one per external task system.
Adapters fetch and normalize. They never persist.
"""

from .base import Connector, ConnectorError, SourceAdapter, payload_text
from .calendar import CalendarAdapter
from .email import EmailAdapter
from .jira import JiraAdapter
from .monday import MondayAdapter
from .normalize import FieldResolver, ParseError
from .planner import PlannerAdapter
from .registry import ADAPTER_CLASSES, build_adapters
from .todo import TodoAdapter

__all__ = [
    "Connector",
    "ConnectorError",
    "ParseError",
    "SourceAdapter",
    "FieldResolver",
    "payload_text",
    "JiraAdapter",
    "PlannerAdapter",
    "TodoAdapter",
    "CalendarAdapter",
    "EmailAdapter",
    "MondayAdapter",
    "ADAPTER_CLASSES",
    "build_adapters",
]
