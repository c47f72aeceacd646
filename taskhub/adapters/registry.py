"""
Adapter registry.

Maps source names to adapter classes and builds one adapter per source,
wired to the connector registered under the adapter's server name.
"""

import logging
from collections.abc import Callable
from datetime import datetime

from taskhub.diagnostics import Diagnostics

from .base import Connector, SourceAdapter
from .calendar import CalendarAdapter
from .email import EmailAdapter
from .jira import JiraAdapter
from .monday import MondayAdapter
from .planner import PlannerAdapter
from .todo import TodoAdapter

logger = logging.getLogger(__name__)

# Sync order for sync_all
ADAPTER_CLASSES: dict[str, type[SourceAdapter]] = {
    "jira": JiraAdapter,
    "planner": PlannerAdapter,
    "todo": TodoAdapter,
    "calendar": CalendarAdapter,
    "email": EmailAdapter,
    "monday": MondayAdapter,
}


def build_adapters(
    connectors: dict[str, Connector],
    settings=None,
    diagnostics: Diagnostics | None = None,
    clock: Callable[[], datetime] | None = None,
) -> dict[str, SourceAdapter]:
    """
    One adapter per known source. Adapters whose server has no connector
    are still built and report ok=False on fetch.
    """
    adapters = {}
    for name, adapter_class in ADAPTER_CLASSES.items():
        connector = connectors.get(adapter_class.server_name)
        if connector is None:
            logger.debug("No connector for %s (server %s)", name, adapter_class.server_name)
        adapters[name] = adapter_class(connector, settings=settings, diagnostics=diagnostics, clock=clock)
    return adapters
