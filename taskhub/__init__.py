# TaskHub - Core Library
"""
Unified task list over several external systems, plus the delivery
milestone workflow that feeds it.
"""

from .models import CanonicalTask, FetchResult, SyncResult, TaskStatus
from .service import TaskHub, TaskNotFound
from .state_store import StateStore, get_store

__all__ = [
    "TaskHub",
    "TaskNotFound",
    "StateStore",
    "get_store",
    "CanonicalTask",
    "FetchResult",
    "SyncResult",
    "TaskStatus",
]
