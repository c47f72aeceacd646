"""
Observability: structured logging and run correlation.
"""

from .context import RunContext, generate_run_id, get_run_id, set_run_id
from .logging import HumanFormatter, JSONFormatter, configure_logging

__all__ = [
    "RunContext",
    "generate_run_id",
    "get_run_id",
    "set_run_id",
    "JSONFormatter",
    "HumanFormatter",
    "configure_logging",
]
