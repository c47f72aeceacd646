"""
Centralized configuration for TaskHub.

Deployment-specific values live here. Override via environment variables
where marked. Per-source settings come from config/sources.yaml.
"""

import logging
import os
from dataclasses import dataclass
from pathlib import Path

import yaml

from taskhub import paths

logger = logging.getLogger(__name__)

# ============================================================
# Reconciliation
# ============================================================

EPHEMERAL_SOURCES: frozenset[str] = frozenset(
    s.strip()
    for s in os.environ.get("TASKHUB_EPHEMERAL_SOURCES", "calendar,email").split(",")
    if s.strip()
)
"""Sources whose steady state is often empty. Only these may be purged down to zero."""

DURABLE = "durable"
TRANSIENT = "transient"

# ============================================================
# Milestone workflow
# ============================================================

DEFAULT_LEAD_DAYS: int = int(os.environ.get("TASKHUB_DEFAULT_LEAD_DAYS", "3"))
"""Days before a milestone's target date that its workflow fires."""

# ============================================================
# Adapters
# ============================================================

CALENDAR_WINDOW_DAYS: int = int(os.environ.get("TASKHUB_CALENDAR_WINDOW_DAYS", "7"))
"""How far ahead the calendar view looks."""

DEFAULT_EMAIL_FILTER: str = os.environ.get("TASKHUB_EMAIL_FILTER", "flagged")
DEFAULT_EMAIL_DAYS: int = int(os.environ.get("TASKHUB_EMAIL_DAYS", "7"))
DEFAULT_EMAIL_LIMIT: int = int(os.environ.get("TASKHUB_EMAIL_LIMIT", "50"))

JIRA_SEARCH_LIMIT: int = int(os.environ.get("TASKHUB_JIRA_SEARCH_LIMIT", "50"))

MONDAY_BOARD_IDS: str = os.environ.get("MONDAY_BOARD_IDS", "")
"""Comma-separated board ids. Empty means ask the connector for every board."""

# ============================================================
# Diagnostics
# ============================================================

DIAGNOSTICS_SIZE: int = int(os.environ.get("TASKHUB_DIAGNOSTICS_SIZE", "20"))
"""Number of raw connector responses kept for the debug view."""

DIAGNOSTICS_MAX_CHARS: int = int(os.environ.get("TASKHUB_DIAGNOSTICS_MAX_CHARS", "20000"))


# ============================================================
# sources.yaml
# ============================================================


@dataclass
class SourceConfig:
    """Per-source switches loaded from sources.yaml."""

    name: str
    enabled: bool = True
    durability: str = DURABLE
    allow_empty: bool = False

    @property
    def transient(self) -> bool:
        return self.durability == TRANSIENT


def default_sources() -> dict[str, SourceConfig]:
    """Built-in defaults for every bundled adapter."""
    defaults = {}
    for name in ("jira", "planner", "todo", "calendar", "email", "monday"):
        ephemeral = name in EPHEMERAL_SOURCES
        defaults[name] = SourceConfig(
            name=name,
            durability=TRANSIENT if ephemeral else DURABLE,
            allow_empty=ephemeral,
        )
    return defaults


def load_sources_config(path: str | Path | None = None) -> dict[str, SourceConfig]:
    """
    Load per-source configuration, merged over the built-in defaults.

    File format:
        sources:
          jira:
            enabled: true
          calendar:
            durability: transient
            allow_empty: true
    """
    sources = default_sources()
    config_file = Path(path) if path else paths.sources_config_path()
    if not config_file.exists():
        return sources

    with open(config_file) as f:
        data = yaml.safe_load(f) or {}

    for name, raw in (data.get("sources") or {}).items():
        raw = raw or {}
        durability = raw.get("durability")
        if durability is not None and durability not in (DURABLE, TRANSIENT):
            raise ValueError(f"sources.yaml: invalid durability {durability!r} for {name}")

        current = sources.get(name, SourceConfig(name=name))
        sources[name] = SourceConfig(
            name=name,
            enabled=bool(raw.get("enabled", current.enabled)),
            durability=durability or current.durability,
            allow_empty=bool(raw.get("allow_empty", current.allow_empty)),
        )

    logger.debug("Loaded source config from %s: %s", config_file, sorted(sources))
    return sources
