"""
Runtime settings.

Two layers: the per-source YAML file (see config.load_sources_config) and
key/value rows in the settings table that an operator can flip at runtime.
A source is enabled only when both layers agree.
"""

import logging

from taskhub import config
from taskhub.config import SourceConfig
from taskhub.state_store import StateStore

logger = logging.getLogger(__name__)

EMAIL_FILTERS = ("flagged", "unread", "unread_and_flagged", "all")


def enabled_key(source: str) -> str:
    return f"sync_{source}_enabled"


class Settings:
    def __init__(self, store: StateStore, sources: dict[str, SourceConfig] | None = None):
        self.store = store
        self.sources = sources if sources is not None else config.load_sources_config()

    def get(self, key: str, default: str | None = None) -> str | None:
        return self.store.get_setting(key, default)

    def set(self, key: str, value) -> None:
        self.store.set_setting(key, value)

    def get_int(self, key: str, default: int) -> int:
        raw = self.get(key)
        if raw is None or raw == "":
            return default
        try:
            return int(raw)
        except ValueError:
            logger.warning("Setting %s=%r is not an integer, using %d", key, raw, default)
            return default

    def source_config(self, source: str) -> SourceConfig:
        return self.sources.get(source) or SourceConfig(name=source)

    def is_source_enabled(self, source: str) -> bool:
        if not self.source_config(source).enabled:
            return False
        return self.get(enabled_key(source)) != "false"

    def set_source_enabled(self, source: str, enabled: bool) -> None:
        self.set(enabled_key(source), "true" if enabled else "false")

    def is_transient(self, source: str) -> bool:
        return self.source_config(source).transient

    def allows_empty(self, source: str) -> bool:
        """Whether an empty fetch from *source* may purge everything it owns."""
        cfg = self.sources.get(source)
        if cfg is not None:
            return cfg.allow_empty
        return source in config.EPHEMERAL_SOURCES

    # Adapter settings

    @property
    def jira_url(self) -> str:
        return (self.get("jira_url") or "").rstrip("/")

    @property
    def email_filter(self) -> str:
        value = self.get("email_filter", config.DEFAULT_EMAIL_FILTER)
        if value not in EMAIL_FILTERS:
            logger.warning("Unknown email_filter %r, using %s", value, config.DEFAULT_EMAIL_FILTER)
            return config.DEFAULT_EMAIL_FILTER
        return value

    @property
    def email_days(self) -> int:
        return self.get_int("email_days", config.DEFAULT_EMAIL_DAYS)

    @property
    def email_limit(self) -> int:
        return self.get_int("email_limit", config.DEFAULT_EMAIL_LIMIT)

    @property
    def monday_board_ids(self) -> list[str]:
        raw = self.get("monday_board_ids") or config.MONDAY_BOARD_IDS
        return [b.strip() for b in raw.split(",") if b.strip()]
