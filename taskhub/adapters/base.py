"""
Base Adapter - Template for all source adapters.
Every adapter MUST:
1. Fetch raw payloads through its injected Connector
2. Transform them to CanonicalTask
3. Report ok=False whenever the source state is unknown

Adapters never persist and never decide purge policy.
"""

import json
import logging
from abc import ABC, abstractmethod
from collections.abc import Callable
from datetime import datetime
from typing import Any, Protocol, runtime_checkable

from taskhub.diagnostics import Diagnostics
from taskhub.models import CanonicalTask, FetchResult

from .normalize import ParseError


class ConnectorError(Exception):
    """A connector call failed: network, auth, or protocol error."""


@runtime_checkable
class Connector(Protocol):
    """Transport to one external system. Carries its own timeouts."""

    def is_connected(self) -> bool: ...

    def fetch_raw(self, operation: str, params: dict) -> Any: ...


def payload_text(raw: Any) -> Any:
    """
    Unwrap a tool-call envelope ``{"content": [{"text": ...}]}``.

    Returns the first text part, the raw value when it is not an envelope,
    or None when there is nothing to parse.
    """
    if raw is None:
        return None
    if isinstance(raw, dict) and isinstance(raw.get("content"), list):
        for part in raw["content"]:
            if isinstance(part, dict) and part.get("text"):
                return part["text"]
        return None
    if isinstance(raw, str) and not raw.strip():
        return None
    return raw


def keyed(items: list, *keys: str) -> list:
    """Items carrying a non-empty value for at least one of *keys*. The rest cannot be stored."""
    return [item for item in items if isinstance(item, dict) and any(item.get(k) not in (None, "") for k in keys)]


class SourceAdapter(ABC):
    """Base class for all source adapters."""

    #: Canonical source name, e.g. "jira"
    source_name: str = ""
    #: Name of the connector this adapter talks through
    server_name: str = ""
    category: str | None = None

    def __init__(
        self,
        connector: Connector | None,
        settings=None,
        diagnostics: Diagnostics | None = None,
        clock: Callable[[], datetime] | None = None,
    ):
        self.connector = connector
        self.settings = settings
        self.diagnostics = diagnostics
        self.clock = clock or datetime.now
        self.logger = logging.getLogger(self.__class__.__name__)

    @abstractmethod
    def collect(self) -> FetchResult:
        """
        Call the connector and map what comes back.
        Raise ConnectorError/ParseError on failure; fetch() converts those.
        """

    def fetch(self) -> FetchResult:
        """
        Pure fetch. ok=False means "unknown", never "now empty".
        """
        return self.fetch_with(self.collect)

    def fetch_with(self, collect: Callable[[], FetchResult]) -> FetchResult:
        """Run *collect* with the connectivity check and failure mapping of fetch()."""
        if self.connector is None:
            self.logger.warning(f"{self.source_name}: no connector registered")
            return FetchResult([], ok=False)
        if not self.connector.is_connected():
            self.logger.warning(f"{self.source_name}: connector {self.server_name} not connected")
            return FetchResult([], ok=False)

        try:
            result = collect()
        except (ConnectorError, TimeoutError, ParseError) as e:
            self.logger.warning(f"{self.source_name}: fetch failed: {e}")
            return FetchResult([], ok=False)

        self.logger.debug(f"{self.source_name}: fetched {len(result.tasks)} items, ok={result.ok}")
        return result

    def call(self, operation: str, params: dict | None = None) -> Any:
        """
        One connector call. Returns the unwrapped payload, or None when the
        connector handed back nothing usable.
        """
        raw = self.connector.fetch_raw(operation, params or {})
        payload = payload_text(raw)
        if self.diagnostics is not None and payload is not None:
            text = payload if isinstance(payload, str) else json.dumps(payload, default=str)
            self.diagnostics.record(self.source_name, operation, text)
        return payload

    def task(self, source_id: Any, title: str | None, **fields) -> CanonicalTask:
        """Build a CanonicalTask for this source with its default category."""
        fields.setdefault("category", self.category)
        return CanonicalTask(
            source=self.source_name,
            source_id=str(source_id),
            title=title or "Untitled",
            **fields,
        )
