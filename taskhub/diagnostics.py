"""
Raw connector response capture for debugging.

Adapters record the text each connector call returned into a bounded ring
buffer. Secrets are redacted before capture and oversized payloads are
truncated, so the buffer is safe to show in a status view.
"""

import re
import threading
from collections import deque
from dataclasses import dataclass
from datetime import datetime

from taskhub import config

SECRET_PATTERNS = [
    (r'"access_token"\s*:\s*"[^"]*"', '"access_token": "[REDACTED]"'),
    (r'"refresh_token"\s*:\s*"[^"]*"', '"refresh_token": "[REDACTED]"'),
    (r'"api_key"\s*:\s*"[^"]*"', '"api_key": "[REDACTED]"'),
    (r'"apiToken"\s*:\s*"[^"]*"', '"apiToken": "[REDACTED]"'),
    (r'"password"\s*:\s*"[^"]*"', '"password": "[REDACTED]"'),
    (r'"secret"\s*:\s*"[^"]*"', '"secret": "[REDACTED]"'),
    (r"Bearer\s+[A-Za-z0-9\-._~+/=]+", "Bearer [REDACTED]"),
    (r'"Authorization"\s*:\s*"[^"]*"', '"Authorization": "[REDACTED]"'),
]

TRUNCATION_MARKER = "...[truncated]"


def redact_secrets(text: str) -> str:
    """Redact secrets from text."""
    result = text
    for pattern, replacement in SECRET_PATTERNS:
        result = re.sub(pattern, replacement, result)
    return result


@dataclass(frozen=True)
class RawResponse:
    """One captured connector response."""

    source: str
    operation: str
    captured_at: str
    text: str

    def to_dict(self) -> dict:
        return {
            "source": self.source,
            "operation": self.operation,
            "captured_at": self.captured_at,
            "text": self.text,
        }


class Diagnostics:
    """Bounded, thread-safe ring buffer of raw responses."""

    def __init__(self, size: int | None = None, max_chars: int | None = None):
        self.size = size or config.DIAGNOSTICS_SIZE
        self.max_chars = max_chars or config.DIAGNOSTICS_MAX_CHARS
        self._entries: deque[RawResponse] = deque(maxlen=self.size)
        self._lock = threading.Lock()

    def record(self, source: str, operation: str, text: str) -> RawResponse:
        clean = redact_secrets(text or "")
        if len(clean) > self.max_chars:
            clean = clean[: self.max_chars] + TRUNCATION_MARKER
        entry = RawResponse(
            source=source,
            operation=operation,
            captured_at=datetime.now().isoformat(timespec="seconds"),
            text=clean,
        )
        with self._lock:
            self._entries.append(entry)
        return entry

    def last(self, source: str | None = None, operation: str | None = None) -> RawResponse | None:
        """Most recent entry, optionally for one source and/or operation."""
        with self._lock:
            for entry in reversed(self._entries):
                if source and entry.source != source:
                    continue
                if operation and entry.operation != operation:
                    continue
                return entry
        return None

    def entries(self) -> list[RawResponse]:
        with self._lock:
            return list(self._entries)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)
