"""
Run context management with context variables.

A run is one sync pass or one workflow evaluation. Every log line emitted
inside a run carries its run_id.
"""

import contextvars
import uuid

_run_id_var: contextvars.ContextVar[str | None] = contextvars.ContextVar("run_id", default=None)


def get_run_id() -> str | None:
    """Get the current run ID from context."""
    return _run_id_var.get()


def set_run_id(run_id: str) -> contextvars.Token:
    """Set the run ID in context. Returns token for reset."""
    return _run_id_var.set(run_id)


def generate_run_id(kind: str = "run") -> str:
    return f"{kind}-{uuid.uuid4().hex[:16]}"


class RunContext:
    """
    Context manager for run-scoped operations.

    Usage:
        with RunContext("sync") as ctx:
            logger.info("Syncing")  # carries ctx.run_id

    Nested contexts keep the outer run_id unless one is passed explicitly.
    """

    def __init__(self, kind: str = "run", run_id: str | None = None):
        self.run_id = run_id or get_run_id() or generate_run_id(kind)
        self._token: contextvars.Token | None = None

    def __enter__(self) -> "RunContext":
        self._token = set_run_id(self.run_id)
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        if self._token is not None:
            _run_id_var.reset(self._token)
