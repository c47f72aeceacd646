"""
Test configuration — repo root on sys.path, isolated homes and DBs.

Every test runs with TASKHUB_HOME pointing at a temp directory, so nothing
reads or writes ~/.taskhub. Tests that need a store get a fresh SQLite file.

IMPORTANT: the live DB guard is installed per test (autouse), so a test that
forgets the store fixture fails loudly instead of touching real data.
"""

import sqlite3
import sys
from pathlib import Path

import pytest

# Add repo root to sys.path so tests can import taskhub.*, cli.*, tests.fixtures
REPO_ROOT = Path(__file__).parent.parent
if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))

from taskhub.config import default_sources  # noqa: E402
from taskhub.diagnostics import Diagnostics  # noqa: E402
from taskhub.settings import Settings  # noqa: E402
from taskhub.state_store import StateStore  # noqa: E402
from tests.fixtures import FakeClock, FakeConnector  # noqa: E402

# =============================================================================
# DETERMINISM GUARD: Block live database access
# =============================================================================

HOME_DB_ABSOLUTE = Path.home() / ".taskhub" / "data" / "taskhub.db"

_original_sqlite_connect = sqlite3.connect


def _guarded_sqlite_connect(database, *args, **kwargs):
    """Intercept sqlite3.connect to block live DB access."""
    if str(database) == str(HOME_DB_ABSOLUTE):
        raise RuntimeError(
            f"DETERMINISM VIOLATION: Test attempted to access live DB at {database}.\n"
            "Use the store fixture from tests/conftest.py."
        )
    return _original_sqlite_connect(database, *args, **kwargs)


@pytest.fixture(autouse=True)
def guard_live_db_access(monkeypatch, tmp_path):
    """Isolate every test from the user's home and live DB."""
    monkeypatch.setattr(sqlite3, "connect", _guarded_sqlite_connect)
    monkeypatch.setenv("TASKHUB_HOME", str(tmp_path / "home"))
    monkeypatch.delenv("TASKHUB_DB", raising=False)


# =============================================================================
# FIXTURES
# =============================================================================


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def db_path(tmp_path):
    return tmp_path / "taskhub_test.db"


@pytest.fixture
def store(db_path):
    """Fresh, converged store per test."""
    return StateStore(db_path)


@pytest.fixture
def settings(store):
    """Settings over built-in source defaults, no YAML file."""
    return Settings(store, sources=default_sources())


@pytest.fixture
def diagnostics():
    return Diagnostics(size=10, max_chars=2000)


@pytest.fixture
def connector():
    return FakeConnector()
