"""
Centralized Database Access for TaskHub.

Single source of truth for:
- DB path resolution
- Connection factory
- Schema convergence (delegated to schema_engine)

Schema is declared in taskhub/schema. Convergence logic lives in
taskhub/schema_engine. This module wires them together.
"""

import logging
import re
import sqlite3
from collections.abc import Generator
from contextlib import contextmanager
from pathlib import Path

from taskhub import paths, safe_sql, schema, schema_engine

logger = logging.getLogger(__name__)

# ============================================================
# SQL IDENTIFIER VALIDATION
# ============================================================

_SAFE_IDENTIFIER_RE = re.compile(r"^[a-zA-Z_][a-zA-Z0-9_]*$")


def validate_identifier(name: str) -> str:
    """Validate that *name* is a safe SQL identifier (table or column name).

    Returns the name unchanged if valid; raises ``ValueError`` otherwise.
    """
    if not _SAFE_IDENTIFIER_RE.match(name):
        raise ValueError(f"Invalid SQL identifier: {name!r}")
    return name


# ============================================================
# CONNECTION FACTORY
# ============================================================


def get_db_path() -> Path:
    return paths.db_path()


def connect(db_path: str | Path | None = None) -> sqlite3.Connection:
    """Open a configured connection. Caller owns commit/close."""
    path = Path(db_path) if db_path else get_db_path()
    path.parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(str(path))
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys=ON")
    return conn


@contextmanager
def get_connection(db_path: str | Path | None = None) -> Generator[sqlite3.Connection, None, None]:
    """
    Get a database connection with proper setup.

    Usage:
        with get_connection() as conn:
            conn.execute(...)
    """
    conn = connect(db_path)
    try:
        yield conn
        conn.commit()
    finally:
        conn.close()


# ============================================================
# SCHEMA INTROSPECTION
# ============================================================


def table_exists(conn: sqlite3.Connection, table: str) -> bool:
    cursor = conn.execute("SELECT name FROM sqlite_master WHERE type='table' AND name=?", (table,))
    return cursor.fetchone() is not None


def get_table_columns(conn: sqlite3.Connection, table: str) -> set[str]:
    validate_identifier(table)
    try:
        cursor = conn.execute(safe_sql.pragma_table_info(table))
        return {row[1] for row in cursor.fetchall()}
    except sqlite3.OperationalError:
        return set()


def get_schema_version(conn: sqlite3.Connection) -> int:
    """Get current schema version from PRAGMA user_version."""
    return conn.execute("PRAGMA user_version").fetchone()[0]


# ============================================================
# SCHEMA CONVERGENCE: delegates to schema_engine
# ============================================================


def ensure_schema(db_path: str | Path | None = None) -> dict:
    """
    Converge the database at *db_path* to match taskhub/schema.

    Safe to call on every startup: an up-to-date DB is left untouched.
    """
    with get_connection(db_path) as conn:
        previous_version = get_schema_version(conn)
        results = schema_engine.converge(conn)
        results["previous_version"] = previous_version

    if results.get("tables_created"):
        logger.info("Tables created: %s", results["tables_created"])
    if results.get("columns_added"):
        logger.info("Columns added: %s", results["columns_added"])
    if results.get("errors"):
        logger.warning("Convergence errors: %s", results["errors"])
    if previous_version != schema.SCHEMA_VERSION:
        logger.info("Schema version %s -> %s", previous_version, schema.SCHEMA_VERSION)

    return results


def get_db_info(db_path: str | Path | None = None) -> dict:
    """Path, size, version and table columns for the status view."""
    path = Path(db_path) if db_path else get_db_path()
    info = {
        "resolved_db_path": str(path),
        "exists": path.exists(),
        "file_size": None,
        "sqlite_version": sqlite3.sqlite_version,
        "user_version": None,
        "target_schema_version": schema.SCHEMA_VERSION,
        "tables": {},
    }

    if path.exists():
        info["file_size"] = path.stat().st_size
        with get_connection(path) as conn:
            info["user_version"] = get_schema_version(conn)
            for table in schema.TABLES:
                info["tables"][table] = (
                    sorted(get_table_columns(conn, table)) if table_exists(conn, table) else None
                )

    return info
