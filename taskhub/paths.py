from __future__ import annotations

import os
from pathlib import Path

APP_ENV_HOME = "TASKHUB_HOME"
APP_ENV_DB = "TASKHUB_DB"


def project_root() -> Path:
    """Repository root. Contains taskhub/, cli/ and tests/."""
    return Path(__file__).parent.parent.resolve()


def app_home() -> Path:
    """
    User-writable home for TaskHub.
    Override with TASKHUB_HOME.
    """
    if os.environ.get(APP_ENV_HOME):
        return Path(os.environ[APP_ENV_HOME]).expanduser().resolve()
    return (Path.home() / ".taskhub").resolve()


def config_dir() -> Path:
    d = app_home() / "config"
    d.mkdir(parents=True, exist_ok=True)
    return d


def data_dir() -> Path:
    d = app_home() / "data"
    d.mkdir(parents=True, exist_ok=True)
    return d


def db_path() -> Path:
    """
    Canonical DB path.

    Resolution order:
    1. TASKHUB_DB env var (explicit override)
    2. ~/.taskhub/data/taskhub.db (default)
    """
    if os.environ.get(APP_ENV_DB):
        return Path(os.environ[APP_ENV_DB]).expanduser().resolve()
    return data_dir() / "taskhub.db"


def sources_config_path() -> Path:
    """Location of the per-source YAML configuration."""
    return config_dir() / "sources.yaml"
