"""
Shared pytest fixtures.

Each test that needs a database gets its own DuckDB file with the history
schema created.
"""

import os

import pytest

from history_cleanup.data.db import reset_db_cache
from history_cleanup.data.schema import create_tables
from history_cleanup.utils.config import reset_config


@pytest.fixture
def test_db(tmp_path):
    """Path to a fresh history database."""
    db_path = str(tmp_path / "history.duckdb")
    create_tables(db_path)
    yield db_path
    reset_db_cache()


@pytest.fixture(autouse=True)
def clean_config(monkeypatch):
    """Isolate tests from HISTORY_CLEANUP_* variables in the environment."""
    for name in list(os.environ):
        if name.startswith("HISTORY_CLEANUP_"):
            monkeypatch.delenv(name, raising=False)
    reset_config()
    yield
    reset_config()
