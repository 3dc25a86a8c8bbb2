"""
DuckDB access for the history store.

One connection per database file, shared by all callers in the process.
``connection()`` runs a transaction; nested use joins the outermost one, so a
caller can make several store operations atomic.
"""

from __future__ import annotations

import os
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Generator

import duckdb
import pandas as pd
from loguru import logger

from history_cleanup.exceptions import StorageError

DEFAULT_DB_PATH = Path.home() / "history-cleanup" / "history.duckdb"


def _resolve_db_path(db_path: str | None) -> str:
    """Resolve the database path from argument, environment or default."""
    if db_path:
        return db_path
    env_path = os.getenv("HISTORY_CLEANUP_DB_PATH")
    if env_path:
        return str(Path(env_path).expanduser())
    return str(DEFAULT_DB_PATH)


class DatabaseManager:
    """Thread-safe wrapper around a DuckDB connection with transactions."""

    def __init__(self, db_path: str | None = None):
        """
        Open the database.

        Args:
            db_path: Database file path, ":memory:" for an in-memory database
        """
        self.db_path = _resolve_db_path(db_path)
        if self.db_path != ":memory:":
            Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)

        try:
            self._conn = duckdb.connect(self.db_path)
        except duckdb.Error as e:
            raise StorageError(f"Cannot open database {self.db_path}: {e}") from e

        self._lock = threading.RLock()
        self._depth = 0
        logger.debug(f"Opened history database at {self.db_path}")

    @contextmanager
    def connection(self) -> Generator[duckdb.DuckDBPyConnection, None, None]:
        """
        Yield the connection inside a transaction.

        The outermost context commits on success and rolls back on error.
        DuckDB errors surface as StorageError.
        """
        with self._lock:
            outermost = self._depth == 0
            if outermost:
                try:
                    self._conn.begin()
                except duckdb.Error as e:
                    raise StorageError(f"Cannot start transaction: {e}") from e

            self._depth += 1
            try:
                yield self._conn
            except duckdb.Error as e:
                if outermost:
                    self._rollback()
                raise StorageError(f"Database operation failed: {e}") from e
            except BaseException:
                if outermost:
                    self._rollback()
                raise
            else:
                if outermost:
                    try:
                        self._conn.commit()
                    except duckdb.Error as e:
                        self._rollback()
                        raise StorageError(f"Commit failed: {e}") from e
            finally:
                self._depth -= 1

    def _rollback(self) -> None:
        try:
            self._conn.rollback()
        except duckdb.Error as e:
            logger.warning(f"Rollback failed: {e}")

    def execute(self, query: str, params: tuple | list | None = None) -> None:
        """Execute a statement, discarding any result."""
        with self.connection() as conn:
            conn.execute(query, params)

    def fetchone(self, query: str, params: tuple | list | None = None) -> tuple | None:
        with self.connection() as conn:
            return conn.execute(query, params).fetchone()

    def fetchall(self, query: str, params: tuple | list | None = None) -> list[tuple]:
        with self.connection() as conn:
            return conn.execute(query, params).fetchall()

    def fetchdf(self, query: str, params: tuple | list | None = None) -> pd.DataFrame:
        """Run a query and return the result as a DataFrame."""
        with self.connection() as conn:
            return conn.execute(query, params).df()

    def close(self) -> None:
        with self._lock:
            self._conn.close()


_databases: dict[str, DatabaseManager] = {}
_databases_lock = threading.Lock()


def get_db(db_path: str | None = None) -> DatabaseManager:
    """
    Get the shared DatabaseManager for a path.

    Args:
        db_path: Optional database path (defaults to HISTORY_CLEANUP_DB_PATH)

    Returns:
        DatabaseManager, created on first use
    """
    path = _resolve_db_path(db_path)
    with _databases_lock:
        db = _databases.get(path)
        if db is None:
            db = DatabaseManager(path)
            _databases[path] = db
        return db


def reset_db_cache() -> None:
    """Close and forget all shared database managers."""
    with _databases_lock:
        for db in _databases.values():
            db.close()
        _databases.clear()
