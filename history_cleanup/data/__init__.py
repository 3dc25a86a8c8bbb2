"""DuckDB history store: schema, connection management and cleanup queries."""

from history_cleanup.data.db import DatabaseManager, get_db, reset_db_cache
from history_cleanup.data.history import HistoricBatchSource, HistoricInstanceSource, HistoryStore
from history_cleanup.data.schema import create_tables

__all__ = [
    "DatabaseManager",
    "get_db",
    "reset_db_cache",
    "HistoricBatchSource",
    "HistoricInstanceSource",
    "HistoryStore",
    "create_tables",
]
