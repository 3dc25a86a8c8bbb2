"""
DuckDB-backed history store.

Implements the record kind sources queried by the cleanup batch builder and
the deletion operations used by the cleanup job.

Ready-for-cleanup rules:
- instances: finished, with a history time to live, and
  ``finished + history_ttl_days <= now``
- historic batches: finished, of an operation type present in the retention
  map, and ``end_time <= now - ttl(type)``

Results are ordered oldest-finished-first (ties broken by id).

Deletes are idempotent, so two engine nodes that select overlapping ids only
waste work.
"""

from __future__ import annotations

from contextlib import contextmanager
from datetime import datetime, timedelta
from typing import Any, Generator, Mapping, Sequence

import pandas as pd
from loguru import logger

from history_cleanup.cleanup.batch import CleanupSources
from history_cleanup.cleanup.deleter import CascadingBatchDeleter
from history_cleanup.data.db import DatabaseManager, get_db
from history_cleanup.utils.config import HistoryCleanupConfig

# kind -> (table, finish timestamp column, dependent (table, column) pairs)
INSTANCE_KINDS = {
    "process_instance": (
        "historic_process_instances",
        "end_time",
        (
            ("historic_incidents", "process_instance_id"),
            ("historic_job_logs", "process_instance_id"),
        ),
    ),
    "decision_instance": ("historic_decision_instances", "evaluation_time", ()),
    "case_instance": ("historic_case_instances", "close_time", ()),
}


def _placeholders(count: int) -> str:
    return ", ".join(["?"] * count)


def _storage_time(now: datetime) -> datetime:
    """Timestamps are stored as naive local time."""
    if now.tzinfo is not None:
        return now.astimezone().replace(tzinfo=None)
    return now


def _retention_cutoff(now: datetime, ttl_days: int) -> datetime | None:
    """Latest end time still past the time to live, None if before datetime.min."""
    try:
        return now - timedelta(days=ttl_days)
    except OverflowError:
        return None


def _delete_by_column(conn, table: str, column: str, ids: Sequence[str]) -> int:
    row = conn.execute(
        f"DELETE FROM {table} WHERE {column} IN ({_placeholders(len(ids))})",
        list(ids),
    ).fetchone()
    return row[0] if row else 0


class HistoricInstanceSource:
    """Cleanup source for one historic instance kind."""

    def __init__(self, db: DatabaseManager, kind: str):
        """
        Initialize the source.

        Args:
            db: Database manager
            kind: One of INSTANCE_KINDS

        Raises:
            ValueError: If kind is unknown
        """
        if kind not in INSTANCE_KINDS:
            raise ValueError(f"Unknown instance kind: {kind}")
        self._db = db
        self.kind = kind
        self._table, self._finished_column, self._dependents = INSTANCE_KINDS[kind]

    def find_ids_for_cleanup(
        self,
        limit: int,
        now: datetime,
        retention: Mapping[str, int] | None = None,
    ) -> list[str]:
        """
        Ids of finished instances whose history time to live has elapsed.

        Args:
            limit: Maximum number of ids
            now: Cleanup reference time
            retention: Ignored for instances

        Returns:
            Up to ``limit`` ids, oldest-finished-first
        """
        if limit <= 0:
            return []

        column = self._finished_column
        query = f"""
            SELECT id
            FROM {self._table}
            WHERE {column} IS NOT NULL
              AND history_ttl_days IS NOT NULL
              AND CASE
                  WHEN history_ttl_days > ? THEN FALSE
                  ELSE {column} + to_days(history_ttl_days) <= ?
              END
            ORDER BY {column} ASC, id ASC
            LIMIT {int(limit)}
        """
        now = _storage_time(now)
        rows = self._db.fetchall(query, ((now - datetime.min).days, now))
        return [row[0] for row in rows]

    def delete_ids(self, ids: Sequence[str]) -> int:
        """
        Delete instances and the records that reference them.

        Returns:
            Number of instances deleted
        """
        ids = list(ids)
        if not ids:
            return 0

        with self._db.connection() as conn:
            for table, column in self._dependents:
                _delete_by_column(conn, table, column, ids)
            deleted = _delete_by_column(conn, self._table, "id", ids)

        logger.debug(f"Deleted {deleted} rows from {self._table}")
        return deleted


class HistoricBatchSource:
    """Cleanup source for historic batch aggregates."""

    def __init__(self, db: DatabaseManager):
        self._db = db

    def find_ids_for_cleanup(
        self,
        limit: int,
        now: datetime,
        retention: Mapping[str, int] | None = None,
    ) -> list[str]:
        """
        Ids of finished batches older than their operation type's time to live.

        Args:
            limit: Maximum number of ids
            now: Cleanup reference time
            retention: Operation type -> history time to live (days); batches of
                other types are never selected

        Returns:
            Up to ``limit`` ids, oldest-finished-first
        """
        if limit <= 0 or not retention:
            return []

        now = _storage_time(now)
        clauses = []
        params: list = []
        for operation_type, ttl_days in sorted(retention.items()):
            cutoff = _retention_cutoff(now, ttl_days)
            if cutoff is None:
                logger.debug(f"Time to live of {operation_type} batches has not elapsed for any end time")
                continue
            clauses.append("(type = ? AND end_time <= ?)")
            params.extend([operation_type, cutoff])
        if not clauses:
            return []

        query = f"""
            SELECT id
            FROM historic_batches
            WHERE end_time IS NOT NULL
              AND ({" OR ".join(clauses)})
            ORDER BY end_time ASC, id ASC
            LIMIT {int(limit)}
        """
        rows = self._db.fetchall(query, params)
        return [row[0] for row in rows]


class HistoryStore:
    """
    History store facade used by the cleanup job.

    Usage:
        store = HistoryStore(db_path)
        sources = store.cleanup_sources(config)
        with store.transaction():
            CascadingBatchDeleter(store).delete_batches(batch_ids)
    """

    def __init__(self, db_path: str | None = None):
        """
        Initialize the store.

        Args:
            db_path: Optional database path
        """
        self._db = get_db(db_path)
        self.process_instances = HistoricInstanceSource(self._db, "process_instance")
        self.decision_instances = HistoricInstanceSource(self._db, "decision_instance")
        self.case_instances = HistoricInstanceSource(self._db, "case_instance")
        self.batches = HistoricBatchSource(self._db)

    @property
    def db(self) -> DatabaseManager:
        return self._db

    @contextmanager
    def transaction(self) -> Generator[None, None, None]:
        """Run the enclosed store operations in one transaction."""
        with self._db.connection():
            yield

    def cleanup_sources(self, config: HistoryCleanupConfig) -> CleanupSources:
        """Bundle this store's sources with the configured enable flags."""
        return CleanupSources(
            process_instances=self.process_instances,
            decision_instances=self.decision_instances,
            case_instances=self.case_instances,
            batches=self.batches,
            dmn_enabled=config.dmn_enabled,
            cmmn_enabled=config.cmmn_enabled,
            batch_retention=config.batch_operation_ttls(),
        )

    def delete_incidents_by_batch_ids(self, ids: Sequence[str]) -> int:
        ids = list(ids)
        if not ids:
            return 0
        with self._db.connection() as conn:
            return _delete_by_column(conn, "historic_incidents", "batch_id", ids)

    def delete_job_logs_by_batch_ids(self, ids: Sequence[str]) -> int:
        ids = list(ids)
        if not ids:
            return 0
        with self._db.connection() as conn:
            return _delete_by_column(conn, "historic_job_logs", "batch_id", ids)

    def delete_batch_aggregates_preserving_order(self, ids: Sequence[str]) -> int:
        """Delete historic batches one by one, in the given order."""
        deleted = 0
        with self._db.connection() as conn:
            for batch_id in ids:
                row = conn.execute(
                    "DELETE FROM historic_batches WHERE id = ?", (batch_id,)
                ).fetchone()
                deleted += row[0] if row else 0
        return deleted

    def find_batch(self, batch_id: str) -> dict[str, Any] | None:
        """Look up one historic batch, None if it does not exist."""
        columns = ("id", "type", "total_jobs", "start_time", "end_time")
        row = self._db.fetchone(
            f"SELECT {', '.join(columns)} FROM historic_batches WHERE id = ?",
            (batch_id,),
        )
        if row is None:
            return None
        return dict(zip(columns, row))

    def delete_batch(self, batch_id: str) -> int:
        """Delete one historic batch with its incidents and job logs."""
        with self.transaction():
            return CascadingBatchDeleter(self).delete_batches([batch_id])

    def count_cleanable_batches(self, retention: Mapping[str, int], now: datetime) -> int:
        """Number of finished historic batches past their time to live."""
        report = self.get_cleanable_batch_report(retention, now)
        return int(report["cleanable_count"].sum())

    def get_cleanable_batch_report(
        self,
        retention: Mapping[str, int],
        now: datetime,
    ) -> pd.DataFrame:
        """
        Summarize finished and cleanable historic batches per operation type.

        Args:
            retention: Operation type -> history time to live (days)
            now: Cleanup reference time

        Returns:
            DataFrame with columns type, history_ttl_days, finished_count,
            cleanable_count, ordered by type
        """
        now = _storage_time(now)
        params: list = []
        cases = []
        for operation_type, ttl_days in sorted(retention.items()):
            cutoff = _retention_cutoff(now, ttl_days)
            if cutoff is not None:
                cases.append("WHEN ? THEN end_time <= ?")
                params.extend([operation_type, cutoff])
        if cases:
            cleanable = f"CASE type {' '.join(cases)} ELSE FALSE END"
        else:
            cleanable = "FALSE"

        query = f"""
            SELECT
                type,
                COUNT(*) AS finished_count,
                COUNT(*) FILTER (WHERE {cleanable}) AS cleanable_count
            FROM historic_batches
            WHERE end_time IS NOT NULL
            GROUP BY type
            ORDER BY type ASC
        """
        df = self._db.fetchdf(query, params)

        df["history_ttl_days"] = df["type"].map(dict(retention)).astype("Int64")
        df["finished_count"] = df["finished_count"].astype("int64")
        df["cleanable_count"] = df["cleanable_count"].astype("int64")
        return df[["type", "history_ttl_days", "finished_count", "cleanable_count"]]
