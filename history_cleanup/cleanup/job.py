"""
History cleanup job.

Runs one cleanup cycle: checks the batch window, builds a bounded cleanup
batch and deletes it record kind by record kind in priority order, then
decides when the job should run next.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import TYPE_CHECKING, Any

from loguru import logger

from history_cleanup.cleanup.batch import CleanupBatch, CleanupBatchBuilder
from history_cleanup.cleanup.deleter import CascadingBatchDeleter
from history_cleanup.exceptions import ConfigurationError
from history_cleanup.utils.clock import Clock, system_clock

if TYPE_CHECKING:
    from history_cleanup.data.history import HistoryStore
    from history_cleanup.utils.config import HistoryCleanupConfig


@dataclass
class CleanupResult:
    """
    Result of one cleanup cycle.

    Attributes:
        started_at: Cycle reference time
        dry_run: Whether deletion was skipped
        within_window: Whether the cycle ran (inside the window or immediate)
        deleted: Record kind -> number of records deleted (selected in dry run)
        next_run: When the job should run next, None if it need not be rescheduled
        duration_seconds: Time taken for the cycle
    """

    started_at: datetime
    dry_run: bool
    within_window: bool
    deleted: dict[str, int] = field(default_factory=dict)
    next_run: datetime | None = None
    duration_seconds: float = 0.0

    @property
    def total_deleted(self) -> int:
        return sum(self.deleted.values())

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "started_at": self.started_at.isoformat(),
            "dry_run": self.dry_run,
            "within_window": self.within_window,
            "deleted": dict(self.deleted),
            "total_deleted": self.total_deleted,
            "next_run": self.next_run.isoformat() if self.next_run else None,
            "duration_seconds": self.duration_seconds,
        }


class HistoryCleanupJob:
    """
    Recurring history cleanup job.

    A scheduled cycle only does work inside the batch window; an immediate
    cycle (triggered manually) ignores the window. Errors from the store
    propagate to the caller, which owns retries.
    """

    def __init__(
        self,
        config: "HistoryCleanupConfig",
        store: "HistoryStore",
        clock: Clock | None = None,
        dry_run: bool = False,
    ):
        """
        Initialize the cleanup job.

        Args:
            config: Cleanup configuration
            store: History store providing sources and deletion
            clock: Time provider (defaults to the system clock)
            dry_run: If True, only report what would be deleted
        """
        self._config = config
        self._store = store
        self._clock = clock or system_clock
        self._dry_run = dry_run
        self._window = config.batch_window(clock=self._clock)
        self._builder = CleanupBatchBuilder(clock=self._clock)
        self._deleter = CascadingBatchDeleter(store)

    def execute(self, immediate: bool = False) -> CleanupResult:
        """
        Run one cleanup cycle.

        Args:
            immediate: Run regardless of the batch window

        Returns:
            CleanupResult with per-kind counts and the next run time

        Raises:
            ConfigurationError: If a scheduled cycle runs without a batch window
        """
        start_time = time.time()
        now = self._clock()

        if not immediate:
            if not self._window.is_configured():
                raise ConfigurationError(
                    "Batch window must be configured for scheduled history cleanup"
                )
            if not self._window.is_within(now):
                next_run = self._window.next_run_at_or_after(now)
                logger.info(
                    f"Outside batch window {self._window} at {now.isoformat()}, "
                    f"next run at {next_run.isoformat()}"
                )
                return CleanupResult(
                    started_at=now,
                    dry_run=self._dry_run,
                    within_window=False,
                    next_run=next_run,
                    duration_seconds=time.time() - start_time,
                )

        logger.info(
            f"Running history cleanup (dry_run={self._dry_run}, immediate={immediate}, "
            f"batch_size={self._config.batch_size})"
        )

        sources = self._store.cleanup_sources(self._config)
        batch = self._builder.build_next_batch(self._config.batch_size, sources)

        if batch.is_empty():
            logger.info("No historic data ready for cleanup")
            deleted = {}
        elif self._dry_run:
            deleted = self._selected_counts(batch)
            logger.info(f"Dry run: would delete {batch.size()} records {deleted}")
        else:
            deleted = self._delete(batch)

        result = CleanupResult(
            started_at=now,
            dry_run=self._dry_run,
            within_window=True,
            deleted=deleted,
            next_run=self._next_run(batch, now),
            duration_seconds=time.time() - start_time,
        )
        logger.info(
            f"History cleanup finished: deleted={result.total_deleted}, "
            f"next_run={result.next_run.isoformat() if result.next_run else None}"
        )
        return result

    def _delete(self, batch: CleanupBatch) -> dict[str, int]:
        """Delete the batch in priority order inside one transaction."""
        deleted = {}
        with self._store.transaction():
            if batch.process_instance_ids:
                deleted["process_instances"] = self._store.process_instances.delete_ids(
                    batch.process_instance_ids
                )
            if batch.decision_instance_ids:
                deleted["decision_instances"] = self._store.decision_instances.delete_ids(
                    batch.decision_instance_ids
                )
            if batch.case_instance_ids:
                deleted["case_instances"] = self._store.case_instances.delete_ids(
                    batch.case_instance_ids
                )
            if batch.batch_ids:
                deleted["batches"] = self._deleter.delete_batches(batch.batch_ids)
        return deleted

    @staticmethod
    def _selected_counts(batch: CleanupBatch) -> dict[str, int]:
        counts = {
            "process_instances": len(batch.process_instance_ids),
            "decision_instances": len(batch.decision_instance_ids),
            "case_instances": len(batch.case_instance_ids),
            "batches": len(batch.batch_ids),
        }
        return {kind: count for kind, count in counts.items() if count}

    def _next_run(self, batch: CleanupBatch, now: datetime) -> datetime | None:
        """
        Decide the next run.

        A batch at or above the threshold suggests more backlog, so the job
        runs again right away. Otherwise it waits for the next window opening,
        or is not rescheduled when there is no window.
        """
        if not batch.is_empty() and batch.size() >= self._config.batch_threshold:
            return now
        if self._window.is_configured():
            return self._window.next_run_at_or_after(now)
        return None
