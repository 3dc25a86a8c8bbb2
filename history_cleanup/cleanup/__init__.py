"""
History cleanup scheduling and deletion.

Usage:
    from history_cleanup.cleanup import BatchWindow, HistoryCleanupJob

    window = BatchWindow.from_config("22:00", "06:00")
    if window.is_within(now):
        ...

    job = HistoryCleanupJob(config, store)
    result = job.execute()
"""

from history_cleanup.cleanup.window import (
    BatchWindow,
    TimeOfDay,
    is_within_batch_window,
    next_run_within_batch_window,
    parse_time_of_day,
)
from history_cleanup.cleanup.batch import (
    CleanupBatch,
    CleanupBatchBuilder,
    CleanupSources,
    RecordKindSource,
)
from history_cleanup.cleanup.deleter import BatchDeletionRepository, CascadingBatchDeleter
from history_cleanup.cleanup.job import CleanupResult, HistoryCleanupJob

__all__ = [
    "BatchWindow",
    "TimeOfDay",
    "is_within_batch_window",
    "next_run_within_batch_window",
    "parse_time_of_day",
    "CleanupBatch",
    "CleanupBatchBuilder",
    "CleanupSources",
    "RecordKindSource",
    "BatchDeletionRepository",
    "CascadingBatchDeleter",
    "CleanupResult",
    "HistoryCleanupJob",
]
