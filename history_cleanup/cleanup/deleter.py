"""
Cascading deletion of historic batch aggregates.

Incidents and job logs reference historic batches, so they are removed
before the batches themselves.
"""

from __future__ import annotations

from typing import Protocol, Sequence

from loguru import logger


class BatchDeletionRepository(Protocol):
    """Storage operations needed to delete historic batches."""

    def delete_incidents_by_batch_ids(self, ids: Sequence[str]) -> int: ...

    def delete_job_logs_by_batch_ids(self, ids: Sequence[str]) -> int: ...

    def delete_batch_aggregates_preserving_order(self, ids: Sequence[str]) -> int: ...


class CascadingBatchDeleter:
    """
    Deletes historic batches together with the records that reference them.

    Errors from the repository propagate unchanged. Retrying is left to the
    job executor and atomicity to the caller's transaction.
    """

    def __init__(self, repository: BatchDeletionRepository):
        self._repository = repository

    def delete_batches(self, ids: Sequence[str]) -> int:
        """
        Delete incidents, job logs and then the batches for ``ids``.

        Args:
            ids: Historic batch ids; batches are deleted in this order

        Returns:
            Number of historic batches deleted
        """
        ids = list(ids)
        if not ids:
            return 0

        incidents = self._repository.delete_incidents_by_batch_ids(ids)
        job_logs = self._repository.delete_job_logs_by_batch_ids(ids)
        batches = self._repository.delete_batch_aggregates_preserving_order(ids)

        logger.info(
            f"Deleted {batches} historic batches "
            f"(incidents={incidents}, job_logs={job_logs})"
        )
        return batches
