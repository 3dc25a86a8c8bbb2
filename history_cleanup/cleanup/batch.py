"""
Cleanup batch assembly.

A cleanup batch is the bounded set of historical record ids removed in one
cleanup cycle. Record kinds are queried in a fixed priority order (process
instances, decision instances, case instances, historic batches) until the
batch size budget is used up.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Mapping, Protocol

from loguru import logger

from history_cleanup.utils.clock import Clock, system_clock


class RecordKindSource(Protocol):
    """
    Cleanup query capability of one historical record kind.

    ``find_ids_for_cleanup`` must return at most ``limit`` ids, ordered
    oldest-finished-first, so repeated cycles drain the backlog fairly.
    """

    def find_ids_for_cleanup(
        self,
        limit: int,
        now: datetime,
        retention: Mapping[str, int] | None = None,
    ) -> list[str]: ...


@dataclass
class CleanupSources:
    """
    Record kind sources available to the batch builder.

    Attributes:
        process_instances: Historic process instance source
        decision_instances: Historic decision instance source
        case_instances: Historic case instance source
        batches: Historic batch aggregate source
        dmn_enabled: Whether decision instances are queried
        cmmn_enabled: Whether case instances are queried
        batch_retention: Operation type -> history time to live (days);
            historic batches are only queried when non-empty
    """

    process_instances: RecordKindSource
    decision_instances: RecordKindSource
    case_instances: RecordKindSource
    batches: RecordKindSource
    dmn_enabled: bool = True
    cmmn_enabled: bool = True
    batch_retention: Mapping[str, int] = field(default_factory=dict)


@dataclass
class CleanupBatch:
    """
    Ids selected for deletion in one cleanup cycle, per record kind.

    Created fresh for every cycle and discarded once deleted.
    """

    process_instance_ids: list[str] = field(default_factory=list)
    decision_instance_ids: list[str] = field(default_factory=list)
    case_instance_ids: list[str] = field(default_factory=list)
    batch_ids: list[str] = field(default_factory=list)

    def size(self) -> int:
        """Total number of ids across all record kinds."""
        return (
            len(self.process_instance_ids)
            + len(self.decision_instance_ids)
            + len(self.case_instance_ids)
            + len(self.batch_ids)
        )

    def __len__(self) -> int:
        return self.size()

    def is_empty(self) -> bool:
        return self.size() == 0

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "process_instance_ids": list(self.process_instance_ids),
            "decision_instance_ids": list(self.decision_instance_ids),
            "case_instance_ids": list(self.case_instance_ids),
            "batch_ids": list(self.batch_ids),
            "size": self.size(),
        }


class CleanupBatchBuilder:
    """
    Greedy, priority-ordered builder for cleanup batches.

    Each source is asked only for the budget left over by the sources before
    it, so the highest-priority backlog is always drained first and a cycle
    never selects more than the budget.
    """

    def __init__(self, clock: Clock | None = None):
        """
        Initialize the builder.

        Args:
            clock: Time provider for the cleanup reference time
        """
        self._clock = clock or system_clock

    def build_next_batch(self, budget: int, sources: CleanupSources) -> CleanupBatch:
        """
        Assemble the next cleanup batch.

        Args:
            budget: Maximum number of ids in the batch
            sources: Record kind sources and their enable flags

        Returns:
            CleanupBatch, empty when nothing is ready for cleanup

        Raises:
            ValueError: If budget is negative
        """
        if budget < 0:
            raise ValueError(f"Batch size budget must be non-negative, got {budget}")

        now = self._clock()
        batch = CleanupBatch()
        remaining = budget

        ids = self._query(sources.process_instances, "process instances", remaining, now)
        if ids:
            batch.process_instance_ids = ids
            remaining -= len(ids)

        if remaining > 0 and sources.dmn_enabled:
            ids = self._query(sources.decision_instances, "decision instances", remaining, now)
            if ids:
                batch.decision_instance_ids = ids
                remaining -= len(ids)

        if remaining > 0 and sources.cmmn_enabled:
            ids = self._query(sources.case_instances, "case instances", remaining, now)
            if ids:
                batch.case_instance_ids = ids
                remaining -= len(ids)

        if remaining > 0 and sources.batch_retention:
            ids = self._query(
                sources.batches,
                "historic batches",
                remaining,
                now,
                retention=sources.batch_retention,
            )
            if ids:
                batch.batch_ids = ids
                remaining -= len(ids)

        logger.info(f"Built cleanup batch with {batch.size()} of {budget} ids")
        return batch

    def _query(
        self,
        source: RecordKindSource,
        kind: str,
        limit: int,
        now: datetime,
        retention: Mapping[str, int] | None = None,
    ) -> list[str]:
        """Query one source, clipping results that exceed the limit."""
        if retention is None:
            ids = list(source.find_ids_for_cleanup(limit, now))
        else:
            ids = list(source.find_ids_for_cleanup(limit, now, retention=retention))

        if len(ids) > limit:
            logger.warning(f"Source for {kind} returned {len(ids)} ids for limit {limit}; truncating")
            ids = ids[:limit]

        logger.debug(f"Found {len(ids)} {kind} ready for cleanup (limit {limit})")
        return ids
