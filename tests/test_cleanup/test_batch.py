"""
Tests for cleanup batch assembly.

Tests cover:
- Priority order and short-circuiting once the budget is used up
- Enable flags for decision and case instances
- Retention map gating of historic batches
- Budget invariant, including sources that over-return
"""

from datetime import datetime
from unittest.mock import MagicMock

import pytest

from history_cleanup.cleanup.batch import CleanupBatch, CleanupBatchBuilder, CleanupSources
from history_cleanup.utils.clock import FrozenClock

NOW = datetime(2024, 3, 1, 23, 0)


def ids(prefix: str, count: int) -> list[str]:
    return [f"{prefix}-{i}" for i in range(count)]


def source(available: list[str]) -> MagicMock:
    """Mock source returning up to `limit` of the available ids."""
    mock = MagicMock()
    mock.find_ids_for_cleanup.side_effect = lambda limit, now, retention=None: available[:limit]
    return mock


def make_sources(
    process=(),
    decision=(),
    case=(),
    batches=(),
    dmn_enabled=True,
    cmmn_enabled=True,
    batch_retention=None,
) -> CleanupSources:
    return CleanupSources(
        process_instances=source(list(process)),
        decision_instances=source(list(decision)),
        case_instances=source(list(case)),
        batches=source(list(batches)),
        dmn_enabled=dmn_enabled,
        cmmn_enabled=cmmn_enabled,
        batch_retention=batch_retention if batch_retention is not None else {"migration": 5},
    )


@pytest.fixture
def builder():
    return CleanupBatchBuilder(clock=FrozenClock(NOW))


class TestCleanupBatch:
    """Tests for the CleanupBatch aggregate."""

    def test_empty_by_default(self):
        """A new batch should be empty."""
        batch = CleanupBatch()

        assert batch.is_empty()
        assert batch.size() == 0
        assert len(batch) == 0

    def test_size_counts_all_kinds(self):
        """Size should count ids of every record kind."""
        batch = CleanupBatch(
            process_instance_ids=["p1", "p2"],
            decision_instance_ids=["d1"],
            case_instance_ids=["c1"],
            batch_ids=["b1", "b2", "b3"],
        )

        assert batch.size() == 7
        assert not batch.is_empty()

    def test_to_dict(self):
        """Batch should serialize ids and size."""
        batch = CleanupBatch(process_instance_ids=["p1"])

        data = batch.to_dict()

        assert data["process_instance_ids"] == ["p1"]
        assert data["batch_ids"] == []
        assert data["size"] == 1


class TestCleanupBatchBuilder:
    """Tests for CleanupBatchBuilder.build_next_batch."""

    def test_process_instances_fill_budget(self, builder):
        """Budget satisfied by process instances: no other source is queried."""
        sources = make_sources(
            process=ids("p", 10),
            decision=ids("d", 10),
            case=ids("c", 10),
            batches=ids("b", 10),
        )

        batch = builder.build_next_batch(10, sources)

        assert batch.process_instance_ids == ids("p", 10)
        assert batch.decision_instance_ids == []
        assert batch.case_instance_ids == []
        assert batch.batch_ids == []
        sources.process_instances.find_ids_for_cleanup.assert_called_once_with(10, NOW)
        sources.decision_instances.find_ids_for_cleanup.assert_not_called()
        sources.case_instances.find_ids_for_cleanup.assert_not_called()
        sources.batches.find_ids_for_cleanup.assert_not_called()

    def test_fills_remaining_budget_in_priority_order(self, builder):
        """4 process + 3 decision, case disabled, batches fill the last 3."""
        sources = make_sources(
            process=ids("p", 4),
            decision=ids("d", 3),
            case=ids("c", 5),
            batches=ids("b", 7),
            cmmn_enabled=False,
        )

        batch = builder.build_next_batch(10, sources)

        assert batch.process_instance_ids == ids("p", 4)
        assert batch.decision_instance_ids == ids("d", 3)
        assert batch.case_instance_ids == []
        assert batch.batch_ids == ids("b", 3)
        assert batch.size() == 10
        sources.decision_instances.find_ids_for_cleanup.assert_called_once_with(6, NOW)
        sources.case_instances.find_ids_for_cleanup.assert_not_called()
        sources.batches.find_ids_for_cleanup.assert_called_once_with(
            3, NOW, retention={"migration": 5}
        )

    def test_batch_source_with_fewer_ids(self, builder):
        """Batches should fill only what their source returns."""
        sources = make_sources(
            process=ids("p", 4),
            decision=ids("d", 3),
            batches=ids("b", 1),
            cmmn_enabled=False,
        )

        batch = builder.build_next_batch(10, sources)

        assert batch.batch_ids == ["b-0"]
        assert batch.size() == 8

    def test_case_instances_queried_when_enabled(self, builder):
        """Case instances should get the remaining budget when enabled."""
        sources = make_sources(process=ids("p", 2), decision=ids("d", 2), case=ids("c", 2))

        batch = builder.build_next_batch(10, sources)

        assert batch.case_instance_ids == ids("c", 2)
        sources.case_instances.find_ids_for_cleanup.assert_called_once_with(6, NOW)

    def test_dmn_disabled_skips_decision_instances(self, builder):
        """Disabled DMN should skip the decision source."""
        sources = make_sources(decision=ids("d", 5), dmn_enabled=False)

        batch = builder.build_next_batch(10, sources)

        assert batch.decision_instance_ids == []
        sources.decision_instances.find_ids_for_cleanup.assert_not_called()

    def test_empty_retention_skips_batches(self, builder):
        """Historic batches are only queried with a non-empty retention map."""
        sources = make_sources(batches=ids("b", 5), batch_retention={})

        batch = builder.build_next_batch(10, sources)

        assert batch.batch_ids == []
        sources.batches.find_ids_for_cleanup.assert_not_called()

    def test_nothing_ready_returns_empty_batch(self, builder):
        """No ready records should give an empty batch."""
        sources = make_sources()

        batch = builder.build_next_batch(10, sources)

        assert batch.is_empty()
        sources.process_instances.find_ids_for_cleanup.assert_called_once()
        sources.decision_instances.find_ids_for_cleanup.assert_called_once()
        sources.case_instances.find_ids_for_cleanup.assert_called_once()
        sources.batches.find_ids_for_cleanup.assert_called_once()

    def test_zero_budget(self, builder):
        """Zero budget should give an empty batch."""
        sources = make_sources(process=ids("p", 3), decision=ids("d", 3))

        batch = builder.build_next_batch(0, sources)

        assert batch.is_empty()
        sources.decision_instances.find_ids_for_cleanup.assert_not_called()

    def test_negative_budget_rejected(self, builder):
        """Negative budget should raise ValueError."""
        with pytest.raises(ValueError):
            builder.build_next_batch(-1, make_sources())

    def test_over_returning_source_is_truncated(self, builder):
        """A source ignoring its limit cannot push the batch over budget."""
        sources = make_sources()
        sources.process_instances.find_ids_for_cleanup.side_effect = None
        sources.process_instances.find_ids_for_cleanup.return_value = ids("p", 8)

        batch = builder.build_next_batch(5, sources)

        assert batch.process_instance_ids == ids("p", 5)
        assert batch.size() == 5

    @pytest.mark.parametrize("budget", [0, 1, 3, 7, 10, 25])
    @pytest.mark.parametrize("dmn_enabled", [True, False])
    @pytest.mark.parametrize("cmmn_enabled", [True, False])
    def test_batch_never_exceeds_budget(self, builder, budget, dmn_enabled, cmmn_enabled):
        """Batch size should never exceed the budget."""
        sources = make_sources(
            process=ids("p", 4),
            decision=ids("d", 4),
            case=ids("c", 4),
            batches=ids("b", 4),
            dmn_enabled=dmn_enabled,
            cmmn_enabled=cmmn_enabled,
        )

        batch = builder.build_next_batch(budget, sources)

        assert batch.size() <= budget

    def test_uses_clock_for_reference_time(self):
        """Sources should receive the builder clock's time."""
        clock = FrozenClock(NOW)
        builder = CleanupBatchBuilder(clock=clock)
        clock.advance(days=1)
        sources = make_sources()

        builder.build_next_batch(5, sources)

        _, now = sources.process_instances.find_ids_for_cleanup.call_args.args
        assert now == datetime(2024, 3, 2, 23, 0)
