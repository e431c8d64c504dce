"""Tests for ScoringEngine - pure points logic, no store needed.

Test Categories:
- Penalty normalization
- Reward derivation from priority multipliers
- Pending points and running totals
- Ledger entry creation and pruning
"""

from __future__ import annotations

from datetime import datetime, timedelta

import pytest

from taskcycle import const
from taskcycle.config import EngineConfig
from taskcycle.const import TaskStatus
from taskcycle.engines.scoring_engine import ScoringEngine
from tests.conftest import NOW, completed, make_postponed_history, make_task

# =============================================================================
# TEST: PENALTIES AND REWARDS
# =============================================================================


class TestPenaltyNormalization:
    """Penalties are always charged as zero or negative."""

    @pytest.mark.parametrize(
        ("value", "expected"), [(5, -5), (-5, -5), (0, 0), (-12, -12)]
    )
    def test_normalize_penalty(self, value: int, expected: int) -> None:
        """Either sign is accepted; the result is never positive."""
        assert ScoringEngine.normalize_penalty(value) == expected


class TestRewards:
    """Reward derivation."""

    @pytest.mark.parametrize(
        ("priority", "expected"),
        [
            (const.PRIORITY_LOW, 5),
            (const.PRIORITY_MEDIUM, 10),
            (const.PRIORITY_HIGH, 15),
        ],
    )
    def test_default_multipliers(
        self, config: EngineConfig, priority: str, expected: int
    ) -> None:
        """The base reward is scaled by the priority multiplier."""
        assert ScoringEngine.reward_for(priority, config) == expected

    def test_custom_multiplier_rounds_half_away(self) -> None:
        """7 * 1.5 = 10.5 rounds to 11, not banker's 10."""
        config = EngineConfig.from_options(
            {
                const.CONF_REWARD_ON_DONE: 7,
                const.CONF_PRIORITY_MULTIPLIERS: {const.PRIORITY_HIGH: 1.5},
            }
        )

        assert ScoringEngine.reward_for(const.PRIORITY_HIGH, config) == 11


# =============================================================================
# TEST: TOTALS
# =============================================================================


class TestTotals:
    """Pending points and running totals."""

    def test_pending_points_is_penalty_sum(self) -> None:
        """A pending task carries its accumulated postpone penalties."""
        task = make_task(
            postpone_count=3,
            postpone_history=make_postponed_history(-5, -5, -2),
            points_earned=-12,
        )

        assert ScoringEngine.pending_points(task) == -12
        assert ScoringEngine.sum_postpone_penalties(task.postpone_history) == -12

    def test_total_skips_archived_records(self) -> None:
        """Postponed parents are carried by their children."""
        history = make_postponed_history(-5)
        archived = make_task(
            "parent",
            status=TaskStatus.POSTPONED,
            postpone_count=1,
            postpone_history=history,
            points_earned=-5,
        )
        child = make_task(
            "child",
            postpone_count=1,
            postpone_history=history,
            points_earned=-5,
            parent_task_id="parent",
        )
        done = completed(make_task("done"), NOW, points=15)

        assert ScoringEngine.total_points([archived, child, done]) == 10

    def test_total_of_nothing(self) -> None:
        """An empty task set totals zero."""
        assert ScoringEngine.total_points([]) == 0


# =============================================================================
# TEST: LEDGER
# =============================================================================


class TestLedger:
    """Ledger entry creation and pruning."""

    def test_create_ledger_entry(self) -> None:
        """Entries record amount, resulting balance and the reference."""
        entry = ScoringEngine.create_ledger_entry(
            20,
            -5,
            const.POINTS_SOURCE_POSTPONE,
            reference_id="task-1",
            item_name="Water plants",
            now=NOW,
        )

        assert entry[const.DATA_LEDGER_TIMESTAMP] == "2026-01-05T09:00:00"
        assert entry[const.DATA_LEDGER_AMOUNT] == -5
        assert entry[const.DATA_LEDGER_BALANCE_AFTER] == 15
        assert entry[const.DATA_LEDGER_SOURCE] == const.POINTS_SOURCE_POSTPONE
        assert entry[const.DATA_LEDGER_REFERENCE_ID] == "task-1"
        assert entry[const.DATA_LEDGER_ITEM_NAME] == "Water plants"

    def test_entry_without_item_name(self) -> None:
        """item_name is omitted when not given."""
        entry = ScoringEngine.create_ledger_entry(
            0, 10, const.POINTS_SOURCE_COMPLETION, now=NOW
        )

        assert const.DATA_LEDGER_ITEM_NAME not in entry
        assert entry[const.DATA_LEDGER_REFERENCE_ID] is None

    def test_prune_keeps_newest(self) -> None:
        """Oldest entries (front of the list) are dropped first."""
        ledger = [
            ScoringEngine.create_ledger_entry(
                i, 1, const.POINTS_SOURCE_COMPLETION, now=NOW + timedelta(minutes=i)
            )
            for i in range(5)
        ]

        pruned = ScoringEngine.prune_ledger(ledger, max_entries=3)

        assert pruned is ledger
        assert [e[const.DATA_LEDGER_BALANCE_AFTER] for e in pruned] == [3, 4, 5]

    def test_prune_by_age(self) -> None:
        """Entries older than the retention window are dropped."""
        old = ScoringEngine.create_ledger_entry(
            0, 1, const.POINTS_SOURCE_COMPLETION, now=datetime(2025, 1, 1)
        )
        recent = ScoringEngine.create_ledger_entry(
            1, 1, const.POINTS_SOURCE_COMPLETION, now=NOW - timedelta(days=2)
        )
        unreadable = {**recent, const.DATA_LEDGER_TIMESTAMP: "garbage"}
        ledger = [old, recent, unreadable]

        ScoringEngine.prune_ledger(ledger, max_entries=50, max_age_days=30, now=NOW)

        assert ledger == [recent, unreadable]
