"""Scoring Engine - Pure logic for task points and ledger management.

This engine provides stateless, pure Python functions for:
- Reward derivation from priority multipliers
- Penalty normalization (penalties are always stored negative)
- Postpone penalty totals and running point totals
- Ledger entry creation and pruning

ARCHITECTURE: This is a pure logic engine. All functions are static methods
that operate on passed-in data. Persistence of ledger entries belongs to
TaskStore.
"""

from __future__ import annotations

from collections.abc import Iterable
from datetime import datetime, timedelta
from typing import TYPE_CHECKING

from .. import const
from ..utils.dt_utils import dt_format_iso, dt_now_local, dt_parse
from ..utils.math_utils import apply_multiplier

if TYPE_CHECKING:
    from ..config import EngineConfig
    from ..models import PostponeEntry, Task
    from ..type_defs import LedgerEntry


class ScoringEngine:
    """Pure logic engine for point calculations and ledger operations.

    All methods are static - no instance state.

    Transaction Sources (for ledger entries):
        - POINTS_SOURCE_COMPLETION: Reward for completing a task
        - POINTS_SOURCE_NOT_DONE: Penalty for marking a task not done
        - POINTS_SOURCE_POSTPONE: Penalty charged by a postpone
        - POINTS_SOURCE_UNDO: Reversal of an earlier transition

    Reference IDs point at the task the transaction belongs to.
    """

    @staticmethod
    def normalize_penalty(value: int) -> int:
        """Force a penalty to be zero or negative.

        Callers may pass either sign; a positive value is flipped.

        Examples:
            normalize_penalty(5) → -5
            normalize_penalty(-5) → -5
        """
        return -abs(int(value))

    @staticmethod
    def reward_for(priority: str, config: EngineConfig) -> int:
        """Reward for completing a task of the given priority.

        Args:
            priority: low / medium / high
            config: Engine options (base reward and multipliers)

        Returns:
            Integer reward (base reward scaled by the priority multiplier)
        """
        return apply_multiplier(config.reward_on_done, config.multiplier_for(priority))

    @staticmethod
    def sum_postpone_penalties(history: Iterable[PostponeEntry]) -> int:
        """Total of penalty_applied across a postpone history (<= 0)."""
        return sum(entry.penalty_applied for entry in history)

    @staticmethod
    def pending_points(task: Task) -> int:
        """Points a pending task carries: its accumulated postpone penalties."""
        return ScoringEngine.sum_postpone_penalties(task.postpone_history)

    @staticmethod
    def total_points(tasks: Iterable[Task]) -> int:
        """Running point total across tasks.

        Archived (postponed) records are skipped: their points are carried
        by the live child that replaced them.
        """
        return sum(task.points_earned for task in tasks if not task.is_archived)

    @staticmethod
    def create_ledger_entry(
        current_balance: int,
        delta: int,
        source: str,
        reference_id: str | None = None,
        item_name: str | None = None,
        now: datetime | None = None,
    ) -> LedgerEntry:
        """Create an immutable ledger entry for a transaction.

        Args:
            current_balance: Balance BEFORE the transaction
            delta: Amount to add (positive) or subtract (negative)
            source: Transaction source (POINTS_SOURCE_*)
            reference_id: Optional id of the related task
            item_name: Optional task title
            now: Timestamp override for deterministic tests

        Returns:
            LedgerEntry TypedDict with transaction details
        """
        entry: LedgerEntry = {
            const.DATA_LEDGER_TIMESTAMP: dt_format_iso(now or dt_now_local()),
            const.DATA_LEDGER_AMOUNT: delta,
            const.DATA_LEDGER_BALANCE_AFTER: current_balance + delta,
            const.DATA_LEDGER_SOURCE: source,
            const.DATA_LEDGER_REFERENCE_ID: reference_id,
        }  # type: ignore[assignment]
        if item_name:
            entry[const.DATA_LEDGER_ITEM_NAME] = item_name  # type: ignore[literal-required]
        return entry

    @staticmethod
    def prune_ledger(
        ledger: list[LedgerEntry],
        max_entries: int = const.DEFAULT_MAX_LEDGER_ENTRIES,
        max_age_days: int | None = None,
        now: datetime | None = None,
    ) -> list[LedgerEntry]:
        """Trim ledger to maximum entries, keeping most recent.

        Modifies the list in place and returns it for convenience.
        Newest entries are at the END of the list (append order).

        Args:
            ledger: List of ledger entries to prune
            max_entries: Maximum entries to keep
            max_age_days: Optional age-based retention window in days
            now: Optional current time override for deterministic tests

        Returns:
            The pruned ledger list (same object, modified in place)
        """
        if max_age_days is not None and max_age_days > 0:
            cutoff = (now or dt_now_local()) - timedelta(days=max_age_days)
            retained = []
            for entry in ledger:
                parsed = dt_parse(entry.get(const.DATA_LEDGER_TIMESTAMP))
                # Entries with unreadable timestamps are kept
                if parsed is None or parsed >= cutoff:
                    retained.append(entry)
            if len(retained) != len(ledger):
                ledger[:] = retained

        if len(ledger) > max_entries:
            # Remove oldest entries (beginning of list)
            del ledger[: len(ledger) - max_entries]
        return ledger
