"""Statistics Engine - Read-only progress and history derived from task series.

This engine derives reporting values from the instances of a recurring task
or routine:
- Average interval between consecutive completions
- Countdown progress of the next scheduled instance
- Completion streaks
- Per-series summaries (RoutineStats), status counts and point totals

Design Principles:
    - Stateless: operates on the Task values passed in
    - Consistent: one duration formatter for "time until" and "time since"
    - Archived (postponed) records never count twice; their live child
      carries their history and points
"""

from __future__ import annotations

from collections import Counter
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import TYPE_CHECKING

from ..config import EngineConfig
from ..const import TaskStatus
from ..utils.dt_utils import (
    as_date,
    dt_format_duration,
    dt_format_interval_days,
    dt_now_local,
    dt_time_since,
    dt_time_until,
)
from ..utils.math_utils import calculate_percentage, clamp, safe_ratio
from .scoring_engine import ScoringEngine

if TYPE_CHECKING:
    from ..models import Task

_SECONDS_PER_DAY = 86400.0


@dataclass(frozen=True)
class ProgressSnapshot:
    """Countdown progress of one scheduled instance.

    Attributes:
        ratio: Elapsed share of the window, clamped to [0, cap]; > 1.0 is overdue
        start: Window start (previous completion or series start)
        due: Due moment of the instance
        elapsed: now - start
        remaining: due - now (negative once overdue)
        is_overdue: now is past the due moment
    """

    ratio: float
    start: datetime
    due: datetime
    elapsed: timedelta
    remaining: timedelta
    is_overdue: bool

    @property
    def display_ratio(self) -> float:
        """Ratio limited to the 0-1 in-progress range."""
        return min(self.ratio, 1.0)

    @property
    def percent(self) -> float:
        """Display ratio as a percentage."""
        return calculate_percentage(self.display_ratio, 1.0)

    @property
    def countdown_text(self) -> str:
        """Remaining time, or time overdue, in compact form."""
        return dt_format_duration(self.remaining)


@dataclass(frozen=True)
class RoutineStats:
    """Summary of a routine or recurring series."""

    total: int
    completed: int
    upcoming: int
    average_interval_days: float
    last_completed_at: datetime | None
    next_scheduled_at: datetime | None
    next_task: Task | None
    has_time: bool
    progress: ProgressSnapshot | None

    @property
    def average_interval_text(self) -> str:
        """Average interval in compact form ("—" when undefined)."""
        return dt_format_interval_days(self.average_interval_days)


class StatisticsEngine:
    """Engine for progress ratios, intervals, streaks and series summaries.

    All methods are stateless apart from the engine options (default due time,
    progress cap, streak lookback).

    Example:
        stats = StatisticsEngine(config)
        summary = stats.routine_stats(store.list_tasks_by_group(group_id), now)
        summary.progress.ratio  # 0.4 -> 40% of the countdown elapsed
    """

    def __init__(self, config: EngineConfig | None = None) -> None:
        """Initialize with engine options (defaults if omitted)."""
        self._config = config or EngineConfig()

    # ────────────────────────────────────────────────────────────────
    # Completions and intervals
    # ────────────────────────────────────────────────────────────────

    @staticmethod
    def completion_times(tasks: Iterable[Task]) -> list[datetime]:
        """Sorted completion timestamps of completed tasks."""
        return sorted(
            task.completed_at
            for task in tasks
            if task.status == TaskStatus.COMPLETED and task.completed_at is not None
        )

    def average_interval_days(self, tasks: Iterable[Task]) -> float:
        """Mean gap between consecutive completions, in fractional days.

        Returns:
            Average interval, or 0.0 with fewer than two completions
        """
        times = self.completion_times(tasks)
        if len(times) < 2:
            return 0.0
        span = (times[-1] - times[0]).total_seconds() / _SECONDS_PER_DAY
        return span / (len(times) - 1)

    def streak(self, tasks: Iterable[Task], today: date | None = None) -> int:
        """Consecutive days, walking back from today, with a completion.

        A day without any completion ends the streak, so a streak that does
        not include today is 0.
        """
        reference = today or dt_now_local().date()
        completion_days = {stamp.date() for stamp in self.completion_times(tasks)}

        count = 0
        day = reference
        while count < self._config.streak_lookback_days and day in completion_days:
            count += 1
            day -= timedelta(days=1)
        return count

    # ────────────────────────────────────────────────────────────────
    # Progress
    # ────────────────────────────────────────────────────────────────

    def progress(
        self,
        task: Task,
        now: datetime,
        previous_completion: datetime | None = None,
    ) -> ProgressSnapshot:
        """Countdown progress of a scheduled instance.

        The window starts at the later of the previous completion and the
        instance's own start (routine progress start, else creation time),
        and ends at its due moment (default due time when none is set).

        Args:
            task: The scheduled (usually pending) instance
            now: Reference time
            previous_completion: Last completion of the series, if any

        Returns:
            ProgressSnapshot; ratio is 1.0 when the window is empty or negative
        """
        start = task.routine_progress_start or task.created_at
        if previous_completion is not None and previous_completion > start:
            start = previous_completion
        due = task.due_datetime(self._config.default_due_time)

        total = (due - start).total_seconds()
        elapsed = now - start
        ratio = safe_ratio(elapsed.total_seconds(), total, default=1.0)
        ratio = clamp(ratio, 0.0, self._config.progress_ratio_cap)

        return ProgressSnapshot(
            ratio=ratio,
            start=start,
            due=due,
            elapsed=elapsed,
            remaining=due - now,
            is_overdue=now > due,
        )

    def routine_progress(
        self, group_tasks: Iterable[Task], now: datetime
    ) -> ProgressSnapshot | None:
        """Progress of the next pending instance of a series (None if none)."""
        tasks = list(group_tasks)
        next_task = self._next_pending(tasks)
        if next_task is None:
            return None
        return self.progress(next_task, now, self._last_completion(tasks, now))

    # ────────────────────────────────────────────────────────────────
    # Series summary
    # ────────────────────────────────────────────────────────────────

    def routine_stats(
        self, group_tasks: Iterable[Task], now: datetime | None = None
    ) -> RoutineStats:
        """Summarize a routine or recurring series.

        Args:
            group_tasks: Every instance of the series (any status)
            now: Reference time (defaults to now)

        Returns:
            RoutineStats for the live (non-archived) instances
        """
        current = now or dt_now_local()
        live = [task for task in group_tasks if not task.is_archived]
        completed = [task for task in live if task.status == TaskStatus.COMPLETED]
        upcoming = [task for task in live if task.status == TaskStatus.PENDING]

        next_task = self._next_pending(live)
        last_completed_at = self._last_completion(live, None)
        progress = None
        next_scheduled_at = None
        if next_task is not None:
            next_scheduled_at = next_task.due_datetime(self._config.default_due_time)
            progress = self.progress(
                next_task, current, self._last_completion(live, current)
            )

        return RoutineStats(
            total=len(live),
            completed=len(completed),
            upcoming=len(upcoming),
            average_interval_days=self.average_interval_days(completed),
            last_completed_at=last_completed_at,
            next_scheduled_at=next_scheduled_at,
            next_task=next_task,
            has_time=next_task is not None and next_task.due_time is not None,
            progress=progress,
        )

    def time_until_next(
        self, group_tasks: Iterable[Task], now: datetime | None = None
    ) -> str | None:
        """Countdown to the next pending instance (None if none or overdue)."""
        next_task = self._next_pending(list(group_tasks))
        if next_task is None:
            return None
        return dt_time_until(next_task.due_datetime(self._config.default_due_time), now)

    def time_since_last(
        self, group_tasks: Iterable[Task], now: datetime | None = None
    ) -> str | None:
        """Elapsed time since the latest completion (None if never completed)."""
        return dt_time_since(self._last_completion(list(group_tasks), None), now)

    # ────────────────────────────────────────────────────────────────
    # Aggregates
    # ────────────────────────────────────────────────────────────────

    @staticmethod
    def status_counts(tasks: Iterable[Task]) -> dict[TaskStatus, int]:
        """Number of tasks per status (every status present, zero-filled)."""
        counts = Counter(task.status for task in tasks)
        return {status: counts.get(status, 0) for status in TaskStatus}

    @staticmethod
    def total_points(tasks: Iterable[Task]) -> int:
        """Running point total, excluding archived postponed records."""
        return ScoringEngine.total_points(tasks)

    @staticmethod
    def points_by_day(tasks: Iterable[Task]) -> dict[date, int]:
        """Point changes bucketed by the day they happened.

        Postpone penalties land on the day of the postpone; completion rewards
        and not-done penalties on the day of that transition.
        """
        buckets: Counter[date] = Counter()
        for task in tasks:
            if task.is_archived:
                continue
            for entry in task.postpone_history:
                buckets[as_date(entry.postponed_at)] += entry.penalty_applied
            terminal_points = task.points_earned - ScoringEngine.pending_points(task)
            if task.status == TaskStatus.COMPLETED and task.completed_at:
                buckets[task.completed_at.date()] += terminal_points
            elif task.status == TaskStatus.NOT_DONE and task.not_done_at:
                buckets[task.not_done_at.date()] += terminal_points
        return dict(sorted(buckets.items()))

    # ────────────────────────────────────────────────────────────────
    # Internal helpers
    # ────────────────────────────────────────────────────────────────

    def _next_pending(self, tasks: list[Task]) -> Task | None:
        """Earliest-due pending instance."""
        pending = [task for task in tasks if task.status == TaskStatus.PENDING]
        if not pending:
            return None
        return min(
            pending, key=lambda task: task.due_datetime(self._config.default_due_time)
        )

    @staticmethod
    def _last_completion(tasks: list[Task], before: datetime | None) -> datetime | None:
        """Latest completion timestamp (optionally not after `before`)."""
        times = [
            stamp
            for stamp in StatisticsEngine.completion_times(tasks)
            if before is None or stamp <= before
        ]
        return times[-1] if times else None
