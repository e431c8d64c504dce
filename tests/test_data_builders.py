"""Tests for data_builders.py - storage loaders and instance builders.

Test Categories:
- build_postpone_entry_from_storage(): legacy penalty default, sign handling
- build_recurrence_rule_from_storage(): schema + rule invariants
- build_task_from_storage(): full records, schema failures, invariants
- build_task(): new tasks, series ids, validation
"""

from __future__ import annotations

from datetime import date, datetime, time

import pytest

from taskcycle import const
from taskcycle.const import EndCondition, IntervalUnit, RecurrenceType, TaskStatus
from taskcycle.data_builders import (
    build_postpone_entry_from_storage,
    build_recurrence_rule_from_storage,
    build_task,
    build_task_from_storage,
)
from taskcycle.exceptions import InvalidRecord, MalformedRule
from taskcycle.models import DayOfYear
from tests.conftest import MONDAY, NOW, make_postponed_history, make_rule, make_task

# =============================================================================
# POSTPONE ENTRIES
# =============================================================================


class TestPostponeEntryLoader:
    """build_postpone_entry_from_storage()."""

    def test_missing_penalty_reads_as_legacy_default(self) -> None:
        """Entries written before penalties were recorded charged -5."""
        entry = build_postpone_entry_from_storage(
            {
                "from": "2026-01-05",
                "to": "2026-01-07",
                "postponedAt": "2026-01-05T10:00:00.000",
            }
        )

        assert entry.penalty_applied == -5
        assert entry.reason is None
        assert entry.from_date == MONDAY
        assert entry.to_date == date(2026, 1, 7)
        assert entry.postponed_at == datetime(2026, 1, 5, 10, 0)

    def test_positive_penalty_stored_negative(self) -> None:
        """A positive stored penalty is flipped."""
        entry = build_postpone_entry_from_storage(
            {
                "from": "2026-01-05",
                "to": "2026-01-07",
                "postponedAt": "2026-01-05T10:00:00",
                "penaltyApplied": 3,
                "reason": "rain",
            }
        )

        assert entry.penalty_applied == -3
        assert entry.reason == "rain"

    def test_bad_date_raises_invalid_record(self) -> None:
        """The error path names the history field."""
        with pytest.raises(InvalidRecord) as exc_info:
            build_postpone_entry_from_storage(
                {"from": "soon", "to": "2026-01-07", "postponedAt": "2026-01-05"}
            )

        assert exc_info.value.field.startswith(const.DATA_TASK_POSTPONE_HISTORY)


# =============================================================================
# RECURRENCE RULES
# =============================================================================


class TestRuleLoader:
    """build_recurrence_rule_from_storage()."""

    def test_weekly_rule(self) -> None:
        """A stored weekly rule loads into the value type."""
        rule = build_recurrence_rule_from_storage(
            {
                "type": "weekly",
                "interval": 2,
                "startDate": "2026-01-05T00:00:00.000",
                "daysOfWeek": [1, 5],
                "endCondition": "after_occurrences",
                "occurrences": 6,
            }
        )

        assert rule == make_rule(
            RecurrenceType.WEEKLY,
            interval=2,
            days_of_week={1, 5},
            end_condition=EndCondition.AFTER_OCCURRENCES,
            occurrence_limit=6,
        )

    def test_yearly_rule(self) -> None:
        """dayOfYear is a month/day object."""
        rule = build_recurrence_rule_from_storage(
            {
                "type": "yearly",
                "startDate": "2026-01-05",
                "dayOfYear": {"month": 2, "day": 29},
            }
        )

        assert rule.day_of_year == DayOfYear(2, 29)

    def test_custom_rule_unit(self) -> None:
        """Custom rules load their unit as an enum."""
        rule = build_recurrence_rule_from_storage(
            {"type": "custom", "interval": 3, "unit": "months", "startDate": "2026-01-31"}
        )

        assert rule.unit == IntervalUnit.MONTHS

    def test_null_optionals_use_defaults(self) -> None:
        """Explicit nulls behave like missing keys."""
        rule = build_recurrence_rule_from_storage(
            {
                "type": "daily",
                "startDate": "2026-01-05",
                "interval": None,
                "endCondition": None,
                "daysOfWeek": None,
                "skipWeekends": None,
                "frequency": None,
            }
        )

        assert rule.interval == 1
        assert rule.times_per_period == 1
        assert rule.end_condition == EndCondition.NEVER
        assert rule.skip_weekends is False

    @pytest.mark.parametrize(
        "data",
        [
            {"type": "hourly", "startDate": "2026-01-05"},
            {"type": "daily"},
            {"type": "daily", "startDate": "nope"},
            {"type": "daily", "startDate": "2026-01-05", "interval": 0},
            {"type": "weekly", "startDate": "2026-01-05", "daysOfWeek": [9]},
            {"type": "custom", "startDate": "2026-01-05", "unit": "fortnights"},
            {"type": "daily", "startDate": "2026-01-05", "frequency": 0},
        ],
    )
    def test_invalid_rules(self, data: dict) -> None:
        """Schema and invariant failures both surface as MalformedRule."""
        with pytest.raises(MalformedRule):
            build_recurrence_rule_from_storage(data)


# =============================================================================
# TASKS
# =============================================================================


class TestTaskLoader:
    """build_task_from_storage()."""

    def test_round_trip(self, daily_rule) -> None:
        """to_dict() output loads back to an equal task."""
        task = make_task(
            due_time=time(7, 30),
            priority=const.PRIORITY_HIGH,
            original_due_date=date(2026, 1, 3),
            postpone_count=2,
            postpone_history=make_postponed_history(-5, -2),
            points_earned=-7,
            recurrence_rule=daily_rule,
            recurrence_group_id="g",
            recurrence_index=4,
            parent_task_id="older",
        )

        assert build_task_from_storage(task.to_dict()) == task

    def test_minimal_record(self) -> None:
        """Only id and dueDate are required."""
        task = build_task_from_storage({"id": "t", "dueDate": "2026-01-05"})

        assert task.status == TaskStatus.PENDING
        assert task.priority == const.DEFAULT_PRIORITY
        assert task.title == ""
        assert task.created_at == datetime(2026, 1, 5, 0, 0)
        assert task.postpone_history == ()

    def test_priority_case_insensitive(self) -> None:
        """Stored priorities are lowercased."""
        task = build_task_from_storage(
            {"id": "t", "dueDate": "2026-01-05", "priority": "HIGH"}
        )

        assert task.priority == const.PRIORITY_HIGH

    def test_missing_due_date(self) -> None:
        """A record without dueDate is rejected with its key path."""
        with pytest.raises(InvalidRecord) as exc_info:
            build_task_from_storage({"id": "t"})

        assert exc_info.value.field == const.DATA_TASK_DUE_DATE

    def test_invariant_violation(self) -> None:
        """A completed record without completedAt is rejected."""
        with pytest.raises(InvalidRecord) as exc_info:
            build_task_from_storage(
                {"id": "t", "dueDate": "2026-01-05", "status": "completed"}
            )

        assert exc_info.value.field == "t"

    def test_bad_embedded_rule(self) -> None:
        """A broken recurrence rule raises MalformedRule."""
        with pytest.raises(MalformedRule):
            build_task_from_storage(
                {
                    "id": "t",
                    "dueDate": "2026-01-05",
                    "recurrenceRule": {"type": "monthly", "startDate": "x"},
                }
            )


class TestBuildTask:
    """build_task()."""

    def test_one_off(self) -> None:
        """A plain task gets an id and no series ids."""
        task = build_task("  Water plants ", MONDAY, now=NOW)

        assert task.id
        assert task.title == "Water plants"
        assert task.created_at == NOW
        assert task.status == TaskStatus.PENDING
        assert task.recurrence_group_id is None
        assert task.routine_group_id is None

    def test_recurring_gets_group(self, daily_rule) -> None:
        """Recurring tasks start a fresh series."""
        first = build_task("A", MONDAY, recurrence_rule=daily_rule, now=NOW)
        second = build_task("A", MONDAY, recurrence_rule=daily_rule, now=NOW)

        assert first.recurrence_group_id is not None
        assert first.recurrence_group_id != second.recurrence_group_id
        assert first.recurrence_index == 0

    def test_none_rule_has_no_group(self) -> None:
        """A rule of type none does not start a series."""
        task = build_task(
            "A", MONDAY, recurrence_rule=make_rule(RecurrenceType.NONE), now=NOW
        )

        assert task.recurrence_group_id is None

    def test_routine_groups_by_own_id(self, daily_rule) -> None:
        """Routines use their own id and start the countdown at creation."""
        task = build_task(
            "Stretch", MONDAY, recurrence_rule=daily_rule, is_routine=True, now=NOW
        )

        assert task.routine_group_id == task.id
        assert task.recurrence_group_id is None
        assert task.routine_progress_start == NOW

    @pytest.mark.parametrize(
        ("title", "priority", "field"),
        [
            ("   ", const.PRIORITY_LOW, const.DATA_TASK_TITLE),
            ("A", "urgent", const.DATA_TASK_PRIORITY),
        ],
    )
    def test_invalid_input(self, title: str, priority: str, field: str) -> None:
        """Blank titles and unknown priorities are rejected."""
        with pytest.raises(InvalidRecord) as exc_info:
            build_task(title, MONDAY, priority=priority, now=NOW)

        assert exc_info.value.field == field
