"""Tests for the frozen value types in models.py.

Test Categories:
- RecurrenceRule validation (MalformedRule) and normalization
- RecurrenceRule serialization
- Task invariants and derived properties
- PostponeEntry / Task serialization to the stored camelCase layout
"""

from __future__ import annotations

from dataclasses import FrozenInstanceError
from datetime import date, datetime, time

import pytest

from taskcycle import const
from taskcycle.const import EndCondition, RecurrenceType, TaskKind, TaskStatus
from taskcycle.exceptions import MalformedRule
from taskcycle.data_builders import build_recurrence_rule_from_storage
from taskcycle.models import DayOfYear, RecurrenceRule
from tests.conftest import MONDAY, make_postponed_history, make_rule, make_task

# =============================================================================
# RecurrenceRule validation
# =============================================================================


class TestRecurrenceRuleValidation:
    """Construction-time invariants of RecurrenceRule."""

    def test_interval_must_be_positive(self) -> None:
        """interval < 1 is rejected."""
        with pytest.raises(MalformedRule) as exc_info:
            make_rule(RecurrenceType.DAILY, interval=0)

        assert exc_info.value.field == const.DATA_RULE_INTERVAL

    def test_times_per_period_must_be_positive(self) -> None:
        """times_per_period < 1 is rejected under the "frequency" key."""
        with pytest.raises(MalformedRule) as exc_info:
            make_rule(RecurrenceType.DAILY, times_per_period=0)

        assert exc_info.value.field == const.DATA_RULE_FREQUENCY
        assert make_rule(RecurrenceType.DAILY).times_per_period == 1

    def test_unknown_type_rejected(self) -> None:
        """An unknown type string is rejected."""
        with pytest.raises(MalformedRule):
            make_rule("hourly")

    def test_on_date_requires_end_date(self) -> None:
        """on_date without an end date is rejected."""
        with pytest.raises(MalformedRule):
            make_rule(RecurrenceType.DAILY, end_condition=EndCondition.ON_DATE)

    def test_end_date_before_start_rejected(self) -> None:
        """An end date before the start date is rejected."""
        with pytest.raises(MalformedRule):
            make_rule(
                RecurrenceType.DAILY,
                end_condition=EndCondition.ON_DATE,
                end_date=date(2025, 12, 31),
            )

    def test_after_occurrences_requires_limit(self) -> None:
        """after_occurrences without a positive limit is rejected."""
        with pytest.raises(MalformedRule):
            make_rule(
                RecurrenceType.DAILY,
                end_condition=EndCondition.AFTER_OCCURRENCES,
                occurrence_limit=0,
            )

    def test_weekday_out_of_range(self) -> None:
        """Weekday 7 is not a valid Sunday-based index."""
        with pytest.raises(MalformedRule) as exc_info:
            make_rule(RecurrenceType.WEEKLY, days_of_week={1, 7})

        assert exc_info.value.field == const.DATA_RULE_DAYS_OF_WEEK

    def test_month_day_out_of_range(self) -> None:
        """Day 32 is rejected."""
        with pytest.raises(MalformedRule):
            make_rule(RecurrenceType.MONTHLY, days_of_month={32})

    def test_invalid_day_of_year(self) -> None:
        """Feb 30 is not a real calendar day."""
        with pytest.raises(MalformedRule):
            DayOfYear(2, 30)

    def test_feb_29_allowed(self) -> None:
        """Feb 29 is a legal yearly anchor."""
        assert DayOfYear(2, 29).day == 29

    def test_custom_requires_unit(self) -> None:
        """Custom rules must name a unit."""
        with pytest.raises(MalformedRule) as exc_info:
            make_rule(RecurrenceType.CUSTOM, interval=2)

        assert exc_info.value.field == const.DATA_RULE_UNIT

    def test_malformed_rule_is_value_error(self) -> None:
        """MalformedRule can be caught as ValueError."""
        with pytest.raises(ValueError):
            make_rule(RecurrenceType.DAILY, interval=-1)


# =============================================================================
# RecurrenceRule normalization
# =============================================================================


class TestRecurrenceRuleNormalization:
    """Defaults and dropped fields."""

    def test_date_start_promoted_to_midnight(self) -> None:
        """A bare date start becomes a midnight datetime."""
        rule = make_rule(RecurrenceType.DAILY, start=MONDAY)

        assert rule.start_date == datetime(2026, 1, 5, 0, 0)

    def test_monthly_defaults_to_start_day(self) -> None:
        """Monthly without days uses the start date's day of month."""
        rule = make_rule(RecurrenceType.MONTHLY, start=date(2026, 1, 31))

        assert rule.days_of_month == frozenset({31})

    def test_yearly_defaults_to_start_month_day(self) -> None:
        """Yearly without a day of year uses the start date."""
        rule = make_rule(RecurrenceType.YEARLY, start=date(2026, 7, 4))

        assert rule.day_of_year == DayOfYear(7, 4)

    def test_unused_fields_dropped(self) -> None:
        """Selections that don't belong to the type are cleared."""
        rule = make_rule(
            RecurrenceType.DAILY, days_of_week={1}, days_of_month={3}
        )

        assert rule.days_of_week == frozenset()
        assert rule.days_of_month == frozenset()
        assert rule.day_of_year is None

    def test_skip_weekends_cleared_for_weekly(self) -> None:
        """skip_weekends only applies to daily and custom rules."""
        rule = make_rule(RecurrenceType.WEEKLY, skip_weekends=True)

        assert rule.skip_weekends is False

    def test_with_changes_revalidates(self) -> None:
        """with_changes returns a new validated rule."""
        rule = make_rule(RecurrenceType.DAILY)

        changed = rule.with_changes(interval=2)

        assert changed.interval == 2
        assert rule.interval == 1
        with pytest.raises(MalformedRule):
            rule.with_changes(interval=0)

    def test_rule_is_frozen(self) -> None:
        """Rules cannot be mutated in place."""
        rule = make_rule(RecurrenceType.DAILY)

        with pytest.raises(FrozenInstanceError):
            rule.interval = 5  # type: ignore[misc]


class TestRecurrenceRuleSerialization:
    """to_dict() layout."""

    def test_weekly_to_dict(self) -> None:
        """Weekly rules serialize their sorted weekday list only."""
        data = make_rule(RecurrenceType.WEEKLY, days_of_week={5, 1}).to_dict()

        assert data[const.DATA_RULE_TYPE] == "weekly"
        assert data[const.DATA_RULE_DAYS_OF_WEEK] == [1, 5]
        assert const.DATA_RULE_DAYS_OF_MONTH not in data
        assert data[const.DATA_RULE_SKIP_WEEKENDS] is False

    def test_times_per_period_round_trip(self) -> None:
        """times_per_period is stored under "frequency" and read back."""
        rule = make_rule(RecurrenceType.WEEKLY, times_per_period=3)

        data = rule.to_dict()

        assert data[const.DATA_RULE_FREQUENCY] == 3
        assert data[const.DATA_RULE_TYPE] == "weekly"
        assert build_recurrence_rule_from_storage(dict(data)) == rule

    def test_yearly_to_dict(self) -> None:
        """Yearly rules serialize a month/day pair."""
        data = make_rule(RecurrenceType.YEARLY, start=date(2024, 2, 29)).to_dict()

        assert data[const.DATA_RULE_DAY_OF_YEAR] == {"month": 2, "day": 29}

    def test_end_condition_fields(self) -> None:
        """after_occurrences serializes the limit as "occurrences"."""
        data = make_rule(
            RecurrenceType.DAILY,
            end_condition=EndCondition.AFTER_OCCURRENCES,
            occurrence_limit=4,
        ).to_dict()

        assert data[const.DATA_RULE_END_CONDITION] == "after_occurrences"
        assert data[const.DATA_RULE_OCCURRENCES] == 4


# =============================================================================
# Task
# =============================================================================


class TestTask:
    """Task invariants and derived properties."""

    def test_postpone_count_must_match_history(self) -> None:
        """postpone_count != len(history) is rejected."""
        with pytest.raises(ValueError):
            make_task(postpone_count=2, postpone_history=make_postponed_history(-5))

    def test_completed_requires_timestamp(self) -> None:
        """A completed task must carry completed_at."""
        with pytest.raises(ValueError):
            make_task(status=TaskStatus.COMPLETED)

    def test_not_done_requires_timestamp(self) -> None:
        """A not-done task must carry not_done_at."""
        with pytest.raises(ValueError):
            make_task(status=TaskStatus.NOT_DONE)

    def test_unknown_priority_rejected(self) -> None:
        """Priority must be low/medium/high."""
        with pytest.raises(ValueError):
            make_task(priority="urgent")

    def test_status_string_coerced(self) -> None:
        """A raw status string becomes the enum."""
        task = make_task(status="pending")

        assert task.status is TaskStatus.PENDING

    def test_kind(self, daily_rule) -> None:
        """kind reflects routine flag and rule."""
        assert make_task().kind == TaskKind.NORMAL
        assert make_task(recurrence_rule=daily_rule).kind == TaskKind.RECURRING
        assert (
            make_task(recurrence_rule=daily_rule, is_routine=True).kind
            == TaskKind.ROUTINE
        )

    def test_none_rule_is_not_recurring(self) -> None:
        """A rule of type none does not make a task recurring."""
        task = make_task(recurrence_rule=make_rule(RecurrenceType.NONE))

        assert not task.is_recurring
        assert task.kind == TaskKind.NORMAL

    def test_group_id(self, daily_rule) -> None:
        """Routines fall back to their own id; recurring tasks use the series id."""
        routine = make_task("r-1", is_routine=True)
        recurring = make_task(recurrence_rule=daily_rule, recurrence_group_id="g")

        assert routine.group_id == "r-1"
        assert recurring.group_id == "g"
        assert make_task().group_id is None

    def test_recurring_without_group_adopts_own_id(self, daily_rule) -> None:
        """Series stored without a group id are keyed by the instance id."""
        legacy = make_task("old-1", recurrence_rule=daily_rule)

        assert legacy.recurrence_group_id == "old-1"
        assert legacy.with_changes(title="Renamed").recurrence_group_id == "old-1"
        assert (
            make_task("r-1", recurrence_rule=daily_rule, is_routine=True)
            .recurrence_group_id
            is None
        )

    def test_due_datetime_default_time(self) -> None:
        """Tasks without a time are due at the default time."""
        assert make_task().due_datetime() == datetime(2026, 1, 5, 23, 59)
        assert make_task(due_time=time(8, 15)).due_datetime() == datetime(
            2026, 1, 5, 8, 15
        )

    def test_is_overdue(self) -> None:
        """Only pending tasks past their due moment are overdue."""
        task = make_task(due_time=time(9, 0))

        assert not task.is_overdue(datetime(2026, 1, 5, 8, 59))
        assert task.is_overdue(datetime(2026, 1, 5, 9, 1))

    def test_scheduled_date_prefers_original(self) -> None:
        """scheduled_date is the original due date after a postpone."""
        task = make_task(due_date=date(2026, 1, 8), original_due_date=MONDAY)

        assert task.scheduled_date == MONDAY

    def test_with_changes_keeps_original(self) -> None:
        """with_changes returns a copy and leaves the original untouched."""
        task = make_task()

        changed = task.with_changes(title="Feed cat")

        assert changed.title == "Feed cat"
        assert task.title == "Water plants"

    def test_last_postponed_at(self) -> None:
        """last_postponed_at is the newest history timestamp."""
        history = make_postponed_history(-5, -3)
        task = make_task(postpone_count=2, postpone_history=history)

        assert task.last_postponed_at == datetime(2026, 1, 6, 10, 0)


class TestTaskSerialization:
    """to_dict() layout."""

    def test_camel_case_keys(self) -> None:
        """Stored keys are camelCase and dates are ISO strings."""
        task = make_task(
            due_time=time(7, 5),
            postpone_count=1,
            postpone_history=make_postponed_history(-5),
            points_earned=-5,
        )

        data = task.to_dict()

        assert data["dueDate"] == "2026-01-05"
        assert data["dueTime"] == "07:05"
        assert data["status"] == "pending"
        assert data["postponeCount"] == 1
        assert data["pointsEarned"] == -5
        assert data["postponeHistory"] == [
            {
                "from": "2026-01-05",
                "to": "2026-01-06",
                "postponedAt": "2026-01-05T10:00:00",
                "reason": None,
                "penaltyApplied": -5,
            }
        ]
        assert data["recurrenceRule"] is None
