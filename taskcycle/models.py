"""Immutable value types for taskcycle.

RecurrenceRule, PostponeEntry and Task are frozen dataclasses. Every change
produces a new value via `with_changes()`, so engines can compute results
without mutating their inputs and callers persist the outcome explicitly.

Construction validates and normalizes:
- RecurrenceRule raises MalformedRule for impossible combinations, fills
  missing weekly/monthly/yearly selections from the start date, and drops
  fields the rule's type does not use.
- Task raises ValueError when its own invariants are broken
  (postpone_count vs history length, terminal status without timestamp).
- A recurring, non-routine Task without a recurrence_group_id adopts its
  own id as the group id.

Serialization to the stored camelCase layout lives here (`to_dict`); loading
and validation of stored records lives in data_builders.py.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field, replace
from datetime import date, datetime, time
from typing import TYPE_CHECKING, Any

from . import const
from .const import EndCondition, IntervalUnit, RecurrenceType, TaskKind, TaskStatus
from .exceptions import MalformedRule
from .utils.dt_utils import (
    as_date,
    days_in_month,
    dt_combine,
    dt_format_iso,
    dt_format_time,
    dt_now_local,
    weekday_index,
)

if TYPE_CHECKING:
    from .type_defs import (
        DayOfYearData,
        PostponeEntryData,
        RecurrenceRuleData,
        TaskData,
    )

# Leap year used to validate month/day pairs (Feb 29 is a legal yearly anchor)
_LEAP_REFERENCE_YEAR = 2000


def _coerce_enum(enum_cls: type, value: Any, field_name: str) -> Any:
    """Coerce a raw value into a closed enum, raising MalformedRule."""
    try:
        return enum_cls(value)
    except ValueError as err:
        raise MalformedRule(field_name, f"unknown value '{value}'") from err


def _coerce_int_set(
    values: Iterable[Any] | None, field_name: str, low: int, high: int
) -> frozenset[int]:
    """Coerce an iterable into a validated frozenset of ints in [low, high]."""
    if not values:
        return frozenset()
    result: set[int] = set()
    for raw in values:
        if isinstance(raw, bool) or not isinstance(raw, int):
            raise MalformedRule(field_name, f"'{raw}' is not an integer")
        if not low <= raw <= high:
            raise MalformedRule(field_name, f"{raw} is outside {low}-{high}")
        result.add(raw)
    return frozenset(result)


# =============================================================================
# Recurrence Rule
# =============================================================================


@dataclass(frozen=True)
class DayOfYear:
    """Month/day anchor of a yearly rule (Feb 29 allowed)."""

    month: int
    day: int

    def __post_init__(self) -> None:
        """Validate the month/day pair."""
        if not 1 <= self.month <= 12:
            raise MalformedRule(
                const.DATA_RULE_DAY_OF_YEAR, f"month {self.month} is outside 1-12"
            )
        max_day = days_in_month(_LEAP_REFERENCE_YEAR, self.month)
        if not 1 <= self.day <= max_day:
            raise MalformedRule(
                const.DATA_RULE_DAY_OF_YEAR,
                f"day {self.day} does not exist in month {self.month}",
            )

    def to_dict(self) -> DayOfYearData:
        """Serialize to the stored layout."""
        return {
            const.DATA_RULE_DAY_OF_YEAR_MONTH: self.month,
            const.DATA_RULE_DAY_OF_YEAR_DAY: self.day,
        }


@dataclass(frozen=True)
class RecurrenceRule:
    """How often a task repeats, from when, and until when.

    Attributes:
        frequency: Recurrence type (serialized as "type")
        start_date: Anchor of the series; its time of day is carried onto
            every computed occurrence
        interval: Step size (>= 1) in the type's natural unit
        end_condition: never / on_date / after_occurrences
        end_date: Last allowed occurrence day (on_date only)
        occurrence_limit: Maximum number of occurrences (after_occurrences only)
        days_of_week: Sunday-based weekday indices (weekly only)
        days_of_month: Days 1-31, clamped to month length (monthly only)
        day_of_year: Month/day anchor (yearly only)
        unit: Step unit (custom only)
        skip_weekends: Move Saturday/Sunday results to Monday (daily, custom days)
        times_per_period: How many times the task is meant to be done per
            period (serialized as "frequency", >= 1)
    """

    frequency: RecurrenceType
    start_date: datetime
    interval: int = 1
    end_condition: EndCondition = EndCondition.NEVER
    end_date: date | None = None
    occurrence_limit: int | None = None
    days_of_week: frozenset[int] = frozenset()
    days_of_month: frozenset[int] = frozenset()
    day_of_year: DayOfYear | None = None
    unit: IntervalUnit | None = None
    skip_weekends: bool = False
    times_per_period: int = 1

    def __post_init__(self) -> None:
        """Validate the rule and normalize type-specific fields."""
        set_field = object.__setattr__

        frequency = _coerce_enum(RecurrenceType, self.frequency, const.DATA_RULE_TYPE)
        set_field(self, "frequency", frequency)

        # Start date: a bare date is promoted to midnight
        start = self.start_date
        if isinstance(start, datetime):
            pass
        elif isinstance(start, date):
            start = datetime.combine(start, time())
        else:
            raise MalformedRule(const.DATA_RULE_START_DATE, "start date is required")
        set_field(self, "start_date", start)

        interval = self.interval
        if isinstance(interval, bool) or not isinstance(interval, int) or interval < 1:
            raise MalformedRule(
                const.DATA_RULE_INTERVAL, f"interval must be >= 1, got {interval!r}"
            )
        times = self.times_per_period
        if isinstance(times, bool) or not isinstance(times, int) or times < 1:
            raise MalformedRule(
                const.DATA_RULE_FREQUENCY,
                f"times per period must be >= 1, got {times!r}",
            )

        # End condition
        end_condition = _coerce_enum(
            EndCondition, self.end_condition, const.DATA_RULE_END_CONDITION
        )
        set_field(self, "end_condition", end_condition)
        end_date: date | None = None
        limit: int | None = None
        if end_condition == EndCondition.ON_DATE:
            if self.end_date is None:
                raise MalformedRule(
                    const.DATA_RULE_END_DATE, "on_date end condition requires an end date"
                )
            end_date = as_date(self.end_date)
            if end_date < start.date():
                raise MalformedRule(
                    const.DATA_RULE_END_DATE, "end date is before the start date"
                )
        elif end_condition == EndCondition.AFTER_OCCURRENCES:
            limit = self.occurrence_limit
            if isinstance(limit, bool) or not isinstance(limit, int) or limit < 1:
                raise MalformedRule(
                    const.DATA_RULE_OCCURRENCES,
                    "after_occurrences end condition requires a limit >= 1",
                )
        set_field(self, "end_date", end_date)
        set_field(self, "occurrence_limit", limit)

        # Type-specific selections; unused ones are dropped
        days_of_week = _coerce_int_set(
            self.days_of_week, const.DATA_RULE_DAYS_OF_WEEK, 0, 6
        )
        days_of_month = _coerce_int_set(
            self.days_of_month, const.DATA_RULE_DAYS_OF_MONTH, 1, 31
        )
        day_of_year = self.day_of_year
        unit: IntervalUnit | None = None

        if frequency == RecurrenceType.WEEKLY:
            days_of_week = days_of_week or frozenset({weekday_index(start)})
        else:
            days_of_week = frozenset()

        if frequency == RecurrenceType.MONTHLY:
            days_of_month = days_of_month or frozenset({start.day})
        else:
            days_of_month = frozenset()

        if frequency == RecurrenceType.YEARLY:
            if day_of_year is None:
                day_of_year = DayOfYear(start.month, start.day)
            elif not isinstance(day_of_year, DayOfYear):
                raise MalformedRule(
                    const.DATA_RULE_DAY_OF_YEAR, "day of year must be a DayOfYear"
                )
        else:
            day_of_year = None

        if frequency == RecurrenceType.CUSTOM:
            if self.unit is None:
                raise MalformedRule(const.DATA_RULE_UNIT, "custom rules require a unit")
            unit = _coerce_enum(IntervalUnit, self.unit, const.DATA_RULE_UNIT)

        skip_weekends = bool(self.skip_weekends) and frequency in (
            RecurrenceType.DAILY,
            RecurrenceType.CUSTOM,
        )

        set_field(self, "days_of_week", days_of_week)
        set_field(self, "days_of_month", days_of_month)
        set_field(self, "day_of_year", day_of_year)
        set_field(self, "unit", unit)
        set_field(self, "skip_weekends", skip_weekends)

    @property
    def anchor_date(self) -> date:
        """Calendar day of the series start."""
        return self.start_date.date()

    @property
    def time_of_day(self) -> time:
        """Time carried onto every occurrence."""
        return self.start_date.time()

    @property
    def is_bounded(self) -> bool:
        """Whether the series has an end condition."""
        return self.end_condition != EndCondition.NEVER

    def with_changes(self, **changes: Any) -> RecurrenceRule:
        """Return a re-validated copy with the given fields replaced."""
        return replace(self, **changes)

    def to_dict(self) -> RecurrenceRuleData:
        """Serialize to the stored layout."""
        data: dict[str, Any] = {
            const.DATA_RULE_TYPE: self.frequency.value,
            const.DATA_RULE_INTERVAL: self.interval,
            const.DATA_RULE_START_DATE: dt_format_iso(self.start_date),
            const.DATA_RULE_END_CONDITION: self.end_condition.value,
            const.DATA_RULE_SKIP_WEEKENDS: self.skip_weekends,
            const.DATA_RULE_FREQUENCY: self.times_per_period,
        }
        if self.end_date is not None:
            data[const.DATA_RULE_END_DATE] = dt_format_iso(self.end_date)
        if self.occurrence_limit is not None:
            data[const.DATA_RULE_OCCURRENCES] = self.occurrence_limit
        if self.days_of_week:
            data[const.DATA_RULE_DAYS_OF_WEEK] = sorted(self.days_of_week)
        if self.days_of_month:
            data[const.DATA_RULE_DAYS_OF_MONTH] = sorted(self.days_of_month)
        if self.day_of_year is not None:
            data[const.DATA_RULE_DAY_OF_YEAR] = self.day_of_year.to_dict()
        if self.unit is not None:
            data[const.DATA_RULE_UNIT] = self.unit.value
        return data  # type: ignore[return-value]


# =============================================================================
# Postpone History
# =============================================================================


@dataclass(frozen=True)
class PostponeEntry:
    """One postponement, as recorded in a task's history.

    Attributes:
        from_date: Due date before the move (serialized as "from")
        to_date: Due date after the move (serialized as "to")
        postponed_at: When the postpone happened
        reason: Optional free-text reason
        penalty_applied: Signed points charged (<= 0)
    """

    from_date: date
    to_date: date
    postponed_at: datetime
    reason: str | None = None
    penalty_applied: int = const.LEGACY_POSTPONE_PENALTY

    def to_dict(self) -> PostponeEntryData:
        """Serialize to the stored layout."""
        return {
            const.DATA_POSTPONE_FROM: dt_format_iso(self.from_date),
            const.DATA_POSTPONE_TO: dt_format_iso(self.to_date),
            const.DATA_POSTPONE_AT: dt_format_iso(self.postponed_at),
            const.DATA_POSTPONE_REASON: self.reason,
            const.DATA_POSTPONE_PENALTY: self.penalty_applied,
        }  # type: ignore[return-value]


# =============================================================================
# Task
# =============================================================================


@dataclass(frozen=True)
class Task:
    """A single task instance.

    Recurring and routine series are made of many Task records sharing a
    group id. A postponed record is archived (status `postponed`) and points
    at the live child that replaced it via `child_task_id`.
    """

    id: str
    title: str
    due_date: date
    due_time: time | None = None
    status: TaskStatus = TaskStatus.PENDING
    priority: str = const.DEFAULT_PRIORITY
    created_at: datetime = field(default_factory=dt_now_local)
    original_due_date: date | None = None
    postpone_count: int = 0
    postpone_history: tuple[PostponeEntry, ...] = ()
    points_earned: int = 0
    completed_at: datetime | None = None
    not_done_at: datetime | None = None
    not_done_reason: str | None = None
    recurrence_rule: RecurrenceRule | None = None
    recurrence_group_id: str | None = None
    recurrence_index: int = 0
    is_routine: bool = False
    routine_group_id: str | None = None
    is_routine_active: bool = True
    routine_progress_start: datetime | None = None
    parent_task_id: str | None = None
    child_task_id: str | None = None
    spawned_task_id: str | None = None

    def __post_init__(self) -> None:
        """Coerce loose inputs and enforce record invariants."""
        object.__setattr__(self, "status", TaskStatus(self.status))
        object.__setattr__(self, "postpone_history", tuple(self.postpone_history))
        if (
            self.recurrence_group_id is None
            and self.is_recurring
            and not self.is_routine
        ):
            # Series stored without a group id are keyed by their first instance
            object.__setattr__(self, "recurrence_group_id", self.id)

        if self.priority not in const.PRIORITY_OPTIONS:
            raise ValueError(f"Task {self.id}: unknown priority '{self.priority}'")
        if self.postpone_count != len(self.postpone_history):
            raise ValueError(
                f"Task {self.id}: postpone_count={self.postpone_count} does not "
                f"match history length {len(self.postpone_history)}"
            )
        if self.status == TaskStatus.COMPLETED and self.completed_at is None:
            raise ValueError(f"Task {self.id}: completed without completed_at")
        if self.status == TaskStatus.NOT_DONE and self.not_done_at is None:
            raise ValueError(f"Task {self.id}: not_done without not_done_at")

    # -------------------------------------------------------------------------
    # Derived properties
    # -------------------------------------------------------------------------

    @property
    def kind(self) -> TaskKind:
        """Normal, recurring, or routine."""
        if self.is_routine:
            return TaskKind.ROUTINE
        if self.is_recurring:
            return TaskKind.RECURRING
        return TaskKind.NORMAL

    @property
    def is_recurring(self) -> bool:
        """Whether the task carries an effective recurrence rule."""
        return (
            self.recurrence_rule is not None
            and self.recurrence_rule.frequency != RecurrenceType.NONE
        )

    @property
    def effective_routine_group_id(self) -> str:
        """Routine group id, falling back to the task's own id."""
        return self.routine_group_id or self.id

    @property
    def group_id(self) -> str | None:
        """Id shared by every instance of this task's series."""
        if self.is_routine:
            return self.effective_routine_group_id
        return self.recurrence_group_id

    @property
    def scheduled_date(self) -> date:
        """The occurrence date this instance was created for."""
        return self.original_due_date or self.due_date

    @property
    def is_archived(self) -> bool:
        """Postponed records are superseded by their child."""
        return self.status in const.ARCHIVED_STATUSES

    @property
    def last_postponed_at(self) -> datetime | None:
        """Timestamp of the most recent postpone, if any."""
        if not self.postpone_history:
            return None
        return self.postpone_history[-1].postponed_at

    def due_datetime(self, default_time: time = const.DEFAULT_DUE_TIME) -> datetime:
        """Due date combined with the due time (or `default_time`)."""
        return dt_combine(self.due_date, self.due_time, default_time)

    def is_overdue(
        self, now: datetime, default_time: time = const.DEFAULT_DUE_TIME
    ) -> bool:
        """Whether a pending task has passed its due moment."""
        return self.status == TaskStatus.PENDING and now > self.due_datetime(
            default_time
        )

    def with_changes(self, **changes: Any) -> Task:
        """Return a copy with the given fields replaced (re-validated)."""
        return replace(self, **changes)

    # -------------------------------------------------------------------------
    # Serialization
    # -------------------------------------------------------------------------

    def to_dict(self) -> TaskData:
        """Serialize to the stored camelCase layout."""
        return {
            const.DATA_TASK_ID: self.id,
            const.DATA_TASK_TITLE: self.title,
            const.DATA_TASK_DUE_DATE: dt_format_iso(self.due_date),
            const.DATA_TASK_DUE_TIME: dt_format_time(self.due_time),
            const.DATA_TASK_STATUS: self.status.value,
            const.DATA_TASK_PRIORITY: self.priority,
            const.DATA_TASK_CREATED_AT: dt_format_iso(self.created_at),
            const.DATA_TASK_ORIGINAL_DUE_DATE: dt_format_iso(self.original_due_date),
            const.DATA_TASK_POSTPONE_COUNT: self.postpone_count,
            const.DATA_TASK_POSTPONE_HISTORY: [
                entry.to_dict() for entry in self.postpone_history
            ],
            const.DATA_TASK_POINTS_EARNED: self.points_earned,
            const.DATA_TASK_COMPLETED_AT: dt_format_iso(self.completed_at),
            const.DATA_TASK_NOT_DONE_AT: dt_format_iso(self.not_done_at),
            const.DATA_TASK_NOT_DONE_REASON: self.not_done_reason,
            const.DATA_TASK_RECURRENCE_RULE: (
                self.recurrence_rule.to_dict() if self.recurrence_rule else None
            ),
            const.DATA_TASK_RECURRENCE_GROUP_ID: self.recurrence_group_id,
            const.DATA_TASK_RECURRENCE_INDEX: self.recurrence_index,
            const.DATA_TASK_IS_ROUTINE: self.is_routine,
            const.DATA_TASK_ROUTINE_GROUP_ID: self.routine_group_id,
            const.DATA_TASK_IS_ROUTINE_ACTIVE: self.is_routine_active,
            const.DATA_TASK_ROUTINE_PROGRESS_START: dt_format_iso(
                self.routine_progress_start
            ),
            const.DATA_TASK_PARENT_TASK_ID: self.parent_task_id,
            const.DATA_TASK_CHILD_TASK_ID: self.child_task_id,
            const.DATA_TASK_SPAWNED_TASK_ID: self.spawned_task_id,
        }  # type: ignore[return-value]
