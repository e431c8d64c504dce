"""Task and recurrence rule building helpers.

This module is the SINGLE SOURCE OF TRUTH for:
- Field defaults of new tasks
- Validation of stored records (voluptuous schemas)
- Complete Task / RecurrenceRule construction from stored dicts
- Construction of derived instances (regenerated occurrences, postpone
  children, manually planned routine instances)

### Storage Loaders
`build_*_from_storage()` take a raw stored dict (camelCase keys, after
legacy migration) and return validated model values. Schema failures are
reported as MalformedRule (rule records) or InvalidRecord (task records).

### Instance Builders
`build_task()` creates a brand new task: UUID id, creation timestamp, and
series ids for recurring tasks and routines. `build_next_instance()` and
`build_postponed_child()` derive new records from an existing one and are
used by TaskEngine.

See Also:
- models.py: the frozen value types
- migration_legacy.py: normalization applied before these loaders
"""

from __future__ import annotations

from datetime import date, datetime, time
from typing import Any
import uuid

import voluptuous as vol

from . import const
from .const import EndCondition, IntervalUnit, RecurrenceType, TaskStatus
from .exceptions import InvalidRecord, MalformedRule
from .models import DayOfYear, PostponeEntry, RecurrenceRule, Task
from .utils.dt_utils import (
    dt_now_local,
    dt_parse,
    dt_parse_date,
    dt_parse_time,
    start_of_day,
)

# ==============================================================================
# VOLUPTUOUS VALIDATORS
# ==============================================================================


def _date(value: Any) -> date:
    """Voluptuous validator: ISO date (or datetime) string to date."""
    parsed = dt_parse_date(value)
    if parsed is None:
        raise vol.Invalid(f"invalid date: {value!r}")
    return parsed


def _datetime(value: Any) -> datetime:
    """Voluptuous validator: ISO datetime string to naive datetime."""
    parsed = dt_parse(value)
    if parsed is None:
        raise vol.Invalid(f"invalid datetime: {value!r}")
    return parsed


def _time(value: Any) -> time:
    """Voluptuous validator: "HH:MM" string to time."""
    parsed = dt_parse_time(value)
    if parsed is None:
        raise vol.Invalid(f"invalid time: {value!r}")
    return parsed


def _signed_penalty(value: Any) -> int:
    """Voluptuous validator: penalties are always stored negative."""
    return -abs(int(value))


def _error_path(err: vol.Invalid) -> str:
    """Dotted key path of a voluptuous error."""
    return ".".join(str(part) for part in err.path) or "<root>"


# ==============================================================================
# STORAGE SCHEMAS
# ==============================================================================

POSTPONE_ENTRY_SCHEMA = vol.Schema(
    {
        vol.Required(const.DATA_POSTPONE_FROM): _date,
        vol.Required(const.DATA_POSTPONE_TO): _date,
        vol.Required(const.DATA_POSTPONE_AT): _datetime,
        vol.Optional(const.DATA_POSTPONE_REASON, default=None): vol.Any(None, str),
        vol.Optional(
            const.DATA_POSTPONE_PENALTY, default=const.LEGACY_POSTPONE_PENALTY
        ): vol.All(vol.Coerce(int), _signed_penalty),
    },
    extra=vol.ALLOW_EXTRA,
)

RECURRENCE_RULE_SCHEMA = vol.Schema(
    {
        vol.Required(const.DATA_RULE_TYPE): vol.In([t.value for t in RecurrenceType]),
        vol.Required(const.DATA_RULE_START_DATE): _datetime,
        vol.Optional(const.DATA_RULE_INTERVAL, default=1): vol.Any(
            None, vol.Coerce(int)
        ),
        vol.Optional(
            const.DATA_RULE_END_CONDITION, default=EndCondition.NEVER.value
        ): vol.Any(None, vol.In([c.value for c in EndCondition])),
        vol.Optional(const.DATA_RULE_END_DATE, default=None): vol.Any(None, _date),
        vol.Optional(const.DATA_RULE_OCCURRENCES, default=None): vol.Any(
            None, vol.Coerce(int)
        ),
        vol.Optional(const.DATA_RULE_DAYS_OF_WEEK, default=list): vol.Any(
            None, [vol.Coerce(int)]
        ),
        vol.Optional(const.DATA_RULE_DAYS_OF_MONTH, default=list): vol.Any(
            None, [vol.Coerce(int)]
        ),
        vol.Optional(const.DATA_RULE_DAY_OF_YEAR, default=None): vol.Any(
            None,
            {
                vol.Required(const.DATA_RULE_DAY_OF_YEAR_MONTH): vol.Coerce(int),
                vol.Required(const.DATA_RULE_DAY_OF_YEAR_DAY): vol.Coerce(int),
            },
        ),
        vol.Optional(const.DATA_RULE_UNIT, default=None): vol.Any(
            None, vol.In([u.value for u in IntervalUnit])
        ),
        vol.Optional(const.DATA_RULE_SKIP_WEEKENDS, default=False): vol.Any(
            None, bool
        ),
        vol.Optional(const.DATA_RULE_FREQUENCY, default=1): vol.Any(
            None, vol.Coerce(int)
        ),
    },
    extra=vol.ALLOW_EXTRA,
)

TASK_SCHEMA = vol.Schema(
    {
        vol.Required(const.DATA_TASK_ID): vol.All(str, vol.Length(min=1)),
        vol.Optional(const.DATA_TASK_TITLE, default=""): vol.Any(None, str),
        vol.Required(const.DATA_TASK_DUE_DATE): _date,
        vol.Optional(const.DATA_TASK_DUE_TIME, default=None): vol.Any(None, _time),
        vol.Optional(const.DATA_TASK_STATUS, default=TaskStatus.PENDING.value): vol.In(
            [s.value for s in TaskStatus]
        ),
        vol.Optional(const.DATA_TASK_PRIORITY, default=const.DEFAULT_PRIORITY): vol.All(
            str, vol.Lower, vol.In(const.PRIORITY_OPTIONS)
        ),
        vol.Optional(const.DATA_TASK_CREATED_AT, default=None): vol.Any(
            None, _datetime
        ),
        vol.Optional(const.DATA_TASK_ORIGINAL_DUE_DATE, default=None): vol.Any(
            None, _date
        ),
        vol.Optional(const.DATA_TASK_POSTPONE_COUNT, default=0): vol.Coerce(int),
        vol.Optional(const.DATA_TASK_POSTPONE_HISTORY, default=list): vol.Any(
            None, [dict]
        ),
        vol.Optional(const.DATA_TASK_POINTS_EARNED, default=0): vol.Coerce(int),
        vol.Optional(const.DATA_TASK_COMPLETED_AT, default=None): vol.Any(
            None, _datetime
        ),
        vol.Optional(const.DATA_TASK_NOT_DONE_AT, default=None): vol.Any(
            None, _datetime
        ),
        vol.Optional(const.DATA_TASK_NOT_DONE_REASON, default=None): vol.Any(
            None, str
        ),
        vol.Optional(const.DATA_TASK_RECURRENCE_RULE, default=None): vol.Any(
            None, dict
        ),
        vol.Optional(const.DATA_TASK_RECURRENCE_GROUP_ID, default=None): vol.Any(
            None, str
        ),
        vol.Optional(const.DATA_TASK_RECURRENCE_INDEX, default=0): vol.Coerce(int),
        vol.Optional(const.DATA_TASK_IS_ROUTINE, default=False): bool,
        vol.Optional(const.DATA_TASK_ROUTINE_GROUP_ID, default=None): vol.Any(
            None, str
        ),
        vol.Optional(const.DATA_TASK_IS_ROUTINE_ACTIVE, default=True): bool,
        vol.Optional(const.DATA_TASK_ROUTINE_PROGRESS_START, default=None): vol.Any(
            None, _datetime
        ),
        vol.Optional(const.DATA_TASK_PARENT_TASK_ID, default=None): vol.Any(
            None, str
        ),
        vol.Optional(const.DATA_TASK_CHILD_TASK_ID, default=None): vol.Any(None, str),
        vol.Optional(const.DATA_TASK_SPAWNED_TASK_ID, default=None): vol.Any(
            None, str
        ),
    },
    extra=vol.ALLOW_EXTRA,
)


# ==============================================================================
# STORAGE LOADERS
# ==============================================================================


def build_postpone_entry_from_storage(data: dict[str, Any]) -> PostponeEntry:
    """Build a PostponeEntry from a stored dict.

    A missing penaltyApplied reads as LEGACY_POSTPONE_PENALTY (-5).

    Raises:
        InvalidRecord: If the entry is malformed
    """
    try:
        validated = POSTPONE_ENTRY_SCHEMA(data)
    except vol.Invalid as err:
        raise InvalidRecord(
            f"{const.DATA_TASK_POSTPONE_HISTORY}.{_error_path(err)}", err.error_message
        ) from err

    return PostponeEntry(
        from_date=validated[const.DATA_POSTPONE_FROM],
        to_date=validated[const.DATA_POSTPONE_TO],
        postponed_at=validated[const.DATA_POSTPONE_AT],
        reason=validated[const.DATA_POSTPONE_REASON],
        penalty_applied=validated[const.DATA_POSTPONE_PENALTY],
    )


def build_recurrence_rule_from_storage(data: dict[str, Any]) -> RecurrenceRule:
    """Build a RecurrenceRule from a stored dict.

    Raises:
        MalformedRule: If the record fails schema validation or describes an
            impossible rule
    """
    try:
        validated = RECURRENCE_RULE_SCHEMA(data)
    except vol.Invalid as err:
        raise MalformedRule(_error_path(err), err.error_message) from err

    interval = validated[const.DATA_RULE_INTERVAL]
    times_per_period = validated[const.DATA_RULE_FREQUENCY]
    day_of_year_data = validated[const.DATA_RULE_DAY_OF_YEAR]
    day_of_year = (
        DayOfYear(
            day_of_year_data[const.DATA_RULE_DAY_OF_YEAR_MONTH],
            day_of_year_data[const.DATA_RULE_DAY_OF_YEAR_DAY],
        )
        if day_of_year_data
        else None
    )

    return RecurrenceRule(
        frequency=RecurrenceType(validated[const.DATA_RULE_TYPE]),
        start_date=validated[const.DATA_RULE_START_DATE],
        interval=1 if interval is None else interval,
        end_condition=EndCondition(
            validated[const.DATA_RULE_END_CONDITION] or EndCondition.NEVER.value
        ),
        end_date=validated[const.DATA_RULE_END_DATE],
        occurrence_limit=validated[const.DATA_RULE_OCCURRENCES],
        days_of_week=frozenset(validated[const.DATA_RULE_DAYS_OF_WEEK] or ()),
        days_of_month=frozenset(validated[const.DATA_RULE_DAYS_OF_MONTH] or ()),
        day_of_year=day_of_year,
        unit=validated[const.DATA_RULE_UNIT],
        skip_weekends=bool(validated[const.DATA_RULE_SKIP_WEEKENDS]),
        times_per_period=1 if times_per_period is None else times_per_period,
    )


def build_task_from_storage(data: dict[str, Any]) -> Task:
    """Build a Task from a stored dict (already migrated to the current schema).

    Raises:
        InvalidRecord: If the record fails schema validation or breaks a
            task invariant
        MalformedRule: If the embedded recurrence rule is invalid
    """
    try:
        validated = TASK_SCHEMA(data)
    except vol.Invalid as err:
        raise InvalidRecord(_error_path(err), err.error_message) from err

    history = tuple(
        build_postpone_entry_from_storage(entry)
        for entry in validated[const.DATA_TASK_POSTPONE_HISTORY] or ()
    )
    rule_data = validated[const.DATA_TASK_RECURRENCE_RULE]
    rule = build_recurrence_rule_from_storage(rule_data) if rule_data else None

    due_date: date = validated[const.DATA_TASK_DUE_DATE]
    created_at = validated[const.DATA_TASK_CREATED_AT] or start_of_day(due_date)

    try:
        return Task(
            id=validated[const.DATA_TASK_ID],
            title=validated[const.DATA_TASK_TITLE] or "",
            due_date=due_date,
            due_time=validated[const.DATA_TASK_DUE_TIME],
            status=TaskStatus(validated[const.DATA_TASK_STATUS]),
            priority=validated[const.DATA_TASK_PRIORITY],
            created_at=created_at,
            original_due_date=validated[const.DATA_TASK_ORIGINAL_DUE_DATE],
            postpone_count=validated[const.DATA_TASK_POSTPONE_COUNT],
            postpone_history=history,
            points_earned=validated[const.DATA_TASK_POINTS_EARNED],
            completed_at=validated[const.DATA_TASK_COMPLETED_AT],
            not_done_at=validated[const.DATA_TASK_NOT_DONE_AT],
            not_done_reason=validated[const.DATA_TASK_NOT_DONE_REASON],
            recurrence_rule=rule,
            recurrence_group_id=validated[const.DATA_TASK_RECURRENCE_GROUP_ID],
            recurrence_index=validated[const.DATA_TASK_RECURRENCE_INDEX],
            is_routine=validated[const.DATA_TASK_IS_ROUTINE],
            routine_group_id=validated[const.DATA_TASK_ROUTINE_GROUP_ID],
            is_routine_active=validated[const.DATA_TASK_IS_ROUTINE_ACTIVE],
            routine_progress_start=validated[const.DATA_TASK_ROUTINE_PROGRESS_START],
            parent_task_id=validated[const.DATA_TASK_PARENT_TASK_ID],
            child_task_id=validated[const.DATA_TASK_CHILD_TASK_ID],
            spawned_task_id=validated[const.DATA_TASK_SPAWNED_TASK_ID],
        )
    except ValueError as err:
        raise InvalidRecord(validated[const.DATA_TASK_ID], str(err)) from err


# ==============================================================================
# INSTANCE BUILDERS
# ==============================================================================


def _new_id() -> str:
    return str(uuid.uuid4())


def build_task(
    title: str,
    due_date: date,
    *,
    due_time: time | None = None,
    priority: str = const.DEFAULT_PRIORITY,
    recurrence_rule: RecurrenceRule | None = None,
    is_routine: bool = False,
    now: datetime | None = None,
) -> Task:
    """Build a brand new pending task.

    Recurring tasks get a fresh recurrence group id; routines use their own
    id as routine group id so later instances can join the series.

    Args:
        title: Display title (must not be blank)
        due_date: First due date
        due_time: Optional time of day
        priority: low / medium / high
        recurrence_rule: Optional rule that regenerates the task on completion
        is_routine: Whether the task starts a routine series
        now: Creation timestamp override

    Returns:
        New Task

    Raises:
        InvalidRecord: If the title is blank or the priority unknown
    """
    title = (title or "").strip()
    if not title:
        raise InvalidRecord(const.DATA_TASK_TITLE, "title must not be empty")
    if priority not in const.PRIORITY_OPTIONS:
        raise InvalidRecord(const.DATA_TASK_PRIORITY, f"unknown priority '{priority}'")

    created_at = now or dt_now_local()
    task_id = _new_id()
    has_rule = (
        recurrence_rule is not None
        and recurrence_rule.frequency != RecurrenceType.NONE
    )

    return Task(
        id=task_id,
        title=title,
        due_date=due_date,
        due_time=due_time,
        priority=priority,
        created_at=created_at,
        recurrence_rule=recurrence_rule,
        recurrence_group_id=_new_id() if has_rule and not is_routine else None,
        recurrence_index=0,
        is_routine=is_routine,
        routine_group_id=task_id if is_routine else None,
        routine_progress_start=created_at if is_routine else None,
    )


def build_next_instance(
    source: Task,
    due_date: date,
    *,
    due_time: time | None,
    recurrence_index: int,
    now: datetime,
    progress_start: datetime | None = None,
) -> Task:
    """Build the next pending instance of a recurring task or routine.

    The new instance shares the series ids, rule, title and priority of
    `source` and starts with a clean postpone history.
    """
    return Task(
        id=_new_id(),
        title=source.title,
        due_date=due_date,
        due_time=due_time,
        priority=source.priority,
        created_at=now,
        recurrence_rule=source.recurrence_rule,
        recurrence_group_id=source.recurrence_group_id,
        recurrence_index=recurrence_index,
        is_routine=source.is_routine,
        routine_group_id=(
            source.effective_routine_group_id if source.is_routine else None
        ),
        is_routine_active=source.is_routine_active,
        routine_progress_start=progress_start if source.is_routine else None,
    )


def build_postponed_child(
    archived: Task,
    new_date: date,
    *,
    due_time: time | None,
    now: datetime,
) -> Task:
    """Build the live child that replaces a postponed task.

    The child inherits the full postpone history, count and running points
    of the archived parent so history can be replayed from the live record.
    """
    return Task(
        id=_new_id(),
        title=archived.title,
        due_date=new_date,
        due_time=due_time,
        priority=archived.priority,
        created_at=now,
        original_due_date=archived.original_due_date or archived.due_date,
        postpone_count=archived.postpone_count,
        postpone_history=archived.postpone_history,
        points_earned=archived.points_earned,
        recurrence_rule=archived.recurrence_rule,
        recurrence_group_id=archived.recurrence_group_id,
        recurrence_index=archived.recurrence_index,
        is_routine=archived.is_routine,
        routine_group_id=(
            archived.effective_routine_group_id if archived.is_routine else None
        ),
        is_routine_active=archived.is_routine_active,
        routine_progress_start=archived.routine_progress_start,
        parent_task_id=archived.id,
    )
