"""Type definitions for taskcycle persisted data structures.

These TypedDicts describe the JSON records exchanged with storage. Keys are
camelCase to stay compatible with records written by older releases.
In-memory values are the frozen dataclasses in models.py; these shapes only
exist at the serialization boundary.

NOTE: TypedDict is STATIC ANALYSIS ONLY. Runtime validation of loaded records
is done by the voluptuous schemas in data_builders.py.

Some keys ("from", "to") are Python keywords or awkward identifiers, so the
postpone entry shape uses the functional TypedDict syntax.
"""

from typing import Any, NotRequired, TypedDict

# =============================================================================
# Type Aliases (for readability)
# =============================================================================

TaskId = str  # UUID string
GroupId = str  # UUID string
ISODatetime = str  # ISO 8601 datetime string "2026-01-18T12:30:00"
ISODate = str  # ISO 8601 date string (no time) "2026-01-18"
HHMM = str  # "HH:MM"


# =============================================================================
# Postpone History
# =============================================================================

PostponeEntryData = TypedDict(
    "PostponeEntryData",
    {
        "from": ISODate,
        "to": ISODate,
        "postponedAt": ISODatetime,
        "reason": str | None,
        # Missing in legacy records; read as -5
        "penaltyApplied": NotRequired[int],
    },
)


# =============================================================================
# Recurrence Rule
# =============================================================================


class DayOfYearData(TypedDict):
    """Stored month/day pair of a yearly rule."""

    month: int
    day: int


class RecurrenceRuleData(TypedDict):
    """Stored recurrence rule record."""

    type: str
    interval: int
    startDate: ISODatetime
    endCondition: str
    endDate: NotRequired[ISODate | None]
    occurrences: NotRequired[int | None]
    daysOfWeek: NotRequired[list[int]]
    daysOfMonth: NotRequired[list[int]]
    dayOfYear: NotRequired[DayOfYearData]
    unit: NotRequired[str]
    skipWeekends: bool
    frequency: int


# =============================================================================
# Task
# =============================================================================


class TaskData(TypedDict):
    """Stored task record."""

    id: TaskId
    title: str
    dueDate: ISODate
    dueTime: NotRequired[HHMM | None]
    status: str
    priority: str
    createdAt: ISODatetime
    originalDueDate: NotRequired[ISODate | None]
    postponeCount: int
    postponeHistory: list[PostponeEntryData]
    pointsEarned: int
    completedAt: NotRequired[ISODatetime | None]
    notDoneAt: NotRequired[ISODatetime | None]
    notDoneReason: NotRequired[str | None]
    recurrenceRule: NotRequired[RecurrenceRuleData | None]
    recurrenceGroupId: NotRequired[GroupId | None]
    recurrenceIndex: int
    isRoutine: bool
    routineGroupId: NotRequired[GroupId | None]
    isRoutineActive: bool
    routineProgressStartDate: NotRequired[ISODatetime | None]
    parentTaskId: NotRequired[TaskId | None]
    childTaskId: NotRequired[TaskId | None]
    spawnedTaskId: NotRequired[TaskId | None]


# =============================================================================
# Points Ledger
# =============================================================================


class LedgerEntry(TypedDict):
    """Single points transaction recorded when a result is applied."""

    timestamp: ISODatetime
    amount: int
    balance_after: int
    source: str
    reference_id: TaskId | None
    item_name: NotRequired[str]


# =============================================================================
# Storage Root
# =============================================================================


class StoreMeta(TypedDict):
    """Storage metadata block."""

    schema_version: int
    last_migration_date: NotRequired[ISODatetime]


class StoreData(TypedDict):
    """Root structure of the JSON snapshot."""

    meta: StoreMeta
    tasks: dict[TaskId, TaskData]
    ledger: list[LedgerEntry]


# Raw record as read from disk, before migration and validation
RawRecord = dict[str, Any]
