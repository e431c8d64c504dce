# File: const.py
"""Constants for the taskcycle engine.

This file centralizes storage keys, closed status/recurrence enumerations,
defaults, option keys, and display labels for consistency across the package.
"""

from datetime import time
from enum import StrEnum
import logging

# ------------------------------------------------------------------------------------------------
# General
# ------------------------------------------------------------------------------------------------
DOMAIN = "taskcycle"

LOGGER = logging.getLogger(__package__)

# ------------------------------------------------------------------------------------------------
# Storage
# ------------------------------------------------------------------------------------------------
STORAGE_KEY = "taskcycle_data"

# Version 1: records written by older releases (string-encoded history,
# no penaltyApplied, split due time fields). Version 2: current layout.
SCHEMA_VERSION_LEGACY = 1
SCHEMA_VERSION_CURRENT = 2

DATA_META = "meta"
DATA_META_SCHEMA_VERSION = "schema_version"
DATA_META_LAST_MIGRATION_DATE = "last_migration_date"
DATA_TASKS = "tasks"
DATA_LEDGER = "ledger"


# ------------------------------------------------------------------------------------------------
# Closed Enumerations
# ------------------------------------------------------------------------------------------------
class TaskStatus(StrEnum):
    """Lifecycle status of a single task record."""

    PENDING = "pending"
    COMPLETED = "completed"
    NOT_DONE = "not_done"
    POSTPONED = "postponed"


class RecurrenceType(StrEnum):
    """Recurrence pattern of a rule."""

    NONE = "none"
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    YEARLY = "yearly"
    CUSTOM = "custom"


class EndCondition(StrEnum):
    """How a recurrence series terminates."""

    NEVER = "never"
    ON_DATE = "on_date"
    AFTER_OCCURRENCES = "after_occurrences"


class IntervalUnit(StrEnum):
    """Unit used by custom recurrence rules."""

    DAYS = "days"
    WEEKS = "weeks"
    MONTHS = "months"
    YEARS = "years"


class TaskKind(StrEnum):
    """Derived classification of a task."""

    NORMAL = "normal"
    RECURRING = "recurring"
    ROUTINE = "routine"


class UndoKind(StrEnum):
    """Which transition an undo request would reverse."""

    COMPLETE = "complete"
    NOT_DONE = "not_done"
    POSTPONE = "postpone"


# Statuses that never carry a live (non-archived) point contribution
ARCHIVED_STATUSES = frozenset({TaskStatus.POSTPONED})

# Legacy statuses written by early app versions (overdue is now derived)
LEGACY_STATUS_OVERDUE = "overdue"
LEGACY_STATUS_NOT_DONE = "notDone"

# ------------------------------------------------------------------------------------------------
# Task Record Keys (camelCase, compatible with stored app data)
# ------------------------------------------------------------------------------------------------
DATA_TASK_ID = "id"
DATA_TASK_TITLE = "title"
DATA_TASK_DUE_DATE = "dueDate"
DATA_TASK_DUE_TIME = "dueTime"
DATA_TASK_STATUS = "status"
DATA_TASK_PRIORITY = "priority"
DATA_TASK_CREATED_AT = "createdAt"
DATA_TASK_ORIGINAL_DUE_DATE = "originalDueDate"
DATA_TASK_POSTPONE_COUNT = "postponeCount"
DATA_TASK_POSTPONE_HISTORY = "postponeHistory"
DATA_TASK_POINTS_EARNED = "pointsEarned"
DATA_TASK_COMPLETED_AT = "completedAt"
DATA_TASK_NOT_DONE_AT = "notDoneAt"
DATA_TASK_NOT_DONE_REASON = "notDoneReason"
DATA_TASK_RECURRENCE_RULE = "recurrenceRule"
DATA_TASK_RECURRENCE_GROUP_ID = "recurrenceGroupId"
DATA_TASK_RECURRENCE_INDEX = "recurrenceIndex"
DATA_TASK_IS_ROUTINE = "isRoutine"
DATA_TASK_ROUTINE_GROUP_ID = "routineGroupId"
DATA_TASK_IS_ROUTINE_ACTIVE = "isRoutineActive"
DATA_TASK_ROUTINE_PROGRESS_START = "routineProgressStartDate"
DATA_TASK_PARENT_TASK_ID = "parentTaskId"
DATA_TASK_CHILD_TASK_ID = "childTaskId"
DATA_TASK_SPAWNED_TASK_ID = "spawnedTaskId"

# Legacy task keys (read by migration only)
DATA_TASK_LEGACY_DUE_TIME_HOUR = "dueTimeHour"
DATA_TASK_LEGACY_DUE_TIME_MINUTE = "dueTimeMinute"
DATA_TASK_LEGACY_CUMULATIVE_PENALTY = "cumulativePostponePenalty"
DATA_TASK_LEGACY_TASK_KIND = "taskKind"
DATA_TASK_LEGACY_POSTPONED_AT = "postponedAt"
DATA_TASK_LEGACY_POSTPONE_REASON = "postponeReason"

# ------------------------------------------------------------------------------------------------
# Postpone Entry Keys
# ------------------------------------------------------------------------------------------------
DATA_POSTPONE_FROM = "from"
DATA_POSTPONE_TO = "to"
DATA_POSTPONE_AT = "postponedAt"
DATA_POSTPONE_REASON = "reason"
DATA_POSTPONE_PENALTY = "penaltyApplied"

# ------------------------------------------------------------------------------------------------
# Recurrence Rule Keys
# ------------------------------------------------------------------------------------------------
DATA_RULE_TYPE = "type"
DATA_RULE_INTERVAL = "interval"
DATA_RULE_START_DATE = "startDate"
DATA_RULE_END_CONDITION = "endCondition"
DATA_RULE_END_DATE = "endDate"
DATA_RULE_OCCURRENCES = "occurrences"
DATA_RULE_DAYS_OF_WEEK = "daysOfWeek"
DATA_RULE_DAYS_OF_MONTH = "daysOfMonth"
DATA_RULE_DAY_OF_YEAR = "dayOfYear"
DATA_RULE_DAY_OF_YEAR_MONTH = "month"
DATA_RULE_DAY_OF_YEAR_DAY = "day"
DATA_RULE_UNIT = "unit"
DATA_RULE_SKIP_WEEKENDS = "skipWeekends"
# Times per period (not the recurrence type)
DATA_RULE_FREQUENCY = "frequency"

# ------------------------------------------------------------------------------------------------
# Points Ledger
# ------------------------------------------------------------------------------------------------
DATA_LEDGER_TIMESTAMP = "timestamp"
DATA_LEDGER_AMOUNT = "amount"
DATA_LEDGER_BALANCE_AFTER = "balance_after"
DATA_LEDGER_SOURCE = "source"
DATA_LEDGER_REFERENCE_ID = "reference_id"
DATA_LEDGER_ITEM_NAME = "item_name"

POINTS_SOURCE_COMPLETION = "completion"
POINTS_SOURCE_NOT_DONE = "not_done"
POINTS_SOURCE_POSTPONE = "postpone"
POINTS_SOURCE_UNDO = "undo"

# ------------------------------------------------------------------------------------------------
# Priorities
# ------------------------------------------------------------------------------------------------
PRIORITY_LOW = "low"
PRIORITY_MEDIUM = "medium"
PRIORITY_HIGH = "high"
PRIORITY_OPTIONS = [PRIORITY_LOW, PRIORITY_MEDIUM, PRIORITY_HIGH]

# ------------------------------------------------------------------------------------------------
# Configuration Option Keys
# ------------------------------------------------------------------------------------------------
CONF_REWARD_ON_DONE = "reward_on_done"
CONF_PENALTY_NOT_DONE = "penalty_not_done"
CONF_PENALTY_POSTPONE = "penalty_postpone"
CONF_PRIORITY_MULTIPLIERS = "priority_multipliers"
CONF_DEFAULT_DUE_TIME = "default_due_time"
CONF_PROGRESS_RATIO_CAP = "progress_ratio_cap"
CONF_STREAK_LOOKBACK_DAYS = "streak_lookback_days"
CONF_LEDGER_MAX_ENTRIES = "ledger_max_entries"
CONF_LEDGER_MAX_AGE_DAYS = "ledger_max_age_days"

# ------------------------------------------------------------------------------------------------
# Defaults
# ------------------------------------------------------------------------------------------------
DEFAULT_REWARD_ON_DONE = 10
DEFAULT_PENALTY_NOT_DONE = -10
DEFAULT_PENALTY_POSTPONE = -5

# Penalty assumed for postpone entries stored before penaltyApplied existed
LEGACY_POSTPONE_PENALTY = -5

DEFAULT_PRIORITY = PRIORITY_MEDIUM
DEFAULT_PRIORITY_MULTIPLIERS = {
    PRIORITY_LOW: 0.5,
    PRIORITY_MEDIUM: 1.0,
    PRIORITY_HIGH: 1.5,
}

# Tasks without an explicit time are due at the end of their day
DEFAULT_DUE_TIME = time(23, 59)
DEFAULT_DUE_TIME_STR = "23:59"

# Progress ratios above 1.0 mean overdue; capped for display
DEFAULT_PROGRESS_RATIO_CAP = 1.5

DEFAULT_STREAK_LOOKBACK_DAYS = 365
DEFAULT_MAX_LEDGER_ENTRIES = 50
# None keeps entries regardless of age
DEFAULT_LEDGER_MAX_AGE_DAYS: int | None = None

# ------------------------------------------------------------------------------------------------
# Calculation Limits
# ------------------------------------------------------------------------------------------------
# Inner scan guard for a single next-occurrence computation
MAX_DATE_CALCULATION_ITERATIONS = 1000

# Guard for walking a whole series (ranges, counts, is-due checks)
MAX_OCCURRENCE_WALK = 10000

# ------------------------------------------------------------------------------------------------
# Calendar (weekday indices: 0=Sunday ... 6=Saturday)
# ------------------------------------------------------------------------------------------------
WEEKDAY_SUNDAY = 0
WEEKDAY_MONDAY = 1
WEEKDAY_TUESDAY = 2
WEEKDAY_WEDNESDAY = 3
WEEKDAY_THURSDAY = 4
WEEKDAY_FRIDAY = 5
WEEKDAY_SATURDAY = 6

WEEKEND_DAYS = frozenset({WEEKDAY_SUNDAY, WEEKDAY_SATURDAY})

WEEKDAY_ABBREVIATIONS = ("Sun", "Mon", "Tue", "Wed", "Thu", "Fri", "Sat")
MONTH_ABBREVIATIONS = (
    "Jan",
    "Feb",
    "Mar",
    "Apr",
    "May",
    "Jun",
    "Jul",
    "Aug",
    "Sep",
    "Oct",
    "Nov",
    "Dec",
)

# ------------------------------------------------------------------------------------------------
# Display
# ------------------------------------------------------------------------------------------------
DISPLAY_NO_VALUE = "—"
DISPLAY_LESS_THAN_ONE_DAY = "< 1 day"
