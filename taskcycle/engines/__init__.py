"""Engine modules for taskcycle.

Contains specialized computation engines:
- schedule_engine: Occurrence calculation for recurrence rules
- task_engine: Task lifecycle state machine, undo, and series regeneration
- scoring_engine: Rewards, penalties and the points ledger
- statistics_engine: Progress ratios, intervals, streaks and summaries
"""

# Use relative imports within package to avoid mypy module resolution issues
from .schedule_engine import RecurrenceEngine
from .scoring_engine import ScoringEngine
from .statistics_engine import ProgressSnapshot, RoutineStats, StatisticsEngine
from .task_engine import (
    TASK_ACTION_COMPLETE,
    TASK_ACTION_NOT_DONE,
    TASK_ACTION_PLAN_ROUTINE,
    TASK_ACTION_POSTPONE,
    TASK_ACTION_SET_ROUTINE_ACTIVE,
    TASK_ACTION_UNDO_COMPLETE,
    TASK_ACTION_UNDO_NOT_DONE,
    TASK_ACTION_UNDO_POSTPONE,
    CompleteResult,
    PostponeResult,
    TaskEngine,
    TransitionResult,
    UndoResult,
)

__all__ = [
    "TASK_ACTION_COMPLETE",
    "TASK_ACTION_NOT_DONE",
    "TASK_ACTION_PLAN_ROUTINE",
    "TASK_ACTION_POSTPONE",
    "TASK_ACTION_SET_ROUTINE_ACTIVE",
    "TASK_ACTION_UNDO_COMPLETE",
    "TASK_ACTION_UNDO_NOT_DONE",
    "TASK_ACTION_UNDO_POSTPONE",
    "CompleteResult",
    "PostponeResult",
    "ProgressSnapshot",
    "RecurrenceEngine",
    "RoutineStats",
    "ScoringEngine",
    "StatisticsEngine",
    "TaskEngine",
    "TransitionResult",
    "UndoResult",
]
