"""taskcycle - task recurrence and lifecycle engine.

Decides when a repeating task's next occurrence falls due, moves tasks through
pending -> completed / not done / postponed (and back via undo), scores each
transition, and derives routine progress and statistics from task history.

Typical wiring:
    config = EngineConfig.from_options({"penalty_postpone": -3})
    store = TaskStore("tasks.json", config=config)
    store.load()
    manager = TaskManager(store, config)
    store.apply(manager.complete(task_id))
"""

from .config import EngineConfig
from .const import (
    EndCondition,
    IntervalUnit,
    RecurrenceType,
    TaskKind,
    TaskStatus,
    UndoKind,
)
from .data_builders import build_task
from .engines import (
    CompleteResult,
    PostponeResult,
    RecurrenceEngine,
    ScoringEngine,
    StatisticsEngine,
    TaskEngine,
    TransitionResult,
    UndoResult,
)
from .exceptions import (
    InvalidRecord,
    InvalidState,
    MalformedRule,
    NothingToUndo,
    RecurrenceExhausted,
    TaskCycleError,
    TaskNotFound,
)
from .managers import TaskManager
from .models import DayOfYear, PostponeEntry, RecurrenceRule, Task
from .store import TaskSource, TaskStore

__all__ = [
    "CompleteResult",
    "DayOfYear",
    "EndCondition",
    "EngineConfig",
    "IntervalUnit",
    "InvalidRecord",
    "InvalidState",
    "MalformedRule",
    "NothingToUndo",
    "PostponeEntry",
    "PostponeResult",
    "RecurrenceEngine",
    "RecurrenceExhausted",
    "RecurrenceRule",
    "RecurrenceType",
    "ScoringEngine",
    "StatisticsEngine",
    "Task",
    "TaskCycleError",
    "TaskEngine",
    "TaskKind",
    "TaskManager",
    "TaskNotFound",
    "TaskSource",
    "TaskStatus",
    "TaskStore",
    "TransitionResult",
    "UndoKind",
    "UndoResult",
    "build_task",
]
