"""Task Manager - Task lifecycle operations by task id.

This manager handles the stateful side of task transitions:
- Resolving task ids (and their series siblings) through a TaskSource
- Deriving rewards and penalties from EngineConfig
- Race condition protection via one threading.Lock per task id
- Routing undo requests to the right inverse transition

ARCHITECTURE:
- TaskManager = "The Job" (resolution, configuration, serialization, logging)
- TaskEngine = Pure state machine logic (STATELESS)
- TaskStore = Unit-of-work persistence (`store.apply(result)`)

The manager never writes. Every operation returns the engine's result value,
which the caller hands to the store.
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator, Sequence
from contextlib import ExitStack, contextmanager
from datetime import date, datetime, time
import threading
from typing import TYPE_CHECKING, assert_never

from .. import const
from ..config import EngineConfig
from ..const import TaskStatus, UndoKind
from ..engines.scoring_engine import ScoringEngine
from ..engines.task_engine import (
    CompleteResult,
    PostponeResult,
    TaskEngine,
    TransitionResult,
    UndoResult,
)
from ..exceptions import NothingToUndo, TaskNotFound
from ..utils.dt_utils import dt_now_local

if TYPE_CHECKING:
    from ..models import Task
    from ..store import TaskSource


__all__ = ["TaskManager"]


class TaskManager:
    """Manager for task state transitions.

    Example:
        manager = TaskManager(store, config)
        result = manager.postpone(task_id, date(2026, 3, 2), "sick")
        store.apply(result)
    """

    # =========================================================================
    # §0 LIFECYCLE & INITIALIZATION
    # =========================================================================

    def __init__(self, source: TaskSource, config: EngineConfig | None = None) -> None:
        """Initialize TaskManager with its task source.

        Args:
            source: Read access to the task set
            config: Engine options (defaults if omitted)
        """
        self._source = source
        self._config = config or EngineConfig()

        # Locks for race condition protection (keyed by task_id)
        self._task_locks: dict[str, threading.Lock] = {}
        self._locks_guard = threading.Lock()

    @property
    def config(self) -> EngineConfig:
        """Engine options in use."""
        return self._config

    # =========================================================================
    # §1 FORWARD TRANSITIONS
    # =========================================================================

    def complete(
        self,
        task_id: str,
        *,
        points: int | None = None,
        now: datetime | None = None,
    ) -> CompleteResult:
        """Complete a pending task.

        Args:
            task_id: The task to complete
            points: Reward override (defaults to the priority-scaled reward)
            now: Completion timestamp (defaults to now)

        Returns:
            CompleteResult; `spawned_task` is set when the series regenerated

        Raises:
            TaskNotFound: If the task id is unknown
            InvalidState: If the task is not pending
        """
        with self._get_lock(task_id):
            task = self._get_task(task_id)
            reward = (
                points
                if points is not None
                else ScoringEngine.reward_for(task.priority, self._config)
            )
            result = TaskEngine.complete(
                task,
                reward,
                siblings=self._series_of(task),
                now=now or dt_now_local(),
            )

        const.LOGGER.info(
            "TaskManager: Completed task %s ('%s') for %+d points",
            task_id,
            task.title,
            result.points_delta,
        )
        if result.spawned_task is not None:
            const.LOGGER.info(
                "TaskManager: Scheduled next instance %s on %s",
                result.spawned_task.id,
                result.spawned_task.due_date,
            )
        return result

    def mark_not_done(
        self,
        task_id: str,
        reason: str | None = None,
        *,
        penalty: int | None = None,
        now: datetime | None = None,
    ) -> TransitionResult:
        """Mark a pending task as not done.

        Args:
            task_id: The task to mark
            reason: Optional free-text reason
            penalty: Penalty override (defaults to config penalty_not_done)
            now: Timestamp (defaults to now)

        Raises:
            TaskNotFound: If the task id is unknown
            InvalidState: If the task is not pending
        """
        with self._get_lock(task_id):
            task = self._get_task(task_id)
            result = TaskEngine.mark_not_done(
                task,
                reason,
                penalty if penalty is not None else self._config.penalty_not_done,
                now=now or dt_now_local(),
            )

        const.LOGGER.info(
            "TaskManager: Marked task %s not done (%+d points)",
            task_id,
            result.points_delta,
        )
        return result

    def postpone(
        self,
        task_id: str,
        new_date: date,
        reason: str | None = None,
        *,
        penalty: int | None = None,
        new_due_time: time | None = None,
        now: datetime | None = None,
    ) -> PostponeResult:
        """Postpone a pending task to a new date.

        Args:
            task_id: The task to postpone
            new_date: New due date
            reason: Optional free-text reason
            penalty: Penalty override (defaults to config penalty_postpone)
            new_due_time: Due time of the child (defaults to the task's)
            now: Timestamp (defaults to now)

        Returns:
            PostponeResult with the archived original and its pending child

        Raises:
            TaskNotFound: If the task id is unknown
            InvalidState: If the task is not pending
        """
        with self._get_lock(task_id):
            task = self._get_task(task_id)
            result = TaskEngine.postpone(
                task,
                new_date,
                reason,
                penalty if penalty is not None else self._config.penalty_postpone,
                now=now or dt_now_local(),
                new_due_time=new_due_time,
            )

        const.LOGGER.info(
            "TaskManager: Postponed task %s from %s to %s (child %s, %+d points)",
            task_id,
            task.due_date,
            new_date,
            result.child_task.id if result.child_task else None,
            result.points_delta,
        )
        return result

    # =========================================================================
    # §2 UNDO
    # =========================================================================

    def undo(self, task_id: str) -> UndoResult:
        """Reverse the last forward transition of a task.

        A pending task that is the live child of a postpone undoes that
        postpone (restoring its archived parent). Undoing a postpone locks
        both records, parent first, whichever of the two was named.

        Raises:
            TaskNotFound: If the task id is unknown
            NothingToUndo: If there is no transition to reverse
            InvalidState: If a postpone child has already progressed
        """
        with self._get_locks(self._undo_lock_ids(self._get_task(task_id))):
            task = self._get_task(task_id)

            if task.status == TaskStatus.PENDING:
                parent = self._postponed_parent_of(task)
                if parent is None:
                    raise NothingToUndo(task_id)
                result = TaskEngine.undo_postpone(parent, task)
            else:
                result = TaskEngine.undo(
                    task,
                    spawned=self._spawned_by(task),
                    child=self._postpone_child_of(task),
                )

        self._discard_locks(result.removed_task_ids)
        const.LOGGER.info(
            "TaskManager: %s on task %s (%+d points, removed %s)",
            result.action,
            result.task.id,
            result.points_delta,
            list(result.removed_task_ids),
        )
        return result

    def undo_kind(self, task_id: str) -> UndoKind | None:
        """Which transition undo() would reverse (None if nothing).

        Raises:
            TaskNotFound: If the task id is unknown
        """
        task = self._get_task(task_id)
        match task.status:
            case TaskStatus.COMPLETED:
                return UndoKind.COMPLETE
            case TaskStatus.NOT_DONE:
                return UndoKind.NOT_DONE
            case TaskStatus.POSTPONED:
                return UndoKind.POSTPONE
            case TaskStatus.PENDING:
                if self._postponed_parent_of(task) is not None:
                    return UndoKind.POSTPONE
                return None
            case _:
                assert_never(task.status)

    # =========================================================================
    # §3 ROUTINES
    # =========================================================================

    def plan_next_routine(
        self,
        task_id: str,
        due_date: date,
        due_time: time | None = None,
        now: datetime | None = None,
    ) -> TransitionResult:
        """Manually schedule the next instance of a routine.

        Raises:
            TaskNotFound: If the task id is unknown
            InvalidState: If the routine is inactive or already has a
                pending instance
        """
        with self._get_lock(task_id):
            task = self._get_task(task_id)
            result = TaskEngine.plan_next_routine(
                task,
                due_date,
                due_time=due_time,
                siblings=self._source.list_tasks_by_group(
                    task.effective_routine_group_id
                ),
                now=now or dt_now_local(),
            )

        const.LOGGER.info(
            "TaskManager: Planned routine instance %s on %s",
            result.task.id,
            due_date,
        )
        return result

    def set_routine_active(self, group_id: str, active: bool) -> list[Task]:
        """Pause or resume a routine.

        Returns:
            Updated copies of the routine's instances whose flag changed

        Raises:
            TaskNotFound: If no task belongs to the group
        """
        tasks = self._source.list_tasks_by_group(group_id)
        if not tasks:
            raise TaskNotFound(group_id)
        updated = TaskEngine.set_routine_active(tasks, active)
        const.LOGGER.info(
            "TaskManager: Routine %s %s (%d records)",
            group_id,
            "resumed" if active else "paused",
            len(updated),
        )
        return updated

    # =========================================================================
    # §4 HELPERS
    # =========================================================================

    def _get_lock(self, task_id: str) -> threading.Lock:
        """Get or create the lock serializing operations on one task.

        Args:
            task_id: The task's id

        Returns:
            threading.Lock for this task
        """
        with self._locks_guard:
            if task_id not in self._task_locks:
                self._task_locks[task_id] = threading.Lock()
            return self._task_locks[task_id]

    @contextmanager
    def _get_locks(self, task_ids: Sequence[str]) -> Iterator[None]:
        """Hold the locks of several tasks, acquired in the given order."""
        with ExitStack() as stack:
            for task_id in task_ids:
                stack.enter_context(self._get_lock(task_id))
            yield

    def _discard_locks(self, task_ids: Iterable[str]) -> None:
        """Forget the locks of tasks that are being deleted."""
        with self._locks_guard:
            for task_id in task_ids:
                self._task_locks.pop(task_id, None)

    @staticmethod
    def _undo_lock_ids(task: Task) -> list[str]:
        """Ids an undo touches, archived parent before live child."""
        if task.status == TaskStatus.PENDING and task.parent_task_id:
            return [task.parent_task_id, task.id]
        if task.status == TaskStatus.POSTPONED and task.child_task_id:
            return [task.id, task.child_task_id]
        return [task.id]

    def _get_task(self, task_id: str) -> Task:
        """Resolve a task id through the source.

        Raises:
            TaskNotFound: If no task has this id
        """
        getter = getattr(self._source, "get_task", None)
        if getter is not None:
            task = getter(task_id)
        else:
            task = next(
                (t for t in self._source.list_tasks() if t.id == task_id), None
            )
        if task is None:
            raise TaskNotFound(task_id)
        return task

    def _find(self, task_id: str | None) -> Task | None:
        """Resolve an optional link, tolerating dangling ids."""
        if task_id is None:
            return None
        try:
            return self._get_task(task_id)
        except TaskNotFound:
            const.LOGGER.debug("TaskManager: Linked task %s no longer exists", task_id)
            return None

    def _series_of(self, task: Task) -> list[Task]:
        """Other instances of the task's series (empty for one-off tasks)."""
        group_id = task.group_id
        if group_id is None:
            return []
        return [
            sibling
            for sibling in self._source.list_tasks_by_group(group_id)
            if sibling.id != task.id
        ]

    def _spawned_by(self, task: Task) -> Task | None:
        """Instance created when this task was completed."""
        if task.status != TaskStatus.COMPLETED:
            return None
        return self._find(task.spawned_task_id)

    def _postpone_child_of(self, task: Task) -> Task | None:
        """Live child that replaced a postponed task."""
        if task.status != TaskStatus.POSTPONED:
            return None
        child = self._find(task.child_task_id)
        if child is None:
            child = next(
                (t for t in self._source.list_tasks() if t.parent_task_id == task.id),
                None,
            )
        return child

    def _postponed_parent_of(self, task: Task) -> Task | None:
        """Archived parent whose postpone created this pending task."""
        parent = self._find(task.parent_task_id)
        if parent is None or parent.status != TaskStatus.POSTPONED:
            return None
        if parent.child_task_id not in (None, task.id):
            return None
        return parent
