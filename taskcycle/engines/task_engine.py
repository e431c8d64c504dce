"""Task Engine - Pure logic for task lifecycle transitions.

This engine provides stateless, pure Python functions for:
- State transition validation (pending -> completed / not_done / postponed)
- Forward transitions: complete, mark not done, postpone
- Exact inverse transitions: undo complete, undo not done, undo postpone
- Series regeneration (next occurrence of a recurring task or routine)
- Timestamp/status consistency checks

ARCHITECTURE: This is a pure logic engine. Every operation takes Task values
(and an explicit `now`) and returns a result value describing the new task
records, records to delete, and the point delta. Nothing is written here;
TaskManager resolves inputs and TaskStore applies results.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from datetime import date, datetime, time
from typing import ClassVar, assert_never

from .. import const
from ..const import TaskStatus
from ..data_builders import build_next_instance, build_postponed_child
from ..exceptions import InvalidState, NothingToUndo, RecurrenceExhausted
from ..models import PostponeEntry, Task
from .schedule_engine import RecurrenceEngine
from .scoring_engine import ScoringEngine

# =============================================================================
# TASK ACTION CONSTANTS
# =============================================================================

TASK_ACTION_COMPLETE = "complete"
TASK_ACTION_NOT_DONE = "not_done"
TASK_ACTION_POSTPONE = "postpone"
TASK_ACTION_UNDO_COMPLETE = "undo_complete"
TASK_ACTION_UNDO_NOT_DONE = "undo_not_done"
TASK_ACTION_UNDO_POSTPONE = "undo_postpone"
TASK_ACTION_PLAN_ROUTINE = "plan_routine"
TASK_ACTION_SET_ROUTINE_ACTIVE = "set_routine_active"

# Ledger source per action
_ACTION_POINTS_SOURCE: dict[str, str] = {
    TASK_ACTION_COMPLETE: const.POINTS_SOURCE_COMPLETION,
    TASK_ACTION_NOT_DONE: const.POINTS_SOURCE_NOT_DONE,
    TASK_ACTION_POSTPONE: const.POINTS_SOURCE_POSTPONE,
    TASK_ACTION_UNDO_COMPLETE: const.POINTS_SOURCE_UNDO,
    TASK_ACTION_UNDO_NOT_DONE: const.POINTS_SOURCE_UNDO,
    TASK_ACTION_UNDO_POSTPONE: const.POINTS_SOURCE_UNDO,
}


# =============================================================================
# TRANSITION RESULT DATA STRUCTURES
# =============================================================================


@dataclass(frozen=True)
class TransitionResult:
    """Outcome of a lifecycle operation on a single task.

    Attributes:
        action: TASK_ACTION_* constant
        task: The updated primary task
        points_delta: Change to the running point total (signed)
    """

    action: str
    task: Task
    points_delta: int = 0

    @property
    def saved_tasks(self) -> tuple[Task, ...]:
        """Task records to write, in order."""
        return (self.task,)

    @property
    def deleted_task_ids(self) -> tuple[str, ...]:
        """Task ids to delete."""
        return ()

    @property
    def points_source(self) -> str | None:
        """Ledger source for the point delta (None when not scored)."""
        return _ACTION_POINTS_SOURCE.get(self.action)


@dataclass(frozen=True)
class CompleteResult(TransitionResult):
    """Outcome of complete(): the completed task plus any regenerated instance."""

    spawned_task: Task | None = None

    @property
    def saved_tasks(self) -> tuple[Task, ...]:
        """Completed task, then the spawned instance (if any)."""
        if self.spawned_task is None:
            return (self.task,)
        return (self.task, self.spawned_task)


@dataclass(frozen=True)
class PostponeResult(TransitionResult):
    """Outcome of postpone(): the archived original plus its live child."""

    child_task: Task | None = None

    @property
    def archived_task(self) -> Task:
        """The archived original (status postponed)."""
        return self.task

    @property
    def saved_tasks(self) -> tuple[Task, ...]:
        """Archived parent, then the child."""
        if self.child_task is None:
            return (self.task,)
        return (self.task, self.child_task)


@dataclass(frozen=True)
class UndoResult(TransitionResult):
    """Outcome of an undo: the restored task plus records to delete."""

    removed_task_ids: tuple[str, ...] = ()

    @property
    def deleted_task_ids(self) -> tuple[str, ...]:
        """Spawned instances or postpone children removed by the undo."""
        return self.removed_task_ids


# =============================================================================
# TASK ENGINE
# =============================================================================


class TaskEngine:
    """Pure logic engine for task lifecycle transitions.

    All methods are static - no instance state.
    """

    # Valid state transitions matrix
    VALID_TRANSITIONS: ClassVar[dict[TaskStatus, frozenset[TaskStatus]]] = {
        TaskStatus.PENDING: frozenset(
            {TaskStatus.COMPLETED, TaskStatus.NOT_DONE, TaskStatus.POSTPONED}
        ),
        # Terminal states only go back through undo
        TaskStatus.COMPLETED: frozenset({TaskStatus.PENDING}),
        TaskStatus.NOT_DONE: frozenset({TaskStatus.PENDING}),
        TaskStatus.POSTPONED: frozenset({TaskStatus.PENDING}),
    }

    # =========================================================================
    # STATE TRANSITION VALIDATION
    # =========================================================================

    @staticmethod
    def can_transition(current: TaskStatus, target: TaskStatus) -> bool:
        """Validate if a state transition is allowed.

        Args:
            current: Current task status
            target: Desired new status

        Returns:
            True if transition is valid, False otherwise
        """
        return target in TaskEngine.VALID_TRANSITIONS.get(current, frozenset())

    @staticmethod
    def _require_transition(task: Task, target: TaskStatus, action: str) -> None:
        """Raise InvalidState unless `task` may move to `target`."""
        if not TaskEngine.can_transition(task.status, target):
            raise InvalidState(task.id, task.status.value, action)

    # =========================================================================
    # FORWARD TRANSITIONS
    # =========================================================================

    @staticmethod
    def complete(
        task: Task,
        reward: int,
        *,
        siblings: Iterable[Task] = (),
        now: datetime,
    ) -> CompleteResult:
        """Complete a pending task and regenerate its series if applicable.

        Args:
            task: Pending task to complete
            reward: Points awarded for completion (caller derived)
            siblings: Other instances of the task's series
            now: Completion timestamp

        Returns:
            CompleteResult with the completed task and the spawned next
            instance (None when the task does not repeat, the series is
            exhausted, or the next instance already exists)

        Raises:
            InvalidState: If the task is not pending
        """
        TaskEngine._require_transition(task, TaskStatus.COMPLETED, TASK_ACTION_COMPLETE)

        completed = task.with_changes(
            status=TaskStatus.COMPLETED,
            completed_at=now,
            points_earned=ScoringEngine.pending_points(task) + reward,
        )

        spawned = None
        if TaskEngine.regenerates(completed):
            spawned = TaskEngine.plan_next_occurrence(completed, siblings, now=now)
        if spawned is not None:
            completed = completed.with_changes(spawned_task_id=spawned.id)

        return CompleteResult(
            action=TASK_ACTION_COMPLETE,
            task=completed,
            points_delta=completed.points_earned - task.points_earned,
            spawned_task=spawned,
        )

    @staticmethod
    def mark_not_done(
        task: Task, reason: str | None, penalty: int, *, now: datetime
    ) -> TransitionResult:
        """Mark a pending task as not done.

        The penalty is normalized negative and added to the postpone
        penalties the task already carries.

        Raises:
            InvalidState: If the task is not pending
        """
        TaskEngine._require_transition(task, TaskStatus.NOT_DONE, TASK_ACTION_NOT_DONE)

        charged = ScoringEngine.normalize_penalty(penalty)
        updated = task.with_changes(
            status=TaskStatus.NOT_DONE,
            not_done_at=now,
            not_done_reason=reason,
            points_earned=ScoringEngine.pending_points(task) + charged,
        )
        return TransitionResult(
            action=TASK_ACTION_NOT_DONE,
            task=updated,
            points_delta=updated.points_earned - task.points_earned,
        )

    @staticmethod
    def postpone(
        task: Task,
        new_date: date,
        reason: str | None,
        penalty: int,
        *,
        now: datetime,
        new_due_time: time | None = None,
    ) -> PostponeResult:
        """Postpone a pending task to a new date.

        The original is archived (status postponed) with the new history entry
        appended; a pending child takes its place at `new_date`. The penalty is
        charged immediately on both records.

        Args:
            task: Pending task to postpone
            new_date: New due date
            reason: Optional free-text reason
            penalty: Penalty to charge (normalized negative)
            now: Postpone timestamp
            new_due_time: Due time of the child (defaults to the task's)

        Returns:
            PostponeResult(task=archived original, child_task=new pending task)

        Raises:
            InvalidState: If the task is not pending
        """
        TaskEngine._require_transition(task, TaskStatus.POSTPONED, TASK_ACTION_POSTPONE)

        charged = ScoringEngine.normalize_penalty(penalty)
        entry = PostponeEntry(
            from_date=task.due_date,
            to_date=new_date,
            postponed_at=now,
            reason=reason,
            penalty_applied=charged,
        )
        history = (*task.postpone_history, entry)
        archived = task.with_changes(
            status=TaskStatus.POSTPONED,
            postpone_history=history,
            postpone_count=len(history),
            points_earned=task.points_earned + charged,
        )
        child = build_postponed_child(
            archived,
            new_date,
            due_time=new_due_time if new_due_time is not None else task.due_time,
            now=now,
        )
        archived = archived.with_changes(child_task_id=child.id)

        return PostponeResult(
            action=TASK_ACTION_POSTPONE,
            task=archived,
            points_delta=charged,
            child_task=child,
        )

    # =========================================================================
    # INVERSE TRANSITIONS (UNDO)
    # =========================================================================

    @staticmethod
    def undo_complete(task: Task, spawned: Task | None = None) -> UndoResult:
        """Reverse complete().

        The instance spawned by the completion is deleted while still pending;
        one that has already progressed is kept.

        Raises:
            NothingToUndo: If the task is not completed
        """
        if task.status != TaskStatus.COMPLETED:
            raise NothingToUndo(task.id)

        restored = task.with_changes(
            status=TaskStatus.PENDING,
            completed_at=None,
            points_earned=ScoringEngine.pending_points(task),
            spawned_task_id=None,
        )
        removed: tuple[str, ...] = ()
        if spawned is not None:
            if spawned.status == TaskStatus.PENDING:
                removed = (spawned.id,)
            else:
                const.LOGGER.info(
                    "TaskEngine: Keeping spawned task %s of %s (status %s)",
                    spawned.id,
                    task.id,
                    spawned.status,
                )

        return UndoResult(
            action=TASK_ACTION_UNDO_COMPLETE,
            task=restored,
            points_delta=restored.points_earned - task.points_earned,
            removed_task_ids=removed,
        )

    @staticmethod
    def undo_not_done(task: Task) -> UndoResult:
        """Reverse mark_not_done().

        Raises:
            NothingToUndo: If the task is not marked not done
        """
        if task.status != TaskStatus.NOT_DONE:
            raise NothingToUndo(task.id)

        restored = task.with_changes(
            status=TaskStatus.PENDING,
            not_done_at=None,
            not_done_reason=None,
            points_earned=ScoringEngine.pending_points(task),
        )
        return UndoResult(
            action=TASK_ACTION_UNDO_NOT_DONE,
            task=restored,
            points_delta=restored.points_earned - task.points_earned,
        )

    @staticmethod
    def undo_postpone(archived: Task, child: Task | None) -> UndoResult:
        """Reverse postpone(): delete the child and restore the original.

        Args:
            archived: The archived original (status postponed)
            child: Its live child, or None if it no longer exists

        Raises:
            NothingToUndo: If `archived` is not a postponed record
            InvalidState: If the child has already moved on from pending
        """
        if archived.status != TaskStatus.POSTPONED or not archived.postpone_history:
            raise NothingToUndo(archived.id)
        if child is not None and child.status != TaskStatus.PENDING:
            raise InvalidState(child.id, child.status.value, TASK_ACTION_UNDO_POSTPONE)

        last = archived.postpone_history[-1]
        history = archived.postpone_history[:-1]
        restored = archived.with_changes(
            status=TaskStatus.PENDING,
            postpone_history=history,
            postpone_count=len(history),
            points_earned=archived.points_earned - last.penalty_applied,
            child_task_id=None,
        )
        if child is None:
            const.LOGGER.warning(
                "TaskEngine: Child of postponed task %s is missing; restoring parent only",
                archived.id,
            )

        return UndoResult(
            action=TASK_ACTION_UNDO_POSTPONE,
            task=restored,
            points_delta=-last.penalty_applied,
            removed_task_ids=(child.id,) if child is not None else (),
        )

    @staticmethod
    def undo(
        task: Task, *, spawned: Task | None = None, child: Task | None = None
    ) -> UndoResult:
        """Route an undo by the task's current status.

        Args:
            task: Task whose last forward transition should be reversed
            spawned: Instance spawned by a completion (completed tasks)
            child: Live child of a postpone (postponed tasks)

        Raises:
            NothingToUndo: If the task is pending (no forward transition)
            InvalidState: If a postpone child has already progressed
        """
        match task.status:
            case TaskStatus.COMPLETED:
                return TaskEngine.undo_complete(task, spawned)
            case TaskStatus.NOT_DONE:
                return TaskEngine.undo_not_done(task)
            case TaskStatus.POSTPONED:
                return TaskEngine.undo_postpone(task, child)
            case TaskStatus.PENDING:
                raise NothingToUndo(task.id)
            case _:
                assert_never(task.status)

    # =========================================================================
    # SERIES REGENERATION
    # =========================================================================

    @staticmethod
    def regenerates(task: Task) -> bool:
        """Whether completing this task materializes a next instance."""
        if not task.is_recurring:
            return False
        if task.is_routine:
            return task.is_routine_active
        return True

    @staticmethod
    def plan_next_occurrence(
        completed: Task, siblings: Iterable[Task], *, now: datetime
    ) -> Task | None:
        """Build the next pending instance of a completed task's series.

        Recurring tasks step from the instance's scheduled date; routines step
        from the day they were completed. Regeneration is idempotent: nothing
        is built when a later (or same-day) live instance already exists.

        Args:
            completed: The just-completed instance
            siblings: Other instances in the same series (any status)
            now: Timestamp for the new record

        Returns:
            The new pending instance, or None if none should be created
        """
        rule = completed.recurrence_rule
        if rule is None:
            return None

        others = [s for s in siblings if s.id != completed.id]
        indices = {s.recurrence_index for s in others}
        indices.add(completed.recurrence_index)

        if completed.is_routine and completed.completed_at is not None:
            anchor = completed.completed_at.date()
        else:
            anchor = completed.scheduled_date

        try:
            next_at = RecurrenceEngine(rule).next_occurrence(anchor, len(indices))
        except RecurrenceExhausted as err:
            const.LOGGER.debug(
                "TaskEngine: Series of task %s stops regenerating: %s",
                completed.id,
                err,
            )
            return None

        next_day = next_at.date()
        for sibling in others:
            if sibling.status != TaskStatus.PENDING:
                continue
            if sibling.due_date >= next_day or sibling.scheduled_date >= next_day:
                const.LOGGER.debug(
                    "TaskEngine: Next instance of %s already exists (%s)",
                    completed.id,
                    sibling.id,
                )
                return None

        due_time = completed.due_time
        if due_time is None and next_at.time() != time():
            due_time = next_at.time()

        return build_next_instance(
            completed,
            next_day,
            due_time=due_time,
            recurrence_index=max(indices) + 1,
            now=now,
            progress_start=completed.completed_at,
        )

    @staticmethod
    def plan_next_routine(
        task: Task,
        due_date: date,
        *,
        due_time: time | None = None,
        siblings: Iterable[Task] = (),
        now: datetime,
    ) -> TransitionResult:
        """Manually schedule the next instance of a routine.

        The countdown of the new instance starts at `now`.

        Raises:
            InvalidState: If the task is not an active routine, or the routine
                already has a pending instance
        """
        if not task.is_routine or not task.is_routine_active:
            raise InvalidState(task.id, task.status.value, TASK_ACTION_PLAN_ROUTINE)
        for sibling in siblings:
            if sibling.status == TaskStatus.PENDING:
                raise InvalidState(
                    sibling.id, sibling.status.value, TASK_ACTION_PLAN_ROUTINE
                )

        indices = {s.recurrence_index for s in siblings}
        indices.add(task.recurrence_index)
        instance = build_next_instance(
            task,
            due_date,
            due_time=due_time,
            recurrence_index=max(indices) + 1,
            now=now,
            progress_start=now,
        )
        return TransitionResult(action=TASK_ACTION_PLAN_ROUTINE, task=instance)

    @staticmethod
    def set_routine_active(tasks: Iterable[Task], active: bool) -> list[Task]:
        """Return copies of a routine's instances with the active flag set."""
        return [
            task.with_changes(is_routine_active=active)
            for task in tasks
            if task.is_routine and task.is_routine_active != active
        ]

    # =========================================================================
    # CONSISTENCY
    # =========================================================================

    @staticmethod
    def last_transition_at(task: Task) -> datetime | None:
        """Most recent lifecycle timestamp on the task (None if untouched)."""
        stamps = [
            stamp
            for stamp in (task.completed_at, task.not_done_at, task.last_postponed_at)
            if stamp is not None
        ]
        return max(stamps) if stamps else None

    @staticmethod
    def is_consistent(task: Task) -> bool:
        """Check that the status matches the most recent lifecycle timestamp.

        A completed task's latest timestamp is completed_at, a not-done
        task's is not_done_at, a postponed record's is its last history
        entry. A pending task carries neither terminal timestamp.
        """
        latest = TaskEngine.last_transition_at(task)
        match task.status:
            case TaskStatus.COMPLETED:
                return (
                    task.not_done_at is None
                    and task.completed_at is not None
                    and latest == task.completed_at
                )
            case TaskStatus.NOT_DONE:
                return (
                    task.completed_at is None
                    and task.not_done_at is not None
                    and latest == task.not_done_at
                )
            case TaskStatus.POSTPONED:
                return (
                    task.completed_at is None
                    and task.not_done_at is None
                    and latest is not None
                    and latest == task.last_postponed_at
                )
            case TaskStatus.PENDING:
                return task.completed_at is None and task.not_done_at is None
            case _:
                assert_never(task.status)
