"""Typed errors raised by the taskcycle engines and managers.

Every error carries the identifiers needed to build a user-facing message,
following the same pattern as the points errors: attributes first, composed
message second. Operations that raise never leave partial state behind.
"""

from __future__ import annotations


class TaskCycleError(Exception):
    """Base class for all taskcycle errors."""


class InvalidState(TaskCycleError):
    """Raised when an operation is attempted from a status that forbids it.

    Attributes:
        task_id: The task the operation targeted
        status: The task's current status
        action: The attempted action (e.g. "complete", "postpone")
    """

    def __init__(self, task_id: str, status: str, action: str) -> None:
        """Initialize InvalidState.

        Args:
            task_id: The task the operation targeted
            status: The task's current status
            action: The attempted action
        """
        self.task_id = task_id
        self.status = status
        self.action = action
        super().__init__(
            f"Cannot {action} task {task_id}: current status is '{status}'"
        )


class NothingToUndo(TaskCycleError):
    """Raised when undo is requested for a task with no recorded transition."""

    def __init__(self, task_id: str) -> None:
        """Initialize NothingToUndo."""
        self.task_id = task_id
        super().__init__(f"Nothing to undo for task {task_id}")


class RecurrenceExhausted(TaskCycleError):
    """Raised when a recurrence series has no further occurrence.

    Attributes:
        reason: Which end condition stopped the series
    """

    def __init__(self, reason: str) -> None:
        """Initialize RecurrenceExhausted."""
        self.reason = reason
        super().__init__(f"Recurrence exhausted: {reason}")


class MalformedRule(TaskCycleError, ValueError):
    """Raised when a recurrence rule (or its stored record) is invalid.

    Attributes:
        field: The offending rule field
        message: Description of the problem
    """

    def __init__(self, field: str, message: str) -> None:
        """Initialize MalformedRule.

        Args:
            field: The offending rule field
            message: Description of the problem
        """
        self.field = field
        self.message = message
        super().__init__(f"Malformed recurrence rule ({field}): {message}")


class InvalidRecord(TaskCycleError, ValueError):
    """Raised when a stored task record fails validation.

    Attributes:
        field: Dotted path of the offending key
        message: Description of the problem
    """

    def __init__(self, field: str, message: str) -> None:
        """Initialize InvalidRecord."""
        self.field = field
        self.message = message
        super().__init__(f"Invalid task record ({field}): {message}")


class TaskNotFound(TaskCycleError, KeyError):
    """Raised when a task id cannot be resolved through the task source."""

    def __init__(self, task_id: str) -> None:
        """Initialize TaskNotFound."""
        self.task_id = task_id
        super().__init__(task_id)

    def __str__(self) -> str:
        """Return a readable message instead of KeyError's repr."""
        return f"Task {self.task_id} not found"
