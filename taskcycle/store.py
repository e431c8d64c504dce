# File: store.py
"""Handles task storage for taskcycle.

TaskStore keeps the task set and points ledger in memory and, when given a
path, persists them as one JSON snapshot. It is the unit-of-work boundary for
engine results: `apply()` writes every record of a result (e.g. an archived
parent and its postpone child) together, or none of them.

Snapshots older than the current schema version are upgraded by
LegacyTaskMigrator on load.
"""

from __future__ import annotations

from collections.abc import Iterable
import json
import os
from pathlib import Path
import tempfile
from typing import TYPE_CHECKING, Any, Protocol

from . import const
from .config import EngineConfig
from .data_builders import build_task_from_storage
from .engines.scoring_engine import ScoringEngine
from .migration_legacy import LegacyTaskMigrator
from .utils.dt_utils import dt_parse

if TYPE_CHECKING:
    from .engines.task_engine import TransitionResult
    from .models import Task
    from .type_defs import LedgerEntry


class TaskSource(Protocol):
    """Read access to the task set, as required by TaskManager."""

    def list_tasks(self) -> list[Task]:
        """Return every task record, archived ones included."""

    def list_tasks_by_group(self, group_id: str) -> list[Task]:
        """Return every instance of a recurring series or routine."""


def task_in_group(task: Task, group_id: str) -> bool:
    """Whether a task belongs to the series identified by `group_id`."""
    if task.recurrence_group_id == group_id:
        return True
    return task.is_routine and task.effective_routine_group_id == group_id


class TaskStore:
    """In-memory task store with optional JSON persistence.

    Utilizes the task id as the primary key. Satisfies TaskSource.
    """

    def __init__(
        self,
        path: str | os.PathLike[str] | None = None,
        *,
        config: EngineConfig | None = None,
    ) -> None:
        """Initialize the store.

        Args:
            path: JSON snapshot location; None keeps everything in memory
            config: Engine options (ledger retention)
        """
        self._path = Path(path) if path is not None else None
        self._config = config or EngineConfig()
        self._tasks: dict[str, Task] = {}
        self._ledger: list[LedgerEntry] = []
        self._meta: dict[str, Any] = self.get_default_structure()[const.DATA_META]

    @staticmethod
    def get_default_structure() -> dict[str, Any]:
        """Return canonical empty data structure for a fresh store.

        This is the SINGLE SOURCE OF TRUTH for the taskcycle snapshot layout.

        Returns:
            dict: Default structure with meta, tasks and ledger initialized.
        """
        return {
            const.DATA_META: {
                const.DATA_META_SCHEMA_VERSION: const.SCHEMA_VERSION_CURRENT,
            },
            const.DATA_TASKS: {},
            const.DATA_LEDGER: [],
        }

    @property
    def path(self) -> Path | None:
        """Snapshot file location (None when memory-only)."""
        return self._path

    # =========================================================================
    # Load / Save
    # =========================================================================

    def load(self) -> None:
        """Load the snapshot from disk, migrating legacy data.

        A missing file (or a memory-only store) starts empty.

        Raises:
            InvalidRecord: If a stored task record is malformed
            MalformedRule: If a stored recurrence rule is malformed
            json.JSONDecodeError: If the snapshot is not valid JSON
        """
        if self._path is None or not self._path.exists():
            const.LOGGER.info("TaskStore: No existing storage found. Starting empty")
            self._reset(self.get_default_structure())
            return

        const.LOGGER.debug("TaskStore: Loading data from %s", self._path)
        with self._path.open(encoding="utf-8") as handle:
            raw: dict[str, Any] = json.load(handle)

        version = raw.get(const.DATA_META, {}).get(
            const.DATA_META_SCHEMA_VERSION, const.SCHEMA_VERSION_LEGACY
        )
        migrated = version < const.SCHEMA_VERSION_CURRENT
        if migrated:
            raw = LegacyTaskMigrator(raw).run_all_migrations()

        self._reset(raw)
        const.LOGGER.debug(
            "TaskStore: Loaded %d tasks and %d ledger entries",
            len(self._tasks),
            len(self._ledger),
        )
        if migrated:
            self.save()

    def save(self) -> None:
        """Write the snapshot atomically (temp file + rename).

        Memory-only stores do nothing.

        Raises:
            OSError: When file system issues prevent saving
            TypeError: When data contains non-serializable types
        """
        if self._path is None:
            return

        snapshot = self.to_dict()
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(
                dir=self._path.parent, prefix=f".{self._path.name}.", suffix=".tmp"
            )
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as handle:
                    json.dump(snapshot, handle, indent=2)
                os.replace(tmp_name, self._path)
            except BaseException:
                Path(tmp_name).unlink(missing_ok=True)
                raise
        except OSError as err:
            const.LOGGER.error(
                "TaskStore: Failed to save storage due to file system error: %s. "
                "Check disk space and file permissions for %s",
                err,
                self._path,
            )
            raise
        except TypeError as err:
            const.LOGGER.error(
                "TaskStore: Failed to save storage due to non-serializable data: %s",
                err,
            )
            raise
        const.LOGGER.debug("TaskStore: Data saved successfully to %s", self._path)

    def to_dict(self) -> dict[str, Any]:
        """Serialize the whole store to the snapshot layout."""
        return {
            const.DATA_META: dict(self._meta),
            const.DATA_TASKS: {
                task_id: task.to_dict() for task_id, task in self._tasks.items()
            },
            const.DATA_LEDGER: [dict(entry) for entry in self._ledger],
        }

    def _reset(self, data: dict[str, Any]) -> None:
        """Replace in-memory state with a (current-schema) snapshot dict."""
        raw_tasks = data.get(const.DATA_TASKS) or {}
        records = raw_tasks.values() if isinstance(raw_tasks, dict) else raw_tasks
        tasks = [build_task_from_storage(record) for record in records]
        self._tasks = {task.id: task for task in tasks}
        self._ledger = list(data.get(const.DATA_LEDGER) or [])
        self._meta = dict(
            data.get(const.DATA_META)
            or self.get_default_structure()[const.DATA_META]
        )

    # =========================================================================
    # TaskSource
    # =========================================================================

    def list_tasks(self) -> list[Task]:
        """Return every task record, archived ones included."""
        return list(self._tasks.values())

    def list_tasks_by_group(self, group_id: str) -> list[Task]:
        """Return every instance of a recurring series or routine."""
        return [task for task in self._tasks.values() if task_in_group(task, group_id)]

    def get_task(self, task_id: str) -> Task | None:
        """Return a task by id (None if unknown)."""
        return self._tasks.get(task_id)

    # =========================================================================
    # Writes
    # =========================================================================

    def add_task(self, task: Task) -> Task:
        """Insert a new task and persist.

        Raises:
            ValueError: If a task with the same id already exists
        """
        if task.id in self._tasks:
            raise ValueError(f"Task {task.id} already exists")
        self._commit([task], (), None)
        const.LOGGER.debug("TaskStore: Added task %s ('%s')", task.id, task.title)
        return task

    def save_tasks(self, tasks: Iterable[Task]) -> None:
        """Upsert task records without a ledger entry (e.g. routine toggles)."""
        self._commit(list(tasks), (), None)

    def apply(self, result: TransitionResult) -> None:
        """Apply an engine result as one unit of work.

        Writes the result's saved tasks, deletes its removed tasks, records
        the point change in the ledger, then persists. If persisting fails
        the in-memory state is rolled back and the error re-raised.
        """
        ledger_entry = None
        if result.points_delta and result.points_source:
            ledger_entry = ScoringEngine.create_ledger_entry(
                current_balance=self.balance,
                delta=result.points_delta,
                source=result.points_source,
                reference_id=result.task.id,
                item_name=result.task.title,
            )
        self._commit(result.saved_tasks, result.deleted_task_ids, ledger_entry)
        const.LOGGER.debug(
            "TaskStore: Applied %s (saved=%d, deleted=%d, points=%+d)",
            result.action,
            len(result.saved_tasks),
            len(result.deleted_task_ids),
            result.points_delta,
        )

    def _commit(
        self,
        saved: Iterable[Task],
        deleted: Iterable[str],
        ledger_entry: LedgerEntry | None,
    ) -> None:
        """Mutate in memory, persist, and roll back if persisting fails."""
        previous_tasks = dict(self._tasks)
        previous_ledger = list(self._ledger)

        for task in saved:
            self._tasks[task.id] = task
        for task_id in deleted:
            self._tasks.pop(task_id, None)
        if ledger_entry is not None:
            self._ledger.append(ledger_entry)
            ScoringEngine.prune_ledger(
                self._ledger,
                self._config.ledger_max_entries,
                self._config.ledger_max_age_days,
                now=dt_parse(ledger_entry[const.DATA_LEDGER_TIMESTAMP]),
            )

        try:
            self.save()
        except (OSError, TypeError):
            const.LOGGER.warning("TaskStore: Rolling back in-memory changes")
            self._tasks = previous_tasks
            self._ledger = previous_ledger
            raise

    # =========================================================================
    # Points
    # =========================================================================

    @property
    def ledger(self) -> list[LedgerEntry]:
        """Points ledger, oldest first (copy)."""
        return list(self._ledger)

    @property
    def balance(self) -> int:
        """Running point total across live (non-archived) tasks."""
        return ScoringEngine.total_points(self._tasks.values())
