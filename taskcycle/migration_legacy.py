"""Migration logic for task records written before schema version 2.

Legacy records come from older releases and differ from the current layout:
- postponeHistory / recurrenceRule stored as JSON-encoded strings
- postpone entries without penaltyApplied (read as -5)
- due time split into dueTimeHour / dueTimeMinute
- "overdue" status (equivalent to pending) and capitalized priorities
- postponeCount out of sync with the history
- cumulativePostponePenalty tracked beside pointsEarned
- taskKind = "routine" instead of isRoutine
- rules without an end condition or with a missing or invalid "frequency"
  (times per period)

All migrations operate on the raw storage dict and are idempotent. Loading the
migrated records into models happens afterwards in data_builders.py.

This file can be dropped once no schema-1 snapshots remain in the wild.
"""

from __future__ import annotations

import json
from typing import Any

from . import const
from .const import EndCondition, TaskStatus
from .utils.dt_utils import dt_format_iso, dt_now_local


class LegacyTaskMigrator:
    """Handles all pre-v2 task record migrations.

    Attributes:
        data: The raw storage dict being migrated (modified in place)
    """

    def __init__(self, data: dict[str, Any]) -> None:
        """Initialize the migrator with the raw storage dict.

        Args:
            data: Root storage structure as read from disk
        """
        self.data = data

    @property
    def tasks(self) -> dict[str, dict[str, Any]]:
        """Task records keyed by id."""
        return self.data.setdefault(const.DATA_TASKS, {})

    def run_all_migrations(self) -> dict[str, Any]:
        """Execute all legacy migrations in order and return the migrated data.

        Order matters: string fields are decoded before anything inspects
        them, and points are reconciled after the history has been repaired.
        """
        const.LOGGER.info(
            "LegacyTaskMigrator: Starting migration of schema %s data to schema %s",
            self.data.get(const.DATA_META, {}).get(
                const.DATA_META_SCHEMA_VERSION, const.SCHEMA_VERSION_LEGACY
            ),
            const.SCHEMA_VERSION_CURRENT,
        )

        self._normalize_task_container()
        self._decode_string_fields()
        self._convert_due_time_fields()
        self._convert_legacy_statuses()
        self._normalize_priorities()
        self._convert_task_kind()
        self._default_postpone_penalties()
        self._repair_postpone_counts()
        self._reconcile_points()
        self._migrate_rule_fields()
        self._drop_legacy_postpone_keys()
        self._finalize_migration_meta()

        const.LOGGER.info(
            "LegacyTaskMigrator: Migrated %d task records", len(self.tasks)
        )
        return self.data

    # =========================================================================
    # Container
    # =========================================================================

    def _normalize_task_container(self) -> None:
        """Convert a task list into a dict keyed by task id.

        Early snapshots stored tasks as a plain array. Records without an id
        cannot be addressed and are dropped.
        """
        raw_tasks = self.data.get(const.DATA_TASKS)
        if raw_tasks is None:
            self.data[const.DATA_TASKS] = {}
            return
        if isinstance(raw_tasks, dict):
            return

        converted: dict[str, dict[str, Any]] = {}
        for record in raw_tasks:
            task_id = record.get(const.DATA_TASK_ID) if isinstance(record, dict) else None
            if not task_id:
                const.LOGGER.warning(
                    "LegacyTaskMigrator: Dropping task record without id: %s", record
                )
                continue
            converted[task_id] = record
        self.data[const.DATA_TASKS] = converted
        const.LOGGER.debug(
            "LegacyTaskMigrator: Converted task list to dict (%d records)",
            len(converted),
        )

    # =========================================================================
    # Field encoding
    # =========================================================================

    def _decode_string_fields(self) -> None:
        """Decode postponeHistory and recurrenceRule stored as JSON strings.

        Undecodable history becomes an empty list; an undecodable rule is
        removed so the task loads as a one-off.
        """
        decoded = 0
        for task_id, record in self.tasks.items():
            history = record.get(const.DATA_TASK_POSTPONE_HISTORY)
            if isinstance(history, str):
                record[const.DATA_TASK_POSTPONE_HISTORY] = self._decode_json(
                    task_id, const.DATA_TASK_POSTPONE_HISTORY, history, []
                )
                decoded += 1

            rule = record.get(const.DATA_TASK_RECURRENCE_RULE)
            if isinstance(rule, str):
                record[const.DATA_TASK_RECURRENCE_RULE] = self._decode_json(
                    task_id, const.DATA_TASK_RECURRENCE_RULE, rule, None
                )
                decoded += 1

        if decoded:
            const.LOGGER.debug(
                "LegacyTaskMigrator: Decoded %d string-encoded fields", decoded
            )

    @staticmethod
    def _decode_json(task_id: str, key: str, raw: str, fallback: Any) -> Any:
        """Parse one JSON-encoded field, returning `fallback` on bad input."""
        if not raw.strip():
            return fallback
        try:
            return json.loads(raw)
        except json.JSONDecodeError as err:
            const.LOGGER.warning(
                "LegacyTaskMigrator: Task %s has unreadable %s (%s); resetting",
                task_id,
                key,
                err,
            )
            return fallback

    def _convert_due_time_fields(self) -> None:
        """Merge dueTimeHour / dueTimeMinute into a single "HH:MM" dueTime."""
        converted = 0
        for record in self.tasks.values():
            hour = record.pop(const.DATA_TASK_LEGACY_DUE_TIME_HOUR, None)
            minute = record.pop(const.DATA_TASK_LEGACY_DUE_TIME_MINUTE, None)
            if hour is None or record.get(const.DATA_TASK_DUE_TIME):
                continue
            record[const.DATA_TASK_DUE_TIME] = f"{int(hour):02d}:{int(minute or 0):02d}"
            converted += 1

        if converted:
            const.LOGGER.debug(
                "LegacyTaskMigrator: Converted %d split due times", converted
            )

    # =========================================================================
    # Status and classification
    # =========================================================================

    def _convert_legacy_statuses(self) -> None:
        """Map "overdue" (and "notDone") onto the current status values.

        Overdue was a stored status in early versions; it is now derived from
        the due moment, so those records become pending.
        """
        for task_id, record in self.tasks.items():
            status = record.get(const.DATA_TASK_STATUS)
            if status == const.LEGACY_STATUS_OVERDUE:
                record[const.DATA_TASK_STATUS] = TaskStatus.PENDING.value
                const.LOGGER.debug(
                    "LegacyTaskMigrator: Task %s status overdue → pending", task_id
                )
            elif status == const.LEGACY_STATUS_NOT_DONE:
                record[const.DATA_TASK_STATUS] = TaskStatus.NOT_DONE.value

    def _normalize_priorities(self) -> None:
        """Lowercase priorities; unknown values fall back to the default."""
        for task_id, record in self.tasks.items():
            priority = record.get(const.DATA_TASK_PRIORITY)
            if priority is None:
                continue
            normalized = str(priority).strip().lower()
            if normalized not in const.PRIORITY_OPTIONS:
                const.LOGGER.warning(
                    "LegacyTaskMigrator: Task %s has unknown priority '%s'; using %s",
                    task_id,
                    priority,
                    const.DEFAULT_PRIORITY,
                )
                normalized = const.DEFAULT_PRIORITY
            record[const.DATA_TASK_PRIORITY] = normalized

    def _convert_task_kind(self) -> None:
        """Replace the legacy taskKind field with the isRoutine flag."""
        for record in self.tasks.values():
            kind = record.pop(const.DATA_TASK_LEGACY_TASK_KIND, None)
            if kind == const.TaskKind.ROUTINE.value:
                record[const.DATA_TASK_IS_ROUTINE] = True

    # =========================================================================
    # Postpone history and points
    # =========================================================================

    def _default_postpone_penalties(self) -> None:
        """Give every postpone entry a signed penaltyApplied.

        Entries written before the field existed were charged the fixed
        legacy penalty, so they read as LEGACY_POSTPONE_PENALTY.
        """
        defaulted = 0
        for record in self.tasks.values():
            history = record.get(const.DATA_TASK_POSTPONE_HISTORY) or []
            for entry in history:
                if entry.get(const.DATA_POSTPONE_PENALTY) is None:
                    entry[const.DATA_POSTPONE_PENALTY] = const.LEGACY_POSTPONE_PENALTY
                    defaulted += 1
                else:
                    entry[const.DATA_POSTPONE_PENALTY] = -abs(
                        int(entry[const.DATA_POSTPONE_PENALTY])
                    )
            record[const.DATA_TASK_POSTPONE_HISTORY] = history

        if defaulted:
            const.LOGGER.info(
                "LegacyTaskMigrator: Defaulted penaltyApplied=%s on %d postpone entries",
                const.LEGACY_POSTPONE_PENALTY,
                defaulted,
            )

    def _repair_postpone_counts(self) -> None:
        """Make postponeCount equal the history length (history wins)."""
        for task_id, record in self.tasks.items():
            history_len = len(record.get(const.DATA_TASK_POSTPONE_HISTORY) or [])
            count = record.get(const.DATA_TASK_POSTPONE_COUNT)
            if count != history_len:
                if count is not None:
                    const.LOGGER.warning(
                        "LegacyTaskMigrator: Task %s postponeCount=%s but history has %d entries; repairing",
                        task_id,
                        count,
                        history_len,
                    )
                record[const.DATA_TASK_POSTPONE_COUNT] = history_len

    def _reconcile_points(self) -> None:
        """Fold cumulativePostponePenalty into pointsEarned.

        Pending and postponed records carry exactly the sum of their postpone
        penalties. Completed and not-done records stored only their terminal
        reward or penalty, so the postpone penalties are added on top.
        """
        folded = 0
        for task_id, record in self.tasks.items():
            had_cumulative = const.DATA_TASK_LEGACY_CUMULATIVE_PENALTY in record
            cumulative = record.pop(const.DATA_TASK_LEGACY_CUMULATIVE_PENALTY, None)
            penalties = sum(
                entry[const.DATA_POSTPONE_PENALTY]
                for entry in record.get(const.DATA_TASK_POSTPONE_HISTORY) or []
            )
            points = int(record.get(const.DATA_TASK_POINTS_EARNED) or 0)
            status = record.get(const.DATA_TASK_STATUS, TaskStatus.PENDING.value)

            if cumulative is not None and -abs(int(cumulative)) != penalties:
                const.LOGGER.debug(
                    "LegacyTaskMigrator: Task %s cumulative penalty %s differs from history total %s",
                    task_id,
                    cumulative,
                    penalties,
                )

            if status in (TaskStatus.PENDING.value, TaskStatus.POSTPONED.value):
                new_points = penalties
            elif had_cumulative:
                new_points = points + penalties
            else:
                new_points = points

            if new_points != points:
                folded += 1
            record[const.DATA_TASK_POINTS_EARNED] = new_points

        if folded:
            const.LOGGER.info(
                "LegacyTaskMigrator: Reconciled pointsEarned on %d task records", folded
            )

    def _drop_legacy_postpone_keys(self) -> None:
        """Remove task-level postponedAt / postponeReason.

        Both are duplicated by the last postpone history entry.
        """
        for record in self.tasks.values():
            record.pop(const.DATA_TASK_LEGACY_POSTPONED_AT, None)
            record.pop(const.DATA_TASK_LEGACY_POSTPONE_REASON, None)

    # =========================================================================
    # Recurrence rules
    # =========================================================================

    def _migrate_rule_fields(self) -> None:
        """Default the times-per-period count and infer a missing end condition."""
        repaired = 0
        for record in self.tasks.values():
            rule = record.get(const.DATA_TASK_RECURRENCE_RULE)
            if not isinstance(rule, dict):
                continue

            times = rule.get(const.DATA_RULE_FREQUENCY)
            if isinstance(times, bool) or not isinstance(times, int) or times < 1:
                if times is not None:
                    const.LOGGER.warning(
                        "LegacyTaskMigrator: Task %s has invalid rule frequency %r, using 1",
                        record.get(const.DATA_TASK_ID),
                        times,
                    )
                rule[const.DATA_RULE_FREQUENCY] = 1
                repaired += 1

            if rule.get(const.DATA_RULE_END_CONDITION) is None:
                if rule.get(const.DATA_RULE_OCCURRENCES):
                    end_condition = EndCondition.AFTER_OCCURRENCES
                elif rule.get(const.DATA_RULE_END_DATE):
                    end_condition = EndCondition.ON_DATE
                else:
                    end_condition = EndCondition.NEVER
                rule[const.DATA_RULE_END_CONDITION] = end_condition.value

        if repaired:
            const.LOGGER.debug(
                "LegacyTaskMigrator: Defaulted frequency on %d rules", repaired
            )

    # =========================================================================
    # Meta
    # =========================================================================

    def _finalize_migration_meta(self) -> None:
        """Stamp the current schema version.

        This MUST run last: the version only moves forward once every
        migration above has succeeded.
        """
        self.data[const.DATA_META] = {
            const.DATA_META_SCHEMA_VERSION: const.SCHEMA_VERSION_CURRENT,
            const.DATA_META_LAST_MIGRATION_DATE: dt_format_iso(dt_now_local()),
        }
        self.data.setdefault(const.DATA_LEDGER, [])
        const.LOGGER.debug(
            "LegacyTaskMigrator: Migration meta finalized: schema_version=%s",
            const.SCHEMA_VERSION_CURRENT,
        )
