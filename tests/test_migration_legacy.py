"""Tests for LegacyTaskMigrator (schema 1 → schema 2).

Test Categories:
- Container normalization (task list → dict keyed by id)
- JSON-encoded fields, split due times, statuses, priorities, task kind
- Postpone history: legacy penalty default, count repair
- Points reconciliation with cumulativePostponePenalty
- Rule frequency defaults and inferred end conditions
- Meta stamping and idempotency
"""

from __future__ import annotations

import copy
import json
import logging
from typing import Any

from freezegun import freeze_time
import pytest

from taskcycle import const
from taskcycle.const import TaskStatus
from taskcycle.data_builders import build_task_from_storage
from taskcycle.migration_legacy import LegacyTaskMigrator


def _entry(**extra: Any) -> dict[str, Any]:
    return {
        "from": "2026-01-03",
        "to": "2026-01-05",
        "postponedAt": "2026-01-03T08:00:00.000",
        **extra,
    }


@pytest.fixture
def legacy_data() -> dict[str, Any]:
    """Schema-1 snapshot as written by older releases."""
    return {
        "tasks": [
            {
                "id": "a",
                "title": "Dishes",
                "dueDate": "2026-01-05",
                "status": "overdue",
                "priority": "High",
                "dueTimeHour": 7,
                "dueTimeMinute": 5,
                "postponeHistory": json.dumps([_entry()]),
                "postponeCount": 3,
                "pointsEarned": 0,
                "cumulativePostponePenalty": 5,
                "postponedAt": "2026-01-03T08:00:00.000",
                "postponeReason": "tired",
            },
            {
                "id": "b",
                "title": "Stretch",
                "dueDate": "2026-01-04",
                "status": "completed",
                "completedAt": "2026-01-04T09:00:00.000",
                "pointsEarned": 10,
                "postponeHistory": [_entry(penaltyApplied=2)],
                "postponeCount": 1,
                "cumulativePostponePenalty": -2,
                "taskKind": "routine",
                "recurrenceRule": json.dumps(
                    {
                        "type": "daily",
                        "frequency": 2,
                        "interval": 1,
                        "startDate": "2026-01-01T00:00:00.000",
                        "occurrences": 5,
                    }
                ),
            },
            {"title": "Orphan without id"},
        ]
    }


# =============================================================================
# FULL MIGRATION
# =============================================================================


class TestRunAllMigrations:
    """End-to-end migration of a representative snapshot."""

    @freeze_time("2026-01-05 09:00:00")
    def test_migrates_sample(self, legacy_data) -> None:
        """Every legacy quirk is normalized."""
        data = LegacyTaskMigrator(legacy_data).run_all_migrations()
        tasks = data[const.DATA_TASKS]

        assert set(tasks) == {"a", "b"}

        first = tasks["a"]
        assert first["status"] == TaskStatus.PENDING.value
        assert first["priority"] == const.PRIORITY_HIGH
        assert first["dueTime"] == "07:05"
        assert "dueTimeHour" not in first
        assert first["postponeCount"] == 1
        assert first["postponeHistory"][0]["penaltyApplied"] == -5
        assert first["pointsEarned"] == -5
        assert "cumulativePostponePenalty" not in first
        assert "postponedAt" not in first
        assert "postponeReason" not in first

        second = tasks["b"]
        assert second["isRoutine"] is True
        assert "taskKind" not in second
        assert second["postponeHistory"][0]["penaltyApplied"] == -2
        assert second["pointsEarned"] == 8
        rule = second["recurrenceRule"]
        assert rule["type"] == "daily"
        assert rule["occurrences"] == 5
        assert rule["endCondition"] == "after_occurrences"
        assert rule["frequency"] == 2

        assert data[const.DATA_META] == {
            const.DATA_META_SCHEMA_VERSION: const.SCHEMA_VERSION_CURRENT,
            const.DATA_META_LAST_MIGRATION_DATE: "2026-01-05T09:00:00",
        }
        assert data[const.DATA_LEDGER] == []

    def test_migrated_records_load(self, legacy_data) -> None:
        """The migrated records pass the storage loaders."""
        data = LegacyTaskMigrator(legacy_data).run_all_migrations()

        tasks = {
            task_id: build_task_from_storage(record)
            for task_id, record in data[const.DATA_TASKS].items()
        }

        assert tasks["a"].points_earned == -5
        assert tasks["a"].postpone_count == 1
        assert tasks["b"].is_routine
        assert tasks["b"].recurrence_rule is not None
        assert tasks["b"].recurrence_rule.occurrence_limit == 5
        assert tasks["b"].recurrence_rule.times_per_period == 2
        assert tasks["b"].to_dict()["recurrenceRule"]["frequency"] == 2

    def test_idempotent(self, legacy_data) -> None:
        """Migrating migrated data changes no task record."""
        once = LegacyTaskMigrator(legacy_data).run_all_migrations()
        snapshot = copy.deepcopy(once[const.DATA_TASKS])

        twice = LegacyTaskMigrator(once).run_all_migrations()

        assert twice[const.DATA_TASKS] == snapshot


# =============================================================================
# INDIVIDUAL MIGRATIONS
# =============================================================================


class TestIndividualMigrations:
    """Edge cases of single migration steps."""

    def test_missing_tasks_key(self) -> None:
        """A snapshot without tasks migrates to an empty dict."""
        data = LegacyTaskMigrator({}).run_all_migrations()

        assert data[const.DATA_TASKS] == {}

    def test_unreadable_history_is_reset(self, caplog) -> None:
        """Corrupt JSON history becomes an empty list with a warning."""
        data = {
            "tasks": {
                "t": {
                    "id": "t",
                    "dueDate": "2026-01-05",
                    "postponeHistory": "[{broken",
                    "postponeCount": 2,
                }
            }
        }

        with caplog.at_level(logging.WARNING):
            LegacyTaskMigrator(data).run_all_migrations()

        record = data["tasks"]["t"]
        assert record["postponeHistory"] == []
        assert record["postponeCount"] == 0
        assert "unreadable" in caplog.text

    def test_unreadable_rule_is_dropped(self) -> None:
        """A corrupt rule string leaves a one-off task."""
        data = {
            "tasks": {
                "t": {"id": "t", "dueDate": "2026-01-05", "recurrenceRule": "{nope"}
            }
        }

        LegacyTaskMigrator(data).run_all_migrations()

        assert data["tasks"]["t"]["recurrenceRule"] is None

    @pytest.mark.parametrize(
        ("raw", "expected"),
        [("LOW", "low"), (" Medium ", "medium"), ("urgent", "medium")],
    )
    def test_priorities(self, raw: str, expected: str) -> None:
        """Priorities are lowercased; unknown ones fall back to medium."""
        data = {"tasks": {"t": {"id": "t", "dueDate": "2026-01-05", "priority": raw}}}

        LegacyTaskMigrator(data).run_all_migrations()

        assert data["tasks"]["t"]["priority"] == expected

    @pytest.mark.parametrize(
        ("raw", "expected"), [(None, 1), (0, 1), ("2", 1), (4, 4)]
    )
    def test_rule_frequency_defaults(self, raw, expected: int) -> None:
        """Rule frequency is the times-per-period count; bad values become 1."""
        rule = {"type": "weekly", "startDate": "2026-01-05"}
        if raw is not None:
            rule["frequency"] = raw
        data = {
            "tasks": {"t": {"id": "t", "dueDate": "2026-01-05", "recurrenceRule": rule}}
        }

        LegacyTaskMigrator(data).run_all_migrations()

        migrated = data["tasks"]["t"]["recurrenceRule"]
        assert migrated["type"] == "weekly"
        assert migrated["frequency"] == expected

    def test_not_done_status_renamed(self) -> None:
        """The camelCase notDone status becomes not_done."""
        data = {
            "tasks": {
                "t": {
                    "id": "t",
                    "dueDate": "2026-01-05",
                    "status": "notDone",
                    "pointsEarned": -10,
                }
            }
        }

        LegacyTaskMigrator(data).run_all_migrations()

        record = data["tasks"]["t"]
        assert record["status"] == TaskStatus.NOT_DONE.value
        assert record["pointsEarned"] == -10

    @pytest.mark.parametrize(
        ("rule", "expected"),
        [
            ({"type": "daily", "startDate": "2026-01-01"}, "never"),
            (
                {"type": "daily", "startDate": "2026-01-01", "endDate": "2026-02-01"},
                "on_date",
            ),
            ({"type": "daily", "startDate": "2026-01-01", "occurrences": 3}, "after_occurrences"),
        ],
    )
    def test_end_condition_inferred(self, rule: dict, expected: str) -> None:
        """A missing end condition is inferred from the other fields."""
        data = {
            "tasks": {"t": {"id": "t", "dueDate": "2026-01-05", "recurrenceRule": rule}}
        }

        LegacyTaskMigrator(data).run_all_migrations()

        assert data["tasks"]["t"]["recurrenceRule"]["endCondition"] == expected

    def test_postponed_record_carries_penalties(self) -> None:
        """Archived records hold exactly their postpone penalties."""
        data = {
            "tasks": {
                "t": {
                    "id": "t",
                    "dueDate": "2026-01-05",
                    "status": "postponed",
                    "postponeHistory": [_entry(), _entry(penaltyApplied=-3)],
                    "postponeCount": 2,
                    "pointsEarned": 0,
                }
            }
        }

        LegacyTaskMigrator(data).run_all_migrations()

        assert data["tasks"]["t"]["pointsEarned"] == -8
