"""Shared fixtures for taskcycle tests."""

from __future__ import annotations

from datetime import date, datetime, time
from typing import Any

import pytest

from taskcycle.config import EngineConfig
from taskcycle.const import EndCondition, RecurrenceType, TaskStatus
from taskcycle.models import PostponeEntry, RecurrenceRule, Task
from taskcycle.store import TaskStore

# Monday 2026-01-05 09:00 - reference "now" used across tests
NOW = datetime(2026, 1, 5, 9, 0)
MONDAY = date(2026, 1, 5)


def make_rule(
    frequency: RecurrenceType | str = RecurrenceType.DAILY,
    start: date | datetime = MONDAY,
    **kwargs: Any,
) -> RecurrenceRule:
    """Create a RecurrenceRule with test defaults."""
    return RecurrenceRule(frequency=frequency, start_date=start, **kwargs)


def make_task(
    task_id: str = "task-1",
    due_date: date = MONDAY,
    **kwargs: Any,
) -> Task:
    """Create a pending Task with test defaults."""
    kwargs.setdefault("title", "Water plants")
    kwargs.setdefault("created_at", datetime(2026, 1, 1, 8, 0))
    return Task(id=task_id, due_date=due_date, **kwargs)


def make_postponed_history(*penalties: int) -> tuple[PostponeEntry, ...]:
    """Create a postpone history with one entry per penalty."""
    entries = []
    for offset, penalty in enumerate(penalties):
        entries.append(
            PostponeEntry(
                from_date=date(2026, 1, 5 + offset),
                to_date=date(2026, 1, 6 + offset),
                postponed_at=datetime(2026, 1, 5 + offset, 10, 0),
                penalty_applied=penalty,
            )
        )
    return tuple(entries)


@pytest.fixture
def config() -> EngineConfig:
    """Default engine options."""
    return EngineConfig()


@pytest.fixture
def daily_rule() -> RecurrenceRule:
    """Daily rule starting Monday 2026-01-05."""
    return make_rule(RecurrenceType.DAILY)


@pytest.fixture
def pending_task() -> Task:
    """A plain pending one-off task."""
    return make_task()


@pytest.fixture
def recurring_task(daily_rule: RecurrenceRule) -> Task:
    """First instance of a daily recurring series."""
    return make_task(
        "series-0",
        recurrence_rule=daily_rule,
        recurrence_group_id="group-1",
    )


@pytest.fixture
def limited_rule() -> RecurrenceRule:
    """Daily rule that stops after three occurrences."""
    return make_rule(
        RecurrenceType.DAILY,
        end_condition=EndCondition.AFTER_OCCURRENCES,
        occurrence_limit=3,
    )


@pytest.fixture
def routine_task() -> Task:
    """An active routine instance with a weekly-ish custom rule."""
    return make_task(
        "routine-0",
        due_time=time(18, 0),
        recurrence_rule=make_rule(RecurrenceType.CUSTOM, interval=3, unit="days"),
        is_routine=True,
        routine_group_id="routine-0",
        routine_progress_start=datetime(2026, 1, 2, 18, 0),
    )


@pytest.fixture
def store(config: EngineConfig) -> TaskStore:
    """Memory-only store."""
    return TaskStore(config=config)


@pytest.fixture
def file_store(tmp_path: Any, config: EngineConfig) -> TaskStore:
    """Store persisting to a temporary JSON file."""
    return TaskStore(tmp_path / "tasks.json", config=config)


def completed(task: Task, at: datetime, points: int = 10) -> Task:
    """Return a completed copy of a task."""
    return task.with_changes(
        status=TaskStatus.COMPLETED, completed_at=at, points_earned=points
    )
