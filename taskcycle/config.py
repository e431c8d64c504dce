"""Engine configuration for taskcycle.

Options arrive as a plain mapping (from a settings file, a UI, or a test) and
are validated with a voluptuous schema that also supplies defaults. The
resulting EngineConfig is immutable and is handed to the managers.

Penalty options are signed: they must be zero or negative. The reward must be
zero or positive.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import time
from types import MappingProxyType
from typing import Any

import voluptuous as vol

from . import const
from .utils.dt_utils import dt_parse_time


def _valid_time(value: Any) -> time:
    """Voluptuous validator: accept a time or an "HH:MM" string."""
    parsed = dt_parse_time(value)
    if parsed is None:
        raise vol.Invalid(f"invalid time of day: {value!r}")
    return parsed


PRIORITY_MULTIPLIERS_SCHEMA = vol.Schema(
    {
        vol.In(const.PRIORITY_OPTIONS): vol.All(
            vol.Coerce(float), vol.Range(min=0)
        ),
    }
)

OPTIONS_SCHEMA = vol.Schema(
    {
        vol.Optional(
            const.CONF_REWARD_ON_DONE, default=const.DEFAULT_REWARD_ON_DONE
        ): vol.All(vol.Coerce(int), vol.Range(min=0)),
        vol.Optional(
            const.CONF_PENALTY_NOT_DONE, default=const.DEFAULT_PENALTY_NOT_DONE
        ): vol.All(vol.Coerce(int), vol.Range(max=0)),
        vol.Optional(
            const.CONF_PENALTY_POSTPONE, default=const.DEFAULT_PENALTY_POSTPONE
        ): vol.All(vol.Coerce(int), vol.Range(max=0)),
        vol.Optional(
            const.CONF_PRIORITY_MULTIPLIERS,
            default=dict(const.DEFAULT_PRIORITY_MULTIPLIERS),
        ): PRIORITY_MULTIPLIERS_SCHEMA,
        vol.Optional(
            const.CONF_DEFAULT_DUE_TIME, default=const.DEFAULT_DUE_TIME_STR
        ): _valid_time,
        vol.Optional(
            const.CONF_PROGRESS_RATIO_CAP, default=const.DEFAULT_PROGRESS_RATIO_CAP
        ): vol.All(vol.Coerce(float), vol.Range(min=1.0)),
        vol.Optional(
            const.CONF_STREAK_LOOKBACK_DAYS, default=const.DEFAULT_STREAK_LOOKBACK_DAYS
        ): vol.All(vol.Coerce(int), vol.Range(min=1)),
        vol.Optional(
            const.CONF_LEDGER_MAX_ENTRIES, default=const.DEFAULT_MAX_LEDGER_ENTRIES
        ): vol.All(vol.Coerce(int), vol.Range(min=1)),
        vol.Optional(
            const.CONF_LEDGER_MAX_AGE_DAYS, default=const.DEFAULT_LEDGER_MAX_AGE_DAYS
        ): vol.Any(None, vol.All(vol.Coerce(int), vol.Range(min=1))),
    }
)


@dataclass(frozen=True)
class EngineConfig:
    """Validated engine options.

    Attributes:
        reward_on_done: Base reward for completing a medium-priority task
        penalty_not_done: Signed penalty for marking a task not done
        penalty_postpone: Signed penalty charged per postpone
        priority_multipliers: Reward multiplier per priority
        default_due_time: Due time assumed for tasks without one
        progress_ratio_cap: Upper clamp of progress ratios
        streak_lookback_days: How far back streaks are walked
        ledger_max_entries: Points ledger retention (entry count)
        ledger_max_age_days: Points ledger retention in days (None keeps all)
    """

    reward_on_done: int = const.DEFAULT_REWARD_ON_DONE
    penalty_not_done: int = const.DEFAULT_PENALTY_NOT_DONE
    penalty_postpone: int = const.DEFAULT_PENALTY_POSTPONE
    priority_multipliers: Mapping[str, float] = field(
        default_factory=lambda: MappingProxyType(
            dict(const.DEFAULT_PRIORITY_MULTIPLIERS)
        )
    )
    default_due_time: time = const.DEFAULT_DUE_TIME
    progress_ratio_cap: float = const.DEFAULT_PROGRESS_RATIO_CAP
    streak_lookback_days: int = const.DEFAULT_STREAK_LOOKBACK_DAYS
    ledger_max_entries: int = const.DEFAULT_MAX_LEDGER_ENTRIES
    ledger_max_age_days: int | None = const.DEFAULT_LEDGER_MAX_AGE_DAYS

    @classmethod
    def from_options(cls, options: Mapping[str, Any] | None = None) -> EngineConfig:
        """Build a config from a raw options mapping.

        Args:
            options: Raw option values; missing keys take defaults

        Returns:
            Validated EngineConfig

        Raises:
            vol.Invalid: If any option is out of range or of the wrong type
        """
        validated = OPTIONS_SCHEMA(dict(options or {}))
        multipliers = dict(const.DEFAULT_PRIORITY_MULTIPLIERS)
        multipliers.update(validated[const.CONF_PRIORITY_MULTIPLIERS])
        config = cls(
            reward_on_done=validated[const.CONF_REWARD_ON_DONE],
            penalty_not_done=validated[const.CONF_PENALTY_NOT_DONE],
            penalty_postpone=validated[const.CONF_PENALTY_POSTPONE],
            priority_multipliers=MappingProxyType(multipliers),
            default_due_time=validated[const.CONF_DEFAULT_DUE_TIME],
            progress_ratio_cap=validated[const.CONF_PROGRESS_RATIO_CAP],
            streak_lookback_days=validated[const.CONF_STREAK_LOOKBACK_DAYS],
            ledger_max_entries=validated[const.CONF_LEDGER_MAX_ENTRIES],
            ledger_max_age_days=validated[const.CONF_LEDGER_MAX_AGE_DAYS],
        )
        const.LOGGER.debug("EngineConfig: loaded options %s", config)
        return config

    def multiplier_for(self, priority: str) -> float:
        """Reward multiplier for a priority (1.0 if unknown)."""
        return self.priority_multipliers.get(priority, 1.0)
