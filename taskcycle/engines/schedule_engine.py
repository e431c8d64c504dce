"""Schedule Engine for taskcycle.

Occurrence calculator using a hybrid approach:
- `dateutil.rrule` for WEEKLY patterns (weekday sets with an N-week stride)
- `dateutil.relativedelta` for month/year steps with clamping
  (Jan 31 + 1 month = Feb 28)
- plain day arithmetic for DAILY and custom day/week steps

All calculations are calendar-day granular. The time of day of the rule's
start date is carried onto every result, so results are deterministic for
identical inputs and strictly after the reference day.

IMPORTANT: This module must NOT import from managers to avoid circular imports.
Only import from const.py, models.py, exceptions.py, and utils.
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator
from datetime import date, datetime, time, timedelta
from typing import ClassVar

from dateutil.rrule import FR, MO, SA, SU, TH, TU, WE, WEEKLY, rrule

from .. import const
from ..const import EndCondition, IntervalUnit, RecurrenceType
from ..exceptions import RecurrenceExhausted
from ..models import RecurrenceRule
from ..utils.dt_utils import (
    as_date,
    clamp_day,
    days_in_month,
    dt_add_interval,
    month_index,
    skip_weekend,
    start_of_day,
    weekday_index,
)


class RecurrenceEngine:
    """Occurrence calculator for a single RecurrenceRule.

    Handles all recurrence types:
    - DAILY: every N days, optionally skipping weekends
    - WEEKLY: selected weekdays in every N-th week counted from the start
    - MONTHLY: selected days (clamped to month length) in every N-th month
    - YEARLY: a month/day (Feb 29 clamps to Feb 28) every N years
    - CUSTOM: every N days/weeks/months/years

    End conditions (on_date, after_occurrences) are enforced on every call.
    """

    # Sunday-based weekday index -> rrule weekday
    WEEKDAY_TO_RRULE: ClassVar[tuple] = (SU, MO, TU, WE, TH, FR, SA)

    def __init__(self, rule: RecurrenceRule) -> None:
        """Initialize the recurrence engine for a validated rule."""
        self._rule = rule
        self._weekly_rrule: rrule | None = None

    @property
    def rule(self) -> RecurrenceRule:
        """The rule this engine calculates for."""
        return self._rule

    # =========================================================================
    # Public: next occurrence
    # =========================================================================

    def next_occurrence(
        self, after: date | datetime, occurrences_so_far: int = 0
    ) -> datetime:
        """Return the first occurrence strictly after `after`.

        If `after` is before the rule's start date, the first occurrence on or
        after the start date is returned.

        Args:
            after: Reference date (only its calendar day is used)
            occurrences_so_far: Instances already generated in the series,
                used by the after_occurrences end condition

        Returns:
            Occurrence datetime (candidate day + start time of day)

        Raises:
            RecurrenceExhausted: If the rule type is none, the occurrence limit
                is reached, or the candidate falls after the end date
        """
        rule = self._rule
        if rule.frequency == RecurrenceType.NONE:
            raise RecurrenceExhausted("rule does not repeat")

        if (
            rule.end_condition == EndCondition.AFTER_OCCURRENCES
            and rule.occurrence_limit is not None
            and occurrences_so_far >= rule.occurrence_limit
        ):
            raise RecurrenceExhausted(
                f"occurrence limit {rule.occurrence_limit} reached"
            )

        after_day = as_date(after)
        candidate = self._next_candidate(after_day)
        if candidate is None:
            raise RecurrenceExhausted("no occurrence within calculation limit")

        if (
            rule.end_condition == EndCondition.ON_DATE
            and rule.end_date is not None
            and candidate > rule.end_date
        ):
            raise RecurrenceExhausted(f"end date {rule.end_date.isoformat()} passed")

        return datetime.combine(candidate, rule.time_of_day)

    def get_next_occurrence(
        self, after: date | datetime, occurrences_so_far: int = 0
    ) -> datetime | None:
        """Same as next_occurrence(), but returns None when exhausted."""
        try:
            return self.next_occurrence(after, occurrences_so_far)
        except RecurrenceExhausted as err:
            const.LOGGER.debug("RecurrenceEngine: %s", err)
            return None

    def get_next_occurrences(
        self, after: date | datetime, count: int, occurrences_so_far: int = 0
    ) -> list[datetime]:
        """Return up to `count` consecutive occurrences after `after`.

        The list is shorter than `count` when the series ends first.
        """
        results: list[datetime] = []
        reference: date | datetime = after
        generated = occurrences_so_far
        while len(results) < count:
            occurrence = self.get_next_occurrence(reference, generated)
            if occurrence is None:
                break
            results.append(occurrence)
            reference = occurrence
            generated += 1
        return results

    # =========================================================================
    # Public: series queries
    # =========================================================================

    def get_occurrences(
        self,
        start: date | datetime,
        end: date | datetime,
        limit: int = const.MAX_OCCURRENCE_WALK,
    ) -> list[datetime]:
        """Return every occurrence whose day lies within [start, end].

        The series is walked from its first occurrence so chained rules
        (daily/custom) and occurrence limits stay exact. Fixed-length rules
        fast-forward arithmetically.

        Args:
            start: First day of the window (inclusive)
            end: Last day of the window (inclusive)
            limit: Maximum occurrences walked before giving up

        Returns:
            Occurrences in chronological order
        """
        range_start = as_date(start)
        range_end = as_date(end)
        if range_end < range_start or self._rule.frequency == RecurrenceType.NONE:
            return []

        after, generated = self._fast_forward(range_start)
        results: list[datetime] = []
        for occurrence in self._walk(after, generated, limit):
            day = occurrence.date()
            if day > range_end:
                break
            if day >= range_start:
                results.append(occurrence)
        return results

    def count_occurrences_in_range(
        self, start: date | datetime, end: date | datetime
    ) -> int:
        """Number of occurrences whose day lies within [start, end]."""
        return len(self.get_occurrences(start, end))

    def is_due_on(self, day: date | datetime) -> bool:
        """Whether the series has an occurrence on the given day."""
        return bool(self.get_occurrences(day, day))

    def get_current_period(self, reference: date | datetime) -> tuple[datetime, datetime]:
        """Return the quota period containing `reference`.

        Daily rules use the day, weekly rules the Sunday-based week, monthly
        rules the calendar month, yearly rules the calendar year. Custom
        rules use the period of their unit.

        Returns:
            (start of first day, end of last day)
        """
        day = as_date(reference)
        period = self._period_unit()

        if period == IntervalUnit.WEEKS:
            first = day - timedelta(days=weekday_index(day))
            last = first + timedelta(days=6)
        elif period == IntervalUnit.MONTHS:
            first = day.replace(day=1)
            last = day.replace(day=days_in_month(day.year, day.month))
        elif period == IntervalUnit.YEARS:
            first = date(day.year, 1, 1)
            last = date(day.year, 12, 31)
        else:
            first = last = day

        return start_of_day(first), datetime.combine(last, time.max)

    def remaining_in_period(
        self, reference: date | datetime, completions: Iterable[datetime]
    ) -> int:
        """Completions still expected in the period containing `reference`.

        The quota is the rule's times_per_period; completions outside the
        period are ignored.
        """
        period_start, period_end = self.get_current_period(reference)
        done = sum(
            1 for moment in completions if period_start <= moment <= period_end
        )
        return max(0, self._rule.times_per_period - done)

    # =========================================================================
    # Public: description
    # =========================================================================

    def describe(self) -> str:
        """Human-readable English summary, e.g. "Every 2 weeks on Mon, Fri"."""
        rule = self._rule
        interval = rule.interval

        if rule.frequency == RecurrenceType.NONE:
            return "Does not repeat"

        if rule.frequency == RecurrenceType.DAILY:
            text = "Daily" if interval == 1 else f"Every {interval} days"
            if rule.skip_weekends:
                text += " (weekdays only)"
        elif rule.frequency == RecurrenceType.WEEKLY:
            text = "Weekly" if interval == 1 else f"Every {interval} weeks"
            names = [const.WEEKDAY_ABBREVIATIONS[d] for d in sorted(rule.days_of_week)]
            text += f" on {', '.join(names)}"
        elif rule.frequency == RecurrenceType.MONTHLY:
            text = "Monthly" if interval == 1 else f"Every {interval} months"
            days = [_ordinal(d) for d in sorted(rule.days_of_month)]
            text += f" on the {', '.join(days)}"
        elif rule.frequency == RecurrenceType.YEARLY:
            text = "Yearly" if interval == 1 else f"Every {interval} years"
            if rule.day_of_year is not None:
                month = const.MONTH_ABBREVIATIONS[rule.day_of_year.month - 1]
                text += f" on {month} {_ordinal(rule.day_of_year.day)}"
        else:
            unit = rule.unit.value if rule.unit else IntervalUnit.DAYS.value
            text = f"Every {unit[:-1]}" if interval == 1 else f"Every {interval} {unit}"
            if rule.skip_weekends and rule.unit == IntervalUnit.DAYS:
                text += " (weekdays only)"

        if rule.times_per_period > 1:
            text = f"{rule.times_per_period} times {text[0].lower()}{text[1:]}"

        if rule.end_condition == EndCondition.ON_DATE and rule.end_date:
            text += f", until {rule.end_date.isoformat()}"
        elif rule.end_condition == EndCondition.AFTER_OCCURRENCES:
            text += f", {rule.occurrence_limit} times"
        return text

    # =========================================================================
    # Private: per-type candidate calculation
    # =========================================================================

    def _next_candidate(self, after_day: date) -> date | None:
        """Dispatch to the per-type calculation (end conditions not applied)."""
        frequency = self._rule.frequency
        if frequency == RecurrenceType.DAILY:
            return self._next_daily(after_day)
        if frequency == RecurrenceType.WEEKLY:
            return self._next_weekly(after_day)
        if frequency == RecurrenceType.MONTHLY:
            return self._next_monthly(after_day)
        if frequency == RecurrenceType.YEARLY:
            return self._next_yearly(after_day)
        if frequency == RecurrenceType.CUSTOM:
            return self._next_custom(after_day)
        return None

    def _next_daily(self, after_day: date) -> date:
        rule = self._rule
        if after_day < rule.anchor_date:
            candidate = rule.anchor_date
        else:
            candidate = after_day + timedelta(days=rule.interval)
        if rule.skip_weekends:
            candidate = skip_weekend(candidate)
        return candidate

    def _next_weekly(self, after_day: date) -> date | None:
        """Weekly stride counted in 7-day blocks from the start date.

        rrule's week start is set to the start date's weekday, so the N-week
        stride equals floor((day - start) / 7) % interval == 0.
        """
        if self._weekly_rrule is None:
            rule = self._rule
            self._weekly_rrule = rrule(
                WEEKLY,
                dtstart=start_of_day(rule.anchor_date),
                interval=rule.interval,
                byweekday=[self.WEEKDAY_TO_RRULE[d] for d in sorted(rule.days_of_week)],
                wkst=rule.anchor_date.weekday(),
            )
        occurrence = self._weekly_rrule.after(start_of_day(after_day), inc=False)
        return occurrence.date() if occurrence else None

    def _next_monthly(self, after_day: date) -> date | None:
        rule = self._rule
        anchor = rule.anchor_date
        anchor_idx = month_index(anchor)
        days = sorted(rule.days_of_month)

        idx = month_index(max(after_day, anchor))
        offset = (idx - anchor_idx) % rule.interval
        if offset:
            idx += rule.interval - offset

        for _ in range(const.MAX_DATE_CALCULATION_ITERATIONS):
            year, month0 = divmod(idx, 12)
            for day in days:
                candidate = clamp_day(year, month0 + 1, day)
                if candidate > after_day and candidate >= anchor:
                    return candidate
            idx += rule.interval

        const.LOGGER.warning(
            "RecurrenceEngine: Max iterations reached for monthly rule after %s",
            after_day,
        )
        return None

    def _next_yearly(self, after_day: date) -> date | None:
        rule = self._rule
        anchor = rule.anchor_date
        day_of_year = rule.day_of_year
        if day_of_year is None:
            return None

        year = anchor.year
        if after_day.year > year:
            year += ((after_day.year - anchor.year) // rule.interval) * rule.interval

        for _ in range(const.MAX_DATE_CALCULATION_ITERATIONS):
            candidate = clamp_day(year, day_of_year.month, day_of_year.day)
            if candidate > after_day and candidate >= anchor:
                return candidate
            year += rule.interval

        const.LOGGER.warning(
            "RecurrenceEngine: Max iterations reached for yearly rule after %s",
            after_day,
        )
        return None

    def _next_custom(self, after_day: date) -> date:
        rule = self._rule
        unit = rule.unit or IntervalUnit.DAYS
        if after_day < rule.anchor_date:
            candidate = rule.anchor_date
        else:
            candidate = dt_add_interval(after_day, rule.interval, unit.value)
        if rule.skip_weekends and unit == IntervalUnit.DAYS:
            candidate = skip_weekend(candidate)
        return candidate

    # =========================================================================
    # Private: series walking
    # =========================================================================

    def _walk(
        self, after: date, generated: int, limit: int
    ) -> Iterator[datetime]:
        """Yield consecutive occurrences after `after` until exhausted."""
        steps = 0
        while steps < limit:
            occurrence = self.get_next_occurrence(after, generated)
            if occurrence is None:
                return
            yield occurrence
            after = occurrence.date()
            generated += 1
            steps += 1
        const.LOGGER.warning(
            "RecurrenceEngine: Occurrence walk limit %s reached for %s rule",
            limit,
            self._rule.frequency,
        )

    def _fixed_step_days(self) -> int | None:
        """Step in days for rules whose occurrences are evenly spaced."""
        rule = self._rule
        if rule.skip_weekends:
            return None
        if rule.frequency == RecurrenceType.DAILY:
            return rule.interval
        if rule.frequency == RecurrenceType.CUSTOM:
            if rule.unit == IntervalUnit.DAYS:
                return rule.interval
            if rule.unit == IntervalUnit.WEEKS:
                return rule.interval * 7
        return None

    def _fast_forward(self, target: date) -> tuple[date, int]:
        """Return (after, occurrences_so_far) to start a walk near `target`.

        PERFORMANCE: evenly spaced series jump straight to the last occurrence
        at or before `target`; stateless types (weekly, monthly, yearly) can
        start scanning at `target` unless an occurrence limit needs counting.
        """
        rule = self._rule
        anchor = rule.anchor_date
        before_start = anchor - timedelta(days=1)
        if target <= anchor:
            return before_start, 0

        step = self._fixed_step_days()
        if step is not None:
            steps_before = (target - anchor).days // step
            if steps_before < 1:
                return before_start, 0
            return anchor + timedelta(days=(steps_before - 1) * step), steps_before

        if (
            rule.frequency
            in (RecurrenceType.WEEKLY, RecurrenceType.MONTHLY, RecurrenceType.YEARLY)
            and rule.end_condition != EndCondition.AFTER_OCCURRENCES
        ):
            return target - timedelta(days=1), 0

        return before_start, 0

    def _period_unit(self) -> IntervalUnit:
        """Quota period unit for get_current_period()."""
        frequency = self._rule.frequency
        if frequency == RecurrenceType.WEEKLY:
            return IntervalUnit.WEEKS
        if frequency == RecurrenceType.MONTHLY:
            return IntervalUnit.MONTHS
        if frequency == RecurrenceType.YEARLY:
            return IntervalUnit.YEARS
        if frequency == RecurrenceType.CUSTOM and self._rule.unit:
            return self._rule.unit
        return IntervalUnit.DAYS


_ORDINAL_SUFFIXES = {1: "st", 2: "nd", 3: "rd"}


def _ordinal(day: int) -> str:
    """1 -> "1st", 2 -> "2nd", 11 -> "11th", 23 -> "23rd"."""
    if 11 <= day % 100 <= 13:
        return f"{day}th"
    suffix = _ORDINAL_SUFFIXES.get(day % 10, "th")
    return f"{day}{suffix}"
