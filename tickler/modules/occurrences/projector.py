"""Occurrence projector: recurrence pattern + anchor -> ordered target dates.

Everything here is pure. `project` returns dates before the pattern's
offset is applied; `target_dates` applies it.

Finite patterns (count >= 1) are projected from the anchor until `count`
dates exist. Infinite patterns (count = 0) are projected over a window that
starts at "today" (today's week, month or year) and never reaches back
before the anchor.
"""

from dataclasses import dataclass
from datetime import date

from tickler.core.config import constants, settings
from tickler.core.dates import (
    add_days,
    clamp_month_day,
    days_between,
    nth_weekday_of_month,
    week_sunday,
)
from tickler.core.errors import UnsupportedFrequencyError
from tickler.domain.recurrence import (
    DailyPattern,
    IntervalAnchor,
    ManualNextPattern,
    MonthlyByDayPattern,
    MonthlyByWeekdayPattern,
    OncePattern,
    RecurrencePattern,
    WeeklyPattern,
    YearlyPattern,
)


@dataclass
class Lookahead:
    """Forward windows used for infinite patterns."""

    weeks: int = 8
    months: int = 2
    years: int = 2
    horizon_days: int = 14

    @classmethod
    def from_settings(cls) -> "Lookahead":
        return cls(
            weeks=settings.weekly_lookahead_weeks,
            months=settings.monthly_lookahead_months,
            years=settings.yearly_lookahead_years,
            horizon_days=settings.default_horizon_days,
        )


def comparison_anchor(anchor: date, offset_days: int) -> date:
    """Anchor used for on/after comparisons against stored (shifted) dates.

    A negative offset moves the first occurrence before the anchor, so the
    earlier of the two is used.
    """
    return min(anchor, add_days(anchor, offset_days))


def shift_dates(dates: list[date], offset_days: int) -> list[date]:
    """Apply a signed calendar shift to every date."""
    if not offset_days:
        return list(dates)
    return [add_days(d, offset_days) for d in dates]


def _daily(pattern: DailyPattern, anchor: date, today: date, lookahead: Lookahead) -> list[date]:
    if pattern.anchor == IntervalAnchor.COMPLETED:
        raise UnsupportedFrequencyError("Completed-anchor daily rules are not calendar-projected")

    if pattern.is_finite:
        return [add_days(anchor, k * pattern.interval) for k in range(pattern.count)]

    horizon = pattern.horizon_days or lookahead.horizon_days
    dates = []
    for i in range(horizon):
        day = add_days(today, i)
        diff = days_between(anchor, day)
        if diff >= 0 and diff % pattern.interval == 0:
            dates.append(day)
    return dates


def _weekly(pattern: WeeklyPattern, anchor: date, today: date, lookahead: Lookahead) -> list[date]:
    weekdays = pattern.weekdays
    if not weekdays:
        raise UnsupportedFrequencyError("Weekly rule has no weekdays selected")

    anchor_week = week_sunday(anchor)
    dates: list[date] = []

    if pattern.is_finite:
        for week in range(0, constants.WEEKLY_ITERATION_CAP_WEEKS, pattern.interval):
            for dow in weekdays:
                day = add_days(anchor_week, week * 7 + dow)
                if day >= anchor:
                    dates.append(day)
                    if len(dates) == pattern.count:
                        return dates
        return dates

    first_week = week_sunday(today)
    for i in range(lookahead.weeks):
        week_start = add_days(first_week, i * 7)
        rel_weeks = days_between(anchor_week, week_start) // 7
        if rel_weeks < 0 or rel_weeks % pattern.interval:
            continue
        dates.extend(day for dow in weekdays if (day := add_days(week_start, dow)) >= anchor)
    return dates


def _monthly(
    pattern: MonthlyByDayPattern | MonthlyByWeekdayPattern, anchor: date, today: date, lookahead: Lookahead
) -> list[date]:
    def day_in(year: int, month0: int) -> date:
        if isinstance(pattern, MonthlyByDayPattern):
            return clamp_month_day(year, month0, pattern.day)
        return nth_weekday_of_month(year, month0, pattern.nth, pattern.weekday)

    dates: list[date] = []
    if pattern.is_finite:
        cap = min(2 * pattern.count, constants.MONTHLY_ITERATION_CAP)
        for i in range(cap):
            day = day_in(anchor.year, anchor.month - 1 + i)
            if day >= anchor:
                dates.append(day)
                if len(dates) == pattern.count:
                    break
        return dates

    for i in range(lookahead.months):
        day = day_in(today.year, today.month - 1 + i)
        if day >= anchor:
            dates.append(day)
    return dates


def _yearly(pattern: YearlyPattern, anchor: date, today: date, lookahead: Lookahead) -> list[date]:
    dates: list[date] = []
    if pattern.is_finite:
        for i in range(constants.YEARLY_ITERATION_CAP):
            day = clamp_month_day(anchor.year + i, pattern.month - 1, pattern.day)
            if day >= anchor:
                dates.append(day)
                if len(dates) == pattern.count:
                    break
        return dates

    for i in range(lookahead.years):
        day = clamp_month_day(today.year + i, pattern.month - 1, pattern.day)
        if day >= anchor:
            dates.append(day)
    return dates


def project(
    pattern: RecurrencePattern,
    *,
    anchor: date,
    today: date | None = None,
    lookahead: Lookahead | None = None,
) -> list[date]:
    """Project a pattern into its ordered, un-shifted target dates.

    Raises:
        UnsupportedFrequencyError: For shapes with no calendar projection
            (completed-anchor daily, manual next due, weekly with no weekdays)
    """
    today = today or date.today()
    lookahead = lookahead or Lookahead.from_settings()

    match pattern:
        case OncePattern():
            return [anchor]
        case DailyPattern():
            return _daily(pattern, anchor, today, lookahead)
        case WeeklyPattern():
            return _weekly(pattern, anchor, today, lookahead)
        case MonthlyByDayPattern() | MonthlyByWeekdayPattern():
            return _monthly(pattern, anchor, today, lookahead)
        case YearlyPattern():
            return _yearly(pattern, anchor, today, lookahead)
        case ManualNextPattern():
            raise UnsupportedFrequencyError("Manual next-due rules are not calendar-projected")
    raise UnsupportedFrequencyError(f"Unknown recurrence pattern: {pattern!r}")


def target_dates(
    pattern: RecurrencePattern,
    *,
    anchor: date,
    today: date | None = None,
    lookahead: Lookahead | None = None,
) -> list[date]:
    """Projected dates with the pattern's offset applied."""
    return shift_dates(project(pattern, anchor=anchor, today=today, lookahead=lookahead), pattern.offset_days)


def next_date(pattern: RecurrencePattern, *, scheduled: date) -> date:
    """The date that follows a stored (shifted) occurrence date in a calendar pattern.

    The step is computed on the un-shifted date and shifted back, so a
    month-end day stays clamped to month end under any offset.

    Raises:
        UnsupportedFrequencyError: For patterns that do not step on the calendar
    """
    base = add_days(scheduled, -pattern.offset_days)
    # base.month read as a 0-based index is the following month
    match pattern:
        case DailyPattern(anchor=IntervalAnchor.SCHEDULED):
            following = add_days(base, pattern.interval)
        case WeeklyPattern():
            following = add_days(base, 7 * pattern.interval)
        case MonthlyByDayPattern():
            following = clamp_month_day(base.year, base.month, pattern.day)
        case MonthlyByWeekdayPattern():
            following = nth_weekday_of_month(base.year, base.month, pattern.nth, pattern.weekday)
        case YearlyPattern():
            following = clamp_month_day(base.year + 1, pattern.month - 1, pattern.day)
        case _:
            raise UnsupportedFrequencyError(f"No calendar step for {pattern.kind} patterns")
    return add_days(following, pattern.offset_days)
