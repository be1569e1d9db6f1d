"""Recurrence rule row and the tagged recurrence pattern variants."""

from datetime import date
from enum import StrEnum
from typing import Annotated, Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

from tickler.core.config import constants


class Frequency(StrEnum):
    """Persisted rule frequency."""

    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    YEARLY = "yearly"


class IntervalAnchor(StrEnum):
    """What a daily interval steps from."""

    SCHEDULED = "scheduled"  # Calendar slots: anchor + k * interval
    COMPLETED = "completed"  # Last completion date + interval


def _clamp(value: Any, low: int, high: int, default: int) -> int:
    if value is None or value == "":
        return default
    return min(max(int(value), low), high)


class RecurrenceRule(BaseModel):
    """Flat recurrence rule row, one per task."""

    model_config = ConfigDict(extra="ignore")

    id: str | None = Field(default=None, description="Rule ID from database")
    task_id: str = Field(..., description="Owning task ID")
    freq: Frequency = Field(default=Frequency.MONTHLY, description="Base frequency")
    count: int = Field(default=1, description="0 = infinite, N = exactly N occurrences")
    interval: int = Field(default=1, description="Step in days (daily) or weeks (weekly)")
    interval_anchor: IntervalAnchor = Field(default=IntervalAnchor.SCHEDULED)
    horizon_days: int | None = Field(default=None, description="Days materialized ahead for infinite daily rules")
    monthly_day: int | None = Field(default=None, description="Day of month for monthly and yearly rules")
    monthly_nth: int | None = Field(default=None, description="1-5, or -1 for the last weekday of the month")
    monthly_nth_dow: int | None = Field(default=None, description="Weekday for nth-weekday rules, 0=Sunday")
    weekly_dows: int | None = Field(default=None, description="Weekday bitmask, bit 0 = Sunday")
    yearly_month: int | None = Field(default=None, description="Month for yearly rules, 1-12")
    manual_next_due: bool = Field(default=False, description="Next due date is supplied at completion time")
    occurrence_offset_days: int = Field(default=0, description="Signed shift applied to every target date")

    @field_validator("count", mode="before")
    @classmethod
    def _clamp_count(cls, value: Any) -> int:
        return max(0, int(value or 0))

    @field_validator("interval", mode="before")
    @classmethod
    def _clamp_interval(cls, value: Any) -> int:
        return _clamp(value, 1, constants.MAX_INTERVAL, 1)

    @field_validator("horizon_days", mode="before")
    @classmethod
    def _clamp_horizon(cls, value: Any) -> int | None:
        if value is None or value == "":
            return None
        return _clamp(value, 1, constants.MAX_HORIZON_DAYS, 1)

    @field_validator("occurrence_offset_days", mode="before")
    @classmethod
    def _clamp_offset(cls, value: Any) -> int:
        return _clamp(value, -constants.MAX_OFFSET_DAYS, constants.MAX_OFFSET_DAYS, 0)

    @field_validator("interval_anchor", mode="before")
    @classmethod
    def _default_anchor(cls, value: Any) -> Any:
        return value or IntervalAnchor.SCHEDULED


class _PatternBase(BaseModel):
    model_config = ConfigDict(frozen=True)

    count: int = Field(default=0, ge=0, description="0 = infinite, N = exactly N occurrences")
    offset_days: int = Field(
        default=0,
        ge=-constants.MAX_OFFSET_DAYS,
        le=constants.MAX_OFFSET_DAYS,
        description="Signed shift applied after projection",
    )

    @property
    def is_finite(self) -> bool:
        return self.count >= 1


class OncePattern(_PatternBase):
    """A single occurrence on the anchor date."""

    kind: Literal["once"] = "once"
    count: int = Field(default=1, ge=1, le=1)


class DailyPattern(_PatternBase):
    kind: Literal["daily"] = "daily"
    interval: int = Field(default=1, ge=1, le=constants.MAX_INTERVAL)
    anchor: IntervalAnchor = IntervalAnchor.SCHEDULED
    horizon_days: int | None = Field(default=None, ge=1, le=constants.MAX_HORIZON_DAYS)


class WeeklyPattern(_PatternBase):
    kind: Literal["weekly"] = "weekly"
    weekdays_mask: int = Field(default=0, ge=0, le=127, description="Bit i set = weekday i, 0=Sunday")
    interval: int = Field(default=1, ge=1, le=constants.MAX_INTERVAL)

    @classmethod
    def on(cls, *weekdays: int, **kwargs: Any) -> "WeeklyPattern":
        """Build a pattern from weekday numbers, e.g. WeeklyPattern.on(1, 3, 5)."""
        mask = 0
        for day in weekdays:
            mask |= 1 << (day % 7)
        return cls(weekdays_mask=mask, **kwargs)

    @property
    def weekdays(self) -> list[int]:
        return [day for day in range(7) if self.weekdays_mask & (1 << day)]


class MonthlyByDayPattern(_PatternBase):
    kind: Literal["monthly_day"] = "monthly_day"
    day: int = Field(..., ge=1, le=31)


class MonthlyByWeekdayPattern(_PatternBase):
    kind: Literal["monthly_weekday"] = "monthly_weekday"
    nth: int = Field(..., description="1-5, or -1 for the last one")
    weekday: int = Field(..., ge=0, le=6)

    @field_validator("nth")
    @classmethod
    def _check_nth(cls, value: int) -> int:
        if value != -1 and not 1 <= value <= 5:  # noqa: PLR2004
            raise ValueError("nth must be 1-5 or -1")
        return value


class YearlyPattern(_PatternBase):
    kind: Literal["yearly"] = "yearly"
    month: int = Field(..., ge=1, le=12)
    day: int = Field(..., ge=1, le=31)


class ManualNextPattern(_PatternBase):
    """The next due date is chosen by the user when an occurrence is completed."""

    kind: Literal["manual_next"] = "manual_next"
    count: int = Field(default=0, ge=0, le=0)


RecurrencePattern = Annotated[
    OncePattern
    | DailyPattern
    | WeeklyPattern
    | MonthlyByDayPattern
    | MonthlyByWeekdayPattern
    | YearlyPattern
    | ManualNextPattern,
    Field(discriminator="kind"),
]


def pattern_from_rule(rule: RecurrenceRule, *, is_recurring: bool, anchor: date | None = None) -> RecurrencePattern:
    """Read the tagged pattern a persisted rule row encodes.

    Monthly rows without a day or nth weekday fall back to the anchor's day of
    month, and yearly rows without month/day fall back to the anchor's.
    """
    offset = rule.occurrence_offset_days
    if not is_recurring:
        return OncePattern(offset_days=offset)
    if rule.manual_next_due:
        return ManualNextPattern(offset_days=offset)

    count = rule.count
    match rule.freq:
        case Frequency.DAILY:
            return DailyPattern(
                count=count,
                offset_days=offset,
                interval=rule.interval,
                anchor=rule.interval_anchor,
                horizon_days=rule.horizon_days,
            )
        case Frequency.WEEKLY:
            return WeeklyPattern(
                count=count,
                offset_days=offset,
                weekdays_mask=(rule.weekly_dows or 0) & 0x7F,
                interval=rule.interval,
            )
        case Frequency.MONTHLY if rule.monthly_nth is not None and rule.monthly_nth_dow is not None:
            nth = rule.monthly_nth if rule.monthly_nth == -1 else min(max(rule.monthly_nth, 1), 5)
            return MonthlyByWeekdayPattern(
                count=count, offset_days=offset, nth=nth, weekday=rule.monthly_nth_dow % 7
            )
        case Frequency.MONTHLY:
            day = rule.monthly_day or (anchor.day if anchor else 1)
            return MonthlyByDayPattern(count=count, offset_days=offset, day=min(max(day, 1), 31))
        case Frequency.YEARLY:
            month = rule.yearly_month or (anchor.month if anchor else 1)
            day = rule.monthly_day or (anchor.day if anchor else 1)
            return YearlyPattern(
                count=count, offset_days=offset, month=min(max(month, 1), 12), day=min(max(day, 1), 31)
            )


def rule_fields_from_pattern(pattern: RecurrencePattern | None) -> dict[str, Any]:
    """Flatten a pattern into recurrence_rules column values.

    `None` (a single task) and OncePattern map to the degenerate monthly,
    count=1 row every non-recurring task carries.
    """
    fields: dict[str, Any] = {
        "freq": Frequency.MONTHLY.value,
        "count": 1,
        "interval": 1,
        "interval_anchor": IntervalAnchor.SCHEDULED.value,
        "horizon_days": None,
        "monthly_day": None,
        "monthly_nth": None,
        "monthly_nth_dow": None,
        "weekly_dows": None,
        "yearly_month": None,
        "manual_next_due": False,
        "occurrence_offset_days": pattern.offset_days if pattern else 0,
    }

    match pattern:
        case None | OncePattern():
            pass
        case ManualNextPattern():
            fields.update(freq=Frequency.DAILY.value, count=0, manual_next_due=True)
        case DailyPattern():
            fields.update(
                freq=Frequency.DAILY.value,
                count=pattern.count,
                interval=pattern.interval,
                interval_anchor=pattern.anchor.value,
                horizon_days=pattern.horizon_days,
            )
        case WeeklyPattern():
            fields.update(
                freq=Frequency.WEEKLY.value,
                count=pattern.count,
                interval=pattern.interval,
                weekly_dows=pattern.weekdays_mask,
            )
        case MonthlyByDayPattern():
            fields.update(count=pattern.count, monthly_day=pattern.day)
        case MonthlyByWeekdayPattern():
            fields.update(count=pattern.count, monthly_nth=pattern.nth, monthly_nth_dow=pattern.weekday)
        case YearlyPattern():
            fields.update(
                freq=Frequency.YEARLY.value,
                count=pattern.count,
                yearly_month=pattern.month,
                monthly_day=pattern.day,
            )
    return fields
