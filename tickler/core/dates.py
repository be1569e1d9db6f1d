"""Calendar utilities: pure date arithmetic on naive calendar dates.

Weekdays are numbered 0=Sunday through 6=Saturday and months passed to the
month helpers are 0-based (0=January). Month indexes outside 0-11 roll over
into neighbouring years, which keeps "anchor month + i" loops simple.
"""

import calendar
import re
from datetime import date, datetime, timedelta

from tickler.core.errors import InvalidDateError


_LOOSE_DATE = re.compile(r"^(\d{4})[-/](\d{1,2})[-/](\d{1,2})")


def _normalize_month(year: int, month0: int) -> tuple[int, int]:
    """Fold an out-of-range 0-based month into (year, month0)."""
    return year + month0 // 12, month0 % 12


def days_in_month(year: int, month0: int) -> int:
    """Number of days in the given 0-based month."""
    year, month0 = _normalize_month(year, month0)
    return calendar.monthrange(year, month0 + 1)[1]


def weekday_index(value: date) -> int:
    """Weekday of a date with 0=Sunday."""
    return (value.weekday() + 1) % 7


def clamp_month_day(year: int, month0: int, day: int) -> date:
    """Return the date in the month nearest to `day` without exceeding the month's length.

    Example: day 31 in April gives April 30; day 31 in February 2024 gives February 29.
    """
    year, month0 = _normalize_month(year, month0)
    last = calendar.monthrange(year, month0 + 1)[1]
    return date(year, month0 + 1, min(max(day, 1), last))


def nth_weekday_of_month(year: int, month0: int, nth: int, dow: int) -> date:
    """Return the nth `dow` weekday of a month.

    nth counts forward from day 1 (1-5); -1 selects the last such weekday. A 5th
    weekday that does not exist falls back to the 4th, so the result never
    leaves the month.
    """
    year, month0 = _normalize_month(year, month0)
    dow %= 7
    last_day = calendar.monthrange(year, month0 + 1)[1]

    if nth == -1:
        last = date(year, month0 + 1, last_day)
        return last - timedelta(days=(weekday_index(last) - dow) % 7)

    nth = min(max(nth, 1), 5)
    first = date(year, month0 + 1, 1)
    day = 1 + (dow - weekday_index(first)) % 7 + (nth - 1) * 7
    if day > last_day:
        day -= 7
    return date(year, month0 + 1, day)


def add_days(value: date, days: int) -> date:
    """Shift a date by a signed number of days."""
    return value + timedelta(days=days)


def days_between(start: date, end: date) -> int:
    """Signed number of days from start to end."""
    return (end - start).days


def week_sunday(value: date) -> date:
    """The Sunday that starts the week containing `value`."""
    return value - timedelta(days=weekday_index(value))


def to_date_str(value: date) -> str:
    """Format a date as YYYY-MM-DD."""
    return value.strftime("%Y-%m-%d")


def parse_date(value: date | datetime | str | None) -> date:
    """Parse a stored or user-supplied date.

    Accepts date/datetime objects, YYYY-MM-DD strings, ISO timestamps (the
    calendar part is kept as written, no timezone conversion) and unpadded
    or slashed forms such as 2024-1-5 and 2024/01/05.

    Raises:
        InvalidDateError: If the value cannot be read as a calendar date
    """
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not isinstance(value, str) or not value.strip():
        raise InvalidDateError(f"Not a date: {value!r}")

    text = value.strip()
    try:
        return date.fromisoformat(text[:10])
    except ValueError:
        pass

    match = _LOOSE_DATE.match(text)
    if match:
        try:
            return date(int(match.group(1)), int(match.group(2)), int(match.group(3)))
        except ValueError as e:
            raise InvalidDateError(f"Not a date: {value!r}") from e

    try:
        return datetime.fromisoformat(text).date()
    except ValueError as e:
        raise InvalidDateError(f"Not a date: {value!r}") from e


def parse_optional_date(value: date | datetime | str | None) -> date | None:
    """Like parse_date, but empty values map to None."""
    if value is None or (isinstance(value, str) and not value.strip()):
        return None
    return parse_date(value)


def parse_timestamp(value: datetime | date | str) -> datetime:
    """Parse a completion timestamp as given (no timezone conversion).

    Raises:
        InvalidDateError: If the value cannot be read as a timestamp
    """
    if isinstance(value, datetime):
        return value
    if isinstance(value, date):
        return datetime.combine(value, datetime.min.time())
    if not isinstance(value, str) or not value.strip():
        raise InvalidDateError(f"Not a timestamp: {value!r}")

    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        return datetime.fromisoformat(text)
    except ValueError:
        return datetime.combine(parse_date(text), datetime.min.time())
