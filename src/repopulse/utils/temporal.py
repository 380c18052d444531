"""Calendar helpers for bucketing commits by week, month and year."""

from __future__ import annotations

from datetime import date, datetime, timedelta

WEEKDAY_NAMES = ("Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday", "Sunday")


def week_start(moment: datetime | date) -> date:
    """Monday of the ISO week containing ``moment``.

    Datetimes are read in their own UTC offset, so a commit keeps the
    calendar day its author saw.
    """
    day = moment.date() if isinstance(moment, datetime) else moment
    return day - timedelta(days=day.weekday())


def iso_week_number(day: date) -> int:
    """ISO 8601 week number: week 1 is the week holding the year's first Thursday."""
    return day.isocalendar()[1]


def month_key(day: date) -> str:
    return f"{day.year:04d}-{day.month:02d}"


def inclusive_days(first: date, last: date) -> int:
    """Number of calendar days from ``first`` to ``last``, both included."""
    return abs((last - first).days) + 1


def is_weekend(moment: datetime) -> bool:
    return moment.weekday() >= 5


def is_late_night(hour: int) -> bool:
    return hour >= 22 or hour < 6


def is_business_hours(moment: datetime) -> bool:
    """09:00-17:00, Monday to Friday."""
    return 9 <= moment.hour < 17 and moment.weekday() < 5
