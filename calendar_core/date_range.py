"""
Date window arithmetic.

Maps a view and a reference date to the closed range of calendar dates the
view shows, and shifts reference dates when navigating. ISO week numbers are
provided for labelling only; they never decide window boundaries.
"""

from datetime import date, timedelta
from dataclasses import dataclass
from enum import Enum
from typing import Optional


class ViewType(Enum):
    DAY = "day"
    WEEK = "week"
    MONTH = "month"
    YEAR = "year"
    SEARCH = "search"


CALENDAR_VIEWS = (ViewType.DAY, ViewType.WEEK, ViewType.MONTH, ViewType.YEAR)


def parse_view(value) -> Optional[ViewType]:
    """Resolve a view name to a calendar view; None for anything else."""
    if isinstance(value, ViewType):
        return value if value in CALENDAR_VIEWS else None
    if isinstance(value, str):
        try:
            view = ViewType(value.strip().lower())
        except ValueError:
            return None
        return view if view in CALENDAR_VIEWS else None
    return None


@dataclass(frozen=True)
class TimeWindow:
    """Inclusive range of calendar dates backing one rendered view."""
    anchor_date: date
    start: date
    end: date

    def contains(self, d: date) -> bool:
        return self.start <= d <= self.end

    @property
    def days(self) -> int:
        return (self.end - self.start).days + 1

    def dates(self) -> list[date]:
        return [self.start + timedelta(days=i) for i in range(self.days)]

    def as_strings(self) -> tuple[str, str]:
        return self.start.isoformat(), self.end.isoformat()


def week_start(d: date, start_week_on_sunday: bool) -> date:
    """First day of the week containing d."""
    if start_week_on_sunday:
        # date.weekday(): Monday=0 .. Sunday=6
        offset = (d.weekday() + 1) % 7
    else:
        offset = d.weekday()
    return d - timedelta(days=offset)


def _last_of_month(d: date) -> date:
    if d.month == 12:
        return date(d.year, 12, 31)
    return date(d.year, d.month + 1, 1) - timedelta(days=1)


def resolve(view: ViewType, d: date, start_week_on_sunday: bool) -> TimeWindow:
    """
    Compute the visible window for a view.

    Args:
        view: The active view
        d: Reference date
        start_week_on_sunday: Week convention for week and month grids

    Returns:
        A TimeWindow whose bounds always contain d. Month windows are padded
        to whole weeks.
    """
    if view == ViewType.DAY:
        return TimeWindow(d, d, d)

    if view == ViewType.WEEK:
        start = week_start(d, start_week_on_sunday)
        # End derives from start so it cannot drift across a month boundary
        return TimeWindow(d, start, start + timedelta(days=6))

    if view == ViewType.MONTH:
        first = d.replace(day=1)
        start = week_start(first, start_week_on_sunday)
        last_week_start = week_start(_last_of_month(d), start_week_on_sunday)
        return TimeWindow(d, start, last_week_start + timedelta(days=6))

    # Year and search cover the whole calendar year
    return TimeWindow(d, date(d.year, 1, 1), date(d.year, 12, 31))


def shift_date(view: ViewType, d: date, step: int) -> date:
    """
    Move a reference date by one unit of the view.

    step is +1 for forward and -1 for back. Month steps fall back to the
    first of the target month when the day does not exist there; year steps
    always land on the first of the month.
    """
    if view == ViewType.DAY:
        return d + timedelta(days=step)
    if view == ViewType.WEEK:
        return d + timedelta(days=7 * step)
    if view == ViewType.MONTH:
        month_index = d.year * 12 + (d.month - 1) + step
        year, month = divmod(month_index, 12)
        month += 1
        try:
            return date(year, month, d.day)
        except ValueError:
            return date(year, month, 1)
    if view == ViewType.YEAR:
        return date(d.year + step, d.month, 1)
    return d


def iso_week(d: date) -> tuple[int, int]:
    """
    ISO-8601 (year, week) for a date.

    The week belongs to the year of its Thursday.
    """
    thursday = d + timedelta(days=3 - d.weekday())
    week = (thursday - date(thursday.year, 1, 1)).days // 7 + 1
    return thursday.year, week


def iso_week_string(d: date) -> str:
    year, week = iso_week(d)
    return f"{year}-W{week:02d}"
