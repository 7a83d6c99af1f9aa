"""Calendar-day helpers used by the layout engine and the views."""
import calendar
from datetime import date, datetime, timedelta
from typing import Iterable, List, Sequence, Union

from shared_calendar.models.event import Event

DayLike = Union[date, datetime]

DAYS_PER_WEEK = 7
MONTH_GRID_WEEKS = 6

WEEKDAYS = {
    "monday": 0,
    "sunday": 6,
}

VIEWS = ("month", "week", "day")


def to_day(value: DayLike) -> date:
    """Strip the time component from a date or datetime."""
    if isinstance(value, datetime):
        return value.date()
    return value


def date_range(start: DayLike, end: DayLike) -> List[date]:
    """Inclusive list of consecutive days from start to end."""
    first, last = to_day(start), to_day(end)
    return [first + timedelta(days=i) for i in range((last - first).days + 1)]


def week_start_weekday(week_start: str) -> int:
    """Map 'sunday'/'monday' to a date.weekday() number."""
    try:
        return WEEKDAYS[week_start.lower()]
    except KeyError:
        raise ValueError(f"Unsupported week start: {week_start!r}")


def start_of_week(anchor: DayLike, week_start: str = "sunday") -> date:
    """First day of the week containing anchor."""
    day = to_day(anchor)
    offset = (day.weekday() - week_start_weekday(week_start)) % DAYS_PER_WEEK
    return day - timedelta(days=offset)


def month_grid_days(anchor: DayLike, week_start: str = "sunday") -> List[date]:
    """
    Visible days of a month view.

    Always six full weeks (42 days) starting at the week containing the
    first of the anchor's month, so every month renders with the same grid.
    """
    day = to_day(anchor)
    first = start_of_week(day.replace(day=1), week_start)
    return [first + timedelta(days=i) for i in range(MONTH_GRID_WEEKS * DAYS_PER_WEEK)]


def week_days(anchor: DayLike, week_start: str = "sunday") -> List[date]:
    """The seven days of the week containing anchor."""
    first = start_of_week(anchor, week_start)
    return [first + timedelta(days=i) for i in range(DAYS_PER_WEEK)]


def chunk_weeks(days: Sequence[date]) -> List[List[date]]:
    """Split a visible range into week-sized chunks of seven days."""
    return [list(days[i:i + DAYS_PER_WEEK]) for i in range(0, len(days), DAYS_PER_WEEK)]


def is_event_on_day(event: Event, day: DayLike) -> bool:
    """Check if the event's inclusive day range contains day."""
    return event.start_day <= to_day(day) <= event.end_day


def occupied_days(event: Event, days: Iterable[date]) -> List[date]:
    """Subsequence of days the event occupies."""
    return [day for day in days if is_event_on_day(event, day)]


def shift_anchor(anchor: DayLike, view: str, step: int) -> date:
    """
    Move the anchor date one view-length backwards or forwards.

    Month steps keep the day of month, clamped to the target month's length
    (Jan 31 + 1 month -> Feb 28/29).
    """
    day = to_day(anchor)
    if view == "month":
        month_index = day.year * 12 + (day.month - 1) + step
        year, month = divmod(month_index, 12)
        month += 1
        last_day = calendar.monthrange(year, month)[1]
        return date(year, month, min(day.day, last_day))
    if view == "week":
        return day + timedelta(days=DAYS_PER_WEEK * step)
    if view == "day":
        return day + timedelta(days=step)
    raise ValueError(f"Unsupported view: {view!r}")


def format_range_title(anchor: DayLike, view: str, week_start: str = "sunday") -> str:
    """Header title for the visible range."""
    day = to_day(anchor)
    if view == "month":
        return f"{calendar.month_name[day.month]} {day.year}"
    if view == "week":
        first = start_of_week(day, week_start)
        last = first + timedelta(days=DAYS_PER_WEEK - 1)
        return (
            f"{calendar.month_abbr[first.month]} {first.day} - "
            f"{calendar.month_abbr[last.month]} {last.day}, {last.year}"
        )
    if view == "day":
        return (
            f"{calendar.day_name[day.weekday()]}, "
            f"{calendar.month_name[day.month]} {day.day}, {day.year}"
        )
    raise ValueError(f"Unsupported view: {view!r}")


def upcoming_events(events: Iterable[Event], now: datetime, limit: int = 10) -> List[Event]:
    """Events starting at or after now, soonest first."""
    upcoming = [event for event in events if event.start >= now]
    upcoming.sort(key=lambda e: e.start)
    return upcoming[:limit]
