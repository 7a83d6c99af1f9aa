"""Event layout engine for month, week and day grids.

Assigns each visible event a display row so that multi-day events render as
one contiguous band and no two events sharing a row overlap on any day.
Rows are handed out first-fit: every event takes the lowest row that is free
on all of its visible days. Events that find no row inside the budget are
counted as overflow ("+N more") on each day they occupy.

The engine is a pure function of its inputs. It never mutates the events or
the day sequence and builds fresh result objects on every call, so callers
recompute from scratch whenever the event set or the visible range changes.
"""
from dataclasses import dataclass, field
from datetime import date
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

import structlog

from shared_calendar.models.event import Event
from shared_calendar.services.days import (
    DayLike,
    chunk_weeks,
    is_event_on_day,
    month_grid_days,
    to_day,
    week_days,
)

logger = structlog.get_logger(__name__)

# Processing orders for first-fit. "source" keeps the caller's order;
# "by_start" sorts by start day, longest span first.
STRATEGIES = ("source", "by_start")

DEFAULT_MONTH_ROW_BUDGET = 3
DEFAULT_WEEK_ROW_BUDGET = 10


@dataclass(frozen=True)
class Position:
    """Where a day falls inside an event's span (drives band caps and labels)."""
    is_start: bool
    is_end: bool
    is_middle: bool

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return {
            "is_start": self.is_start,
            "is_end": self.is_end,
            "is_middle": self.is_middle,
        }


@dataclass(frozen=True)
class Placement:
    """An event drawn in a given row on one day."""
    event: Event
    row: int
    position: Position

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return {
            "event_id": self.event.id,
            "row": self.row,
            **self.position.to_dict(),
        }


@dataclass
class DayLayout:
    """Placements and overflow for a single visible day."""
    day: date
    placements: List[Placement] = field(default_factory=list)
    occupying: int = 0  # events on this day, placed or not

    @property
    def overflow(self) -> int:
        """Events on this day that did not get a row."""
        return max(0, self.occupying - len(self.placements))

    @property
    def events(self) -> List[Event]:
        """Placed events in row order."""
        return [placement.event for placement in self.placements]

    def slots(self, row_budget: int) -> List[Optional[Placement]]:
        """One entry per row, None where the row is free on this day."""
        by_row = {placement.row: placement for placement in self.placements}
        return [by_row.get(row) for row in range(row_budget)]

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return {
            "date": self.day.isoformat(),
            "placements": [p.to_dict() for p in self.placements],
            "occupying": self.occupying,
            "overflow": self.overflow,
        }


@dataclass
class RowAssignment:
    """Row assignment for one contiguous range of days (usually a week)."""
    row_budget: int
    days: List[DayLayout]
    rows: Dict[str, int] = field(default_factory=dict)
    unplaced: List[Event] = field(default_factory=list)

    def day(self, value: DayLike) -> Optional[DayLayout]:
        """Layout for a day in this range, or None if it is not visible."""
        wanted = to_day(value)
        for layout in self.days:
            if layout.day == wanted:
                return layout
        return None

    def row_of(self, event_id: str) -> Optional[int]:
        """Row held by an event in this range, None if hidden or absent."""
        return self.rows.get(event_id)

    def overflow_for(self, value: DayLike) -> int:
        """Overflow count for a day, 0 for days outside the range."""
        layout = self.day(value)
        return layout.overflow if layout else 0

    def events_in_row(self, row: int) -> List[Event]:
        """Distinct events holding a row, in first-appearance order."""
        seen = {}
        for layout in self.days:
            for placement in layout.placements:
                if placement.row == row:
                    seen.setdefault(placement.event.id, placement.event)
        return list(seen.values())

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return {
            "row_budget": self.row_budget,
            "rows": dict(self.rows),
            "days": [d.to_dict() for d in self.days],
        }


@dataclass
class CalendarLayout:
    """Layout of a whole view: one RowAssignment per rendered week."""
    view: str
    anchor: date
    row_budget: int
    weeks: List[RowAssignment]

    @property
    def days(self) -> List[DayLayout]:
        """Every visible day in display order."""
        return [layout for week in self.weeks for layout in week.days]

    def day(self, value: DayLike) -> Optional[DayLayout]:
        """Layout for a visible day."""
        for week in self.weeks:
            layout = week.day(value)
            if layout is not None:
                return layout
        return None

    def to_dict(self, include_events: bool = True) -> dict:
        """Convert to dictionary for JSON serialization."""
        data = {
            "view": self.view,
            "anchor": self.anchor.isoformat(),
            "row_budget": self.row_budget,
            "weeks": [week.to_dict() for week in self.weeks],
        }
        if include_events:
            events = {}
            for layout in self.days:
                for placement in layout.placements:
                    events.setdefault(placement.event.id, placement.event.to_dict())
            data["events"] = events
        return data


def is_multi_day(event: Event) -> bool:
    """Check if the event's start and end fall on different calendar days."""
    return event.start_day != event.end_day


def classify(events: Iterable[Event]) -> Tuple[List[Event], List[Event]]:
    """
    Split events into single-day and multi-day groups.

    Compared at day granularity: an event from 23:00 to 01:00 the next day is
    multi-day, one from 09:00 to 17:00 is not. Source order is preserved.
    """
    single_day, multi_day = [], []
    for event in events:
        (multi_day if is_multi_day(event) else single_day).append(event)
    return single_day, multi_day


def position_of(event: Event, day: DayLike) -> Position:
    """Position flags for an event on a given day."""
    current = to_day(day)
    is_start = current == event.start_day
    is_end = current == event.end_day
    return Position(
        is_start=is_start,
        is_end=is_end,
        is_middle=not is_start and not is_end,
    )


def _processing_order(events: Iterable[Event], strategy: str) -> List[Event]:
    """Deduplicate by id (first wins) and order events for first-fit."""
    if strategy not in STRATEGIES:
        raise ValueError(f"Unknown layout strategy: {strategy!r}")

    ordered, seen = [], set()
    for event in events:
        if event.id in seen:
            continue
        seen.add(event.id)
        ordered.append(event)

    if strategy == "by_start":
        indexed = list(enumerate(ordered))
        indexed.sort(key=lambda item: (
            item[1].start_day,
            -(item[1].end_day - item[1].start_day).days,
            item[0],
        ))
        ordered = [event for _, event in indexed]

    return ordered


def _first_free_row(taken: List[set], span: List[int], row_budget: int) -> Optional[int]:
    """Lowest row free on every day index in span, None if the budget is full."""
    for row in range(row_budget):
        if all(row not in taken[i] for i in span):
            return row
    return None


def assign_rows(
    events: Iterable[Event],
    days: Sequence[DayLike],
    row_budget: int,
    strategy: str = "source",
) -> RowAssignment:
    """
    Assign display rows to events over one range of days.

    Each event keeps the same row on every day it occupies inside the range.
    Processing order is the events' iteration order (or start order with
    strategy="by_start"), so callers must pass a stable sequence, not a set.

    Args:
        events: Current event snapshot
        days: Consecutive visible days
        row_budget: Rows available per day before overflow
        strategy: "source" or "by_start"

    Returns:
        RowAssignment with per-day placements sorted by row
    """
    visible = [to_day(day) for day in days]
    budget = max(0, row_budget)
    layouts = [DayLayout(day=day) for day in visible]
    taken: List[set] = [set() for _ in visible]
    assignment = RowAssignment(row_budget=budget, days=layouts)

    for event in _processing_order(events, strategy):
        span = [i for i, day in enumerate(visible) if is_event_on_day(event, day)]
        if not span:
            continue

        for i in span:
            layouts[i].occupying += 1

        row = _first_free_row(taken, span, budget)
        if row is None:
            assignment.unplaced.append(event)
            continue

        assignment.rows[event.id] = row
        for i in span:
            taken[i].add(row)
            layouts[i].placements.append(
                Placement(event=event, row=row, position=position_of(event, visible[i]))
            )

    for layout in layouts:
        layout.placements.sort(key=lambda p: p.row)

    return assignment


def assign_rows_by_week(
    events: Iterable[Event],
    days: Sequence[DayLike],
    row_budget: int,
    strategy: str = "source",
) -> List[RowAssignment]:
    """Run assign_rows separately on each 7-day chunk; bands restart every week."""
    snapshot = list(events)
    return [
        assign_rows(snapshot, chunk, row_budget, strategy=strategy)
        for chunk in chunk_weeks([to_day(day) for day in days])
    ]


def _split_by_week(assignment: RowAssignment) -> List[RowAssignment]:
    """Cut a continuous assignment into week chunks, keeping its rows."""
    weeks = []
    for start in range(0, len(assignment.days), 7):
        chunk = assignment.days[start:start + 7]
        ids = {p.event.id for layout in chunk for p in layout.placements}
        unplaced = [
            e for e in assignment.unplaced
            if any(is_event_on_day(e, d.day) for d in chunk)
        ]
        weeks.append(RowAssignment(
            row_budget=assignment.row_budget,
            days=chunk,
            rows={event_id: row for event_id, row in assignment.rows.items() if event_id in ids},
            unplaced=unplaced,
        ))
    return weeks


def _log_layout(layout: CalendarLayout) -> None:
    overflow_days = [d.day.isoformat() for d in layout.days if d.overflow]
    logger.debug(
        "layout_computed",
        view=layout.view,
        anchor=layout.anchor.isoformat(),
        row_budget=layout.row_budget,
        weeks=len(layout.weeks),
        overflow_days=overflow_days,
    )


def layout_month(
    events: Iterable[Event],
    anchor: DayLike,
    row_budget: int = DEFAULT_MONTH_ROW_BUDGET,
    week_start: str = "sunday",
    strategy: str = "source",
    continuous: bool = False,
) -> CalendarLayout:
    """
    Lay out a 42-day month grid.

    By default bands restart at every week row, so a multi-day event may sit
    in a different row after a week boundary. With continuous=True one row is
    reserved for the event across the whole grid.
    """
    days = month_grid_days(anchor, week_start)
    if continuous:
        weeks = _split_by_week(assign_rows(events, days, row_budget, strategy=strategy))
    else:
        weeks = assign_rows_by_week(events, days, row_budget, strategy=strategy)

    layout = CalendarLayout(view="month", anchor=to_day(anchor), row_budget=max(0, row_budget), weeks=weeks)
    _log_layout(layout)
    return layout


def layout_week(
    events: Iterable[Event],
    anchor: DayLike,
    row_budget: int = DEFAULT_WEEK_ROW_BUDGET,
    week_start: str = "sunday",
    strategy: str = "source",
) -> CalendarLayout:
    """Lay out the seven days of the anchor's week."""
    week = assign_rows(events, week_days(anchor, week_start), row_budget, strategy=strategy)
    layout = CalendarLayout(view="week", anchor=to_day(anchor), row_budget=max(0, row_budget), weeks=[week])
    _log_layout(layout)
    return layout


def layout_day(
    events: Iterable[Event],
    anchor: DayLike,
    row_budget: int = DEFAULT_WEEK_ROW_BUDGET,
    strategy: str = "source",
) -> CalendarLayout:
    """Lay out a single day."""
    day = assign_rows(events, [to_day(anchor)], row_budget, strategy=strategy)
    layout = CalendarLayout(view="day", anchor=to_day(anchor), row_budget=max(0, row_budget), weeks=[day])
    _log_layout(layout)
    return layout


def layout_for_view(
    events: Iterable[Event],
    view: str,
    anchor: DayLike,
    month_row_budget: int = DEFAULT_MONTH_ROW_BUDGET,
    week_row_budget: int = DEFAULT_WEEK_ROW_BUDGET,
    week_start: str = "sunday",
    strategy: str = "source",
) -> CalendarLayout:
    """Dispatch to the month, week or day layout."""
    if view == "month":
        return layout_month(events, anchor, month_row_budget, week_start=week_start, strategy=strategy)
    if view == "week":
        return layout_week(events, anchor, week_row_budget, week_start=week_start, strategy=strategy)
    if view == "day":
        return layout_day(events, anchor, week_row_budget, strategy=strategy)
    raise ValueError(f"Unsupported view: {view!r}")
