"""Event data models."""
from dataclasses import dataclass, field, replace
from datetime import datetime, date, timedelta
from typing import Optional
from enum import Enum


class EventCategory(Enum):
    """Category of a calendar event."""
    WORK = "work"
    PERSONAL = "personal"
    MEETING = "meeting"
    APPOINTMENT = "appointment"
    HOLIDAY = "holiday"
    DEFAULT = "default"


class ReminderTime(Enum):
    """How long before the event start a reminder fires."""
    NONE = "none"
    FIFTEEN_MINUTES = "15min"
    THIRTY_MINUTES = "30min"
    ONE_HOUR = "1hour"
    ONE_DAY = "1day"

    @property
    def offset(self) -> Optional[timedelta]:
        """Offset before the event start, None for no reminder."""
        return _REMINDER_OFFSETS[self]


_REMINDER_OFFSETS = {
    ReminderTime.NONE: None,
    ReminderTime.FIFTEEN_MINUTES: timedelta(minutes=15),
    ReminderTime.THIRTY_MINUTES: timedelta(minutes=30),
    ReminderTime.ONE_HOUR: timedelta(hours=1),
    ReminderTime.ONE_DAY: timedelta(days=1),
}


@dataclass(frozen=True)
class EventDraft:
    """Fields of an event that does not have an identifier yet."""

    title: str
    start: datetime
    end: datetime
    category: EventCategory = EventCategory.DEFAULT
    description: str = ""
    reminder: Optional[ReminderTime] = None

    def to_event(self, event_id: str) -> "Event":
        """Attach an identifier to this draft."""
        return Event(
            id=event_id,
            title=self.title,
            start=self.start,
            end=self.end,
            category=self.category,
            description=self.description,
            reminder=self.reminder,
        )


@dataclass(frozen=True)
class Event:
    """
    A time-bound calendar event.

    Events are immutable; edits go through with_updates(), which keeps the id.
    Occupancy is inclusive by calendar day: an event from Jan 10 09:00 to
    Jan 12 08:00 occupies Jan 10, 11 and 12.
    """

    id: str
    title: str
    start: datetime
    end: datetime
    category: EventCategory = EventCategory.DEFAULT
    description: str = ""
    reminder: Optional[ReminderTime] = None

    @property
    def start_day(self) -> date:
        """Calendar day the event starts on."""
        return self.start.date()

    @property
    def end_day(self) -> date:
        """Calendar day the event ends on, never before start_day."""
        end_day = self.end.date()
        if end_day < self.start_day:
            return self.start_day
        return end_day

    @property
    def is_multi_day(self) -> bool:
        """Check if the event spans more than one calendar day."""
        return self.start_day != self.end_day

    @property
    def reminder_at(self) -> Optional[datetime]:
        """Instant the reminder fires, if any."""
        if self.reminder is None or self.reminder.offset is None:
            return None
        return self.start - self.reminder.offset

    def with_updates(self, **changes) -> "Event":
        """Return a new version of this event with the same id."""
        changes.pop("id", None)
        return replace(self, **changes)

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization and storage."""
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "start_date": self.start.isoformat(),
            "end_date": self.end.isoformat(),
            "category": self.category.value,
            "reminder": self.reminder.value if self.reminder else None,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Event":
        """Restore an event from its stored dictionary form."""
        reminder = data.get("reminder")
        return cls(
            id=str(data["id"]),
            title=data["title"],
            description=data.get("description") or "",
            start=datetime.fromisoformat(data["start_date"]),
            end=datetime.fromisoformat(data["end_date"]),
            category=EventCategory(data.get("category") or "default"),
            reminder=ReminderTime(reminder) if reminder else None,
        )


@dataclass
class Calendar:
    """A shared calendar, addressed only by its id."""

    calendar_id: str
    created_at: datetime = field(default_factory=datetime.now)

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return {
            "calendar_id": self.calendar_id,
            "created_at": self.created_at.isoformat(),
        }
