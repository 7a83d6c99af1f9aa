"""Request and response models for the calendar API."""
from typing import List, Optional

from pydantic import BaseModel, Field

from shared_calendar.models.event import EventCategory, ReminderTime


class CalendarCreate(BaseModel):
    """Body of POST /api/calendars."""

    calendar_id: Optional[str] = None


class CalendarOut(BaseModel):
    """A calendar record."""

    calendar_id: str
    created_at: str


class EventIn(BaseModel):
    """Body of POST /api/calendars/{calendar_id}/events.

    Dates stay strings here so malformed values reach the date-range
    validator and come back with its message.
    """

    title: str
    description: str = ""
    start_date: str
    end_date: str
    category: EventCategory = EventCategory.DEFAULT
    reminder: Optional[ReminderTime] = None
    client_id: Optional[str] = None


class EventPatch(BaseModel):
    """Body of PATCH /api/events/{event_id}; only sent fields change."""

    title: Optional[str] = None
    description: Optional[str] = None
    start_date: Optional[str] = None
    end_date: Optional[str] = None
    category: Optional[EventCategory] = None
    reminder: Optional[ReminderTime] = None


class EventOut(BaseModel):
    """An event as returned by the API."""

    id: str
    title: str
    description: str
    start_date: str
    end_date: str
    category: EventCategory
    reminder: Optional[ReminderTime] = None


class EventCreated(BaseModel):
    """Response of a successful event creation."""

    id: str
    client_id: Optional[str] = None
    event: EventOut


class DateRangeIn(BaseModel):
    """Body of POST /api/validate."""

    start_date: str
    end_date: str


class ValidationOut(BaseModel):
    """Outcome of a validation check."""

    is_valid: bool
    error_message: Optional[str] = None


class UpcomingOut(BaseModel):
    """Upcoming events for the sidebar."""

    events: List[EventOut] = Field(default_factory=list)
