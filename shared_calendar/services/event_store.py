"""Event store with change notifications.

Keeps calendars and their events in memory, optionally mirrored to one JSON
file per calendar under DATA_DIR. Every successful write is broadcast to the
calendar's subscribers so open views can merge it into their event set.
"""
import inspect
import json
import re
import secrets
import string
import uuid
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Awaitable, Callable, Dict, List, Optional, Union

import structlog

from shared_calendar.exceptions import (
    CalendarExistsError,
    CalendarNotFoundError,
    EventNotFoundError,
    InvalidCalendarIdError,
    InvalidEventError,
    StoreError,
)
from shared_calendar.models.event import Calendar, Event, EventDraft
from shared_calendar.services.validation import (
    ensure_valid,
    parse_instant,
    validate_event_fields,
)

logger = structlog.get_logger(__name__)

CALENDAR_ID_PATTERN = re.compile(r"^[A-Za-z0-9_-]{1,64}$")
CALENDAR_ID_ALPHABET = string.ascii_lowercase + string.digits
CALENDAR_ID_LENGTH = 26

UPDATABLE_FIELDS = {"title", "description", "start", "end", "category", "reminder"}


class ChangeKind(Enum):
    """Kind of change broadcast to subscribers."""
    INSERT = "insert"
    UPDATE = "update"
    DELETE = "delete"


@dataclass(frozen=True)
class ChangeNotification:
    """A committed change to one event of a calendar."""
    kind: ChangeKind
    calendar_id: str
    event_id: str
    event: Optional[Event] = None
    client_id: Optional[str] = None  # provisional id supplied by the writer

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return {
            "type": self.kind.value,
            "calendar_id": self.calendar_id,
            "event_id": self.event_id,
            "event": self.event.to_dict() if self.event else None,
            "client_id": self.client_id,
        }


Listener = Callable[[ChangeNotification], Union[None, Awaitable[None]]]


def generate_calendar_id() -> str:
    """Random shareable calendar id."""
    return "".join(secrets.choice(CALENDAR_ID_ALPHABET) for _ in range(CALENDAR_ID_LENGTH))


class EventStore:
    """Calendars, their events, and change subscriptions."""

    def __init__(self, data_dir: str = ""):
        """
        Initialize the store.

        Args:
            data_dir: Directory for calendar JSON files; empty keeps data in memory only
        """
        self.data_dir = Path(data_dir) if data_dir else None
        if self.data_dir is not None:
            self.data_dir.mkdir(parents=True, exist_ok=True)

        self._calendars: Dict[str, Calendar] = {}
        self._events: Dict[str, Dict[str, Event]] = {}
        self._event_calendar: Dict[str, str] = {}
        self._listeners: Dict[str, List[Listener]] = {}

        if self.data_dir is not None:
            for path in sorted(self.data_dir.glob("calendar-*.json")):
                calendar_id = path.stem[len("calendar-"):]
                if not CALENDAR_ID_PATTERN.match(calendar_id):
                    continue
                try:
                    self._load_file(calendar_id)
                except StoreError:
                    # Unreadable files are skipped; lookups retry and report them.
                    continue

    # Calendars

    async def create_calendar(self, calendar_id: Optional[str] = None) -> str:
        """
        Create an empty calendar.

        Args:
            calendar_id: Requested id; a random one is generated when omitted

        Returns:
            The calendar id
        """
        if calendar_id is None:
            calendar_id = generate_calendar_id()
        elif not CALENDAR_ID_PATTERN.match(calendar_id):
            raise InvalidCalendarIdError(f"Invalid calendar id: {calendar_id!r}")

        if await self.calendar_exists(calendar_id):
            raise CalendarExistsError(f"Calendar already exists: {calendar_id}")

        record = Calendar(calendar_id=calendar_id)
        self._write_file(record, [])
        self._calendars[calendar_id] = record
        self._events[calendar_id] = {}

        logger.info("calendar_created", calendar_id=calendar_id)
        return calendar_id

    async def calendar_exists(self, calendar_id: str) -> bool:
        """Check if a calendar exists."""
        return self._find_calendar(calendar_id) is not None

    async def get_calendar(self, calendar_id: str) -> Calendar:
        """Fetch a calendar record."""
        record = self._find_calendar(calendar_id)
        if record is None:
            raise CalendarNotFoundError(f"Calendar not found: {calendar_id}")
        return record

    # Events

    async def list_events(self, calendar_id: str) -> List[Event]:
        """Events of a calendar in insertion order."""
        await self.get_calendar(calendar_id)
        return list(self._events[calendar_id].values())

    async def get_event(self, event_id: str) -> Event:
        """Fetch a single event by id."""
        calendar_id = self._event_calendar.get(event_id)
        if calendar_id is None:
            raise EventNotFoundError(f"Event not found: {event_id}")
        return self._events[calendar_id][event_id]

    async def create_event(
        self,
        calendar_id: str,
        draft: EventDraft,
        client_id: Optional[str] = None,
    ) -> str:
        """
        Add an event to a calendar.

        Args:
            calendar_id: Target calendar
            draft: Event fields
            client_id: Provisional id used by the writer, echoed in the notification

        Returns:
            Durable id of the new event
        """
        ensure_valid(validate_event_fields(draft.title, draft.start, draft.end, draft.description))
        record = await self.get_calendar(calendar_id)

        event = draft.to_event(str(uuid.uuid4()))
        event = event.with_updates(
            title=event.title.strip(),
            start=parse_instant(event.start),
            end=parse_instant(event.end),
        )

        events = dict(self._events[calendar_id])
        events[event.id] = event
        self._commit(record, events)
        self._event_calendar[event.id] = calendar_id

        logger.info("event_created", calendar_id=calendar_id, event_id=event.id, client_id=client_id)
        await self._notify(ChangeNotification(
            kind=ChangeKind.INSERT,
            calendar_id=calendar_id,
            event_id=event.id,
            event=event,
            client_id=client_id,
        ))
        return event.id

    async def update_event(self, event_id: str, **fields) -> Event:
        """
        Apply a partial update to an event.

        Returns:
            The new version of the event
        """
        unknown = set(fields) - UPDATABLE_FIELDS
        if unknown:
            raise InvalidEventError(f"Unknown event fields: {', '.join(sorted(unknown))}")

        current = await self.get_event(event_id)
        updated = current.with_updates(**fields)
        ensure_valid(validate_event_fields(
            updated.title, updated.start, updated.end, updated.description
        ))
        updated = updated.with_updates(
            title=updated.title.strip(),
            start=parse_instant(updated.start),
            end=parse_instant(updated.end),
        )

        calendar_id = self._event_calendar[event_id]
        events = dict(self._events[calendar_id])
        events[event_id] = updated
        self._commit(self._calendars[calendar_id], events)

        logger.info("event_updated", calendar_id=calendar_id, event_id=event_id, fields=sorted(fields))
        await self._notify(ChangeNotification(
            kind=ChangeKind.UPDATE,
            calendar_id=calendar_id,
            event_id=event_id,
            event=updated,
        ))
        return updated

    async def delete_event(self, event_id: str) -> None:
        """Remove an event."""
        await self.get_event(event_id)
        calendar_id = self._event_calendar[event_id]

        events = dict(self._events[calendar_id])
        del events[event_id]
        self._commit(self._calendars[calendar_id], events)
        del self._event_calendar[event_id]

        logger.info("event_deleted", calendar_id=calendar_id, event_id=event_id)
        await self._notify(ChangeNotification(
            kind=ChangeKind.DELETE,
            calendar_id=calendar_id,
            event_id=event_id,
        ))

    # Subscriptions

    def on_change(self, calendar_id: str, listener: Listener) -> Callable[[], None]:
        """
        Subscribe to changes of a calendar.

        Args:
            calendar_id: Calendar to watch
            listener: Called (or awaited, if it returns an awaitable) per change

        Returns:
            Function that removes the subscription
        """
        listeners = self._listeners.setdefault(calendar_id, [])
        listeners.append(listener)

        def unsubscribe() -> None:
            if listener in listeners:
                listeners.remove(listener)

        return unsubscribe

    def subscriber_count(self, calendar_id: str) -> int:
        """Number of active listeners on a calendar."""
        return len(self._listeners.get(calendar_id, []))

    async def _notify(self, note: ChangeNotification) -> None:
        for listener in list(self._listeners.get(note.calendar_id, [])):
            try:
                result = listener(note)
                if inspect.isawaitable(result):
                    await result
            except Exception:
                logger.exception(
                    "change_listener_failed",
                    calendar_id=note.calendar_id,
                    event_id=note.event_id,
                    kind=note.kind.value,
                )

    # Persistence

    def _find_calendar(self, calendar_id: str) -> Optional[Calendar]:
        if calendar_id in self._calendars:
            return self._calendars[calendar_id]
        if not CALENDAR_ID_PATTERN.match(calendar_id or ""):
            return None
        return self._load_file(calendar_id)

    def _path_for(self, calendar_id: str) -> Path:
        return self.data_dir / f"calendar-{calendar_id}.json"

    def _commit(self, record: Calendar, events: Dict[str, Event]) -> None:
        """Persist first, then swap the in-memory state."""
        self._write_file(record, list(events.values()))
        self._events[record.calendar_id] = events

    def _write_file(self, record: Calendar, events: List[Event]) -> None:
        if self.data_dir is None:
            return

        payload = {
            **record.to_dict(),
            "events": [event.to_dict() for event in events],
        }
        path = self._path_for(record.calendar_id)
        tmp_path = path.with_suffix(".json.tmp")
        try:
            tmp_path.write_text(json.dumps(payload, indent=2), encoding="utf-8")
            tmp_path.replace(path)
        except OSError as e:
            logger.error("calendar_write_failed", calendar_id=record.calendar_id, error=str(e))
            raise StoreError(f"Failed to save calendar {record.calendar_id}: {e}") from e

    def _load_file(self, calendar_id: str) -> Optional[Calendar]:
        if self.data_dir is None:
            return None

        path = self._path_for(calendar_id)
        if not path.exists():
            return None

        try:
            data = json.loads(path.read_text(encoding="utf-8"))
            events = [Event.from_dict(item) for item in data.get("events", [])]
            created_at = data.get("created_at")
            record = Calendar(
                calendar_id=calendar_id,
                created_at=datetime.fromisoformat(created_at) if created_at else datetime.now(),
            )
        except (OSError, ValueError, KeyError, TypeError, AttributeError) as e:
            logger.error("calendar_load_failed", calendar_id=calendar_id, error=str(e))
            raise StoreError(f"Failed to load calendar {calendar_id}: {e}") from e

        self._calendars[calendar_id] = record
        self._events[calendar_id] = {event.id: event for event in events}
        for event in events:
            self._event_calendar[event.id] = calendar_id

        logger.info("calendar_loaded", calendar_id=calendar_id, events=len(events))
        return record
