"""Optimistic, live-updating view of one calendar's events.

Local writes show up immediately: a new event is added under a provisional
``local-`` id before the store confirms it. The provisional id travels with
the write as ``client_id`` so the confirmation, whether it comes back as the
direct response or as the store's insert notification, swaps in the durable
id without guessing by title or timestamps. Failed writes are rolled back and
leave a notice for the user.
"""
import uuid
from dataclasses import dataclass, replace
from typing import Callable, List, Optional

import structlog

from shared_calendar.exceptions import InvalidEventError, SharedCalendarError, StoreError
from shared_calendar.models.event import Event, EventDraft
from shared_calendar.services.event_store import (
    UPDATABLE_FIELDS,
    ChangeKind,
    ChangeNotification,
    EventStore,
)
from shared_calendar.services.validation import ensure_valid, validate_event_fields

logger = structlog.get_logger(__name__)

PROVISIONAL_PREFIX = "local-"


@dataclass(frozen=True)
class Notice:
    """User-visible message raised by a failed write."""
    level: str
    message: str


def is_provisional(event_id: str) -> bool:
    """Check if an id was assigned locally and not yet confirmed."""
    return event_id.startswith(PROVISIONAL_PREFIX)


class LiveEventSet:
    """Current event set for a calendar, merged from local and remote changes."""

    def __init__(self, calendar_id: str, store: EventStore):
        self.calendar_id = calendar_id
        self.store = store
        self.notices: List[Notice] = []
        self._events: List[Event] = []
        self._unsubscribe: Optional[Callable[[], None]] = None

    async def load(self) -> List[Event]:
        """Replace the local set with the store's snapshot and start listening."""
        self._events = await self.store.list_events(self.calendar_id)
        if self._unsubscribe is None:
            self._unsubscribe = self.store.on_change(self.calendar_id, self.apply_notification)
        return self.snapshot()

    def close(self) -> None:
        """Stop receiving change notifications."""
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

    def snapshot(self) -> List[Event]:
        """Fresh list of the current events, in display order."""
        return list(self._events)

    def get(self, event_id: str) -> Optional[Event]:
        """Current version of an event, if present."""
        index = self._index_of(event_id)
        return self._events[index] if index is not None else None

    async def create(self, draft: EventDraft) -> Optional[Event]:
        """
        Add an event optimistically.

        Raises:
            InvalidEventError: If the draft fails validation (nothing is changed)

        Returns:
            The confirmed event, or None if the store rejected the write
        """
        ensure_valid(validate_event_fields(draft.title, draft.start, draft.end, draft.description))

        provisional = draft.to_event(f"{PROVISIONAL_PREFIX}{uuid.uuid4().hex}")
        self._events.append(provisional)

        try:
            durable_id = await self.store.create_event(
                self.calendar_id, draft, client_id=provisional.id
            )
        except SharedCalendarError as e:
            self._remove(provisional.id)
            self._fail("Could not create event", e, event_id=provisional.id)
            return None

        return self._confirm(provisional.id, durable_id)

    async def update(self, event_id: str, **changes) -> bool:
        """
        Edit an event optimistically.

        Raises:
            InvalidEventError: If a field is unknown or the edited event fails
                validation (nothing is changed)

        Returns:
            True once the store accepted the change
        """
        unknown = set(changes) - UPDATABLE_FIELDS
        if unknown:
            raise InvalidEventError(f"Unknown event fields: {', '.join(sorted(unknown))}")

        index = self._index_of(event_id)
        if index is None:
            self._fail("Could not update event", StoreError(f"Event not found: {event_id}"), event_id=event_id)
            return False

        previous = self._events[index]
        edited = previous.with_updates(**changes)
        ensure_valid(validate_event_fields(edited.title, edited.start, edited.end, edited.description))
        self._events[index] = edited

        try:
            confirmed = await self.store.update_event(event_id, **changes)
        except SharedCalendarError as e:
            self._replace(event_id, previous)
            self._fail("Could not update event", e, event_id=event_id)
            return False

        self._replace(event_id, confirmed)
        return True

    async def delete(self, event_id: str) -> bool:
        """Remove an event optimistically; restored in place if the store fails."""
        index = self._index_of(event_id)
        if index is None:
            return False

        previous = self._events.pop(index)

        try:
            await self.store.delete_event(event_id)
        except SharedCalendarError as e:
            if self._index_of(event_id) is None:
                self._events.insert(min(index, len(self._events)), previous)
            self._fail("Could not delete event", e, event_id=event_id)
            return False

        return True

    def apply_notification(self, note: ChangeNotification) -> None:
        """Merge a change broadcast by the store."""
        if note.calendar_id != self.calendar_id:
            return

        if note.kind is ChangeKind.DELETE:
            self._remove(note.event_id)
            return

        if note.event is None:
            return

        if note.kind is ChangeKind.INSERT and note.client_id and self._index_of(note.client_id) is not None:
            self._replace(note.client_id, note.event)
        elif self._index_of(note.event_id) is not None:
            self._replace(note.event_id, note.event)
        else:
            self._events.append(note.event)

    def _confirm(self, provisional_id: str, durable_id: str) -> Event:
        """Swap a provisional id for the durable one unless a notification already did."""
        index = self._index_of(provisional_id)
        if index is not None:
            if self._index_of(durable_id) is None:
                self._events[index] = replace(self._events[index], id=durable_id)
            else:
                del self._events[index]
        return self.get(durable_id)

    def _index_of(self, event_id: str) -> Optional[int]:
        for index, event in enumerate(self._events):
            if event.id == event_id:
                return index
        return None

    def _replace(self, event_id: str, event: Event) -> None:
        index = self._index_of(event_id)
        if index is not None:
            self._events[index] = event

    def _remove(self, event_id: str) -> None:
        index = self._index_of(event_id)
        if index is not None:
            del self._events[index]

    def _fail(self, message: str, error: Exception, event_id: str) -> None:
        logger.warning(
            "optimistic_write_reverted",
            calendar_id=self.calendar_id,
            event_id=event_id,
            error=str(error),
        )
        self.notices.append(Notice(level="error", message=f"{message}: {error}"))
