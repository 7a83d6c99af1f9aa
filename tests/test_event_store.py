"""Tests for the event store and its change notifications."""
import json
from datetime import datetime
from unittest.mock import AsyncMock

import pytest

from shared_calendar.exceptions import (
    CalendarExistsError,
    CalendarNotFoundError,
    EventNotFoundError,
    InvalidCalendarIdError,
    InvalidEventError,
    StoreError,
)
from shared_calendar.models.event import EventCategory
from shared_calendar.services.event_store import ChangeKind, EventStore


class TestCalendars:
    """Tests for calendar creation and lookup."""

    @pytest.mark.asyncio
    async def test_create_generates_id(self, store):
        """Test generated ids are 26 lowercase alphanumerics."""
        calendar_id = await store.create_calendar()

        assert len(calendar_id) == 26
        assert calendar_id.isalnum()
        assert await store.calendar_exists(calendar_id)

    @pytest.mark.asyncio
    async def test_create_with_id(self, store):
        """Test a chosen id is kept and cannot be reused."""
        assert await store.create_calendar("team-cal") == "team-cal"

        with pytest.raises(CalendarExistsError):
            await store.create_calendar("team-cal")

    @pytest.mark.asyncio
    async def test_invalid_id(self, store):
        """Test ids with unsupported characters are rejected."""
        with pytest.raises(InvalidCalendarIdError):
            await store.create_calendar("../etc")

        assert not await store.calendar_exists("../etc")

    @pytest.mark.asyncio
    async def test_unknown_calendar(self, store):
        """Test listing an unknown calendar fails."""
        with pytest.raises(CalendarNotFoundError):
            await store.list_events("missing")


class TestEvents:
    """Tests for event CRUD."""

    @pytest.mark.asyncio
    async def test_create_and_list(self, store, make_draft):
        """Test events are listed in insertion order."""
        calendar_id = await store.create_calendar()
        first = await store.create_event(calendar_id, make_draft("First", "2024-01-10T09:00", "2024-01-10T10:00"))
        second = await store.create_event(calendar_id, make_draft("Second", "2024-01-09T09:00", "2024-01-09T10:00"))

        events = await store.list_events(calendar_id)

        assert [e.id for e in events] == [first, second]
        assert first != second

    @pytest.mark.asyncio
    async def test_create_strips_title(self, store, make_draft):
        """Test stored titles are trimmed."""
        calendar_id = await store.create_calendar()
        event_id = await store.create_event(calendar_id, make_draft("  Lunch ", "2024-01-10T12:00", "2024-01-10T13:00"))

        assert (await store.get_event(event_id)).title == "Lunch"

    @pytest.mark.asyncio
    async def test_create_rejects_bad_range(self, store, make_draft):
        """Test invalid ranges never reach storage."""
        calendar_id = await store.create_calendar()

        with pytest.raises(InvalidEventError, match="End date must be after start date"):
            await store.create_event(calendar_id, make_draft("Bad", "2024-01-10T10:00", "2024-01-10T09:00"))

        assert await store.list_events(calendar_id) == []

    @pytest.mark.asyncio
    async def test_update(self, store, make_draft):
        """Test partial updates keep the id and other fields."""
        calendar_id = await store.create_calendar()
        event_id = await store.create_event(
            calendar_id, make_draft("Standup", "2024-01-10T09:00", "2024-01-10T10:00", EventCategory.WORK)
        )

        updated = await store.update_event(event_id, title="Daily standup")

        assert updated.id == event_id
        assert updated.title == "Daily standup"
        assert updated.category == EventCategory.WORK
        assert (await store.list_events(calendar_id))[0] == updated

    @pytest.mark.asyncio
    async def test_update_validates_merged_range(self, store, make_draft):
        """Test an update moving the end before the start is rejected."""
        calendar_id = await store.create_calendar()
        event_id = await store.create_event(calendar_id, make_draft("Standup", "2024-01-10T09:00", "2024-01-10T10:00"))

        with pytest.raises(InvalidEventError):
            await store.update_event(event_id, end=datetime(2024, 1, 10, 8, 0))

        assert (await store.get_event(event_id)).end == datetime(2024, 1, 10, 10, 0)

    @pytest.mark.asyncio
    async def test_update_unknown_field(self, store, make_draft):
        """Test unknown fields are rejected."""
        calendar_id = await store.create_calendar()
        event_id = await store.create_event(calendar_id, make_draft("Standup", "2024-01-10T09:00", "2024-01-10T10:00"))

        with pytest.raises(InvalidEventError):
            await store.update_event(event_id, colour="red")

    @pytest.mark.asyncio
    async def test_delete(self, store, make_draft):
        """Test deleted events disappear and cannot be deleted twice."""
        calendar_id = await store.create_calendar()
        event_id = await store.create_event(calendar_id, make_draft("Standup", "2024-01-10T09:00", "2024-01-10T10:00"))

        await store.delete_event(event_id)

        assert await store.list_events(calendar_id) == []
        with pytest.raises(EventNotFoundError):
            await store.delete_event(event_id)


class TestNotifications:
    """Tests for change subscriptions."""

    @pytest.mark.asyncio
    async def test_insert_update_delete_notifications(self, store, make_draft):
        """Test every write is broadcast with the writer's client id."""
        calendar_id = await store.create_calendar()
        received = []
        store.on_change(calendar_id, received.append)

        event_id = await store.create_event(
            calendar_id, make_draft("Standup", "2024-01-10T09:00", "2024-01-10T10:00"), client_id="local-1"
        )
        await store.update_event(event_id, title="Daily standup")
        await store.delete_event(event_id)

        assert [n.kind for n in received] == [ChangeKind.INSERT, ChangeKind.UPDATE, ChangeKind.DELETE]
        assert received[0].client_id == "local-1"
        assert received[0].event.id == event_id
        assert received[1].event.title == "Daily standup"
        assert received[2].event is None
        assert received[2].to_dict()["type"] == "delete"

    @pytest.mark.asyncio
    async def test_notifications_scoped_to_calendar(self, store, make_draft):
        """Test listeners only hear about their own calendar."""
        watched = await store.create_calendar()
        other = await store.create_calendar()
        received = []
        store.on_change(watched, received.append)

        await store.create_event(other, make_draft("Elsewhere", "2024-01-10T09:00", "2024-01-10T10:00"))

        assert received == []

    @pytest.mark.asyncio
    async def test_async_listener_and_unsubscribe(self, store, make_draft):
        """Test async listeners are awaited and can unsubscribe."""
        calendar_id = await store.create_calendar()
        listener = AsyncMock()
        unsubscribe = store.on_change(calendar_id, listener)

        await store.create_event(calendar_id, make_draft("One", "2024-01-10T09:00", "2024-01-10T10:00"))
        unsubscribe()
        await store.create_event(calendar_id, make_draft("Two", "2024-01-10T09:00", "2024-01-10T10:00"))

        listener.assert_awaited_once()
        assert store.subscriber_count(calendar_id) == 0

    @pytest.mark.asyncio
    async def test_failing_listener_does_not_break_writes(self, store, make_draft):
        """Test a broken subscriber neither fails the write nor starves others."""
        calendar_id = await store.create_calendar()
        received = []

        def broken(note):
            raise RuntimeError("listener bug")

        store.on_change(calendar_id, broken)
        store.on_change(calendar_id, received.append)

        event_id = await store.create_event(calendar_id, make_draft("One", "2024-01-10T09:00", "2024-01-10T10:00"))

        assert [n.event_id for n in received] == [event_id]


class TestPersistence:
    """Tests for JSON-file persistence."""

    @pytest.mark.asyncio
    async def test_reload_from_disk(self, tmp_path, make_draft):
        """Test a new store instance sees calendars written by an old one."""
        first = EventStore(str(tmp_path))
        calendar_id = await first.create_calendar("family")
        event_id = await first.create_event(
            calendar_id, make_draft("Holiday", "2024-12-24T00:00", "2024-12-26T23:00", EventCategory.HOLIDAY)
        )

        data = json.loads((tmp_path / "calendar-family.json").read_text())
        assert data["events"][0]["category"] == "holiday"

        second = EventStore(str(tmp_path))
        events = await second.list_events("family")

        assert [e.id for e in events] == [event_id]
        assert events[0].is_multi_day
        assert (await second.get_event(event_id)).title == "Holiday"

    @pytest.mark.asyncio
    async def test_write_failure_keeps_memory_unchanged(self, tmp_path, make_draft, monkeypatch):
        """Test a failed save leaves the in-memory state as it was."""
        store = EventStore(str(tmp_path))
        calendar_id = await store.create_calendar("family")

        def fail(record, events):
            raise StoreError("disk full")

        monkeypatch.setattr(store, "_write_file", fail)

        with pytest.raises(StoreError):
            await store.create_event(calendar_id, make_draft("Lost", "2024-01-10T09:00", "2024-01-10T10:00"))

        assert await store.list_events(calendar_id) == []

    @pytest.mark.asyncio
    async def test_corrupt_file_skipped_at_startup(self, tmp_path, make_draft):
        """Test one unreadable calendar file does not stop the others from loading."""
        good = EventStore(str(tmp_path))
        await good.create_calendar("family")
        await good.create_event("family", make_draft("Dinner", "2024-01-10T19:00", "2024-01-10T21:00"))
        (tmp_path / "calendar-broken.json").write_text("{not json", encoding="utf-8")
        (tmp_path / "calendar-badrows.json").write_text('{"events": ["x"]}', encoding="utf-8")

        store = EventStore(str(tmp_path))

        assert [e.title for e in await store.list_events("family")] == ["Dinner"]
        with pytest.raises(StoreError):
            await store.list_events("broken")
        with pytest.raises(StoreError):
            await store.list_events("badrows")
