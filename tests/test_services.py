"""Tests for calendar models, day helpers, categories and validation."""
from datetime import date, datetime

import pytest

from shared_calendar.exceptions import InvalidEventError
from shared_calendar.models.event import Event, EventCategory, EventDraft, ReminderTime
from shared_calendar.services.categories import category_color, category_label, reminder_label
from shared_calendar.services.days import (
    chunk_weeks,
    date_range,
    format_range_title,
    is_event_on_day,
    month_grid_days,
    occupied_days,
    shift_anchor,
    upcoming_events,
    week_days,
)
from shared_calendar.services.validation import (
    ensure_valid,
    parse_instant,
    validate_event_date_range,
    validate_event_fields,
)


class TestEvent:
    """Tests for the Event model."""

    def test_day_properties(self, make_event):
        """Test start/end days and multi-day detection."""
        event = make_event("a", "Conference", "2024-01-10T09:00", "2024-01-12T17:00")

        assert event.start_day == date(2024, 1, 10)
        assert event.end_day == date(2024, 1, 12)
        assert event.is_multi_day

    def test_with_updates_keeps_id(self, make_event):
        """Test updates produce a new version with the same id."""
        event = make_event("a", "Standup", "2024-01-10T09:00", "2024-01-10T10:00")

        updated = event.with_updates(title="Daily standup", id="other")

        assert updated.id == "a"
        assert updated.title == "Daily standup"
        assert event.title == "Standup"

    def test_reminder_at(self, make_event):
        """Test reminder instant is start minus the offset."""
        event = make_event("a", "Standup", "2024-01-10T09:00", "2024-01-10T10:00")

        assert event.reminder_at is None
        assert event.with_updates(reminder=ReminderTime.NONE).reminder_at is None
        assert event.with_updates(reminder=ReminderTime.ONE_HOUR).reminder_at == datetime(2024, 1, 10, 8, 0)
        assert event.with_updates(reminder=ReminderTime.ONE_DAY).reminder_at == datetime(2024, 1, 9, 9, 0)

    def test_dict_round_trip(self):
        """Test stored dictionary form restores the same event."""
        event = Event(
            id="a",
            title="Dentist",
            start=datetime(2024, 3, 15, 14, 0),
            end=datetime(2024, 3, 15, 15, 0),
            category=EventCategory.APPOINTMENT,
            description="Checkup",
            reminder=ReminderTime.THIRTY_MINUTES,
        )

        data = event.to_dict()

        assert data["start_date"] == "2024-03-15T14:00:00"
        assert data["category"] == "appointment"
        assert data["reminder"] == "30min"
        assert Event.from_dict(data) == event

    def test_from_dict_defaults(self):
        """Test missing optional fields fall back to defaults."""
        event = Event.from_dict({
            "id": 7,
            "title": "Holiday",
            "start_date": "2024-12-25T00:00:00",
            "end_date": "2024-12-26T00:00:00",
            "description": None,
        })

        assert event.id == "7"
        assert event.category == EventCategory.DEFAULT
        assert event.description == ""
        assert event.reminder is None

    def test_draft_to_event(self, make_draft):
        """Test a draft becomes an event with the given id."""
        draft = make_draft("Lunch", "2024-01-11T12:00", "2024-01-11T13:00", EventCategory.PERSONAL)

        event = draft.to_event("xyz")

        assert event.id == "xyz"
        assert event.category == EventCategory.PERSONAL
        assert isinstance(draft, EventDraft)


class TestDays:
    """Tests for calendar-day helpers."""

    def test_month_grid_sunday_start(self):
        """Test month grid starts on the Sunday before the 1st and has 42 days."""
        days = month_grid_days(date(2024, 1, 20))

        assert len(days) == 42
        assert days[0] == date(2023, 12, 31)
        assert days[-1] == date(2024, 2, 10)

    def test_month_grid_monday_start(self):
        """Test month grid with Monday week start."""
        days = month_grid_days(date(2024, 1, 20), week_start="monday")
        assert days[0] == date(2024, 1, 1)

    def test_month_grid_first_is_week_start(self):
        """Test a month starting on Sunday begins on the 1st."""
        assert month_grid_days(date(2023, 10, 5))[0] == date(2023, 10, 1)

    def test_week_days(self):
        """Test the seven days of a week."""
        days = week_days(datetime(2024, 1, 10, 15, 30))

        assert days == date_range(date(2024, 1, 7), date(2024, 1, 13))

    def test_invalid_week_start(self):
        """Test unsupported week starts are rejected."""
        with pytest.raises(ValueError):
            week_days(date(2024, 1, 10), week_start="friday")

    def test_chunk_weeks(self):
        """Test visible ranges split into 7-day chunks."""
        chunks = chunk_weeks(month_grid_days(date(2024, 1, 1)))

        assert len(chunks) == 6
        assert all(len(chunk) == 7 for chunk in chunks)

    def test_is_event_on_day_inclusive(self, make_event):
        """Test occupancy is inclusive of both end days."""
        event = make_event("a", "Conference", "2024-01-10T23:00", "2024-01-12T00:30")

        assert not is_event_on_day(event, date(2024, 1, 9))
        for day in date_range(date(2024, 1, 10), date(2024, 1, 12)):
            assert is_event_on_day(event, day)
        assert not is_event_on_day(event, date(2024, 1, 13))

    def test_occupied_days(self, make_event):
        """Test occupied days is the visible subsequence."""
        event = make_event("a", "Trip", "2024-01-05T09:00", "2024-01-09T10:00")

        days = occupied_days(event, week_days(date(2024, 1, 10)))

        assert days == [date(2024, 1, 7), date(2024, 1, 8), date(2024, 1, 9)]

    def test_shift_month_clamps_day(self):
        """Test month navigation clamps to the target month length."""
        assert shift_anchor(date(2024, 1, 31), "month", 1) == date(2024, 2, 29)
        assert shift_anchor(date(2024, 1, 15), "month", -1) == date(2023, 12, 15)
        assert shift_anchor(date(2023, 12, 15), "month", 1) == date(2024, 1, 15)

    def test_shift_week_and_day(self):
        """Test week and day navigation."""
        assert shift_anchor(date(2024, 1, 10), "week", 1) == date(2024, 1, 17)
        assert shift_anchor(date(2024, 1, 10), "day", -1) == date(2024, 1, 9)

    def test_format_range_title(self):
        """Test header titles per view."""
        assert format_range_title(date(2024, 1, 10), "month") == "January 2024"
        assert format_range_title(date(2024, 1, 10), "week") == "Jan 7 - Jan 13, 2024"
        assert format_range_title(date(2024, 1, 10), "day") == "Wednesday, January 10, 2024"

    def test_upcoming_events(self, make_event):
        """Test upcoming events are future-only, sorted and limited."""
        now = datetime(2024, 1, 10, 12, 0)
        past = make_event("past", "Past", "2024-01-09T09:00", "2024-01-09T10:00")
        later = make_event("later", "Later", "2024-01-20T09:00", "2024-01-20T10:00")
        soon = make_event("soon", "Soon", "2024-01-10T13:00", "2024-01-10T14:00")
        many = [
            make_event(f"m{i}", "Many", f"2024-02-{i + 1:02d}T09:00", f"2024-02-{i + 1:02d}T10:00")
            for i in range(12)
        ]

        result = upcoming_events([past, later, soon] + many, now)

        assert [e.id for e in result[:2]] == ["soon", "later"]
        assert len(result) == 10
        assert past not in result


class TestCategories:
    """Tests for category display helpers."""

    def test_category_colors(self):
        """Test border and badge colors."""
        assert category_color(EventCategory.WORK, border_only=True) == "#3b82f6"
        assert "bg-red-100" in category_color(EventCategory.HOLIDAY)

    def test_every_category_has_color_and_label(self):
        """Test all categories are covered."""
        for category in EventCategory:
            assert category_color(category, border_only=True).startswith("#")
            assert category_label(category)

    def test_labels(self):
        """Test readable labels."""
        assert category_label(EventCategory.DEFAULT) == "Other"
        assert reminder_label(None) == "No reminder"
        assert reminder_label(ReminderTime.ONE_HOUR) == "1 hour before"


class TestValidation:
    """Tests for the date-range validator."""

    def test_end_before_start_rejected(self):
        """Test an end before the start is rejected."""
        result = validate_event_date_range("2024-01-10T10:00", "2024-01-10T09:00")

        assert not result.is_valid
        assert result.error_message == "End date must be after start date"

    def test_equal_instants_rejected(self):
        """Test a zero-length range is rejected."""
        result = validate_event_date_range("2024-01-10T10:00", "2024-01-10T10:00")
        assert not result.is_valid

    def test_valid_range(self):
        """Test a proper range passes."""
        result = validate_event_date_range(
            datetime(2024, 1, 10, 9, 0), datetime(2024, 1, 10, 10, 0)
        )

        assert result.is_valid
        assert result.error_message is None

    def test_unparseable_dates(self):
        """Test garbage input is rejected with a reason."""
        assert validate_event_date_range("not a date", "2024-01-10T10:00").error_message == "Start date is invalid"
        assert validate_event_date_range("2024-01-10T10:00", "").error_message == "End date is invalid"
        assert not validate_event_date_range(None, None).is_valid

    def test_parse_instant_utc_suffix(self):
        """Test a Z suffix parses and converts to naive local time."""
        parsed = parse_instant("2024-01-10T09:00:00Z")

        assert parsed is not None
        assert parsed.tzinfo is None

    def test_fields_title_required(self):
        """Test blank titles are rejected before the date check."""
        result = validate_event_fields("   ", "2024-01-10T09:00", "2024-01-10T10:00")

        assert not result.is_valid
        assert result.error_message == "Title is required"

    def test_fields_length_limits(self):
        """Test title and description length limits."""
        assert not validate_event_fields("x" * 101, "2024-01-10T09:00", "2024-01-10T10:00").is_valid
        assert not validate_event_fields(
            "ok", "2024-01-10T09:00", "2024-01-10T10:00", description="d" * 1001
        ).is_valid
        assert validate_event_fields("ok", "2024-01-10T09:00", "2024-01-10T10:00", "d").is_valid

    def test_ensure_valid_raises(self):
        """Test failed results raise InvalidEventError with the message."""
        result = validate_event_date_range("2024-01-10T10:00", "2024-01-10T09:00")

        with pytest.raises(InvalidEventError, match="End date must be after start date"):
            ensure_valid(result)

        ensure_valid(validate_event_date_range("2024-01-10T09:00", "2024-01-10T10:00"))


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
