"""Shared fixtures for calendar tests."""
from datetime import datetime

import pytest
from fastapi.testclient import TestClient

from shared_calendar.main import create_app
from shared_calendar.models.event import Event, EventCategory, EventDraft
from shared_calendar.services.event_store import EventStore


@pytest.fixture
def make_event():
    """Factory for events: make_event("id", "Title", "2024-01-10T09:00", "2024-01-10T10:00")."""
    def _make(event_id, title, start, end, category=EventCategory.DEFAULT):
        return Event(
            id=event_id,
            title=title,
            start=datetime.fromisoformat(start),
            end=datetime.fromisoformat(end),
            category=category,
        )
    return _make


@pytest.fixture
def make_draft():
    """Factory for event drafts."""
    def _make(title, start, end, category=EventCategory.DEFAULT):
        return EventDraft(
            title=title,
            start=datetime.fromisoformat(start),
            end=datetime.fromisoformat(end),
            category=category,
        )
    return _make


@pytest.fixture
def store():
    """In-memory event store."""
    return EventStore()


@pytest.fixture
def client(store):
    """Test client bound to a fresh in-memory store."""
    with TestClient(create_app(store)) as test_client:
        yield test_client
