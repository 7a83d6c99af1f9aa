"""Exception hierarchy for the shared calendar service."""


class SharedCalendarError(Exception):
    """Base exception for the shared calendar service."""


class InvalidEventError(SharedCalendarError):
    """Event input rejected by validation (bad dates, empty title, ...)."""


class StoreError(SharedCalendarError):
    """Event store failures (create/update/delete/list)."""


class CalendarNotFoundError(StoreError):
    """Calendar id does not exist."""


class EventNotFoundError(StoreError):
    """Event id does not exist."""


class CalendarExistsError(StoreError):
    """Calendar id is already taken."""


class InvalidCalendarIdError(StoreError):
    """Calendar id has characters or a length the store does not accept."""
