"""Input validation for event writes."""
from dataclasses import dataclass
from datetime import datetime
from typing import Optional, Union

from shared_calendar.exceptions import InvalidEventError

InstantLike = Union[datetime, str, None]

MAX_TITLE_LENGTH = 100
MAX_DESCRIPTION_LENGTH = 1000


@dataclass(frozen=True)
class ValidationResult:
    """Outcome of a validation check."""
    is_valid: bool
    error_message: Optional[str] = None

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return {"is_valid": self.is_valid, "error_message": self.error_message}


VALID = ValidationResult(is_valid=True)


def to_local_naive(value: datetime) -> datetime:
    """Convert an aware datetime to naive local time; naive values pass through."""
    if value.tzinfo is None:
        return value
    return value.astimezone().replace(tzinfo=None)


def parse_instant(value: InstantLike) -> Optional[datetime]:
    """
    Parse an instant from a datetime or an ISO 8601 string.

    Returns:
        Naive local datetime, or None if the value cannot be parsed
    """
    if isinstance(value, datetime):
        return to_local_naive(value)
    if not isinstance(value, str) or not value.strip():
        return None

    text = value.strip()
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    try:
        return to_local_naive(datetime.fromisoformat(text))
    except ValueError:
        return None


def validate_event_date_range(start: InstantLike, end: InstantLike) -> ValidationResult:
    """
    Check that an event's end instant is strictly after its start.

    Args:
        start: Start instant (datetime or ISO string)
        end: End instant (datetime or ISO string)

    Returns:
        ValidationResult with a human-readable reason on failure
    """
    start_dt = parse_instant(start)
    if start_dt is None:
        return ValidationResult(False, "Start date is invalid")

    end_dt = parse_instant(end)
    if end_dt is None:
        return ValidationResult(False, "End date is invalid")

    if end_dt <= start_dt:
        return ValidationResult(False, "End date must be after start date")

    return VALID


def validate_event_fields(
    title: Optional[str],
    start: InstantLike,
    end: InstantLike,
    description: Optional[str] = None,
) -> ValidationResult:
    """Validate the title, description and date range of an event."""
    if not title or not title.strip():
        return ValidationResult(False, "Title is required")
    if len(title.strip()) > MAX_TITLE_LENGTH:
        return ValidationResult(False, f"Title must be at most {MAX_TITLE_LENGTH} characters")
    if description and len(description) > MAX_DESCRIPTION_LENGTH:
        return ValidationResult(
            False, f"Description must be at most {MAX_DESCRIPTION_LENGTH} characters"
        )
    return validate_event_date_range(start, end)


def ensure_valid(result: ValidationResult) -> None:
    """Raise InvalidEventError if a validation result failed."""
    if not result.is_valid:
        raise InvalidEventError(result.error_message)
