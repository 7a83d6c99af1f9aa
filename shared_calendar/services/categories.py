"""Display helpers for event categories and reminders."""
from typing import Optional

from shared_calendar.models.event import EventCategory, ReminderTime

CATEGORY_BORDER_COLORS = {
    EventCategory.WORK: "#3b82f6",
    EventCategory.PERSONAL: "#10b981",
    EventCategory.MEETING: "#8b5cf6",
    EventCategory.APPOINTMENT: "#f59e0b",
    EventCategory.HOLIDAY: "#ef4444",
    EventCategory.DEFAULT: "#6b7280",
}

CATEGORY_BADGE_CLASSES = {
    EventCategory.WORK: "bg-blue-100 text-blue-800 border-blue-200",
    EventCategory.PERSONAL: "bg-green-100 text-green-800 border-green-200",
    EventCategory.MEETING: "bg-purple-100 text-purple-800 border-purple-200",
    EventCategory.APPOINTMENT: "bg-orange-100 text-orange-800 border-orange-200",
    EventCategory.HOLIDAY: "bg-red-100 text-red-800 border-red-200",
    EventCategory.DEFAULT: "bg-gray-100 text-gray-800 border-gray-200",
}

CATEGORY_LABELS = {
    EventCategory.WORK: "Work",
    EventCategory.PERSONAL: "Personal",
    EventCategory.MEETING: "Meeting",
    EventCategory.APPOINTMENT: "Appointment",
    EventCategory.HOLIDAY: "Holiday",
    EventCategory.DEFAULT: "Other",
}

REMINDER_LABELS = {
    ReminderTime.NONE: "No reminder",
    ReminderTime.FIFTEEN_MINUTES: "15 minutes before",
    ReminderTime.THIRTY_MINUTES: "30 minutes before",
    ReminderTime.ONE_HOUR: "1 hour before",
    ReminderTime.ONE_DAY: "1 day before",
}


def category_color(category: EventCategory, border_only: bool = False) -> str:
    """
    Color for a category.

    Args:
        category: Event category
        border_only: Return the hex border color instead of the badge classes

    Returns:
        Hex color string or space-separated CSS classes
    """
    if border_only:
        return CATEGORY_BORDER_COLORS[category]
    return CATEGORY_BADGE_CLASSES[category]


def category_label(category: EventCategory) -> str:
    """Human-readable category name."""
    return CATEGORY_LABELS[category]


def reminder_label(reminder: Optional[ReminderTime]) -> str:
    """Human-readable reminder description."""
    return REMINDER_LABELS[reminder or ReminderTime.NONE]
