"""
Domain layer - Pure business logic without external dependencies.
"""

from .exceptions import (
    AuthenticationError,
    CalendarAPIError,
    CollaboratorError,
    ConfigurationError,
    FreeSlotsError,
)
from .formatting import format_group, format_groups
from .models import BusinessHours, SearchWindow, TimeRange, Unbounded
from .slot_calculator import SlotCalculator

__all__ = [
    "AuthenticationError",
    "BusinessHours",
    "CalendarAPIError",
    "CollaboratorError",
    "ConfigurationError",
    "FreeSlotsError",
    "SearchWindow",
    "SlotCalculator",
    "TimeRange",
    "Unbounded",
    "format_group",
    "format_groups",
]
