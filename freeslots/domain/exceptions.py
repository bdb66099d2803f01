"""
Domain-specific exception hierarchy for the free slot finder.
"""


class FreeSlotsError(Exception):
    """Base class for all application-level errors."""


class ConfigurationError(FreeSlotsError):
    """Raised when configuration values are missing or malformed."""


class CollaboratorError(FreeSlotsError):
    """Raised when an external collaborator (calendar, auth) fails."""


class CalendarAPIError(CollaboratorError):
    """Raised when calendar data cannot be fetched or parsed."""


class AuthenticationError(CollaboratorError):
    """Raised when authentication or token handling fails."""
