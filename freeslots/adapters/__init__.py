"""
Adapters layer - External integrations (Microsoft Graph API, mock data).
"""

from .graph_authenticator import GraphAuthenticator
from .graph_client import GraphCalendarClient
from .mock_calendar_client import MockCalendarClient

__all__ = ["GraphAuthenticator", "GraphCalendarClient", "MockCalendarClient"]
