"""
Application services for listing shared free slots.

The service coordinates fetching busy times via a calendar client adapter,
delegates the interval calculation to the domain-level ``SlotCalculator``
and renders the result. The calendar dependency is a simple protocol so
tests can plug in a stub.
"""

from __future__ import annotations

import logging
from typing import Dict, List, Protocol, Sequence

from pendulum import DateTime

from ..domain.exceptions import ConfigurationError
from ..domain.formatting import format_groups
from ..domain.models import DayGroupedIntervals, SearchWindow, TimeRange
from ..domain.slot_calculator import SlotCalculator

logger = logging.getLogger(__name__)


class CalendarClientProtocol(Protocol):
    """Protocol describing the calendar client behaviour needed by the service."""

    def get_schedule(
        self,
        calendar_ids: List[str],
        start_time: DateTime,
        end_time: DateTime,
        timezone: str,
    ) -> Dict[str, List[TimeRange]]:
        """Return busy time ranges per calendar, ascending by start."""


class FreeSlotFinderService:
    """
    Orchestrates busy-time retrieval, slot calculation and rendering.
    """

    def __init__(
        self,
        calendar_client: CalendarClientProtocol,
        slot_calculator: SlotCalculator,
        timezone: str,
    ) -> None:
        self._calendar_client = calendar_client
        self._slot_calculator = slot_calculator
        self._timezone = timezone

    def find_slots(
        self,
        *,
        calendar_ids: Sequence[str],
        window: SearchWindow,
    ) -> DayGroupedIntervals:
        """
        Retrieve busy data for every calendar and compute the shared free slots.

        Raises:
            ConfigurationError: If no calendar is given
            CollaboratorError: If the calendar client fails
        """
        if not calendar_ids:
            raise ConfigurationError("At least one calendar is required.")

        busy_times = self.fetch_busy_times(calendar_ids=calendar_ids, window=window)
        return self._slot_calculator.find_available_slots(window=window, busy_times=busy_times)

    def find_slots_text(
        self,
        *,
        calendar_ids: Sequence[str],
        window: SearchWindow,
    ) -> str:
        """Same as ``find_slots`` but rendered as display text."""
        groups = self.find_slots(calendar_ids=calendar_ids, window=window)
        return format_groups(groups, self._timezone)

    def fetch_busy_times(
        self,
        *,
        calendar_ids: Sequence[str],
        window: SearchWindow,
    ) -> Dict[str, List[TimeRange]]:
        """Fetch busy times for the requested calendars, in request order."""
        calendar_list = list(calendar_ids)

        busy_times = self._calendar_client.get_schedule(
            calendar_ids=calendar_list,
            start_time=window.start,
            end_time=window.end,
            timezone=self._timezone,
        )

        return self._ensure_busy_time_entries(calendar_list, busy_times)

    @staticmethod
    def _ensure_busy_time_entries(
        calendar_ids: Sequence[str],
        busy_times: Dict[str, List[TimeRange]],
    ) -> Dict[str, List[TimeRange]]:
        """
        Keep exactly the requested calendars, in request order.

        Calendars without events may be omitted by the API; they get an
        explicit empty list so that they still take part in the
        intersection.
        """
        normalized: Dict[str, List[TimeRange]] = {}
        # Graph may echo mailbox addresses in a different case
        by_lower_id = {key.lower(): ranges for key, ranges in busy_times.items()}

        for calendar_id in calendar_ids:
            ranges = by_lower_id.get(calendar_id.lower())
            if ranges is None:
                logger.debug("No busy data returned for %s; treating it as free", calendar_id)
                ranges = []
            normalized[calendar_id] = ranges

        return normalized
