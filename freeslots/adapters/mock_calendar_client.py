"""
File-backed calendar client for running without Microsoft Graph.
"""

import json
import logging
from pathlib import Path
from typing import Dict, List, Optional

import pendulum
from pendulum import DateTime

from ..domain.exceptions import CalendarAPIError
from ..domain.models import TimeRange

logger = logging.getLogger(__name__)

DEFAULT_DATA_FILE = Path(__file__).parent / "mock_calendar_data.json"


class MockCalendarClient:
    """
    Serves busy times from a JSON list of events.

    Each event looks like
    ``{"calendarId": "a@example.com", "start": "...", "end": "..."}``;
    times without an offset are read in the requested timezone.
    """

    def __init__(self, data_file: Optional[Path] = None):
        self.data_file = data_file or DEFAULT_DATA_FILE
        self.calendar_events = self._load_calendar_data()

    def _load_calendar_data(self) -> List[dict]:
        try:
            with open(self.data_file, "r", encoding="utf-8") as f:
                events = json.load(f)
        except (OSError, json.JSONDecodeError) as exc:
            raise CalendarAPIError(f"Could not read mock calendar data {self.data_file}: {exc}") from exc

        if not isinstance(events, list):
            raise CalendarAPIError(f"Mock calendar data {self.data_file} must be a list of events")

        return events

    def get_schedule(
        self,
        calendar_ids: List[str],
        start_time: DateTime,
        end_time: DateTime,
        timezone: str
    ) -> Dict[str, List[TimeRange]]:
        """
        Return busy ranges overlapping the window, ascending by start.
        """
        busy_times: Dict[str, List[TimeRange]] = {}

        for calendar_id in calendar_ids:
            busy_ranges: List[TimeRange] = []

            for event in self.calendar_events:
                if event.get("calendarId") != calendar_id:
                    continue

                try:
                    event_start = pendulum.parse(event["start"], tz=timezone)
                    event_end = pendulum.parse(event["end"], tz=timezone)
                    busy = TimeRange(start=event_start, end=event_end)
                except (KeyError, ValueError) as exc:
                    logger.warning("Skipping invalid mock event %r: %s", event, exc)
                    continue

                if event_start < end_time and event_end > start_time:
                    busy_ranges.append(busy)

            busy_times[calendar_id] = sorted(busy_ranges, key=lambda r: r.start)

        return busy_times
