"""
Microsoft Graph API client for fetching calendar busy times.
"""

import logging
from typing import Any, Dict, List

import pendulum
import requests
from pendulum import DateTime

from ..domain.exceptions import CalendarAPIError
from ..domain.models import TimeRange

logger = logging.getLogger(__name__)


class GraphCalendarClient:
    """
    Client for Microsoft Graph API calendar operations.

    Uses the /calendar/getSchedule endpoint to fetch free/busy information.
    """

    GRAPH_API_ENDPOINT = "https://graph.microsoft.com/v1.0"
    BUSY_STATUSES = ("busy", "tentative", "oof", "workingelsewhere")

    def __init__(self, access_token: str, timeout: int = 30):
        """
        Initialize the Graph API client.

        Args:
            access_token: Valid Microsoft Graph access token
            timeout: Request timeout in seconds
        """
        self.access_token = access_token
        self.timeout = timeout
        self.headers = {
            "Authorization": f"Bearer {access_token}",
            "Content-Type": "application/json"
        }

    def get_schedule(
        self,
        calendar_ids: List[str],
        start_time: DateTime,
        end_time: DateTime,
        timezone: str
    ) -> Dict[str, List[TimeRange]]:
        """
        Get busy times for several calendars.

        Args:
            calendar_ids: Mailbox addresses of the calendars
            start_time: Start of the time window
            end_time: End of the time window
            timezone: IANA timezone identifier

        Returns:
            Dictionary mapping calendar id -> busy ranges ascending by start

        Raises:
            CalendarAPIError: If the API call fails
        """
        url = f"{self.GRAPH_API_ENDPOINT}/me/calendar/getSchedule"

        payload = {
            "schedules": calendar_ids,
            "startTime": {
                "dateTime": start_time.in_timezone(timezone).to_datetime_string(),
                "timeZone": timezone
            },
            "endTime": {
                "dateTime": end_time.in_timezone(timezone).to_datetime_string(),
                "timeZone": timezone
            },
            "availabilityViewInterval": 60
        }
        headers = dict(self.headers)
        headers["Prefer"] = f'outlook.timezone="{timezone}"'

        try:
            response = requests.post(url, headers=headers, json=payload, timeout=self.timeout)
            response.raise_for_status()
            data = response.json()
        except requests.exceptions.RequestException as e:
            raise CalendarAPIError(f"Failed to fetch schedule from Microsoft Graph: {e}") from e
        except ValueError as e:
            raise CalendarAPIError(f"Microsoft Graph returned invalid JSON: {e}") from e

        return self._parse_schedule_response(data, timezone)

    def _parse_schedule_response(
        self,
        response_data: Dict[str, Any],
        timezone: str
    ) -> Dict[str, List[TimeRange]]:
        """
        Parse the getSchedule API response into our domain model.

        Response format:
        {
            "value": [
                {
                    "scheduleId": "user@example.com",
                    "scheduleItems": [
                        {
                            "status": "busy",
                            "start": {"dateTime": "...", "timeZone": "..."},
                            "end": {"dateTime": "...", "timeZone": "..."}
                        }
                    ]
                }
            ]
        }
        """
        busy_times: Dict[str, List[TimeRange]] = {}

        for schedule in response_data.get("value", []):
            calendar_id = schedule.get("scheduleId", "")

            if "error" in schedule:
                message = schedule["error"].get("message", "unknown error")
                raise CalendarAPIError(f"Schedule for {calendar_id} unavailable: {message}")

            busy_ranges: List[TimeRange] = []
            for item in schedule.get("scheduleItems", []):
                if item.get("status", "").lower() not in self.BUSY_STATUSES:
                    continue

                try:
                    start = self._parse_datetime(item["start"], timezone)
                    end = self._parse_datetime(item["end"], timezone)
                    busy_ranges.append(TimeRange(start=start, end=end))
                except (KeyError, ValueError) as e:
                    logger.warning("Skipping unparsable schedule item for %s: %s", calendar_id, e)

            busy_times[calendar_id] = sorted(busy_ranges, key=lambda r: r.start)

        return busy_times

    @staticmethod
    def _parse_datetime(value: Dict[str, str], timezone: str) -> DateTime:
        """
        Parse a Graph dateTimeTimeZone object into the target timezone.

        Graph emits seven fractional digits, which are dropped. Zones other
        than UTC come back as Windows names, so the requested zone is
        assumed for them.
        """
        source_tz = "UTC" if value.get("timeZone") == "UTC" else timezone
        raw = value["dateTime"].split(".")[0]
        dt = pendulum.parse(raw, tz=source_tz)

        if isinstance(dt, DateTime):
            return dt.in_timezone(timezone)

        raise ValueError(f"Could not parse datetime: {value['dateTime']}")

    def test_connection(self) -> Dict[str, Any]:
        """
        Test the connection and authentication by fetching user profile.

        Raises:
            CalendarAPIError: If connection test fails
        """
        url = f"{self.GRAPH_API_ENDPOINT}/me"

        try:
            response = requests.get(url, headers=self.headers, timeout=10)
            response.raise_for_status()
            return response.json()
        except requests.exceptions.RequestException as e:
            raise CalendarAPIError(f"Connection test failed: {e}") from e
