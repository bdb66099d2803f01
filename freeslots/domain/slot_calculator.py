"""
Core business logic for calculating mutually free time slots.

This is the heart of the application - pure domain logic without any
external dependencies (no API calls, no database, no I/O).
"""

import logging
from functools import reduce
from typing import Dict, List, Sequence, Tuple, Union

from pendulum import DateTime

from .exceptions import ConfigurationError
from .models import (
    BusinessHours,
    DayGroupedIntervals,
    SearchWindow,
    TimeRange,
    Unbounded,
)

logger = logging.getLogger(__name__)

Boundary = Union[DateTime, Unbounded]


class SlotCalculator:
    """
    Calculates free meeting slots shared by several calendars.

    Algorithm:
    1. Per calendar, drop all-day markers and merge busy times
    2. Per calendar, derive free times from the merged busy times
    3. Intersect the free times of all calendars
    4. Split free times at day boundaries
    5. Clip to business hours and group by contiguous block
    """

    def __init__(self, business_hours: BusinessHours):
        self.business_hours = business_hours

    def find_available_slots(
        self,
        window: SearchWindow,
        busy_times: Dict[str, List[TimeRange]]
    ) -> DayGroupedIntervals:
        """
        Find all slots in which every calendar is free.

        Args:
            window: Bounds of the search
            busy_times: Dict mapping calendar id to its busy ranges, each
                list ascending by start

        Returns:
            Free ranges grouped into display lines
        """
        if not busy_times:
            raise ConfigurationError("At least one calendar is required.")

        free_lists = []
        for calendar_id, busy_ranges in busy_times.items():
            merged = self.merge_busy_ranges(self.remove_all_day_ranges(busy_ranges))
            free_ranges = self.derive_free_ranges(merged, window)
            logger.debug(
                "%s: %d busy, %d merged, %d free",
                calendar_id, len(busy_ranges), len(merged), len(free_ranges)
            )
            free_lists.append(free_ranges)

        common = self.intersect_all(free_lists)
        by_day = self.split_by_day(common)
        groups = self.filter_business_hours(by_day)
        logger.debug(
            "%d common free ranges, %d after day split, %d groups",
            len(common), len(by_day), len(groups)
        )
        return groups

    @staticmethod
    def remove_all_day_ranges(ranges: Sequence[TimeRange]) -> List[TimeRange]:
        """Drop ranges lasting an exact number of days (all-day markers)."""
        return [tr for tr in ranges if not tr.is_all_day()]

    @staticmethod
    def merge_busy_ranges(ranges: Sequence[TimeRange]) -> List[TimeRange]:
        """
        Merge overlapping or touching busy ranges.

        The input must be ascending by start. The input sequence is never
        modified.

        Example: [09:00-10:00, 10:00-11:00, 12:00-13:00]
                 -> [09:00-11:00, 12:00-13:00]
        """
        if len(ranges) <= 1:
            return list(ranges)

        merged: List[TimeRange] = []
        current = ranges[0]

        for following in ranges[1:]:
            if current.end < following.start:
                merged.append(current)
                current = following
            else:
                current = TimeRange(
                    start=min(current.start, following.start),
                    end=max(current.end, following.end)
                )

        merged.append(current)
        return merged

    @staticmethod
    def derive_free_ranges(
        busy_ranges: Sequence[TimeRange],
        window: SearchWindow
    ) -> List[TimeRange]:
        """
        Complement merged busy ranges against the search window.

        The busy list is bounded by a head sentinel ending at the window
        start and a tail sentinel starting at the window end; the gaps
        between consecutive elements are the free ranges.
        """
        relevant = [busy for busy in busy_ranges if busy.overlaps(window.as_range())]

        if not relevant:
            return [window.as_range()]

        bounded: List[Tuple[Boundary, Boundary]] = [
            (Unbounded.EDGE, window.start),
            *((busy.start, busy.end) for busy in relevant),
            (window.end, Unbounded.EDGE),
        ]

        free_ranges: List[TimeRange] = []
        for (_, previous_end), (next_start, _) in zip(bounded, bounded[1:]):
            if previous_end is Unbounded.EDGE or next_start is Unbounded.EDGE:
                continue
            if previous_end >= next_start:
                continue
            free_ranges.append(TimeRange(start=previous_end, end=next_start))

        return free_ranges

    @staticmethod
    def intersect_free_ranges(
        list1: Sequence[TimeRange],
        list2: Sequence[TimeRange]
    ) -> List[TimeRange]:
        """
        Calculate intersection of two lists of free ranges.

        Returns all overlapping periods between any ranges in list1 and
        list2, ascending by start.
        """
        intersections: List[TimeRange] = []

        for range1 in list1:
            for range2 in list2:
                intersection = range1.intersect(range2)
                if intersection:
                    intersections.append(intersection)

        return sorted(intersections, key=lambda r: r.start)

    def intersect_all(self, free_lists: Sequence[Sequence[TimeRange]]) -> List[TimeRange]:
        """
        Calculate the time during which every calendar is free.
        """
        if not free_lists:
            raise ConfigurationError("At least one calendar is required.")

        return list(reduce(self.intersect_free_ranges, free_lists))

    @staticmethod
    def split_by_day(ranges: Sequence[TimeRange]) -> List[TimeRange]:
        """
        Split ranges spanning several calendar days into one range per day.

        Example: [Mon 22:00 - Tue 02:00]
                 -> [Mon 22:00 - Mon 23:59:59.999999, Tue 00:00 - Tue 02:00]
        """
        result: List[TimeRange] = []

        for time_range in ranges:
            if time_range.is_within_single_day():
                result.append(time_range)
                continue

            cursor = time_range.start
            while True:
                day_end = cursor.end_of("day")
                result.append(TimeRange(start=cursor, end=min(day_end, time_range.end)))
                if day_end >= time_range.end:
                    break
                cursor = cursor.add(days=1).start_of("day")

        return result

    def filter_business_hours(self, ranges: Sequence[TimeRange]) -> DayGroupedIntervals:
        """
        Clip day-local free ranges to business hours and group them.

        Ranges on excluded weekdays and ranges entirely before business
        hours are dropped without closing the current group. A range
        starting after business hours closes the group, as does any range
        reaching the end of business hours.
        """
        groups: DayGroupedIntervals = []
        current: List[TimeRange] = []
        minimum_minutes = self.business_hours.minimum_minutes

        for time_range in ranges:
            if not self.business_hours.is_business_day(time_range.start):
                continue

            business = self.business_hours.business_range_for_day(time_range.start)

            if time_range.end <= business.start:
                continue

            if time_range.start >= business.end:
                if current:
                    groups.append(current)
                current = []
                continue

            clipped = TimeRange(
                start=max(business.start, time_range.start),
                end=min(time_range.end, business.end)
            )
            if clipped.duration_minutes() >= minimum_minutes:
                current.append(clipped)

            if time_range.end >= business.end and current:
                groups.append(current)
                current = []

        if current:
            groups.append(current)

        return groups
