"""
Domain models for time ranges, business hours and the search window.
"""

import math
from dataclasses import dataclass, field
from datetime import time
from enum import Enum
from typing import List

from pendulum import DateTime

SECONDS_PER_DAY = 24 * 60 * 60


class Unbounded(Enum):
    """Marks the open, outward side of a search window sentinel."""
    EDGE = "edge"


@dataclass(frozen=True)
class TimeRange:
    """
    Represents an immutable time range with start and end datetime.

    Invariant: start must not be after end. Whether a range is busy or free
    depends only on the list holding it.
    """
    start: DateTime
    end: DateTime

    def __post_init__(self):
        if self.start > self.end:
            raise ValueError(f"Start time {self.start} must not be after end time {self.end}")

    def duration_minutes(self) -> int:
        """Return the duration in whole minutes, rounded up."""
        return math.ceil((self.end - self.start).total_seconds() / 60)

    def is_all_day(self) -> bool:
        """Check if the duration is an exact multiple of a full day."""
        return (self.end - self.start).total_seconds() % SECONDS_PER_DAY == 0

    def is_within_single_day(self) -> bool:
        return self.start.date() == self.end.date()

    def overlaps(self, other: "TimeRange") -> bool:
        """Check if this range overlaps with another (touching is not overlap)."""
        return self.start < other.end and self.end > other.start

    def intersect(self, other: "TimeRange") -> "TimeRange | None":
        """
        Calculate the intersection of two time ranges.
        Returns None if there is no overlap.
        """
        if not self.overlaps(other):
            return None

        return TimeRange(
            start=max(self.start, other.start),
            end=min(self.end, other.end)
        )

    def __str__(self) -> str:
        return f"{self.start.format('YYYY-MM-DD HH:mm')} - {self.end.format('HH:mm')}"


IntervalSet = List[TimeRange]
DayGroupedIntervals = List[List[TimeRange]]


@dataclass(frozen=True)
class SearchWindow:
    """
    The overall bound within which free time is sought.
    """
    start: DateTime
    end: DateTime

    def __post_init__(self):
        if self.start >= self.end:
            raise ValueError(f"Window start {self.start} must be before window end {self.end}")

    def as_range(self) -> TimeRange:
        return TimeRange(start=self.start, end=self.end)


@dataclass
class BusinessHours:
    """
    Business-hours policy: a daily time-of-day window plus a minimum slot
    duration. Days listed in ``exclude_weekdays`` are never offered.
    """
    start_time: time
    end_time: time
    minimum_minutes: int = 30
    exclude_weekdays: List[int] = field(default_factory=lambda: [5, 6])  # 0=Monday, 6=Sunday

    def is_business_day(self, dt: DateTime) -> bool:
        """Check if a given datetime falls on a business day."""
        return dt.day_of_week not in self.exclude_weekdays

    def business_range_for_day(self, date: DateTime) -> TimeRange:
        """
        Get the concrete business hours on the date of ``date``.
        """
        start = date.set(
            hour=self.start_time.hour,
            minute=self.start_time.minute,
            second=0,
            microsecond=0
        )
        end = date.set(
            hour=self.end_time.hour,
            minute=self.end_time.minute,
            second=0,
            microsecond=0
        )

        return TimeRange(start=start, end=end)
