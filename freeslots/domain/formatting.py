"""
Rendering of grouped free slots as Japanese display text.

Format of one line:
    M月d日（曜） HH:mm〜HH:mmまで、HH:mm〜HH:mmまで
"""

from typing import Sequence

from pendulum import DateTime

from .models import TimeRange

# Indexed by pendulum day_of_week (0=Monday, 6=Sunday)
WEEKDAY_KANJI = {
    0: "月",
    1: "火",
    2: "水",
    3: "木",
    4: "金",
    5: "土",
    6: "日",
}

SEGMENT_SEPARATOR = "、"
LINE_SEPARATOR = "\n"


def format_head_time(dt: DateTime) -> str:
    """Format the leading boundary of a line with date and weekday."""
    weekday = WEEKDAY_KANJI[dt.day_of_week]
    return f"{dt.month}月{dt.day}日（{weekday}） {dt.format('HH:mm')}"


def format_time(dt: DateTime) -> str:
    return dt.format("HH:mm")


def format_group(group: Sequence[TimeRange], timezone: str) -> str:
    """
    Render one group of free ranges as a single line.

    Only the first range carries the date stamp.
    """
    segments = []
    for index, time_range in enumerate(group):
        start = time_range.start.in_timezone(timezone)
        end = time_range.end.in_timezone(timezone)
        head = format_head_time(start) if index == 0 else format_time(start)
        segments.append(f"{head}〜{format_time(end)}まで")

    return SEGMENT_SEPARATOR.join(segments)


def format_groups(groups: Sequence[Sequence[TimeRange]], timezone: str) -> str:
    """Render all groups, one line per group. No groups yields ''."""
    return LINE_SEPARATOR.join(format_group(group, timezone) for group in groups)
