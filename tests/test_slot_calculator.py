"""
Tests for slot calculator.
"""

from datetime import time
from functools import reduce

import pendulum
import pytest

from freeslots.domain.exceptions import ConfigurationError
from freeslots.domain.formatting import format_groups
from freeslots.domain.models import BusinessHours, SearchWindow, TimeRange
from freeslots.domain.slot_calculator import SlotCalculator

TZ = "Asia/Tokyo"


def _dt(value: str):
    return pendulum.parse(value, tz=TZ)


def _tr(start: str, end: str) -> TimeRange:
    return TimeRange(start=_dt(start), end=_dt(end))


def _calculator(minimum_minutes: int = 30) -> SlotCalculator:
    return SlotCalculator(
        business_hours=BusinessHours(
            start_time=time(9, 0),
            end_time=time(18, 0),
            minimum_minutes=minimum_minutes
        )
    )


MONDAY = SearchWindow(start=_dt("2024-11-25 00:00"), end=_dt("2024-11-25 23:59"))


class TestMergeBusyRanges:
    """Tests for merging busy ranges."""

    def test_empty_input(self):
        assert SlotCalculator.merge_busy_ranges([]) == []

    def test_single_range_is_kept(self):
        """A lone busy range must not be dropped."""
        busy = [_tr("2024-11-25 10:00", "2024-11-25 11:00")]

        assert SlotCalculator.merge_busy_ranges(busy) == busy

    def test_touching_ranges_are_merged(self):
        busy = [
            _tr("2024-11-25 09:00", "2024-11-25 10:00"),
            _tr("2024-11-25 10:00", "2024-11-25 11:00"),
        ]

        assert SlotCalculator.merge_busy_ranges(busy) == [_tr("2024-11-25 09:00", "2024-11-25 11:00")]

    def test_contained_and_chained_overlaps(self):
        busy = [
            _tr("2024-11-25 09:00", "2024-11-25 12:00"),
            _tr("2024-11-25 10:00", "2024-11-25 11:00"),
            _tr("2024-11-25 11:30", "2024-11-25 13:00"),
            _tr("2024-11-25 15:00", "2024-11-25 16:00"),
        ]

        merged = SlotCalculator.merge_busy_ranges(busy)

        assert merged == [
            _tr("2024-11-25 09:00", "2024-11-25 13:00"),
            _tr("2024-11-25 15:00", "2024-11-25 16:00"),
        ]

    def test_merge_is_idempotent(self):
        busy = [
            _tr("2024-11-25 09:00", "2024-11-25 10:30"),
            _tr("2024-11-25 10:00", "2024-11-25 11:00"),
            _tr("2024-11-25 14:00", "2024-11-25 15:00"),
        ]

        merged = SlotCalculator.merge_busy_ranges(busy)

        assert SlotCalculator.merge_busy_ranges(merged) == merged

    def test_merge_preserves_coverage(self):
        """Every input range lies inside exactly one merged range."""
        busy = [
            _tr("2024-11-25 09:00", "2024-11-25 09:30"),
            _tr("2024-11-25 09:15", "2024-11-25 10:00"),
            _tr("2024-11-25 10:00", "2024-11-25 10:10"),
            _tr("2024-11-25 12:00", "2024-11-25 13:00"),
        ]

        merged = SlotCalculator.merge_busy_ranges(busy)

        for original in busy:
            containing = [m for m in merged if m.start <= original.start and original.end <= m.end]
            assert len(containing) == 1
        for result in merged:
            assert result.start in [b.start for b in busy]
            assert result.end in [b.end for b in busy]
        for previous, following in zip(merged, merged[1:]):
            assert previous.end < following.start

    def test_input_is_not_modified(self):
        busy = [
            _tr("2024-11-25 09:00", "2024-11-25 10:00"),
            _tr("2024-11-25 09:30", "2024-11-25 11:00"),
        ]
        snapshot = list(busy)

        SlotCalculator.merge_busy_ranges(busy)

        assert busy == snapshot

    def test_remove_all_day_ranges(self):
        busy = [
            _tr("2024-11-25 00:00", "2024-11-26 00:00"),
            _tr("2024-11-25 10:00", "2024-11-25 11:00"),
            _tr("2024-11-25 00:00", "2024-11-28 00:00"),
        ]

        assert SlotCalculator.remove_all_day_ranges(busy) == [_tr("2024-11-25 10:00", "2024-11-25 11:00")]


class TestDeriveFreeRanges:
    """Tests for deriving free ranges from busy ranges."""

    def test_no_busy_ranges_yields_whole_window(self):
        assert SlotCalculator.derive_free_ranges([], MONDAY) == [MONDAY.as_range()]

    def test_gaps_between_busy_ranges(self):
        busy = [
            _tr("2024-11-25 10:00", "2024-11-25 11:00"),
            _tr("2024-11-25 14:00", "2024-11-25 15:00"),
        ]

        free = SlotCalculator.derive_free_ranges(busy, MONDAY)

        assert free == [
            _tr("2024-11-25 00:00", "2024-11-25 10:00"),
            _tr("2024-11-25 11:00", "2024-11-25 14:00"),
            _tr("2024-11-25 15:00", "2024-11-25 23:59"),
        ]

    def test_busy_ranges_crossing_window_edges(self):
        busy = [
            _tr("2024-11-24 22:00", "2024-11-25 01:00"),
            _tr("2024-11-25 23:00", "2024-11-26 02:00"),
        ]

        free = SlotCalculator.derive_free_ranges(busy, MONDAY)

        assert free == [_tr("2024-11-25 01:00", "2024-11-25 23:00")]

    def test_busy_ranges_outside_window_are_ignored(self):
        busy = [
            _tr("2024-11-24 10:00", "2024-11-24 11:00"),
            _tr("2024-11-26 10:00", "2024-11-26 11:00"),
        ]

        assert SlotCalculator.derive_free_ranges(busy, MONDAY) == [MONDAY.as_range()]

    def test_window_fully_busy(self):
        busy = [_tr("2024-11-24 00:00", "2024-11-27 00:00")]

        assert SlotCalculator.derive_free_ranges(busy, MONDAY) == []

    def test_free_and_busy_complement_each_other(self):
        """Busy and free ranges tile the window without overlapping."""
        busy = [
            _tr("2024-11-25 08:00", "2024-11-25 09:00"),
            _tr("2024-11-25 12:00", "2024-11-25 12:45"),
            _tr("2024-11-25 20:00", "2024-11-25 21:30"),
        ]

        free = SlotCalculator.derive_free_ranges(busy, MONDAY)
        tiles = sorted(busy + free, key=lambda r: r.start)

        assert tiles[0].start == MONDAY.start
        assert tiles[-1].end == MONDAY.end
        for previous, following in zip(tiles, tiles[1:]):
            assert previous.end == following.start
        for free_range in free:
            assert not any(free_range.overlaps(b) for b in busy)


class TestIntersectFreeRanges:
    """Tests for intersecting free ranges across calendars."""

    def test_two_calendars(self):
        a = [_tr("2024-11-25 09:00", "2024-11-25 12:00")]
        b = [_tr("2024-11-25 10:00", "2024-11-25 17:00")]

        assert SlotCalculator.intersect_free_ranges(a, b) == [_tr("2024-11-25 10:00", "2024-11-25 12:00")]

    def test_touching_ranges_do_not_intersect(self):
        a = [_tr("2024-11-25 09:00", "2024-11-25 10:00")]
        b = [_tr("2024-11-25 10:00", "2024-11-25 11:00")]

        assert SlotCalculator.intersect_free_ranges(a, b) == []

    def test_intersection_is_commutative(self):
        a = [
            _tr("2024-11-25 09:00", "2024-11-25 12:00"),
            _tr("2024-11-25 13:00", "2024-11-25 18:00"),
        ]
        b = [
            _tr("2024-11-25 08:00", "2024-11-25 09:30"),
            _tr("2024-11-25 11:00", "2024-11-25 14:00"),
            _tr("2024-11-25 17:00", "2024-11-25 19:00"),
        ]

        assert SlotCalculator.intersect_free_ranges(a, b) == SlotCalculator.intersect_free_ranges(b, a)

    def test_fold_is_associative(self):
        a = [_tr("2024-11-25 08:00", "2024-11-25 12:00"), _tr("2024-11-25 13:00", "2024-11-25 20:00")]
        b = [_tr("2024-11-25 09:00", "2024-11-25 15:00")]
        c = [_tr("2024-11-25 07:00", "2024-11-25 10:00"), _tr("2024-11-25 11:00", "2024-11-25 14:00")]
        intersect = SlotCalculator.intersect_free_ranges

        left = reduce(intersect, [a, b, c])
        right = intersect(a, intersect(b, c))
        shuffled = reduce(intersect, [c, a, b])

        assert left == right == shuffled
        assert left == [
            _tr("2024-11-25 09:00", "2024-11-25 10:00"),
            _tr("2024-11-25 11:00", "2024-11-25 12:00"),
            _tr("2024-11-25 13:00", "2024-11-25 14:00"),
        ]

    def test_output_is_sorted(self):
        a = [_tr("2024-11-25 14:00", "2024-11-25 16:00"), _tr("2024-11-25 09:00", "2024-11-25 11:00")]
        b = [_tr("2024-11-25 08:00", "2024-11-25 18:00")]

        result = SlotCalculator.intersect_free_ranges(a, b)

        assert [r.start for r in result] == sorted(r.start for r in result)

    def test_intersect_all_single_calendar(self):
        a = [_tr("2024-11-25 09:00", "2024-11-25 12:00")]

        assert _calculator().intersect_all([a]) == a

    def test_intersect_all_requires_a_calendar(self):
        with pytest.raises(ConfigurationError):
            _calculator().intersect_all([])


class TestSplitByDay:
    """Tests for splitting ranges at day boundaries."""

    def test_same_day_range_passes_through(self):
        free = [_tr("2024-11-25 09:00", "2024-11-25 18:00")]

        assert SlotCalculator.split_by_day(free) == free

    def test_two_day_range(self):
        result = SlotCalculator.split_by_day([_tr("2024-11-25 22:00", "2024-11-26 02:00")])

        assert len(result) == 2
        assert result[0].start == _dt("2024-11-25 22:00")
        assert result[0].end == _dt("2024-11-25 22:00").end_of("day")
        assert result[1] == _tr("2024-11-26 00:00", "2024-11-26 02:00")

    def test_split_covers_original_range(self):
        original = _tr("2024-11-22 13:00", "2024-11-25 10:00")

        result = SlotCalculator.split_by_day([original])

        assert len(result) == 4  # Friday through Monday
        assert result[0].start == original.start
        assert result[-1].end == original.end
        for piece in result:
            assert piece.is_within_single_day()
        for previous, following in zip(result, result[1:]):
            assert previous.end == previous.start.end_of("day")
            assert following.start == previous.start.add(days=1).start_of("day")


class TestFilterBusinessHours:
    """Tests for clipping and grouping by business hours."""

    def test_clips_to_business_hours(self):
        groups = _calculator().filter_business_hours([_tr("2024-11-25 07:00", "2024-11-25 20:00")])

        assert groups == [[_tr("2024-11-25 09:00", "2024-11-25 18:00")]]

    def test_ranges_in_one_day_form_one_group(self):
        groups = _calculator().filter_business_hours([
            _tr("2024-11-25 00:00", "2024-11-25 10:00"),
            _tr("2024-11-25 11:00", "2024-11-25 23:59"),
        ])

        assert groups == [[
            _tr("2024-11-25 09:00", "2024-11-25 10:00"),
            _tr("2024-11-25 11:00", "2024-11-25 18:00"),
        ]]

    def test_range_after_business_hours_closes_group(self):
        groups = _calculator().filter_business_hours([
            _tr("2024-11-25 09:00", "2024-11-25 10:00"),
            _tr("2024-11-25 19:00", "2024-11-25 20:00"),
            _tr("2024-11-26 10:00", "2024-11-26 11:00"),
        ])

        assert groups == [
            [_tr("2024-11-25 09:00", "2024-11-25 10:00")],
            [_tr("2024-11-26 10:00", "2024-11-26 11:00")],
        ]

    def test_range_before_business_hours_keeps_group_open(self):
        groups = _calculator().filter_business_hours([
            _tr("2024-11-25 09:00", "2024-11-25 10:00"),
            _tr("2024-11-26 06:00", "2024-11-26 09:00"),
            _tr("2024-11-26 10:00", "2024-11-26 11:00"),
        ])

        assert groups == [[
            _tr("2024-11-25 09:00", "2024-11-25 10:00"),
            _tr("2024-11-26 10:00", "2024-11-26 11:00"),
        ]]

    def test_weekend_ranges_are_dropped(self):
        groups = _calculator().filter_business_hours([
            _tr("2024-11-23 09:00", "2024-11-23 18:00"),
            _tr("2024-11-24 09:00", "2024-11-24 18:00"),
        ])

        assert groups == []

    def test_short_slots_are_dropped(self):
        groups = _calculator(minimum_minutes=30).filter_business_hours([
            _tr("2024-11-25 09:00", "2024-11-25 09:20"),
            _tr("2024-11-25 10:00", "2024-11-25 10:30"),
            _tr("2024-11-25 17:45", "2024-11-25 19:00"),
        ])

        assert groups == [[_tr("2024-11-25 10:00", "2024-11-25 10:30")]]

    def test_range_reaching_business_end_closes_group(self):
        groups = _calculator().filter_business_hours([
            _tr("2024-11-25 17:00", "2024-11-25 18:00"),
            _tr("2024-11-26 09:00", "2024-11-26 10:00"),
        ])

        assert len(groups) == 2

    def test_emitted_ranges_respect_bounds(self):
        calculator = _calculator(minimum_minutes=45)
        free = SlotCalculator.split_by_day([
            _tr("2024-11-21 08:30", "2024-11-22 09:40"),
            _tr("2024-11-22 12:00", "2024-11-26 17:20"),
        ])

        groups = calculator.filter_business_hours(free)

        assert groups
        for group in groups:
            for slot in group:
                business = calculator.business_hours.business_range_for_day(slot.start)
                assert business.start <= slot.start < slot.end <= business.end
                assert slot.duration_minutes() >= 45
                assert slot.start.day_of_week not in (5, 6)


class TestFindAvailableSlots:
    """End-to-end tests for the full calculation."""

    def test_no_busy_times(self):
        groups = _calculator().find_available_slots(MONDAY, {"a@example.com": []})

        assert format_groups(groups, TZ) == "11月25日（月） 09:00〜18:00まで"

    def test_single_busy_range(self):
        busy = {"a@example.com": [_tr("2024-11-25 10:00", "2024-11-25 11:00")]}

        groups = _calculator().find_available_slots(MONDAY, busy)

        assert format_groups(groups, TZ) == "11月25日（月） 09:00〜10:00まで、11:00〜18:00まで"

    def test_all_day_event_does_not_block(self):
        busy = {
            "a@example.com": [
                _tr("2024-11-25 00:00", "2024-11-26 00:00"),
                _tr("2024-11-25 10:00", "2024-11-25 11:00"),
            ]
        }

        groups = _calculator().find_available_slots(MONDAY, busy)

        assert format_groups(groups, TZ) == "11月25日（月） 09:00〜10:00まで、11:00〜18:00まで"

    def test_two_calendars(self):
        busy = {
            "a@example.com": [_tr("2024-11-25 12:00", "2024-11-25 18:00")],
            "b@example.com": [_tr("2024-11-25 09:00", "2024-11-25 10:00")],
        }

        groups = _calculator().find_available_slots(MONDAY, busy)

        assert groups == [[_tr("2024-11-25 10:00", "2024-11-25 12:00")]]

    def test_day_crossing_range_outside_business_hours(self):
        window = SearchWindow(start=_dt("2024-11-25 22:00"), end=_dt("2024-11-26 02:00"))

        groups = _calculator(minimum_minutes=60).find_available_slots(window, {"a@example.com": []})

        assert groups == []

    def test_multi_day_window_skips_weekend(self):
        window = SearchWindow(start=_dt("2024-11-22 00:00"), end=_dt("2024-11-25 23:59"))

        groups = _calculator().find_available_slots(window, {"a@example.com": []})

        assert format_groups(groups, TZ) == (
            "11月22日（金） 09:00〜18:00まで\n"
            "11月25日（月） 09:00〜18:00まで"
        )

    def test_requires_a_calendar(self):
        with pytest.raises(ConfigurationError):
            _calculator().find_available_slots(MONDAY, {})
