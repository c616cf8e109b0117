"""Unit tests for icsnotes.interval."""

from datetime import date, datetime, timedelta, timezone
from zoneinfo import ZoneInfo

import pytest

from icsnotes.interval import (
    EntryInterval,
    Window,
    canonical_instance_id,
    instant_key,
    parse_instant,
    to_timeline,
)

pytestmark = pytest.mark.unit

UTC = timezone.utc


class TestEntryIntervalOverlap:
    """Tests for EntryInterval.overlaps."""

    def test_overlaps_when_timed_entry_inside_window_then_true(self):
        interval = EntryInterval(
            datetime(2024, 1, 8, 9, tzinfo=UTC), datetime(2024, 1, 8, 10, tzinfo=UTC), False
        )
        assert interval.overlaps(datetime(2024, 1, 8, tzinfo=UTC), datetime(2024, 1, 9, tzinfo=UTC))

    def test_overlaps_when_entry_starts_exactly_at_window_end_then_true(self):
        interval = EntryInterval(
            datetime(2024, 1, 9, tzinfo=UTC), datetime(2024, 1, 9, 1, tzinfo=UTC), False
        )
        assert interval.overlaps(datetime(2024, 1, 8, tzinfo=UTC), datetime(2024, 1, 9, tzinfo=UTC))

    def test_overlaps_when_entry_ends_exactly_at_window_start_then_true(self):
        interval = EntryInterval(
            datetime(2024, 1, 7, 23, tzinfo=UTC), datetime(2024, 1, 8, tzinfo=UTC), False
        )
        assert interval.overlaps(datetime(2024, 1, 8, tzinfo=UTC), None)

    def test_overlaps_when_entry_after_window_then_false(self):
        interval = EntryInterval(datetime(2024, 1, 10, tzinfo=UTC), None, False)
        assert not interval.overlaps(
            datetime(2024, 1, 8, tzinfo=UTC), datetime(2024, 1, 9, tzinfo=UTC)
        )

    def test_overlaps_when_bounds_absent_then_unbounded(self):
        interval = EntryInterval(datetime(1990, 1, 1, tzinfo=UTC), None, False)
        assert interval.overlaps()
        assert interval.overlaps(None, datetime(2100, 1, 1, tzinfo=UTC))

    def test_overlaps_when_point_entry_before_window_then_false(self):
        interval = EntryInterval(datetime(2024, 1, 7, 12, tzinfo=UTC), None, False)
        assert interval.effective_end_for_overlap() == interval.start_time
        assert not interval.overlaps(datetime(2024, 1, 8, tzinfo=UTC), None)


class TestAllDayBoundary:
    """A single all-day entry must not reach into the next day."""

    def setup_method(self):
        self.interval = EntryInterval(date(2024, 1, 8), date(2024, 1, 9), True)

    def test_effective_end_when_single_day_then_last_microsecond(self):
        assert self.interval.effective_end_for_overlap() == datetime(
            2024, 1, 8, 23, 59, 59, 999999, tzinfo=UTC
        )

    def test_overlaps_when_window_ends_before_midnight_then_included(self):
        assert self.interval.overlaps(
            datetime(2024, 1, 8, tzinfo=UTC), datetime(2024, 1, 8, 23, 59, 59, tzinfo=UTC)
        )

    def test_overlaps_when_window_starts_next_day_then_excluded(self):
        assert not self.interval.overlaps(
            datetime(2024, 1, 9, tzinfo=UTC), datetime(2024, 1, 9, 23, 59, tzinfo=UTC)
        )

    def test_effective_end_when_no_end_then_covers_own_day(self):
        interval = EntryInterval(date(2024, 1, 8), None, True)
        assert interval.overlaps(datetime(2024, 1, 8, 18, tzinfo=UTC), None)
        assert not interval.overlaps(datetime(2024, 1, 9, tzinfo=UTC), None)

    def test_effective_end_when_multi_day_then_ends_on_last_included_day(self):
        interval = EntryInterval(date(2024, 1, 8), date(2024, 1, 11), True)
        assert interval.overlaps(datetime(2024, 1, 10, 12, tzinfo=UTC), None)
        assert not interval.overlaps(datetime(2024, 1, 11, tzinfo=UTC), None)

    def test_overlaps_when_local_timezone_then_day_placed_in_that_zone(self):
        berlin = ZoneInfo("Europe/Berlin")
        interval = EntryInterval(date(2024, 1, 8), date(2024, 1, 9), True, berlin)
        # 23:30 UTC on the 8th is already the 9th in Berlin
        assert not interval.overlaps(datetime(2024, 1, 8, 23, 30, tzinfo=UTC), None)


class TestInstantKeys:
    """Tests for instant_key and canonical_instance_id."""

    def test_instant_key_when_same_moment_in_two_zones_then_equal(self):
        utc_value = datetime(2024, 1, 8, 9, tzinfo=UTC)
        berlin_value = utc_value.astimezone(ZoneInfo("Europe/Berlin"))
        assert instant_key(utc_value) == instant_key(berlin_value)

    def test_instant_key_when_date_and_midnight_then_different(self):
        assert instant_key(date(2024, 1, 8)) != instant_key(datetime(2024, 1, 8, tzinfo=UTC))
        assert instant_key(date(2024, 1, 8)) != instant_key(datetime(2024, 1, 8))

    def test_instant_key_when_floating_and_utc_then_different(self):
        assert instant_key(datetime(2024, 1, 8, 9)) != instant_key(datetime(2024, 1, 8, 9, tzinfo=UTC))

    def test_canonical_instance_id_formats(self):
        assert canonical_instance_id(date(2024, 1, 8)) == "2024-01-08"
        assert (
            canonical_instance_id(datetime(2024, 1, 8, 10, tzinfo=ZoneInfo("Europe/Berlin")))
            == "2024-01-08T09:00:00.000000Z"
        )
        assert canonical_instance_id(datetime(2024, 1, 8, 9, 30)) == "2024-01-08T09:30:00.000000"

    def test_canonical_instance_id_when_sub_second_apart_then_distinct(self):
        first = datetime(2024, 1, 8, 9, tzinfo=UTC)
        second = first + timedelta(microseconds=1)
        assert canonical_instance_id(first) != canonical_instance_id(second)


class TestParseInstant:
    """Tests for parse_instant."""

    @pytest.mark.parametrize(
        ("text", "expected"),
        [
            ("2024-01-08", date(2024, 1, 8)),
            ("20240108", date(2024, 1, 8)),
            ("2024-01-08T09:00:00Z", datetime(2024, 1, 8, 9, tzinfo=UTC)),
            ("20240108T090000Z", datetime(2024, 1, 8, 9, tzinfo=UTC)),
            ("2024-01-08T09:00:00", datetime(2024, 1, 8, 9)),
        ],
    )
    def test_parse_instant_when_supported_format_then_parsed(self, text, expected):
        assert parse_instant(text) == expected
        assert type(parse_instant(text)) is type(expected)

    def test_parse_instant_when_offset_then_same_moment(self):
        assert parse_instant("2024-01-08T10:00:00+01:00") == datetime(2024, 1, 8, 9, tzinfo=UTC)

    def test_parse_instant_when_garbage_then_raises(self):
        with pytest.raises(ValueError):
            parse_instant("next tuesday")


class TestWindow:
    """Tests for Window.between."""

    def test_between_when_date_end_then_covers_whole_day(self):
        window = Window.between(date(2024, 1, 1), date(2024, 1, 15))
        assert window.start == datetime(2024, 1, 1, tzinfo=UTC)
        assert window.end == datetime(2024, 1, 15, 23, 59, 59, 999999, tzinfo=UTC)

    def test_between_when_end_before_start_then_raises(self):
        with pytest.raises(ValueError):
            Window.between(date(2024, 1, 15), date(2024, 1, 1))

    def test_to_timeline_when_floating_then_local_zone_attached(self):
        berlin = ZoneInfo("Europe/Berlin")
        assert to_timeline(datetime(2024, 1, 8, 9), berlin).tzinfo is berlin
