"""Unit tests for icsnotes.pipeline."""

from datetime import date, datetime, timezone

import pytest

from icsnotes.event_parser import IcsComponentParser
from icsnotes.exceptions import FeedParseError
from icsnotes.interval import Window
from icsnotes.models import CalendarEntry, FeedComponents, RecurrenceException
from icsnotes.pipeline import FeedLoader, expand_components, expand_window, sort_key
from icsnotes.rrule_expander import RecurrenceExpander

pytestmark = pytest.mark.unit

UTC = timezone.utc


def summary(occurrences):
    return [(occ.kind, occ.series_id, occ.instance_id) for occ in occurrences]


class TestExpandWindow:
    """Tests for expand_window over a parsed feed."""

    def setup_method(self):
        self.expander = RecurrenceExpander()
        self.window = Window.between(date(2024, 1, 1), date(2024, 2, 28))

    def test_expand_window_when_weekly_feed_then_reconciled_occurrences(self, weekly_ics):
        components = IcsComponentParser().parse(weekly_ics)

        result = expand_window(
            components.series, components.singletons, self.window, expander=self.expander
        )
        ordered = sorted(result, key=sort_key(UTC))

        assert summary(ordered) == [
            ("series", "standup@example.com", "2024-01-01T09:00:00.000000Z"),
            ("exception", "standup@example.com", "2024-01-08T09:00:00.000000Z"),
            ("singleton", "lunch@example.com", ""),
            ("singleton", "holiday@example.com", ""),
            ("series", "standup@example.com", "2024-01-15T09:00:00.000000Z"),
            ("series", "standup@example.com", "2024-02-05T09:00:00.000000Z"),
        ]
        moved = ordered[1]
        assert moved.title == "Standup (moved)"
        assert moved.start == datetime(2024, 1, 8, 11, tzinfo=UTC)

    def test_expand_window_when_result_then_identities_unique(self, weekly_ics):
        components = IcsComponentParser().parse(weekly_ics)
        result = expand_window(
            components.series, components.singletons, self.window, expander=self.expander
        )
        identities = [occ.identity for occ in result]
        assert len(identities) == len(set(identities))

    def test_expand_window_when_singleton_outside_window_then_dropped(self):
        early = CalendarEntry(uid="early", start=datetime(2023, 12, 1, 9, tzinfo=UTC))
        assert expand_window([], [early], self.window, expander=self.expander) == []

    def test_expand_window_when_orphan_exception_then_added(self):
        orphan = RecurrenceException(
            recurrence_id=datetime(2024, 1, 3, 9, tzinfo=UTC),
            entry=CalendarEntry(
                uid="lost", title="Moved", start=datetime(2024, 1, 3, 14, tzinfo=UTC)
            ),
        )
        result = expand_window(
            [], [], self.window, expander=self.expander, orphan_exceptions=[orphan]
        )
        assert summary(result) == [("exception", "lost", "2024-01-03T09:00:00.000000Z")]
        assert result[0].added is True


class TestExpandComponents:
    def test_expand_components_when_windows_differ_then_each_expanded(self, weekly_ics):
        components = IcsComponentParser().parse(weekly_ics)
        expander = RecurrenceExpander()

        mid_january = expand_components(
            components, Window.between(date(2024, 1, 15), date(2024, 1, 15)), expander
        )
        february = expand_components(
            components, Window.between(date(2024, 2, 1), date(2024, 2, 29)), expander
        )

        assert sorted(occ.series_id for occ in mid_january) == [
            "holiday@example.com",
            "standup@example.com",
        ]
        assert summary(february) == [
            ("series", "standup@example.com", "2024-02-05T09:00:00.000000Z")
        ]

    def test_expand_components_when_orphans_then_included(self):
        orphan = RecurrenceException(
            recurrence_id=date(2024, 5, 1),
            entry=CalendarEntry(uid="lost", start=date(2024, 5, 2), all_day=True),
        )
        components = FeedComponents(orphan_exceptions=[orphan])
        result = expand_components(
            components, Window.between(date(2024, 5, 1), date(2024, 5, 31)), RecurrenceExpander()
        )
        assert summary(result) == [("exception", "lost", "2024-05-01")]


class TestSortKey:
    def test_sort_key_when_same_start_then_title_breaks_tie(self):
        start = datetime(2024, 1, 2, 9, tzinfo=UTC)
        entries = [
            CalendarEntry(uid="b", title="Zeta", start=start),
            CalendarEntry(uid="a", title="Alpha", start=start),
        ]
        result = expand_window([], entries, Window(), expander=RecurrenceExpander())
        assert [occ.title for occ in sorted(result, key=sort_key(UTC))] == ["Alpha", "Zeta"]


class TestFeedLoader:
    """Tests for FeedLoader."""

    @pytest.mark.asyncio
    async def test_call_when_feed_text_then_parsed_components(self, weekly_ics, feed_source):
        async def fetch(source):
            return weekly_ics

        components = await FeedLoader(fetch)(feed_source)

        assert isinstance(components, FeedComponents)
        assert [series.series_id for series in components.series] == ["standup@example.com"]
        assert len(components.singletons) == 2

    @pytest.mark.asyncio
    async def test_call_when_fetcher_object_then_fetch_ics_used(self, weekly_ics, feed_source):
        class StubFetcher:
            async def fetch_ics(self, source):
                return weekly_ics

        components = await FeedLoader(StubFetcher())(feed_source)
        assert components.calendar_name == "Work"

    @pytest.mark.asyncio
    async def test_call_when_feed_garbage_then_parse_error_names_source(self, feed_source):
        async def fetch(source):
            return "<html>not a calendar</html>"

        loader = FeedLoader(fetch)
        with pytest.raises(FeedParseError) as exc_info:
            await loader(feed_source)
        assert exc_info.value.source_name == "Work"
