"""Tests for the ActivityWatch query program and results."""

import pytest
from datetime import datetime, timezone

from aw_conjure_integration.config import GroupBy
from aw_conjure_integration.sync.category import Category, RegexRule
from aw_conjure_integration.sync.decode import DecodeError
from aw_conjure_integration.sync.period import beginning
from aw_conjure_integration.sync.query import build_query, decode_query_results

UTC = timezone.utc
CATEGORIES = [
    Category(("Work",)),
    Category(("Work", "Deep"), RegexRule("code", ignore_case=True)),
]
PERIODS = [
    beginning(15, datetime(2024, 1, 1, 0, 0, tzinfo=UTC)),
    beginning(15, datetime(2024, 1, 1, 0, 15, tzinfo=UTC)),
]
SUBMITTED = datetime(2024, 1, 1, 0, 31, tzinfo=UTC)


def raw_event(minute, duration=60, category=("Work", "Deep")):
    return {
        "timestamp": f"2024-01-01T00:{minute:02d}:00Z",
        "duration": duration,
        "data": {"$category": list(category), "app": "code", "title": "main.py"},
    }


class TestBuildQuery:
    """Tests for build_query."""

    def test_category_mode(self):
        """Test the full program when merging by category."""
        assert build_query(GroupBy.CATEGORY, CATEGORIES) == [
            'afk_events = query_bucket(find_bucket("aw-watcher-afk_"));',
            'window_events = query_bucket(find_bucket("aw-watcher-window_"));',
            'window_events = filter_period_intersect(window_events, filter_keyvals(afk_events, "status", ["not-afk"]));',
            'categorized_events = categorize(window_events, [[["Work"],{"type":"none"}],'
            '[["Work","Deep"],{"ignore_case":true,"type":"regex","regex":"code"}]]);',
            "sorted_events = sort_by_timestamp(categorized_events);",
            'merged_events = merge_events_by_keys(sorted_events, ["$category"]);',
            "RETURN = merged_events;",
        ]

    def test_app_and_title_mode_keeps_category(self):
        """Test app/title merging still carries the category through."""
        query = build_query(GroupBy.APP_AND_TITLE, CATEGORIES)
        assert query[5] == (
            'merged_events = merge_events_by_keys(sorted_events, ["app", "title", "$category"]);'
        )


class TestDecodeQueryResults:
    """Tests for decode_query_results."""

    def test_pairs_results_with_periods(self):
        """Test result lists are aligned positionally with the periods."""
        raw = [[raw_event(0), raw_event(5)], [raw_event(20)]]

        results = decode_query_results(raw, PERIODS, CATEGORIES, SUBMITTED)

        assert results.time_submitted == SUBMITTED
        assert [p for p, _ in results.events_by_period] == PERIODS
        assert [len(events) for _, events in results.events_by_period] == [2, 1]
        assert len(results.events) == 3

    def test_length_mismatch_fails(self):
        """Test a different number of result lists is a protocol error."""
        with pytest.raises(DecodeError, match="2 periods but received 1"):
            decode_query_results([[]], PERIODS, CATEGORIES, SUBMITTED)

    def test_bad_event_fails_everything(self):
        """Test one undecodable event fails the whole result."""
        raw = [[raw_event(0)], [raw_event(20, category=("Play",))]]
        with pytest.raises(DecodeError, match="Unknown category name"):
            decode_query_results(raw, PERIODS, CATEGORIES, SUBMITTED)

    def test_not_a_list_fails(self):
        """Test an error object from the server is rejected."""
        with pytest.raises(DecodeError):
            decode_query_results({"message": "nope"}, PERIODS, CATEGORIES, SUBMITTED)
