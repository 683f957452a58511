"""ActivityWatch query program and result decoding."""

import json
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Sequence

from ..config import GroupBy
from .category import Category
from .decode import DecodeError
from .event import Event, decode_event
from .period import Period

__all__ = ["QueryResults", "build_query", "decode_query_results"]

MERGE_KEYS = {
    GroupBy.CATEGORY: ["$category"],
    # The category is a function of app and title, so adding it never splits
    # a group; it keeps "$category" in the merged event data.
    GroupBy.APP_AND_TITLE: ["app", "title", "$category"],
}


@dataclass(frozen=True)
class QueryResults:
    """Merged events for each queried period, in the order the periods were sent."""

    events_by_period: list[tuple[Period, list[Event]]]
    time_submitted: datetime

    @property
    def events(self) -> list[Event]:
        return [e for _, events in self.events_by_period for e in events]


def build_query(group_by: GroupBy, categories: Sequence[Category]) -> list[str]:
    """Build the query program: non-AFK window events, categorized and merged."""
    category_json = json.dumps(
        [c.to_query_format() for c in categories], separators=(",", ":")
    )
    merge_keys = json.dumps(MERGE_KEYS[group_by], separators=(", ", ":"))
    return [
        'afk_events = query_bucket(find_bucket("aw-watcher-afk_"));',
        'window_events = query_bucket(find_bucket("aw-watcher-window_"));',
        'window_events = filter_period_intersect(window_events, filter_keyvals(afk_events, "status", ["not-afk"]));',
        f"categorized_events = categorize(window_events, {category_json});",
        "sorted_events = sort_by_timestamp(categorized_events);",
        f"merged_events = merge_events_by_keys(sorted_events, {merge_keys});",
        "RETURN = merged_events;",
    ]


def decode_query_results(
    raw: Any,
    periods: Sequence[Period],
    categories: Sequence[Category],
    time_submitted: datetime,
) -> QueryResults:
    """Pair ActivityWatch's per-timeperiod result lists with the periods queried.

    Raises:
        DecodeError: on a count mismatch or any event that fails to decode
    """
    if not isinstance(raw, list):
        raise DecodeError(f"Expected a list of results per period, got: {raw!r}")
    if len(raw) != len(periods):
        raise DecodeError(
            f"Queried {len(periods)} periods but received {len(raw)} result lists"
        )

    events_by_period = []
    for period, events in zip(periods, raw):
        if not isinstance(events, list):
            raise DecodeError(f"Expected a list of events, got: {events!r}")
        events_by_period.append((period, [decode_event(e, categories) for e in events]))

    return QueryResults(events_by_period=events_by_period, time_submitted=time_submitted)
