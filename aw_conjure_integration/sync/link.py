"""Links - which conjure.so measure each category's time is written into."""

from dataclasses import dataclass
from typing import Any, Optional, Sequence

from .category import Category, CategoryName, decode_category_name
from .decode import DecodeError, field, nonempty_list
from .event import Event
from .measure import Measure

__all__ = ["Link", "MeasureGroup", "assign", "assign_events", "decode_links"]

# Events bound for one measure, in the order they were seen
MeasureGroup = tuple[Measure, list[Event]]


@dataclass(frozen=True)
class Link:
    """Route events in any of ``sources`` to the measure ``to``."""

    sources: tuple[CategoryName, ...]
    to: Measure


def _decode_link(data: Any, categories: Sequence[Category], measures: Sequence[Measure]) -> Link:
    sources = nonempty_list(
        field(data, "from"), lambda name: decode_category_name(name, categories)
    )

    measure_id = field(data, "to")
    measure = next((m for m in measures if m.id == measure_id), None)
    if measure is None:
        raise DecodeError(f"Unknown measure ID encountered:\n {measure_id!r}")

    return Link(sources=tuple(sources), to=measure)


def decode_links(
    data: Any, categories: Sequence[Category], measures: Sequence[Measure]
) -> list[Link]:
    """Decode ``links.json`` against the known categories and measures.

    The whole batch fails on the first link naming an unknown category or
    measure.
    """
    return nonempty_list(data, lambda d: _decode_link(d, categories, measures))


def assign(links: Sequence[Link], event: Event) -> Optional[Link]:
    """The first link, in configured order, whose sources include the event's category."""
    for link in links:
        if event.category in link.sources:
            return link
    return None


def assign_events(
    links: Sequence[Link], events: Sequence[Event]
) -> tuple[list[MeasureGroup], list[Event]]:
    """Split events into per-measure groups and those no link claims."""
    groups: dict[str, MeasureGroup] = {}
    unmatched: list[Event] = []

    for event in events:
        link = assign(links, event)
        if link is None:
            unmatched.append(event)
            continue
        groups.setdefault(link.to.id, (link.to, []))[1].append(event)

    return list(groups.values()), unmatched
