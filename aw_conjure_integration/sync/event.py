"""Merged ActivityWatch events and their conjure.so measurement encoding."""

import math
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Iterable, Sequence

from ..config import GroupBy
from .category import Category, CategoryName, decode_category_name, name_to_string
from .decode import DecodeError, field
from .period import era_of, iso8601

__all__ = [
    "Event",
    "UNIQUE_KEY",
    "BIN_KEY",
    "HASH_SEED",
    "bin_val",
    "decode_event",
    "fnv1a_32",
    "label",
    "sort_by_duration",
    "to_measurement",
    "unique_val",
    "view_details",
]

# Meta attributes stored on every measurement we write
UNIQUE_KEY = "aw-conjure-integration-event-id"
BIN_KEY = "aw-conjure-integration-era"

HASH_SEED = 24117

FNV_PRIME = 16777619
UINT32 = 2**32


@dataclass(frozen=True)
class Event:
    """An ActivityWatch event after categorization and merging."""

    category: CategoryName
    app: str
    title: str
    start_time: datetime
    duration: float  # seconds

    @property
    def is_relevant(self) -> bool:
        return self.duration > 0


def _parse_timestamp(value: Any) -> datetime:
    if not isinstance(value, str):
        raise DecodeError(f"Expected an ISO-8601 timestamp, got: {value!r}")
    try:
        t = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError as e:
        raise DecodeError(f"Invalid timestamp {value!r}: {e}") from e
    if t.tzinfo is None:
        raise DecodeError(f"Timestamp without a UTC offset: {value!r}")
    return t


def decode_event(raw: Any, categories: Sequence[Category]) -> Event:
    """Decode one event returned by an ActivityWatch query.

    ``merge_events_by_keys`` keeps only the merge keys in ``data``, so
    ``app`` and ``title`` are absent when merging by category.
    """
    data = field(raw, "data")
    category = decode_category_name(field(data, "$category"), categories)

    app = data.get("app", "")
    title = data.get("title", "")
    if not isinstance(app, str) or not isinstance(title, str):
        raise DecodeError(f"Expected string app and title in: {data!r}")

    duration = field(raw, "duration")
    if isinstance(duration, bool) or not isinstance(duration, (int, float)):
        raise DecodeError(f"Expected a numeric duration, got: {duration!r}")

    return Event(
        category=category,
        app=app,
        title=title,
        start_time=_parse_timestamp(field(raw, "timestamp")),
        duration=float(duration),
    )


def fnv1a_32(text: str, seed: int) -> int:
    """32-bit FNV-1a over the UTF-8 bytes of ``text``, using ``seed`` as the offset basis.

    Lone surrogates (which ActivityWatch titles can contain) are hashed as
    their 3-byte encodings rather than rejected.
    """
    h = seed % UINT32
    for byte in text.encode("utf-8", "surrogatepass"):
        h = ((h ^ byte) * FNV_PRIME) % UINT32
    return h


def unique_val(group_by: GroupBy, event: Event) -> str:
    """Idempotency key for an event: grouping-key hash plus start time.

    Two events with the same grouping key and start time always get the same
    key, so re-uploading a period updates records instead of duplicating them.
    """
    if group_by is GroupBy.CATEGORY:
        digest = fnv1a_32(name_to_string(event.category), HASH_SEED)
    else:
        digest = fnv1a_32(event.title, fnv1a_32(event.app, HASH_SEED))
    return f"{digest} - {iso8601(event.start_time)}"


def bin_val(event: Event) -> str:
    """The era (UTC hour) an event belongs to, used for bulk deletion."""
    return iso8601(era_of(event.start_time))


def label(group_by: GroupBy, event: Event) -> str:
    if group_by is GroupBy.CATEGORY:
        return name_to_string(event.category)
    return f"{event.app} -- {event.title}"


def to_measurement(group_by: GroupBy, event: Event) -> dict:
    """Encode an event as a ``createOrUpdate`` item (minus ``measureId``)."""
    key = unique_val(group_by, event)
    return {
        "match": [{"attribute": "meta", "key": UNIQUE_KEY, "value": key}],
        "attributes": {
            "comment": label(group_by, event),
            "timestamp": iso8601(event.start_time),
            "values": {"duration": math.ceil(event.duration), "active": False},
            "meta": [
                {"key": UNIQUE_KEY, "value": key},
                {"key": BIN_KEY, "value": bin_val(event)},
            ],
        },
    }


def view_details(event: Event) -> str:
    """Human-readable one-liner, e.g. ``Work>Code (3:07): code -- main.py``."""
    minutes, seconds = divmod(math.ceil(event.duration), 60)
    return (
        f"{name_to_string(event.category)} ({minutes}:{seconds:02d}): "
        f"{event.app} -- {event.title}"
    )


def sort_by_duration(events: Iterable[Event]) -> list[Event]:
    """Longest first."""
    return sorted(events, key=lambda e: e.duration, reverse=True)
