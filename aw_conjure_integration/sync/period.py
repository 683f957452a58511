"""Period arithmetic - fixed-width time bins aligned to clock hours."""

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone, tzinfo
from typing import Optional

__all__ = [
    "Period",
    "DayRewrite",
    "era_of",
    "beginning",
    "last_complete",
    "since_end_of_period",
    "since_last_complete_at",
    "since_start_of_day",
    "iso8601",
]

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)
ONE_HOUR = timedelta(hours=1)
ONE_MILLISECOND = timedelta(milliseconds=1)


def _utc(t: datetime) -> datetime:
    if t.tzinfo is None:
        raise ValueError(f"Naive datetime not allowed: {t!r}")
    return t.astimezone(timezone.utc)


def iso8601(t: datetime) -> str:
    """Render an instant as UTC ISO-8601 with millisecond precision."""
    t = _utc(t)
    return f"{t:%Y-%m-%dT%H:%M:%S}.{t.microsecond // 1000:03d}Z"


def to_millis(t: datetime) -> int:
    return (_utc(t) - EPOCH) // ONE_MILLISECOND


def from_millis(ms: int) -> datetime:
    return EPOCH + timedelta(milliseconds=ms)


@dataclass(frozen=True)
class Period:
    """A half-open ``[start, end)`` interval exactly one bin wide."""

    start: datetime
    end: datetime

    def to_dict(self) -> dict:
        """Encode as epoch milliseconds."""
        return {"start": to_millis(self.start), "end": to_millis(self.end)}

    @classmethod
    def from_dict(cls, data: dict) -> "Period":
        """Decode from epoch milliseconds."""
        return cls(start=from_millis(data["start"]), end=from_millis(data["end"]))

    def to_iso_interval(self) -> str:
        """Encode as an ISO-8601 interval, the form ActivityWatch queries take."""
        return f"{iso8601(self.start)}/{iso8601(self.end)}"


@dataclass(frozen=True)
class DayRewrite:
    """Everything that must be rewritten to heal the current local day."""

    eras: list[datetime]
    periods: list[Period]


def era_of(t: datetime) -> datetime:
    """Floor an instant to the containing UTC hour."""
    return _utc(t).replace(minute=0, second=0, microsecond=0)


def _ceil_to_hour(t: datetime) -> datetime:
    floored = era_of(t)
    return floored if floored == _utc(t) else floored + ONE_HOUR


def beginning(bin_size: int, start: datetime) -> Period:
    """The period of ``bin_size`` minutes starting at ``start``."""
    start = _utc(start)
    return Period(start=start, end=start + timedelta(minutes=bin_size))


def last_complete(bin_size: int, now: datetime) -> Period:
    """The latest period that has fully elapsed as of ``now``.

    Bins are anchored at the top of each hour. When ``now`` is still inside
    the first bin of an hour the answer is the last bin of the previous hour.
    The returned period always satisfies ``now - bin_size < end <= now``.
    """
    hour = era_of(now)
    step = timedelta(minutes=bin_size)
    bins_since_hour = (_utc(now) - hour) // step

    if bins_since_hour < 1:
        return beginning(bin_size, hour - step)
    return beginning(bin_size, hour + (bins_since_hour - 1) * step)


def since_end_of_period(
    bin_size: int, end_of_period: datetime, now: datetime
) -> Optional[list[Period]]:
    """Periods that became due after ``end_of_period``.

    Returns a contiguous list starting exactly at ``end_of_period`` and ending
    with ``last_complete(bin_size, now)``, or None when nothing is due yet.
    """
    latest = last_complete(bin_size, now)
    end_of_period = _utc(end_of_period)
    if latest.end <= end_of_period:
        return None

    step = timedelta(minutes=bin_size)
    count = (latest.start - end_of_period) // step
    return [beginning(bin_size, end_of_period + i * step) for i in range(count + 1)]


def since_last_complete_at(
    bin_size: int, last_time: datetime, now: datetime
) -> Optional[list[Period]]:
    """Periods due now that were not yet complete at ``last_time``."""
    return since_end_of_period(bin_size, last_complete(bin_size, last_time).end, now)


def since_start_of_day(
    bin_size: int, zone: tzinfo, now: datetime
) -> Optional[DayRewrite]:
    """Eras and periods covering the local day (in ``zone``) up to ``now``.

    Local midnight is rounded up to a whole UTC hour so that eras stay hour
    aligned in zones with fractional offsets.
    """
    local_midnight = _utc(now).astimezone(zone).replace(
        hour=0, minute=0, second=0, microsecond=0
    )
    first_era = _ceil_to_hour(local_midnight)

    periods = since_end_of_period(bin_size, first_era, now)
    if periods is None:
        return None

    hours = (_utc(now) - first_era) // ONE_HOUR
    eras = [first_era + h * ONE_HOUR for h in range(hours + 1)]
    return DayRewrite(eras=eras, periods=periods)
